"""
Booking ledger: a student's reserved, not yet paid claim on a class seat.

At most one booking may exist per (class, student). The check and the insert
run as one conditional insert in the store, so two identical requests racing
each other still produce a single booking.
"""
import logging
from typing import List

from catalog import get_class
from databases_sql import BOOKED_CLASSES, DocumentStore
from errors import ConflictException, NotFoundException
from models import BookRequest, ClassStatus, DeleteResult, InsertResult
from utils import isoformat_utc

logger = logging.getLogger(__name__)

ALREADY_SELECTED = "already selected that class"


async def book(store: DocumentStore, request: BookRequest) -> InsertResult:
    cls = await get_class(store, request.select_class_id)
    if cls is None or cls.get("status") != ClassStatus.APPROVED.value:
        raise NotFoundException("class not found")
    if (cls.get("seats") or 0) <= 0:
        raise ConflictException("class is full")

    document = request.model_dump(by_alias=True, exclude_none=True)
    document.pop("_id", None)
    document["bookedAt"] = isoformat_utc()
    result = await store.collection(BOOKED_CLASSES).insert_one_if_absent(
        {"selectClassId": request.select_class_id, "email": request.email},
        document,
    )
    if result is None:
        logger.info("%s already booked class %s", request.email, request.select_class_id)
        raise ConflictException(ALREADY_SELECTED)
    return result


async def list_for(store: DocumentStore, email: str) -> List[dict]:
    return await store.collection(BOOKED_CLASSES).find({"email": email})


async def get_by_id(store: DocumentStore, booking_id: str, email: str) -> dict:
    booking = await store.collection(BOOKED_CLASSES).find_one({"_id": booking_id, "email": email})
    if booking is None:
        raise NotFoundException("booking not found")
    return booking


async def cancel(store: DocumentStore, booking_id: str, email: str) -> DeleteResult:
    result = await store.collection(BOOKED_CLASSES).delete_one({"_id": booking_id, "email": email})
    if not result.deleted_count:
        raise NotFoundException("booking not found")
    logger.info("%s cancelled booking %s", email, booking_id)
    return result
