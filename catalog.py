"""
Class catalog: listing classes and the field-level updates instructors and
admins make to them. Seat bookkeeping on enrollment lives in payments.
"""
import logging
from typing import List, Optional

from databases_sql import CLASSES, DESCENDING, DocumentStore
from errors import ForbiddenException, NotFoundException
from models import ClassIn, ClassStatus, InsertResult, UpdateResult

logger = logging.getLogger(__name__)


async def list_approved(store: DocumentStore) -> List[dict]:
    return await store.collection(CLASSES).find({"status": ClassStatus.APPROVED.value})


async def list_popular(store: DocumentStore, limit: int = 6) -> List[dict]:
    return await store.collection(CLASSES).find(
        {"status": ClassStatus.APPROVED.value},
        sort=[("student", DESCENDING)],
        limit=limit,
    )


async def list_all(store: DocumentStore) -> List[dict]:
    return await store.collection(CLASSES).find()


async def list_for_instructor(store: DocumentStore, email: str) -> List[dict]:
    return await store.collection(CLASSES).find({"email": email})


async def get_class(store: DocumentStore, class_id: str) -> Optional[dict]:
    return await store.collection(CLASSES).find_one({"_id": class_id})


async def create_class(store: DocumentStore, instructor_email: str, new_class: ClassIn) -> InsertResult:
    document = new_class.model_dump(exclude_none=True)
    document.pop("_id", None)
    document.update(
        {
            "email": instructor_email,
            "status": ClassStatus.PENDING.value,
            "student": 0,
        }
    )
    result = await store.collection(CLASSES).insert_one(document)
    logger.info("Instructor %s created class %s", instructor_email, result.inserted_id)
    return result


async def _update_class(store: DocumentStore, class_id: str, fields: dict) -> UpdateResult:
    result = await store.collection(CLASSES).update_one({"_id": class_id}, {"$set": fields})
    if not result.matched_count:
        raise NotFoundException("class not found")
    return result


async def set_status(store: DocumentStore, class_id: str, status: ClassStatus) -> UpdateResult:
    result = await _update_class(store, class_id, {"status": status.value})
    logger.info("Class %s is now %s", class_id, status.value)
    return result


async def set_seats_and_price(
    store: DocumentStore,
    class_id: str,
    seats: int,
    price: float,
    owner_email: Optional[str] = None,
) -> UpdateResult:
    """Update capacity and price. With ``owner_email`` set, only that instructor's class may change."""
    if owner_email is not None:
        existing = await get_class(store, class_id)
        if existing is None:
            raise NotFoundException("class not found")
        if existing.get("email") != owner_email:
            raise ForbiddenException()
    return await _update_class(store, class_id, {"seats": seats, "price": price})


async def set_feedback(store: DocumentStore, class_id: str, text: str) -> UpdateResult:
    return await _update_class(store, class_id, {"feedback": text})
