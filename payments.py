"""
Payment gateway adapter and the booking -> enrollment transition.

Lifecycle of one booking:

    BOOKED --create_intent--> INTENT_CREATED --settle--> SETTLING --finalize_seat--> ENROLLED

Each payment finalizes at most one seat; the payment is marked ``seatFinalized``
before the class counters move.

``settle`` and ``finalize_seat`` are separate store writes with no enclosing
transaction. A failure between them leaves the payment recorded and the
booking removed while the class counters are unchanged; nothing reconciles
that automatically.
"""
import asyncio
import logging
from typing import Dict, List, Sequence

import stripe

from databases_sql import BOOKED_CLASSES, CLASSES, DESCENDING, PAYMENTS, DocumentStore
from errors import UpstreamFailure
from models import PaymentIn, SeatOutcome, SeatUpdate, SettleResult
from utils import isoformat_utc, to_minor_units

logger = logging.getLogger(__name__)

CARD = "card"


class StripeGateway:
    """Creates Stripe payment intents and hands back only the client secret."""

    def __init__(self, secret_key: str):
        self._secret_key = secret_key
        if not secret_key:
            logger.warning("Stripe secret key not configured - payment intents will fail")

    async def create_intent(self, amount: int, currency: str, methods: Sequence[str]) -> str:
        if not self._secret_key:
            raise UpstreamFailure("payment gateway is not configured")
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount,
                currency=currency,
                payment_method_types=list(methods),
                api_key=self._secret_key,
            )
        except stripe.StripeError as exc:
            logger.error("Stripe rejected payment intent for %s %s: %s", amount, currency, exc)
            raise UpstreamFailure("payment gateway rejected the request") from exc
        return intent["client_secret"]


async def create_intent(gateway, price: float, currency: str = "usd") -> str:
    """Mint a card payment intent for ``price`` and return its client secret."""
    return await gateway.create_intent(to_minor_units(price), currency, [CARD])


async def settle(store: DocumentStore, payment: PaymentIn) -> SettleResult:
    """
    Record a confirmed payment and retire the booking it paid for.

    Only a booking for the same student and class is retired. The payment
    insert is kept even when no such booking exists; the payment record is
    authoritative. Settling the same booking twice writes
    two payment records.
    """
    booking_id = payment.booking_ref
    document = payment.model_dump(by_alias=True, exclude_none=True, mode="json")
    document.pop("_id", None)
    document["bookingId"] = booking_id
    document["date"] = isoformat_utc(payment.date)

    insert_result = await store.collection(PAYMENTS).insert_one(document)
    delete_result = await store.collection(BOOKED_CLASSES).delete_one(
        {"_id": booking_id, "email": payment.email, "selectClassId": payment.select_class_id}
    )
    if delete_result.deleted_count:
        logger.info("Payment %s settled booking %s", insert_result.inserted_id, booking_id)
    else:
        logger.warning(
            "Payment %s recorded but booking %s was not found",
            insert_result.inserted_id,
            booking_id,
        )
    return SettleResult(insert_result=insert_result, delete_result=delete_result)


async def finalize_seat(store: DocumentStore, class_id: str, email: str) -> SeatUpdate:
    """
    Spend one of ``email``'s payments for ``class_id`` on a seat.

    The payment is claimed first with a conditional update, so concurrent
    calls cannot spend it twice. Seats never drop below zero; when the class
    is sold out the claim is released again.
    """
    classes = store.collection(CLASSES)
    ledger = store.collection(PAYMENTS)

    existing = await classes.find_one({"_id": class_id})
    if existing is None:
        logger.warning("Seat not found: class %s does not exist", class_id)
        return SeatUpdate(outcome=SeatOutcome.NOT_FOUND)

    unspent = {"seatFinalized": {"$ne": True}}
    payment = await ledger.find_one({"selectClassId": class_id, "email": email, **unspent})
    claimed = None
    if payment is not None:
        claimed = await ledger.update_one(
            {"_id": payment["_id"], **unspent}, {"$set": {"seatFinalized": True}}
        )
    if not (claimed and claimed.modified_count):
        logger.warning("%s has no unused payment for class %s", email, class_id)
        return SeatUpdate(outcome=SeatOutcome.NOT_PAID, class_doc=existing)

    result = await classes.update_one(
        {"_id": class_id, "seats": {"$gt": 0}},
        {"$inc": {"seats": -1, "student": 1}},
    )
    if result.matched_count:
        logger.info("Payment %s enrolled %s in class %s", payment["_id"], email, class_id)
        return SeatUpdate(
            outcome=SeatOutcome.UPDATED,
            result=result,
            class_doc=await classes.find_one({"_id": class_id}),
        )

    await ledger.update_one({"_id": payment["_id"]}, {"$set": {"seatFinalized": False}})
    logger.warning("Class %s has no seats left", class_id)
    return SeatUpdate(
        outcome=SeatOutcome.SOLD_OUT,
        result=result,
        class_doc=await classes.find_one({"_id": class_id}),
    )


async def list_payments(store: DocumentStore) -> List[dict]:
    return await store.collection(PAYMENTS).find()


async def enrolled_classes(store: DocumentStore, email: str) -> Dict[str, List[dict]]:
    """A student's payments, newest first, each paired with the class it paid for."""
    payments = await store.collection(PAYMENTS).find({"email": email}, sort=[("date", DESCENDING)])
    classes = {c["_id"]: c for c in await store.collection(CLASSES).find()}
    enrolled = [classes.get(p.get("selectClassId")) for p in payments]
    return {"enrollClass": enrolled, "result": payments}
