from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


class ClassStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- Store results ----------
class InsertResult(CamelModel):
    acknowledged: bool = True
    inserted_id: str


class UpdateResult(CamelModel):
    acknowledged: bool = True
    matched_count: int = 0
    modified_count: int = 0


class DeleteResult(CamelModel):
    acknowledged: bool = True
    deleted_count: int = 0


# ---------- Identity ----------
class Identity(BaseModel):
    email: str


class TokenRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: EmailStr


class TokenOut(BaseModel):
    token: str


class UserIn(BaseModel):
    """Profile sent on first sign-in. Any role in the body is ignored."""

    model_config = ConfigDict(extra="allow")

    email: EmailStr
    name: Optional[str] = None
    photo: Optional[str] = None


# ---------- Classes ----------
class ClassIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    seats: int = Field(..., ge=0)
    image: Optional[str] = None


class SeatsAndPriceUpdate(BaseModel):
    seats: int = Field(..., ge=0)
    price: float = Field(..., ge=0)


class FeedbackUpdate(BaseModel):
    feedback: str


# ---------- Bookings ----------
class BookRequest(CamelModel):
    model_config = ConfigDict(extra="allow")

    select_class_id: str = Field(..., min_length=1)
    email: EmailStr


# ---------- Payments ----------
class PaymentIntentRequest(BaseModel):
    price: float = Field(..., gt=0)


class PaymentIntentOut(CamelModel):
    client_secret: str


class PaymentIn(CamelModel):
    """A confirmed payment submitted by the client after the gateway succeeded.

    ``booking_id`` names the booking being retired. Older clients only send
    ``id``, which carries the same booking identifier.
    """

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    booking_id: Optional[str] = None
    email: EmailStr
    price: float = Field(..., ge=0)
    select_class_id: str = Field(..., min_length=1)
    transaction_id: Optional[str] = None
    date: Optional[datetime] = None

    @model_validator(mode="after")
    def needs_booking_reference(self):
        if not (self.booking_id or self.id):
            raise ValueError("bookingId (or legacy id) is required")
        return self

    @property
    def booking_ref(self) -> str:
        return self.booking_id or self.id


class SettleResult(CamelModel):
    insert_result: InsertResult
    delete_result: DeleteResult


class SeatOutcome(str, Enum):
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    NOT_PAID = "not_paid"
    SOLD_OUT = "sold_out"


class SeatUpdate(BaseModel):
    outcome: SeatOutcome
    result: Optional[UpdateResult] = None
    class_doc: Optional[Dict[str, Any]] = None
