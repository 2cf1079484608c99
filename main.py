import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware

# Local imports
import bookings
import catalog
import payments
import stats
import users
from auth import TokenService, ensure_self, require_authenticated, require_role, role_required
from config import get_settings
from databases_sql import DocumentStore
from dependencies import get_gateway, get_store, get_token_service
from errors import ConflictException, ForbiddenException, NotFoundException, register_error_handlers
from models import (
    BookRequest,
    ClassIn,
    ClassStatus,
    DeleteResult,
    FeedbackUpdate,
    Identity,
    InsertResult,
    PaymentIn,
    PaymentIntentOut,
    PaymentIntentRequest,
    Role,
    SeatOutcome,
    SeatsAndPriceUpdate,
    SettleResult,
    TokenOut,
    TokenRequest,
    UpdateResult,
    UserIn,
)
from payments import StripeGateway

# ---------- Config ----------
settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger("sportscamp_api")


# ---------- App Lifecycle ----------
@asynccontextmanager
async def lifespan(app: FastAPI):
    store = DocumentStore(settings.db_path)
    store.init_db()
    app.state.store = store
    app.state.tokens = TokenService(
        settings.access_token_secret.get_secret_value(),
        expires_in=timedelta(hours=settings.token_expire_hours),
    )
    app.state.gateway = StripeGateway(settings.payment_secret_key.get_secret_value())
    logger.info("Sports camp API started.")
    yield
    logger.info("Application shutting down.")


app = FastAPI(title="Sports Camp Booking API", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
register_error_handlers(app)

admin_only = role_required(Role.ADMIN)
instructor_only = role_required(Role.INSTRUCTOR)
student_only = role_required(Role.STUDENT)


@app.get("/")
async def root():
    return "Sports server running"


# ---------- Tokens ----------
@app.post("/jwt", response_model=TokenOut)
async def issue_token(body: TokenRequest, tokens: TokenService = Depends(get_token_service)):
    return TokenOut(token=tokens.issue({"email": body.email}))


# ---------- Users ----------
@app.get("/users")
async def all_users(_: Identity = Depends(admin_only), store=Depends(get_store)):
    return await users.list_users(store)


@app.post("/users")
async def sign_in_user(body: UserIn, store=Depends(get_store)):
    result = await users.create_user(store, body)
    if result is None:
        return {"message": "user already exists"}
    return result


@app.get("/user/{email}")
async def user_profile(
    email: str,
    identity: Identity = Depends(require_authenticated),
    store=Depends(get_store),
):
    if identity.email != email:
        await require_role(identity, Role.ADMIN, store=store)
    return await users.get_user(store, email)


@app.get("/users/admin/{email}")
async def check_admin(
    email: str, identity: Identity = Depends(require_authenticated), store=Depends(get_store)
):
    if identity.email != email:
        return {"admin": False}
    return {"admin": await users.has_role(store, email, Role.ADMIN)}


@app.get("/users/instructor/{email}")
async def check_instructor(
    email: str, identity: Identity = Depends(require_authenticated), store=Depends(get_store)
):
    if identity.email != email:
        return {"instructor": False}
    return {"instructor": await users.has_role(store, email, Role.INSTRUCTOR)}


@app.patch("/users/admin/{user_id}", response_model=UpdateResult)
async def make_admin(user_id: str, _: Identity = Depends(admin_only), store=Depends(get_store)):
    return await users.set_role(store, user_id, Role.ADMIN)


@app.patch("/users/instructor/{user_id}", response_model=UpdateResult)
async def make_instructor(user_id: str, _: Identity = Depends(admin_only), store=Depends(get_store)):
    return await users.set_role(store, user_id, Role.INSTRUCTOR)


@app.get("/instructors")
async def instructors(store=Depends(get_store)):
    return await users.list_instructors(store)


@app.delete("/users/{user_id}", response_model=DeleteResult)
async def remove_user(user_id: str, _: Identity = Depends(admin_only), store=Depends(get_store)):
    return await users.delete_user(store, user_id)


# ---------- Classes ----------
@app.get("/all-classes")
async def approved_classes(store=Depends(get_store)):
    return await catalog.list_approved(store)


@app.get("/popular-classes")
async def popular_classes(store=Depends(get_store)):
    return await catalog.list_popular(store, settings.popular_classes_limit)


@app.get("/pending-classes")
async def pending_classes(_: Identity = Depends(admin_only), store=Depends(get_store)):
    return await catalog.list_all(store)


@app.get("/my-classes")
async def my_classes(
    email: str = Query(...),
    identity: Identity = Depends(instructor_only),
    store=Depends(get_store),
):
    email = ensure_self(identity, email)
    return await catalog.list_for_instructor(store, email)


@app.post("/all-classes", response_model=InsertResult)
async def add_class(
    body: ClassIn, identity: Identity = Depends(instructor_only), store=Depends(get_store)
):
    return await catalog.create_class(store, identity.email, body)


@app.patch("/all-classes/approved/{class_id}", response_model=UpdateResult)
async def approve_class(class_id: str, _: Identity = Depends(admin_only), store=Depends(get_store)):
    return await catalog.set_status(store, class_id, ClassStatus.APPROVED)


@app.patch("/all-classes/deny/{class_id}", response_model=UpdateResult)
async def deny_class(class_id: str, _: Identity = Depends(admin_only), store=Depends(get_store)):
    return await catalog.set_status(store, class_id, ClassStatus.DENIED)


@app.patch("/update-classes/{class_id}", response_model=UpdateResult)
async def update_class(
    class_id: str,
    body: SeatsAndPriceUpdate,
    identity: Identity = Depends(require_authenticated),
    store=Depends(get_store),
):
    role = await require_role(identity, Role.INSTRUCTOR, Role.ADMIN, store=store)
    owner = identity.email if role == Role.INSTRUCTOR else None
    return await catalog.set_seats_and_price(store, class_id, body.seats, body.price, owner)


@app.patch("/update-feedback/{class_id}", response_model=UpdateResult)
async def update_feedback(
    class_id: str, body: FeedbackUpdate, _: Identity = Depends(admin_only), store=Depends(get_store)
):
    return await catalog.set_feedback(store, class_id, body.feedback)


# ---------- Bookings ----------
@app.get("/booked-classes")
async def booked_classes(
    email: Optional[str] = Query(None),
    identity: Identity = Depends(require_authenticated),
    store=Depends(get_store),
):
    if not email:
        return []
    email = ensure_self(identity, email)
    return await bookings.list_for(store, email)


@app.get("/booked-classes/{booking_id}")
async def booked_class(
    booking_id: str, identity: Identity = Depends(require_authenticated), store=Depends(get_store)
):
    return await bookings.get_by_id(store, booking_id, identity.email)


@app.delete("/booked-classes/{booking_id}", response_model=DeleteResult)
async def cancel_booking(
    booking_id: str, identity: Identity = Depends(require_authenticated), store=Depends(get_store)
):
    return await bookings.cancel(store, booking_id, identity.email)


@app.post("/booked-classes", response_model=InsertResult)
async def book_class(
    body: BookRequest, identity: Identity = Depends(student_only), store=Depends(get_store)
):
    email = ensure_self(identity, body.email)
    return await bookings.book(store, body.model_copy(update={"email": email}))


# ---------- Payments ----------
@app.post("/create-payment-intent", response_model=PaymentIntentOut)
async def create_payment_intent(
    body: PaymentIntentRequest,
    _: Identity = Depends(require_authenticated),
    gateway=Depends(get_gateway),
):
    secret = await payments.create_intent(gateway, body.price, settings.payment_currency)
    return PaymentIntentOut(client_secret=secret)


@app.post("/payments", response_model=SettleResult)
async def settle_payment(
    body: PaymentIn, identity: Identity = Depends(require_authenticated), store=Depends(get_store)
):
    email = ensure_self(identity, body.email)
    return await payments.settle(store, body.model_copy(update={"email": email}))


@app.patch("/all-classes/seats/{class_id}", response_model=UpdateResult)
async def finalize_class_seat(
    class_id: str, identity: Identity = Depends(require_authenticated), store=Depends(get_store)
):
    seat = await payments.finalize_seat(store, class_id, identity.email)
    if seat.outcome == SeatOutcome.NOT_FOUND:
        raise NotFoundException("Seat not found")
    if seat.outcome == SeatOutcome.NOT_PAID:
        raise ForbiddenException("no unused payment for this class", code="payment_required")
    if seat.outcome == SeatOutcome.SOLD_OUT:
        raise ConflictException("class is full")
    return seat.result


@app.get("/payments")
async def all_payments(_: Identity = Depends(admin_only), store=Depends(get_store)):
    return await payments.list_payments(store)


@app.get("/enroll-classes")
async def enroll_classes(
    email: str = Query(...),
    identity: Identity = Depends(require_authenticated),
    store=Depends(get_store),
):
    email = ensure_self(identity, email)
    return await payments.enrolled_classes(store, email)


# ---------- Dashboard ----------
@app.get("/admin-stats")
async def admin_stats(_: Identity = Depends(admin_only), store=Depends(get_store)):
    return await stats.admin_stats(store)


@app.get("/instructor-stat")
async def instructor_stat(
    email: str = Query(...),
    identity: Identity = Depends(instructor_only),
    store=Depends(get_store),
):
    email = ensure_self(identity, email)
    return await stats.instructor_stats(store, email)


@app.get("/student-stat")
async def student_stat(
    email: str = Query(...),
    identity: Identity = Depends(require_authenticated),
    store=Depends(get_store),
):
    email = ensure_self(identity, email)
    return await stats.student_stats(store, email)


# ---------- Run ----------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=True)
