import pytest

import bookings
from conftest import INSTRUCTOR, STUDENT
from errors import ConflictException, NotFoundException
from models import BookRequest, ClassStatus


@pytest.mark.asyncio
async def test_booking_twice_yields_one_booking_and_one_conflict(store, add_class):
    class_id = add_class()
    request = BookRequest(selectClassId=class_id, email=STUDENT)

    first = await bookings.book(store, request)
    with pytest.raises(ConflictException) as excinfo:
        await bookings.book(store, request)

    assert excinfo.value.message == bookings.ALREADY_SELECTED
    stored = await bookings.list_for(store, STUDENT)
    assert [b["_id"] for b in stored] == [first.inserted_id]
    assert stored[0]["selectClassId"] == class_id
    assert "bookedAt" in stored[0]


@pytest.mark.asyncio
async def test_other_students_can_book_the_same_class(store, add_class):
    class_id = add_class()

    await bookings.book(store, BookRequest(selectClassId=class_id, email=STUDENT))
    await bookings.book(store, BookRequest(selectClassId=class_id, email="other@example.com"))

    assert len(await store.collection("booked-classes").find({"selectClassId": class_id})) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ClassStatus.PENDING, ClassStatus.DENIED])
async def test_unapproved_class_cannot_be_booked(store, add_class, status):
    class_id = add_class(status=status)

    with pytest.raises(NotFoundException):
        await bookings.book(store, BookRequest(selectClassId=class_id, email=STUDENT))


@pytest.mark.asyncio
async def test_full_class_cannot_be_booked(store, add_class):
    class_id = add_class(seats=0)

    with pytest.raises(ConflictException) as excinfo:
        await bookings.book(store, BookRequest(selectClassId=class_id, email=STUDENT))
    assert excinfo.value.message == "class is full"


@pytest.mark.asyncio
async def test_cancel_only_removes_own_booking(store, add_class):
    class_id = add_class()
    booking = await bookings.book(store, BookRequest(selectClassId=class_id, email=STUDENT))

    with pytest.raises(NotFoundException):
        await bookings.cancel(store, booking.inserted_id, "other@example.com")
    result = await bookings.cancel(store, booking.inserted_id, STUDENT)

    assert result.deleted_count == 1
    with pytest.raises(NotFoundException):
        await bookings.get_by_id(store, booking.inserted_id, STUDENT)


class TestBookingRoutes:
    def test_book_and_duplicate(self, client, people, add_class, auth_headers):
        class_id = add_class()
        body = {"selectClassId": class_id, "email": STUDENT, "className": "Tennis", "price": 30}

        first = client.post("/booked-classes", json=body, headers=auth_headers(STUDENT))
        second = client.post("/booked-classes", json=body, headers=auth_headers(STUDENT))

        assert first.status_code == 200
        assert first.json()["acknowledged"] is True
        assert first.json()["insertedId"]
        assert second.status_code == 409
        assert second.json()["message"] == "already selected that class"

    def test_booking_for_someone_else_is_forbidden(self, client, people, add_class, auth_headers):
        class_id = add_class()

        response = client.post(
            "/booked-classes",
            json={"selectClassId": class_id, "email": "other@example.com"},
            headers=auth_headers(STUDENT),
        )

        assert response.status_code == 403

    def test_instructor_cannot_book(self, client, people, add_class, auth_headers):
        class_id = add_class()

        response = client.post(
            "/booked-classes",
            json={"selectClassId": class_id, "email": INSTRUCTOR},
            headers=auth_headers(INSTRUCTOR),
        )

        assert response.status_code == 403

    def test_booking_requires_credentials(self, client, add_class):
        response = client.post("/booked-classes", json={"selectClassId": add_class(), "email": STUDENT})

        assert response.status_code == 401

    def test_invalid_body_is_422(self, client, people, auth_headers):
        response = client.post(
            "/booked-classes", json={"email": "not-an-email"}, headers=auth_headers(STUDENT)
        )

        assert response.status_code == 422
        assert response.json()["error"] is True

    def test_list_get_and_cancel(self, client, people, add_class, auth_headers):
        class_id = add_class()
        headers = auth_headers(STUDENT)
        booking_id = client.post(
            "/booked-classes", json={"selectClassId": class_id, "email": STUDENT}, headers=headers
        ).json()["insertedId"]

        assert client.get("/booked-classes", headers=headers).json() == []
        listed = client.get("/booked-classes", params={"email": STUDENT}, headers=headers).json()
        assert [b["_id"] for b in listed] == [booking_id]
        assert client.get(f"/booked-classes/{booking_id}", headers=headers).json()["_id"] == booking_id
        assert client.get(
            "/booked-classes", params={"email": STUDENT}, headers=auth_headers(INSTRUCTOR)
        ).status_code == 403

        deleted = client.delete(f"/booked-classes/{booking_id}", headers=headers)
        assert deleted.json() == {"acknowledged": True, "deletedCount": 1}
        assert client.get(f"/booked-classes/{booking_id}", headers=headers).status_code == 404
