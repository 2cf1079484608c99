"""
Seed an admin, an instructor and three approved classes (Football, Swimming, Tennis).
- Default: Adds missing users and classes only.
- --force: Also clears every booking and payment before seeding.
"""

import asyncio
import sys

from config import get_settings
from databases_sql import BOOKED_CLASSES, CLASSES, PAYMENTS, USERS, DocumentStore
from models import ClassStatus, Role

ADMIN_EMAIL = "admin@sportscamp.test"
INSTRUCTOR_EMAIL = "coach@sportscamp.test"

USERS_SEED = [
    {"email": ADMIN_EMAIL, "name": "Camp Admin", "role": Role.ADMIN.value},
    {"email": INSTRUCTOR_EMAIL, "name": "Head Coach", "role": Role.INSTRUCTOR.value},
]

CLASSES_SEED = [
    ("Football", 25.0, 20),
    ("Swimming", 40.0, 12),
    ("Tennis", 35.0, 8),
]


async def clear_ledgers(store: DocumentStore):
    """Remove all bookings and payments."""
    for name in (BOOKED_CLASSES, PAYMENTS):
        result = await store.collection(name).delete_many()
        print(f"Cleared {result.deleted_count} documents from {name}")


async def seed(store: DocumentStore, force=False):
    if force:
        await clear_ledgers(store)

    users = store.collection(USERS)
    for user in USERS_SEED:
        if await users.insert_one_if_absent({"email": user["email"]}, user):
            print(f"Seeded user: {user['email']} ({user['role']})")

    classes = store.collection(CLASSES)
    existing_names = {c.get("name") for c in await classes.find({"email": INSTRUCTOR_EMAIL})}
    for name, price, seats in CLASSES_SEED:
        if name in existing_names:
            continue
        await classes.insert_one(
            {
                "name": name,
                "price": price,
                "seats": seats,
                "student": 0,
                "email": INSTRUCTOR_EMAIL,
                "instructorName": "Head Coach",
                "status": ClassStatus.APPROVED.value,
            }
        )
        print(f"Seeded: {name} ({seats} seats at ${price:.2f})")


if __name__ == "__main__":
    force_flag = "--force" in sys.argv
    store = DocumentStore(get_settings().db_path)
    store.init_db()
    asyncio.run(seed(store, force=force_flag))
