"""
Dashboard aggregates for admins, instructors and students.
"""
import asyncio
from typing import Iterable

from databases_sql import BOOKED_CLASSES, CLASSES, PAYMENTS, USERS, DocumentStore
from models import ClassStatus, Role


def revenue(payments: Iterable[dict]) -> float:
    return sum(p.get("price") or 0 for p in payments)


async def admin_stats(store: DocumentStore) -> dict:
    users = store.collection(USERS)
    students, instructors, classes, orders, payments = await asyncio.gather(
        users.count_documents({"role": Role.STUDENT.value}),
        users.count_documents({"role": Role.INSTRUCTOR.value}),
        store.collection(CLASSES).estimated_document_count(),
        store.collection(PAYMENTS).estimated_document_count(),
        store.collection(PAYMENTS).find(),
    )
    return {
        "revenue": revenue(payments),
        "student": students,
        "instructor": instructors,
        "classes": classes,
        "orders": orders,
    }


async def instructor_stats(store: DocumentStore, email: str) -> dict:
    approved = {"email": email, "status": ClassStatus.APPROVED.value}
    own_classes = await store.collection(CLASSES).find(approved)
    payments = await store.collection(PAYMENTS).find({"instructorEmail": email})
    return {
        "classes": len(own_classes),
        "students": len(payments),
        "revenue": revenue(payments),
        "totalStudent": sum(c.get("student") or 0 for c in own_classes),
        "payments": payments,
    }


async def student_stats(store: DocumentStore, email: str) -> dict:
    query = {"email": email}
    booked = await store.collection(BOOKED_CLASSES).count_documents(query)
    payments = await store.collection(PAYMENTS).find(query)
    return {
        "bookedClasses": booked,
        "enrollClasses": len(payments),
        "revenue": revenue(payments),
    }
