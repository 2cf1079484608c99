"""
User registry and role resolution.

``role_of`` is read on every gated call and is never cached, so a role
granted or revoked by an admin is visible to the very next request.
"""
import logging
from typing import List, Optional

from databases_sql import USERS, DocumentStore
from errors import NotFoundException
from models import DeleteResult, InsertResult, Role, UpdateResult, UserIn

logger = logging.getLogger(__name__)


async def role_of(store: DocumentStore, email: str) -> Optional[Role]:
    """Return the stored role for ``email``, or None for unknown users or roles."""
    user = await store.collection(USERS).find_one({"email": email})
    if not user:
        return None
    try:
        return Role(user.get("role"))
    except ValueError:
        return None


async def has_role(store: DocumentStore, email: str, role: Role) -> bool:
    return await role_of(store, email) == role


async def create_user(store: DocumentStore, user: UserIn) -> Optional[InsertResult]:
    """Register a user on first sign-in. Returns None if the email is taken."""
    document = user.model_dump(exclude_none=True)
    document.pop("_id", None)
    document["role"] = Role.STUDENT.value
    result = await store.collection(USERS).insert_one_if_absent(
        {"email": document["email"]}, document
    )
    if result is not None:
        logger.info("Registered user %s", document["email"])
    return result


async def list_users(store: DocumentStore) -> List[dict]:
    return await store.collection(USERS).find()


async def list_instructors(store: DocumentStore) -> List[dict]:
    return await store.collection(USERS).find({"role": Role.INSTRUCTOR.value})


async def get_user(store: DocumentStore, email: str) -> Optional[dict]:
    return await store.collection(USERS).find_one({"email": email})


async def set_role(store: DocumentStore, user_id: str, role: Role) -> UpdateResult:
    result = await store.collection(USERS).update_one(
        {"_id": user_id}, {"$set": {"role": role.value}}
    )
    if not result.matched_count:
        raise NotFoundException("user not found")
    logger.info("User %s is now %s", user_id, role.value)
    return result


async def delete_user(store: DocumentStore, user_id: str) -> DeleteResult:
    result = await store.collection(USERS).delete_one({"_id": user_id})
    if not result.deleted_count:
        raise NotFoundException("user not found")
    logger.info("Deleted user %s", user_id)
    return result
