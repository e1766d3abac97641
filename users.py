from typing import Any, Dict, List, Optional, Union

from pymongo import ASCENDING

from database import DocumentStore
from exceptions import UserNotFound, ValidationError
from logging_config import get_logger
from occupancy import unassign_student
from schemas import User, UserUpdate

logger = get_logger("users")

USERS = "user"


def get_user(store: DocumentStore, user_id: str) -> Dict[str, Any]:
    user = store.get(USERS, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def find_by_email(store: DocumentStore, email: str) -> Optional[Dict[str, Any]]:
    found = store.query(USERS, {"email": email.lower()}, limit=1)
    return found[0] if found else None


def create_user(store: DocumentStore, data: Union[User, Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(data, User):
        data = User(**data)
    doc = data.model_dump(exclude={"created_at", "updated_at"})
    doc["email"] = doc["email"].lower()
    # room_id is owned by the occupancy ledger
    doc["room_id"] = None
    if find_by_email(store, doc["email"]):
        raise ValidationError("Email already in use", field="email")
    user = store.create(USERS, doc)
    logger.info(f"Created {user['role']} account {user['id']}")
    return user


def list_users(store: DocumentStore, role: Optional[str] = None) -> List[Dict[str, Any]]:
    filt = {"role": role} if role else {}
    return store.query(USERS, filt, sort=[("name", ASCENDING)])


def update_profile(store: DocumentStore, user_id: str, patch: Union[UserUpdate, Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(patch, UserUpdate):
        patch = UserUpdate(**patch)
    changes = patch.model_dump(exclude_none=True)
    if "email" in changes:
        changes["email"] = changes["email"].lower()
        other = find_by_email(store, changes["email"])
        if other and other["id"] != user_id:
            raise ValidationError("Email already in use", field="email")

    def mutate(user: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        new = dict(changes)
        role = new.pop("role", None)
        if role is not None and role != user.get("role"):
            raise ValidationError("Role cannot be changed after account creation", field="role")
        return new or None

    user = store.modify(USERS, user_id, mutate, missing=UserNotFound)
    logger.info(f"Profile {user_id} updated: {sorted(changes)}")
    return user


def delete_user(store: DocumentStore, user_id: str) -> bool:
    user = get_user(store, user_id)
    if user.get("role") == "student" and user.get("room_id"):
        if store.get("room", user["room_id"]) is not None:
            unassign_student(store, user["room_id"], user_id)
    store.delete(USERS, user_id)
    logger.info(f"Removed {user.get('role')} account {user_id}")
    return True
