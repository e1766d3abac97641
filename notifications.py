"""
Notification fan-out and read tracking.

A notification record targets exactly one of: a user (`user_id`), a role
(`role`) or everybody (`global`). User-targeted records keep a single `read`
flag. Role and global records are shared, so each reader is added to
`read_by` instead and `read` is projected per caller when listing.
"""

from typing import Any, Dict, Iterable, List, Union

from pymongo import DESCENDING

from database import DocumentStore, to_object_id
from exceptions import NotificationNotFound, ValidationError
from logging_config import get_logger
from schemas import NotificationPayload

logger = get_logger("notifications")

COLLECTION = "notification"
NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]
ROLES = ("student", "admin")

PayloadLike = Union[NotificationPayload, Dict[str, Any]]


def _payload(payload: PayloadLike) -> Dict[str, Any]:
    if not isinstance(payload, NotificationPayload):
        payload = NotificationPayload(**payload)
    return payload.model_dump()


def _create(store: DocumentStore, payload: PayloadLike, **target) -> Dict[str, Any]:
    data = _payload(payload)
    data.update({"user_id": None, "role": None, "global": False, "read": False, "read_by": []})
    data.update(target)
    if sum(1 for t in (data["user_id"], data["role"], data["global"]) if t) != 1:
        raise ValidationError("Notification must target exactly one of user, role or global")
    doc = store.create(COLLECTION, data)
    logger.info(f"Notification {doc['id']} '{doc['title']}' -> {_describe_target(doc)}")
    return doc


def _describe_target(doc: Dict[str, Any]) -> str:
    if doc.get("user_id"):
        return f"user {doc['user_id']}"
    if doc.get("role"):
        return f"role {doc['role']}"
    return "everyone"


def notify_user(store: DocumentStore, user_id: str, payload: PayloadLike) -> Dict[str, Any]:
    if not user_id:
        raise ValidationError("user_id is required", field="user_id")
    return _create(store, payload, user_id=user_id)


def notify_role(store: DocumentStore, role: str, payload: PayloadLike) -> Dict[str, Any]:
    if role not in ROLES:
        raise ValidationError(f"Unknown role '{role}'", field="role")
    return _create(store, payload, role=role)


def notify_global(store: DocumentStore, payload: PayloadLike) -> Dict[str, Any]:
    return _create(store, payload, **{"global": True})


def notify_users(store: DocumentStore, user_ids: Iterable[str], payload: PayloadLike) -> List[Dict[str, Any]]:
    """One record per distinct recipient"""
    seen = set()
    created = []
    for user_id in user_ids:
        if not user_id or user_id in seen:
            continue
        seen.add(user_id)
        created.append(notify_user(store, user_id, payload))
    return created


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

def visible_filter(user_id: str, role: str) -> Dict[str, Any]:
    return {"$or": [{"user_id": user_id}, {"role": role}, {"global": True}]}


def unread_filter(user_id: str, role: str) -> Dict[str, Any]:
    return {"$or": [
        {"user_id": user_id, "read": False},
        {"role": role, "read_by": {"$nin": [user_id]}},
        {"global": True, "read_by": {"$nin": [user_id]}},
    ]}


def is_visible_to(doc: Dict[str, Any], user_id: str, role: str) -> bool:
    if doc.get("user_id"):
        return doc["user_id"] == user_id
    if doc.get("role"):
        return doc["role"] == role
    return bool(doc.get("global"))


def is_read_by(doc: Dict[str, Any], user_id: str) -> bool:
    if doc.get("user_id"):
        return bool(doc.get("read"))
    return user_id in (doc.get("read_by") or [])


def _view(doc: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    view = {k: v for k, v in doc.items() if k != "read_by"}
    view["read"] = is_read_by(doc, user_id)
    return view


def list_for_user(
    store: DocumentStore,
    user_id: str,
    role: str,
    unread_only: bool = False,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    # one $or query, so a record matching several branches still comes back once
    filt = unread_filter(user_id, role) if unread_only else visible_filter(user_id, role)
    return [_view(doc, user_id) for doc in store.query(COLLECTION, filt, sort=NEWEST_FIRST, limit=limit)]


def unread_count(store: DocumentStore, user_id: str, role: str) -> int:
    return store.count(COLLECTION, unread_filter(user_id, role))


# ---------------------------------------------------------------------------
# Read tracking
# ---------------------------------------------------------------------------

def mark_read(store: DocumentStore, notification_id: str, user_id: str, role: str) -> Dict[str, Any]:
    doc = store.get(COLLECTION, notification_id)
    # Records addressed to someone else are reported as missing
    if doc is None or not is_visible_to(doc, user_id, role):
        raise NotificationNotFound(notification_id)

    if is_read_by(doc, user_id):
        return _view(doc, user_id)

    if doc.get("user_id"):
        doc = store.update(COLLECTION, notification_id, {"read": True})
    else:
        store.update_many(COLLECTION, {"_id": to_object_id(notification_id)}, add_to_set={"read_by": user_id})
        doc = store.get(COLLECTION, notification_id)
    return _view(doc, user_id)


def mark_all_read(store: DocumentStore, user_id: str, role: str) -> int:
    """Mark every record visible to the user as read; returns how many changed"""
    changed = store.update_many(COLLECTION, {"user_id": user_id, "read": False}, {"read": True})
    changed += store.update_many(
        COLLECTION,
        {"$or": [{"role": role}, {"global": True}], "read_by": {"$nin": [user_id]}},
        add_to_set={"read_by": user_id},
    )
    logger.info(f"Marked {changed} notifications read for user {user_id}")
    return changed


def get_notification(store: DocumentStore, notification_id: str, user_id: str, role: str) -> Dict[str, Any]:
    doc = store.get(COLLECTION, notification_id)
    if doc is None or not is_visible_to(doc, user_id, role):
        raise NotificationNotFound(notification_id)
    return _view(doc, user_id)
