from typing import Any, Dict, List, Union

from pymongo import DESCENDING

from database import DocumentStore
from exceptions import AnnouncementNotFound
from logging_config import get_logger
from notifications import notify_global
from schemas import AnnouncementCreate, AnnouncementUpdate

logger = get_logger("announcements")

ANNOUNCEMENTS = "announcement"


def get_announcement(store: DocumentStore, announcement_id: str) -> Dict[str, Any]:
    doc = store.get(ANNOUNCEMENTS, announcement_id)
    if doc is None:
        raise AnnouncementNotFound(announcement_id)
    return doc


def create_announcement(
    store: DocumentStore,
    data: Union[AnnouncementCreate, Dict[str, Any]],
    created_by: str,
    notify: bool = True,
) -> Dict[str, Any]:
    """Publish an announcement; by default everyone also gets a notification"""
    if not isinstance(data, AnnouncementCreate):
        data = AnnouncementCreate(**data)
    doc = store.create(ANNOUNCEMENTS, {**data.model_dump(), "created_by": created_by})
    if notify:
        notify_global(store, {
            "title": "Important Announcement" if doc["important"] else "New Announcement",
            "message": doc["title"],
            "type": "announcement",
        })
    logger.info(f"Announcement {doc['id']} '{doc['title']}' published by {created_by}")
    return doc


def update_announcement(
    store: DocumentStore,
    announcement_id: str,
    patch: Union[AnnouncementUpdate, Dict[str, Any]],
) -> Dict[str, Any]:
    if not isinstance(patch, AnnouncementUpdate):
        patch = AnnouncementUpdate(**patch)
    changes = patch.model_dump(exclude_none=True)
    if not changes:
        return get_announcement(store, announcement_id)
    doc = store.update(ANNOUNCEMENTS, announcement_id, changes)
    if doc is None:
        raise AnnouncementNotFound(announcement_id)
    return doc


def delete_announcement(store: DocumentStore, announcement_id: str) -> bool:
    if not store.delete(ANNOUNCEMENTS, announcement_id):
        raise AnnouncementNotFound(announcement_id)
    logger.info(f"Announcement {announcement_id} deleted")
    return True


def list_announcements(store: DocumentStore, limit: int = 0) -> List[Dict[str, Any]]:
    return store.query(ANNOUNCEMENTS, sort=[("created_at", DESCENDING), ("_id", DESCENDING)], limit=limit)
