"""
Complaint workflow: pending -> in-progress -> resolved, with resolve also
allowed straight from pending. Nothing moves once resolved.
"""

from typing import Any, Dict, List, Optional, Union

from database import DocumentStore, utcnow
from exceptions import ComplaintNotFound, UserNotFound, ValidationError
from lifecycle import COMPLAINT_LIFECYCLE
from logging_config import get_logger
from notifications import notify_role, notify_user
from schemas import ComplaintCreate

logger = get_logger("complaints")

COMPLAINTS = "complaint"
USERS = "user"
ROOMS = "room"
STATUS_ORDER = {"pending": 0, "in-progress": 1, "resolved": 2}


def get_complaint(store: DocumentStore, complaint_id: str) -> Dict[str, Any]:
    doc = store.get(COMPLAINTS, complaint_id)
    if doc is None:
        raise ComplaintNotFound(complaint_id)
    return doc


def _required(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field.capitalize()} is required", field=field)
    return value


def create_complaint(store: DocumentStore, student_id: str, data: Union[ComplaintCreate, Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(data, ComplaintCreate):
        data = ComplaintCreate(**data)
    student = store.get(USERS, student_id)
    if student is None:
        raise UserNotFound(student_id)

    room_number = (data.room_number or "").strip()
    if not room_number and student.get("room_id"):
        room = store.get(ROOMS, student["room_id"])
        room_number = room["room_number"] if room else ""

    doc = store.create(COMPLAINTS, {
        "student_id": student_id,
        "student_name": student.get("name"),
        "room_number": room_number or "Unknown",
        "title": _required(data.title, "title"),
        "description": _required(data.description, "description"),
        "category": data.category,
        "priority": data.priority,
        "status": "pending",
        "assigned_to": None,
        "resolution": None,
        "resolved_at": None,
    })
    notify_role(store, "admin", {
        "title": "New Student Complaint",
        "message": f"{doc['student_name'] or 'A student'} from Room {doc['room_number']} reported: {doc['title']}",
        "type": "complaint",
        "link": f"/complaints?id={doc['id']}",
    })
    logger.info(f"Complaint {doc['id']} filed by student {student_id} ({doc['priority']})")
    return doc


def assign_complaint(store: DocumentStore, complaint_id: str, assignee: str) -> Dict[str, Any]:
    assignee = _required(assignee, "assignee")

    def mutate(complaint: Dict[str, Any]) -> Dict[str, Any]:
        COMPLAINT_LIFECYCLE.check(complaint["status"], "in-progress")
        return {"status": "in-progress", "assigned_to": assignee}

    doc = store.modify(COMPLAINTS, complaint_id, mutate, missing=ComplaintNotFound)
    notify_user(store, doc["student_id"], {
        "title": "Complaint Update",
        "message": f'Your complaint regarding "{doc["title"]}" is now being handled by {assignee}.',
        "type": "complaint",
    })
    logger.info(f"Complaint {complaint_id} assigned to {assignee}")
    return doc


def resolve_complaint(store: DocumentStore, complaint_id: str, resolution: str) -> Dict[str, Any]:
    resolution = _required(resolution, "resolution")

    def mutate(complaint: Dict[str, Any]) -> Dict[str, Any]:
        COMPLAINT_LIFECYCLE.check(complaint["status"], "resolved")
        return {"status": "resolved", "resolution": resolution, "resolved_at": utcnow()}

    doc = store.modify(COMPLAINTS, complaint_id, mutate, missing=ComplaintNotFound)
    notify_user(store, doc["student_id"], {
        "title": "Complaint Resolved",
        "message": f'Your complaint regarding "{doc["title"]}" has been resolved.',
        "type": "complaint",
    })
    logger.info(f"Complaint {complaint_id} resolved")
    return doc


def list_complaints(
    store: DocumentStore,
    student_id: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Pending first, then in progress, then resolved; newest first within each"""
    filt: Dict[str, Any] = {}
    if student_id:
        filt["student_id"] = student_id
    if status:
        filt["status"] = status
    docs = store.query(COMPLAINTS, filt)
    docs.sort(key=lambda d: d["id"], reverse=True)
    docs.sort(key=lambda d: STATUS_ORDER.get(d["status"], len(STATUS_ORDER)))
    return docs


def complaint_stats(store: DocumentStore) -> Dict[str, int]:
    return {
        status: store.count(COMPLAINTS, {"status": status})
        for status in STATUS_ORDER
    }
