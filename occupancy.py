"""
Occupancy ledger.

The room's `students` list is the authoritative occupant set; `occupied` is
always len(students) and the student's `room_id` is a back-pointer written
right after the seat is claimed. Seat claims and releases are single
optimistic writes on the room document, so two concurrent assignments can't
both pass the capacity check against a stale count.

Room status: `maintenance` is sticky (admin edit on an empty room only);
otherwise a room is `occupied` when full and `available` while it has space.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pymongo import ASCENDING

from database import DocumentStore, to_object_id
from exceptions import (
    CapacityExceeded, RoomNotFound, RoomOccupied, UserNotFound, ValidationError,
)
from logging_config import get_logger
from notifications import notify_user
from schemas import RoomCreate, RoomUpdate

logger = get_logger("occupancy")

ROOMS = "room"
USERS = "user"


def derive_status(occupied: int, capacity: int, current: Optional[str] = None) -> str:
    if current == "maintenance":
        return "maintenance"
    return "occupied" if occupied >= capacity else "available"


def _clean_amenities(amenities: Iterable[str]) -> List[str]:
    seen = []
    for a in amenities:
        a = a.strip()
        if a and a not in seen:
            seen.append(a)
    return seen


def _room_number_taken(store: DocumentStore, room_number: str, exclude_id: Optional[str] = None) -> bool:
    return any(r["id"] != exclude_id for r in store.query(ROOMS, {"room_number": room_number}))


def get_room(store: DocumentStore, room_id: str) -> Dict[str, Any]:
    room = store.get(ROOMS, room_id)
    if room is None:
        raise RoomNotFound(room_id)
    return room


def _get_student(store: DocumentStore, student_id: str) -> Dict[str, Any]:
    user = store.get(USERS, student_id)
    if user is None:
        raise UserNotFound(student_id)
    if user.get("role") != "student":
        raise ValidationError(f"User {student_id} is not a student", field="student_id")
    return user


# ---------------------------------------------------------------------------
# Room inventory
# ---------------------------------------------------------------------------

def create_room(store: DocumentStore, data: Union[RoomCreate, Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(data, RoomCreate):
        data = RoomCreate(**data)
    room_number = data.room_number.strip()
    if _room_number_taken(store, room_number):
        raise ValidationError(f"Room {room_number} already exists", field="room_number")

    doc = data.model_dump()
    doc.update({
        "room_number": room_number,
        "block": data.block.strip(),
        "amenities": _clean_amenities(data.amenities),
        "occupied": 0,
        "students": [],
    })
    room = store.create(ROOMS, doc)
    logger.info(f"Room {room_number} created (block {room['block']}, capacity {room['capacity']})")
    return room


def update_room(store: DocumentStore, room_id: str, patch: Union[RoomUpdate, Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(patch, RoomUpdate):
        patch = RoomUpdate(**patch)
    changes = patch.model_dump(exclude_none=True)

    if "room_number" in changes:
        changes["room_number"] = changes["room_number"].strip()
        if _room_number_taken(store, changes["room_number"], exclude_id=room_id):
            raise ValidationError(f"Room {changes['room_number']} already exists", field="room_number")
    if "amenities" in changes:
        changes["amenities"] = _clean_amenities(changes["amenities"])

    def mutate(room: Dict[str, Any]) -> Dict[str, Any]:
        new = dict(changes)
        occupied = len(room.get("students") or [])
        capacity = new.get("capacity", room["capacity"])
        if capacity < occupied:
            raise ValidationError(
                f"Capacity cannot be lower than current occupancy ({occupied})", field="capacity"
            )
        requested = new.pop("status", None)
        if requested == "maintenance":
            if occupied:
                raise ValidationError("Only an empty room can be put under maintenance", field="status")
            new["status"] = "maintenance"
        else:
            base = "available" if requested == "available" else room.get("status")
            new["status"] = derive_status(occupied, capacity, base)
        new["occupied"] = occupied
        return new

    room = store.modify(ROOMS, room_id, mutate, missing=RoomNotFound)
    logger.info(f"Room {room['room_number']} updated: {sorted(changes)}")
    return room


def delete_room(store: DocumentStore, room_id: str) -> bool:
    room = get_room(store, room_id)
    if room.get("occupied", 0) > 0:
        logger.warning(f"Refused to delete occupied room {room['room_number']}")
        raise RoomOccupied(room["room_number"], room["occupied"])

    if not store.delete(ROOMS, room_id, guard={"occupied": 0}):
        # Someone moved in (or the room vanished) between the read and the delete
        current = store.get(ROOMS, room_id)
        if current is None:
            raise RoomNotFound(room_id)
        raise RoomOccupied(current["room_number"], current.get("occupied", 0))

    logger.info(f"Room {room['room_number']} deleted")
    return True


def list_rooms(
    store: DocumentStore,
    status: Optional[str] = None,
    available_only: bool = False,
    block: Optional[str] = None,
) -> List[Dict[str, Any]]:
    filt: Dict[str, Any] = {}
    if status:
        filt["status"] = status
    if available_only:
        filt["status"] = "available"
    if block:
        filt["block"] = block
    return store.query(ROOMS, filt, sort=[("block", ASCENDING), ("room_number", ASCENDING)])


def room_members(store: DocumentStore, room_id: str) -> List[Dict[str, Any]]:
    room = get_room(store, room_id)
    ids = room.get("students") or []
    if not ids:
        return []
    oids = [oid for oid in (to_object_id(i) for i in ids) if oid is not None]
    by_id = {u["id"]: u for u in store.query(USERS, {"_id": {"$in": oids}})}
    return [by_id[i] for i in ids if i in by_id]


def room_stats(store: DocumentStore) -> Dict[str, Any]:
    rooms = store.query(ROOMS)
    total_capacity = sum(r.get("capacity", 0) for r in rooms)
    total_occupied = sum(r.get("occupied", 0) for r in rooms)
    return {
        "total_rooms": len(rooms),
        "available": sum(1 for r in rooms if r.get("status") == "available"),
        "occupied": sum(1 for r in rooms if r.get("status") == "occupied"),
        "maintenance": sum(1 for r in rooms if r.get("status") == "maintenance"),
        "total_capacity": total_capacity,
        "total_occupied": total_occupied,
        "occupancy_rate": round(total_occupied / total_capacity, 4) if total_capacity else 0.0,
    }


# ---------------------------------------------------------------------------
# Seat bookkeeping
# ---------------------------------------------------------------------------

def _claim_seats(store: DocumentStore, room_id: str, student_ids: List[str]) -> Tuple[Dict[str, Any], List[str]]:
    """Add students to the room in one write; returns the room and the ids actually added"""
    added: List[str] = []

    def mutate(room: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        current = list(room.get("students") or [])
        new_ids = [s for s in student_ids if s not in current]
        added[:] = new_ids
        if not new_ids:
            return None
        if room.get("status") == "maintenance":
            raise ValidationError(f"Room {room['room_number']} is under maintenance", field="room_id")
        if len(current) + len(new_ids) > room["capacity"]:
            raise CapacityExceeded(room["room_number"], room["capacity"], len(current) + len(new_ids))
        students = current + new_ids
        return {
            "students": students,
            "occupied": len(students),
            "status": derive_status(len(students), room["capacity"], room.get("status")),
        }

    try:
        room = store.modify(ROOMS, room_id, mutate, missing=RoomNotFound)
    except CapacityExceeded:
        logger.warning(f"Capacity exceeded assigning {len(student_ids)} student(s) to room {room_id}")
        raise
    return room, list(added)


def _release_seats(store: DocumentStore, room_id: str, student_ids: List[str]) -> Dict[str, Any]:
    def mutate(room: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        current = list(room.get("students") or [])
        students = [s for s in current if s not in student_ids]
        if len(students) == len(current):
            return None
        return {
            "students": students,
            "occupied": len(students),
            "status": derive_status(len(students), room["capacity"], room.get("status")),
        }

    return store.modify(ROOMS, room_id, mutate, missing=RoomNotFound)


def _set_pointer(store: DocumentStore, student_id: str, room_id: Optional[str]) -> None:
    store.modify(
        USERS,
        student_id,
        lambda u: {"room_id": room_id} if u.get("room_id") != room_id else None,
        missing=UserNotFound,
    )


def _clear_pointer(store: DocumentStore, student_id: str, room_id: str) -> None:
    if store.get(USERS, student_id) is None:
        return
    store.modify(
        USERS,
        student_id,
        lambda u: {"room_id": None} if u.get("room_id") == room_id else None,
        missing=UserNotFound,
    )


def _move_in(store: DocumentStore, room_id: str, students: List[Dict[str, Any]]) -> None:
    """
    Point the students at room_id and release their previous rooms.

    Seats in room_id are already claimed by the caller. If any step fails,
    released seats are claimed back and pointers restored before the error
    propagates, so each student is left where they were.
    """
    pointed: List[Tuple[str, Optional[str]]] = []
    released: List[Tuple[str, str]] = []
    try:
        for student in students:
            sid, prior = student["id"], student.get("room_id")
            _set_pointer(store, sid, room_id)
            pointed.append((sid, prior))
            if prior and prior != room_id and store.get(ROOMS, prior) is not None:
                _release_seats(store, prior, [sid])
                released.append((sid, prior))
    except Exception:
        for sid, prior in reversed(released):
            _claim_seats(store, prior, [sid])
        for sid, prior in reversed(pointed):
            _set_pointer(store, sid, prior)
        raise


def assign_student(store: DocumentStore, room_id: str, student_id: str) -> Dict[str, Any]:
    student = _get_student(store, student_id)
    room, added = _claim_seats(store, room_id, [student_id])
    try:
        _move_in(store, room_id, [student])
    except Exception:
        if added:
            logger.error(f"Rolling back seat for student {student_id} in room {room['room_number']}")
            _release_seats(store, room_id, added)
        raise

    if added:
        logger.info(f"Student {student_id} assigned to room {room['room_number']} ({room['occupied']}/{room['capacity']})")
    return room


def bulk_assign(store: DocumentStore, room_id: str, student_ids: Iterable[str]) -> Dict[str, Any]:
    ids: List[str] = []
    for sid in student_ids:
        if sid and sid not in ids:
            ids.append(sid)
    if not ids:
        raise ValidationError("Select at least one student", field="student_ids")
    students = {sid: _get_student(store, sid) for sid in ids}

    room, added = _claim_seats(store, room_id, ids)
    try:
        _move_in(store, room_id, [students[sid] for sid in added])
    except Exception:
        logger.error(f"Rolling back bulk assignment of {len(added)} student(s) to room {room['room_number']}")
        _release_seats(store, room_id, added)
        raise

    for sid in added:
        notify_user(store, sid, {
            "title": "Room Assignment",
            "message": f"You have been assigned to Room {room['room_number']}, Block {room['block']}",
            "type": "room-assignment",
        })
    logger.info(f"{len(added)} students assigned to room {room['room_number']}")
    return room


def unassign_student(store: DocumentStore, room_id: str, student_id: str) -> Dict[str, Any]:
    room = _release_seats(store, room_id, [student_id])
    _clear_pointer(store, student_id, room_id)
    logger.info(f"Student {student_id} unassigned from room {room['room_number']}")
    return room
