"""
One-time demo data for a fresh deployment.

Run once after provisioning the database:

    python seed.py

Each collection is only filled when it is empty, so running it again is
harmless. Request handlers never call this.
"""

from typing import Dict

from announcements import create_announcement
from auth import issue_token
from database import DocumentStore, ensure_indexes, get_store
from logging_config import logger
from occupancy import create_room
from users import create_user

SAMPLE_ROOMS = [
    {"room_number": "101", "block": "A", "floor": 1, "capacity": 1, "type": "single",
     "amenities": ["Attached Bathroom", "Study Table", "Wardrobe"]},
    {"room_number": "102", "block": "A", "floor": 1, "capacity": 2, "type": "double",
     "amenities": ["Study Table", "Wardrobe"]},
    {"room_number": "201", "block": "B", "floor": 2, "capacity": 3, "type": "triple",
     "amenities": ["Balcony", "Study Table"]},
    {"room_number": "202", "block": "B", "floor": 2, "capacity": 2, "type": "double",
     "amenities": ["Study Table"], "status": "maintenance"},
]

SAMPLE_ANNOUNCEMENTS = [
    {"title": "Welcome to the new semester",
     "content": "Room allocations for the new semester are open. Check the Room Booking page.",
     "important": False},
    {"title": "Water supply interruption",
     "content": "Water supply will be interrupted on Saturday between 10 AM and 2 PM for tank cleaning.",
     "important": True},
]

SAMPLE_USERS = [
    {"name": "Hostel Admin", "email": "admin@hostel.ac.in", "role": "admin",
     "staff_id": "STF001", "department": "Hostel Office"},
    {"name": "Demo Student", "email": "student@hostel.ac.in", "role": "student",
     "student_id": "STU001", "course": "B.Tech Computer Science", "year": 1},
]


def seed_sample_data(store: DocumentStore) -> Dict[str, int]:
    """Fill empty collections with demo records; returns how many were inserted per collection"""
    ensure_indexes(store)
    inserted = {"user": 0, "room": 0, "announcement": 0}

    if store.count("user") == 0:
        for data in SAMPLE_USERS:
            create_user(store, data)
            inserted["user"] += 1

    if store.count("room") == 0:
        for data in SAMPLE_ROOMS:
            create_room(store, data)
            inserted["room"] += 1

    if store.count("announcement") == 0:
        for data in SAMPLE_ANNOUNCEMENTS:
            create_announcement(store, data, created_by="Hostel Admin", notify=False)
            inserted["announcement"] += 1

    return inserted


if __name__ == "__main__":
    store = get_store()
    counts = seed_sample_data(store)
    logger.info(f"Seeded {counts}")
    for user in store.query("user"):
        print(f"{user['role']:8} {user['email']:28} token: {issue_token(user)}")
