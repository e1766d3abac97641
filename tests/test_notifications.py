"""
Unit Tests for Notifications
Tests for: targeting, visibility, per-reader read state
"""
import pytest

import notifications
from exceptions import NotificationNotFound, ValidationError


class TestTargeting:
    """Each record targets exactly one audience"""

    def test_user_notification(self, store, make_student):
        student = make_student()

        doc = notifications.notify_user(store, student["id"], {"title": "Hi", "message": "Welcome"})

        assert doc["user_id"] == student["id"]
        assert doc["role"] is None
        assert doc["global"] is False
        assert doc["type"] == "info"

    def test_role_must_be_known(self, store):
        with pytest.raises(ValidationError):
            notifications.notify_role(store, "warden", {"title": "x", "message": "y"})

    def test_user_id_required(self, store):
        with pytest.raises(ValidationError):
            notifications.notify_user(store, "", {"title": "x", "message": "y"})

        assert store.count("notification") == 0

    def test_notify_users_skips_duplicates(self, store, make_student):
        a, b = make_student(), make_student()

        created = notifications.notify_users(store, [a["id"], b["id"], a["id"], ""], {
            "title": "Water cut", "message": "Tomorrow 10-12", "type": "message",
        })

        assert len(created) == 2
        assert store.count("notification") == 2


class TestVisibility:
    def test_student_sees_own_role_and_global(self, store, make_student, admin):
        student, other = make_student(), make_student()
        mine = notifications.notify_user(store, student["id"], {"title": "Mine", "message": "m"})
        notifications.notify_user(store, other["id"], {"title": "Theirs", "message": "t"})
        to_students = notifications.notify_role(store, "student", {"title": "Students", "message": "s"})
        notifications.notify_role(store, "admin", {"title": "Admins", "message": "a"})
        everyone = notifications.notify_global(store, {"title": "All", "message": "g"})

        ids = [n["id"] for n in notifications.list_for_user(store, student["id"], "student")]

        assert ids == [everyone["id"], to_students["id"], mine["id"]]

    def test_read_by_not_exposed(self, store, make_student):
        student = make_student()
        notifications.notify_global(store, {"title": "All", "message": "g"})

        [view] = notifications.list_for_user(store, student["id"], "student")

        assert "read_by" not in view
        assert view["read"] is False

    def test_limit(self, store, make_student):
        student = make_student()
        for i in range(3):
            notifications.notify_user(store, student["id"], {"title": f"N{i}", "message": "m"})

        assert len(notifications.list_for_user(store, student["id"], "student", limit=2)) == 2


class TestReadTracking:
    def test_global_read_state_is_per_user(self, store, make_student):
        a, b = make_student(), make_student()
        note = notifications.notify_global(store, {"title": "All", "message": "g"})

        notifications.mark_read(store, note["id"], a["id"], "student")

        assert notifications.unread_count(store, a["id"], "student") == 0
        assert notifications.unread_count(store, b["id"], "student") == 1
        [view_b] = notifications.list_for_user(store, b["id"], "student")
        assert view_b["read"] is False

    def test_mark_all_read(self, store, make_student):
        student, other = make_student(), make_student()
        notifications.notify_user(store, student["id"], {"title": "Mine", "message": "m"})
        notifications.notify_role(store, "student", {"title": "Students", "message": "s"})
        notifications.notify_global(store, {"title": "All", "message": "g"})

        changed = notifications.mark_all_read(store, student["id"], "student")

        assert changed == 3
        assert notifications.unread_count(store, student["id"], "student") == 0
        assert notifications.unread_count(store, other["id"], "student") == 2
        assert notifications.list_for_user(store, student["id"], "student", unread_only=True) == []

    def test_mark_read_is_idempotent(self, store, make_student):
        student = make_student()
        note = notifications.notify_user(store, student["id"], {"title": "Mine", "message": "m"})

        first = notifications.mark_read(store, note["id"], student["id"], "student")
        second = notifications.mark_read(store, note["id"], student["id"], "student")

        assert first["read"] is True
        assert second["version"] == first["version"]

    def test_cannot_read_someone_elses_notification(self, store, make_student):
        student, other = make_student(), make_student()
        note = notifications.notify_user(store, other["id"], {"title": "Private", "message": "p"})

        with pytest.raises(NotificationNotFound):
            notifications.mark_read(store, note["id"], student["id"], "student")

        assert store.get("notification", note["id"])["read"] is False

    def test_student_cannot_read_admin_broadcast(self, store, make_student):
        student = make_student()
        note = notifications.notify_role(store, "admin", {"title": "Admins", "message": "a"})

        with pytest.raises(NotificationNotFound):
            notifications.get_notification(store, note["id"], student["id"], "student")

    def test_record_matching_several_audiences_listed_once(self, store, make_student):
        student = make_student()
        store.create("notification", {
            "title": "Legacy", "message": "m", "type": "info",
            "user_id": student["id"], "role": "student", "global": True, "read": False, "read_by": [],
        })

        assert len(notifications.list_for_user(store, student["id"], "student")) == 1
        assert notifications.unread_count(store, student["id"], "student") == 1
