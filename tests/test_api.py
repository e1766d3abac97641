"""
HTTP API Tests
Tests for: health, identity, role guards, error mapping, end-to-end flows
"""
import pytest

import fees
import occupancy


@pytest.fixture
def student(make_student):
    return make_student(name="Meera Iyer")


class TestHealth:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"message": "Hostel Management API running"}

    def test_database_status_without_database(self, client):
        data = client.get("/test").json()

        assert data["backend"] == "✅ Running"
        assert data["database_url"] == "❌ Not Set"

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"


class TestIdentity:
    def test_missing_token(self, client):
        response = client.get("/api/rooms")

        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_FAILED"

    def test_garbage_token(self, client):
        response = client.get("/api/rooms", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_me(self, client, student, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers(student))

        assert response.status_code == 200
        assert response.json()["id"] == student["id"]
        assert response.json()["role"] == "student"

    def test_token_for_deleted_user(self, client, store, student, auth_headers):
        headers = auth_headers(student)
        store.delete("user", student["id"])

        assert client.get("/api/auth/me", headers=headers).status_code == 401


class TestRoleGuards:
    def test_student_cannot_create_rooms(self, client, student, auth_headers):
        response = client.post("/api/rooms", json={"room_number": "X1", "block": "A", "capacity": 2},
                               headers=auth_headers(student))

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_AUTHORIZED"

    def test_student_cannot_book_for_someone_else(self, client, make_room, make_student, student, auth_headers):
        room = make_room()
        other = make_student()

        response = client.post(f"/api/rooms/{room['id']}/assign", json={"student_id": other["id"]},
                               headers=auth_headers(student))

        assert response.status_code == 403

    def test_student_sees_only_own_fees(self, client, store, make_student, student, auth_headers):
        other = make_student()
        fees.create_fee(store, other["id"], 1000, "2026-12-01")
        mine = fees.create_fee(store, student["id"], 2000, "2026-12-01")

        response = client.get("/api/fees", params={"student_id": other["id"]}, headers=auth_headers(student))

        assert [f["id"] for f in response.json()] == [mine["id"]]


class TestRoomFlow:
    def test_student_books_a_room(self, client, admin, student, auth_headers):
        created = client.post("/api/rooms", json={"room_number": "A-101", "block": "A", "capacity": 1,
                                                  "type": "single"}, headers=auth_headers(admin))
        assert created.status_code == 200
        room_id = created.json()["id"]

        booked = client.post(f"/api/rooms/{room_id}/assign", json={"student_id": student["id"]},
                             headers=auth_headers(student))

        assert booked.status_code == 200
        assert booked.json()["occupied"] == 1
        assert booked.json()["status"] == "occupied"

    def test_full_room_answers_conflict(self, client, store, make_room, make_student, student, auth_headers):
        room = make_room(capacity=1)
        occupancy.assign_student(store, room["id"], make_student()["id"])

        response = client.post(f"/api/rooms/{room['id']}/assign", json={"student_id": student["id"]},
                               headers=auth_headers(student))

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "CAPACITY_EXCEEDED"
        assert body["details"]["capacity"] == 1

    def test_unknown_room(self, client, admin, auth_headers):
        response = client.get("/api/rooms/64b000000000000000000000", headers=auth_headers(admin))

        assert response.status_code == 404
        assert response.json()["code"] == "ROOM_NOT_FOUND"

    def test_delete_occupied_room(self, client, store, admin, make_room, student, auth_headers):
        room = make_room()
        occupancy.assign_student(store, room["id"], student["id"])

        response = client.delete(f"/api/rooms/{room['id']}", headers=auth_headers(admin))

        assert response.status_code == 409
        assert response.json()["code"] == "ROOM_OCCUPIED"


class TestFeeFlow:
    def test_issue_and_pay(self, client, admin, student, auth_headers):
        created = client.post("/api/fees", json={"student_id": student["id"], "amount": 2500,
                                                 "due_date": "2026-12-01"}, headers=auth_headers(admin))
        assert created.status_code == 200
        fee_id = created.json()["id"]

        paid = client.post(f"/api/fees/{fee_id}/pay", json={"method": "upi"}, headers=auth_headers(student))
        assert paid.status_code == 200
        assert paid.json()["status"] == "paid"

        again = client.post(f"/api/fees/{fee_id}/pay", json={"method": "upi"}, headers=auth_headers(student))
        assert again.status_code == 409
        assert again.json()["code"] == "INVALID_TRANSITION"

    def test_missing_due_date(self, client, admin, student, auth_headers):
        response = client.post("/api/fees", json={"student_id": student["id"], "amount": 2500},
                               headers=auth_headers(admin))

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "due_date"}


class TestNotificationFlow:
    def test_announcement_reaches_students(self, client, admin, student, auth_headers):
        client.post("/api/announcements", json={"title": "Fire drill", "content": "Friday 4 PM"},
                    headers=auth_headers(admin))

        count = client.get("/api/notifications/unread-count", headers=auth_headers(student)).json()
        assert count == {"unread": 1}

        listed = client.get("/api/notifications", headers=auth_headers(student)).json()
        assert listed[0]["title"] == "New Announcement"
        assert listed[0]["message"] == "Fire drill"

        assert client.post("/api/notifications/read-all", headers=auth_headers(student)).json() == {"updated": 1}
        assert client.get("/api/notifications/unread-count", headers=auth_headers(student)).json() == {"unread": 0}
        # the admin's own read state is untouched
        assert client.get("/api/notifications/unread-count", headers=auth_headers(admin)).json() == {"unread": 1}

    def test_direct_message(self, client, admin, student, auth_headers):
        response = client.post("/api/notifications/message", json={
            "user_ids": [student["id"], student["id"]],
            "subject": "Room inspection",
            "message": "Please keep your room ready for inspection on Monday.",
        }, headers=auth_headers(admin))

        assert response.json() == {"sent": 1}
        [note] = client.get("/api/notifications", headers=auth_headers(student)).json()
        assert note["message"].startswith("Hostel Admin sent you a message:")


class TestAssistant:
    def test_greets_caller_by_name(self, client, student, auth_headers):
        response = client.post("/api/assistant/chat", json={"message": "Hi!"}, headers=auth_headers(student))

        assert response.json() == {"reply": "Hello Meera Iyer! How can I assist you today?"}
