import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import announcements
import complaints
import fees
import notifications
import occupancy
import users
from auth import AuthUser, get_current_user, require_admin
from chatbot import respond
from config import settings
from database import DocumentStore, ensure_indexes, get_database, get_store
from exceptions import AuthorizationError, HostelError, ValidationError, status_code_for
from logging_config import generate_request_id, get_request_id, logger, set_request_id
from schemas import (
    User, UserUpdate, RoomCreate, RoomUpdate, AssignStudentRequest, BulkAssignRequest,
    FeeCreate, MarkPaidRequest, PayRequest, FeeNoticeRequest,
    ComplaintCreate, AssignComplaintRequest, ResolveComplaintRequest,
    AnnouncementCreate, AnnouncementUpdate,
    NotificationPayload, RoleNotificationRequest, MessageRequest,
    ChatRequest, ChatResponse,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = get_database()
    if db is None:
        logger.warning("DATABASE_URL not set; store-backed routes will answer 503")
    else:
        try:
            ensure_indexes(DocumentStore(db))
        except HostelError as e:
            logger.error(f"Could not create indexes: {e.message}")
    yield


# ---------------------------------------------------------------------------------
# App & CORS
# ---------------------------------------------------------------------------------
app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    set_request_id(request.headers.get("X-Request-ID") or generate_request_id())
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(f"HTTP {request.method} {request.url.path} - {response.status_code} ({duration_ms:.2f}ms)")
    response.headers["X-Request-ID"] = get_request_id()
    return response


@app.exception_handler(HostelError)
async def hostel_error_handler(request: Request, exc: HostelError):
    status = status_code_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


# ---------------------------------------------------------------------------------
# Utility
# ---------------------------------------------------------------------------------

def ensure_self_or_admin(user: AuthUser, owner_id: Optional[str]) -> None:
    if user.role != "admin" and user.id != owner_id:
        raise AuthorizationError("Forbidden")


# ---------------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------------
@app.get("/")
def root():
    return {"message": "Hostel Management API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        db = get_database()
        if db is not None:
            response["database_name"] = db.name
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ---------------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------------
@app.get("/api/auth/me", response_model=AuthUser)
def me(user: AuthUser = Depends(get_current_user)):
    return user


# ---------------------------------------------------------------------------------
# Users (admins manage accounts; everyone can view and edit their own profile)
# ---------------------------------------------------------------------------------
@app.post("/api/users")
def create_user(payload: User, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return users.create_user(store, payload)


@app.get("/api/users")
def list_users(role: Optional[str] = None, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return users.list_users(store, role)


@app.get("/api/users/{user_id}")
def get_user(user_id: str, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    ensure_self_or_admin(user, user_id)
    return users.get_user(store, user_id)


@app.put("/api/users/{user_id}")
def update_user(user_id: str, payload: UserUpdate, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    ensure_self_or_admin(user, user_id)
    return users.update_profile(store, user_id, payload)


@app.delete("/api/users/{user_id}")
def delete_user(user_id: str, user: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    if user_id == user.id:
        raise ValidationError("You cannot delete your own account")
    return {"deleted": users.delete_user(store, user_id)}


# ---------------------------------------------------------------------------------
# Rooms & occupancy
# ---------------------------------------------------------------------------------
@app.post("/api/rooms")
def create_room(payload: RoomCreate, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return occupancy.create_room(store, payload)


@app.get("/api/rooms")
def list_rooms(
    status: Optional[str] = None,
    available: bool = False,
    block: Optional[str] = None,
    _: AuthUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return occupancy.list_rooms(store, status=status, available_only=available, block=block)


@app.get("/api/rooms/stats")
def room_stats(_: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return occupancy.room_stats(store)


@app.get("/api/rooms/{room_id}")
def get_room(room_id: str, _: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return occupancy.get_room(store, room_id)


@app.put("/api/rooms/{room_id}")
def update_room(room_id: str, payload: RoomUpdate, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return occupancy.update_room(store, room_id, payload)


@app.delete("/api/rooms/{room_id}")
def delete_room(room_id: str, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return {"deleted": occupancy.delete_room(store, room_id)}


@app.get("/api/rooms/{room_id}/members")
def room_members(room_id: str, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return occupancy.room_members(store, room_id)


@app.post("/api/rooms/{room_id}/assign")
def assign_student(room_id: str, body: AssignStudentRequest, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    # Students may only book a room for themselves
    ensure_self_or_admin(user, body.student_id)
    return occupancy.assign_student(store, room_id, body.student_id)


@app.post("/api/rooms/{room_id}/bulk-assign")
def bulk_assign(room_id: str, body: BulkAssignRequest, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return occupancy.bulk_assign(store, room_id, body.student_ids)


@app.post("/api/rooms/{room_id}/unassign")
def unassign_student(room_id: str, body: AssignStudentRequest, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    ensure_self_or_admin(user, body.student_id)
    return occupancy.unassign_student(store, room_id, body.student_id)


# ---------------------------------------------------------------------------------
# Fees & payments
# ---------------------------------------------------------------------------------
@app.post("/api/fees")
def create_fee(payload: FeeCreate, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return fees.create_fee(store, payload.student_id, payload.amount, payload.due_date, payload.description)


@app.get("/api/fees")
def list_fees(
    student_id: Optional[str] = None,
    status: Optional[str] = None,
    user: AuthUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    if user.role != "admin":
        student_id = user.id
    return fees.list_fees(store, student_id=student_id, status=status)


@app.get("/api/fees/summary")
def fee_summary(student_id: Optional[str] = None, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    if user.role != "admin":
        student_id = user.id
    return fees.fee_summary(store, student_id=student_id)


@app.post("/api/fees/refresh-overdue")
def refresh_overdue(_: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return {"updated": fees.refresh_overdue(store)}


@app.post("/api/fees/notice")
def fee_notice(body: FeeNoticeRequest, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return fees.publish_fee_notice(store, body.title, body.message)


@app.get("/api/fees/{fee_id}")
def get_fee(fee_id: str, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    fee = fees.get_fee(store, fee_id)
    ensure_self_or_admin(user, fee["student_id"])
    return fee


@app.post("/api/fees/{fee_id}/mark-paid")
def mark_fee_paid(fee_id: str, body: MarkPaidRequest, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return fees.mark_paid(store, fee_id, body.transaction_id)


@app.post("/api/fees/{fee_id}/mark-overdue")
def mark_fee_overdue(fee_id: str, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return fees.mark_overdue(store, fee_id)


@app.post("/api/fees/{fee_id}/pay")
def pay_fee(fee_id: str, body: PayRequest, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    ensure_self_or_admin(user, fees.get_fee(store, fee_id)["student_id"])
    return fees.record_payment(store, fee_id, body.method)


@app.post("/api/fees/{fee_id}/remind")
def remind_fee(fee_id: str, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return fees.send_reminder(store, fee_id)


# ---------------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------------
@app.post("/api/complaints")
def create_complaint(payload: ComplaintCreate, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    if user.role == "student":
        student_id = user.id
        ensure_self_or_admin(user, payload.student_id or user.id)
    else:
        student_id = payload.student_id
        if not student_id:
            raise ValidationError("student_id is required", field="student_id")
    return complaints.create_complaint(store, student_id, payload)


@app.get("/api/complaints")
def list_complaints(status: Optional[str] = None, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    student_id = None if user.role == "admin" else user.id
    return complaints.list_complaints(store, student_id=student_id, status=status)


@app.get("/api/complaints/stats")
def complaint_stats(_: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return complaints.complaint_stats(store)


@app.get("/api/complaints/{complaint_id}")
def get_complaint(complaint_id: str, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    complaint = complaints.get_complaint(store, complaint_id)
    ensure_self_or_admin(user, complaint["student_id"])
    return complaint


@app.post("/api/complaints/{complaint_id}/assign")
def assign_complaint(complaint_id: str, body: AssignComplaintRequest, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return complaints.assign_complaint(store, complaint_id, body.assignee)


@app.post("/api/complaints/{complaint_id}/resolve")
def resolve_complaint(complaint_id: str, body: ResolveComplaintRequest, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return complaints.resolve_complaint(store, complaint_id, body.resolution)


# ---------------------------------------------------------------------------------
# Announcements
# ---------------------------------------------------------------------------------
@app.get("/api/announcements")
def list_announcements(limit: int = Query(0, ge=0, le=500), _: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return announcements.list_announcements(store, limit=limit)


@app.post("/api/announcements")
def create_announcement(payload: AnnouncementCreate, user: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return announcements.create_announcement(store, payload, created_by=user.name)


@app.put("/api/announcements/{announcement_id}")
def update_announcement(announcement_id: str, payload: AnnouncementUpdate, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return announcements.update_announcement(store, announcement_id, payload)


@app.delete("/api/announcements/{announcement_id}")
def delete_announcement(announcement_id: str, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return {"deleted": announcements.delete_announcement(store, announcement_id)}


# ---------------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------------
@app.get("/api/notifications")
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(0, ge=0, le=500),
    user: AuthUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return notifications.list_for_user(store, user.id, user.role, unread_only=unread_only, limit=limit)


@app.get("/api/notifications/unread-count")
def unread_count(user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return {"unread": notifications.unread_count(store, user.id, user.role)}


@app.post("/api/notifications/read-all")
def mark_all_read(user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return {"updated": notifications.mark_all_read(store, user.id, user.role)}


@app.post("/api/notifications/{notification_id}/read")
def mark_read(notification_id: str, user: AuthUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return notifications.mark_read(store, notification_id, user.id, user.role)


@app.post("/api/notifications/user/{user_id}")
def notify_user(user_id: str, payload: NotificationPayload, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    users.get_user(store, user_id)
    return notifications.notify_user(store, user_id, payload)


@app.post("/api/notifications/role")
def notify_role(payload: RoleNotificationRequest, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return notifications.notify_role(store, payload.role, NotificationPayload(**payload.model_dump(exclude={"role"})))


@app.post("/api/notifications/global")
def notify_global(payload: NotificationPayload, _: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return notifications.notify_global(store, payload)


@app.post("/api/notifications/message")
def send_message(body: MessageRequest, user: AuthUser = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    preview = body.message[:50] + ("..." if len(body.message) > 50 else "")
    created = notifications.notify_users(store, body.user_ids, {
        "title": body.subject,
        "message": f"{user.name or 'Admin'} sent you a message: {preview}",
        "type": "message",
    })
    return {"sent": len(created)}


# ---------------------------------------------------------------------------------
# Assistant
# ---------------------------------------------------------------------------------
@app.post("/api/assistant/chat", response_model=ChatResponse)
def chat(body: ChatRequest, user: AuthUser = Depends(get_current_user)):
    return ChatResponse(reply=respond(body.message, user.name))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
