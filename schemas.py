"""
Hostel Management System Schemas (MongoDB via Pydantic)

Each entity model name corresponds to a collection with the lowercase name
(e.g., class Room -> "room"). Entity models document what is stored; the
*Create / *Update / *Request models validate API inputs. MongoDB stores BSON
documents, so plain dates are persisted as ISO strings.
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import Optional, List, Literal
from datetime import date, datetime

Role = Literal["student", "admin"]
RoomType = Literal["single", "double", "triple"]
RoomStatus = Literal["available", "occupied", "maintenance"]
FeeStatus = Literal["pending", "paid", "overdue"]
PaymentMethod = Literal["card", "upi", "netbanking", "cash"]
ComplaintStatus = Literal["pending", "in-progress", "resolved"]
Priority = Literal["low", "medium", "high"]


# ---------------------------------
# USERS
# ---------------------------------
class User(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    role: Role = "student"
    contact_number: Optional[str] = None
    profile_picture: Optional[str] = None
    # students
    student_id: Optional[str] = None
    course: Optional[str] = None
    year: Optional[int] = Field(None, ge=1)
    parent_contact: Optional[str] = None
    address: Optional[str] = None
    room_id: Optional[str] = None
    # admins
    staff_id: Optional[str] = None
    department: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    contact_number: Optional[str] = None
    profile_picture: Optional[str] = None
    student_id: Optional[str] = None
    course: Optional[str] = None
    year: Optional[int] = Field(None, ge=1)
    parent_contact: Optional[str] = None
    address: Optional[str] = None
    staff_id: Optional[str] = None
    department: Optional[str] = None


# ---------------------------------
# ROOMS
# ---------------------------------
class Room(BaseModel):
    room_number: str
    block: str
    floor: int = 0
    capacity: int = Field(ge=1)
    occupied: int = 0
    type: RoomType = "single"
    amenities: List[str] = []
    status: RoomStatus = "available"
    students: List[str] = []  # user ids, the authoritative occupant set
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1)
    block: str = Field(..., min_length=1)
    floor: int = Field(0, ge=0)
    capacity: int = Field(1, ge=1)
    type: RoomType = "single"
    amenities: List[str] = []
    status: Literal["available", "maintenance"] = "available"


class RoomUpdate(BaseModel):
    room_number: Optional[str] = Field(None, min_length=1)
    block: Optional[str] = Field(None, min_length=1)
    floor: Optional[int] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=1)
    type: Optional[RoomType] = None
    amenities: Optional[List[str]] = None
    status: Optional[Literal["available", "maintenance"]] = None


class AssignStudentRequest(BaseModel):
    student_id: str


class BulkAssignRequest(BaseModel):
    student_ids: List[str]


# ---------------------------------
# FEES / PAYMENTS
# ---------------------------------
class Payment(BaseModel):
    transaction_id: str
    amount: float
    method: PaymentMethod
    date: datetime


class Fee(BaseModel):
    student_id: str
    amount: float = Field(gt=0)
    due_date: date
    description: Optional[str] = None
    status: FeeStatus = "pending"
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    payments: List[Payment] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FeeCreate(BaseModel):
    student_id: str
    amount: float
    due_date: Optional[date] = None
    description: Optional[str] = None


class MarkPaidRequest(BaseModel):
    transaction_id: Optional[str] = None


class PayRequest(BaseModel):
    method: PaymentMethod


class FeeNoticeRequest(BaseModel):
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


# ---------------------------------
# COMPLAINTS
# ---------------------------------
class Complaint(BaseModel):
    student_id: str
    student_name: Optional[str] = None
    room_number: str
    title: str
    description: str
    category: str = "general"
    priority: Priority = "medium"
    status: ComplaintStatus = "pending"
    assigned_to: Optional[str] = None
    resolution: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ComplaintCreate(BaseModel):
    student_id: Optional[str] = None  # defaults to the caller
    room_number: Optional[str] = None  # defaults to the student's room
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = "general"
    priority: Priority = "medium"


class AssignComplaintRequest(BaseModel):
    assignee: str


class ResolveComplaintRequest(BaseModel):
    resolution: str


# ---------------------------------
# ANNOUNCEMENTS
# ---------------------------------
class Announcement(BaseModel):
    title: str
    content: str
    important: bool = False
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    important: bool = False


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = Field(None, min_length=1)
    important: Optional[bool] = None


# ---------------------------------
# NOTIFICATIONS
# ---------------------------------
class NotificationPayload(BaseModel):
    title: str = Field(..., min_length=1)
    message: str
    type: str = "info"  # fee, complaint, announcement, room-assignment, message
    link: Optional[str] = None


class Notification(NotificationPayload):
    """Exactly one of user_id / role / global targets the record"""
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = None
    role: Optional[Role] = None
    global_: bool = Field(False, alias="global")
    read: bool = False
    read_by: List[str] = []  # readers of role/global records
    created_at: Optional[datetime] = None


class RoleNotificationRequest(NotificationPayload):
    role: Role


class MessageRequest(BaseModel):
    user_ids: List[str]
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


# ---------------------------------
# ASSISTANT
# ---------------------------------
class ChatRequest(BaseModel):
    message: str


class ChatResponse(BaseModel):
    reply: str
