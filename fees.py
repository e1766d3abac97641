"""
Fee ledger.

Status moves go through FEE_LIFECYCLE (pending -> paid | overdue,
overdue -> paid). Each transition, together with its payment history entry,
is one optimistic write on the fee document.
"""

import secrets
from datetime import date
from typing import Any, Dict, List, Optional, Union

from pymongo import ASCENDING

from announcements import create_announcement
from config import settings
from database import DocumentStore, utcnow
from exceptions import FeeNotFound, UserNotFound, ValidationError
from lifecycle import FEE_LIFECYCLE
from logging_config import get_logger
from notifications import notify_global, notify_user

logger = get_logger("fees")

FEES = "fee"
USERS = "user"
PAYMENT_METHODS = ("card", "upi", "netbanking", "cash")


def generate_transaction_id() -> str:
    return f"TXN{secrets.randbelow(900000) + 100000}"


def format_amount(amount: float) -> str:
    text = f"{amount:,.2f}".rstrip("0").rstrip(".")
    return f"{settings.CURRENCY_SYMBOL}{text}"


def _parse_due(due_date: Union[date, str, None]) -> date:
    if due_date is None or due_date == "":
        raise ValidationError("Due date is required", field="due_date")
    if isinstance(due_date, date):
        return due_date
    try:
        return date.fromisoformat(str(due_date)[:10])
    except ValueError:
        raise ValidationError(f"Invalid due date '{due_date}'", field="due_date")


def _format_due(due: str) -> str:
    return date.fromisoformat(due[:10]).strftime("%b %d, %Y")


def get_fee(store: DocumentStore, fee_id: str) -> Dict[str, Any]:
    fee = store.get(FEES, fee_id)
    if fee is None:
        raise FeeNotFound(fee_id)
    return fee


def create_fee(
    store: DocumentStore,
    student_id: str,
    amount: float,
    due_date: Union[date, str, None],
    description: Optional[str] = None,
) -> Dict[str, Any]:
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than 0", field="amount")
    due = _parse_due(due_date)
    student = store.get(USERS, student_id)
    if student is None:
        raise UserNotFound(student_id)
    if student.get("role") != "student":
        raise ValidationError(f"User {student_id} is not a student", field="student_id")

    fee = store.create(FEES, {
        "student_id": student_id,
        "amount": float(amount),
        "due_date": due.isoformat(),
        "description": description,
        "status": "pending",
        "payment_date": None,
        "transaction_id": None,
        "payments": [],
    })
    notify_user(store, student_id, {
        "title": "Fee Payment Due",
        "message": f"You have a fee payment of {format_amount(fee['amount'])} due on {due:%b %d, %Y}",
        "type": "fee",
    })
    logger.info(f"Fee {fee['id']} of {fee['amount']} created for student {student_id}, due {fee['due_date']}")
    return fee


def _paid_patch(fee: Dict[str, Any], transaction_id: Optional[str]) -> Dict[str, Any]:
    FEE_LIFECYCLE.check(fee["status"], "paid")
    return {
        "status": "paid",
        "payment_date": utcnow(),
        "transaction_id": transaction_id or generate_transaction_id(),
    }


def mark_paid(store: DocumentStore, fee_id: str, transaction_id: Optional[str] = None) -> Dict[str, Any]:
    """Settle a fee; a fee that is already paid is returned unchanged"""
    def mutate(fee: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if fee["status"] == "paid":
            return None
        return _paid_patch(fee, transaction_id)

    fee = store.modify(FEES, fee_id, mutate, missing=FeeNotFound)
    logger.info(f"Fee {fee_id} marked paid ({fee['transaction_id']})")
    return fee


def mark_overdue(store: DocumentStore, fee_id: str) -> Dict[str, Any]:
    def mutate(fee: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if fee["status"] == "overdue":
            return None
        FEE_LIFECYCLE.check(fee["status"], "overdue")
        return {"status": "overdue"}

    fee = store.modify(FEES, fee_id, mutate, missing=FeeNotFound)
    logger.info(f"Fee {fee_id} marked overdue")
    return fee


def record_payment(store: DocumentStore, fee_id: str, method: str) -> Dict[str, Any]:
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Unsupported payment method '{method}'", field="method")

    def mutate(fee: Dict[str, Any]) -> Dict[str, Any]:
        # paying twice would record a second charge, so paid -> paid is refused here
        patch = _paid_patch(fee, None)
        patch["payments"] = list(fee.get("payments") or []) + [{
            "transaction_id": patch["transaction_id"],
            "amount": fee["amount"],
            "method": method,
            "date": patch["payment_date"],
        }]
        return patch

    fee = store.modify(FEES, fee_id, mutate, missing=FeeNotFound)
    notify_user(store, fee["student_id"], {
        "title": "Payment Successful",
        "message": (
            f"Your payment of {format_amount(fee['amount'])} has been successfully processed. "
            f"Transaction ID: {fee['transaction_id']}"
        ),
        "type": "fee",
    })
    logger.info(f"Payment {fee['transaction_id']} via {method} recorded for fee {fee_id}")
    return fee


def send_reminder(store: DocumentStore, fee_id: str) -> Dict[str, Any]:
    fee = get_fee(store, fee_id)
    if fee["status"] == "paid":
        raise ValidationError("Fee is already paid")
    return notify_user(store, fee["student_id"], {
        "title": "Fee Payment Reminder",
        "message": (
            f"This is a reminder that your fee payment of {format_amount(fee['amount'])} is due on "
            f"{_format_due(fee['due_date'])}. Please make the payment as soon as possible."
        ),
        "type": "fee",
    })


def refresh_overdue(store: DocumentStore, today: Optional[date] = None) -> int:
    """Move pending fees past their due date to overdue; returns how many moved"""
    cutoff = (today or utcnow().date()).isoformat()
    moved = 0
    for fee in store.query(FEES, {"status": "pending", "due_date": {"$lt": cutoff}}):
        changed: List[bool] = []

        def mutate(current: Dict[str, Any]) -> Optional[Dict[str, Any]]:
            changed.clear()
            if current["status"] != "pending" or current["due_date"] >= cutoff:
                return None
            changed.append(True)
            return {"status": "overdue"}

        store.modify(FEES, fee["id"], mutate, missing=FeeNotFound)
        moved += len(changed)
    if moved:
        logger.info(f"{moved} fees moved to overdue (cutoff {cutoff})")
    return moved


def publish_fee_notice(store: DocumentStore, title: str, message: str) -> Dict[str, Any]:
    """Global fee notification plus a matching announcement from the finance office"""
    notification = notify_global(store, {"title": title, "message": message, "type": "fee"})
    lowered = title.lower()
    announcement = create_announcement(
        store,
        {"title": title, "content": message, "important": "urgent" in lowered or "important" in lowered},
        created_by="Finance Department",
        notify=False,
    )
    return {"notification": notification, "announcement": announcement}


def list_fees(store: DocumentStore, student_id: Optional[str] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
    filt: Dict[str, Any] = {}
    if student_id:
        filt["student_id"] = student_id
    if status:
        filt["status"] = status
    return store.query(FEES, filt, sort=[("due_date", ASCENDING), ("_id", ASCENDING)])


def fee_summary(store: DocumentStore, student_id: Optional[str] = None) -> Dict[str, Any]:
    fees = list_fees(store, student_id=student_id)
    total = sum(f["amount"] for f in fees)
    paid = sum(f["amount"] for f in fees if f["status"] == "paid")
    outstanding = sum(f["amount"] for f in fees if f["status"] in ("pending", "overdue"))
    return {
        "total_amount": total,
        "paid_amount": paid,
        "outstanding_amount": outstanding,
        "pending": sum(1 for f in fees if f["status"] == "pending"),
        "paid": sum(1 for f in fees if f["status"] == "paid"),
        "overdue": sum(1 for f in fees if f["status"] == "overdue"),
        "collection_rate": round(paid / total, 4) if total else 0.0,
    }
