"""
Unit Tests for the Fee Ledger
Tests for: creation, payment, overdue handling, reminders, summaries
"""
import re
from datetime import date

import pytest

import fees
from exceptions import FeeNotFound, InvalidTransitionError, UserNotFound, ValidationError


@pytest.fixture
def student(make_student):
    return make_student()


@pytest.fixture
def fee(store, student):
    return fees.create_fee(store, student["id"], 5000, date(2026, 7, 15), "Semester hostel fee")


class TestCreateFee:
    """Fee creation and validation"""

    def test_new_fee_is_pending_and_notifies_student(self, store, student, fee):
        assert fee["status"] == "pending"
        assert fee["due_date"] == "2026-07-15"
        assert fee["payments"] == []

        notes = store.query("notification", {"user_id": student["id"]})
        assert len(notes) == 1
        assert notes[0]["title"] == "Fee Payment Due"
        assert notes[0]["message"] == "You have a fee payment of ₹5,000 due on Jul 15, 2026"

    @pytest.mark.parametrize("amount", [0, -100])
    def test_amount_must_be_positive(self, store, student, amount):
        with pytest.raises(ValidationError):
            fees.create_fee(store, student["id"], amount, "2026-07-15")

        assert store.count("fee") == 0

    def test_due_date_required(self, store, student):
        with pytest.raises(ValidationError) as exc:
            fees.create_fee(store, student["id"], 1000, None)

        assert exc.value.details == {"field": "due_date"}

    def test_due_date_accepts_iso_string(self, store, student):
        fee = fees.create_fee(store, student["id"], 1000, "2026-08-01T00:00:00")

        assert fee["due_date"] == "2026-08-01"

    def test_unknown_student(self, store):
        with pytest.raises(UserNotFound):
            fees.create_fee(store, "64b000000000000000000000", 1000, "2026-08-01")

    def test_fee_only_for_students(self, store, admin):
        with pytest.raises(ValidationError):
            fees.create_fee(store, admin["id"], 1000, "2026-08-01")


class TestPayment:
    """Marking fees paid and recording payments"""

    def test_mark_paid_generates_transaction_id(self, store, fee):
        paid = fees.mark_paid(store, fee["id"])

        assert paid["status"] == "paid"
        assert paid["payment_date"] is not None
        assert re.fullmatch(r"TXN\d{6}", paid["transaction_id"])

    def test_mark_paid_keeps_given_transaction_id(self, store, fee):
        paid = fees.mark_paid(store, fee["id"], "BANK-42")

        assert paid["transaction_id"] == "BANK-42"

    def test_mark_paid_twice_is_noop(self, store, fee):
        first = fees.mark_paid(store, fee["id"])
        second = fees.mark_paid(store, fee["id"], "OTHER")

        assert second["transaction_id"] == first["transaction_id"]
        assert second["version"] == first["version"]

    def test_overdue_fee_can_be_paid(self, store, fee):
        fees.mark_overdue(store, fee["id"])

        paid = fees.mark_paid(store, fee["id"])

        assert paid["status"] == "paid"

    def test_paid_fee_cannot_become_overdue(self, store, fee):
        fees.mark_paid(store, fee["id"])

        with pytest.raises(InvalidTransitionError):
            fees.mark_overdue(store, fee["id"])

        assert store.get("fee", fee["id"])["status"] == "paid"

    def test_record_payment_appends_history_and_notifies(self, store, student, fee):
        paid = fees.record_payment(store, fee["id"], "upi")

        assert paid["status"] == "paid"
        assert len(paid["payments"]) == 1
        entry = paid["payments"][0]
        assert entry["method"] == "upi"
        assert entry["amount"] == 5000
        assert entry["transaction_id"] == paid["transaction_id"]

        titles = [n["title"] for n in store.query("notification", {"user_id": student["id"]})]
        assert "Payment Successful" in titles

    def test_paying_twice_rejected(self, store, fee):
        fees.record_payment(store, fee["id"], "card")

        with pytest.raises(InvalidTransitionError):
            fees.record_payment(store, fee["id"], "card")

        assert len(store.get("fee", fee["id"])["payments"]) == 1

    def test_unsupported_method(self, store, fee):
        with pytest.raises(ValidationError):
            fees.record_payment(store, fee["id"], "bitcoin")

    def test_unknown_fee(self, store):
        with pytest.raises(FeeNotFound):
            fees.mark_paid(store, "64b000000000000000000000")


class TestOverdueAndReminders:
    def test_refresh_moves_only_past_due_pending_fees(self, store, student):
        late = fees.create_fee(store, student["id"], 1000, "2026-01-10")
        on_time = fees.create_fee(store, student["id"], 1000, "2026-03-01")
        settled = fees.create_fee(store, student["id"], 1000, "2026-01-05")
        fees.mark_paid(store, settled["id"])

        moved = fees.refresh_overdue(store, today=date(2026, 2, 1))

        assert moved == 1
        assert store.get("fee", late["id"])["status"] == "overdue"
        assert store.get("fee", on_time["id"])["status"] == "pending"
        assert store.get("fee", settled["id"])["status"] == "paid"

    def test_refresh_is_repeatable(self, store, student):
        fees.create_fee(store, student["id"], 1000, "2026-01-10")

        assert fees.refresh_overdue(store, today=date(2026, 2, 1)) == 1
        assert fees.refresh_overdue(store, today=date(2026, 2, 1)) == 0

    def test_reminder_mentions_amount_and_due_date(self, store, fee):
        note = fees.send_reminder(store, fee["id"])

        assert note["title"] == "Fee Payment Reminder"
        assert "₹5,000" in note["message"]
        assert "Jul 15, 2026" in note["message"]

    def test_no_reminder_for_paid_fee(self, store, fee):
        fees.mark_paid(store, fee["id"])

        with pytest.raises(ValidationError):
            fees.send_reminder(store, fee["id"])


class TestNoticesAndSummary:
    def test_urgent_notice_creates_important_announcement(self, store):
        result = fees.publish_fee_notice(store, "URGENT: fee deadline extended", "Pay by Friday")

        assert result["notification"]["global"] is True
        assert result["notification"]["type"] == "fee"
        assert result["announcement"]["important"] is True
        assert result["announcement"]["created_by"] == "Finance Department"

    def test_plain_notice_is_not_important(self, store):
        result = fees.publish_fee_notice(store, "Mess fee revision", "New rates apply next month")

        assert result["announcement"]["important"] is False

    def test_summary_and_collection_rate(self, store, student):
        a = fees.create_fee(store, student["id"], 3000, "2026-01-10")
        fees.create_fee(store, student["id"], 1000, "2026-03-01")
        fees.mark_paid(store, a["id"])

        summary = fees.fee_summary(store, student_id=student["id"])

        assert summary["total_amount"] == 4000
        assert summary["paid_amount"] == 3000
        assert summary["outstanding_amount"] == 1000
        assert summary["paid"] == 1
        assert summary["pending"] == 1
        assert summary["collection_rate"] == 0.75

    def test_summary_without_fees(self, store):
        assert fees.fee_summary(store)["collection_rate"] == 0.0

    @pytest.mark.parametrize("amount,text", [(5000, "₹5,000"), (1250.5, "₹1,250.5"), (100, "₹100")])
    def test_format_amount(self, amount, text):
        assert fees.format_amount(amount) == text


class TestDroppedConnection:
    def test_payment_that_landed_is_reported_once(self, store, student, fee, flaky_store):
        flaky = flaky_store("fee", "find_one_and_update", after_write=True)

        paid = fees.record_payment(flaky, fee["id"], "upi")

        assert paid["status"] == "paid"
        assert len(store.get("fee", fee["id"])["payments"]) == 1
        notices = store.query("notification", {"user_id": student["id"], "title": "Payment Successful"})
        assert len(notices) == 1
        assert paid["transaction_id"] in notices[0]["message"]
