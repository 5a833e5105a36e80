"""Per-student monthly fee status.

Each active student has one row per month. The row is backed by the latest
"Student Fee" transaction for that student in the month (the primary
transaction); a month without one reads as unpaid.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

from models import (
    FinanceTransaction,
    Student,
    STUDENT_FEE_CATEGORY,
    TransactionInput,
)
from utils.timezone_helpers import format_month_label, month_key


def fee_month_options(finances: Iterable[FinanceTransaction], today: date) -> list[dict]:
    keys = {
        month_key(item.transaction_date)
        for item in finances
        if item.category == STUDENT_FEE_CATEGORY
    }
    keys.discard(None)
    keys.add(month_key(today))
    return [{"value": key, "label": format_month_label(key)} for key in sorted(keys, reverse=True)]


def primary_fee_transaction(
    student_id: str,
    finances: Iterable[FinanceTransaction],
    month: str,
) -> Optional[FinanceTransaction]:
    matches = [
        item for item in finances
        if item.category == STUDENT_FEE_CATEGORY
        and item.student_id == student_id
        and month_key(item.transaction_date) == month
    ]
    if not matches:
        return None
    return max(matches, key=lambda item: item.transaction_date)


def _matches_search(student: Student, query: str) -> bool:
    return any(query in (value or "").lower() for value in (student.name, student.phone, student.batch))


def build_fee_rows(
    students: Iterable[Student],
    finances: Iterable[FinanceTransaction],
    month: str,
    search: str = "",
) -> list[dict]:
    finances = list(finances)
    query = (search or "").strip().lower()
    rows = []
    for student in students:
        if student.status != "active":
            continue
        if query and not _matches_search(student, query):
            continue
        primary = primary_fee_transaction(student.id, finances, month)
        rows.append({
            "student": student.to_dict(),
            "primaryTransaction": primary.to_dict() if primary else None,
            "isPaid": primary is not None and primary.status == "paid",
        })
    return rows


def fee_status_input(
    student: Student,
    primary: Optional[FinanceTransaction],
    status: str,
    month: str,
    today: date,
) -> TransactionInput:
    """Input that records ``status`` for the month, editing ``primary`` when there is one."""
    if primary is not None:
        return TransactionInput(
            transaction_date=primary.transaction_date,
            category=STUDENT_FEE_CATEGORY,
            type="income",
            amount=primary.amount or student.monthly_fee,
            status=status,
            description=primary.description or f"{format_month_label(month)} fee status",
            note=primary.note,
            student_id=student.id,
        )
    # Past and future months are dated on the 1st
    transaction_date = today.isoformat() if month == month_key(today) else f"{month}-01"
    return TransactionInput(
        transaction_date=transaction_date,
        category=STUDENT_FEE_CATEGORY,
        type="income",
        amount=student.monthly_fee,
        status=status,
        description=f"{format_month_label(month)} fee status",
        student_id=student.id,
    )
