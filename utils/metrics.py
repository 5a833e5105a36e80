"""Dashboard aggregates computed from the (already role-scoped) snapshot.

Everything here is pure: callers pass the transactions, the students and,
where it matters, ``today``. Transactions whose date does not parse never
match a specific month but still count under "all months".
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

from models import FinanceTransaction, Student, STUDENT_FEE_CATEGORY
from utils.timezone_helpers import business_today, format_month_label, month_key, shift_month

ALL_MONTHS_VALUE = "all"
ALL_MONTHS_LABEL = "All Months (Consolidated)"
MONTHS_TO_SHOW = 6


def current_month_key(today: Optional[date] = None) -> str:
    return month_key(today or business_today())


def filter_transactions_by_month(
    finances: Iterable[FinanceTransaction], month: str
) -> list[FinanceTransaction]:
    if month == ALL_MONTHS_VALUE:
        return list(finances)
    return [item for item in finances if month_key(item.transaction_date) == month]


def _paid_income(items: Iterable[FinanceTransaction]) -> float:
    return sum(
        (item.amount for item in items if item.type == "income" and item.status == "paid"),
        0.0,
    )


def _expenses(items: Iterable[FinanceTransaction]) -> float:
    return sum((item.amount for item in items if item.type == "expense"), 0.0)


def calculate_dashboard_metrics(
    finances: Iterable[FinanceTransaction],
    students: Iterable[Student],
    month: Optional[str] = None,
    today: Optional[date] = None,
) -> dict:
    """Headline numbers for one month (defaults to the current month)."""
    month = month or current_month_key(today)
    monthly = filter_transactions_by_month(finances, month)

    total_revenue = _paid_income(monthly)
    total_expenses = _expenses(monthly)
    fees_pending = sum(
        (
            item.amount
            for item in monthly
            if item.category == STUDENT_FEE_CATEGORY and item.status == "pending"
        ),
        0.0,
    )
    active_students = sum(1 for s in students if s.status == "active")

    return {
        "totalRevenue": total_revenue,
        "totalExpenses": total_expenses,
        "netProfit": total_revenue - total_expenses,
        "activeStudents": active_students,
        "feesPending": fees_pending,
    }


def get_income_expense_trend(
    finances: Iterable[FinanceTransaction],
    month: str = ALL_MONTHS_VALUE,
    today: Optional[date] = None,
) -> list[dict]:
    """Paid income vs. all expenses per month.

    A specific month yields a single point; "all" yields the trailing
    ``MONTHS_TO_SHOW`` calendar months ending at the current month, oldest
    first, zero-filled.
    """
    finances = list(finances)
    if month != ALL_MONTHS_VALUE:
        keys = [month]
    else:
        anchor = today or business_today()
        keys = [
            month_key(shift_month(anchor, -offset))
            for offset in range(MONTHS_TO_SHOW - 1, -1, -1)
        ]

    by_month = defaultdict(list)
    for item in finances:
        key = month_key(item.transaction_date)
        if key is not None:
            by_month[key].append(item)

    return [
        {
            "month": format_month_label(key, long=False),
            "income": _paid_income(by_month.get(key, [])),
            "expense": _expenses(by_month.get(key, [])),
        }
        for key in keys
    ]


def get_expense_breakdown(finances: Iterable[FinanceTransaction], month: str) -> list[dict]:
    grouped: dict[str, float] = defaultdict(float)
    for item in filter_transactions_by_month(finances, month):
        if item.type != "expense":
            continue
        grouped[item.category] += item.amount
    rows = [{"name": name, "value": value} for name, value in grouped.items()]
    rows.sort(key=lambda row: row["value"], reverse=True)
    return rows


def get_available_month_options(
    finances: Iterable[FinanceTransaction], today: Optional[date] = None
) -> list[dict]:
    keys = {month_key(item.transaction_date) for item in finances}
    keys.discard(None)
    keys.add(current_month_key(today))
    options = [
        {"value": key, "label": format_month_label(key)}
        for key in sorted(keys, reverse=True)
    ]
    return [{"value": ALL_MONTHS_VALUE, "label": ALL_MONTHS_LABEL}] + options
