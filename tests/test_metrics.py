from datetime import date

from models import FinanceTransaction, Student
from utils.metrics import (
    ALL_MONTHS_LABEL,
    calculate_dashboard_metrics,
    filter_transactions_by_month,
    get_available_month_options,
    get_expense_breakdown,
    get_income_expense_trend,
)

TODAY = date(2026, 3, 20)


def txn(amount, kind="income", status="paid", category="Tuition", day="2026-03-10", tid=None):
    return FinanceTransaction(
        id=tid or f"t-{amount}-{kind}-{day}",
        transaction_date=day,
        category=category,
        type=kind,
        amount=float(amount),
        status=status,
        description="",
    )


def student(sid, status="active"):
    return Student(sid, "Name", "1", "morning", "2025-01-01", status, 3000.0)


def test_headline_metrics_for_month():
    finances = [txn(5000), txn(2000, status="pending"), txn(1500, kind="expense")]
    m = calculate_dashboard_metrics(finances, [student("a"), student("b", "inactive")], "2026-03")
    assert m == {
        "totalRevenue": 5000.0,
        "totalExpenses": 1500.0,
        "netProfit": 3500.0,
        "activeStudents": 1,
        "feesPending": 0.0,
    }


def test_fees_pending_counts_only_student_fee_rows():
    finances = [
        txn(5000),
        txn(2000, status="pending", category="Student Fee"),
        txn(1500, kind="expense"),
        txn(700, kind="expense", status="pending", category="Rent"),
    ]
    m = calculate_dashboard_metrics(finances, [], "2026-03")
    assert m["feesPending"] == 2000.0
    assert m["totalExpenses"] == 2200.0


def test_metrics_default_to_current_month_and_zero_on_empty():
    m = calculate_dashboard_metrics([txn(100, day="2026-02-01")], [], today=TODAY)
    assert m["totalRevenue"] == 0.0
    assert calculate_dashboard_metrics([], [], "all")["netProfit"] == 0.0


def test_unparsable_dates_only_count_under_all_months():
    bad = txn(900, day="not-a-date")
    assert filter_transactions_by_month([bad], "2026-03") == []
    assert filter_transactions_by_month([bad], "all") == [bad]
    assert calculate_dashboard_metrics([bad], [], "all")["totalRevenue"] == 900.0


def test_trend_all_months_is_six_points_oldest_first():
    trend = get_income_expense_trend([txn(400, kind="expense", day="2026-03-02")], "all", today=TODAY)
    assert [p["month"] for p in trend] == ["Oct", "Nov", "Dec", "Jan", "Feb", "Mar"]
    assert all(p["income"] == 0 and p["expense"] == 0 for p in trend[:5])
    assert trend[-1] == {"month": "Mar", "income": 0.0, "expense": 400.0}


def test_trend_single_month():
    trend = get_income_expense_trend([txn(300), txn(50, status="pending")], "2026-03", today=TODAY)
    assert trend == [{"month": "Mar", "income": 300.0, "expense": 0.0}]


def test_expense_breakdown_sorted_descending():
    finances = [
        txn(100, kind="expense", category="Supplies"),
        txn(900, kind="expense", category="Rent"),
        txn(50, kind="expense", category="Supplies", day="2026-03-11"),
        txn(999, category="Student Fee"),
        txn(10, kind="expense", category="Rent", day="2026-01-05"),
    ]
    assert get_expense_breakdown(finances, "2026-03") == [
        {"name": "Rent", "value": 900.0},
        {"name": "Supplies", "value": 150.0},
    ]
    assert get_expense_breakdown(finances, "all")[0] == {"name": "Rent", "value": 910.0}


def test_month_options_include_current_month_newest_first():
    options = get_available_month_options([txn(1, day="2025-12-01"), txn(2, day="bogus")], TODAY)
    assert options[0] == {"value": "all", "label": ALL_MONTHS_LABEL}
    assert [o["value"] for o in options[1:]] == ["2026-03", "2025-12"]
    assert options[1]["label"] == "March 2026"
