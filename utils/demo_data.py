"""Fixed demo dataset used to seed the offline store and by "reset all data".

Dates are relative to ``today`` so the dashboard always has a recent
six-month history. Ids are placeholders: persistent stores assign their own
and re-link finance/attendance rows by name + phone.
"""
from __future__ import annotations

from datetime import date

from models import (
    AppDataSnapshot,
    AttendanceRecord,
    BusinessProfile,
    FinanceTransaction,
    Student,
)
from utils.timezone_helpers import shift_month

DEMO_PROFILE = BusinessProfile(
    business_name="Learn N Grow English Coaching",
    owner_name="Ritesh Bisht",
    phone="+91-9876500000",
    address="Main Market Road, Haldwani, Uttarakhand",
)

# id, name, phone, batch, (month offset, day) joined, status, teacher
_STUDENTS = (
    ("stu-001", "Aarav Sharma", "+91-9876543210", "morning", (-5, 8), "active", "Priya Nair"),
    ("stu-002", "Meera Joshi", "+91-9876543211", "evening", (-4, 14), "active", "Arjun Rao"),
    ("stu-003", "Rohan Verma", "+91-9876543212", "morning", (-3, 5), "active", "Priya Nair"),
    ("stu-004", "Isha Kapoor", "+91-9876543213", "evening", (-2, 20), "active", "Arjun Rao"),
    ("stu-005", "Kabir Singh", "+91-9876543214", "morning", (-1, 7), "inactive", "Priya Nair"),
    ("stu-006", "Anaya Mishra", "+91-9876543215", "evening", (-1, 17), "active", None),
)

# id, (month offset, day), category, type, amount, status, description, student id
_FINANCES = (
    ("fin-001", (-5, 3), "Student Fee", "income", 8800, "paid", "Batch A fee collection", None),
    ("fin-002", (-5, 4), "Rent", "expense", 12000, "paid", "Center rent", None),
    ("fin-003", (-5, 9), "Salary", "expense", 18000, "paid", "Tutor payroll", None),
    ("fin-004", (-4, 3), "Student Fee", "income", 12000, "paid", "Monthly fee collection", None),
    ("fin-005", (-4, 5), "Utilities", "expense", 3500, "paid", "Electricity and internet", None),
    ("fin-006", (-4, 9), "Rent", "expense", 12000, "paid", "Center rent", None),
    ("fin-007", (-3, 2), "Student Fee", "income", 13800, "paid", "Monthly fee collection", None),
    ("fin-008", (-3, 11), "Salary", "expense", 19000, "paid", "Tutor payroll", None),
    ("fin-009", (-2, 2), "Student Fee", "income", 15200, "paid", "Monthly fee collection", None),
    ("fin-010", (-2, 7), "Rent", "expense", 12000, "paid", "Center rent", None),
    ("fin-011", (-1, 4), "Student Fee", "income", 16600, "paid", "Monthly fee collection", None),
    ("fin-012", (-1, 10), "Salary", "expense", 20000, "paid", "Tutor payroll", None),
    ("fin-013", (0, 2), "Student Fee", "income", 13400, "paid", "Monthly collection", None),
    ("fin-014", (0, 5), "Student Fee", "income", 2500, "pending", "Rohan fee pending", "stu-003"),
    ("fin-015", (0, 8), "Rent", "expense", 12000, "paid", "Center rent", None),
    ("fin-016", (0, 12), "Utilities", "expense", 3800, "paid", "Electricity and internet", None),
    ("fin-017", (0, 14), "Salary", "expense", 20000, "paid", "Tutor payroll", None),
)

# id, student id, status, note
_ATTENDANCE = (
    ("att-001", "stu-001", "present", None),
    ("att-002", "stu-002", "present", None),
    ("att-003", "stu-003", "absent", "Sick leave"),
    ("att-004", "stu-004", "present", None),
    ("att-005", "stu-006", "present", None),
)


def _offset_date(today: date, offset: tuple[int, int]) -> str:
    months, day = offset
    return shift_month(today, months).replace(day=day).isoformat()


def student_lookup_key(name: str, phone: str) -> str:
    return f"{(name or '').strip().lower()}::{(phone or '').strip().lower()}"


def build_demo_snapshot(today: date) -> AppDataSnapshot:
    students = tuple(
        Student(
            id=sid,
            name=name,
            phone=phone,
            batch=batch,
            join_date=_offset_date(today, joined),
            status=status,
            monthly_fee=3000.0,
            teacher=teacher,
        )
        for sid, name, phone, batch, joined, status, teacher in _STUDENTS
    )
    finances = tuple(
        FinanceTransaction(
            id=fid,
            transaction_date=_offset_date(today, when),
            category=category,
            type=kind,
            amount=float(amount),
            status=status,
            description=description,
            student_id=student_id,
        )
        for fid, when, category, kind, amount, status, description, student_id in _FINANCES
    )
    by_id = {s.id: s for s in students}
    attendance = tuple(
        AttendanceRecord(
            id=aid,
            student_id=sid,
            student_name=by_id[sid].name,
            batch=by_id[sid].batch,
            attendance_date=today.isoformat(),
            status=status,
            note=note,
            teacher=by_id[sid].teacher,
        )
        for aid, sid, status, note in _ATTENDANCE
    )
    return AppDataSnapshot(
        students=students,
        finances=finances,
        attendance=attendance,
        profile=DEMO_PROFILE,
    )
