"""Canonical domain records for the coaching-centre admin panel.

Records are frozen; every change produces a new instance via
``dataclasses.replace`` so a snapshot handed to a reader never shifts
under it. Dates are ISO ``YYYY-MM-DD`` strings, amounts are floats.
"""
from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from utils.errors import ValidationError
from utils.timezone_helpers import parse_iso_date, to_iso_date

STUDENT_BATCHES = ("morning", "evening")
STUDENT_STATUSES = ("active", "inactive")
TRANSACTION_TYPES = ("income", "expense")
PAYMENT_STATUSES = ("paid", "pending")
ATTENDANCE_STATUSES = ("present", "absent")

ROLE_ADMIN = "admin"
ROLE_STUDENTS_ONLY = "students_only"
USER_ROLES = (ROLE_ADMIN, ROLE_STUDENTS_ONLY)
DELETE_MODES = ("access", "user")

STUDENT_FEE_CATEGORY = "Student Fee"
FINANCE_CATEGORIES = (
    STUDENT_FEE_CATEGORY,
    "Rent",
    "Salary",
    "Utilities",
    "Marketing",
    "Supplies",
)

DEFAULT_BATCH = "morning"
DEFAULT_MONTHLY_FEE = 3000.0
UNKNOWN_STUDENT_NAME = "Unknown Student"
MIN_PASSWORD_LENGTH = 6

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def to_number(value: Any, fallback: Optional[float] = 0.0) -> Optional[float]:
    """Parse a stored/posted amount into a finite float, else ``fallback``."""
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else fallback
    if value is None:
        return fallback
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    return parsed if math.isfinite(parsed) else fallback


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _pick(payload: dict, name: str, default: Any = None) -> Any:
    """Read a snake_case field that may arrive camelCased from the browser."""
    if name in payload:
        return payload[name]
    return payload.get(_camel(name), default)


class Record:
    def to_dict(self) -> dict:
        out = {}
        for key, value in asdict(self).items():
            if isinstance(value, tuple):
                value = list(value)
            out[_camel(key)] = value
        return out


@dataclass(frozen=True)
class Student(Record):
    id: str
    name: str
    phone: str
    batch: str
    join_date: str
    status: str
    monthly_fee: float
    # Free-text tutor name; drives role scoping
    teacher: Optional[str] = None


@dataclass(frozen=True)
class FinanceTransaction(Record):
    id: str
    transaction_date: str
    category: str
    type: str
    amount: float
    status: str
    description: str
    note: Optional[str] = None
    # Only "Student Fee" rows carry a link
    student_id: Optional[str] = None


@dataclass(frozen=True)
class AttendanceRecord(Record):
    """One student's mark for one day.

    ``student_name``, ``batch`` and ``teacher`` are copies taken when the
    mark was saved. They are a cache for display after the student is gone
    or when an older table lacks the columns, not a source of truth: the
    live ``students`` table wins whenever it has the student.
    """

    id: str
    student_id: str
    student_name: str
    batch: str
    attendance_date: str
    status: str
    note: Optional[str] = None
    teacher: Optional[str] = None


@dataclass(frozen=True)
class BusinessProfile(Record):
    business_name: str = ""
    owner_name: str = ""
    phone: str = ""
    address: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "BusinessProfile":
        return cls(
            business_name=(clean_text(_pick(payload, "business_name")) or ""),
            owner_name=(clean_text(_pick(payload, "owner_name")) or ""),
            phone=(clean_text(_pick(payload, "phone")) or ""),
            address=(clean_text(_pick(payload, "address")) or ""),
        )


@dataclass(frozen=True)
class Announcement(Record):
    id: str
    title: str
    message: str
    date: str
    created_at: str = ""


@dataclass(frozen=True)
class UserAccess(Record):
    user_id: str
    email: str
    role: Optional[str]
    created_at: str
    assigned_teachers: tuple[str, ...] = ()


@dataclass(frozen=True)
class AppDataSnapshot:
    students: tuple[Student, ...] = ()
    finances: tuple[FinanceTransaction, ...] = ()
    attendance: tuple[AttendanceRecord, ...] = ()
    profile: BusinessProfile = field(default_factory=BusinessProfile)

    def to_dict(self) -> dict:
        return {
            "students": [s.to_dict() for s in self.students],
            "finances": [f.to_dict() for f in self.finances],
            "attendance": [a.to_dict() for a in self.attendance],
            "profile": self.profile.to_dict(),
        }


# ---------- Form inputs ----------

@dataclass(frozen=True)
class StudentInput:
    name: str
    phone: str
    join_date: str
    batch: Optional[str] = None
    monthly_fee: Optional[float] = None
    status: Optional[str] = None
    teacher: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "StudentInput":
        fee = _pick(payload, "monthly_fee")
        return cls(
            name=str(_pick(payload, "name", "") or ""),
            phone=str(_pick(payload, "phone", "") or ""),
            join_date=str(_pick(payload, "join_date", "") or ""),
            batch=clean_text(_pick(payload, "batch")),
            monthly_fee=None if fee in (None, "") else to_number(fee, math.nan),
            status=clean_text(_pick(payload, "status")),
            teacher=clean_text(_pick(payload, "teacher")),
        )


@dataclass(frozen=True)
class TransactionInput:
    transaction_date: str
    category: str
    type: str
    amount: float
    status: str
    description: str = ""
    note: Optional[str] = None
    student_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "TransactionInput":
        student_id = _pick(payload, "student_id")
        return cls(
            transaction_date=str(_pick(payload, "transaction_date", "") or ""),
            category=str(_pick(payload, "category", "") or ""),
            type=str(_pick(payload, "type", "") or ""),
            amount=to_number(_pick(payload, "amount"), math.nan),
            status=str(_pick(payload, "status", "paid") or "paid"),
            description=str(_pick(payload, "description", "") or ""),
            note=clean_text(_pick(payload, "note")),
            student_id=None if student_id in (None, "") else str(student_id),
        )


@dataclass(frozen=True)
class AttendanceDraft:
    student_id: str
    student_name: str
    batch: Optional[str]
    status: str
    note: Optional[str] = None
    teacher: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "AttendanceDraft":
        return cls(
            student_id=str(_pick(payload, "student_id", "") or ""),
            student_name=str(_pick(payload, "student_name", "") or ""),
            batch=clean_text(_pick(payload, "batch")),
            status=str(_pick(payload, "status", "") or ""),
            note=clean_text(_pick(payload, "note")),
            teacher=clean_text(_pick(payload, "teacher")),
        )


@dataclass(frozen=True)
class UserAccessInput:
    email: str
    password: str
    role: str
    assigned_teachers: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict) -> "UserAccessInput":
        return cls(
            email=str(_pick(payload, "email", "") or ""),
            password=str(_pick(payload, "password", "") or ""),
            role=str(_pick(payload, "role", "") or ""),
            assigned_teachers=tuple(_pick(payload, "assigned_teachers") or ()),
        )


@dataclass(frozen=True)
class AnnouncementInput:
    title: str
    message: str
    date: str

    @classmethod
    def from_payload(cls, payload: dict) -> "AnnouncementInput":
        return cls(
            title=str(payload.get("title") or ""),
            message=str(payload.get("message") or ""),
            date=str(payload.get("date") or ""),
        )


# ---------- Validation (runs before any write) ----------

def _require_date(value: str, label: str) -> str:
    if parse_iso_date(value) is None:
        raise ValidationError(f"{label} must be a valid date (YYYY-MM-DD).")
    return to_iso_date(value)


def validate_student_input(data: StudentInput) -> StudentInput:
    name = (data.name or "").strip()
    phone = (data.phone or "").strip()
    if not name:
        raise ValidationError("Student name is required.")
    if not phone:
        raise ValidationError("Phone number is required.")
    join_date = _require_date(data.join_date, "Join date")
    if data.batch is not None and data.batch not in STUDENT_BATCHES:
        raise ValidationError("Batch must be morning or evening.")
    if data.status is not None and data.status not in STUDENT_STATUSES:
        raise ValidationError("Status must be active or inactive.")
    fee = data.monthly_fee
    if fee is not None and (not math.isfinite(fee) or fee < 0):
        raise ValidationError("Monthly fee must be zero or a positive amount.")
    return StudentInput(
        name=name,
        phone=phone,
        join_date=join_date,
        batch=data.batch,
        monthly_fee=fee,
        status=data.status,
        teacher=clean_text(data.teacher),
    )


def validate_transaction_input(data: TransactionInput) -> TransactionInput:
    transaction_date = _require_date(data.transaction_date, "Transaction date")
    category = (data.category or "").strip()
    if not category:
        raise ValidationError("Category is required.")
    if data.type not in TRANSACTION_TYPES:
        raise ValidationError("Type must be income or expense.")
    if data.status not in PAYMENT_STATUSES:
        raise ValidationError("Status must be paid or pending.")
    amount = to_number(data.amount, math.nan)
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Amount must be greater than zero.")
    if data.student_id and category != STUDENT_FEE_CATEGORY:
        raise ValidationError(f"Only {STUDENT_FEE_CATEGORY} transactions can be linked to a student.")
    description = (data.description or "").strip() or f"{category} transaction"
    return TransactionInput(
        transaction_date=transaction_date,
        category=category,
        type=data.type,
        amount=amount,
        status=data.status,
        description=description,
        note=clean_text(data.note),
        student_id=data.student_id or None,
    )


def validate_attendance(date_value: str, entries: list[AttendanceDraft]) -> str:
    attendance_date = _require_date(date_value, "Attendance date")
    for entry in entries:
        if not entry.student_id:
            raise ValidationError("Each attendance entry needs a student.")
        if entry.batch is not None and entry.batch not in STUDENT_BATCHES:
            raise ValidationError("Batch must be morning or evening.")
        if entry.status not in ATTENDANCE_STATUSES:
            raise ValidationError("Attendance status must be present or absent.")
    return attendance_date


def validate_role(role: Optional[str]) -> str:
    if role not in USER_ROLES:
        raise ValidationError("Invalid role selected.")
    return role


def validate_user_access_input(data: UserAccessInput) -> UserAccessInput:
    email = (data.email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required.")
    if not EMAIL_RE.match(email):
        raise ValidationError("Enter a valid email.")
    if len(data.password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    validate_role(data.role)
    return UserAccessInput(
        email=email,
        password=data.password,
        role=data.role,
        assigned_teachers=tuple(data.assigned_teachers or ()),
    )


def validate_announcement_input(data: AnnouncementInput) -> AnnouncementInput:
    title = (data.title or "").strip()
    message = (data.message or "").strip()
    if not title or not message or not (data.date or "").strip():
        raise ValidationError("Missing required fields: title, message, date")
    return AnnouncementInput(title=title, message=message, date=_require_date(data.date, "Announcement date"))
