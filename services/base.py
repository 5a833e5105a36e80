"""The data-service contract and the wire-row normalizers shared by backends.

Every mutation returns the freshly normalized entity as stored (ids
included) or raises an ``AppDataError`` subclass describing the failure.
"""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from models import (
    Announcement,
    AnnouncementInput,
    AppDataSnapshot,
    AttendanceDraft,
    AttendanceRecord,
    BusinessProfile,
    DEFAULT_BATCH,
    DEFAULT_MONTHLY_FEE,
    FinanceTransaction,
    Student,
    StudentInput,
    TransactionInput,
    UNKNOWN_STUDENT_NAME,
    UserAccess,
    UserAccessInput,
    clean_text,
    to_number,
)
from utils.access_control import normalize_stored_role
from utils.role_scope import normalize_teacher_names
from utils.timezone_helpers import to_iso_date


class AppDataService(ABC):
    @abstractmethod
    def get_initial_snapshot(self) -> AppDataSnapshot: ...

    @abstractmethod
    def add_student(self, data: StudentInput) -> Student: ...

    @abstractmethod
    def update_student(self, student_id: str, data: StudentInput) -> Student: ...

    @abstractmethod
    def delete_student(self, student_id: str) -> None:
        """Delete a student, their attendance, and unlink (not delete) their finance rows."""

    @abstractmethod
    def add_transaction(self, data: TransactionInput) -> FinanceTransaction: ...

    @abstractmethod
    def add_transactions(self, items: list[TransactionInput]) -> list[FinanceTransaction]:
        """Insert several transactions as one unit: all are stored or none."""

    @abstractmethod
    def update_transaction(self, transaction_id: str, data: TransactionInput) -> FinanceTransaction: ...

    @abstractmethod
    def delete_transaction(self, transaction_id: str) -> None: ...

    @abstractmethod
    def toggle_transaction_status(self, transaction_id: str) -> FinanceTransaction: ...

    @abstractmethod
    def save_attendance(self, attendance_date: str, entries: list[AttendanceDraft]) -> list[AttendanceRecord]:
        """Upsert marks keyed by (student, date); returns every record stored for that date."""

    @abstractmethod
    def update_profile(self, profile: BusinessProfile) -> BusinessProfile: ...

    @abstractmethod
    def reset_all_data(self) -> AppDataSnapshot: ...

    @abstractmethod
    def authenticate(self, email: str, password: str) -> Optional[UserAccess]: ...

    @abstractmethod
    def get_user_access(self, user_id: str) -> Optional[UserAccess]: ...

    @abstractmethod
    def list_user_access(self) -> list[UserAccess]: ...

    @abstractmethod
    def update_user_access_role(
        self,
        actor_id: str,
        user_id: str,
        role: str,
        assigned_teachers: Optional[list[str]] = None,
    ) -> UserAccess: ...

    @abstractmethod
    def create_user_access(self, actor_id: str, data: UserAccessInput) -> UserAccess: ...

    @abstractmethod
    def delete_user_access(self, actor_id: str, user_id: str, mode: str = "access") -> None: ...

    @abstractmethod
    def list_announcements(self) -> list[Announcement]:
        """Newest announcement date first."""

    @abstractmethod
    def create_announcement(self, data: AnnouncementInput) -> Announcement: ...

    @abstractmethod
    def delete_announcement(self, announcement_id: str) -> None: ...

    def close(self) -> None:
        return None


def utc_timestamp(value: Any = None) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if value:
        return str(value)
    return datetime.now(timezone.utc).isoformat()


# ---------- Row normalizers (snake_case wire rows -> records) ----------

def map_student_row(row: Mapping[str, Any]) -> Student:
    return Student(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        phone=str(row.get("phone") or ""),
        batch=row.get("batch") or DEFAULT_BATCH,
        join_date=to_iso_date(row.get("join_date")),
        status=row.get("status") or "active",
        monthly_fee=to_number(row.get("monthly_fee"), DEFAULT_MONTHLY_FEE),
        teacher=clean_text(row.get("teacher")),
    )


def map_finance_row(row: Mapping[str, Any]) -> FinanceTransaction:
    note = clean_text(row.get("note"))
    description = clean_text(row.get("description")) or note or ""
    student_id = row.get("student_id")
    return FinanceTransaction(
        id=str(row["id"]),
        transaction_date=to_iso_date(row.get("transaction_date")),
        category=str(row.get("category") or ""),
        type=row.get("type") or "income",
        amount=to_number(row.get("amount"), 0.0),
        status=row.get("status") or "paid",
        description=description,
        note=note,
        student_id=None if student_id is None else str(student_id),
    )


def map_attendance_row(
    row: Mapping[str, Any],
    students: Optional[Mapping[str, Student]] = None,
) -> AttendanceRecord:
    """Normalize an attendance row, backfilling the cached student fields.

    ``students`` is a lookup of live student records by id, used when the row
    (or the table) lacks ``student_name``/``batch``/``teacher``.
    """
    student_id = str(row["student_id"])
    live = (students or {}).get(student_id)
    return AttendanceRecord(
        id=str(row["id"]),
        student_id=student_id,
        student_name=(
            clean_text(row.get("student_name"))
            or (live.name if live else None)
            or UNKNOWN_STUDENT_NAME
        ),
        batch=row.get("batch") or (live.batch if live else None) or DEFAULT_BATCH,
        attendance_date=to_iso_date(row.get("attendance_date")),
        status=row.get("status") or "present",
        note=clean_text(row.get("note")),
        teacher=clean_text(row.get("teacher")) or (live.teacher if live else None),
    )


def parse_teacher_list(value: Any) -> tuple[str, ...]:
    if value is None or value == "":
        return ()
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(normalize_teacher_names(str(v) for v in value))


def map_user_access_row(row: Mapping[str, Any]) -> UserAccess:
    return UserAccess(
        user_id=str(row["user_id"]),
        email=clean_text(row.get("email")) or "No email",
        role=normalize_stored_role(row.get("role")),
        created_at=utc_timestamp(row.get("created_at")),
        assigned_teachers=parse_teacher_list(row.get("assigned_teachers")),
    )


def map_profile_row(row: Optional[Mapping[str, Any]], fallback: BusinessProfile) -> BusinessProfile:
    if not row:
        return fallback
    return BusinessProfile(
        business_name=str(row.get("business_name") or ""),
        owner_name=str(row.get("owner_name") or ""),
        phone=str(row.get("phone") or ""),
        address=str(row.get("address") or ""),
    )


def map_announcement_row(row: Mapping[str, Any]) -> Announcement:
    return Announcement(
        id=str(row["id"]),
        title=str(row.get("title") or ""),
        message=str(row.get("message") or ""),
        date=to_iso_date(row.get("announcement_date")),
        created_at=utc_timestamp(row.get("created_at")),
    )
