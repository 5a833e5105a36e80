"""In-memory data service for local, offline and demo use.

Implements the same contract as the MySQL service, including the
last-admin and self-lockout rules, over plain Python structures.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Optional

from models import (
    Announcement,
    AnnouncementInput,
    AppDataSnapshot,
    AttendanceDraft,
    AttendanceRecord,
    BusinessProfile,
    DEFAULT_BATCH,
    DEFAULT_MONTHLY_FEE,
    DELETE_MODES,
    FinanceTransaction,
    ROLE_ADMIN,
    ROLE_STUDENTS_ONLY,
    Student,
    StudentInput,
    TransactionInput,
    UserAccess,
    UserAccessInput,
    validate_announcement_input,
    validate_attendance,
    validate_role,
    validate_student_input,
    validate_transaction_input,
    validate_user_access_input,
)
from services.base import AppDataService, utc_timestamp
from utils.access_control import ensure_access_change_allowed, ensure_admin
from utils.demo_data import build_demo_snapshot
from utils.errors import NotFoundError, ValidationError
from utils.role_scope import normalize_teacher_names
from utils.security import hash_password, verify_password
from utils.timezone_helpers import business_today

logger = logging.getLogger(__name__)


def create_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4()}"


@dataclass
class _Account:
    access: UserAccess
    password_hash: str


class MockAppDataService(AppDataService):
    def __init__(
        self,
        admin_email: str = "owner@learnngrow.app",
        admin_password: str = "learnngrow",
        clock: Callable[[], date] = business_today,
    ):
        self._clock = clock
        self._snapshot = build_demo_snapshot(clock())
        self._accounts: list[_Account] = [
            _Account(
                access=UserAccess(
                    user_id="mock-owner",
                    email=admin_email.strip().lower(),
                    role=ROLE_ADMIN,
                    created_at=utc_timestamp(),
                ),
                password_hash=hash_password(admin_password),
            )
        ]
        self._announcements: list[Announcement] = []

    # ---------- snapshot ----------

    def get_initial_snapshot(self) -> AppDataSnapshot:
        return self._snapshot

    def _set(self, **changes) -> None:
        self._snapshot = replace(self._snapshot, **changes)

    # ---------- students ----------

    def add_student(self, data: StudentInput) -> Student:
        data = validate_student_input(data)
        student = Student(
            id=create_id("stu"),
            name=data.name,
            phone=data.phone,
            batch=data.batch or DEFAULT_BATCH,
            join_date=data.join_date,
            status=data.status or "active",
            monthly_fee=DEFAULT_MONTHLY_FEE if data.monthly_fee is None else data.monthly_fee,
            teacher=data.teacher,
        )
        self._set(students=(student,) + self._snapshot.students)
        return student

    def _student(self, student_id: str) -> Student:
        for student in self._snapshot.students:
            if student.id == student_id:
                return student
        raise NotFoundError("Student not found.")

    def update_student(self, student_id: str, data: StudentInput) -> Student:
        data = validate_student_input(data)
        current = self._student(student_id)
        updated = replace(
            current,
            name=data.name,
            phone=data.phone,
            batch=data.batch or current.batch,
            join_date=data.join_date,
            status=data.status or current.status,
            monthly_fee=current.monthly_fee if data.monthly_fee is None else data.monthly_fee,
            teacher=data.teacher,
        )
        self._set(students=tuple(updated if s.id == student_id else s for s in self._snapshot.students))
        return updated

    def delete_student(self, student_id: str) -> None:
        self._student(student_id)
        snap = self._snapshot
        self._set(
            students=tuple(s for s in snap.students if s.id != student_id),
            attendance=tuple(a for a in snap.attendance if a.student_id != student_id),
            finances=tuple(
                replace(f, student_id=None) if f.student_id == student_id else f
                for f in snap.finances
            ),
        )

    # ---------- finances ----------

    @staticmethod
    def _new_transaction(data: TransactionInput) -> FinanceTransaction:
        return FinanceTransaction(
            id=create_id("fin"),
            transaction_date=data.transaction_date,
            category=data.category,
            type=data.type,
            amount=data.amount,
            status=data.status,
            description=data.description,
            note=data.note,
            student_id=data.student_id,
        )

    def add_transaction(self, data: TransactionInput) -> FinanceTransaction:
        return self.add_transactions([data])[0]

    def add_transactions(self, items: list[TransactionInput]) -> list[FinanceTransaction]:
        # Validate everything first so a bad item stores nothing
        cleaned = [validate_transaction_input(item) for item in items]
        created = [self._new_transaction(item) for item in cleaned]
        self._set(finances=tuple(created) + self._snapshot.finances)
        return created

    def _transaction(self, transaction_id: str) -> FinanceTransaction:
        for item in self._snapshot.finances:
            if item.id == transaction_id:
                return item
        raise NotFoundError("Transaction not found.")

    def _swap_transaction(self, updated: FinanceTransaction) -> FinanceTransaction:
        self._set(finances=tuple(updated if f.id == updated.id else f for f in self._snapshot.finances))
        return updated

    def update_transaction(self, transaction_id: str, data: TransactionInput) -> FinanceTransaction:
        data = validate_transaction_input(data)
        current = self._transaction(transaction_id)
        return self._swap_transaction(
            replace(
                current,
                transaction_date=data.transaction_date,
                category=data.category,
                type=data.type,
                amount=data.amount,
                status=data.status,
                description=data.description,
                note=data.note,
                student_id=data.student_id,
            )
        )

    def delete_transaction(self, transaction_id: str) -> None:
        self._transaction(transaction_id)
        self._set(finances=tuple(f for f in self._snapshot.finances if f.id != transaction_id))

    def toggle_transaction_status(self, transaction_id: str) -> FinanceTransaction:
        current = self._transaction(transaction_id)
        next_status = "pending" if current.status == "paid" else "paid"
        return self._swap_transaction(replace(current, status=next_status))

    # ---------- attendance ----------

    def save_attendance(self, attendance_date: str, entries: list[AttendanceDraft]) -> list[AttendanceRecord]:
        attendance_date = validate_attendance(attendance_date, entries)
        students = {s.id: s for s in self._snapshot.students}
        if any(entry.student_id not in students for entry in entries):
            raise NotFoundError("Student not found.")
        kept = [a for a in self._snapshot.attendance if a.attendance_date != attendance_date]
        by_student = {
            a.student_id: a
            for a in self._snapshot.attendance
            if a.attendance_date == attendance_date
        }
        for entry in entries:
            current = by_student.get(entry.student_id)
            live = students[entry.student_id]
            by_student[entry.student_id] = AttendanceRecord(
                id=current.id if current else create_id("att"),
                student_id=entry.student_id,
                student_name=(entry.student_name or "").strip() or live.name,
                batch=entry.batch or live.batch,
                attendance_date=attendance_date,
                status=entry.status,
                note=(entry.note or "").strip() or None,
                teacher=entry.teacher or live.teacher,
            )
        saved = list(by_student.values())
        self._set(attendance=tuple(kept + saved))
        return saved

    # ---------- profile / reset ----------

    def update_profile(self, profile: BusinessProfile) -> BusinessProfile:
        self._set(profile=profile)
        return profile

    def reset_all_data(self) -> AppDataSnapshot:
        self._snapshot = build_demo_snapshot(self._clock())
        logger.info("Mock data store reset to the demo dataset")
        return self._snapshot

    # ---------- user access ----------

    def _roles(self) -> dict[str, Optional[str]]:
        return {a.access.user_id: a.access.role for a in self._accounts}

    def _account(self, user_id: str) -> _Account:
        for account in self._accounts:
            if account.access.user_id == user_id:
                return account
        raise NotFoundError("User not found.")

    def authenticate(self, email: str, password: str) -> Optional[UserAccess]:
        email = (email or "").strip().lower()
        for account in self._accounts:
            if account.access.email == email and verify_password(account.password_hash, password):
                return account.access
        return None

    def get_user_access(self, user_id: str) -> Optional[UserAccess]:
        for account in self._accounts:
            if account.access.user_id == user_id:
                return account.access
        return None

    def list_user_access(self) -> list[UserAccess]:
        return [a.access for a in self._accounts]

    def update_user_access_role(
        self,
        actor_id: str,
        user_id: str,
        role: str,
        assigned_teachers: Optional[list[str]] = None,
    ) -> UserAccess:
        validate_role(role)
        ensure_access_change_allowed(actor_id, user_id, self._roles(), role)
        account = self._account(user_id)
        teachers = normalize_teacher_names(assigned_teachers) if role == ROLE_STUDENTS_ONLY else []
        account.access = replace(account.access, role=role, assigned_teachers=tuple(teachers))
        return account.access

    def create_user_access(self, actor_id: str, data: UserAccessInput) -> UserAccess:
        ensure_admin(actor_id, self._roles())
        data = validate_user_access_input(data)
        if any(a.access.email == data.email for a in self._accounts):
            raise ValidationError("User with this email already exists.")
        teachers = normalize_teacher_names(data.assigned_teachers) if data.role == ROLE_STUDENTS_ONLY else []
        access = UserAccess(
            user_id=create_id("usr"),
            email=data.email,
            role=data.role,
            created_at=utc_timestamp(),
            assigned_teachers=tuple(teachers),
        )
        self._accounts.insert(0, _Account(access=access, password_hash=hash_password(data.password)))
        return access

    def delete_user_access(self, actor_id: str, user_id: str, mode: str = "access") -> None:
        if mode not in DELETE_MODES:
            raise ValidationError("Invalid delete mode. Use mode=access or mode=user.")
        ensure_access_change_allowed(actor_id, user_id, self._roles(), None)
        account = self._account(user_id)
        if mode == "user":
            self._accounts = [a for a in self._accounts if a.access.user_id != user_id]
            return
        account.access = replace(account.access, role=None, assigned_teachers=())

    # ---------- announcements ----------

    def list_announcements(self) -> list[Announcement]:
        return sorted(self._announcements, key=lambda a: (a.date, a.created_at), reverse=True)

    def create_announcement(self, data: AnnouncementInput) -> Announcement:
        data = validate_announcement_input(data)
        announcement = Announcement(
            id=create_id("ann"),
            title=data.title,
            message=data.message,
            date=data.date,
            created_at=utc_timestamp(),
        )
        self._announcements.append(announcement)
        return announcement

    def delete_announcement(self, announcement_id: str) -> None:
        if not any(a.id == announcement_id for a in self._announcements):
            raise NotFoundError("Announcement not found.")
        self._announcements = [a for a in self._announcements if a.id != announcement_id]
