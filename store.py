"""Per-session owner of the canonical snapshot.

``SnapshotStore`` keeps the unfiltered snapshot returned by the data service,
applies every successful mutation to it by swapping in a new immutable
snapshot, and hands out the role-scoped view. A rejected mutation leaves the
previous snapshot untouched.
"""
from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Iterable, Optional

from models import (
    Announcement,
    AnnouncementInput,
    AppDataSnapshot,
    AttendanceDraft,
    AttendanceRecord,
    BusinessProfile,
    FinanceTransaction,
    PAYMENT_STATUSES,
    ROLE_ADMIN,
    ROLE_STUDENTS_ONLY,
    Student,
    StudentInput,
    TransactionInput,
    UserAccess,
    UserAccessInput,
)
from services.base import AppDataService
from utils.access_control import ADMIN_ONLY_MESSAGE
from utils.dues import MonthlyDuesReconciler
from utils.errors import AppDataError, AuthorizationError, NotFoundError, ValidationError
from utils.role_scope import apply_role_scope, normalize_teacher_names
from utils.student_fees import fee_status_input, primary_fee_transaction
from utils.timezone_helpers import business_today, is_month_key, to_iso_date

logger = logging.getLogger(__name__)

NO_ROLE_MESSAGE = "Your account has no access role assigned. Ask an admin to grant access."
TEACHER_SCOPE_MESSAGE = "Students you manage must be assigned to one of your teachers."
STUDENT_SCOPE_MESSAGE = "You do not have access to this student."
TRANSACTION_SCOPE_MESSAGE = "You do not have access to this transaction."


@dataclass(frozen=True)
class Actor:
    user_id: Optional[str]
    email: str = ""
    role: Optional[str] = None
    assigned_teachers: tuple[str, ...] = ()

    @classmethod
    def from_access(cls, access: UserAccess) -> "Actor":
        return cls(
            user_id=access.user_id,
            email=access.email,
            role=access.role,
            assigned_teachers=tuple(access.assigned_teachers),
        )

    @classmethod
    def owner(cls) -> "Actor":
        """The implicit operator when sign-in is switched off."""
        return cls(user_id=None, role=ROLE_ADMIN)


class SnapshotStore:
    def __init__(
        self,
        service: AppDataService,
        actor: Actor,
        auth_enabled: bool = True,
        clock: Callable[[], date] = business_today,
    ):
        self.service = service
        self.actor = actor
        self.auth_enabled = auth_enabled
        self.clock = clock
        self._canonical = AppDataSnapshot()
        self._loaded = False
        self._swap_lock = threading.Lock()
        self._toggle_lock = threading.Lock()
        self._toggles_in_flight: set[str] = set()
        self._dues = MonthlyDuesReconciler(service, clock)

    # ---------- lifecycle ----------

    def load(self) -> AppDataSnapshot:
        canonical = self.service.get_initial_snapshot()
        with self._swap_lock:
            self._canonical = canonical
            self._loaded = True
        self._reconcile_dues()
        return self.snapshot

    def close(self) -> None:
        with self._swap_lock:
            self._canonical = AppDataSnapshot()
            self._loaded = False
        with self._toggle_lock:
            self._toggles_in_flight.clear()

    @property
    def loaded(self) -> bool:
        return self._loaded

    # ---------- views ----------

    @property
    def is_admin(self) -> bool:
        return not self.auth_enabled or self.actor.role == ROLE_ADMIN

    @property
    def is_restricted(self) -> bool:
        return self.auth_enabled and self.actor.role == ROLE_STUDENTS_ONLY

    @property
    def snapshot(self) -> AppDataSnapshot:
        canonical = self._canonical
        if self.is_admin:
            return canonical
        if self.is_restricted:
            return apply_role_scope(canonical, self.actor.role, self.actor.assigned_teachers)
        return replace(canonical, students=(), finances=(), attendance=())

    def attendance_for_date(self, attendance_date: str) -> list[AttendanceRecord]:
        day = to_iso_date(attendance_date)
        return [a for a in self.snapshot.attendance if a.attendance_date == day]

    def is_toggle_pending(self, transaction_id: str) -> bool:
        with self._toggle_lock:
            return transaction_id in self._toggles_in_flight

    def _apply(self, change: Callable[[AppDataSnapshot], AppDataSnapshot]) -> None:
        with self._swap_lock:
            self._canonical = change(self._canonical)

    # ---------- authorization ----------

    def _require_admin(self) -> None:
        if not self.is_admin:
            logger.warning("Denied admin-only action for %s", self.actor.email or self.actor.user_id)
            raise AuthorizationError(ADMIN_ONLY_MESSAGE if self.is_restricted else NO_ROLE_MESSAGE)

    def _require_writer(self) -> None:
        if not (self.is_admin or self.is_restricted):
            raise AuthorizationError(NO_ROLE_MESSAGE)

    def _require_assigned_teacher(self, teacher: Optional[str]) -> None:
        allowed = {name.lower() for name in normalize_teacher_names(self.actor.assigned_teachers)}
        if (teacher or "").strip().lower() not in allowed:
            raise AuthorizationError(TEACHER_SCOPE_MESSAGE)

    def _require_visible_students(self, student_ids: Iterable[Optional[str]]) -> None:
        visible = {s.id for s in self.snapshot.students}
        for student_id in student_ids:
            if student_id not in visible:
                logger.warning("Denied access to student %s for %s", student_id, self.actor.email)
                raise AuthorizationError(STUDENT_SCOPE_MESSAGE)

    def _require_visible_transaction(self, transaction_id: str) -> None:
        if not any(f.id == transaction_id for f in self.snapshot.finances):
            raise AuthorizationError(TRANSACTION_SCOPE_MESSAGE)

    # ---------- monthly dues ----------

    def ensure_current_month_dues(self) -> list[FinanceTransaction]:
        # Restricted sessions only ever see part of the roster
        if not self.is_admin or not self._loaded:
            return []
        canonical = self._canonical
        created = self._dues.run(canonical.students, canonical.finances)
        if created:
            self._apply(lambda snap: replace(snap, finances=tuple(created) + snap.finances))
        return created

    def _reconcile_dues(self) -> None:
        # The triggering change is already committed; a failed pass retries on the next trigger
        try:
            self.ensure_current_month_dues()
        except AppDataError as exc:
            logger.error("Monthly dues pass failed: %s", exc.message)

    # ---------- students ----------

    def add_student(self, data: StudentInput) -> Student:
        self._require_writer()
        if self.is_restricted:
            self._require_assigned_teacher(data.teacher)
        created = self.service.add_student(data)
        self._apply(lambda snap: replace(snap, students=(created,) + snap.students))
        self._reconcile_dues()
        return created

    def update_student(self, student_id: str, data: StudentInput) -> Student:
        self._require_writer()
        if self.is_restricted:
            self._require_visible_students([student_id])
            self._require_assigned_teacher(data.teacher)
        updated = self.service.update_student(student_id, data)
        self._apply(lambda snap: replace(
            snap, students=tuple(updated if s.id == student_id else s for s in snap.students)
        ))
        self._reconcile_dues()
        return updated

    def delete_student(self, student_id: str) -> None:
        self._require_writer()
        if self.is_restricted:
            self._require_visible_students([student_id])
        self.service.delete_student(student_id)
        self._apply(lambda snap: replace(
            snap,
            students=tuple(s for s in snap.students if s.id != student_id),
            attendance=tuple(a for a in snap.attendance if a.student_id != student_id),
            finances=tuple(
                replace(f, student_id=None) if f.student_id == student_id else f
                for f in snap.finances
            ),
        ))

    # ---------- finances ----------

    def add_transaction(self, data: TransactionInput) -> FinanceTransaction:
        self._require_writer()
        if self.is_restricted:
            self._require_visible_students([data.student_id])
        created = self.service.add_transaction(data)
        self._apply(lambda snap: replace(snap, finances=(created,) + snap.finances))
        return created

    def update_transaction(self, transaction_id: str, data: TransactionInput) -> FinanceTransaction:
        self._require_writer()
        if self.is_restricted:
            self._require_visible_transaction(transaction_id)
            self._require_visible_students([data.student_id])
        updated = self.service.update_transaction(transaction_id, data)
        self._swap_transaction(updated)
        self._reconcile_dues()
        return updated

    def delete_transaction(self, transaction_id: str) -> None:
        self._require_writer()
        if self.is_restricted:
            self._require_visible_transaction(transaction_id)
        self.service.delete_transaction(transaction_id)
        self._apply(lambda snap: replace(
            snap, finances=tuple(f for f in snap.finances if f.id != transaction_id)
        ))
        self._reconcile_dues()

    def toggle_transaction_status(self, transaction_id: str) -> Optional[FinanceTransaction]:
        """Flip paid/pending. Returns ``None`` if a toggle for this row is already running."""
        self._require_writer()
        if self.is_restricted:
            self._require_visible_transaction(transaction_id)
        with self._toggle_lock:
            if transaction_id in self._toggles_in_flight:
                logger.debug("Toggle for %s already in flight; request dropped", transaction_id)
                return None
            self._toggles_in_flight.add(transaction_id)
        try:
            updated = self.service.toggle_transaction_status(transaction_id)
        finally:
            with self._toggle_lock:
                self._toggles_in_flight.discard(transaction_id)
        self._swap_transaction(updated)
        return updated

    def _swap_transaction(self, updated: FinanceTransaction) -> None:
        self._apply(lambda snap: replace(
            snap, finances=tuple(updated if f.id == updated.id else f for f in snap.finances)
        ))

    # ---------- per-student fees ----------

    def visible_student(self, student_id: str) -> Student:
        for student in self.snapshot.students:
            if student.id == student_id:
                return student
        raise NotFoundError("Student not found.")

    def set_monthly_fee_status(self, student_id: str, month: str, status: str) -> FinanceTransaction:
        """Mark a student's month paid or pending, creating the fee row if the month has none."""
        if not is_month_key(month):
            raise ValidationError("Month must be YYYY-MM.")
        if status not in PAYMENT_STATUSES:
            raise ValidationError("Status must be paid or pending.")
        student = self.visible_student(student_id)
        primary = primary_fee_transaction(student_id, self.snapshot.finances, month)
        data = fee_status_input(student, primary, status, month, self.clock())
        if primary is None:
            return self.add_transaction(data)
        return self.update_transaction(primary.id, data)

    def update_monthly_fee(self, student_id: str, monthly_fee: float) -> Student:
        student = self.visible_student(student_id)
        return self.update_student(student_id, StudentInput(
            name=student.name,
            phone=student.phone,
            join_date=student.join_date,
            batch=student.batch,
            monthly_fee=monthly_fee,
            status=student.status,
            teacher=student.teacher,
        ))

    # ---------- attendance ----------

    def save_attendance(self, attendance_date: str, entries: list[AttendanceDraft]) -> list[AttendanceRecord]:
        self._require_writer()
        if self.is_restricted:
            self._require_visible_students(entry.student_id for entry in entries)
        saved = self.service.save_attendance(attendance_date, entries)
        day = to_iso_date(attendance_date)
        self._apply(lambda snap: replace(
            snap,
            attendance=tuple(saved) + tuple(a for a in snap.attendance if a.attendance_date != day),
        ))
        return self.attendance_for_date(day)

    # ---------- profile / reset ----------

    def update_profile(self, profile: BusinessProfile) -> BusinessProfile:
        self._require_admin()
        saved = self.service.update_profile(profile)
        self._apply(lambda snap: replace(snap, profile=saved))
        return saved

    def reset_all_data(self) -> AppDataSnapshot:
        self._require_admin()
        fresh = self.service.reset_all_data()
        self._apply(lambda snap: fresh)
        self._reconcile_dues()
        return self.snapshot

    # ---------- announcements ----------

    def list_announcements(self) -> list[Announcement]:
        return self.service.list_announcements()

    def create_announcement(self, data: AnnouncementInput) -> Announcement:
        self._require_admin()
        return self.service.create_announcement(data)

    def delete_announcement(self, announcement_id: str) -> None:
        self._require_admin()
        self.service.delete_announcement(announcement_id)

    # ---------- user access ----------

    def list_user_access(self) -> list[UserAccess]:
        self._require_admin()
        return self.service.list_user_access()

    def create_user_access(self, data: UserAccessInput) -> UserAccess:
        self._require_admin()
        return self.service.create_user_access(self.actor.user_id, data)

    def update_user_access_role(
        self,
        user_id: str,
        role: str,
        assigned_teachers: Optional[list[str]] = None,
    ) -> UserAccess:
        self._require_admin()
        return self.service.update_user_access_role(self.actor.user_id, user_id, role, assigned_teachers)

    def delete_user_access(self, user_id: str, mode: str = "access") -> None:
        self._require_admin()
        self.service.delete_user_access(self.actor.user_id, user_id, mode)


class SessionRegistry:
    """Live sessions keyed by an opaque token kept in the signed cookie."""

    def __init__(self):
        self._entries: dict = {}
        self._lock = threading.Lock()

    def open(self, auth_session, store: SnapshotStore) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._entries[token] = (auth_session, store)
        return token

    def get(self, token: Optional[str]):
        if not token:
            return None
        with self._lock:
            return self._entries.get(token)

    def discard(self, token: Optional[str]) -> None:
        with self._lock:
            entry = self._entries.pop(token, None) if token else None
        if entry is not None:
            auth_session, store = entry
            auth_session.sign_out()
            store.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
