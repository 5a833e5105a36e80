"""MySQL-backed data service.

Raw ``mysql.connector`` SQL with one short-lived connection per operation;
each mutation runs in a single transaction and re-reads what it wrote so
callers get server-assigned ids and normalized values back.
"""
from __future__ import annotations

import json
import logging
import uuid
from contextlib import contextmanager, suppress
from datetime import date
from typing import Callable, Iterator, Optional

import mysql.connector

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
from services.base import (
    AppDataService,
    map_announcement_row,
    map_attendance_row,
    map_finance_row,
    map_profile_row,
    map_student_row,
    map_user_access_row,
)
from utils.access_control import ensure_access_change_allowed, ensure_admin, normalize_stored_role
from utils.db_helpers import ensure_schema
from utils.demo_data import DEMO_PROFILE, build_demo_snapshot, student_lookup_key
from utils.errors import AppDataError, NotFoundError, ValidationError, wrap_driver_error
from utils.role_scope import normalize_teacher_names
from utils.schema import is_missing_table, select_rows, write_row
from utils.security import hash_password, verify_password
from utils.timezone_helpers import business_today

logger = logging.getLogger(__name__)

STUDENT_REQUIRED = ("id", "name", "phone", "join_date", "status", "monthly_fee")
STUDENT_OPTIONAL = ("batch", "teacher")
FINANCE_REQUIRED = (
    "id", "transaction_date", "category", "type", "amount", "status", "description", "student_id",
)
FINANCE_OPTIONAL = ("note",)
ATTENDANCE_REQUIRED = ("id", "student_id", "attendance_date", "status")
ATTENDANCE_OPTIONAL = ("student_name", "batch", "teacher", "note")
ANNOUNCEMENT_COLUMNS = "id, title, message, announcement_date, created_at"
ATTENDANCE_CACHED = ("student_name", "batch", "teacher")
USER_SOURCE = "app_users u LEFT JOIN app_user_roles r ON r.user_id = u.id"
USER_REQUIRED = ("u.id AS user_id", "u.email", "u.created_at", "r.role")
USER_OPTIONAL = ("r.assigned_teachers",)
PROFILE_ID = 1


class MySQLAppDataService(AppDataService):
    def __init__(
        self,
        connect: Callable[[], object],
        clock: Callable[[], date] = business_today,
    ):
        self._connect = connect
        self._clock = clock

    @contextmanager
    def _connection(self, action: str) -> Iterator[object]:
        """Yield a connection; commit on success, roll back and translate on failure."""
        try:
            conn = self._connect()
        except (mysql.connector.Error, OSError) as exc:
            logger.error("Database connection failed while trying to %s: %s", action, exc)
            raise wrap_driver_error(action, exc) from exc
        try:
            yield conn
            conn.commit()
        except AppDataError:
            with suppress(mysql.connector.Error):
                conn.rollback()
            raise
        except (mysql.connector.Error, OSError) as exc:
            with suppress(mysql.connector.Error):
                conn.rollback()
            logger.error("Database error while trying to %s: %s", action, exc)
            raise wrap_driver_error(action, exc) from exc
        finally:
            with suppress(mysql.connector.Error):
                conn.close()

    def ensure_schema(self) -> None:
        with self._connection("prepare database tables") as conn:
            ensure_schema(conn)

    # ---------- reads ----------

    def _fetch_students(self, cur, where: str = "", params=()) -> list[Student]:
        try:
            rows = select_rows(
                cur, "students", STUDENT_REQUIRED, STUDENT_OPTIONAL,
                where=where, params=params, order_by="join_date DESC, id DESC",
            )
        except mysql.connector.Error as exc:
            if is_missing_table(exc, "students"):
                logger.warning("students table is missing; treating as empty")
                return []
            raise
        return [map_student_row(row) for row in rows]

    def _fetch_finances(self, cur, where: str = "", params=()) -> list[FinanceTransaction]:
        try:
            rows = select_rows(
                cur, "finances", FINANCE_REQUIRED, FINANCE_OPTIONAL,
                where=where, params=params, order_by="transaction_date DESC, id DESC",
            )
        except mysql.connector.Error as exc:
            if is_missing_table(exc, "finances"):
                logger.warning("finances table is missing; treating as empty")
                return []
            raise
        return [map_finance_row(row) for row in rows]

    def _fetch_attendance(
        self,
        cur,
        where: str = "",
        params=(),
        students: Optional[dict] = None,
    ) -> list[AttendanceRecord]:
        try:
            rows = select_rows(
                cur, "attendance", ATTENDANCE_REQUIRED, ATTENDANCE_OPTIONAL,
                where=where, params=params, order_by="attendance_date DESC, id DESC",
            )
        except mysql.connector.Error as exc:
            if is_missing_table(exc, "attendance"):
                logger.warning("attendance table is missing; run the schema setup to enable attendance")
                return []
            raise
        needs_backfill = any(not row.get(col) for row in rows for col in ATTENDANCE_CACHED)
        if needs_backfill and students is None:
            students = {s.id: s for s in self._fetch_students(cur)}
        return [map_attendance_row(row, students) for row in rows]

    def _fetch_profile(self, cur) -> BusinessProfile:
        try:
            cur.execute(
                "SELECT business_name, owner_name, phone, address FROM business_profile WHERE id = %s",
                (PROFILE_ID,),
            )
            row = cur.fetchone()
        except mysql.connector.Error as exc:
            if is_missing_table(exc, "business_profile"):
                return DEMO_PROFILE
            raise
        return map_profile_row(row, DEMO_PROFILE)

    def get_initial_snapshot(self) -> AppDataSnapshot:
        with self._connection("load app data") as conn:
            cur = conn.cursor(dictionary=True)
            students = self._fetch_students(cur)
            finances = self._fetch_finances(cur)
            attendance = self._fetch_attendance(cur, students={s.id: s for s in students})
            profile = self._fetch_profile(cur)
        return AppDataSnapshot(
            students=tuple(students),
            finances=tuple(finances),
            attendance=tuple(attendance),
            profile=profile,
        )

    @staticmethod
    def _lock_row(cur, table: str, row_id: str, columns: str = "id") -> Optional[dict]:
        cur.execute(f"SELECT {columns} FROM {table} WHERE id = %s FOR UPDATE", (row_id,))
        return cur.fetchone()

    # ---------- students ----------

    def add_student(self, data: StudentInput) -> Student:
        data = validate_student_input(data)
        payload = {
            "name": data.name,
            "phone": data.phone,
            "batch": data.batch or DEFAULT_BATCH,
            "join_date": data.join_date,
            "status": data.status or "active",
            "monthly_fee": DEFAULT_MONTHLY_FEE if data.monthly_fee is None else data.monthly_fee,
            "teacher": data.teacher,
        }
        with self._connection("add student") as conn:
            cur = conn.cursor(dictionary=True)
            new_id = write_row(cur, "students", payload, STUDENT_OPTIONAL)
            rows = self._fetch_students(cur, "id = %s", (new_id,))
        if not rows:
            raise AppDataError("Failed to add student: the new row could not be read back.")
        return rows[0]

    def update_student(self, student_id: str, data: StudentInput) -> Student:
        data = validate_student_input(data)
        payload = {"name": data.name, "phone": data.phone, "join_date": data.join_date, "teacher": data.teacher}
        if data.batch:
            payload["batch"] = data.batch
        if data.status:
            payload["status"] = data.status
        if data.monthly_fee is not None:
            payload["monthly_fee"] = data.monthly_fee
        with self._connection("update student") as conn:
            cur = conn.cursor(dictionary=True)
            if not self._lock_row(cur, "students", student_id):
                raise NotFoundError("Student not found.")
            write_row(cur, "students", payload, STUDENT_OPTIONAL, where="id = %s", where_params=(student_id,))
            rows = self._fetch_students(cur, "id = %s", (student_id,))
        return rows[0]

    def delete_student(self, student_id: str) -> None:
        with self._connection("delete student") as conn:
            cur = conn.cursor(dictionary=True)
            if not self._lock_row(cur, "students", student_id):
                raise NotFoundError("Student not found.")
            try:
                cur.execute("DELETE FROM attendance WHERE student_id = %s", (student_id,))
            except mysql.connector.Error as exc:
                if not is_missing_table(exc, "attendance"):
                    raise
            # Financial history is kept; only the link goes
            cur.execute("UPDATE finances SET student_id = NULL WHERE student_id = %s", (student_id,))
            cur.execute("DELETE FROM students WHERE id = %s", (student_id,))

    # ---------- finances ----------

    @staticmethod
    def _finance_payload(data: TransactionInput) -> dict:
        return {
            "transaction_date": data.transaction_date,
            "category": data.category,
            "type": data.type,
            "amount": data.amount,
            "status": data.status,
            "description": data.description,
            "note": data.note,
            "student_id": data.student_id,
        }

    def add_transaction(self, data: TransactionInput) -> FinanceTransaction:
        return self.add_transactions([data])[0]

    def add_transactions(self, items: list[TransactionInput]) -> list[FinanceTransaction]:
        cleaned = [validate_transaction_input(item) for item in items]
        if not cleaned:
            return []
        with self._connection("add transaction") as conn:
            cur = conn.cursor(dictionary=True)
            dropped: set = set()
            new_ids = [
                write_row(cur, "finances", self._finance_payload(item), FINANCE_OPTIONAL, dropped=dropped)
                for item in cleaned
            ]
            placeholders = ", ".join(["%s"] * len(new_ids))
            rows = self._fetch_finances(cur, f"id IN ({placeholders})", tuple(new_ids))
        by_id = {row.id: row for row in rows}
        return [by_id[str(new_id)] for new_id in new_ids if str(new_id) in by_id]

    def update_transaction(self, transaction_id: str, data: TransactionInput) -> FinanceTransaction:
        data = validate_transaction_input(data)
        with self._connection("update transaction") as conn:
            cur = conn.cursor(dictionary=True)
            if not self._lock_row(cur, "finances", transaction_id):
                raise NotFoundError("Transaction not found.")
            write_row(
                cur, "finances", self._finance_payload(data), FINANCE_OPTIONAL,
                where="id = %s", where_params=(transaction_id,),
            )
            rows = self._fetch_finances(cur, "id = %s", (transaction_id,))
        return rows[0]

    def delete_transaction(self, transaction_id: str) -> None:
        with self._connection("delete transaction") as conn:
            cur = conn.cursor(dictionary=True)
            if not self._lock_row(cur, "finances", transaction_id):
                raise NotFoundError("Transaction not found.")
            cur.execute("DELETE FROM finances WHERE id = %s", (transaction_id,))

    def toggle_transaction_status(self, transaction_id: str) -> FinanceTransaction:
        with self._connection("toggle transaction status") as conn:
            cur = conn.cursor(dictionary=True)
            current = self._lock_row(cur, "finances", transaction_id, "id, status")
            if not current:
                raise NotFoundError("Transaction not found.")
            next_status = "pending" if current.get("status") == "paid" else "paid"
            cur.execute("UPDATE finances SET status = %s WHERE id = %s", (next_status, transaction_id))
            rows = self._fetch_finances(cur, "id = %s", (transaction_id,))
        return rows[0]

    # ---------- attendance ----------

    def _attendance_students(self, cur, entries: list[AttendanceDraft]) -> dict:
        ids = list(dict.fromkeys(entry.student_id for entry in entries))
        if not ids:
            return {}
        marks = ", ".join(["%s"] * len(ids))
        students = {s.id: s for s in self._fetch_students(cur, f"id IN ({marks})", tuple(ids))}
        if any(student_id not in students for student_id in ids):
            raise NotFoundError("Student not found.")
        return students

    def save_attendance(self, attendance_date: str, entries: list[AttendanceDraft]) -> list[AttendanceRecord]:
        attendance_date = validate_attendance(attendance_date, entries)
        with self._connection("save attendance") as conn:
            cur = conn.cursor(dictionary=True)
            students = self._attendance_students(cur, entries)
            dropped: set = set()
            for entry in entries:
                live = students[entry.student_id]
                payload = {
                    "student_name": (entry.student_name or "").strip() or live.name,
                    "batch": entry.batch or live.batch,
                    "teacher": entry.teacher or live.teacher,
                    "status": entry.status,
                    "note": (entry.note or "").strip() or None,
                }
                cur.execute(
                    "SELECT id FROM attendance WHERE student_id = %s AND attendance_date = %s "
                    "ORDER BY id LIMIT 1 FOR UPDATE",
                    (entry.student_id, attendance_date),
                )
                existing = cur.fetchone()
                if existing:
                    write_row(
                        cur, "attendance", payload, ATTENDANCE_OPTIONAL,
                        where="id = %s", where_params=(existing["id"],), dropped=dropped,
                    )
                else:
                    payload.update(student_id=entry.student_id, attendance_date=attendance_date)
                    write_row(cur, "attendance", payload, ATTENDANCE_OPTIONAL, dropped=dropped)
            return self._fetch_attendance(cur, "attendance_date = %s", (attendance_date,))

    # ---------- profile / reset ----------

    def update_profile(self, profile: BusinessProfile) -> BusinessProfile:
        with self._connection("save business profile") as conn:
            cur = conn.cursor(dictionary=True)
            self._write_profile(cur, profile)
            saved = self._fetch_profile(cur)
        return saved

    @staticmethod
    def _write_profile(cur, profile: BusinessProfile) -> None:
        cur.execute(
            """
            INSERT INTO business_profile (id, business_name, owner_name, phone, address)
            VALUES (%s, %s, %s, %s, %s)
            ON DUPLICATE KEY UPDATE business_name = VALUES(business_name),
                owner_name = VALUES(owner_name), phone = VALUES(phone), address = VALUES(address)
            """,
            (PROFILE_ID, profile.business_name, profile.owner_name, profile.phone, profile.address),
        )

    def reset_all_data(self) -> AppDataSnapshot:
        demo = build_demo_snapshot(self._clock())
        with self._connection("reset data") as conn:
            cur = conn.cursor(dictionary=True)
            try:
                cur.execute("DELETE FROM attendance")
            except mysql.connector.Error as exc:
                if not is_missing_table(exc, "attendance"):
                    raise
            cur.execute("DELETE FROM finances")
            cur.execute("DELETE FROM students")

            dropped: set = set()
            for student in demo.students:
                write_row(cur, "students", {
                    "name": student.name,
                    "phone": student.phone,
                    "batch": student.batch,
                    "join_date": student.join_date,
                    "status": student.status,
                    "monthly_fee": student.monthly_fee,
                    "teacher": student.teacher,
                }, STUDENT_OPTIONAL, dropped=dropped)

            # Demo ids are placeholders; re-link by name + phone
            cur.execute("SELECT id, name, phone FROM students")
            id_by_key = {student_lookup_key(r["name"], r["phone"]): str(r["id"]) for r in cur.fetchall()}
            new_ids = {
                s.id: id_by_key[student_lookup_key(s.name, s.phone)]
                for s in demo.students
                if student_lookup_key(s.name, s.phone) in id_by_key
            }

            dropped = set()
            for item in demo.finances:
                payload = self._finance_payload(item)
                payload["student_id"] = new_ids.get(item.student_id) if item.student_id else None
                write_row(cur, "finances", payload, FINANCE_OPTIONAL, dropped=dropped)

            dropped = set()
            for record in demo.attendance:
                if record.student_id not in new_ids:
                    continue
                write_row(cur, "attendance", {
                    "student_id": new_ids[record.student_id],
                    "student_name": record.student_name,
                    "batch": record.batch,
                    "teacher": record.teacher,
                    "attendance_date": record.attendance_date,
                    "status": record.status,
                    "note": record.note,
                }, ATTENDANCE_OPTIONAL, dropped=dropped)

            self._write_profile(cur, demo.profile)
        logger.info("Database reset to the demo dataset")
        return self.get_initial_snapshot()

    # ---------- user access ----------

    def _fetch_users(self, cur, where: str = "", params=()) -> list[UserAccess]:
        try:
            rows = select_rows(
                cur, USER_SOURCE, USER_REQUIRED, USER_OPTIONAL,
                where=where, params=params, order_by="u.created_at DESC", table="app_user_roles",
            )
        except mysql.connector.Error as exc:
            if is_missing_table(exc, "app_users") or is_missing_table(exc, "app_user_roles"):
                logger.warning("user tables are missing; no users can sign in yet")
                return []
            raise
        return [map_user_access_row(row) for row in rows]

    def _roles(self, cur) -> dict:
        cur.execute(
            "SELECT u.id AS user_id, r.role FROM app_users u "
            "LEFT JOIN app_user_roles r ON r.user_id = u.id FOR UPDATE"
        )
        return {str(row["user_id"]): normalize_stored_role(row.get("role")) for row in cur.fetchall()}

    def _write_role(self, cur, user_id: str, role: Optional[str], teachers: list[str]) -> None:
        payload = {"role": role, "assigned_teachers": json.dumps(teachers)}
        cur.execute("SELECT user_id FROM app_user_roles WHERE user_id = %s", (user_id,))
        if cur.fetchone():
            write_row(cur, "app_user_roles", payload, ("assigned_teachers",),
                      where="user_id = %s", where_params=(user_id,))
        else:
            payload["user_id"] = user_id
            write_row(cur, "app_user_roles", payload, ("assigned_teachers",))

    def authenticate(self, email: str, password: str) -> Optional[UserAccess]:
        email = (email or "").strip().lower()
        with self._connection("sign in") as conn:
            cur = conn.cursor(dictionary=True)
            cur.execute("SELECT id, password_hash FROM app_users WHERE email = %s LIMIT 1", (email,))
            row = cur.fetchone()
            if not row or not verify_password(row.get("password_hash"), password):
                return None
            users = self._fetch_users(cur, "u.id = %s", (str(row["id"]),))
        return users[0] if users else None

    def get_user_access(self, user_id: str) -> Optional[UserAccess]:
        with self._connection("load user access") as conn:
            users = self._fetch_users(conn.cursor(dictionary=True), "u.id = %s", (user_id,))
        return users[0] if users else None

    def list_user_access(self) -> list[UserAccess]:
        with self._connection("load users and access roles") as conn:
            return self._fetch_users(conn.cursor(dictionary=True))

    def update_user_access_role(
        self,
        actor_id: str,
        user_id: str,
        role: str,
        assigned_teachers: Optional[list[str]] = None,
    ) -> UserAccess:
        validate_role(role)
        teachers = normalize_teacher_names(assigned_teachers) if role == ROLE_STUDENTS_ONLY else []
        with self._connection("update user access role") as conn:
            cur = conn.cursor(dictionary=True)
            roles = self._roles(cur)
            ensure_access_change_allowed(actor_id, user_id, roles, role)
            if user_id not in roles:
                raise NotFoundError("User not found.")
            self._write_role(cur, user_id, role, teachers)
            users = self._fetch_users(cur, "u.id = %s", (user_id,))
        return users[0]

    def create_user_access(self, actor_id: str, data: UserAccessInput) -> UserAccess:
        with self._connection("create user") as conn:
            cur = conn.cursor(dictionary=True)
            ensure_admin(actor_id, self._roles(cur))
            data = validate_user_access_input(data)
            cur.execute("SELECT id FROM app_users WHERE email = %s", (data.email,))
            if cur.fetchone():
                raise ValidationError("User with this email already exists.")
            user_id = str(uuid.uuid4())
            cur.execute(
                "INSERT INTO app_users (id, email, password_hash) VALUES (%s, %s, %s)",
                (user_id, data.email, hash_password(data.password)),
            )
            teachers = normalize_teacher_names(data.assigned_teachers) if data.role == ROLE_STUDENTS_ONLY else []
            self._write_role(cur, user_id, data.role, teachers)
            users = self._fetch_users(cur, "u.id = %s", (user_id,))
        return users[0]

    def delete_user_access(self, actor_id: str, user_id: str, mode: str = "access") -> None:
        if mode not in DELETE_MODES:
            raise ValidationError("Invalid delete mode. Use mode=access or mode=user.")
        with self._connection("delete user/access") as conn:
            cur = conn.cursor(dictionary=True)
            roles = self._roles(cur)
            ensure_access_change_allowed(actor_id, user_id, roles, None)
            if user_id not in roles:
                raise NotFoundError("User not found.")
            cur.execute("DELETE FROM app_user_roles WHERE user_id = %s", (user_id,))
            if mode == "user":
                cur.execute("DELETE FROM app_users WHERE id = %s", (user_id,))

    # ---------- announcements ----------

    def list_announcements(self) -> list[Announcement]:
        with self._connection("load announcements") as conn:
            cur = conn.cursor(dictionary=True)
            try:
                cur.execute(
                    f"SELECT {ANNOUNCEMENT_COLUMNS} FROM announcements "
                    "ORDER BY announcement_date DESC, id DESC"
                )
            except mysql.connector.Error as exc:
                if is_missing_table(exc, "announcements"):
                    logger.warning("announcements table is missing; treating as empty")
                    return []
                raise
            rows = cur.fetchall()
        return [map_announcement_row(row) for row in rows]

    def create_announcement(self, data: AnnouncementInput) -> Announcement:
        data = validate_announcement_input(data)
        with self._connection("create announcement") as conn:
            cur = conn.cursor(dictionary=True)
            cur.execute(
                "INSERT INTO announcements (title, message, announcement_date) VALUES (%s, %s, %s)",
                (data.title, data.message, data.date),
            )
            new_id = cur.lastrowid
            cur.execute(f"SELECT {ANNOUNCEMENT_COLUMNS} FROM announcements WHERE id = %s", (new_id,))
            row = cur.fetchone()
        if not row:
            raise AppDataError("Failed to create announcement: the new row could not be read back.")
        return map_announcement_row(row)

    def delete_announcement(self, announcement_id: str) -> None:
        with self._connection("delete announcement") as conn:
            cur = conn.cursor(dictionary=True)
            if not self._lock_row(cur, "announcements", announcement_id):
                raise NotFoundError("Announcement not found.")
            cur.execute("DELETE FROM announcements WHERE id = %s", (announcement_id,))
