from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from models import AppDataSnapshot, ROLE_STUDENTS_ONLY


def normalize_teacher_names(values: Optional[Iterable[str]]) -> list[str]:
    """Trim, drop blanks and de-duplicate case-insensitively, keeping first spelling."""
    seen = set()
    names = []
    for value in values or ():
        name = (value or "").strip()
        if not name:
            continue
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        names.append(name)
    return names


def _teacher_key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def apply_role_scope(
    snapshot: AppDataSnapshot,
    role: Optional[str],
    assigned_teachers: Optional[Iterable[str]] = None,
) -> AppDataSnapshot:
    """Narrow a snapshot to what the actor may see.

    Only the students-only role is restricted. Its view keeps students whose
    teacher is assigned to the actor, their attendance (or attendance stamped
    with an assigned teacher) and finance rows linked to a kept student.
    Unlinked finance rows never show. No assigned teachers means nothing shows.
    """
    if role != ROLE_STUDENTS_ONLY:
        return snapshot

    allowed = {name.lower() for name in normalize_teacher_names(assigned_teachers)}
    if not allowed:
        return replace(snapshot, students=(), attendance=(), finances=())

    students = tuple(s for s in snapshot.students if _teacher_key(s.teacher) in allowed)
    visible_ids = {s.id for s in students}
    attendance = tuple(
        a for a in snapshot.attendance
        if a.student_id in visible_ids or _teacher_key(a.teacher) in allowed
    )
    finances = tuple(
        f for f in snapshot.finances
        if f.student_id is not None and f.student_id in visible_ids
    )
    return replace(snapshot, students=students, attendance=attendance, finances=finances)
