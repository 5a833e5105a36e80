from datetime import date

from models import ROLE_ADMIN, ROLE_STUDENTS_ONLY
from utils.demo_data import build_demo_snapshot
from utils.role_scope import apply_role_scope, normalize_teacher_names

SNAP = build_demo_snapshot(date(2026, 3, 20))


def test_admin_and_missing_role_are_unfiltered():
    assert apply_role_scope(SNAP, ROLE_ADMIN, []) is SNAP
    assert apply_role_scope(SNAP, None, None) is SNAP


def test_restricted_role_without_teachers_sees_nothing():
    scoped = apply_role_scope(SNAP, ROLE_STUDENTS_ONLY, ["  ", ""])
    assert scoped.students == () and scoped.attendance == () and scoped.finances == ()
    assert scoped.profile == SNAP.profile


def test_restricted_role_keeps_only_assigned_teachers_students():
    scoped = apply_role_scope(SNAP, ROLE_STUDENTS_ONLY, [" priya nair "])
    assert {s.id for s in scoped.students} == {"stu-001", "stu-003", "stu-005"}
    assert {a.student_id for a in scoped.attendance} == {"stu-001", "stu-003"}
    # Only the fee row linked to a visible student survives
    assert [f.id for f in scoped.finances] == ["fin-014"]


def test_every_visible_record_traces_to_an_assigned_teacher():
    scoped = apply_role_scope(SNAP, ROLE_STUDENTS_ONLY, ["Arjun Rao"])
    ids = {s.id for s in scoped.students}
    assert all(s.teacher == "Arjun Rao" for s in scoped.students)
    assert all(a.student_id in ids or a.teacher == "Arjun Rao" for a in scoped.attendance)
    assert all(f.student_id in ids for f in scoped.finances)


def test_normalize_teacher_names_dedupes_case_insensitively():
    assert normalize_teacher_names([" Priya ", "PRIYA", "", None, "Arjun"]) == ["Priya", "Arjun"]
