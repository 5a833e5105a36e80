from datetime import date

import pytest

from models import (
    AttendanceDraft,
    BusinessProfile,
    StudentInput,
    TransactionInput,
    UserAccessInput,
)
from services.mock import MockAppDataService
from store import Actor, SessionRegistry, SnapshotStore
from utils.auth_session import AuthSession, SessionPhase
from utils.errors import AuthorizationError, TransportError, ValidationError

TODAY = date(2026, 3, 20)


def clock():
    return TODAY


@pytest.fixture
def service():
    return MockAppDataService(clock=clock)


def admin_store(service, auth_enabled=True):
    return SnapshotStore(service, Actor("mock-owner", "owner@learnngrow.app", "admin"), auth_enabled, clock)


def tutor_store(service, teachers=("Priya Nair",)):
    actor = Actor("t1", "tutor@example.org", "students_only", tuple(teachers))
    return SnapshotStore(service, actor, True, clock)


def current_dues(snapshot):
    return [
        f for f in snapshot.finances
        if f.category == "Student Fee" and f.transaction_date.startswith("2026-03") and f.student_id
    ]


def test_admin_load_generates_missing_dues_once(service):
    store = admin_store(service)
    snap = store.load()
    assert store.loaded
    assert len(snap.finances) == 21
    assert sorted(f.student_id for f in current_dues(snap)) == ["stu-001", "stu-002", "stu-003", "stu-004", "stu-006"]

    assert store.ensure_current_month_dues() == []
    assert len(admin_store(service).load().finances) == 21


def test_restricted_session_never_generates_dues(service):
    store = tutor_store(service)
    snap = store.load()
    assert len(service.get_initial_snapshot().finances) == 17
    assert {s.id for s in snap.students} == {"stu-001", "stu-003", "stu-005"}
    assert [f.id for f in snap.finances] == ["fin-014"]


def test_new_active_student_gets_a_due(service):
    store = admin_store(service)
    store.load()
    created = store.add_student(StudentInput("Tara", "77", "2026-03-18", monthly_fee=2500.0))
    due = [f for f in store.snapshot.finances if f.student_id == created.id]
    assert len(due) == 1
    assert due[0].amount == 2500.0 and due[0].status == "pending"


def test_rejected_mutation_leaves_snapshot_untouched(service):
    store = admin_store(service)
    before = store.load()
    with pytest.raises(ValidationError):
        store.add_transaction(TransactionInput("2026-03-02", "Rent", "expense", -1.0, "paid"))
    assert store.snapshot is before


def test_delete_student_updates_canonical_snapshot(service):
    store = admin_store(service)
    store.load()
    store.delete_student("stu-003")
    snap = store.snapshot
    assert all(s.id != "stu-003" for s in snap.students)
    assert all(a.student_id != "stu-003" for a in snap.attendance)
    assert next(f for f in snap.finances if f.id == "fin-014").student_id is None


def test_toggle_in_flight_drops_duplicate(service):
    store = admin_store(service)
    store.load()
    nested = []

    original = service.toggle_transaction_status

    def slow_toggle(transaction_id):
        assert store.is_toggle_pending(transaction_id)
        nested.append(store.toggle_transaction_status(transaction_id))
        return original(transaction_id)

    service.toggle_transaction_status = slow_toggle
    updated = store.toggle_transaction_status("fin-014")
    assert nested == [None]
    assert updated.status == "paid"
    assert not store.is_toggle_pending("fin-014")
    assert next(f for f in store.snapshot.finances if f.id == "fin-014").status == "paid"


def test_attendance_save_replaces_the_day(service):
    store = admin_store(service)
    store.load()
    store.save_attendance("2026-03-20", [AttendanceDraft("stu-001", "", "morning", "absent")])
    records = store.attendance_for_date("2026-03-20")
    assert len(records) == 5
    assert next(a for a in records if a.student_id == "stu-001").status == "absent"


def test_restricted_mutation_rules(service):
    store = tutor_store(service)
    store.load()

    with pytest.raises(AuthorizationError):
        store.add_student(StudentInput("Zoe", "5", "2026-03-01", teacher="Arjun Rao"))
    created = store.add_student(StudentInput("Zoe", "5", "2026-03-01", teacher="priya nair"))
    assert created.id in {s.id for s in store.snapshot.students}

    with pytest.raises(AuthorizationError):
        store.update_student("stu-002", StudentInput("Meera", "1", "2026-01-01", teacher="Priya Nair"))
    with pytest.raises(AuthorizationError):
        store.save_attendance("2026-03-20", [AttendanceDraft("stu-002", "", "evening", "present")])
    with pytest.raises(AuthorizationError):
        store.toggle_transaction_status("fin-002")
    with pytest.raises(AuthorizationError):
        store.add_transaction(TransactionInput("2026-03-02", "Rent", "expense", 10.0, "paid"))

    assert store.toggle_transaction_status("fin-014").status == "paid"
    for admin_only in (
        lambda: store.update_profile(BusinessProfile(business_name="X")),
        store.reset_all_data,
        store.list_user_access,
        lambda: store.create_user_access(UserAccessInput("x@example.org", "secret1", "admin")),
    ):
        with pytest.raises(AuthorizationError):
            admin_only()


def test_tutor_without_teachers_sees_nothing(service):
    store = tutor_store(service, teachers=())
    snap = store.load()
    assert snap.students == () and snap.finances == () and snap.attendance == ()


def test_auth_disabled_owner_is_unrestricted(service):
    store = SnapshotStore(service, Actor.owner(), auth_enabled=False, clock=clock)
    store.load()
    assert store.is_admin
    assert store.update_profile(BusinessProfile(business_name="Owner Co")).business_name == "Owner Co"


def test_reset_reloads_demo_then_reconciles(service):
    store = admin_store(service)
    store.load()
    store.delete_student("stu-001")
    snap = store.reset_all_data()
    assert len(snap.students) == 6
    assert len(snap.finances) == 21


def test_registry_discard_signs_out_and_clears(service):
    registry = SessionRegistry()
    auth = AuthSession()
    auth.begin_login()
    store = admin_store(service)
    store.load()
    token = registry.open(auth, store)
    assert registry.get(token) == (auth, store)
    registry.discard(token)
    assert registry.get(token) is None
    assert auth.phase is SessionPhase.LOGGED_OUT
    assert not store.loaded and store.snapshot.students == ()
    assert len(registry) == 0


def test_failed_dues_pass_keeps_the_committed_change(service, caplog):
    store = admin_store(service)

    def unreachable(items):
        raise TransportError("Failed to add transaction: Unable to reach the database server.")

    service.add_transactions = unreachable
    snap = store.load()
    assert store.loaded
    assert len(snap.finances) == 17

    created = store.add_student(StudentInput("Tara", "77", "2026-03-18"))
    assert created.id in {s.id for s in store.snapshot.students}
    assert len(service.get_initial_snapshot().students) == 7
    assert "Monthly dues pass failed" in caplog.text
    assert not store._dues.running
