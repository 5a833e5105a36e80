import math
from dataclasses import replace

from flask import Blueprint, jsonify, request

from models import STUDENT_FEE_CATEGORY, AttendanceDraft, StudentInput, TransactionInput, to_number
from utils.errors import NotFoundError, ValidationError
from utils.student_fees import build_fee_rows, fee_month_options
from utils.timezone_helpers import is_month_key, month_key
from utils.web import business_clock, current_store, json_payload, ok

student_bp = Blueprint('students', __name__, url_prefix='/students')


@student_bp.route('', methods=['GET'])
def view_students():
    snap = current_store().snapshot
    status = (request.args.get('status') or '').strip()
    students = [s for s in snap.students if not status or s.status == status]
    return ok(students=[s.to_dict() for s in students])


@student_bp.route('', methods=['POST'])
def add_student():
    created = current_store().add_student(StudentInput.from_payload(json_payload()))
    return ok(201, student=created.to_dict())


@student_bp.route('/<student_id>', methods=['PUT'])
def edit_student(student_id):
    updated = current_store().update_student(student_id, StudentInput.from_payload(json_payload()))
    return ok(student=updated.to_dict())


@student_bp.route('/<student_id>', methods=['DELETE'])
def delete_student(student_id):
    current_store().delete_student(student_id)
    return ok(deleted=student_id)


# ---------- Attendance ----------

@student_bp.route('/attendance', methods=['GET'])
def attendance_for_day():
    day = (request.args.get('date') or '').strip() or business_clock()().isoformat()
    store = current_store()
    return ok(date=day, records=[a.to_dict() for a in store.attendance_for_date(day)])


@student_bp.route('/attendance', methods=['POST'])
def save_attendance():
    payload = json_payload()
    entries = payload.get('entries')
    if not isinstance(entries, list):
        raise ValidationError("Attendance entries must be a list.")
    drafts = [AttendanceDraft.from_payload(e) for e in entries if isinstance(e, dict)]
    if len(drafts) != len(entries):
        raise ValidationError("Each attendance entry must be an object.")
    day = str(payload.get('date') or '')
    records = current_store().save_attendance(day, drafts)
    return ok(date=day, records=[a.to_dict() for a in records])


# ---------- Fee history ----------

def _student_transaction(store, student_id, transaction_id):
    store.visible_student(student_id)
    for item in store.snapshot.finances:
        if item.id == transaction_id and item.student_id == student_id:
            return item
    raise NotFoundError("Transaction not found.")


@student_bp.route('/<student_id>/transactions', methods=['GET'])
def student_transactions(student_id):
    store = current_store()
    store.visible_student(student_id)
    rows = [f for f in store.snapshot.finances if f.student_id == student_id]
    return ok(transactions=[f.to_dict() for f in rows])


@student_bp.route('/<student_id>/transactions', methods=['POST'])
def record_student_payment(student_id):
    store = current_store()
    store.visible_student(student_id)
    payload = json_payload()
    payload.setdefault('category', STUDENT_FEE_CATEGORY)
    payload.setdefault('type', 'income')
    data = replace(TransactionInput.from_payload(payload), student_id=student_id)
    created = store.add_transaction(data)
    return ok(201, transaction=created.to_dict())


@student_bp.route('/<student_id>/transactions/<transaction_id>', methods=['PUT'])
def edit_student_payment(student_id, transaction_id):
    store = current_store()
    _student_transaction(store, student_id, transaction_id)
    payload = json_payload()
    payload.setdefault('category', STUDENT_FEE_CATEGORY)
    payload.setdefault('type', 'income')
    data = replace(TransactionInput.from_payload(payload), student_id=student_id)
    updated = store.update_transaction(transaction_id, data)
    return ok(transaction=updated.to_dict())


@student_bp.route('/<student_id>/transactions/<transaction_id>/toggle', methods=['POST'])
def toggle_student_payment(student_id, transaction_id):
    store = current_store()
    _student_transaction(store, student_id, transaction_id)
    updated = store.toggle_transaction_status(transaction_id)
    if updated is None:
        return jsonify({
            "ok": False,
            "error": "A status change for this transaction is already in progress.",
        }), 409
    return ok(transaction=updated.to_dict())


# ---------- Monthly fee status ----------

@student_bp.route('/fees', methods=['GET'])
def monthly_fee_status():
    """One row per active student for the month, marked paid from its primary fee transaction."""
    today = business_clock()()
    month = (request.args.get('month') or '').strip() or month_key(today)
    if not is_month_key(month):
        raise ValidationError("Month must be YYYY-MM.")
    snap = current_store().snapshot
    return ok(
        month=month,
        monthOptions=fee_month_options(snap.finances, today),
        rows=build_fee_rows(snap.students, snap.finances, month, request.args.get('search') or ''),
    )


@student_bp.route('/<student_id>/fee-status', methods=['PUT'])
def set_fee_status(student_id):
    payload = json_payload()
    month = str(payload.get('month') or '').strip() or month_key(business_clock()())
    paid = payload.get('paid')
    status = ('paid' if paid else 'pending') if isinstance(paid, bool) else str(payload.get('status') or '')
    saved = current_store().set_monthly_fee_status(student_id, month, status)
    return ok(month=month, transaction=saved.to_dict())


@student_bp.route('/<student_id>/monthly-fee', methods=['PUT'])
def set_monthly_fee(student_id):
    payload = json_payload()
    raw = payload.get('monthlyFee', payload.get('monthly_fee'))
    if raw in (None, ''):
        raise ValidationError("Monthly fee is required.")
    updated = current_store().update_monthly_fee(student_id, to_number(raw, math.nan))
    return ok(student=updated.to_dict())
