from flask import Blueprint, request

from models import AnnouncementInput
from utils.errors import ValidationError
from utils.metrics import (
    ALL_MONTHS_VALUE,
    calculate_dashboard_metrics,
    current_month_key,
    get_available_month_options,
    get_expense_breakdown,
    get_income_expense_trend,
)
from utils.timezone_helpers import is_month_key
from utils.web import business_clock, current_store, json_payload, ok

dashboard_bp = Blueprint('dashboard', __name__)


def _selected_month(today) -> str:
    month = (request.args.get('month') or '').strip()
    if not month:
        return current_month_key(today)
    if month != ALL_MONTHS_VALUE and not is_month_key(month):
        raise ValidationError("Month must be YYYY-MM or 'all'.")
    return month


@dashboard_bp.route('/', methods=['GET'])
def dashboard():
    """Headline metrics, trend, expense split and month picker for one month."""
    today = business_clock()()
    month = _selected_month(today)
    store = current_store()
    snap = store.snapshot
    return ok(
        month=month,
        metrics=calculate_dashboard_metrics(snap.finances, snap.students, month, today=today),
        trend=get_income_expense_trend(snap.finances, month, today=today),
        expenseBreakdown=get_expense_breakdown(snap.finances, month),
        monthOptions=get_available_month_options(snap.finances, today),
        profile=snap.profile.to_dict(),
        announcements=[a.to_dict() for a in store.list_announcements()],
    )


# ---------- Announcements ----------

@dashboard_bp.route('/announcements', methods=['GET'])
def list_announcements():
    announcements = current_store().list_announcements()
    return ok(count=len(announcements), announcements=[a.to_dict() for a in announcements])


@dashboard_bp.route('/announcements', methods=['POST'])
def create_announcement():
    created = current_store().create_announcement(AnnouncementInput.from_payload(json_payload()))
    return ok(201, announcement=created.to_dict())


@dashboard_bp.route('/announcements', methods=['DELETE'])
@dashboard_bp.route('/announcements/<announcement_id>', methods=['DELETE'])
def delete_announcement(announcement_id=None):
    announcement_id = announcement_id or (request.args.get('id') or '').strip()
    if not announcement_id:
        raise ValidationError("Missing announcement ID")
    current_store().delete_announcement(announcement_id)
    return ok(deleted=announcement_id)
