from flask import Blueprint, current_app

from models import BusinessProfile
from utils.errors import ValidationError
from utils.web import admin_required, current_store, json_payload, ok

settings_bp = Blueprint('settings', __name__, url_prefix='/settings')


@settings_bp.route('/profile', methods=['GET'])
@admin_required
def view_profile():
    return ok(profile=current_store().snapshot.profile.to_dict())


@settings_bp.route('/profile', methods=['PUT', 'POST'])
@admin_required
def save_profile():
    profile = BusinessProfile.from_payload(json_payload())
    if not profile.business_name:
        raise ValidationError("Business name is required.")
    saved = current_store().update_profile(profile)
    return ok(profile=saved.to_dict())


@settings_bp.route('/reset', methods=['POST'])
@admin_required
def reset_data():
    """Wipe students, finances and attendance and reload the demo dataset."""
    payload = json_payload()
    if str(payload.get('confirm') or '').strip().upper() != 'RESET':
        raise ValidationError("Type RESET to confirm wiping all data.")
    snap = current_store().reset_all_data()
    current_app.logger.warning("All data reset to the demo dataset")
    return ok(snapshot=snap.to_dict())
