from flask import Blueprint, jsonify, request

from models import TransactionInput
from utils.metrics import ALL_MONTHS_VALUE, filter_transactions_by_month
from utils.web import current_store, json_payload, ok

finance_bp = Blueprint('finance', __name__, url_prefix='/finance')


@finance_bp.route('', methods=['GET'])
def list_transactions():
    finances = current_store().snapshot.finances
    month = (request.args.get('month') or ALL_MONTHS_VALUE).strip()
    rows = filter_transactions_by_month(finances, month)
    return ok(transactions=[f.to_dict() for f in rows])


@finance_bp.route('', methods=['POST'])
def add_transaction():
    created = current_store().add_transaction(TransactionInput.from_payload(json_payload()))
    return ok(201, transaction=created.to_dict())


@finance_bp.route('/<transaction_id>', methods=['PUT'])
def update_transaction(transaction_id):
    updated = current_store().update_transaction(
        transaction_id, TransactionInput.from_payload(json_payload())
    )
    return ok(transaction=updated.to_dict())


@finance_bp.route('/<transaction_id>', methods=['DELETE'])
def delete_transaction(transaction_id):
    current_store().delete_transaction(transaction_id)
    return ok(deleted=transaction_id)


@finance_bp.route('/<transaction_id>/toggle', methods=['POST'])
def toggle_status(transaction_id):
    updated = current_store().toggle_transaction_status(transaction_id)
    if updated is None:
        return jsonify({
            "ok": False,
            "error": "A status change for this transaction is already in progress.",
        }), 409
    return ok(transaction=updated.to_dict())
