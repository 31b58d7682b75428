"""Cash on delivery back-office endpoints: collections and remittances."""
from flask import Blueprint, request, jsonify, g
from storefront.database import get_session
from storefront.exceptions import BusinessLogicError
from storefront.middleware import admin_required
from storefront.services import cod_service
from storefront.blueprints.metrics import cod_remittances_created_total

cod_bp = Blueprint('cod', __name__, url_prefix='/admin/cod')


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _required_int(payload: dict, name: str) -> int:
    try:
        return int(payload.get(name))
    except (TypeError, ValueError):
        raise BusinessLogicError(f'{name} is required', reason='invalid_request')


@cod_bp.route('/collections', methods=['POST'])
@admin_required
def record_collection():
    db_session = get_session()
    payload = _payload()
    if payload.get('amount') is None:
        raise BusinessLogicError('amount is required', reason='invalid_request')

    collection = cod_service.record_collection(
        db_session,
        order_id=_required_int(payload, 'order_id'),
        delivery_person_id=_required_int(payload, 'delivery_person_id'),
        amount=payload['amount'],
        collected_by=g.user_id,
        notes=payload.get('notes'),
    )
    return jsonify({
        'status': 'ok',
        'collection': {
            'id': collection.id,
            'order_id': collection.order_id,
            'amount': str(collection.amount),
            'status': collection.status,
            'notes': collection.notes,
        },
    }), 201


@cod_bp.route('/remittances', methods=['POST'])
@admin_required
def create_remittance():
    """Body: delivery_person_id, collection_ids? (default: all unbatched), declared_total?, notes?"""
    db_session = get_session()
    payload = _payload()
    collection_ids = payload.get('collection_ids')
    if collection_ids is not None and not isinstance(collection_ids, list):
        raise BusinessLogicError('collection_ids must be a list', reason='invalid_request')

    remittance = cod_service.create_remittance(
        db_session,
        delivery_person_id=_required_int(payload, 'delivery_person_id'),
        collection_ids=collection_ids,
        declared_total=payload.get('declared_total'),
        submitted_by=g.user_id,
        notes=payload.get('notes'),
    )
    cod_remittances_created_total.inc()
    return jsonify({'status': 'ok', 'remittance': remittance.to_dict()}), 201


@cod_bp.route('/remittances/<int:remittance_id>/submit', methods=['POST'])
@admin_required
def submit(remittance_id):
    remittance = cod_service.submit_remittance(get_session(), remittance_id, g.user_id)
    return jsonify({'status': 'ok', 'remittance': remittance.to_dict()})


@cod_bp.route('/remittances/<int:remittance_id>/verify', methods=['POST'])
@admin_required
def verify(remittance_id):
    payload = _payload()
    remittance = cod_service.verify_remittance(
        get_session(), remittance_id, g.user_id,
        counted_amount=payload.get('counted_amount'),
        notes=payload.get('notes'),
    )
    return jsonify({'status': 'ok', 'remittance': remittance.to_dict()})


@cod_bp.route('/remittances/<int:remittance_id>/deposit', methods=['POST'])
@admin_required
def deposit(remittance_id):
    remittance = cod_service.mark_remittance_deposited(
        get_session(), remittance_id, deposited_amount=_payload().get('deposited_amount')
    )
    return jsonify({'status': 'ok', 'remittance': remittance.to_dict()})


@cod_bp.route('/remittances/<int:remittance_id>/reconcile', methods=['POST'])
@admin_required
def reconcile(remittance_id):
    remittance = cod_service.reconcile_remittance(get_session(), remittance_id)
    return jsonify({'status': 'ok', 'remittance': remittance.to_dict()})


@cod_bp.route('/remittances/<int:remittance_id>/collections/<int:collection_id>', methods=['DELETE'])
@admin_required
def detach(remittance_id, collection_id):
    remittance = cod_service.detach_collection(get_session(), remittance_id, collection_id)
    return jsonify({'status': 'ok', 'remittance': remittance.to_dict()})


@cod_bp.route('/delivery-persons/<int:delivery_person_id>/summary', methods=['GET'])
@admin_required
def summary(delivery_person_id):
    data = cod_service.get_cod_summary(get_session(), delivery_person_id)
    return jsonify({'status': 'ok', 'summary': {k: str(v) if not isinstance(v, int) else v
                                                for k, v in data.items()}})
