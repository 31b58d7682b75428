"""Delivery assignment endpoints used by dispatch staff."""
from flask import Blueprint, request, jsonify, g
from storefront.database import get_session
from storefront.exceptions import BusinessLogicError
from storefront.middleware import admin_required
from storefront.services import delivery_service

deliveries_bp = Blueprint('deliveries', __name__, url_prefix='/admin/deliveries')


def _assignment_json(assignment):
    return {
        'id': assignment.id,
        'order_id': assignment.order_id,
        'delivery_person_id': assignment.delivery_person_id,
        'status': assignment.status,
        'failure_reason': assignment.failure_reason,
    }


@deliveries_bp.route('/<int:assignment_id>/accept', methods=['POST'])
@admin_required
def accept(assignment_id):
    db_session = get_session()
    assignment = delivery_service.accept_assignment(db_session, assignment_id)
    db_session.commit()
    return jsonify({'status': 'ok', 'assignment': _assignment_json(assignment)})


@deliveries_bp.route('/<int:assignment_id>/delivered', methods=['POST'])
@admin_required
def delivered(assignment_id):
    db_session = get_session()
    assignment = delivery_service.mark_assignment_delivered(db_session, assignment_id, g.user_id)
    db_session.commit()
    return jsonify({'status': 'ok', 'assignment': _assignment_json(assignment)})


@deliveries_bp.route('/<int:assignment_id>/failed', methods=['POST'])
@admin_required
def failed(assignment_id):
    db_session = get_session()
    reason = ((request.get_json(silent=True) or {}).get('reason') or '').strip()
    if not reason:
        raise BusinessLogicError('reason is required', reason='invalid_request')
    assignment = delivery_service.mark_assignment_failed(db_session, assignment_id, reason)
    db_session.commit()
    return jsonify({'status': 'ok', 'assignment': _assignment_json(assignment)})
