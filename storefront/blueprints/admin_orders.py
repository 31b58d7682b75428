"""Back-office order endpoints: status changes, cancellation, refunds, delivery."""
from flask import Blueprint, request, jsonify, g, current_app
from storefront.database import get_session
from storefront.exceptions import BusinessLogicError
from storefront.middleware import admin_required
from storefront.services import order_service, delivery_service

admin_orders_bp = Blueprint('admin_orders', __name__, url_prefix='/admin/orders')


@admin_orders_bp.route('/<int:order_id>', methods=['GET'])
@admin_required
def order_detail(order_id):
    db_session = get_session()
    order = order_service.get_order(db_session, order_id)
    data = order.to_dict()
    data['history'] = [
        {'status': h.status, 'comment': h.comment, 'created_by': h.created_by,
         'created_at': h.created_at.isoformat()}
        for h in order.status_histories
    ]
    data['can_be_cancelled'] = order_service.can_be_cancelled(order)
    data['can_be_refunded'] = order_service.can_be_refunded(
        order, window_days=current_app.config.get('REFUND_WINDOW_DAYS', order_service.REFUND_WINDOW_DAYS)
    )
    return jsonify({'status': 'ok', 'order': data})


@admin_orders_bp.route('/<int:order_id>/status', methods=['POST'])
@admin_required
def update_status(order_id):
    """Set any status; the history log records who did it."""
    db_session = get_session()
    payload = request.get_json(silent=True) or {}
    status = (payload.get('status') or '').strip()
    if not status:
        raise BusinessLogicError('status is required', reason='invalid_request')

    order = order_service.get_order(db_session, order_id)
    order_service.update_order_status(db_session, order, status, payload.get('comment'), g.user_id)
    db_session.commit()
    return jsonify({'status': 'ok', 'order': order.to_dict()})


@admin_orders_bp.route('/<int:order_id>/cancel', methods=['POST'])
@admin_required
def cancel(order_id):
    db_session = get_session()
    payload = request.get_json(silent=True) or {}
    order = order_service.get_order(db_session, order_id)
    order_service.cancel_order(db_session, order, payload.get('comment'), g.user_id)
    return jsonify({'status': 'ok', 'order': order.to_dict()})


@admin_orders_bp.route('/<int:order_id>/refund', methods=['POST'])
@admin_required
def refund(order_id):
    db_session = get_session()
    payload = request.get_json(silent=True) or {}
    order = order_service.get_order(db_session, order_id)
    refund_row = order_service.refund_order(
        db_session, order,
        amount=payload.get('amount'),
        reason=payload.get('reason'),
        actor_id=g.user_id,
        window_days=current_app.config.get('REFUND_WINDOW_DAYS', order_service.REFUND_WINDOW_DAYS),
    )
    return jsonify({
        'status': 'ok',
        'order': order.to_dict(),
        'refund': {'id': refund_row.id, 'amount': str(refund_row.amount), 'status': refund_row.status},
    })


@admin_orders_bp.route('/<int:order_id>/assign', methods=['POST'])
@admin_required
def assign(order_id):
    db_session = get_session()
    payload = request.get_json(silent=True) or {}
    try:
        delivery_person_id = int(payload.get('delivery_person_id'))
    except (TypeError, ValueError):
        raise BusinessLogicError('delivery_person_id is required', reason='invalid_request')

    assignment = delivery_service.assign_delivery(
        db_session, order_id, delivery_person_id, g.user_id,
        max_assignments=current_app.config.get('MAX_CONCURRENT_ASSIGNMENTS',
                                               delivery_service.MAX_CONCURRENT_ASSIGNMENTS),
    )
    db_session.commit()
    return jsonify({'status': 'ok', 'assignment_id': assignment.id, 'assignment_status': assignment.status}), 201
