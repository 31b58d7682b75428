"""
Webhooks Blueprint for payment gateway notifications.
Every event is stored once per (gateway, event_id) and applied to the
matching transaction.
"""

import logging
import hmac
import hashlib
from flask import Blueprint, request, jsonify, current_app
from storefront.database import get_session
from storefront.services.payment_service import record_webhook

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/webhooks')


def gateway_secret(gateway: str):
    return (current_app.config.get('WEBHOOK_SECRETS') or {}).get(gateway)


def verify_signature(secret: str, request_data: bytes, signature: str) -> bool:
    """HMAC-SHA256 of the raw body, hex encoded, compared in constant time."""
    if not signature:
        logger.warning("Missing X-Signature header in webhook")
        return False

    expected_signature = hmac.new(
        secret.encode('utf-8'),
        request_data,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(signature, expected_signature)


@webhooks_bp.route('/<gateway>', methods=['POST'])
def gateway_webhook(gateway):
    """
    Receive a gateway event.

    Expected body: {"id": ..., "type": "payment.succeeded", "data": {...}}
    (event_id / event_type are accepted as aliases).
    """
    secret = gateway_secret(gateway)
    if not secret:
        logger.warning(f"Webhook for unconfigured gateway '{gateway}'")
        return jsonify({'status': 'error', 'message': 'Unknown gateway'}), 404

    if not verify_signature(secret, request.get_data(), request.headers.get('X-Signature', '')):
        logger.warning(f"Invalid {gateway} webhook signature")
        return jsonify({'status': 'error', 'message': 'Invalid signature'}), 401

    data = request.get_json(silent=True)
    if not data:
        logger.warning("Empty webhook payload")
        return jsonify({'status': 'error', 'message': 'Empty payload'}), 400

    event_id = data.get('id') or data.get('event_id')
    event_type = data.get('type') or data.get('event_type') or ''
    logger.info(f"Received {gateway} webhook: id={event_id}, type={event_type}")

    webhook = record_webhook(get_session(), gateway, str(event_id) if event_id else None, event_type, data)
    return jsonify({'status': webhook.status, 'event_id': webhook.event_id}), 200
