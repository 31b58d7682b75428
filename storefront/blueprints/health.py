"""Liveness endpoint for the load balancer."""
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from storefront.database import get_session
from storefront.services.cache_service import get_cache

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health():
    database_ok = True
    try:
        get_session().execute(text('SELECT 1'))
    except Exception as e:
        current_app.logger.error(f"[HEALTH] Database check failed: {e}")
        database_ok = False

    cache = get_cache()
    body = {
        'status': 'ok' if database_ok else 'degraded',
        'database': database_ok,
        'cache': bool(cache and cache.is_available()),
    }
    return jsonify(body), 200 if database_ok else 503
