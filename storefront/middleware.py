"""Request context: identity, cart owner, locale and currency read from the session."""
import uuid
from functools import wraps
from flask import session, g, jsonify, current_app
from storefront.database import get_session
from storefront.models import User


def load_request_context():
    """
    Populate g for the current request.

    Authentication itself happens elsewhere; this only trusts the identity
    already stored in the session. Anonymous visitors get a stable cart
    session id so their cart survives until login.
    """
    g.user = None
    g.user_id = None
    g.is_admin = False

    try:
        user_id = session.get('user_id')
        if user_id:
            db_session = get_session()
            user = db_session.get(User, user_id) if db_session else None
            if user:
                g.user = user
                g.user_id = user.id
                g.is_admin = bool(session.get('is_admin'))
    except Exception as e:
        current_app.logger.error(f"Error in load_request_context: {e}")

    if 'cart_session_id' not in session:
        session['cart_session_id'] = uuid.uuid4().hex
    g.cart_session_id = session['cart_session_id']

    supported = current_app.config.get('SUPPORTED_LOCALES', ('en',))
    locale = session.get('locale')
    g.locale = locale if locale in supported else current_app.config.get('DEFAULT_LOCALE', 'en')
    g.currency_code = session.get('currency') or current_app.config.get('DEFAULT_CURRENCY', 'USD')


def require_login(f):
    """Decorator: 401 JSON when no customer is signed in."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({'status': 'error', 'message': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator: back-office endpoints need a signed-in staff member."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({'status': 'error', 'message': 'Authentication required'}), 401
        if not g.get('is_admin'):
            return jsonify({'status': 'error', 'message': 'Forbidden'}), 403
        return f(*args, **kwargs)
    return decorated_function
