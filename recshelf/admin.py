"""
Admin gate for RecShelf.

Sessions and logins live outside this service, so admin endpoints are
protected by a shared API token sent as ``Authorization: Bearer <token>`` or
``X-Admin-Token``.
"""

import hashlib
import logging
import secrets
from functools import wraps

from flask import abort, current_app, request

logger = logging.getLogger(__name__)


def _presented_token():
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1].strip()
    return request.headers.get('X-Admin-Token')


def is_admin_request() -> bool:
    expected = current_app.config.get('ADMIN_API_TOKEN')
    token = _presented_token()
    if not expected or not token:
        return False
    # Compare digests so length differences do not leak through timing
    return secrets.compare_digest(
        hashlib.sha256(token.encode()).hexdigest(),
        hashlib.sha256(expected.encode()).hexdigest(),
    )


def admin_required(f):
    """
    Decorator to require the admin token for route access
    Usage: @admin_required
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_admin_request():
            logger.info(f"Admin access denied for {request.path}")
            abort(403, description='Admin privileges required.')
        return f(*args, **kwargs)
    return decorated_function


def admin_or_setting_required(setting_name):
    """Allow the request when the named site setting is on, otherwise require the admin token."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            from .services.settings_service import get_site_settings
            if not getattr(get_site_settings(), setting_name, False) and not is_admin_request():
                abort(403, description='This feature is restricted to administrators.')
            return f(*args, **kwargs)
        return decorated_function
    return decorator
