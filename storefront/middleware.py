"""Middleware for the admin gate on mutating catalog routes."""
import hmac
from functools import wraps
from flask import current_app, request
from storefront.exceptions import ForbiddenError

ADMIN_TOKEN_HEADER = 'X-Admin-Token'


def require_admin(f):
    """
    Decorator: Require the admin token on the request.

    When ADMIN_API_TOKEN is configured the request must carry it in the
    X-Admin-Token header. Identity and sessions are handled upstream; with no
    token configured the gate is open (local development).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('ADMIN_API_TOKEN')
        if expected:
            supplied = request.headers.get(ADMIN_TOKEN_HEADER, '')
            if not hmac.compare_digest(supplied.encode(), expected.encode()):
                current_app.logger.warning(f"Admin gate rejected {request.method} {request.path}")
                raise ForbiddenError('Admin access required')
        return f(*args, **kwargs)
    return decorated_function
