# app/utils/auth_utils.py
from functools import wraps

from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from app.errors import ApiError, PermissionDenied
from app.services.backend_client import get_backend
from app.services.session_store import get_session_store


def role_required(role):
    """JWT required, and its user_type claim must match ``role``."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if get_jwt().get("user_type") != role:
                raise PermissionDenied(f"Only a {role} can do this")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def current_user_id():
    return str(get_jwt_identity())


def authorized_backend(user_id=None):
    """Backend client acting as the caller, restoring (and refreshing) their session."""
    user_id = user_id or current_user_id()
    session = get_session_store().current(user_id)
    if session is None:
        raise ApiError("Session expired, please log in again", 401)
    return get_backend().authorized(session.access_token)
