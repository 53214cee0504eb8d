import uuid
from functools import wraps

from flask_jwt_extended import create_access_token, create_refresh_token, get_jwt, get_jwt_identity, verify_jwt_in_request

from .errors import ApiError
from .models import STAFF_ROLES


def issue_tokens(user):
    """Access token carries email + role claims; refresh token only identifies the user."""
    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={'email': user.email, 'role': user.role.value},
    )
    refresh_token = create_refresh_token(identity=str(user.id))
    return access_token, refresh_token


def current_user_id():
    return uuid.UUID(get_jwt_identity())


def current_role():
    return get_jwt().get('role')


def is_staff():
    return current_role() in STAFF_ROLES


def role_required(*roles):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if current_role() not in roles:
                raise ApiError(403, 'Insufficient permissions')
            return fn(*args, **kwargs)
        return wrapper
    return decorator


staff_required = role_required(*STAFF_ROLES)
admin_required = role_required('admin')
