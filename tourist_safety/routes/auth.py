import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request
from flask_jwt_extended import decode_token, jwt_required
from sqlalchemy.exc import IntegrityError

from ..errors import ApiError
from ..extensions import db
from ..models import RefreshToken, Tourist, UserRole, UserStatus, utcnow
from ..security import current_user_id, issue_tokens
from ..validation import validate_json

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__, url_prefix='/api/auth')

EMERGENCY_CONTACT_RULES = {
    'name': {'type': 'string', 'required': True},
    'phone': {'type': 'string', 'required': True},
    'relationship': {'type': 'string', 'required': True},
}

REGISTER_RULES = {
    'email': {'type': 'email', 'required': True},
    'password': {'type': 'string', 'required': True, 'min_length': 8},
    'name': {'type': 'string', 'required': True, 'min_length': 2, 'max_length': 100},
    'country': {'type': 'string', 'required': True, 'min_length': 2, 'max_length': 100},
    'phoneNumber': {'type': 'string'},
    'emergencyContact': {'type': 'object', 'fields': EMERGENCY_CONTACT_RULES},
    'role': {'type': 'string', 'choices': [r.value for r in UserRole], 'default': 'tourist'},
}

LOGIN_RULES = {
    'email': {'type': 'email', 'required': True},
    'password': {'type': 'string', 'required': True},
}


def _store_refresh_token(user, refresh_token):
    expires_at = datetime.fromtimestamp(decode_token(refresh_token)['exp'], tz=timezone.utc).replace(tzinfo=None)
    db.session.add(RefreshToken(user_id=user.id, token=refresh_token, expires_at=expires_at))


def _email_taken(email):
    return Tourist.query.filter_by(email=email).first() is not None


def _tokens_payload(access_token, refresh_token):
    return {'accessToken': access_token, 'refreshToken': refresh_token}


@bp.route('/register', methods=['POST'])
def register():
    data = validate_json(REGISTER_RULES)
    email = data['email'].lower()

    if _email_taken(email):
        raise ApiError(400, 'User already exists with this email')

    user = Tourist(
        email=email,
        password=data['password'],
        name=data['name'],
        country=data['country'],
        phone_number=data.get('phoneNumber'),
        emergency_contact=data.get('emergencyContact'),
        role=UserRole(data['role']),
        status=UserStatus.ACTIVE,
        meta={},
    )
    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ApiError(400, 'User already exists with this email') from None

    access_token, refresh_token = issue_tokens(user)
    _store_refresh_token(user, refresh_token)
    db.session.commit()

    logger.info('New user registered: %s (%s)', user.email, user.role.value)
    return jsonify({
        'success': True,
        'data': {'user': user.to_dict(), 'tokens': _tokens_payload(access_token, refresh_token)},
        'message': 'Registration successful',
    }), 201


@bp.route('/login', methods=['POST'])
def login():
    data = validate_json(LOGIN_RULES)
    user = Tourist.query.filter_by(email=data['email'].lower(), status=UserStatus.ACTIVE).first()

    if not user or not user.check_password(data['password']):
        raise ApiError(401, 'Invalid email or password')

    access_token, refresh_token = issue_tokens(user)
    _store_refresh_token(user, refresh_token)
    user.last_login = utcnow()
    db.session.commit()

    logger.info('User logged in: %s', user.email)
    return jsonify({
        'success': True,
        'data': {'user': user.to_dict(), 'tokens': _tokens_payload(access_token, refresh_token)},
        'message': 'Login successful',
    })


@bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    user_id = current_user_id()
    raw_token = request.headers.get('Authorization', '')[len('Bearer '):]

    record = RefreshToken.query.filter_by(token=raw_token, user_id=user_id).first()
    if not record:
        raise ApiError(401, 'Invalid refresh token')

    if record.expires_at < utcnow():
        db.session.delete(record)
        db.session.commit()
        raise ApiError(401, 'Refresh token expired')

    user = db.session.get(Tourist, user_id)
    if not user or user.status != UserStatus.ACTIVE:
        raise ApiError(401, 'Invalid refresh token')

    access_token, _ = issue_tokens(user)
    return jsonify({
        'success': True,
        'data': {'accessToken': access_token},
        'message': 'Token refreshed successfully',
    })


@bp.route('/logout', methods=['POST'])
def logout():
    refresh_token = request.headers.get('X-Refresh-Token')
    if refresh_token:
        deleted = RefreshToken.query.filter_by(token=refresh_token).delete()
        db.session.commit()
        logger.info('Removed %s refresh token(s) on logout', deleted)

    return jsonify({'success': True, 'message': 'Logout successful'})


@bp.route('/me', methods=['GET'])
@jwt_required()
def me():
    user = db.session.get(Tourist, current_user_id())
    if not user:
        raise ApiError(404, 'User not found')
    return jsonify({'success': True, 'data': {'user': user.to_dict(detailed=True)}})
