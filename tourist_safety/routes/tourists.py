import logging

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from ..errors import ApiError
from ..extensions import db
from ..models import Tourist, UserRole, UserStatus
from ..security import admin_required, current_user_id, is_staff, staff_required
from ..validation import pagination, validate_args, validate_json
from .auth import EMERGENCY_CONTACT_RULES

logger = logging.getLogger(__name__)

bp = Blueprint('tourists', __name__, url_prefix='/api/tourists')

PROFILE_RULES = {
    'name': {'type': 'string', 'min_length': 2, 'max_length': 100},
    'country': {'type': 'string', 'min_length': 2, 'max_length': 100},
    'phoneNumber': {'type': 'string'},
    'emergencyContact': {'type': 'object', 'fields': EMERGENCY_CONTACT_RULES},
}


@bp.route('', methods=['GET'])
@bp.route('/', methods=['GET'])
@staff_required
def list_tourists():
    page = pagination(50)
    filters = validate_args({
        'status': {'type': 'string', 'choices': [s.value for s in UserStatus]},
        'role': {'type': 'string', 'choices': [r.value for r in UserRole]},
    })

    query = Tourist.query.order_by(Tourist.created_at.desc())
    if 'status' in filters:
        query = query.filter(Tourist.status == UserStatus(filters['status']))
    if 'role' in filters:
        query = query.filter(Tourist.role == UserRole(filters['role']))

    tourists = query.offset(page['offset']).limit(page['limit']).all()
    return jsonify({
        'success': True,
        'data': {
            'tourists': [t.to_dict(detailed=True) for t in tourists],
            'pagination': {'limit': page['limit'], 'offset': page['offset'], 'total': len(tourists)},
        },
    })


@bp.route('/<uuid:tourist_id>', methods=['GET'])
@jwt_required()
def get_tourist(tourist_id):
    if tourist_id != current_user_id() and not is_staff():
        raise ApiError(403, 'Insufficient permissions')

    tourist = db.session.get(Tourist, tourist_id)
    if not tourist:
        raise ApiError(404, 'User not found')
    return jsonify({'success': True, 'data': {'user': tourist.to_dict(detailed=True)}})


@bp.route('/me', methods=['PUT'])
@jwt_required()
def update_profile():
    data = validate_json(PROFILE_RULES)
    tourist = db.session.get(Tourist, current_user_id())
    if not tourist:
        raise ApiError(404, 'User not found')

    if 'name' in data:
        tourist.name = data['name']
    if 'country' in data:
        tourist.country = data['country']
    if 'phoneNumber' in data:
        tourist.phone_number = data['phoneNumber']
    if 'emergencyContact' in data:
        tourist.emergency_contact = data['emergencyContact']
    db.session.commit()

    logger.info('Profile updated for %s', tourist.email)
    return jsonify({
        'success': True,
        'data': {'user': tourist.to_dict(detailed=True)},
        'message': 'Profile updated successfully',
    })


@bp.route('/<uuid:tourist_id>/status', methods=['PATCH'])
@admin_required
def set_status(tourist_id):
    data = validate_json({'status': {'type': 'string', 'required': True, 'choices': [s.value for s in UserStatus]}})
    tourist = db.session.get(Tourist, tourist_id)
    if not tourist:
        raise ApiError(404, 'User not found')

    tourist.status = UserStatus(data['status'])
    db.session.commit()

    logger.info('User %s status set to %s by %s', tourist.email, tourist.status.value, current_user_id())
    return jsonify({
        'success': True,
        'data': {'user': tourist.to_dict()},
        'message': 'Status updated successfully',
    })
