import logging

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from ..errors import ApiError, ValidationError
from ..extensions import db
from ..models import Geofence, GeofenceType
from ..security import current_user_id, staff_required
from ..services.geofence import build_polygon_wkt, check_geofences, create_geofence, get_active_geofences, serialize_geofence
from ..validation import LATITUDE, LONGITUDE, validate_json

logger = logging.getLogger(__name__)

bp = Blueprint('geofences', __name__, url_prefix='/api/geofences')

GEOFENCE_TYPES = [t.value for t in GeofenceType]

CREATE_RULES = {
    'name': {'type': 'string', 'required': True, 'min_length': 2, 'max_length': 200},
    'type': {'type': 'string', 'required': True, 'choices': GEOFENCE_TYPES},
    'coordinates': {'type': 'array', 'required': True},
    'description': {'type': 'string', 'max_length': 1000},
}

UPDATE_RULES = {
    'name': {'type': 'string', 'min_length': 2, 'max_length': 200},
    'type': {'type': 'string', 'choices': GEOFENCE_TYPES},
    'coordinates': {'type': 'array'},
    'description': {'type': 'string', 'max_length': 1000},
    'isActive': {'type': 'boolean'},
}


def _check_coordinate_pairs(coordinates):
    for pair in coordinates:
        if (not isinstance(pair, (list, tuple)) or len(pair) != 2
                or not all(isinstance(c, (int, float)) and not isinstance(c, bool) for c in pair)):
            raise ValidationError({'coordinates': 'must be a list of [latitude, longitude] pairs'})
        lat, lng = pair
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            raise ValidationError({'coordinates': 'contains an out-of-range coordinate'})
    return coordinates


def _get_geofence(geofence_id):
    geofence = db.session.get(Geofence, geofence_id)
    if not geofence:
        raise ApiError(404, 'Geofence not found')
    return geofence


@bp.route('', methods=['GET'])
@bp.route('/', methods=['GET'])
@jwt_required()
def list_geofences():
    return jsonify({'success': True, 'data': {'geofences': get_active_geofences()}})


@bp.route('', methods=['POST'])
@bp.route('/', methods=['POST'])
@staff_required
def add_geofence():
    data = validate_json(CREATE_RULES)
    geofence = create_geofence(
        name=data['name'],
        type=data['type'],
        coordinates=_check_coordinate_pairs(data['coordinates']),
        description=data.get('description'),
        created_by=current_user_id(),
    )
    return jsonify({
        'success': True,
        'data': {'geofence': serialize_geofence(geofence)},
        'message': 'Geofence created successfully',
    }), 201


@bp.route('/<uuid:geofence_id>', methods=['GET'])
@jwt_required()
def get_geofence(geofence_id):
    return jsonify({'success': True, 'data': {'geofence': serialize_geofence(_get_geofence(geofence_id))}})


@bp.route('/<uuid:geofence_id>', methods=['PUT'])
@staff_required
def update_geofence(geofence_id):
    geofence = _get_geofence(geofence_id)
    data = validate_json(UPDATE_RULES)

    if 'name' in data:
        geofence.name = data['name']
    if 'type' in data:
        geofence.type = GeofenceType(data['type'])
    if 'description' in data:
        geofence.description = data['description']
    if 'coordinates' in data:
        geofence.geometry = build_polygon_wkt(_check_coordinate_pairs(data['coordinates']))
    if 'isActive' in data:
        geofence.is_active = data['isActive']
    db.session.commit()

    logger.info('Geofence %s updated by %s', geofence.id, current_user_id())
    return jsonify({
        'success': True,
        'data': {'geofence': serialize_geofence(geofence)},
        'message': 'Geofence updated successfully',
    })


@bp.route('/<uuid:geofence_id>', methods=['DELETE'])
@staff_required
def deactivate_geofence(geofence_id):
    geofence = _get_geofence(geofence_id)
    geofence.is_active = False
    db.session.commit()

    logger.info('Geofence %s deactivated by %s', geofence.id, current_user_id())
    return jsonify({'success': True, 'message': 'Geofence deactivated'})


@bp.route('/check', methods=['POST'])
@jwt_required()
def check_point():
    data = validate_json({
        'latitude': dict(LATITUDE, required=True),
        'longitude': dict(LONGITUDE, required=True),
    })
    violations = check_geofences(data['latitude'], data['longitude'])
    return jsonify({
        'success': True,
        'data': {
            'geofences': violations,
            'inRestrictedArea': any(v['type'] == 'restricted' for v in violations),
            'inSafeZone': any(v['type'] == 'safe' for v in violations),
        },
    })
