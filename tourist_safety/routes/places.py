from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from ..errors import ApiError
from ..extensions import db
from ..models import Place
from ..security import admin_required
from ..services import geo
from ..validation import LATITUDE, LONGITUDE, validate_args, validate_json

bp = Blueprint('places', __name__, url_prefix='/api/places')

PLACE_RULES = {
    'name': {'type': 'string', 'required': True, 'min_length': 2, 'max_length': 200},
    'latitude': dict(LATITUDE, required=True),
    'longitude': dict(LONGITUDE, required=True),
    'description': {'type': 'string'},
    'category': {'type': 'string', 'max_length': 100},
    'rating': {'type': 'number', 'min': 0, 'max': 5},
    'safetyScore': {'type': 'number', 'min': 0, 'max': 1},
}


@bp.route('/nearby', methods=['GET'])
@jwt_required()
def nearby_places():
    args = validate_args({
        'latitude': dict(LATITUDE, required=True),
        'longitude': dict(LONGITUDE, required=True),
        'radius': {'type': 'number', 'min': 1, 'max': 100000, 'default': 5000},
        'category': {'type': 'string'},
        'limit': {'type': 'integer', 'min': 1, 'max': 100, 'default': 20},
    })
    latitude, longitude, radius = args['latitude'], args['longitude'], args['radius']

    query = Place.query
    if 'category' in args:
        query = query.filter(Place.category == args['category'])

    if geo.uses_postgis():
        distance = geo.distance_expr(Place.latitude, Place.longitude, latitude, longitude)
        rows = (query.add_columns(distance.label('distance'))
                .filter(geo.within_radius_clause(Place.latitude, Place.longitude, latitude, longitude, radius))
                .order_by('distance')
                .limit(args['limit'])
                .all())
        results = [(place, float(dist)) for place, dist in rows]
    else:
        results = []
        for place in query.all():
            dist = geo.distance_meters(place.latitude, place.longitude, latitude, longitude)
            if dist <= radius:
                results.append((place, dist))
        results = sorted(results, key=lambda row: row[1])[:args['limit']]

    return jsonify({
        'success': True,
        'data': {
            'places': [dict(place.to_dict(), distance=round(dist, 2)) for place, dist in results],
            'searchCenter': {'latitude': latitude, 'longitude': longitude},
            'searchRadius': radius,
        },
    })


@bp.route('/<uuid:place_id>', methods=['GET'])
@jwt_required()
def get_place(place_id):
    place = db.session.get(Place, place_id)
    if not place:
        raise ApiError(404, 'Place not found')
    return jsonify({'success': True, 'data': {'place': place.to_dict()}})


@bp.route('', methods=['POST'])
@bp.route('/', methods=['POST'])
@admin_required
def create_place():
    data = validate_json(PLACE_RULES)
    place = Place(
        name=data['name'],
        latitude=data['latitude'],
        longitude=data['longitude'],
        description=data.get('description'),
        category=data.get('category'),
        rating=data.get('rating'),
        safety_score=data.get('safetyScore'),
        meta={},
    )
    db.session.add(place)
    db.session.commit()
    return jsonify({'success': True, 'data': {'place': place.to_dict()}, 'message': 'Place created successfully'}), 201
