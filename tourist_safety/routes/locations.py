import logging
from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy import func

from ..errors import ApiError
from ..extensions import db
from ..models import Alert, AlertSeverity, AlertStatus, AlertType, Location, LocationShare, Tourist, UserStatus, isoformat, utcnow
from ..security import current_user_id, is_staff, staff_required
from ..services import geo
from ..services.anomaly import detect_anomalies
from ..services.geofence import check_geofences
from ..services.notifications import maps_link, send_sms
from ..sockets import DASHBOARD_ROOM, broadcast
from ..validation import LATITUDE, LONGITUDE, pagination, validate_args, validate_json

logger = logging.getLogger(__name__)

bp = Blueprint('locations', __name__, url_prefix='/api/locations')

LOCATION_UPDATE_RULES = {
    'latitude': dict(LATITUDE, required=True),
    'longitude': dict(LONGITUDE, required=True),
    'accuracy': {'type': 'number', 'min': 0, 'max': 1000, 'default': 10},
    'altitude': {'type': 'number'},
    'speed': {'type': 'number', 'min': 0},
    'heading': {'type': 'number', 'min': 0, 'max': 360},
    'battery_level': {'type': 'number', 'min': 0, 'max': 100},
    'is_background': {'type': 'boolean', 'default': False},
}

SHARE_DURATION = timedelta(hours=24)


@bp.route('/update', methods=['POST'])
@jwt_required()
def update_location():
    data = validate_json(LOCATION_UPDATE_RULES)
    user_id = current_user_id()
    latitude, longitude = data['latitude'], data['longitude']

    location = Location(
        user_id=user_id,
        latitude=latitude,
        longitude=longitude,
        accuracy=data['accuracy'],
        altitude=data.get('altitude'),
        speed=data.get('speed'),
        heading=data.get('heading'),
        battery_level=int(data['battery_level']) if 'battery_level' in data else None,
        is_background=data['is_background'],
        meta={},
    )
    db.session.add(location)
    db.session.commit()

    violations = check_geofences(latitude, longitude)

    anomaly = None
    try:
        anomaly = detect_anomalies(user_id, {
            'latitude': latitude,
            'longitude': longitude,
            'speed': data.get('speed'),
            'timestamp': location.created_at,
        })
    except Exception:
        logger.warning('Anomaly detection failed for %s', user_id, exc_info=True)

    restricted = [v for v in violations if v['type'] == 'restricted']
    if restricted:
        alert = Alert(
            user_id=user_id,
            type=AlertType.GEOFENCE_VIOLATION,
            severity=AlertSeverity.MEDIUM,
            status=AlertStatus.ACTIVE,
            latitude=latitude,
            longitude=longitude,
            message=f"Entered restricted area: {restricted[0]['name']}",
            meta={'geofence_violations': violations, 'automatic': True},
        )
        db.session.add(alert)
        db.session.commit()
        logger.info('Tourist %s entered restricted zone %s, alert %s', user_id, restricted[0]['name'], alert.id)
        broadcast('geofence_violation', {
            'alert_id': str(alert.id),
            'user_id': str(user_id),
            'geofence': restricted[0],
            'location': {'latitude': latitude, 'longitude': longitude},
            'timestamp': isoformat(utcnow()),
        })

    if anomaly:
        broadcast('anomaly_detected', {
            'user_id': str(user_id),
            'anomaly': anomaly,
            'location': {'latitude': latitude, 'longitude': longitude},
            'timestamp': isoformat(utcnow()),
        })

    dashboard_payload = {
        'user_id': str(user_id),
        'latitude': latitude,
        'longitude': longitude,
        'accuracy': location.accuracy,
        'speed': location.speed,
        'timestamp': isoformat(location.created_at),
    }
    if violations:
        dashboard_payload['geofence_violations'] = violations
    broadcast('location_update', dashboard_payload, room=DASHBOARD_ROOM)

    return jsonify({
        'success': True,
        'data': {
            'location': {
                'id': str(location.id),
                'latitude': location.latitude,
                'longitude': location.longitude,
                'accuracy': location.accuracy,
                'timestamp': isoformat(location.created_at),
            },
            'geofenceStatus': {
                'violations': violations,
                'inRestrictedArea': bool(restricted),
                'inSafeZone': any(v['type'] == 'safe' for v in violations),
            },
            'anomalyStatus': {
                'detected': True,
                'type': anomaly['type'],
                'confidence': anomaly['confidence'],
            } if anomaly else {'detected': False},
        },
        'message': 'Location updated successfully',
    })


@bp.route('/history', methods=['GET'])
@jwt_required()
def location_history():
    page = pagination(100)
    window = validate_args({'from': {'type': 'string'}, 'to': {'type': 'string'}})

    query = Location.query.order_by(Location.created_at.desc())
    if not is_staff():
        query = query.filter(Location.user_id == current_user_id())
    if 'from' in window:
        query = query.filter(Location.created_at >= _parse_timestamp(window['from'], 'from'))
    if 'to' in window:
        query = query.filter(Location.created_at <= _parse_timestamp(window['to'], 'to'))

    locations = query.offset(page['offset']).limit(page['limit']).all()
    return jsonify({
        'success': True,
        'data': {
            'locations': [
                {k: v for k, v in loc.to_dict().items() if k in ('id', 'latitude', 'longitude', 'accuracy', 'speed', 'timestamp')}
                for loc in locations
            ],
            'pagination': {'limit': page['limit'], 'offset': page['offset'], 'total': len(locations)},
        },
    })


def _parse_timestamp(value, field):
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ApiError(400, 'Validation error', {field: 'must be an ISO 8601 timestamp'}) from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@bp.route('/current', methods=['GET'])
@bp.route('/current/<uuid:user_id>', methods=['GET'])
@jwt_required()
def current_location(user_id=None):
    target_id = current_user_id()
    if user_id is not None and user_id != target_id:
        if not is_staff():
            raise ApiError(403, 'Insufficient permissions')
        target_id = user_id

    location = (Location.query
                .filter(Location.user_id == target_id)
                .order_by(Location.created_at.desc())
                .first())
    if not location:
        raise ApiError(404, 'Location not found')

    age_seconds = (utcnow() - location.created_at).total_seconds()
    data = location.to_dict()
    data.update({
        'userId': str(target_id),
        'userName': location.tourist.name if location.tourist else None,
        'isStale': age_seconds > current_app.config['LOCATION_STALE_SECONDS'],
        'ageMinutes': round(age_seconds / 60),
    })
    return jsonify({'success': True, 'data': {'location': data}})


def latest_locations_subquery():
    """Latest fix per tourist (DISTINCT ON user semantics, portable)."""
    return (db.session.query(Location.user_id, func.max(Location.created_at).label('latest'))
            .group_by(Location.user_id)
            .subquery())


def find_nearby_tourists(latitude, longitude, radius):
    latest = latest_locations_subquery()
    query = (db.session.query(Tourist, Location)
             .join(Location, Location.user_id == Tourist.id)
             .join(latest, (latest.c.user_id == Location.user_id) & (latest.c.latest == Location.created_at))
             .filter(Tourist.status == UserStatus.ACTIVE))

    if geo.uses_postgis():
        distance = geo.distance_expr(Location.latitude, Location.longitude, latitude, longitude)
        rows = (query.add_columns(distance.label('distance'))
                .filter(geo.within_radius_clause(Location.latitude, Location.longitude, latitude, longitude, radius))
                .order_by('distance')
                .all())
        results = [(tourist, loc, float(dist)) for tourist, loc, dist in rows]
    else:
        results = []
        for tourist, loc in query.all():
            dist = geo.distance_meters(loc.latitude, loc.longitude, latitude, longitude)
            if dist <= radius:
                results.append((tourist, loc, dist))
        results.sort(key=lambda row: row[2])

    return [{
        'id': str(tourist.id),
        'name': tourist.name,
        'latitude': loc.latitude,
        'longitude': loc.longitude,
        'distance': round(dist, 2),
        'lastSeen': isoformat(loc.created_at),
        'status': tourist.status.value,
    } for tourist, loc, dist in results]


@bp.route('/nearby', methods=['GET'])
@staff_required
def nearby_tourists():
    args = validate_args({
        'latitude': LATITUDE,
        'longitude': LONGITUDE,
        'radius': {'type': 'number', 'min': 1, 'max': 100000, 'default': 1000},
    })
    if 'latitude' not in args or 'longitude' not in args:
        raise ApiError(400, 'Latitude and longitude are required')

    latitude, longitude, radius = args['latitude'], args['longitude'], args['radius']
    return jsonify({
        'success': True,
        'data': {
            'tourists': find_nearby_tourists(latitude, longitude, radius),
            'searchCenter': {'latitude': latitude, 'longitude': longitude},
            'searchRadius': radius,
        },
    })


@bp.route('/emergency-share', methods=['POST'])
@jwt_required()
def emergency_share():
    user_id = current_user_id()
    user = db.session.get(Tourist, user_id)
    location = (Location.query
                .filter(Location.user_id == user_id)
                .order_by(Location.created_at.desc())
                .first())

    contact = user.emergency_contact if user else None
    if not location or not contact:
        raise ApiError(400, 'Location or emergency contact not available')

    share = LocationShare(
        user_id=user_id,
        shared_with=contact.get('name'),
        contact_phone=contact.get('phone'),
        latitude=location.latitude,
        longitude=location.longitude,
        expires_at=utcnow() + SHARE_DURATION,
    )
    db.session.add(share)
    db.session.commit()

    if share.contact_phone:
        send_sms(share.contact_phone, (
            f'{user.name} has shared their location with you via Smart Tourist Safety.\n'
            f'Last Location: {maps_link(share.latitude, share.longitude)}'
        ))

    logger.info('Location shared by user %s with emergency contact', user_id)
    return jsonify({
        'success': True,
        'data': {
            'shareId': str(share.id),
            'sharedWith': share.shared_with,
            'location': {'latitude': share.latitude, 'longitude': share.longitude},
            'expiresAt': isoformat(share.expires_at),
        },
        'message': 'Location shared with emergency contact',
    })
