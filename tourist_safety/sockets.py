import logging
import uuid

from flask import request
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from flask_socketio import emit, join_room
from jwt.exceptions import PyJWTError

from .extensions import db, socketio
from .models import STAFF_ROLES, Location
from .validation import LATITUDE, LONGITUDE, validate

logger = logging.getLogger(__name__)

DASHBOARD_ROOM = 'dashboard'
EMERGENCY_TOPIC_ROOM = 'topic:emergency_alerts'

# sid -> {'user_id': str, 'role': str}
connected_clients = {}


def broadcast(event, payload, room=None):
    """Emit from HTTP handlers; everyone when room is None."""
    if room:
        socketio.emit(event, payload, to=room)
    else:
        socketio.emit(event, payload)


def _token_from_handshake(auth):
    if isinstance(auth, dict) and auth.get('token'):
        return auth['token']
    return request.args.get('token')


@socketio.on('connect')
def handle_connect(auth=None):
    token = _token_from_handshake(auth)
    if not token:
        logger.info('Anonymous client connected: %s', request.sid)
        return True

    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException) as e:
        logger.warning('Rejected socket connection %s: %s', request.sid, e)
        return False

    if claims.get('type') != 'access':
        logger.warning('Rejected socket connection %s: not an access token', request.sid)
        return False

    user_id, role = claims['sub'], claims.get('role')
    connected_clients[request.sid] = {'user_id': user_id, 'role': role}
    join_room(f'user:{user_id}')
    if role in STAFF_ROLES:
        join_room(DASHBOARD_ROOM)
        join_room(EMERGENCY_TOPIC_ROOM)
    logger.info('Client connected: %s (user %s, %s)', request.sid, user_id, role)
    emit('status', {'msg': 'Connected to Smart Tourist Safety server'})
    return True


@socketio.on('disconnect')
def handle_disconnect(*args):
    connected_clients.pop(request.sid, None)
    logger.info('Client disconnected: %s', request.sid)


@socketio.on('join_dashboard')
def handle_join_dashboard():
    client = connected_clients.get(request.sid)
    if not client or client['role'] not in STAFF_ROLES:
        emit('error', {'error': 'Insufficient permissions'})
        return
    join_room(DASHBOARD_ROOM)
    emit('status', {'msg': 'Joined dashboard room'})


@socketio.on('update_location')
def handle_location_update(data):
    client = connected_clients.get(request.sid)
    if not client:
        return {'success': False, 'error': 'Authentication required'}

    cleaned, errors = validate(data or {}, {
        'latitude': dict(LATITUDE, required=True),
        'longitude': dict(LONGITUDE, required=True),
        'accuracy': {'type': 'number', 'min': 0, 'max': 1000},
        'speed': {'type': 'number', 'min': 0},
    }, raise_errors=False)
    if errors:
        logger.info('Received incomplete location data from %s. Ignoring.', request.sid)
        return {'success': False, 'error': 'Validation error', 'details': errors}

    location = Location(
        user_id=uuid.UUID(client['user_id']),
        latitude=cleaned['latitude'],
        longitude=cleaned['longitude'],
        accuracy=cleaned.get('accuracy'),
        speed=cleaned.get('speed'),
        meta={'source': 'socket'},
    )
    db.session.add(location)
    db.session.commit()

    payload = dict(location.to_dict(), userId=client['user_id'])
    broadcast('tourist_location_change', payload, room=DASHBOARD_ROOM)
    return {'success': True, 'location': location.to_dict()}
