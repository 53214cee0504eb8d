import logging
from datetime import timedelta

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..errors import ApiError
from ..extensions import db
from ..models import Alert, AlertSeverity, AlertStatus, AlertType, Location, Tourist, isoformat, utcnow
from ..security import current_user_id, is_staff, staff_required
from ..services.blockchain import anchor_to_blockchain
from ..services.geofence import check_geofences
from ..services.notifications import send_push_notification
from ..sockets import broadcast
from ..validation import LATITUDE, LONGITUDE, pagination, validate_args, validate_json

logger = logging.getLogger(__name__)

bp = Blueprint('alerts', __name__, url_prefix='/api/alerts')

PANIC_TYPES = [t.value for t in AlertType if t is not AlertType.GEOFENCE_VIOLATION]
SEVERITIES = [s.value for s in AlertSeverity]
STATUSES = [s.value for s in AlertStatus]

PANIC_ALERT_RULES = {
    'latitude': dict(LATITUDE, required=True),
    'longitude': dict(LONGITUDE, required=True),
    'message': {'type': 'string', 'max_length': 500},
    'severity': {'type': 'string', 'choices': SEVERITIES, 'default': 'high'},
    'type': {'type': 'string', 'choices': PANIC_TYPES, 'default': 'panic'},
}

UPDATE_ALERT_RULES = {
    'status': {'type': 'string', 'choices': STATUSES, 'required': True},
    'response_notes': {'type': 'string', 'max_length': 1000},
    'assigned_to': {'type': 'uuid'},
}

RESPONSE_MINUTES = {
    AlertSeverity.CRITICAL: 5,
    AlertSeverity.HIGH: 10,
    AlertSeverity.MEDIUM: 20,
    AlertSeverity.LOW: 30,
}
DEFAULT_RESPONSE_MINUTES = 15
RESTRICTED_AREA_EXTRA_MINUTES = 10


def estimated_response_time(severity, in_geofence):
    minutes = RESPONSE_MINUTES.get(severity, DEFAULT_RESPONSE_MINUTES)
    # harder to reach inside a zone
    if in_geofence:
        minutes += RESTRICTED_AREA_EXTRA_MINUTES
    return f'{minutes} minutes'


@bp.route('/panic', methods=['POST'])
@jwt_required()
def panic_alert():
    data = validate_json(PANIC_ALERT_RULES)
    user_id = current_user_id()
    latitude, longitude = data['latitude'], data['longitude']
    alert_type = AlertType(data['type'])
    severity = AlertSeverity(data['severity'])

    user = db.session.get(Tourist, user_id)
    violations = check_geofences(latitude, longitude)

    alert = Alert(
        user_id=user_id,
        type=alert_type,
        severity=severity,
        status=AlertStatus.ACTIVE,
        latitude=latitude,
        longitude=longitude,
        message=data.get('message'),
        meta={
            'geofence_violations': violations,
            'user_agent': request.headers.get('User-Agent'),
            'timestamp': isoformat(utcnow()),
            'emergency_contact': user.emergency_contact if user else None,
        },
    )
    db.session.add(alert)
    db.session.flush()

    # High-accuracy fix tied to the alert for responders
    db.session.add(Location(
        user_id=user_id,
        latitude=latitude,
        longitude=longitude,
        accuracy=10,
        alert_id=alert.id,
        meta={},
    ))
    db.session.commit()

    user_name = user.name if user else None
    broadcast('new_alert', {
        'id': str(alert.id),
        'userId': str(user_id),
        'userName': user_name,
        'type': alert_type.value,
        'severity': severity.value,
        'status': AlertStatus.ACTIVE.value,
        'latitude': latitude,
        'longitude': longitude,
        'message': alert.message,
        'createdAt': isoformat(alert.created_at),
        'geofenceViolations': violations,
    })

    if severity in (AlertSeverity.CRITICAL, AlertSeverity.HIGH):
        try:
            send_push_notification(
                topic='emergency_alerts',
                title=f'{severity.value.upper()} Alert - {alert_type.value}',
                body=f'{user_name} has triggered a {alert_type.value} alert at {latitude}, {longitude}',
                data={
                    'alert_id': str(alert.id),
                    'type': alert_type.value,
                    'severity': severity.value,
                    'latitude': str(latitude),
                    'longitude': str(longitude),
                },
            )
        except Exception:
            logger.exception('Failed to send push notification for alert %s', alert.id)

    if severity is AlertSeverity.CRITICAL:
        try:
            anchor = anchor_to_blockchain({
                'alert_id': str(alert.id),
                'user_id': str(user_id),
                'type': alert_type.value,
                'severity': severity.value,
                'timestamp': isoformat(alert.created_at),
                'location_hash': f'{latitude},{longitude}',
            })
            alert.blockchain_tx = anchor['hash']
            alert.blockchain_network = anchor['network']
            db.session.commit()
            logger.info('Critical alert %s anchored to blockchain: %s', alert.id, anchor['hash'])
        except Exception:
            db.session.rollback()
            logger.exception('Failed to anchor alert %s to blockchain', alert.id)

    logger.info('Panic alert created by user %s: %s (%s)', user_id, alert.id, severity.value)

    return jsonify({
        'success': True,
        'data': {
            'alert': {
                'id': str(alert.id),
                'type': alert.type.value,
                'severity': alert.severity.value,
                'status': alert.status.value,
                'latitude': alert.latitude,
                'longitude': alert.longitude,
                'message': alert.message,
                'blockchainTx': alert.blockchain_tx,
                'createdAt': isoformat(alert.created_at),
                'estimatedResponseTime': estimated_response_time(severity, bool(violations)),
            },
            'geofenceViolations': violations,
        },
        'message': 'Alert created successfully. Help is on the way.',
    }), 201


@bp.route('', methods=['GET'])
@bp.route('/', methods=['GET'])
@jwt_required()
def list_alerts():
    page = pagination(50)
    filters = validate_args({
        'status': {'type': 'string', 'choices': STATUSES},
        'severity': {'type': 'string', 'choices': SEVERITIES},
        'type': {'type': 'string', 'choices': [t.value for t in AlertType]},
    })

    query = Alert.query.order_by(Alert.created_at.desc())
    if not is_staff():
        query = query.filter(Alert.user_id == current_user_id())
    if 'status' in filters:
        query = query.filter(Alert.status == AlertStatus(filters['status']))
    if 'severity' in filters:
        query = query.filter(Alert.severity == AlertSeverity(filters['severity']))
    if 'type' in filters:
        query = query.filter(Alert.type == AlertType(filters['type']))

    alerts = query.offset(page['offset']).limit(page['limit']).all()
    return jsonify({
        'success': True,
        'data': {
            'alerts': [a.to_dict() for a in alerts],
            'pagination': {'limit': page['limit'], 'offset': page['offset'], 'total': len(alerts)},
        },
    })


@bp.route('/<uuid:alert_id>', methods=['GET'])
@jwt_required()
def get_alert(alert_id):
    query = Alert.query.filter(Alert.id == alert_id)
    if not is_staff():
        query = query.filter(Alert.user_id == current_user_id())

    alert = query.first()
    if not alert:
        raise ApiError(404, 'Alert not found')
    return jsonify({'success': True, 'data': {'alert': alert.to_dict(detailed=True)}})


@bp.route('/<uuid:alert_id>', methods=['PUT'])
@staff_required
def update_alert(alert_id):
    data = validate_json(UPDATE_ALERT_RULES)
    user_id = current_user_id()

    alert = db.session.get(Alert, alert_id)
    if not alert:
        raise ApiError(404, 'Alert not found or update failed')

    status = AlertStatus(data['status'])
    alert.status = status
    alert.updated_at = utcnow()
    if data.get('response_notes'):
        alert.response_notes = data['response_notes']
    if data.get('assigned_to'):
        if not db.session.get(Tourist, data['assigned_to']):
            raise ApiError(400, 'Referenced resource not found')
        alert.assigned_to = data['assigned_to']
    if status is AlertStatus.RESOLVED:
        alert.resolved_at = utcnow()
        alert.resolved_by = user_id
    db.session.commit()

    broadcast('alert_updated', {
        'id': str(alert.id),
        'status': alert.status.value,
        'responseNotes': alert.response_notes,
        'updatedAt': isoformat(alert.updated_at),
        'resolvedAt': isoformat(alert.resolved_at),
    })

    if status is AlertStatus.RESOLVED:
        try:
            send_push_notification(
                user_id=str(alert.user_id),
                title='Alert Resolved',
                body=f'Your {alert.type.value} alert has been resolved. You are safe now.',
                data={'alert_id': str(alert.id), 'status': 'resolved'},
            )
        except Exception:
            logger.exception('Failed to send resolution notification for alert %s', alert.id)

    logger.info('Alert %s updated to %s by user %s', alert_id, status.value, user_id)

    return jsonify({
        'success': True,
        'data': {
            'alert': {
                'id': str(alert.id),
                'status': alert.status.value,
                'responseNotes': alert.response_notes,
                'assignedTo': str(alert.assigned_to) if alert.assigned_to else None,
                'updatedAt': isoformat(alert.updated_at),
                'resolvedAt': isoformat(alert.resolved_at),
            },
        },
        'message': 'Alert updated successfully',
    })


def alert_statistics(now=None):
    now = now or utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total = Alert.query.count()
    active = Alert.query.filter(Alert.status == AlertStatus.ACTIVE).count()
    today = Alert.query.filter(Alert.created_at >= start_of_day).count()
    critical = Alert.query.filter(Alert.severity == AlertSeverity.CRITICAL).count()

    by_type = {}
    recent = Alert.query.with_entities(Alert.type).filter(Alert.created_at >= now - timedelta(days=7))
    for (alert_type,) in recent:
        by_type[alert_type.value] = by_type.get(alert_type.value, 0) + 1

    resolved = (Alert.query
                .with_entities(Alert.created_at, Alert.resolved_at)
                .filter(Alert.status == AlertStatus.RESOLVED,
                        Alert.resolved_at.isnot(None),
                        Alert.created_at >= now - timedelta(days=30))
                .all())
    average_ms = 0
    if resolved:
        total_ms = sum((resolved_at - created_at).total_seconds() * 1000 for created_at, resolved_at in resolved)
        average_ms = total_ms / len(resolved)

    return {
        'statistics': {
            'totalAlerts': total,
            'activeAlerts': active,
            'todayAlerts': today,
            'criticalAlerts': critical,
            'averageResponseTimeMs': round(average_ms),
            'averageResponseTimeMinutes': round(average_ms / 60000),
        },
        'breakdown': {'byType': by_type},
    }


@bp.route('/stats/dashboard', methods=['GET'])
@staff_required
def dashboard_stats():
    return jsonify({'success': True, 'data': alert_statistics()})
