import logging

from flask import current_app

from ..models import Location
from .geo import distance_meters

logger = logging.getLogger(__name__)


def _earlier_fixes(user_id, before):
    return (Location.query
            .filter(Location.user_id == user_id, Location.created_at < before)
            .order_by(Location.created_at.desc()))


def _stationary_since(fixes, point, radius):
    """Start time of the unbroken run of fixes (newest first) that stay within radius of point."""
    since = None
    for fix in fixes:
        if distance_meters(fix.latitude, fix.longitude, point['latitude'], point['longitude']) > radius:
            break
        since = fix.created_at
    return since


def detect_anomalies(user_id, point):
    """
    Compares a new fix against the tourist's earlier ones.
    point: dict with latitude, longitude, timestamp (naive UTC datetime) and optional speed.
    Returns {'type', 'confidence', 'description'} or None.
    """
    fixes = _earlier_fixes(user_id, point['timestamp'])
    previous = fixes.first()
    if previous is None:
        return None

    elapsed = (point['timestamp'] - previous.created_at).total_seconds()
    moved = distance_meters(previous.latitude, previous.longitude, point['latitude'], point['longitude'])

    max_speed_kmh = current_app.config['MAX_PLAUSIBLE_SPEED_KMH']
    if elapsed > 0:
        speed_kmh = (moved / elapsed) * 3.6
        if speed_kmh > max_speed_kmh:
            logger.warning('Implausible movement for %s: %.0f km/h', user_id, speed_kmh)
            return {
                'type': 'sudden_movement',
                'confidence': round(min(speed_kmh / (max_speed_kmh * 2), 1.0), 2),
                'description': f'Moved {moved:.0f} m in {elapsed:.0f} s ({speed_kmh:.0f} km/h)',
            }

    radius = current_app.config['STATIONARY_RADIUS_METERS']
    if moved > radius:
        return None

    threshold = current_app.config['STATIONARY_THRESHOLD_SECONDS']
    since = _stationary_since(fixes, point, radius)
    still_for = (point['timestamp'] - since).total_seconds()
    if still_for > threshold:
        minutes = int(still_for / 60)
        return {
            'type': 'stationary',
            'confidence': round(min(still_for / (threshold * 2), 1.0), 2),
            'description': f'Tourist has been stationary for over {minutes} minutes.',
        }

    return None
