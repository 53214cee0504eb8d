from datetime import timedelta

from tourist_safety.extensions import db
from tourist_safety.models import Location, utcnow
from tourist_safety.services.anomaly import detect_anomalies

from tests.conftest import create_tourist


def add_fix(user, latitude, longitude, at):
    db.session.add(Location(user_id=user.id, latitude=latitude, longitude=longitude, created_at=at, meta={}))
    db.session.commit()


def test_first_fix_has_no_anomaly(app_ctx):
    user = create_tourist()
    assert detect_anomalies(user.id, {'latitude': 1, 'longitude': 1, 'timestamp': utcnow()}) is None


def test_sudden_movement(app_ctx):
    user = create_tourist()
    now = utcnow()
    add_fix(user, 28.6139, 77.2090, now - timedelta(minutes=10))

    # Delhi to Mumbai in ten minutes
    anomaly = detect_anomalies(user.id, {'latitude': 19.0760, 'longitude': 72.8777, 'timestamp': now})
    assert anomaly['type'] == 'sudden_movement'
    assert anomaly['confidence'] == 1.0


def test_stationary(app_ctx):
    user = create_tourist()
    now = utcnow()
    add_fix(user, 28.6139, 77.2090, now - timedelta(minutes=45))

    anomaly = detect_anomalies(user.id, {'latitude': 28.61391, 'longitude': 77.20901, 'timestamp': now})
    assert anomaly['type'] == 'stationary'
    assert 0 < anomaly['confidence'] < 1
    assert '45 minutes' in anomaly['description']


def test_normal_walk(app_ctx):
    user = create_tourist()
    now = utcnow()
    add_fix(user, 28.6139, 77.2090, now - timedelta(minutes=10))

    # roughly 800 m in ten minutes
    assert detect_anomalies(user.id, {'latitude': 28.6211, 'longitude': 77.2090, 'timestamp': now}) is None


def test_only_earlier_fixes_count(app_ctx):
    user = create_tourist()
    now = utcnow()
    add_fix(user, 19.0760, 72.8777, now + timedelta(minutes=1))
    assert detect_anomalies(user.id, {'latitude': 28.6139, 'longitude': 77.2090, 'timestamp': now}) is None


def test_stationary_with_regular_updates(app_ctx):
    user = create_tourist()
    now = utcnow()
    for minutes in range(40, 0, -5):
        add_fix(user, 28.6139, 77.2090, now - timedelta(minutes=minutes))

    anomaly = detect_anomalies(user.id, {'latitude': 28.6139, 'longitude': 77.2090, 'timestamp': now})
    assert anomaly['type'] == 'stationary'
    assert '40 minutes' in anomaly['description']


def test_stationary_run_restarts_after_moving(app_ctx):
    user = create_tourist()
    now = utcnow()
    add_fix(user, 28.6211, 77.2090, now - timedelta(minutes=60))
    for minutes in (20, 10):
        add_fix(user, 28.6139, 77.2090, now - timedelta(minutes=minutes))

    assert detect_anomalies(user.id, {'latitude': 28.6139, 'longitude': 77.2090, 'timestamp': now}) is None
