from datetime import timedelta

from tourist_safety.commands import cleanup_expired_records
from tourist_safety.extensions import db
from tourist_safety.models import Alert, AlertSeverity, AlertType, Location, LocationShare, RefreshToken, utcnow

from tests.conftest import create_tourist


def seed(user):
    now = utcnow()
    alert = Alert(user_id=user.id, type=AlertType.PANIC, severity=AlertSeverity.HIGH, latitude=1, longitude=1, meta={})
    db.session.add(alert)
    db.session.flush()
    db.session.add_all([
        RefreshToken(user_id=user.id, token='expired', expires_at=now - timedelta(hours=1)),
        RefreshToken(user_id=user.id, token='valid', expires_at=now + timedelta(days=1)),
        LocationShare(user_id=user.id, shared_with='Asha', latitude=1, longitude=1, expires_at=now - timedelta(hours=1)),
        LocationShare(user_id=user.id, shared_with='Asha', latitude=1, longitude=1, expires_at=now + timedelta(hours=1)),
        Location(user_id=user.id, latitude=1, longitude=1, created_at=now - timedelta(days=120), meta={}),
        Location(user_id=user.id, latitude=1, longitude=1, created_at=now - timedelta(days=120), alert_id=alert.id, meta={}),
        Location(user_id=user.id, latitude=1, longitude=1, created_at=now - timedelta(days=1), meta={}),
    ])
    db.session.commit()


def test_cleanup_expired_records(app_ctx):
    seed(create_tourist())
    removed = cleanup_expired_records()
    assert removed == {'refreshTokens': 1, 'locationShares': 1, 'locations': 1}
    assert [t.token for t in RefreshToken.query.all()] == ['valid']
    assert LocationShare.query.count() == 1
    assert Location.query.count() == 2


def test_cleanup_command(app):
    with app.app_context():
        seed(create_tourist())

    result = app.test_cli_runner().invoke(args=['cleanup'])
    assert result.exit_code == 0
    assert 'refreshTokens: 1 removed' in result.output
    assert 'locations: 1 removed' in result.output
