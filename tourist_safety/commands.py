import logging
from datetime import timedelta

import click
from flask import current_app

from .extensions import db
from .models import Location, LocationShare, RefreshToken, utcnow

logger = logging.getLogger(__name__)


def cleanup_expired_records(now=None):
    """Deletes expired refresh tokens and location shares, plus locations past the retention window."""
    now = now or utcnow()
    retention = timedelta(days=current_app.config['LOCATION_RETENTION_DAYS'])

    removed = {
        'refreshTokens': RefreshToken.query.filter(RefreshToken.expires_at < now).delete(synchronize_session=False),
        'locationShares': LocationShare.query.filter(LocationShare.expires_at < now).delete(synchronize_session=False),
        # fixes attached to an alert are evidence and are kept
        'locations': (Location.query
                      .filter(Location.created_at < now - retention, Location.alert_id.is_(None))
                      .delete(synchronize_session=False)),
    }
    db.session.commit()
    logger.info('Cleanup removed %s', removed)
    return removed


def register_commands(app):

    @app.cli.command('cleanup')
    def cleanup_command():
        """Remove expired tokens, shares and old location history."""
        removed = cleanup_expired_records()
        for name, count in removed.items():
            click.echo(f'{name}: {count} removed')

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        db.create_all()
        click.echo('Database tables created')
