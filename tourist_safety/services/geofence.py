import logging

from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry import Point, Polygon
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ApiError
from ..extensions import db
from ..models import Geofence, GeofenceType, isoformat
from . import geo

logger = logging.getLogger(__name__)


def build_polygon_wkt(coordinates):
    """[[lat, lng], ...] -> 'POLYGON((lng lat, ..., first))' with the ring closed exactly once."""
    if not coordinates or len(coordinates) < 3:
        raise ApiError(400, 'A geofence needs at least 3 coordinates')

    ring = [(float(lng), float(lat)) for lat, lng in coordinates]
    if ring[0] == ring[-1]:
        ring = ring[:-1]
    if len(ring) < 3:
        raise ApiError(400, 'A geofence needs at least 3 distinct coordinates')

    polygon = Polygon(ring)
    if not polygon.is_valid:
        raise ApiError(400, 'Geofence coordinates do not form a valid polygon')
    return polygon.wkt


def parse_polygon_coordinates(geometry):
    """Inverse of build_polygon_wkt: [[lat, lng], ...] without the closing point."""
    try:
        shape = wkt.loads(geometry)
        coords = list(shape.exterior.coords)
    except (ShapelyError, AttributeError, TypeError) as e:
        logger.error('Failed to parse polygon coordinates: %s', e)
        return []
    return [[lat, lng] for lng, lat in coords[:-1]]


def _violation(geofence):
    return {
        'id': str(geofence.id),
        'name': geofence.name,
        'type': geofence.type.value,
        'description': geofence.description,
    }


def check_geofences(latitude, longitude):
    """All active geofences containing the point. Failures are logged and yield []."""
    try:
        query = Geofence.query.filter(Geofence.is_active.is_(True))
        if geo.uses_postgis():
            matches = query.filter(geo.contains_point_clause(Geofence.geometry, latitude, longitude)).all()
        else:
            point = Point(longitude, latitude)
            matches = [g for g in query.all() if wkt.loads(g.geometry).contains(point)]
    except (SQLAlchemyError, ShapelyError) as e:
        logger.error('Geofence check failed: %s', e)
        db.session.rollback()
        return []

    return [_violation(g) for g in matches]


def create_geofence(name, type, coordinates, description=None, created_by=None):
    geofence = Geofence(
        name=name,
        type=GeofenceType(type),
        description=description,
        geometry=build_polygon_wkt(coordinates),
        is_active=True,
        created_by=created_by,
        meta={},
    )
    db.session.add(geofence)
    db.session.commit()
    logger.info('Geofence created: %s (%s)', name, type)
    return geofence


def serialize_geofence(geofence):
    return {
        'id': str(geofence.id),
        'name': geofence.name,
        'type': geofence.type.value,
        'description': geofence.description,
        'coordinates': parse_polygon_coordinates(geofence.geometry),
        'isActive': geofence.is_active,
        'createdAt': isoformat(geofence.created_at),
    }


def get_active_geofences():
    geofences = (Geofence.query
                 .filter(Geofence.is_active.is_(True))
                 .order_by(Geofence.created_at.desc())
                 .all())
    return [serialize_geofence(g) for g in geofences]
