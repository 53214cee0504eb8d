"""Spatial helpers shared by the geofence and proximity queries.

On PostgreSQL/PostGIS the predicates run in the database through
GeoAlchemy2 functions; on any other engine (SQLite during tests) the same
predicates are evaluated in Python with Shapely and geopy.
"""
from geoalchemy2 import Geography, functions as geo_func
from geopy.distance import geodesic
from sqlalchemy import cast

from ..extensions import db

SRID = 4326


def uses_postgis():
    return db.engine.dialect.name == 'postgresql'


def point_expr(latitude, longitude):
    """ST_SetSRID(ST_MakePoint(lng, lat), 4326); accepts literals or columns."""
    return geo_func.ST_SetSRID(geo_func.ST_MakePoint(longitude, latitude), SRID)


def contains_point_clause(geometry_column, latitude, longitude):
    return geo_func.ST_Contains(geo_func.ST_GeomFromText(geometry_column, SRID), point_expr(latitude, longitude))


def within_radius_clause(lat_column, lng_column, latitude, longitude, radius_meters):
    """Geography-cast ST_DWithin so the radius is in metres, not degrees."""
    return geo_func.ST_DWithin(
        cast(point_expr(lat_column, lng_column), Geography),
        cast(point_expr(latitude, longitude), Geography),
        radius_meters,
    )


def distance_expr(lat_column, lng_column, latitude, longitude):
    return geo_func.ST_Distance(
        cast(point_expr(lat_column, lng_column), Geography),
        cast(point_expr(latitude, longitude), Geography),
    )


def distance_meters(lat1, lng1, lat2, lng2):
    return geodesic((lat1, lng1), (lat2, lng2)).meters
