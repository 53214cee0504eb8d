import pytest
from shapely import wkt as shapely_wkt
from sqlalchemy.dialects import postgresql

from tourist_safety.errors import ApiError
from tourist_safety.models import Geofence, Location
from tourist_safety.services import geo
from tourist_safety.services.geofence import build_polygon_wkt, check_geofences, create_geofence, parse_polygon_coordinates

from tests.conftest import SQUARE


def test_build_polygon_closes_ring_once():
    wkt = build_polygon_wkt(SQUARE)
    ring = list(shapely_wkt.loads(wkt).exterior.coords)
    assert len(ring) == 5
    assert ring[0] == ring[-1] == (10.0, 10.0)
    assert ring[1] == (10.1, 10.0)

    closed = build_polygon_wkt(SQUARE + [SQUARE[0]])
    assert closed == wkt


def test_build_polygon_needs_three_points():
    with pytest.raises(ApiError) as exc:
        build_polygon_wkt([[1, 1], [2, 2]])
    assert exc.value.status_code == 400

    with pytest.raises(ApiError):
        build_polygon_wkt([[1, 1], [2, 2], [1, 1]])


def test_build_polygon_rejects_self_intersection():
    with pytest.raises(ApiError):
        build_polygon_wkt([[0, 0], [1, 1], [0, 1], [1, 0]])


def test_parse_polygon_coordinates_round_trip():
    assert parse_polygon_coordinates(build_polygon_wkt(SQUARE)) == SQUARE


def test_parse_polygon_coordinates_invalid():
    assert parse_polygon_coordinates('not a polygon') == []
    assert parse_polygon_coordinates('POINT (1 2)') == []


def test_check_geofences(app_ctx):
    zone = create_geofence('Old Fort', 'restricted', SQUARE, description='Closed at night')
    create_geofence('Elsewhere', 'safe', [[0, 0], [0, 1], [1, 1]])

    violations = check_geofences(10.05, 10.05)
    assert violations == [{
        'id': str(zone.id),
        'name': 'Old Fort',
        'type': 'restricted',
        'description': 'Closed at night',
    }]
    assert check_geofences(11, 11) == []


def test_inactive_geofence_is_ignored(app_ctx):
    from tourist_safety.extensions import db

    zone = create_geofence('Old Fort', 'restricted', SQUARE)
    zone.is_active = False
    db.session.commit()
    assert check_geofences(10.05, 10.05) == []


def test_postgis_predicates_compile():
    contains = geo.contains_point_clause(Geofence.geometry, 10.05, 10.05)
    sql = str(contains.compile(dialect=postgresql.dialect()))
    assert 'ST_Contains' in sql
    assert 'ST_GeomFromText' in sql
    assert 'ST_MakePoint' in sql

    within = geo.within_radius_clause(Location.latitude, Location.longitude, 28.6, 77.2, 1000)
    sql = str(within.compile(dialect=postgresql.dialect()))
    assert 'ST_DWithin' in sql
    assert 'geography' in sql.lower()


def test_distance_meters():
    # one degree of latitude is roughly 111 km
    assert 110_000 < geo.distance_meters(0, 0, 1, 0) < 112_000


def test_create_geofence_route(client, police):
    resp = client.post('/api/geofences', headers=police['headers'], json={
        'name': 'Old Fort', 'type': 'restricted', 'coordinates': SQUARE, 'description': 'Closed at night',
    })
    assert resp.status_code == 201
    geofence = resp.get_json()['data']['geofence']
    assert geofence['coordinates'] == SQUARE
    assert geofence['isActive'] is True


def test_create_geofence_requires_staff(client, tourist):
    resp = client.post('/api/geofences', headers=tourist['headers'], json={
        'name': 'Old Fort', 'type': 'restricted', 'coordinates': SQUARE,
    })
    assert resp.status_code == 403


def test_create_geofence_bad_coordinates(client, police):
    resp = client.post('/api/geofences', headers=police['headers'], json={
        'name': 'Broken', 'type': 'restricted', 'coordinates': [[10, 10], ['a', 10], [11, 11]],
    })
    assert resp.status_code == 400

    resp = client.post('/api/geofences', headers=police['headers'], json={
        'name': 'Too small', 'type': 'warning', 'coordinates': [[10, 10], [11, 11]],
    })
    assert resp.status_code == 400

    resp = client.post('/api/geofences', headers=police['headers'], json={
        'name': 'Odd type', 'type': 'forbidden', 'coordinates': SQUARE,
    })
    assert resp.status_code == 400


def test_list_and_get_geofences(client, tourist, make_geofence):
    older = make_geofence('safe', name='Hub')
    newer = make_geofence('warning', name='Crowded', coordinates=[[0, 0], [0, 1], [1, 1]])

    listed = client.get('/api/geofences', headers=tourist['headers']).get_json()['data']['geofences']
    assert [g['id'] for g in listed] == [newer['id'], older['id']]

    resp = client.get(f"/api/geofences/{older['id']}", headers=tourist['headers'])
    assert resp.get_json()['data']['geofence']['name'] == 'Hub'
    assert client.get('/api/geofences/00000000-0000-0000-0000-000000000000',
                      headers=tourist['headers']).status_code == 404


def test_update_geofence(client, police, make_geofence):
    zone = make_geofence()
    new_square = [[20, 20], [20, 21], [21, 21], [21, 20]]
    resp = client.put(f"/api/geofences/{zone['id']}", headers=police['headers'], json={
        'name': 'Moved', 'type': 'emergency', 'coordinates': new_square,
    })
    assert resp.status_code == 200
    updated = resp.get_json()['data']['geofence']
    assert updated['name'] == 'Moved'
    assert updated['type'] == 'emergency'
    assert updated['coordinates'] == new_square


def test_delete_deactivates(client, police, make_geofence):
    zone = make_geofence()
    resp = client.delete(f"/api/geofences/{zone['id']}", headers=police['headers'])
    assert resp.status_code == 200

    check = client.post('/api/geofences/check', headers=police['headers'], json={'latitude': 10.05, 'longitude': 10.05})
    assert check.get_json()['data']['geofences'] == []
    assert client.get('/api/geofences', headers=police['headers']).get_json()['data']['geofences'] == []


def test_check_point(client, tourist, make_geofence):
    make_geofence('safe')
    resp = client.post('/api/geofences/check', headers=tourist['headers'], json={'latitude': 10.05, 'longitude': 10.05})
    data = resp.get_json()['data']
    assert data['inSafeZone'] is True
    assert data['inRestrictedArea'] is False
    assert len(data['geofences']) == 1
