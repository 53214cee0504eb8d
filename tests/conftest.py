import itertools

import pytest

from tourist_safety import create_app
from tourist_safety.extensions import db, socketio
from tourist_safety.models import Tourist

_emails = itertools.count()

SQUARE = [[10.0, 10.0], [10.0, 10.1], [10.1, 10.1], [10.1, 10.0]]


@pytest.fixture
def app():
    app = create_app('testing')
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register(client):
    """Registers a user through the API and returns its profile, tokens and auth headers."""

    def _register(role='tourist', **overrides):
        n = next(_emails)
        payload = {
            'email': f'{role}{n}@example.com',
            'password': 'password123',
            'name': f'Test {role.title()} {n}',
            'country': 'India',
            'role': role,
        }
        payload.update(overrides)
        resp = client.post('/api/auth/register', json=payload)
        assert resp.status_code == 201, resp.get_json()
        data = resp.get_json()['data']
        return {
            'user': data['user'],
            'tokens': data['tokens'],
            'password': payload['password'],
            'headers': {'Authorization': f"Bearer {data['tokens']['accessToken']}"},
        }

    return _register


@pytest.fixture
def tourist(register):
    return register('tourist', emergencyContact={'name': 'Asha', 'phone': '+911234567890', 'relationship': 'sister'})


@pytest.fixture
def police(register):
    return register('police')


@pytest.fixture
def admin(register):
    return register('admin')


@pytest.fixture
def socket_client(app, client):
    """Factory for Socket.IO test clients, optionally authenticated with an access token."""
    clients = []

    def _connect(token=None, **kwargs):
        auth = {'token': token} if token else None
        sio = socketio.test_client(app, flask_test_client=client, auth=auth, **kwargs)
        clients.append(sio)
        return sio

    yield _connect
    for sio in clients:
        if sio.is_connected():
            sio.disconnect()


@pytest.fixture
def make_geofence(client, police):
    def _make(type='restricted', coordinates=None, name='Old Fort'):
        resp = client.post('/api/geofences', headers=police['headers'], json={
            'name': name,
            'type': type,
            'coordinates': coordinates or SQUARE,
        })
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()['data']['geofence']

    return _make


def create_tourist(**kwargs):
    """Direct insert for service-level tests; needs an app context."""
    n = next(_emails)
    defaults = {'email': f'direct{n}@example.com', 'password': 'password123', 'name': 'Direct Tourist', 'country': 'India'}
    defaults.update(kwargs)
    tourist = Tourist(**defaults)
    db.session.add(tourist)
    db.session.commit()
    return tourist


def event_names(sio):
    return [packet['name'] for packet in sio.get_received()]
