from tourist_safety.models import Location

from tests.conftest import event_names


def test_anonymous_connection(socket_client):
    sio = socket_client()
    assert sio.is_connected()


def test_authenticated_connection_gets_status(socket_client, tourist):
    sio = socket_client(tourist['tokens']['accessToken'])
    assert sio.is_connected()
    received = sio.get_received()
    assert received[0]['name'] == 'status'


def test_token_in_query_string(socket_client, tourist):
    sio = socket_client(query_string=f"token={tourist['tokens']['accessToken']}")
    assert sio.is_connected()
    assert 'status' in event_names(sio)


def test_invalid_token_is_refused(socket_client):
    sio = socket_client('not-a-jwt')
    assert not sio.is_connected()


def test_refresh_token_is_refused(socket_client, tourist):
    sio = socket_client(tourist['tokens']['refreshToken'])
    assert not sio.is_connected()


def test_join_dashboard_needs_staff(socket_client, tourist, police):
    tourist_sio = socket_client(tourist['tokens']['accessToken'])
    tourist_sio.get_received()
    tourist_sio.emit('join_dashboard')
    received = tourist_sio.get_received()
    assert received[0]['name'] == 'error'

    police_sio = socket_client(police['tokens']['accessToken'])
    police_sio.get_received()
    police_sio.emit('join_dashboard')
    assert police_sio.get_received()[0]['args'][0] == {'msg': 'Joined dashboard room'}


def test_update_location_event(app, socket_client, tourist, police):
    dashboard = socket_client(police['tokens']['accessToken'])
    dashboard.get_received()
    sio = socket_client(tourist['tokens']['accessToken'])

    ack = sio.emit('update_location', {'latitude': 28.6139, 'longitude': 77.2090, 'speed': 1.5}, callback=True)
    assert ack['success'] is True
    assert ack['location']['latitude'] == 28.6139

    changes = [p for p in dashboard.get_received() if p['name'] == 'tourist_location_change']
    assert changes[0]['args'][0]['userId'] == tourist['user']['id']

    with app.app_context():
        assert Location.query.one().meta == {'source': 'socket'}


def test_update_location_event_validation(socket_client, tourist):
    sio = socket_client(tourist['tokens']['accessToken'])
    ack = sio.emit('update_location', {'latitude': 28.6139}, callback=True)
    assert ack['success'] is False
    assert 'longitude' in ack['details']


def test_update_location_event_needs_identity(socket_client):
    sio = socket_client()
    ack = sio.emit('update_location', {'latitude': 1, 'longitude': 1}, callback=True)
    assert ack == {'success': False, 'error': 'Authentication required'}
