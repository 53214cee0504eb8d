def add_place(client, admin, **overrides):
    payload = {'name': 'Red Fort', 'latitude': 28.6562, 'longitude': 77.2410, 'category': 'monument', 'rating': 4.5}
    payload.update(overrides)
    resp = client.post('/api/places', headers=admin['headers'], json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['data']['place']


def test_create_place_is_admin_only(client, police):
    resp = client.post('/api/places', headers=police['headers'], json={'name': 'Red Fort', 'latitude': 1, 'longitude': 1})
    assert resp.status_code == 403


def test_create_place_validation(client, admin):
    resp = client.post('/api/places', headers=admin['headers'], json={'name': 'Red Fort', 'latitude': 1, 'rating': 9})
    assert resp.status_code == 400
    assert set(resp.get_json()['details']) == {'longitude', 'rating'}


def test_get_place(client, admin, tourist):
    place = add_place(client, admin)
    resp = client.get(f"/api/places/{place['id']}", headers=tourist['headers'])
    assert resp.get_json()['data']['place']['name'] == 'Red Fort'
    assert client.get('/api/places/00000000-0000-0000-0000-000000000000', headers=tourist['headers']).status_code == 404


def test_nearby_places_sorted_by_distance(client, admin, tourist):
    add_place(client, admin, name='Jama Masjid', latitude=28.6507, longitude=77.2334, category='religious')
    add_place(client, admin)
    add_place(client, admin, name='Taj Mahal', latitude=27.1751, longitude=78.0421)

    resp = client.get('/api/places/nearby?latitude=28.6562&longitude=77.2410', headers=tourist['headers'])
    data = resp.get_json()['data']
    assert [p['name'] for p in data['places']] == ['Red Fort', 'Jama Masjid']
    assert data['places'][0]['distance'] == 0
    assert data['searchRadius'] == 5000


def test_nearby_places_by_category(client, admin, tourist):
    add_place(client, admin, name='Jama Masjid', latitude=28.6507, longitude=77.2334, category='religious')
    add_place(client, admin)

    resp = client.get('/api/places/nearby?latitude=28.6562&longitude=77.2410&category=religious', headers=tourist['headers'])
    assert [p['name'] for p in resp.get_json()['data']['places']] == ['Jama Masjid']


def test_nearby_places_requires_coordinates(client, tourist):
    assert client.get('/api/places/nearby', headers=tourist['headers']).status_code == 400
