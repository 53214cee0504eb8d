import uuid

import pytest
from web3 import Web3

from tourist_safety.models import Alert, BlockchainAnchor
from tourist_safety.services import blockchain
from tourist_safety.services.blockchain import (anchor_payload_hash, anchor_to_blockchain, canonical_json,
                                                deploy_contract, hash_pii, verify_blockchain_anchor)

from tests.conftest import create_tourist


def alert_payload(**overrides):
    data = {
        'alert_id': str(uuid.uuid4()),
        'user_id': str(uuid.uuid4()),
        'type': 'panic',
        'severity': 'critical',
        'timestamp': '2024-09-01T10:00:00Z',
        'location_hash': '28.6139,77.209',
    }
    data.update(overrides)
    return data


def test_canonical_json_drops_none_and_sorts():
    assert canonical_json({'b': 1, 'a': None, 'c': 'x'}) == '{"b":1,"c":"x"}'


def test_payload_hash_is_salted(app):
    data = alert_payload()
    with app.app_context():
        first = anchor_payload_hash(data)
        assert first.startswith('0x')
        assert len(first) == 66
        assert anchor_payload_hash(data) == first

        app.config['ENCRYPTION_KEY'] = 'another-key'
        assert anchor_payload_hash(data) != first


def test_hash_pii_never_returns_the_input(app_ctx):
    hashed = hash_pii('+911234567890')
    assert '+911234567890' not in hashed
    assert len(hashed) == 64


def test_mock_anchor_and_verify(app_ctx):
    data = alert_payload()
    anchor = anchor_to_blockchain(data)
    assert anchor['network'] == 'mock'
    assert anchor['transactionHash'].startswith('mock_tx_')
    assert anchor['blockNumber'] is None

    result = verify_blockchain_anchor('alert', uuid.UUID(data['alert_id']))
    assert result['verified'] is True
    assert result['hash'] == anchor['hash']


def test_verify_unknown_reference(app_ctx):
    assert verify_blockchain_anchor('alert', uuid.uuid4()) == {'verified': False}


def test_failed_chain_write_leaves_fallback_anchor(app_ctx, monkeypatch):
    app_ctx.config.update(MOCK_BLOCKCHAIN=False, POLYGON_RPC_URL='http://localhost:8545')

    def broken(hash_value):
        raise ConnectionError('rpc unreachable')

    monkeypatch.setattr(blockchain, '_send_store_hash', broken)
    data = alert_payload()
    with pytest.raises(ConnectionError):
        anchor_to_blockchain(data)

    anchor = BlockchainAnchor.query.one()
    assert anchor.network == 'fallback'
    assert anchor.transaction_hash.startswith('fallback_')
    assert verify_blockchain_anchor('alert', uuid.UUID(data['alert_id']))['verified'] is True


def test_real_anchor_records_block(app_ctx, monkeypatch):
    app_ctx.config.update(MOCK_BLOCKCHAIN=False, POLYGON_RPC_URL='http://localhost:8545')
    monkeypatch.setattr(blockchain, '_send_store_hash', lambda hash_value: ('0xabc123', 42))

    anchor = anchor_to_blockchain(alert_payload())
    assert anchor == {'hash': anchor['hash'], 'network': 'polygon-mumbai', 'transactionHash': '0xabc123', 'blockNumber': 42}
    assert BlockchainAnchor.query.one().block_number == 42


def test_anchor_without_alert_references_user(app_ctx):
    user = create_tourist()
    anchor_to_blockchain(alert_payload(alert_id=None, user_id=str(user.id)))
    stored = BlockchainAnchor.query.one()
    assert stored.reference_type == 'user'
    assert stored.reference_id == user.id


def test_deploy_contract_returns_checksum_address(app_ctx):
    assert Web3.is_checksum_address(deploy_contract())


def test_anchor_route(app, client, tourist, police):
    alert_id = client.post('/api/alerts/panic', headers=tourist['headers'], json={
        'latitude': 28.6, 'longitude': 77.2,
    }).get_json()['data']['alert']['id']

    assert client.post('/api/blockchain/anchor', headers=tourist['headers'],
                       json={'alert_id': alert_id}).status_code == 403

    resp = client.post('/api/blockchain/anchor', headers=police['headers'], json={'alert_id': alert_id})
    assert resp.status_code == 201
    anchor = resp.get_json()['data']['anchor']

    with app.app_context():
        from tourist_safety.extensions import db
        assert db.session.get(Alert, uuid.UUID(alert_id)).blockchain_tx == anchor['hash']

    verify = client.get(f'/api/blockchain/verify/alert/{alert_id}', headers=tourist['headers'])
    assert verify.get_json()['data']['verified'] is True


def test_anchor_route_unknown_alert(client, police):
    resp = client.post('/api/blockchain/anchor', headers=police['headers'], json={'alert_id': str(uuid.uuid4())})
    assert resp.status_code == 404


def test_verify_route_rejects_unknown_type(client, tourist):
    resp = client.get(f'/api/blockchain/verify/place/{uuid.uuid4()}', headers=tourist['headers'])
    assert resp.status_code == 400


def test_verify_route_other_user(client, register):
    first, second = register(), register()
    resp = client.get(f"/api/blockchain/verify/user/{second['user']['id']}", headers=first['headers'])
    assert resp.status_code == 403
