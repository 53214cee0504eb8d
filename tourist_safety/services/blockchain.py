import hashlib
import json
import logging
import secrets
import time
import uuid

from flask import current_app
from web3 import Web3
from web3.exceptions import TransactionNotFound

from ..extensions import db
from ..models import BlockchainAnchor

logger = logging.getLogger(__name__)

CONTRACT_ABI = [
    {
        'type': 'function', 'name': 'storeHash', 'stateMutability': 'nonpayable',
        'inputs': [{'name': 'hash', 'type': 'bytes32'}], 'outputs': [],
    },
    {
        'type': 'function', 'name': 'getHash', 'stateMutability': 'view',
        'inputs': [{'name': 'index', 'type': 'uint256'}], 'outputs': [{'name': '', 'type': 'bytes32'}],
    },
    {
        'type': 'function', 'name': 'getHashCount', 'stateMutability': 'view',
        'inputs': [], 'outputs': [{'name': '', 'type': 'uint256'}],
    },
    {
        'type': 'event', 'name': 'HashStored', 'anonymous': False,
        'inputs': [
            {'name': 'index', 'type': 'uint256', 'indexed': True},
            {'name': 'hash', 'type': 'bytes32', 'indexed': False},
            {'name': 'sender', 'type': 'address', 'indexed': True},
        ],
    },
]

NETWORK = 'polygon-mumbai'
OFFCHAIN_NETWORKS = ('mock', 'fallback')


def hash_pii(value):
    salt = current_app.config.get('ENCRYPTION_KEY') or ''
    return hashlib.sha256(f'{value}{salt}'.encode('utf-8')).hexdigest()


def canonical_json(data):
    return json.dumps({k: v for k, v in data.items() if v is not None}, separators=(',', ':'), sort_keys=True)


def anchor_payload_hash(data):
    """0x-prefixed sha256 of the anchor payload. PII is hashed before it is ever included."""
    payload = {
        'alert_id': data.get('alert_id'),
        'user_id': hash_pii(data['user_id']) if data.get('user_id') else None,
        'type': data.get('type'),
        'severity': data.get('severity'),
        'timestamp': data.get('timestamp'),
        'location_hash': hash_pii(data['location_hash']) if data.get('location_hash') else None,
    }
    return '0x' + hashlib.sha256(canonical_json(payload).encode('utf-8')).hexdigest()


def _reference(data):
    if data.get('alert_id'):
        return 'alert', uuid.UUID(str(data['alert_id']))
    return 'user', uuid.UUID(str(data['user_id']))


def _store_anchor(data, hash_value, transaction_hash, network, block_number=None):
    reference_type, reference_id = _reference(data)
    anchor = BlockchainAnchor(
        reference_type=reference_type,
        reference_id=reference_id,
        hash=hash_value,
        transaction_hash=transaction_hash,
        network=network,
        block_number=block_number,
    )
    db.session.add(anchor)
    db.session.commit()
    return anchor


def _millis():
    return int(time.time() * 1000)


def is_mock_mode():
    return current_app.config.get('MOCK_BLOCKCHAIN') or not current_app.config.get('POLYGON_RPC_URL')


def deploy_contract():
    """Placeholder deployment: the HashStorage contract isn't compiled here, so a random address stands in."""
    address = Web3.to_checksum_address('0x' + secrets.token_hex(20))
    logger.info('Mock contract deployed at: %s', address)
    return address


def _send_store_hash(hash_value):
    cfg = current_app.config
    w3 = Web3(Web3.HTTPProvider(cfg['POLYGON_RPC_URL']))
    account = w3.eth.account.from_key(cfg['PRIVATE_KEY'])

    contract_address = cfg.get('CONTRACT_ADDRESS') or deploy_contract()
    contract = w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=CONTRACT_ABI)

    tx = contract.functions.storeHash(Web3.to_bytes(hexstr=hash_value)).build_transaction({
        'from': account.address,
        'nonce': w3.eth.get_transaction_count(account.address),
        'gas': 100000,
        'gasPrice': w3.eth.gas_price,
    })
    signed_tx = account.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed_tx.raw_transaction)
    logger.info('Blockchain transaction sent: %s', w3.to_hex(tx_hash))

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=120)
    return w3.to_hex(tx_hash), receipt.blockNumber


def anchor_to_blockchain(data):
    """
    Anchors a hash of critical event data (never the data itself).

    data: alert_id, user_id, type, severity, timestamp, location_hash.
    Returns {'hash', 'network', 'transactionHash', 'blockNumber'}.
    If the chain write fails a 'fallback' anchor is recorded and the error re-raised.
    """
    hash_value = anchor_payload_hash(data)

    if is_mock_mode():
        tx_hash = f'mock_tx_{_millis()}'
        _store_anchor(data, hash_value, tx_hash, 'mock')
        logger.info('Mock blockchain anchor created: %s', hash_value)
        return {'hash': hash_value, 'network': 'mock', 'transactionHash': tx_hash, 'blockNumber': None}

    try:
        tx_hash, block_number = _send_store_hash(hash_value)
        _store_anchor(data, hash_value, tx_hash, NETWORK, block_number)
    except Exception:
        logger.exception('Blockchain anchoring failed')
        db.session.rollback()
        fallback_hash = '0x' + hashlib.sha256(canonical_json(data).encode('utf-8')).hexdigest()
        _store_anchor(data, fallback_hash, f'fallback_{_millis()}', 'fallback')
        raise

    logger.info('Hash %s anchored to blockchain at block %s', hash_value, block_number)
    return {'hash': hash_value, 'network': NETWORK, 'transactionHash': tx_hash, 'blockNumber': block_number}


def verify_blockchain_anchor(reference_type, reference_id):
    anchor = (BlockchainAnchor.query
              .filter_by(reference_type=reference_type, reference_id=reference_id)
              .order_by(BlockchainAnchor.created_at.desc())
              .first())
    if not anchor:
        return {'verified': False}

    result = {
        'verified': True,
        'hash': anchor.hash,
        'transactionHash': anchor.transaction_hash,
        'network': anchor.network,
    }
    if anchor.network in OFFCHAIN_NETWORKS:
        return result

    rpc_url = current_app.config.get('POLYGON_RPC_URL')
    if not rpc_url:
        logger.warning('Cannot verify on-chain anchor %s without POLYGON_RPC_URL', anchor.id)
        return {'verified': False}

    try:
        Web3(Web3.HTTPProvider(rpc_url)).eth.get_transaction_receipt(anchor.transaction_hash)
    except TransactionNotFound:
        return {'verified': False}
    except Exception:
        logger.exception('Blockchain verification failed')
        return {'verified': False}

    result['blockNumber'] = anchor.block_number
    return result
