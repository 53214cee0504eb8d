import logging

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from ..errors import ApiError
from ..extensions import db
from ..models import Alert, isoformat
from ..security import current_user_id, is_staff, staff_required
from ..services.blockchain import anchor_to_blockchain, verify_blockchain_anchor
from ..validation import validate_json

logger = logging.getLogger(__name__)

bp = Blueprint('blockchain', __name__, url_prefix='/api/blockchain')

REFERENCE_TYPES = ('alert', 'user', 'incident')


@bp.route('/anchor', methods=['POST'])
@staff_required
def anchor_alert():
    data = validate_json({'alert_id': {'type': 'uuid', 'required': True}})
    alert = db.session.get(Alert, data['alert_id'])
    if not alert:
        raise ApiError(404, 'Alert not found')

    try:
        anchor = anchor_to_blockchain({
            'alert_id': str(alert.id),
            'user_id': str(alert.user_id),
            'type': alert.type.value,
            'severity': alert.severity.value,
            'timestamp': isoformat(alert.created_at),
            'location_hash': f'{alert.latitude},{alert.longitude}',
        })
    except Exception:
        raise ApiError(502, 'Failed to anchor alert to blockchain') from None

    alert.blockchain_tx = anchor['hash']
    alert.blockchain_network = anchor['network']
    db.session.commit()
    logger.info('Alert %s anchored by %s: %s', alert.id, current_user_id(), anchor['hash'])

    return jsonify({'success': True, 'data': {'anchor': anchor}, 'message': 'Alert anchored successfully'}), 201


@bp.route('/verify/<reference_type>/<uuid:reference_id>', methods=['GET'])
@jwt_required()
def verify_anchor(reference_type, reference_id):
    if reference_type not in REFERENCE_TYPES:
        raise ApiError(400, 'Validation error', {'reference_type': f"must be one of [{', '.join(REFERENCE_TYPES)}]"})
    if reference_type == 'user' and reference_id != current_user_id() and not is_staff():
        raise ApiError(403, 'Insufficient permissions')

    return jsonify({'success': True, 'data': verify_blockchain_anchor(reference_type, reference_id)})
