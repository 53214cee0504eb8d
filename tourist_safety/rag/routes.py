import hmac
import json
import logging

from flask import Blueprint, current_app, jsonify, request

from ..errors import ApiError
from ..models import RagConversation, isoformat, utcnow
from ..validation import LATITUDE, LONGITUDE, get_json_body, validate, validate_json
from .chat import LANGUAGES, assess_severity, extract_actions, extract_key_points, generate_chat_response
from .embeddings import EMBEDDING_DIMENSIONS, generate_embedding

logger = logging.getLogger(__name__)

chat_bp = Blueprint('rag_chat', __name__, url_prefix='/api/chat')
api_bp = Blueprint('rag_api', __name__, url_prefix='/api')

LANGUAGE_RULE = {'type': 'string', 'choices': list(LANGUAGES), 'default': 'en'}

CHAT_RULES = {
    'message': {'type': 'string', 'required': True, 'max_length': 1000},
    'context': {'type': 'object', 'fields': {
        'location': {'type': 'object', 'fields': {
            'latitude': LATITUDE,
            'longitude': LONGITUDE,
            'name': {'type': 'string'},
        }},
        'user': {'type': 'object', 'fields': {
            'id': {'type': 'string'},
            'name': {'type': 'string'},
            'language': {'type': 'string', 'default': 'en'},
        }},
        'incident_id': {'type': 'uuid'},
    }},
    'conversation_id': {'type': 'string', 'max_length': 100},
    'language': LANGUAGE_RULE,
}


def require_api_key():
    expected = current_app.config.get('RAG_API_KEY')
    if not expected:
        return None

    supplied = request.headers.get('X-API-Key')
    if not supplied:
        auth = request.headers.get('Authorization', '')
        if auth.startswith('Bearer '):
            supplied = auth[len('Bearer '):]
    if not supplied or not hmac.compare_digest(supplied, expected):
        raise ApiError(401, 'Invalid or missing API key')
    return None


chat_bp.before_request(require_api_key)
api_bp.before_request(require_api_key)


@chat_bp.route('', methods=['POST'])
@chat_bp.route('/', methods=['POST'])
def chat():
    data = validate_json(CHAT_RULES)
    context = data.get('context') or {}
    if context.get('incident_id'):
        context['incident_id'] = str(context['incident_id'])

    logger.info('Chat request received: %s... (location=%s, language=%s, conversation=%s)',
                data['message'][:100], bool(context.get('location')), data['language'],
                data.get('conversation_id'))

    response = generate_chat_response(
        data['message'],
        context=context,
        conversation_id=data.get('conversation_id'),
        language=data['language'],
    )
    return jsonify({
        'success': True,
        'data': {
            'response': response['message'],
            'conversationId': response['conversationId'],
            'context': response['context'],
            'sources': response['sources'],
            'confidence': response['confidence'],
            'language': response['language'],
            'processingTime': response['processingTime'],
        },
    })


@chat_bp.route('/place-info', methods=['POST'])
def place_info():
    body = get_json_body()
    data, errors = validate(body, {
        'latitude': dict(LATITUDE, required=True),
        'longitude': dict(LONGITUDE, required=True),
        'name': {'type': 'string'},
        'language': LANGUAGE_RULE,
    }, raise_errors=False)
    if 'latitude' in errors or 'longitude' in errors:
        raise ApiError(400, 'Latitude and longitude are required', errors)
    if errors:
        raise ApiError(400, 'Validation error', errors)

    latitude, longitude, name = data['latitude'], data['longitude'], data.get('name')
    info = generate_chat_response(
        f"Tell me about this place: {name or 'Unknown location'} at coordinates {latitude}, {longitude}. "
        'Include safety information, tourist attractions, and local tips.',
        context={'location': {'latitude': latitude, 'longitude': longitude, 'name': name},
                 'user': {'language': data['language']}},
        language=data['language'],
    )
    return jsonify({
        'success': True,
        'data': {
            'name': name or 'Unknown Location',
            'description': info['message'],
            'coordinates': {'latitude': latitude, 'longitude': longitude},
            'safetyScore': info['context'].get('safetyScore') or 0.5,
            'sources': info['sources'],
            'language': info['language'],
            'lastUpdated': isoformat(utcnow()),
        },
    })


@chat_bp.route('/incident-summary', methods=['POST'])
def incident_summary():
    body = get_json_body()
    incident = body.get('incident_data')
    if not isinstance(incident, dict) or not incident:
        raise ApiError(400, 'Incident data is required')
    language = validate(body, {'language': LANGUAGE_RULE})['language']

    summary = generate_chat_response(
        f'Generate a professional incident summary for this emergency alert: {json.dumps(incident)}. '
        'Include timeline, location details, severity assessment, and recommended actions.',
        context={'incident_id': incident.get('id'), 'user': {'language': language}},
        language=language,
    )
    return jsonify({
        'success': True,
        'data': {
            'incidentId': incident.get('id'),
            'summary': summary['message'],
            'keyPoints': extract_key_points(summary['message']),
            'severity': assess_severity(incident),
            'recommendedActions': extract_actions(summary['message']),
            'confidence': summary['confidence'],
            'generatedAt': isoformat(utcnow()),
        },
    })


@chat_bp.route('/conversations/<conversation_id>', methods=['GET'])
def conversation_history(conversation_id):
    turns = (RagConversation.query
             .filter_by(conversation_id=conversation_id)
             .order_by(RagConversation.created_at.asc())
             .all())
    messages = []
    for turn in turns:
        messages.append({'role': 'user', 'content': turn.user_message, 'timestamp': isoformat(turn.created_at)})
        messages.append({'role': 'assistant', 'content': turn.ai_response, 'timestamp': isoformat(turn.created_at)})

    now = isoformat(utcnow())
    return jsonify({
        'success': True,
        'data': {
            'conversationId': conversation_id,
            'messages': messages,
            'createdAt': isoformat(turns[0].created_at) if turns else now,
            'updatedAt': isoformat(turns[-1].created_at) if turns else now,
        },
    })


@api_bp.route('/embeddings', methods=['POST'])
def embeddings():
    data = validate_json({'text': {'type': 'string', 'required': True, 'max_length': 8000}})
    return jsonify({
        'success': True,
        'data': {'embedding': generate_embedding(data['text']), 'dimensions': EMBEDDING_DIMENSIONS},
    })


@api_bp.route('/incidents', methods=['GET'])
def incidents():
    return jsonify({
        'success': True,
        'data': {'incidents': [], 'message': 'Incident analysis service is running'},
    })
