"""Retrieval-augmented chat: embed the question, pull context, ask the LLM."""
import logging
import re
import secrets
import string
import time

import requests
from flask import current_app

from ..extensions import db
from ..models import RagConversation
from .embeddings import generate_embedding, search_similar_documents

logger = logging.getLogger(__name__)

LANGUAGES = {
    'en': 'English',
    'es': 'Spanish',
    'fr': 'French',
    'de': 'German',
    'hi': 'Hindi',
    'zh': 'Chinese',
}

BASE_SYSTEM_PROMPT = """You are a helpful AI assistant for the Smart Tourist Safety system. Your role is to provide accurate, helpful, and safety-focused information to tourists and authorities.

Key responsibilities:
- Prioritize tourist safety and well-being
- Provide accurate location and travel information
- Offer emergency guidance when appropriate
- Be culturally sensitive and respectful
- Give clear, actionable advice

Guidelines:
- Always prioritize safety over convenience
- Provide specific, actionable information when possible
- If you're unsure about safety information, recommend contacting local authorities
- Be concise but comprehensive
- Include relevant emergency contact information when appropriate"""

UNAVAILABLE_TEMPLATE = (
    'I understand you\'re asking about: "{message}". While I don\'t have access to AI services right now, '
    'I can tell you that this appears to be related to tourist safety. Please contact local authorities '
    'if this is an emergency, or check with tourist information centers for general inquiries.'
)
APOLOGY_MESSAGE = (
    'I apologize, but I am unable to process your request at this time. '
    'Please try again later or contact support for assistance.'
)
EMPTY_COMPLETION_MESSAGE = 'I apologize, but I cannot generate a response at this time.'

DOCUMENT_TYPE_KEYWORDS = (
    ('emergency', ('emergency', 'danger', 'help')),
    ('place', ('place', 'location', 'visit')),
    ('safety', ('safety', 'safe')),
)

ACTION_KEYWORDS = ('recommend', 'should', 'must', 'need to', 'action', 'response')

SENTENCE_SPLIT_RE = re.compile(r'[.!?]+')


def language_name(code):
    return LANGUAGES.get(code, 'English')


def generate_conversation_id():
    suffix = ''.join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(13))
    return f'conv_{int(time.time() * 1000)}_{suffix}'


def infer_document_type(message):
    lowered = message.lower()
    for doc_type, keywords in DOCUMENT_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return doc_type
    return None


def build_system_prompt(context=None, language=None):
    context = context or {}
    prompt = BASE_SYSTEM_PROMPT

    if language and language != 'en':
        prompt += (f'\n\nPlease respond in {language_name(language)}. '
                   'Use clear, simple language appropriate for tourists.')

    location = context.get('location')
    if location:
        where = location.get('name') or f"coordinates {location.get('latitude')}, {location.get('longitude')}"
        prompt += f'\n\nLocation context: The user is asking about or is located near {where}.'

    if context.get('incident_id'):
        prompt += ('\n\nEmergency context: This is related to an active emergency incident. '
                   'Prioritize immediate safety and response information.')
    return prompt


def build_context_from_documents(docs):
    if not docs:
        return 'No specific context available.'
    return '\n\n'.join(f"[Context {i}]: {doc['content']}" for i, doc in enumerate(docs, start=1))


def calculate_confidence(docs, response):
    if not docs:
        return 0.3
    avg_similarity = sum(doc['similarity'] for doc in docs) / len(docs)
    response_quality = 0.8 if len(response) > 50 else 0.5
    return min(avg_similarity * response_quality, 1.0)


def calculate_safety_score(docs):
    scores = [doc['metadata']['safetyScore'] for doc in docs if (doc.get('metadata') or {}).get('safetyScore')]
    if not scores:
        return 0.5
    return sum(scores) / len(scores)


def extract_nearby_places(docs):
    places = []
    for doc in docs:
        meta = doc.get('metadata') or {}
        if meta.get('type') == 'place' and meta.get('name'):
            places.append({
                'name': meta['name'],
                'category': meta.get('category'),
                'rating': meta.get('rating'),
                'distance': meta.get('distance'),
            })
    return places[:3]


def _sentences(text):
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]


def extract_key_points(text):
    return _sentences(text)[:3]


def extract_actions(text):
    return [s for s in _sentences(text) if any(k in s.lower() for k in ACTION_KEYWORDS)][:3]


def assess_severity(incident):
    if incident.get('type') == 'panic' or incident.get('severity') == 'critical':
        return 'critical'
    if incident.get('type') == 'medical' or incident.get('severity') == 'high':
        return 'high'
    if incident.get('severity') == 'medium':
        return 'medium'
    return 'low'


def _complete(system_prompt, user_content):
    cfg = current_app.config
    response = requests.post(
        cfg['OPENAI_API_URL'],
        headers={'Authorization': f"Bearer {cfg['OPENAI_API_KEY']}", 'Content-Type': 'application/json'},
        json={
            'model': cfg['OPENAI_MODEL'],
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_content},
            ],
            'temperature': 0.7,
            'max_tokens': 1000,
            'top_p': 1.0,
            'frequency_penalty': 0.0,
            'presence_penalty': 0.0,
        },
        timeout=60,
    )
    response.raise_for_status()
    choices = response.json().get('choices') or [{}]
    return (choices[0].get('message') or {}).get('content') or EMPTY_COMPLETION_MESSAGE


def store_conversation(conversation_id, user_message, ai_response, context=None):
    try:
        db.session.add(RagConversation(
            conversation_id=conversation_id,
            user_message=user_message,
            ai_response=ai_response,
            context=context or {},
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.warning('Failed to store conversation %s', conversation_id, exc_info=True)


def generate_chat_response(message, context=None, conversation_id=None, language='en'):
    started = time.time()
    conversation_id = conversation_id or generate_conversation_id()
    language = language or 'en'
    context = context or {}

    def elapsed_ms():
        return int((time.time() - started) * 1000)

    try:
        embedding = generate_embedding(message)
        docs = search_similar_documents(
            embedding,
            limit=5,
            threshold=0.7,
            location=context.get('location'),
            type=infer_document_type(message),
        )
        context_text = build_context_from_documents(docs)
        system_prompt = build_system_prompt(context, language)

        if not current_app.config.get('OPENAI_API_KEY'):
            logger.warning('OpenAI API key not configured, using fallback response')
            answer = UNAVAILABLE_TEMPLATE.format(message=message)
        else:
            answer = _complete(system_prompt, f'Context: {context_text}\n\nQuestion: {message}')

        confidence = calculate_confidence(docs, answer)
        store_conversation(conversation_id, message, answer, context)
    except Exception:
        logger.exception('Chat response generation failed')
        return {
            'message': APOLOGY_MESSAGE,
            'conversationId': conversation_id,
            'context': {},
            'sources': [],
            'confidence': 0,
            'language': language,
            'processingTime': elapsed_ms(),
        }

    return {
        'message': answer,
        'conversationId': conversation_id,
        'context': {
            'location': context.get('location'),
            'safetyScore': calculate_safety_score(docs),
            'nearbyPlaces': extract_nearby_places(docs),
        },
        'sources': [
            {
                'id': doc['id'],
                'content': doc['content'][:200] + '...',
                'similarity': doc['similarity'],
                'type': (doc.get('metadata') or {}).get('type', 'unknown'),
            }
            for doc in docs
        ],
        'confidence': confidence,
        'language': language,
        'processingTime': elapsed_ms(),
    }
