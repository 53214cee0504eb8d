"""AI assistant service: RAG chat over the shared tourist-safety database."""
import logging

from flask import Flask, jsonify

from ..config import config
from ..errors import register_error_handlers
from ..extensions import cors, db
from ..models import isoformat, utcnow
from .embeddings import initialize_vector_database

logger = logging.getLogger(__name__)


def create_rag_app(config_name='default'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    db.init_app(app)
    cors.init_app(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)
    register_error_handlers(app)

    from .routes import api_bp, chat_bp
    app.register_blueprint(chat_bp)
    app.register_blueprint(api_bp)

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            'status': 'healthy',
            'timestamp': isoformat(utcnow()),
            'version': app.config['VERSION'],
            'environment': app.config['ENV_NAME'],
            'services': {
                'vectorDatabase': 'connected',
                'openai': 'configured' if app.config.get('OPENAI_API_KEY') else 'not configured',
            },
        })

    with app.app_context():
        db.create_all()
    initialize_vector_database()

    if not app.config.get('RAG_API_KEY'):
        logger.warning('RAG_API_KEY not set; the AI endpoints are unauthenticated')
    logger.info('RAG service ready (model %s)', app.config['OPENAI_MODEL'])
    return app
