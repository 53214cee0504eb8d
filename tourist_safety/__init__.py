"""Smart Tourist Safety backend: REST + WebSocket API."""
import logging

from flask import Flask, jsonify

from . import sockets  # noqa: F401  socket handlers must exist before socketio.init_app
from .commands import register_commands
from .config import config
from .errors import register_error_handlers, register_jwt_handlers
from .extensions import bcrypt, cors, db, jwt, limiter, socketio
from .models import isoformat, utcnow
from .routes import register_blueprints

logger = logging.getLogger(__name__)


def create_app(config_name='default'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    logger.setLevel(app.config['LOG_LEVEL'])

    # --- 1. EXTENSIONS ---
    db.init_app(app)
    bcrypt.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)
    socketio.init_app(app,
                      cors_allowed_origins=app.config['CORS_ORIGINS'],
                      async_mode=app.config['SOCKETIO_ASYNC_MODE'])
    limiter.init_app(app)

    # --- 2. ERRORS ---
    register_error_handlers(app)
    register_jwt_handlers()

    # --- 3. ROUTES ---
    register_blueprints(app)

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health():
        return jsonify({
            'status': 'OK',
            'timestamp': isoformat(utcnow()),
            'version': app.config['VERSION'],
            'environment': app.config['ENV_NAME'],
        })

    register_commands(app)

    # --- 4. DATABASE ---
    with app.app_context():
        db.create_all()

    logger.info('Smart Tourist Safety API ready (%s)', app.config['ENV_NAME'])
    return app
