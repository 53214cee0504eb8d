# =================================================================
# Smart Tourist Safety - Flask REST + WebSocket backend
# =================================================================
import logging
import os

from dotenv import load_dotenv

from tourist_safety import create_app
from tourist_safety.extensions import socketio

# --- 1. INITIALIZATION -

load_dotenv()

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO'),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = create_app(os.getenv('FLASK_CONFIG', 'default'))

# --- 2. SERVER STARTUP ---

if __name__ == '__main__':
    port = int(os.getenv('PORT', '3001'))
    logger.info('Server running on port %s (%s)', port, app.config['ENV_NAME'])
    socketio.run(app, host='0.0.0.0', port=port, debug=app.config['DEBUG'], allow_unsafe_werkzeug=True)
