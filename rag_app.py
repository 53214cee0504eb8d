# =================================================================
# Smart Tourist Safety - RAG assistant service
# =================================================================
import logging
import os

from dotenv import load_dotenv

from tourist_safety.rag import create_rag_app

load_dotenv()

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO'),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = create_rag_app(os.getenv('FLASK_CONFIG', 'default'))

if __name__ == '__main__':
    port = int(os.getenv('RAG_SERVICE_PORT', '3002'))
    logger.info('RAG service running on port %s', port)
    app.run(host='0.0.0.0', port=port, debug=app.config['DEBUG'])
