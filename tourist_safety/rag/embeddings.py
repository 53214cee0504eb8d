import logging

import numpy as np

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 1536

# Stand-in for the vector store until documents are indexed.
SAMPLE_DOCUMENTS = [
    {
        'id': 'doc1',
        'content': 'Sample document content for testing',
        'similarity': 0.85,
        'metadata': {'type': 'place', 'category': 'tourist_attraction'},
    },
]


def generate_embedding(text):
    """Mock embedding: a random vector of the model's dimensionality."""
    return np.random.random(EMBEDDING_DIMENSIONS).tolist()


def search_similar_documents(embedding, limit=5, threshold=0.7, location=None, type=None):
    docs = [dict(doc) for doc in SAMPLE_DOCUMENTS if doc['similarity'] >= threshold]
    return docs[:limit]


def initialize_vector_database():
    logger.info('Initializing vector database...')
    logger.info('Vector database initialized successfully')
