import logging
import os
from typing import List

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")


class EmbeddingError(RuntimeError):
    """Raised when the embedding model cannot produce a vector."""


class EmbeddingClient:
    """
    Turns free text into a fixed-length float vector.
    The model is loaded lazily on the first call.
    """

    def __init__(self, model_name: str = EMBEDDING_MODEL):
        self.model_name = model_name
        self._model = None  # loaded on first use to keep startup fast

    def _get_model(self):
        """Load and cache the sentence-transformers model on first call."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer  # imported here to defer heavy load
            logger.info(f"Loading embedding model '{self.model_name}' (first use, this may take a moment)...")
            self._model = SentenceTransformer(self.model_name)
            logger.info("Embedding model loaded")
        return self._model

    def embed(self, text: str) -> List[float]:
        """Embed a single string. Raises EmbeddingError on any model failure."""
        try:
            vector = self._get_model().encode(text, normalize_embeddings=True)
            return [float(x) for x in vector]
        except Exception as e:
            logger.error(f"Error generating embedding: {e}")
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

    def embed_article(self, title: str, content: str) -> List[float]:
        """Embed an article as title plus content."""
        return self.embed(f"{title}\n\n{content}")


# Shared singleton, imported by the search path and the extractor
embedding_client = EmbeddingClient()
