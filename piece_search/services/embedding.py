"""OpenAI embedding generation service."""

import logging
import time
from typing import List, Optional

from openai import AsyncOpenAI

from piece_search.core.config import settings
from piece_search.core.exceptions import (
    EmbeddingProviderError,
    EmptyQueryError,
    MissingCredentialError,
)
from piece_search.models.embedding import QueryEmbedding
from piece_search.monitoring.metrics import query_embedding_latency_seconds
from piece_search.services.ranking import vector_norm

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        max_input_chars: Optional[int] = None,
    ) -> None:
        """
        Initialize the embedding service.

        The OpenAI client is created on first use so that processes without a
        credential can still start and serve blank queries.

        Args:
            api_key: OpenAI API key.
            model: Embedding model id.
            dimensions: Optional output width requested from the model.
            max_input_chars: Inputs are truncated to this many characters.
        """
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.max_input_chars = max_input_chars or settings.embedding_input_max_chars
        self.client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self.client is None:
            if not self.api_key:
                raise MissingCredentialError(
                    "OPENAI_API_KEY is required to generate embeddings. Set it in your environment.")
            self.client = AsyncOpenAI(api_key=self.api_key)
        return self.client

    def ensure_credentials(self) -> None:
        """
        Fail fast when no API key is configured.

        Raises:
            MissingCredentialError: If the API key is missing.
        """
        self._get_client()

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors in input order.

        Raises:
            MissingCredentialError: If the API key is missing.
            EmbeddingProviderError: If embedding generation fails.
        """
        if not texts:
            return []

        client = self._get_client()
        request = {
            "model": self.model,
            "input": [text[: self.max_input_chars] for text in texts],
        }
        if self.dimensions:
            request["dimensions"] = self.dimensions

        try:
            response = await client.embeddings.create(**request)
        except Exception as e:
            raise EmbeddingProviderError(f"Failed to generate embeddings: {str(e)}") from e

        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]

    async def embed_query(self, text: str) -> QueryEmbedding:
        """
        Embed a single query.

        Args:
            text: Raw query text; only its first ``max_input_chars`` are sent.

        Returns:
            Query vector with its norm.

        Raises:
            EmptyQueryError: If the query is blank.
            EmbeddingProviderError: If the provider call fails.
        """
        trimmed = text.strip()
        if not trimmed:
            raise EmptyQueryError("Cannot embed empty query")

        start_time = time.time()
        embeddings = await self.generate_embeddings([trimmed])
        query_embedding_latency_seconds.observe(time.time() - start_time)

        if len(embeddings) != 1:
            raise EmbeddingProviderError(
                f"Expected one query embedding, received {len(embeddings)}")

        vector = embeddings[0]
        return QueryEmbedding(vector=vector, norm=vector_norm(vector))
