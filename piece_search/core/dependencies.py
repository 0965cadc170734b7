"""Dependency injection for services."""

import logging
from typing import Optional

from piece_search.core.exceptions import EmbeddingStoreError
from piece_search.services.batch import EmbeddingBatchBuilder
from piece_search.services.chunking import FragmentService
from piece_search.services.embedding import EmbeddingService
from piece_search.services.embedding_store import EmbeddingStoreService
from piece_search.services.pieces import PieceService
from piece_search.services.retrieval import RetrievalService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for service instances."""

    def __init__(
        self,
        content_dir: Optional[str] = None,
        store_path: Optional[str] = None,
        embedding_service: Optional[EmbeddingService] = None,
    ) -> None:
        """
        Initialize service container.

        Args:
            content_dir: Override of the corpus directory.
            store_path: Override of the embedding store file.
            embedding_service: Pre-built embedding service.
        """
        self.piece_service = PieceService(content_dir)
        self.fragment_service = FragmentService()
        self.embedding_service = embedding_service or EmbeddingService()
        self.store_service = EmbeddingStoreService(store_path)
        self.retrieval_service = RetrievalService(
            piece_service=self.piece_service,
            fragment_service=self.fragment_service,
            embedding_service=self.embedding_service,
            store_service=self.store_service,
        )

    def batch_builder(self, batch_size: Optional[int] = None) -> EmbeddingBatchBuilder:
        """
        Create an offline batch builder sharing this container's services.

        Args:
            batch_size: Items per embedding call.

        Returns:
            Batch builder.
        """
        return EmbeddingBatchBuilder(
            piece_service=self.piece_service,
            fragment_service=self.fragment_service,
            embedding_service=self.embedding_service,
            store_service=self.store_service,
            batch_size=batch_size,
        )

    async def initialize(self) -> None:
        """Warm the retrieval caches; an unprovisioned store is not fatal."""
        try:
            await self.retrieval_service.warm_up()
        except EmbeddingStoreError as e:
            logger.warning(f"Retrieval not provisioned: {str(e)}")

    async def shutdown(self) -> None:
        """Shutdown all services."""
        client = self.embedding_service.client
        if client is not None:
            await client.close()
            self.embedding_service.client = None
        self.retrieval_service.reset()


services = ServiceContainer()
