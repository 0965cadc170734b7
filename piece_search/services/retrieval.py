"""Retrieval service: query text in, ranked fragments and pieces out."""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from piece_search.models.embedding import LoadedEmbeddingStore
from piece_search.models.piece import Piece, PieceFragment
from piece_search.models.retrieval import RetrievalOptions, RetrievalResult
from piece_search.monitoring.metrics import (
    retrieval_counter,
    retrieval_errors_total,
    retrieval_latency_seconds,
)
from piece_search.services.chunking import FragmentService
from piece_search.services.embedding import EmbeddingService
from piece_search.services.embedding_store import EmbeddingStoreService
from piece_search.services.pieces import PieceService
from piece_search.services.ranking import retrieve
from piece_search.services.single_flight import SingleFlight

logger = logging.getLogger(__name__)


class RetrievalService:
    """
    Answers retrieval queries against the corpus and its embedding store.

    The embedding store, the fragment map and the piece list are loaded lazily
    on first use and then kept for the life of the process; a restart is
    needed to pick up a regenerated store or an edited corpus.
    """

    def __init__(
        self,
        piece_service: PieceService,
        fragment_service: FragmentService,
        embedding_service: EmbeddingService,
        store_service: EmbeddingStoreService,
    ) -> None:
        """
        Initialize the retrieval service.

        Args:
            piece_service: Corpus loader.
            fragment_service: Fragmenter.
            embedding_service: Query embedder.
            store_service: Embedding store loader.
        """
        self.piece_service = piece_service
        self.fragment_service = fragment_service
        self.embedding_service = embedding_service
        self.store_service = store_service

        self._store = SingleFlight(self._load_store, name="embedding store")
        self._pieces = SingleFlight(self.piece_service.list_pieces, name="pieces")
        self._fragment_map = SingleFlight(self._load_fragment_map, name="fragment map")

    async def _load_store(self) -> LoadedEmbeddingStore:
        return await asyncio.to_thread(self.store_service.load)

    async def _load_fragment_map(self) -> Dict[str, PieceFragment]:
        pieces = await self._pieces.get()
        fragments = self.fragment_service.fragment_pieces(pieces)
        return {fragment.id: fragment for fragment in fragments}

    async def get_store(self) -> LoadedEmbeddingStore:
        """Return the cached embedding store, loading it on first use."""
        return await self._store.get()

    async def get_pieces(self) -> List[Piece]:
        """Return the cached piece list, loading it on first use."""
        return await self._pieces.get()

    async def get_fragment_map(self) -> Dict[str, PieceFragment]:
        """Return cached fragments keyed by id, loading them on first use."""
        return await self._fragment_map.get()

    @property
    def store_loaded(self) -> bool:
        return self._store.loaded

    async def warm_up(self) -> None:
        """
        Populate every cache.

        Raises:
            EmbeddingStoreError: If the store is not provisioned.
            CorpusError: If the corpus cannot be loaded.
        """
        await asyncio.gather(self.get_store(), self.get_fragment_map())

    def reset(self) -> None:
        """Drop every cache so the next query reloads store and corpus."""
        self._store.reset()
        self._pieces.reset()
        self._fragment_map.reset()

    async def retrieve_context(
        self, query: str, options: Optional[RetrievalOptions] = None
    ) -> RetrievalResult:
        """
        Retrieve the fragments and pieces most similar to a query.

        Blank queries return an empty result without calling the embedding
        provider or loading anything.

        Args:
            query: Free-text query.
            options: Limits, piece filter and minimum score.

        Returns:
            Retrieval result.

        Raises:
            EmbeddingStoreError: If the store is missing, empty or malformed.
            EmbeddingError: If the query cannot be embedded.
            CorpusError: If the corpus cannot be loaded.
        """
        trimmed = query.strip()
        if not trimmed:
            return RetrievalResult()

        start_time = time.time()
        retrieval_counter.inc()
        try:
            store, fragment_map, pieces, query_embedding = await asyncio.gather(
                self.get_store(),
                self.get_fragment_map(),
                self.get_pieces(),
                self.embedding_service.embed_query(trimmed),
            )
            piece_map = {piece.slug: piece for piece in pieces}
            result = retrieve(query_embedding, store, fragment_map, piece_map, options)
        except Exception as e:
            retrieval_errors_total.labels(error=type(e).__name__).inc()
            raise

        elapsed = time.time() - start_time
        retrieval_latency_seconds.observe(elapsed)
        logger.info(
            f"Retrieved {len(result.fragments)} fragments and {len(result.pieces)} pieces "
            f"in {elapsed * 1000:.2f}ms")
        return result
