"""Health check service for dependency verification."""

import time
from typing import Any, Dict

from piece_search.core.exceptions import (
    CorpusError,
    EmbeddingError,
    EmbeddingStoreError,
    MissingCredentialError,
)
from piece_search.services.embedding import EmbeddingService
from piece_search.services.retrieval import RetrievalService


async def check_embedding_store(retrieval_service: RetrievalService) -> Dict[str, Any]:
    """
    Check that the embedding store is provisioned and loadable.

    Args:
        retrieval_service: RetrievalService instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        store = await retrieval_service.get_store()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "version": store.version,
            "model": store.model,
            "dimensions": store.dimensions,
            "fragments": len(store.fragments),
            "pieces": len(store.piece_embeddings),
        }
    except EmbeddingStoreError as e:
        return {
            "status": "not_provisioned",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_corpus(retrieval_service: RetrievalService) -> Dict[str, Any]:
    """
    Check that the corpus loads and validates.

    Args:
        retrieval_service: RetrievalService instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        pieces = await retrieval_service.get_pieces()
        fragment_map = await retrieval_service.get_fragment_map()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "pieces": len(pieces),
            "fragments": len(fragment_map),
        }
    except CorpusError as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_openai(embedding_service: EmbeddingService) -> Dict[str, Any]:
    """
    Check OpenAI API connectivity.

    Args:
        embedding_service: EmbeddingService instance.

    Returns:
        Health status dictionary.
    """
    try:
        embedding_service.ensure_credentials()
        start_time = time.time()
        await embedding_service.generate_embeddings(["health check"])
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except MissingCredentialError as e:
        return {"status": "not_configured", "error": str(e)}
    except EmbeddingError as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }
