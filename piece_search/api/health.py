"""Health check utilities."""

from typing import Dict

from piece_search.services.embedding import EmbeddingService
from piece_search.services.health import (
    check_corpus,
    check_embedding_store,
    check_openai,
)
from piece_search.services.retrieval import RetrievalService


async def check_all_dependencies(
    retrieval_service: RetrievalService,
    embedding_service: EmbeddingService,
    include_openai: bool = False,
) -> Dict:
    """
    Check all service dependencies.

    Args:
        retrieval_service: Retrieval service owning the store and corpus caches.
        embedding_service: Embedding service.
        include_openai: Whether to make a live embedding call.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    services = {}
    overall_status = "healthy"

    store_status = await check_embedding_store(retrieval_service)
    services["embedding_store"] = store_status
    if store_status.get("status") != "healthy":
        overall_status = "degraded"

    corpus_status = await check_corpus(retrieval_service)
    services["corpus"] = corpus_status
    if corpus_status.get("status") != "healthy":
        overall_status = "unhealthy"

    if include_openai:
        openai_status = await check_openai(embedding_service)
        services["openai"] = openai_status
        if openai_status.get("status") == "unhealthy":
            overall_status = "unhealthy"

    return {"status": overall_status, "services": services}


async def check_readiness(retrieval_service: RetrievalService) -> Dict:
    """
    Check service readiness.

    Args:
        retrieval_service: Retrieval service owning the store and corpus caches.

    Returns:
        Readiness status dictionary.
    """
    store_status = await check_embedding_store(retrieval_service)
    corpus_status = await check_corpus(retrieval_service)

    store_ready = store_status.get("status") == "healthy"
    corpus_ready = corpus_status.get("status") == "healthy"

    return {
        "ready": store_ready and corpus_ready,
        "embedding_store": store_ready,
        "corpus": corpus_ready,
    }
