"""Query Service: retrieval endpoint for the chat layer."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field
from starlette.responses import Response

from piece_search.api.health import check_all_dependencies, check_readiness
from piece_search.core.config import settings
from piece_search.core.dependencies import services
from piece_search.core.exceptions import (
    CorpusError,
    EmbeddingDimensionMismatchError,
    EmbeddingError,
    EmbeddingStoreError,
    EmptyQueryError,
    MissingCredentialError,
)
from piece_search.models.retrieval import RetrievalOptions, RetrievalResult
from piece_search.services.context import build_context_prompt, build_system_prompt
from piece_search.services.retrieval import RetrievalService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Query Service started")
    yield
    await services.shutdown()
    logger.info("Query Service stopped")


app = FastAPI(title="Piece Search", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_retrieval_service() -> RetrievalService:
    return services.retrieval_service


class RetrieveRequest(BaseModel):
    """Retrieval request model."""

    query: str
    limit_fragments: Optional[int] = Field(default=None, ge=0)
    limit_pieces: Optional[int] = Field(default=None, ge=0)
    piece_id: Optional[int] = None
    min_score: Optional[float] = None

    def to_options(self) -> RetrievalOptions:
        return RetrievalOptions(
            limit_fragments=self.limit_fragments,
            limit_pieces=self.limit_pieces,
            filter_piece_ids=[self.piece_id] if self.piece_id is not None else None,
            min_score=self.min_score,
        )


class ContextResponse(BaseModel):
    """Prompt pair ready to send to an LLM."""

    system_prompt: str
    prompt: str
    retrieval: RetrievalResult


async def run_retrieval(
    retrieval_service: RetrievalService, request: RetrieveRequest
) -> RetrievalResult:
    """
    Run a retrieval and translate failures into HTTP errors.

    Args:
        retrieval_service: Retrieval service.
        request: Retrieval request.

    Returns:
        Retrieval result.
    """
    try:
        return await retrieval_service.retrieve_context(request.query, request.to_options())
    except EmbeddingStoreError as e:
        logger.warning(f"Retrieval not provisioned: {str(e)}")
        raise HTTPException(
            status_code=503, detail={"status": "not_provisioned", "message": str(e)})
    except EmptyQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (MissingCredentialError, EmbeddingDimensionMismatchError) as e:
        logger.error(f"Retrieval misconfigured: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    except EmbeddingError as e:
        logger.error(f"Embedding provider failed: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e))
    except CorpusError as e:
        logger.error(f"Corpus failed to load: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/retrieve", response_model=RetrievalResult)
async def retrieve(
    request: RetrieveRequest,
    retrieval_service: RetrievalService = Depends(get_retrieval_service),
) -> RetrievalResult:
    """
    Retrieve the fragments and pieces most similar to a query.

    Args:
        request: Retrieval request.

    Returns:
        Ranked fragments and pieces.
    """
    return await run_retrieval(retrieval_service, request)


@app.post("/context", response_model=ContextResponse)
async def context(
    request: RetrieveRequest,
    retrieval_service: RetrievalService = Depends(get_retrieval_service),
) -> ContextResponse:
    """
    Build the system and user prompts for a question.

    Args:
        request: Retrieval request; ``query`` is the visitor's question.

    Returns:
        Prompts with the retrieval they were built from.
    """
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")

    result = await run_retrieval(retrieval_service, request)
    return ContextResponse(
        system_prompt=build_system_prompt(),
        prompt=build_context_prompt(request.query, result),
        retrieval=result,
    )


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health(
    include_openai: bool = Query(False),
    retrieval_service: RetrievalService = Depends(get_retrieval_service),
) -> dict:
    """
    Health check endpoint with dependency verification.

    Args:
        include_openai: Also make a live embedding call.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(
        retrieval_service, retrieval_service.embedding_service, include_openai=include_openai)
    return {"service": settings.service_name, **result}


@app.get("/ready")
async def readiness(
    retrieval_service: RetrievalService = Depends(get_retrieval_service),
) -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(retrieval_service)
    return {"service": settings.service_name, **result}
