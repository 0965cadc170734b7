"""Cosine-similarity ranking over the in-memory embedding store.

Scoring is an exhaustive scan: every candidate of a class is scored against
the query, which is fine for a corpus of a few thousand fragments. Stored
norms are computed once at load time (see ``LoadedVectorSet``) so a query only
pays for the dot products.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from piece_search.core.config import settings
from piece_search.core.exceptions import EmbeddingDimensionMismatchError
from piece_search.models.embedding import (
    EmbeddingRecord,
    LoadedEmbeddingStore,
    LoadedVectorSet,
    QueryEmbedding,
)
from piece_search.models.piece import Piece, PieceFragment
from piece_search.models.retrieval import (
    RetrievalOptions,
    RetrievalResult,
    RetrievedFragment,
    RetrievedPiece,
)
from piece_search.monitoring.metrics import stale_records_dropped_total

logger = logging.getLogger(__name__)

ScoredRecord = Tuple[EmbeddingRecord, float]


def vector_norm(vector: Sequence[float]) -> float:
    """Euclidean norm of a vector."""
    return float(np.linalg.norm(np.asarray(vector, dtype=np.float64)))


def cosine_similarity(
    a: Sequence[float],
    b: Sequence[float],
    a_norm: Optional[float] = None,
    b_norm: Optional[float] = None,
) -> float:
    """
    Cosine similarity of two vectors.

    Args:
        a: First vector.
        b: Second vector of the same width.
        a_norm: Precomputed norm of ``a``.
        b_norm: Precomputed norm of ``b``.

    Returns:
        Similarity in [-1, 1]; exactly 0 when either norm is 0.
    """
    a_norm = vector_norm(a) if a_norm is None else a_norm
    b_norm = vector_norm(b) if b_norm is None else b_norm
    denominator = a_norm * b_norm
    if denominator == 0:
        return 0.0
    dot = float(np.dot(np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)))
    return dot / denominator


def score_vector_set(
    query: QueryEmbedding, vector_set: LoadedVectorSet, indices: Optional[List[int]] = None
) -> np.ndarray:
    """
    Score the selected rows of a vector set against a query.

    Args:
        query: Query vector with its norm.
        vector_set: Records with stacked vectors and precomputed norms.
        indices: Rows to score; all rows when omitted.

    Returns:
        Array of cosine similarities aligned with ``indices``.

    Raises:
        EmbeddingDimensionMismatchError: If the query width differs from the store.
    """
    matrix = vector_set.matrix
    norms = vector_set.norms
    if indices is not None:
        rows = np.asarray(indices, dtype=np.intp)
        matrix = matrix[rows]
        norms = norms[rows]
    if matrix.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)

    q = np.asarray(query.vector, dtype=np.float64)
    if q.shape[0] != matrix.shape[1]:
        raise EmbeddingDimensionMismatchError(q.shape[0], matrix.shape[1])

    dots = matrix @ q
    denominators = norms * query.norm
    scores = np.zeros_like(dots)
    np.divide(dots, denominators, out=scores, where=denominators != 0)
    return scores


def rank_records(
    query: QueryEmbedding,
    vector_set: LoadedVectorSet,
    limit: int,
    min_score: float = 0.0,
    filter_piece_ids: Optional[Sequence[int]] = None,
) -> List[ScoredRecord]:
    """
    Rank one record class by similarity to the query.

    Candidates are filtered to the allowed piece ids, scored, thresholded by
    ``min_score``, sorted by descending score with ties broken by ascending
    record id, and truncated to ``limit``.

    Args:
        query: Query vector with its norm.
        vector_set: Candidate records.
        limit: Maximum number of results.
        min_score: Minimum similarity to keep.
        filter_piece_ids: Allowed piece ids; None disables filtering.

    Returns:
        List of (record, score) tuples.
    """
    if limit <= 0:
        return []

    if filter_piece_ids is None:
        indices = list(range(len(vector_set.records)))
    else:
        allowed = set(filter_piece_ids)
        indices = [
            i for i, record in enumerate(vector_set.records) if record.piece_id in allowed
        ]

    scores = score_vector_set(query, vector_set, indices)
    scored = [
        (vector_set.records[i], float(score))
        for i, score in zip(indices, scores)
        if score >= min_score
    ]
    scored.sort(key=lambda item: (-item[1], item[0].id))
    return scored[:limit]


def retrieve(
    query: QueryEmbedding,
    store: LoadedEmbeddingStore,
    fragment_map: Dict[str, PieceFragment],
    piece_map: Dict[str, Piece],
    options: Optional[RetrievalOptions] = None,
) -> RetrievalResult:
    """
    Rank fragments and pieces independently and re-hydrate them.

    Records whose fragment or piece no longer exists in the corpus are
    skipped, so a stale store returns fewer results instead of failing.

    Args:
        query: Query vector with its norm.
        store: Loaded embedding store.
        fragment_map: Current fragments keyed by fragment id.
        piece_map: Current pieces keyed by slug.
        options: Limits, filter and threshold; unset fields use settings.

    Returns:
        Retrieval result.
    """
    options = options or RetrievalOptions()
    limit_fragments = (
        settings.limit_fragments if options.limit_fragments is None else options.limit_fragments)
    limit_pieces = settings.limit_pieces if options.limit_pieces is None else options.limit_pieces
    min_score = settings.min_score if options.min_score is None else options.min_score

    fragments = []
    for record, score in rank_records(
        query, store.fragments, limit_fragments, min_score, options.filter_piece_ids
    ):
        fragment = fragment_map.get(record.id)
        if fragment is None:
            logger.debug(f"Skipping stale fragment embedding {record.id}")
            stale_records_dropped_total.labels(kind="fragment").inc()
            continue
        fragments.append(RetrievedFragment(fragment=fragment, score=score))

    pieces = []
    for record, score in rank_records(
        query, store.piece_embeddings, limit_pieces, min_score, options.filter_piece_ids
    ):
        piece = piece_map.get(record.piece_slug)
        if piece is None:
            logger.debug(f"Skipping stale piece embedding {record.id}")
            stale_records_dropped_total.labels(kind="piece").inc()
            continue
        pieces.append(RetrievedPiece(piece=piece, score=score))

    return RetrievalResult(fragments=fragments, pieces=pieces)
