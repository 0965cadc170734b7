"""Retrieval request and result models."""

from typing import List, Optional

from pydantic import BaseModel, Field

from piece_search.models.piece import Piece, PieceFragment


class RetrievalOptions(BaseModel):
    """Caller overrides for a single retrieval; unset fields use settings."""

    limit_fragments: Optional[int] = Field(default=None, ge=0)
    limit_pieces: Optional[int] = Field(default=None, ge=0)
    filter_piece_ids: Optional[List[int]] = None
    min_score: Optional[float] = None


class RetrievedFragment(BaseModel):
    """Fragment with its similarity score."""

    fragment: PieceFragment
    score: float


class RetrievedPiece(BaseModel):
    """Whole piece with its similarity score."""

    piece: Piece
    score: float


class RetrievalResult(BaseModel):
    """Fragments and pieces ranked independently for one query."""

    fragments: List[RetrievedFragment] = Field(default_factory=list)
    pieces: List[RetrievedPiece] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fragments and not self.pieces
