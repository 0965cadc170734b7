"""Embedding store models shared by the offline builder and the serving path."""

from typing import List

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


class EmbeddingRecord(BaseModel):
    """A stored vector bound to one fragment or one whole piece."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    piece_id: int = Field(alias="pieceId")
    piece_slug: str = Field(alias="pieceSlug")
    piece_title: str = Field(alias="pieceTitle")
    fragment_order: int = Field(default=0, ge=0, alias="fragmentOrder")
    embedding: List[float]


class EmbeddingPayload(BaseModel):
    """On-disk layout of the embedding store file."""

    model_config = ConfigDict(populate_by_name=True)

    version: str
    model: str
    created_at: str = Field(alias="createdAt")
    dimensions: int = Field(ge=0)
    fragments: List[EmbeddingRecord] = Field(default_factory=list)
    piece_embeddings: List[EmbeddingRecord] = Field(
        default_factory=list, alias="pieceEmbeddings")


class QueryEmbedding(BaseModel):
    """Vector for a single incoming query, never persisted."""

    vector: List[float]
    norm: float


class LoadedVectorSet(BaseModel):
    """One record class with its vectors stacked and norms precomputed."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    records: List[EmbeddingRecord]
    matrix: np.ndarray
    norms: np.ndarray

    @classmethod
    def from_records(cls, records: List[EmbeddingRecord], dimensions: int) -> "LoadedVectorSet":
        """
        Stack record vectors and compute their Euclidean norms once.

        Args:
            records: Records of a single class.
            dimensions: Declared vector width of the store.

        Returns:
            Vector set ready for scoring.
        """
        if records:
            matrix = np.asarray([r.embedding for r in records], dtype=np.float64)
        else:
            matrix = np.zeros((0, dimensions), dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1)
        return cls(records=records, matrix=matrix, norms=norms)

    def __len__(self) -> int:
        return len(self.records)


class LoadedEmbeddingStore(BaseModel):
    """Parsed, norm-annotated embedding store cached for the process lifetime."""

    version: str
    model: str
    created_at: str
    dimensions: int
    fragments: LoadedVectorSet
    piece_embeddings: LoadedVectorSet
