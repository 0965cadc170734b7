"""Offline batch builder that extends the embedding store incrementally."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TypeVar

from pydantic import BaseModel

from piece_search.core.config import settings
from piece_search.core.exceptions import (
    EmbeddingBatchMismatchError,
    EmbeddingDimensionMismatchError,
)
from piece_search.models.embedding import EmbeddingPayload, EmbeddingRecord
from piece_search.models.piece import Piece, PieceFragment
from piece_search.services.chunking import FragmentService
from piece_search.services.embedding import EmbeddingService
from piece_search.services.embedding_store import EmbeddingStoreService
from piece_search.services.pieces import PieceService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EmbeddingItem(BaseModel):
    """Text waiting to be embedded, with the metadata of its future record."""

    id: str
    text: str
    piece_id: int
    piece_slug: str
    piece_title: str
    fragment_order: int = 0


class BuildSummary(BaseModel):
    """Outcome of one builder run."""

    output_path: str
    new_fragments: int
    new_pieces: int
    total_fragments: int
    total_pieces: int
    dimensions: int


def chunk_items(items: Sequence[T], size: int) -> List[List[T]]:
    """
    Split items into consecutive batches.

    Args:
        items: Items to split.
        size: Maximum batch size.

    Returns:
        List of batches.
    """
    if size <= 0:
        raise ValueError("Batch size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def merge_records(
    existing: List[EmbeddingRecord], fresh: List[EmbeddingRecord]
) -> List[EmbeddingRecord]:
    """Merge records by id, fresh records winning, sorted by id."""
    merged: Dict[str, EmbeddingRecord] = {record.id: record for record in existing}
    for record in fresh:
        merged[record.id] = record
    return sorted(merged.values(), key=lambda record: record.id)


def fragment_item(fragment: PieceFragment) -> EmbeddingItem:
    return EmbeddingItem(
        id=fragment.id,
        text=fragment.text,
        piece_id=fragment.piece_id,
        piece_slug=fragment.piece_slug,
        piece_title=fragment.piece_title,
        fragment_order=fragment.order,
    )


class EmbeddingBatchBuilder:
    """Builds fragment and piece embeddings and merges them into the store."""

    def __init__(
        self,
        piece_service: PieceService,
        fragment_service: FragmentService,
        embedding_service: EmbeddingService,
        store_service: EmbeddingStoreService,
        batch_size: Optional[int] = None,
        piece_body_chars: Optional[int] = None,
        version_tag: Optional[str] = None,
    ) -> None:
        """
        Initialize the batch builder.

        Args:
            piece_service: Corpus loader.
            fragment_service: Fragmenter.
            embedding_service: Embedding provider client.
            store_service: Store reader and writer.
            batch_size: Items per embedding call.
            piece_body_chars: Body prefix length used for piece-level text.
            version_tag: Schema tag appended to the model id in ``version``.
        """
        self.piece_service = piece_service
        self.fragment_service = fragment_service
        self.embedding_service = embedding_service
        self.store_service = store_service
        self.batch_size = batch_size or settings.embedding_batch_size
        self.piece_body_chars = piece_body_chars or settings.piece_embedding_body_chars
        self.version_tag = version_tag or settings.embedding_store_version

    def piece_text(self, piece: Piece) -> str:
        """Title, excerpt and a bounded body prefix, separated by blank lines."""
        return "\n\n".join([piece.title, piece.excerpt, piece.content[: self.piece_body_chars]])

    def piece_item(self, piece: Piece) -> EmbeddingItem:
        return EmbeddingItem(
            id=piece.slug,
            text=self.piece_text(piece),
            piece_id=piece.id,
            piece_slug=piece.slug,
            piece_title=piece.title,
            fragment_order=0,
        )

    async def embed_items(self, items: List[EmbeddingItem]) -> List[EmbeddingRecord]:
        """
        Embed items batch by batch.

        Args:
            items: Items to embed.

        Returns:
            One record per item, in input order.

        Raises:
            EmbeddingBatchMismatchError: If a batch returns the wrong vector count.
            EmbeddingProviderError: If a provider call fails.
        """
        if not items:
            return []

        batches = chunk_items(items, self.batch_size)
        logger.info(
            f"Embedding {len(items)} items ({len(batches)} batches) "
            f"with {self.embedding_service.model}")

        records: List[EmbeddingRecord] = []
        for index, batch in enumerate(batches, start=1):
            vectors = await self.embedding_service.generate_embeddings(
                [item.text for item in batch])
            if len(vectors) != len(batch):
                raise EmbeddingBatchMismatchError(len(vectors), len(batch))

            for item, vector in zip(batch, vectors):
                records.append(
                    EmbeddingRecord(
                        id=item.id,
                        piece_id=item.piece_id,
                        piece_slug=item.piece_slug,
                        piece_title=item.piece_title,
                        fragment_order=item.fragment_order,
                        embedding=vector,
                    )
                )
            logger.info(f"Batch {index}/{len(batches)} complete")

        return records

    def _resolve_dimensions(
        self, fresh: List[EmbeddingRecord], existing: Optional[EmbeddingPayload]
    ) -> int:
        existing_dimensions = existing.dimensions if existing else 0
        if not fresh:
            return existing_dimensions

        dimensions = len(fresh[0].embedding)
        for record in fresh:
            if len(record.embedding) != dimensions:
                raise EmbeddingDimensionMismatchError(len(record.embedding), dimensions)

        has_existing_records = existing is not None and (
            existing.fragments or existing.piece_embeddings)
        if has_existing_records and existing_dimensions and dimensions != existing_dimensions:
            raise EmbeddingDimensionMismatchError(dimensions, existing_dimensions)
        return dimensions

    async def build(self, force: bool = False) -> BuildSummary:
        """
        Embed every fragment and piece missing from the store and write it back.

        Nothing is written unless every batch succeeds.

        Args:
            force: Discard the existing store and embed everything.

        Returns:
            Summary of the run.

        Raises:
            MissingCredentialError: If no API key is configured.
            EmbeddingError: If embedding fails or returns inconsistent vectors.
            CorpusError: If the corpus cannot be loaded.
        """
        self.embedding_service.ensure_credentials()

        pieces = await self.piece_service.list_pieces()
        fragments = self.fragment_service.fragment_pieces(pieces)

        existing = None if force else self.store_service.read_payload()
        if existing is not None and existing.model != self.embedding_service.model:
            logger.warning(
                f"Existing store was built with {existing.model}, embedding new items with "
                f"{self.embedding_service.model}; rerun with --force to rebuild everything")

        existing_fragment_ids = {r.id for r in existing.fragments} if existing else set()
        existing_piece_ids = {r.id for r in existing.piece_embeddings} if existing else set()

        pending_fragments = [
            fragment_item(fragment)
            for fragment in fragments
            if fragment.id not in existing_fragment_ids
        ]
        pending_pieces = [
            self.piece_item(piece) for piece in pieces if piece.slug not in existing_piece_ids
        ]
        logger.info(
            f"{len(pending_fragments)} of {len(fragments)} fragments and "
            f"{len(pending_pieces)} of {len(pieces)} pieces need embeddings")

        new_fragments = await self.embed_items(pending_fragments)
        new_pieces = await self.embed_items(pending_pieces)
        dimensions = self._resolve_dimensions(new_fragments + new_pieces, existing)

        payload = EmbeddingPayload(
            version=f"{self.embedding_service.model}::{self.version_tag}",
            model=self.embedding_service.model,
            created_at=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
                "+00:00", "Z"),
            dimensions=dimensions,
            fragments=merge_records(existing.fragments if existing else [], new_fragments),
            piece_embeddings=merge_records(
                existing.piece_embeddings if existing else [], new_pieces),
        )
        output_path: Path = self.store_service.write_payload(payload)

        return BuildSummary(
            output_path=str(output_path),
            new_fragments=len(new_fragments),
            new_pieces=len(new_pieces),
            total_fragments=len(payload.fragments),
            total_pieces=len(payload.piece_embeddings),
            dimensions=dimensions,
        )
