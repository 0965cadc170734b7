"""File-backed embedding store service."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from piece_search.core.config import settings
from piece_search.core.exceptions import (
    EmbeddingStoreEmptyError,
    EmbeddingStoreInvalidError,
    EmbeddingStoreMissingError,
)
from piece_search.models.embedding import (
    EmbeddingPayload,
    EmbeddingRecord,
    LoadedEmbeddingStore,
    LoadedVectorSet,
)

logger = logging.getLogger(__name__)


def published_mode() -> int:
    """Permission bits a plain file created under the current umask would get."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class EmbeddingStoreService:
    """Service for reading and writing the persisted embedding store."""

    def __init__(self, path: Optional[str] = None) -> None:
        """
        Initialize the embedding store service.

        Args:
            path: Location of the JSON store file.
        """
        self.path = Path(path or settings.embedding_store_path)

    def read_payload(self) -> Optional[EmbeddingPayload]:
        """
        Read the raw payload from disk.

        Returns:
            Parsed payload, or None if the file does not exist.

        Raises:
            EmbeddingStoreInvalidError: If the file is not a valid payload.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise EmbeddingStoreInvalidError(
                f"Embedding payload at {self.path} is not valid UTF-8: {str(e)}") from e

        try:
            return EmbeddingPayload.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise EmbeddingStoreInvalidError(
                f"Embedding payload at {self.path} is malformed: {str(e)}") from e

    def write_payload(self, payload: EmbeddingPayload) -> Path:
        """
        Write the payload as a single file, replacing any previous store atomically.

        Args:
            payload: Payload to persist.

        Returns:
            Path of the written file.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = payload.model_dump(by_alias=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.chmod(tmp_path, published_mode())
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        return self.path

    def _check_dimensions(self, records: List[EmbeddingRecord], dimensions: int) -> None:
        for record in records:
            if len(record.embedding) != dimensions:
                raise EmbeddingStoreInvalidError(
                    f"Embedding {record.id} has {len(record.embedding)} dimensions, "
                    f"store declares {dimensions}")

    def load(self) -> LoadedEmbeddingStore:
        """
        Load the store and precompute vector norms.

        Returns:
            Norm-annotated store.

        Raises:
            EmbeddingStoreMissingError: If the file does not exist.
            EmbeddingStoreInvalidError: If the file is malformed.
            EmbeddingStoreEmptyError: If the store has no fragment records.
        """
        payload = self.read_payload()
        if payload is None:
            raise EmbeddingStoreMissingError(str(self.path))
        if not payload.fragments:
            raise EmbeddingStoreEmptyError(str(self.path))

        self._check_dimensions(payload.fragments, payload.dimensions)
        self._check_dimensions(payload.piece_embeddings, payload.dimensions)

        store = LoadedEmbeddingStore(
            version=payload.version,
            model=payload.model,
            created_at=payload.created_at,
            dimensions=payload.dimensions,
            fragments=LoadedVectorSet.from_records(payload.fragments, payload.dimensions),
            piece_embeddings=LoadedVectorSet.from_records(
                payload.piece_embeddings, payload.dimensions),
        )
        logger.info(
            f"Loaded embedding store {store.version} ({store.model}, {store.dimensions} dims): "
            f"{len(store.fragments)} fragments, {len(store.piece_embeddings)} pieces")
        return store
