"""Custom exceptions for the application."""

from typing import Optional


class PieceSearchError(Exception):
    """Base class for all retrieval engine errors."""

    pass


class CorpusError(PieceSearchError):
    """Raised when the corpus cannot be loaded."""

    pass


class CorpusUnavailableError(CorpusError):
    """Raised when the content directory exists but cannot be read."""

    pass


class InvalidDocumentError(CorpusError):
    """Raised when a piece file fails validation."""

    def __init__(self, filename: str, field: str, message: Optional[str] = None) -> None:
        self.filename = filename
        self.field = field
        super().__init__(message or f'Invalid or missing "{field}" in {filename}')


class EmbeddingStoreError(PieceSearchError):
    """Raised when the embedding store cannot serve retrieval."""

    pass


class EmbeddingStoreMissingError(EmbeddingStoreError):
    """Raised when the embedding store file does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Embedding file not found at {path}. "
            "Run `python scripts/embed_pieces.py` to generate embeddings."
        )


class EmbeddingStoreEmptyError(EmbeddingStoreError):
    """Raised when the embedding store holds no fragment records."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Embedding payload at {path} is missing fragments. "
            "Regenerate embeddings to continue."
        )


class EmbeddingStoreInvalidError(EmbeddingStoreError):
    """Raised when the embedding store file is malformed."""

    pass


class EmptyQueryError(PieceSearchError):
    """Raised when a blank query is sent to the embedder."""

    pass


class EmbeddingError(PieceSearchError):
    """Raised when embedding generation fails."""

    pass


class MissingCredentialError(EmbeddingError):
    """Raised when the embedding provider API key is not configured."""

    pass


class EmbeddingProviderError(EmbeddingError):
    """Raised when the embedding provider call fails."""

    pass


class EmbeddingBatchMismatchError(EmbeddingError):
    """Raised when a batch returns a different number of vectors than inputs."""

    def __init__(self, received: int, expected: int) -> None:
        self.received = received
        self.expected = expected
        super().__init__(
            f"Embedding batch mismatch: received {received}, expected {expected}")


class EmbeddingDimensionMismatchError(EmbeddingError):
    """Raised when vector widths disagree with the embedding store."""

    def __init__(self, received: int, expected: int) -> None:
        self.received = received
        self.expected = expected
        super().__init__(
            f"Embedding dimension mismatch: received {received}, expected {expected}")
