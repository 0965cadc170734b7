"""Shared fixtures: temporary corpora, stores and an offline embedding service."""

from pathlib import Path
from typing import Callable, List, Optional

import pytest

from piece_search.core.exceptions import EmbeddingProviderError
from piece_search.models.embedding import EmbeddingPayload, EmbeddingRecord
from piece_search.models.piece import Mood, Piece
from piece_search.services.embedding import EmbeddingService
from piece_search.services.pieces import count_words, read_time_minutes

KEYWORDS = ["river", "city", "machine"]


def keyword_vector(text: str) -> List[float]:
    """Deterministic embedding: keyword counts plus a small bias component."""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in KEYWORDS] + [0.1]


class StubEmbeddingService(EmbeddingService):
    """Embedding service that never touches the network."""

    def __init__(self, api_key: Optional[str] = "test-key") -> None:
        super().__init__(api_key=api_key, model="stub-embedding")
        self.api_key = api_key
        self.calls: List[List[str]] = []
        self.fail_on_call: Optional[int] = None
        self.drop_last = False

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise EmbeddingProviderError("Failed to generate embeddings: quota exceeded")
        vectors = [keyword_vector(text) for text in texts]
        if self.drop_last:
            vectors = vectors[:-1]
        return vectors


def piece_file(
    piece_id,
    title: str = "Untitled",
    date: str = "2025.01.01",
    moods=("analytical",),
    excerpt: str = "An excerpt",
    pinned: bool = False,
    body: str = "Body text.",
) -> str:
    mood_lines = "\n".join(f"  - {mood}" for mood in moods)
    return (
        "---\n"
        f"id: {piece_id}\n"
        f"title: {title}\n"
        f"date: {date}\n"
        "mood:\n"
        f"{mood_lines}\n"
        f"excerpt: {excerpt}\n"
        f"pinned: {'true' if pinned else 'false'}\n"
        "---\n\n"
        f"{body}\n"
    )


def make_piece(piece_id: int, slug: str, content: str, title: str = "Title") -> Piece:
    words = count_words(content)
    minutes = read_time_minutes(words)
    return Piece(
        id=piece_id,
        title=title,
        date="2025.01.01",
        mood=[Mood.ANALYTICAL],
        excerpt="Excerpt",
        content=content,
        word_count=words,
        published_at=1735689600000,
        read_time=f"{minutes} min",
        read_time_minutes=minutes,
        pinned=False,
        slug=slug,
    )


def make_record(record_id: str, piece_id: int, slug: str, vector, order: int = 0) -> EmbeddingRecord:
    return EmbeddingRecord(
        id=record_id,
        piece_id=piece_id,
        piece_slug=slug,
        piece_title=slug.title(),
        fragment_order=order,
        embedding=list(vector),
    )


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    return tmp_path / "content" / "pieces"


@pytest.fixture
def write_piece(content_dir: Path) -> Callable[[str, str], Path]:
    def _write(name: str, contents: str) -> Path:
        content_dir.mkdir(parents=True, exist_ok=True)
        path = content_dir / name
        path.write_text(contents, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "public" / "embeddings" / "pieces-v1.json"


@pytest.fixture
def stub_embedding_service() -> StubEmbeddingService:
    return StubEmbeddingService()


@pytest.fixture
def sample_payload() -> EmbeddingPayload:
    return EmbeddingPayload(
        version="stub-embedding::pieces-v1",
        model="stub-embedding",
        created_at="2025-01-01T00:00:00.000Z",
        dimensions=4,
        fragments=[
            make_record("piece-001-fragment-001", 1, "rivers", [2.0, 0.0, 0.0, 0.1], order=1),
            make_record("piece-002-fragment-001", 2, "cities", [0.0, 2.0, 0.0, 0.1], order=1),
        ],
        piece_embeddings=[
            make_record("rivers", 1, "rivers", [1.0, 0.0, 0.0, 0.1]),
            make_record("cities", 2, "cities", [0.0, 1.0, 0.0, 0.1]),
        ],
    )
