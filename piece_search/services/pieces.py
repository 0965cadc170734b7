"""Piece loading service backed by markdown files on disk."""

import asyncio
import logging
import math
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from piece_search.core.config import settings
from piece_search.core.exceptions import CorpusUnavailableError, InvalidDocumentError
from piece_search.models.piece import Mood, Piece
from piece_search.services.frontmatter import FrontmatterValue, parse_markdown_file

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 220
TRUTHY_VALUES = {"true", "1", "yes"}
VALID_MOODS = {mood.value for mood in Mood}
_WHITESPACE = re.compile(r"\s+")


def count_words(text: str) -> int:
    """
    Count whitespace-separated words.

    Args:
        text: Text to count.

    Returns:
        Number of words, 0 for blank text.
    """
    normalized = text.strip()
    if not normalized:
        return 0
    return len(_WHITESPACE.split(normalized))


def read_time_minutes(word_count: int) -> int:
    """Minutes to read at a fixed pace, never less than one."""
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))


def parse_date(value: str, filename: str) -> int:
    """
    Parse a ``YYYY.MM.DD`` or ``YYYY-MM-DD`` date into epoch milliseconds (UTC).

    Args:
        value: Raw date string from frontmatter.
        filename: Source file name, used in error messages.

    Returns:
        Milliseconds since the epoch at UTC midnight of the date.

    Raises:
        InvalidDocumentError: If the value does not parse.
    """
    normalized = value.strip().replace(".", "-")
    try:
        parsed = datetime.strptime(normalized, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise InvalidDocumentError(
            filename,
            "date",
            f'Invalid "date" value in {filename}. Expected format YYYY.MM.DD',
        ) from e
    return int(parsed.timestamp() * 1000)


def parse_id(value: Optional[FrontmatterValue], filename: str) -> int:
    """Coerce the frontmatter id into an integer, rejecting non-finite values."""
    if not isinstance(value, str):
        raise InvalidDocumentError(filename, "id")
    try:
        number = float(value)
    except ValueError as e:
        raise InvalidDocumentError(filename, "id") from e
    if not math.isfinite(number) or not number.is_integer():
        raise InvalidDocumentError(filename, "id")
    return int(number)


def ensure_string(value: Optional[FrontmatterValue], key: str, filename: str) -> str:
    """Return a trimmed non-empty scalar or raise naming the field."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise InvalidDocumentError(filename, key)


def normalize_moods(value: Optional[FrontmatterValue], filename: str) -> List[Mood]:
    """
    Lower-case mood values and keep only known moods.

    Raises:
        InvalidDocumentError: If no valid mood remains.
    """
    if isinstance(value, list):
        values = value
    elif isinstance(value, str) and value:
        values = [value]
    else:
        values = []

    moods = [Mood(item.lower()) for item in values if item.lower() in VALID_MOODS]
    if not moods:
        raise InvalidDocumentError(filename, "mood")
    return moods


def parse_boolean(value: Optional[FrontmatterValue]) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_VALUES
    return False


def build_piece(raw: str, filename: str) -> Piece:
    """
    Parse and validate a single piece file.

    Args:
        raw: File contents.
        filename: File name including the ``.md`` extension.

    Returns:
        Validated piece.

    Raises:
        InvalidDocumentError: If any field fails validation.
    """
    data, body = parse_markdown_file(raw, filename)

    piece_id = parse_id(data.get("id"), filename)
    title = ensure_string(data.get("title"), "title", filename)
    date = ensure_string(data.get("date"), "date", filename)
    excerpt = ensure_string(data.get("excerpt"), "excerpt", filename)
    moods = normalize_moods(data.get("mood"), filename)

    content = body.strip()
    word_count = count_words(content)
    minutes = read_time_minutes(word_count)

    return Piece(
        id=piece_id,
        title=title,
        date=date,
        mood=moods,
        excerpt=excerpt,
        content=content,
        word_count=word_count,
        published_at=parse_date(date, filename),
        read_time=f"{minutes} min",
        read_time_minutes=minutes,
        pinned=parse_boolean(data.get("pinned")),
        slug=re.sub(r"\.md$", "", filename, flags=re.IGNORECASE),
    )


def sort_pieces(pieces: List[Piece]) -> List[Piece]:
    """Order pinned pieces first, then newest first, then highest id first."""
    return sorted(pieces, key=lambda p: (not p.pinned, -p.published_at, -p.id))


class PieceService:
    """Service for reading the piece corpus from the content directory."""

    def __init__(self, content_dir: Optional[str] = None) -> None:
        """
        Initialize the piece service.

        Args:
            content_dir: Directory holding ``*.md`` piece files.
        """
        self.content_dir = Path(content_dir or settings.content_dir)

    def _list_markdown_files(self) -> List[Path]:
        try:
            with os.scandir(self.content_dir) as entries:
                files = [
                    Path(entry.path)
                    for entry in entries
                    if entry.is_file() and entry.name.endswith(".md")
                ]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise CorpusUnavailableError(
                f"Failed to read content directory {self.content_dir}: {str(e)}") from e
        return sorted(files)

    def _read_file(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise InvalidDocumentError(
                path.name, "encoding", f"{path.name} is not valid UTF-8") from e
        except OSError as e:
            raise CorpusUnavailableError(
                f"Failed to read piece file {path}: {str(e)}") from e

    def load_pieces(self) -> List[Piece]:
        """
        Load, validate and sort every piece synchronously.

        Returns:
            Sorted list of pieces; empty if the directory is absent.

        Raises:
            CorpusUnavailableError: If the directory exists but is unreadable.
            InvalidDocumentError: If any piece fails validation.
        """
        pieces = []
        seen_ids: Dict[int, str] = {}
        for path in self._list_markdown_files():
            piece = build_piece(self._read_file(path), path.name)
            if piece.id in seen_ids:
                raise InvalidDocumentError(
                    path.name,
                    "id",
                    f'Duplicate "id" {piece.id} in {path.name} (already used by {seen_ids[piece.id]})',
                )
            seen_ids[piece.id] = path.name
            pieces.append(piece)

        logger.info(f"Loaded {len(pieces)} pieces from {self.content_dir}")
        return sort_pieces(pieces)

    async def list_pieces(self) -> List[Piece]:
        """
        Load the corpus without blocking the event loop.

        Returns:
            Sorted list of pieces.
        """
        return await asyncio.to_thread(self.load_pieces)

    async def get_piece_by_slug(self, slug: str) -> Optional[Piece]:
        """
        Find a piece by slug.

        Args:
            slug: File name without extension.

        Returns:
            The piece, or None if no file has that slug.
        """
        for piece in await self.list_pieces():
            if piece.slug == slug:
                return piece
        return None
