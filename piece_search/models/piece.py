"""Piece and fragment models for the corpus."""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class Mood(str, Enum):
    """Mood tags a piece may carry."""

    CONTEMPLATIVE = "contemplative"
    ANALYTICAL = "analytical"
    EXPLORATORY = "exploratory"
    CRITICAL = "critical"


class Piece(BaseModel):
    """A published piece of writing loaded from the content directory."""

    id: int
    title: str
    date: str
    mood: List[Mood] = Field(min_length=1)
    excerpt: str
    content: str
    word_count: int = Field(ge=0)
    published_at: int
    read_time: str
    read_time_minutes: int = Field(ge=1)
    pinned: bool = False
    slug: str

    model_config = {"frozen": True}


class PieceFragment(BaseModel):
    """Paragraph-sized slice of a piece body used for fine-grained retrieval."""

    id: str
    piece_id: int
    piece_title: str
    piece_slug: str
    order: int = Field(ge=1)
    text: str
    word_count: int = Field(ge=0)

    model_config = {"frozen": True}
