"""Piece fragmenting service."""

import re
from typing import Iterable, List, Optional

from piece_search.core.config import settings
from piece_search.models.piece import Piece, PieceFragment
from piece_search.services.pieces import count_words

FRAGMENT_SPLIT_PATTERN = re.compile(r"\n{2,}")


def fragment_id(piece_id: int, order: int) -> str:
    """
    Build the stable identifier of a fragment.

    Args:
        piece_id: Owning piece id.
        order: 1-based fragment order.

    Returns:
        Identifier such as ``piece-007-fragment-002``.
    """
    return f"piece-{piece_id:03d}-fragment-{order:03d}"


def split_blocks(text: str, min_length: int) -> List[str]:
    """Split on blank-line runs, trim, and drop blocks shorter than min_length."""
    blocks = (block.strip() for block in FRAGMENT_SPLIT_PATTERN.split(text))
    return [block for block in blocks if len(block) >= min_length]


class FragmentService:
    """Service for splitting pieces into retrieval fragments."""

    def __init__(self, min_length: Optional[int] = None) -> None:
        """
        Initialize the fragment service.

        Args:
            min_length: Minimum fragment length in characters.
        """
        self.min_length = settings.fragment_min_length if min_length is None else min_length

    def fragment_piece(self, piece: Piece, min_length: Optional[int] = None) -> List[PieceFragment]:
        """
        Split one piece body into fragments.

        Undersized blocks are dropped before numbering, so orders are always 1..N.

        Args:
            piece: Piece to split.
            min_length: Override of the service threshold.

        Returns:
            Fragments in body order.
        """
        threshold = self.min_length if min_length is None else min_length
        return [
            PieceFragment(
                id=fragment_id(piece.id, order),
                piece_id=piece.id,
                piece_title=piece.title,
                piece_slug=piece.slug,
                order=order,
                text=block,
                word_count=count_words(block),
            )
            for order, block in enumerate(split_blocks(piece.content, threshold), start=1)
        ]

    def fragment_pieces(
        self, pieces: Iterable[Piece], min_length: Optional[int] = None
    ) -> List[PieceFragment]:
        """
        Fragment a whole corpus, keeping corpus order.

        Args:
            pieces: Pieces to split.
            min_length: Override of the service threshold.

        Returns:
            Flat list of fragments.
        """
        fragments: List[PieceFragment] = []
        for piece in pieces:
            fragments.extend(self.fragment_piece(piece, min_length))
        return fragments
