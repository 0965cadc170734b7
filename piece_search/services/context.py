"""Render retrieval results into citation-ready prompt text."""

import re

from piece_search.models.retrieval import RetrievalResult

NO_MATCHES_LINE = (
    "No direct matches found in the archive. Answer using general knowledge, but state the gap."
)
_WHITESPACE = re.compile(r"\s+")


def piece_citation(piece_id: int) -> str:
    return f"[#{piece_id:03d}]"


def fragment_citation(piece_id: int, order: int) -> str:
    return f"[#{piece_id:03d}-F{order:03d}]"


def build_system_prompt() -> str:
    """Fixed instructions telling the model how to cite fragments."""
    return " ".join([
        "You are the archive synthesizer.",
        "Answer concisely using the provided context fragments. "
        "When citing, reference the fragment IDs like [#004-F001].",
        "If context is insufficient, explicitly say so before offering general guidance.",
    ])


def build_context_prompt(prompt: str, retrieval: RetrievalResult) -> str:
    """
    Build the user prompt from a question and its retrieval result.

    Pieces are listed first, then fragments with whitespace collapsed, each
    line carrying its citation tag and score.

    Args:
        prompt: The visitor's question.
        retrieval: Result of ``retrieve_context`` for that question.

    Returns:
        Prompt text ending with the task.
    """
    lines = []

    if retrieval.is_empty:
        lines.append(NO_MATCHES_LINE)
    else:
        lines.append("CONTEXT:")
        for item in retrieval.pieces:
            piece = item.piece
            lines.append(
                f"{piece_citation(piece.id)} {piece.title} ({piece.read_time}) "
                f"· score {item.score:.2f}")

        if retrieval.fragments:
            if retrieval.pieces:
                lines.append("")
            for item in retrieval.fragments:
                fragment = item.fragment
                snippet = _WHITESPACE.sub(" ", fragment.text)
                lines.append(
                    f"{fragment_citation(fragment.piece_id, fragment.order)} {snippet} "
                    f"· score {item.score:.2f}")

    lines.extend(["", "TASK:", prompt.strip()])
    return "\n".join(lines)
