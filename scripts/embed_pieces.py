"""Generate embeddings for pieces and their fragments.

Usage: python scripts/embed_pieces.py [--force]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from piece_search.core.dependencies import ServiceContainer
from piece_search.core.exceptions import PieceSearchError

logger = logging.getLogger("embed_pieces")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Embed pieces and fragments into the embedding store.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="discard the existing store and re-embed every item",
    )
    return parser.parse_args(argv)


async def embed_pieces(force: bool, container: Optional[ServiceContainer] = None) -> int:
    """
    Run the batch builder once.

    Args:
        force: Rebuild the store from scratch.
        container: Services to use; a fresh container when omitted.

    Returns:
        Process exit code.
    """
    container = container or ServiceContainer()
    try:
        summary = await container.batch_builder().build(force=force)
    except (PieceSearchError, OSError) as e:
        logger.error(f"Embedding generation failed: {str(e)}")
        return 1
    finally:
        await container.shutdown()

    logger.info(
        f"Embedded {summary.new_fragments} fragments and {summary.new_pieces} pieces "
        f"({summary.total_fragments} fragments, {summary.total_pieces} pieces, "
        f"{summary.dimensions} dims in store)")
    logger.info(f"Saved embeddings to {summary.output_path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = parse_args(argv)
    return asyncio.run(embed_pieces(force=args.force))


if __name__ == "__main__":
    sys.exit(main())
