#!/usr/bin/env python3
"""
Rating Reconciliation Script

Rebuilds book rating aggregates from the stored reviews.

When the create-and-update-book workflow stores a review but fails to
update the book, it returns the review id and leaves the book stale.
Running this script repairs such books.

Usage:
    # All books
    python scripts/reconcile_ratings.py

    # Specific books (e.g. from partial_success responses)
    python scripts/reconcile_ratings.py --book-id 3 --book-id 7
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.config import get_settings
from app.database import dispose_engine, get_session_factory
from app.exceptions import NotFoundError
from app.stores.books import SqlBookStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def reconcile(book_ids: list[int]) -> None:
    """
    Reconcile the given books, or every book when none are given.

    Args:
        book_ids: Books to repair; empty means all
    """
    settings = get_settings()
    store = SqlBookStore(
        get_session_factory(),
        max_attempts=settings.aggregate_update_max_attempts,
    )

    try:
        if not book_ids:
            count = await store.reconcile_all()
            logger.info(f"Reconciled {count} books")
            return

        for book_id in book_ids:
            try:
                book = await store.reconcile(book_id)
            except NotFoundError:
                logger.warning(f"Book {book_id} not found, skipping")
                continue
            logger.info(
                f"Book {book.id}: {book.review_count} reviews, average {book.average_rating}"
            )
    finally:
        await dispose_engine()


def main() -> None:
    parser = argparse.ArgumentParser(description="Rebuild book rating aggregates from reviews")
    parser.add_argument(
        "--book-id",
        type=int,
        action="append",
        default=[],
        help="Book to reconcile (repeatable). Default: all books",
    )
    args = parser.parse_args()

    asyncio.run(reconcile(args.book_id))


if __name__ == "__main__":
    main()
