"""
Books Router

Read-only catalogue endpoints. Books are seeded (scripts/seed_data.py);
their rating fields change only through the review workflow.

Endpoints:
- GET /books - List the newest books
- GET /books/{book_id} - Get a single book
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from app.dependencies import BookStoreDep, Metrics
from app.exceptions import NotFoundError
from app.observability.metrics import BOOKS_FETCHED_TOTAL
from app.schemas import BookListResponse, BookResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/books",
    tags=["Books"],
    responses={
        404: {"description": "Book not found"},
    },
)


@router.get(
    "",
    response_model=BookListResponse,
    summary="List books",
    description="Get up to `limit` books, newest first.",
)
async def list_books(
    book_store: BookStoreDep,
    metrics: Metrics,
    limit: int = Query(default=100, ge=1, le=100, description="Maximum books to return"),
) -> BookListResponse:
    """
    List books with their current rating aggregate.

    Every call counts towards books_fetched_total, which the dashboards
    use as read traffic.
    """
    logger.info("Getting books")
    books = await book_store.list_books(limit=limit)

    metrics.counter(
        BOOKS_FETCHED_TOTAL,
        "Total number of times books have been fetched",
        labelnames=("route",),
    ).add(1, {"route": "/books"})

    logger.info(f"{len(books)} books retrieved")
    return BookListResponse(items=books, total=len(books))


@router.get(
    "/{book_id}",
    response_model=BookResponse,
    summary="Get a book by ID",
)
async def get_book(book_id: int, book_store: BookStoreDep) -> BookResponse:
    """
    Get a single book.

    Raises:
        HTTPException: 404 if book not found
    """
    try:
        return await book_store.get(book_id)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Book with id {book_id} not found",
        )
