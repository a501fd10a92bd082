"""
Create Review and Update Book Workflow

Two dependent writes behind one request:

    Step A  CreateReview             insert the review (after checking the book exists)
    Step B  RecomputeBookAggregate   fold the new rating into the book's aggregate

State machine:

    STARTED --A ok--> REVIEW_CREATED --B ok--> BOOK_UPDATED   (success)
    STARTED --A fails--> FAILED(create_review)
    REVIEW_CREATED --B fails--> FAILED(update_book)           (partial success)

Partial-Success Policy
======================
If Step B fails the review is NOT rolled back: it is a user-visible fact.
The caller gets AggregateUpdateFailed carrying the stored review's id so a
reconciliation pass (SqlBookStore.reconcile) can rebuild the book's
aggregate from its reviews later. Nothing is retried here; retrying
Step A would create a duplicate review.

Instrumentation Contract
========================
The alert rules divide errors by requests and treat "no requests" as an
outage, so on every invocation, success or failure:

- multi_step_review_book_update_requests_total      +1
- multi_step_review_book_update_duration_seconds    one observation
- multi_step_review_book_update_errors_total{stage} +1 on failure only

Spans: root MultiStepReviewBookUpdate with children CreateReview and (once
Step A succeeded) RecomputeBookAggregate. A failed Step B adds a
partial_success event with the review id to the root span.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import StrEnum

from opentelemetry.trace import Span

from app.exceptions import NotFoundError
from app.observability.metrics import (
    MULTI_STEP_DURATION_SECONDS,
    MULTI_STEP_ERRORS_TOTAL,
    MULTI_STEP_REQUESTS_TOTAL,
    MetricRegistry,
)
from app.observability.tracing import TraceSpanRunner
from app.schemas.book import BookResponse
from app.schemas.review import PartialSuccessDetail, ReviewCreate, ReviewResponse
from app.stores.base import BookStore, ReviewStore

module_logger = logging.getLogger(__name__)

ROOT_SPAN_NAME = "MultiStepReviewBookUpdate"
CREATE_REVIEW_SPAN_NAME = "CreateReview"
RECOMPUTE_SPAN_NAME = "RecomputeBookAggregate"
PARTIAL_SUCCESS_EVENT = "partial_success"


# =============================================================================
# Outcome Tracking
# =============================================================================


class WorkflowStage(StrEnum):
    """Value of the ``stage`` label on the errors counter."""

    CREATE_REVIEW = "create_review"
    UPDATE_BOOK = "update_book"


class WorkflowState(StrEnum):
    STARTED = "started"
    REVIEW_CREATED = "review_created"
    BOOK_UPDATED = "book_updated"
    FAILED = "failed"


_TRANSITIONS = {
    WorkflowState.STARTED: {WorkflowState.REVIEW_CREATED, WorkflowState.FAILED},
    WorkflowState.REVIEW_CREATED: {WorkflowState.BOOK_UPDATED, WorkflowState.FAILED},
    WorkflowState.BOOK_UPDATED: set(),
    WorkflowState.FAILED: set(),
}


@dataclass
class WorkflowOutcome:
    """
    Transient record of how far one invocation got.

    Never persisted. Its terminal value decides which metrics labels are
    emitted and what the caller sees.
    """

    state: WorkflowState = WorkflowState.STARTED
    review_created: bool = False
    book_updated: bool = False
    error_stage: WorkflowStage | None = None
    review_id: int | None = None

    def _move(self, target: WorkflowState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid workflow transition {self.state} -> {target}")
        self.state = target

    def mark_review_created(self, review_id: int) -> None:
        self._move(WorkflowState.REVIEW_CREATED)
        self.review_created = True
        self.review_id = review_id

    def mark_book_updated(self) -> None:
        self._move(WorkflowState.BOOK_UPDATED)
        self.book_updated = True

    def mark_failed(self) -> WorkflowStage:
        """Fail at the current position; the stage follows from the state reached."""
        self.error_stage = (
            WorkflowStage.UPDATE_BOOK if self.review_created else WorkflowStage.CREATE_REVIEW
        )
        self._move(WorkflowState.FAILED)
        return self.error_stage

    @property
    def is_terminal(self) -> bool:
        return self.state in (WorkflowState.BOOK_UPDATED, WorkflowState.FAILED)

    @property
    def partial_success(self) -> bool:
        return self.review_created and not self.book_updated


@dataclass
class WorkflowResult:
    review: ReviewResponse
    book: BookResponse


# =============================================================================
# Errors
# =============================================================================


class WorkflowError(Exception):
    """Base class; every failure is classified into exactly one stage."""

    code = "workflow-error"
    stage: WorkflowStage

    def __init__(self, message: str, *, book_id: int, user_id: int):
        self.book_id = book_id
        self.user_id = user_id
        super().__init__(message)

    def to_detail(self) -> dict:
        return {"error": self.code, "message": str(self), "stage": self.stage.value}


class ReviewPersistFailed(WorkflowError):
    """Step A failed. Nothing was written."""

    code = "review-persist-failed"
    stage = WorkflowStage.CREATE_REVIEW


class BookNotFound(ReviewPersistFailed):
    """Step A precondition: the book does not exist."""

    code = "book-not-found"


class AggregateUpdateFailed(WorkflowError):
    """Step B failed after Step A stored the review. The book aggregate is stale."""

    code = "aggregate-update-failed"
    stage = WorkflowStage.UPDATE_BOOK

    def __init__(self, message: str, *, review_id: int, book_id: int, user_id: int):
        self.review_id = review_id
        super().__init__(message, book_id=book_id, user_id=user_id)

    def to_detail(self) -> dict:
        return PartialSuccessDetail(
            error=self.code,
            message=str(self),
            stage=self.stage.value,
            review_id=self.review_id,
            book_id=self.book_id,
        ).model_dump()


# =============================================================================
# Workflow
# =============================================================================


class ReviewAndBookUpdateWorkflow:
    """
    Orchestrates review creation and the book aggregate update.

    Args:
        review_store: Persists the review (Step A)
        book_store: Looks up the book and updates its aggregate (Step B)
        metrics: Registry the three multi_step_* instruments come from
        span_runner: Opens the root and step spans
        logger: Request-scoped logger; defaults to this module's logger
    """

    def __init__(
        self,
        review_store: ReviewStore,
        book_store: BookStore,
        metrics: MetricRegistry,
        span_runner: TraceSpanRunner,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._review_store = review_store
        self._book_store = book_store
        self._spans = span_runner
        self._logger = logger or module_logger

        self._requests = metrics.counter(
            MULTI_STEP_REQUESTS_TOTAL,
            "Total number of multi-step review+book update operations",
        )
        self._errors = metrics.counter(
            MULTI_STEP_ERRORS_TOTAL,
            "Total number of errors in multi-step review+book update operations",
            labelnames=("stage",),
        )
        self._duration = metrics.histogram(
            MULTI_STEP_DURATION_SECONDS,
            "Duration of multi-step review+book update operations in seconds",
        )

    async def execute(self, submission: ReviewCreate) -> WorkflowResult:
        """
        Create the review, then fold its rating into the book.

        Returns:
            The stored review and the updated book

        Raises:
            BookNotFound: the book does not exist (nothing written)
            ReviewPersistFailed: the review could not be stored (nothing written)
            AggregateUpdateFailed: the review was stored, the book was not updated
        """
        outcome = WorkflowOutcome()
        started = time.perf_counter()

        async def run_steps(root_span: Span) -> WorkflowResult:
            return await self._run_steps(root_span, submission, outcome)

        try:
            return await self._spans.run(
                ROOT_SPAN_NAME,
                {"bookId": submission.book_id, "userId": submission.user_id},
                run_steps,
            )
        finally:
            self._record(outcome, time.perf_counter() - started)

    async def _run_steps(
        self,
        root_span: Span,
        submission: ReviewCreate,
        outcome: WorkflowOutcome,
    ) -> WorkflowResult:
        book_id = submission.book_id
        user_id = submission.user_id
        self._logger.info(f"Creating review and updating book {book_id} for user {user_id}")

        # ----- Step A: create review -----
        async def create_review(span: Span) -> ReviewResponse:
            await self._book_store.get(book_id)
            review = await self._review_store.create(submission)
            span.set_attribute("reviewId", review.id)
            return review

        try:
            review = await self._spans.run(
                CREATE_REVIEW_SPAN_NAME,
                {"bookId": book_id, "userId": user_id, "rating": submission.rating},
                create_review,
            )
        except asyncio.CancelledError:
            outcome.mark_failed()
            raise
        except NotFoundError as exc:
            outcome.mark_failed()
            self._logger.warning(f"Book {book_id} not found, review not created")
            raise BookNotFound(str(exc), book_id=book_id, user_id=user_id) from exc
        except Exception as exc:
            outcome.mark_failed()
            self._logger.error(f"Error creating review for book {book_id}: {exc}")
            raise ReviewPersistFailed(
                f"Could not create review for book {book_id}",
                book_id=book_id,
                user_id=user_id,
            ) from exc

        outcome.mark_review_created(review.id)
        root_span.add_event("review_created", {"reviewId": review.id})

        # ----- Step B: recompute aggregate -----
        async def recompute_aggregate(span: Span) -> BookResponse:
            book = await self._book_store.recompute_and_store(book_id, submission.rating)
            span.set_attribute("reviewCount", book.review_count)
            span.set_attribute("averageRating", float(book.average_rating))
            return book

        try:
            book = await self._spans.run(
                RECOMPUTE_SPAN_NAME,
                {"bookId": book_id, "reviewId": review.id},
                recompute_aggregate,
            )
        except asyncio.CancelledError:
            self._flag_partial_success(root_span, outcome)
            raise
        except Exception as exc:
            self._flag_partial_success(root_span, outcome)
            self._logger.error(
                f"Review {review.id} stored but book {book_id} aggregate not updated: {exc}"
            )
            raise AggregateUpdateFailed(
                f"Review {review.id} was created but book {book_id} could not be updated",
                review_id=review.id,
                book_id=book_id,
                user_id=user_id,
            ) from exc

        outcome.mark_book_updated()
        root_span.add_event(
            "book_updated",
            {
                "bookId": book_id,
                "reviewCount": book.review_count,
                "averageRating": float(book.average_rating),
            },
        )
        self._logger.info(
            f"Review {review.id} created, book {book_id} now has "
            f"{book.review_count} reviews averaging {book.average_rating}"
        )
        return WorkflowResult(review=review, book=book)

    def _flag_partial_success(self, root_span: Span, outcome: WorkflowOutcome) -> None:
        outcome.mark_failed()
        root_span.add_event(PARTIAL_SUCCESS_EVENT, {"reviewId": outcome.review_id})

    def _record(self, outcome: WorkflowOutcome, elapsed: float) -> None:
        """Emit the per-invocation metrics exactly once."""
        if not outcome.is_terminal:
            # Unclassified exit (e.g. a bug between steps); the state reached decides.
            outcome.mark_failed()
        self._duration.record(elapsed)
        self._requests.add(1)
        if outcome.error_stage is not None:
            self._errors.add(1, {"stage": outcome.error_stage.value})
