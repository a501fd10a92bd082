"""
Exceptions

Store-level errors raised by app.stores. Workflow-level errors live next
to the workflow in app.services.review_workflow and wrap these with
``raise ... from exc`` so the original cause stays on the chain.
"""


class StoreError(Exception):
    """Base class for persistence failures."""
    pass


class NotFoundError(StoreError):
    """The referenced row does not exist."""

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with id {entity_id} not found")


class ConflictError(StoreError):
    """Concurrent writers kept winning the race until the retry budget ran out."""

    def __init__(self, book_id: int, attempts: int):
        self.book_id = book_id
        self.attempts = attempts
        super().__init__(
            f"Rating aggregate for book {book_id} still contended after {attempts} attempts"
        )


class ConstraintError(StoreError):
    """A foreign key or uniqueness constraint rejected the write."""
    pass


class RatingOutOfRangeError(StoreError):
    """Rating outside 1-5 reached the store (validation was bypassed)."""

    def __init__(self, rating: int):
        self.rating = rating
        super().__init__(f"Rating must be between 1 and 5, got {rating}")
