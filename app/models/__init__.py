"""
SQLAlchemy Models Package

Model Relationships:
- User -> Review: One-to-Many (a user writes many reviews)
- Book -> Review: One-to-Many (a book receives many reviews)

Import all models here to:
1. Make them available as: from app.models import Book, Review, User
2. Ensure Alembic discovers them for migrations
"""

from app.models.user import User
from app.models.book import Book
from app.models.review import Review

__all__ = [
    "User",
    "Book",
    "Review",
]
