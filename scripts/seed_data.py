#!/usr/bin/env python3
"""
Database Seed Script

Populates the database with sample users and books for development and
load testing.

USAGE:
    # Make sure you're in the project root with venv activated
    python scripts/seed_data.py

    # Keep existing rows
    python scripts/seed_data.py --keep

This script:
1. Connects to the database using app settings
2. Clears existing data (unless --keep)
3. Creates sample users and books with an empty rating aggregate
"""

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import create_tables, dispose_engine, get_session_factory
from app.models import Book, Review, User


async def clear_data(db: AsyncSession) -> None:
    """Clear all existing data from the database."""
    print("Clearing existing data...")
    await db.execute(delete(Review))
    await db.execute(delete(Book))
    await db.execute(delete(User))
    await db.commit()
    print("Data cleared.")


async def create_users(db: AsyncSession) -> list[User]:
    """Create sample users (the load tests pick user ids 1-10)."""
    print("Creating users...")
    users = [
        User(email=f"reader{i}@example.com", name=f"Reader {i}")
        for i in range(1, 11)
    ]
    db.add_all(users)
    await db.commit()

    print(f"Created {len(users)} users.")
    return users


async def create_books(db: AsyncSession) -> list[Book]:
    """Create sample books."""
    print("Creating books...")

    books_data = [
        {"title": "1984", "author": "George Orwell", "published_at": date(1949, 6, 8)},
        {"title": "Animal Farm", "author": "George Orwell", "published_at": date(1945, 8, 17)},
        {"title": "Pride and Prejudice", "author": "Jane Austen", "published_at": date(1813, 1, 28)},
        {"title": "The Old Man and the Sea", "author": "Ernest Hemingway", "published_at": date(1952, 9, 1)},
        {"title": "Murder on the Orient Express", "author": "Agatha Christie", "published_at": date(1934, 1, 1)},
        {"title": "Foundation", "author": "Isaac Asimov", "published_at": date(1951, 6, 1)},
        {"title": "The Hobbit", "author": "J.R.R. Tolkien", "published_at": date(1937, 9, 21)},
        {"title": "Brave New World", "author": "Aldous Huxley", "published_at": date(1932, 1, 1)},
    ]

    books = [Book(**data) for data in books_data]
    db.add_all(books)
    await db.commit()

    print(f"Created {len(books)} books.")
    return books


async def seed_database(clear_existing: bool = True) -> None:
    """
    Main function to seed the database.

    Args:
        clear_existing: If True, clears existing data before seeding.
    """
    print("=" * 60)
    print("Starting database seed...")
    print("=" * 60)

    # Create tables if they don't exist
    await create_tables()

    session_factory = get_session_factory()
    try:
        async with session_factory() as db:
            if clear_existing:
                await clear_data(db)

            users = await create_users(db)
            books = await create_books(db)

        print("=" * 60)
        print("Database seeding completed successfully!")
        print("=" * 60)
        print("\nSummary:")
        print(f"  - Users: {len(users)}")
        print(f"  - Books: {len(books)}")
    except Exception as e:
        print(f"Error seeding database: {e}")
        raise
    finally:
        await dispose_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the database with sample data")
    parser.add_argument("--keep", action="store_true", help="Keep existing rows")
    args = parser.parse_args()

    asyncio.run(seed_database(clear_existing=not args.keep))
