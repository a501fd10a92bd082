"""
Test Suite for the Observability Library API

Test Organization:
- conftest.py: Shared fixtures (stores, isolated metrics and spans, client)
- test_review_workflow.py: The create-review-and-update-book workflow
- test_stores.py: SQL stores against SQLite
- test_metrics.py / test_tracing.py: Instrumentation building blocks
- test_reviews.py / test_books.py: HTTP endpoints

Running Tests:
    # Run all tests
    pytest

    # Run one file
    pytest tests/test_review_workflow.py

    # Run with verbose output
    pytest -v
"""
