"""
Services Package

Business logic kept separate from HTTP handling:
- review_workflow.py: create a review, then update the book's rating
  aggregate, with the metrics and spans the alert rules depend on
- database_heavy.py: expensive queries for the database performance
  dashboards
"""
