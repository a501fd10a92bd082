"""
API Routers Package

Router Structure:
- books.py: /api/v1/books/* endpoints
- reviews.py: /api/v1/reviews/* endpoints (including the multi-step workflow)
- simulation.py: /api/v1/simulate-error and /api/v1/performance/* endpoints

Each router is imported and registered in main.py.
"""

from app.routers.books import router as books_router
from app.routers.reviews import router as reviews_router
from app.routers.simulation import router as simulation_router

__all__ = [
    "books_router",
    "reviews_router",
    "simulation_router",
]
