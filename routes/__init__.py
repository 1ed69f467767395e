"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.uploads import router as uploads_router
from routes.catalog import router as catalog_router

__all__ = [
    "uploads_router",
    "catalog_router",
]
