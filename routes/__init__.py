"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.equipment_import import router as equipment_import_router

__all__ = [
    "equipment_import_router",
]
