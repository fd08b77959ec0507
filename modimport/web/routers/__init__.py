from .catalog import router as catalog_router
from .imports import router as imports_router
from .system import router as system_router

__all__ = [
    "catalog_router",
    "imports_router",
    "system_router",
]
