"""HTTP routes for extension management."""

from api.routes.configs import router as configs_router
from api.routes.extensions import router as extensions_router

__all__ = ["configs_router", "extensions_router"]
