"""Version 1 API endpoints."""

from .endpoints import bridge_router

__all__ = ["bridge_router"]
