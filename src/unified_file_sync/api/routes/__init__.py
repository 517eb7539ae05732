"""API route modules."""

from .sync import router as sync_router

__all__ = [
    "sync_router",
]
