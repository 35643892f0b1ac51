"""The `user` resource: validation, queries and the `/api/users` routes."""

from .routes import router

__all__ = ["router"]
