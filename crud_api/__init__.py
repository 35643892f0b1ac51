"""Users CRUD service.

Run with ``python -m crud_api`` or ``uvicorn --factory crud_api:create_app``.
"""

from .main import create_app

__all__ = ["create_app"]
