from __future__ import annotations

import uvicorn

from .config import get_settings


def run() -> None:
    """Entrypoint for `python -m crud_api`; uvicorn handles SIGTERM/SIGINT and drives shutdown."""
    settings = get_settings()
    uvicorn.run(
        "crud_api.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        lifespan="on",
    )


if __name__ == "__main__":
    run()
