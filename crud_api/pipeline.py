"""Per-request bookkeeping shared by every CRUD endpoint.

Each endpoint builds a `RequestPipeline`, logs its attempt, sleeps for the
optional `delay`, then wraps its store calls in `store_call()` so that a
database failure is logged with the internal detail and surfaced to the
client as a generic 500.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import describe_error
from .errors import NotFoundError, StoreOperationError, ValidationError

STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def parse_delay(raw: Optional[str], limit: int) -> int:
    """Milliseconds to hold the response; anything negative or non-numeric is 0."""
    if raw is None:
        return 0
    try:
        value = int(raw.strip())
    except ValueError:
        return 0
    return min(max(value, 0), limit)


class RequestPipeline:
    def __init__(self, logger: logging.Logger, endpoint: str, method: str, **context) -> None:
        self._logger = logger
        self._base = {"endpoint": endpoint, "method": method, **context}
        self._started = time.perf_counter()

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self._started) * 1000, 3)

    def _extra(self, context: dict, timed: bool = True) -> dict:
        extra = {"context": {**self._base, **context}}
        if timed:
            extra["processing_time_ms"] = self.elapsed_ms()
        return extra

    def attempt(self, message: str, **context) -> None:
        self._logger.info(message, extra=self._extra(context, timed=False))

    def succeed(self, message: str, **context) -> None:
        self._logger.info(message, extra=self._extra(context))

    def warn(self, message: str, **context) -> None:
        self._logger.warning(message, extra=self._extra(context))

    def fail(self, message: str, exc: BaseException) -> None:
        self._logger.error(message, extra=self._extra(describe_error(exc)))

    async def pause(self, delay_ms: int) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

    def reject(self, message: str, errors) -> ValidationError:
        self.warn(message, errors=list(errors), status=400)
        return ValidationError(errors)

    def not_found(self, message: str) -> NotFoundError:
        self.warn(message, status=404)
        return NotFoundError()

    @asynccontextmanager
    async def store_call(self, failure_message: str, public_message: str) -> AsyncIterator[None]:
        try:
            yield
        except STORE_ERRORS as exc:
            self.fail(failure_message, exc)
            raise StoreOperationError(public_message) from exc


__all__ = ["RequestPipeline", "parse_delay", "STORE_ERRORS"]
