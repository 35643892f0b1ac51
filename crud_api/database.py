"""Database lifecycle: pooled engine, schema bootstrap, readiness and reconnection.

The HTTP listener comes up without waiting for the database. `StoreManager`
connects in a background task and keeps retrying with a fixed delay until
the database answers, so a slow-starting database never crash-loops the
process. Store-backed routes consult `is_ready()` before touching the pool.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import threading
import weakref
from contextlib import suppress
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .config import Settings
from .models import metadata


class StoreState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


class Readiness:
    """Thread-safe cell holding the store state."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = StoreState.UNINITIALIZED
        self._ever_ready = False

    @property
    def state(self) -> StoreState:
        with self._lock:
            return self._state

    @property
    def ever_ready(self) -> bool:
        with self._lock:
            return self._ever_ready

    def set(self, state: StoreState) -> None:
        with self._lock:
            self._state = state
            if state is StoreState.READY:
                self._ever_ready = True

    def is_ready(self) -> bool:
        return self.state is StoreState.READY


def describe_error(exc: BaseException) -> dict:
    """Server-side description of a driver/store failure for the logs."""
    return {
        "error": str(exc) or repr(exc),
        "error_type": type(exc).__name__,
        "code": getattr(exc, "code", None) or getattr(getattr(exc, "orig", None), "sqlstate", None),
    }


class StoreManager:
    def __init__(
        self,
        settings: Settings,
        readiness: Optional[Readiness] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings
        self._readiness = readiness or Readiness()
        self._logger = logger or logging.getLogger(__name__)
        self._engine: Optional[AsyncEngine] = None
        # replaced engines that in-flight requests may still hold
        self._retired: weakref.WeakSet[AsyncEngine] = weakref.WeakSet()
        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None
        self.attempts = 0

    @property
    def readiness(self) -> Readiness:
        return self._readiness

    @property
    def state(self) -> StoreState:
        return self._readiness.state

    @property
    def engine(self) -> Optional[AsyncEngine]:
        return self._engine

    def is_ready(self) -> bool:
        return self._readiness.is_ready()

    def _create_engine(self) -> AsyncEngine:
        url = self._settings.database_url()
        options = {"pool_pre_ping": True}
        if url.get_backend_name() != "sqlite":
            options.update(
                pool_size=self._settings.DB_POOL_SIZE,
                max_overflow=0,
                pool_timeout=self._settings.DB_POOL_TIMEOUT_SECONDS,
            )
        return create_async_engine(url, **options)

    async def _bootstrap(self, engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.run_sync(metadata.create_all, checkfirst=True)

    async def _ping(self, engine: AsyncEngine) -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def _close(self, engine: AsyncEngine) -> None:
        try:
            await engine.dispose()
        except Exception as exc:
            self._logger.warning("Error disposing database engine", extra={"context": describe_error(exc)})

    async def _dispose(self) -> None:
        """Detach the current engine and close its idle connections.

        `dispose()` only swaps in a fresh pool, so a request still holding the
        engine can keep opening connections on it. Detached engines are
        remembered until they are garbage collected and closed again on stop.
        """
        engine, self._engine = self._engine, None
        if engine is None:
            return
        self._retired.add(engine)
        await self._close(engine)

    def current_engine(self) -> Optional[AsyncEngine]:
        """The engine to run a query on right now, or None when the store is not READY."""
        engine = self._engine
        if engine is None or not self.is_ready():
            return None
        return engine

    async def initialize(self) -> bool:
        """Run one connection attempt: connect, probe, create the table.

        Returns True when the store is READY. Every failure, including an
        unusable connection configuration, ends in FAILED and is logged.
        """
        self.attempts += 1
        self._readiness.set(StoreState.CONNECTING)
        self._logger.info(
            "Connecting to database",
            extra={
                "context": {
                    "host": self._settings.DB_HOST,
                    "database": self._settings.DB_NAME,
                    "attempt": self.attempts,
                }
            },
        )
        await self._dispose()
        try:
            self._engine = self._create_engine()
            await asyncio.wait_for(
                self._bootstrap(self._engine), timeout=self._settings.DB_CONNECT_TIMEOUT_SECONDS
            )
        except Exception as exc:
            self._readiness.set(StoreState.FAILED)
            self._logger.error("Database initialization failed", extra={"context": describe_error(exc)})
            await self._dispose()
            return False

        self._readiness.set(StoreState.READY)
        self._logger.info("Database initialized", extra={"context": {"table": "users"}})
        return True

    async def run(self) -> None:
        """Keep the store connected for the life of the process."""
        if self._wakeup is None:
            self._wakeup = asyncio.Event()
        while True:
            if await self.initialize():
                await self._wakeup.wait()
                self._wakeup.clear()
                continue
            self._logger.warning(
                "Database unavailable, retrying",
                extra={"context": {"retry_in_seconds": self._settings.DB_RETRY_DELAY_SECONDS}},
            )
            await asyncio.sleep(self._settings.DB_RETRY_DELAY_SECONDS)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._wakeup = asyncio.Event()
            self._task = asyncio.create_task(self.run(), name="store-connection-manager")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self._dispose()
        for engine in list(self._retired):
            await self._close(engine)
        self._readiness.set(StoreState.UNINITIALIZED)
        self._logger.info("Database connection closed")

    def request_reconnect(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    async def probe(self, timeout: float) -> bool:
        """`SELECT 1` bounded by `timeout`. A failure drops readiness and triggers a reconnect."""
        engine = self.current_engine()
        if engine is None:
            return False
        try:
            await asyncio.wait_for(self._ping(engine), timeout=timeout)
        except Exception as exc:
            context = describe_error(exc)
            context["timeout_seconds"] = timeout
            if engine is not self._engine:
                # a reconnect replaced the engine while this probe was running
                self._logger.warning("Database probe failed on a replaced engine", extra={"context": context})
                return False
            self._logger.error("Database probe failed", extra={"context": context})
            self._readiness.set(StoreState.FAILED)
            self.request_reconnect()
            return False
        return True


__all__ = ["StoreManager", "StoreState", "Readiness", "describe_error"]
