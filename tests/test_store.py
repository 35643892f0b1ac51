from __future__ import annotations

import asyncio

from sqlalchemy import event

from crud_api.database import StoreManager
from crud_api.users import store
from crud_api.users.schemas import UserFields

from .helpers import make_settings

FIELDS = UserFields(full_name="Grace Hopper", study_level="PhD", age=85)


def _run_with_engine(tmp_path, body):
    async def scenario():
        manager = StoreManager(make_settings(tmp_path))
        try:
            await manager.initialize()
            return await body(manager.engine)
        finally:
            await manager.stop()

    return asyncio.run(scenario())


def test_create_returns_the_stored_row(tmp_path) -> None:
    statements = []

    async def body(engine):
        @event.listens_for(engine.sync_engine, "before_cursor_execute")
        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement.split()[0].upper())

        created = await store.create_user(engine, FIELDS)
        return created, await store.get_user(engine, created.id)

    created, fetched = _run_with_engine(tmp_path, body)

    assert created == fetched
    assert created.created_at == created.updated_at
    assert statements[-2:] == ["INSERT", "SELECT"]


def test_replace_never_moves_updated_at_backwards(tmp_path) -> None:
    async def body(engine):
        created = await store.create_user(engine, FIELDS)
        future = created.model_copy(update={"updated_at": created.updated_at.replace(year=created.updated_at.year + 1)})
        return future, await store.replace_user(engine, future, FIELDS)

    future, replaced = _run_with_engine(tmp_path, body)

    assert replaced.updated_at == future.updated_at
    assert replaced.created_at <= replaced.updated_at


def test_replace_of_a_vanished_row_is_none(tmp_path) -> None:
    async def body(engine):
        created = await store.create_user(engine, FIELDS)
        await store.delete_user(engine, created.id)
        return await store.replace_user(engine, created, FIELDS)

    assert _run_with_engine(tmp_path, body) is None
