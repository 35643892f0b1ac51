from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from ..models import users_table
from .schemas import User, UserFields


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_user_id() -> str:
    return str(uuid.uuid4())


async def list_users(engine: AsyncEngine) -> List[User]:
    query = select(users_table).order_by(users_table.c.created_at.desc())
    async with engine.connect() as conn:
        result = await conn.execute(query)
        return [User.model_validate(dict(row._mapping)) for row in result]


async def get_user(engine: AsyncEngine, user_id: str) -> Optional[User]:
    query = select(users_table).where(users_table.c.id == user_id)
    async with engine.connect() as conn:
        row = (await conn.execute(query)).first()
    if row is None:
        return None
    return User.model_validate(dict(row._mapping))


async def create_user(engine: AsyncEngine, fields: UserFields) -> User:
    """Insert a new row and return it as stored."""
    now = _now()
    user_id = generate_user_id()
    async with engine.begin() as conn:
        await conn.execute(
            insert(users_table).values(id=user_id, created_at=now, updated_at=now, **fields.model_dump())
        )
        row = (await conn.execute(select(users_table).where(users_table.c.id == user_id))).one()
    return User.model_validate(dict(row._mapping))


async def replace_user(engine: AsyncEngine, current: User, fields: UserFields) -> Optional[User]:
    """Overwrite the mutable fields of `current`; None if the row vanished meanwhile."""
    # never move updated_at backwards, even if the wall clock does
    updated_at = max(_now(), current.updated_at)
    statement = (
        update(users_table)
        .where(users_table.c.id == current.id)
        .values(updated_at=updated_at, **fields.model_dump())
    )
    async with engine.begin() as conn:
        result = await conn.execute(statement)
        if result.rowcount == 0:
            return None
        row = (await conn.execute(select(users_table).where(users_table.c.id == current.id))).first()
    return User.model_validate(dict(row._mapping))


async def delete_user(engine: AsyncEngine, user_id: str) -> bool:
    async with engine.begin() as conn:
        result = await conn.execute(delete(users_table).where(users_table.c.id == user_id))
    return result.rowcount > 0


__all__ = ["list_users", "get_user", "create_user", "replace_user", "delete_user", "generate_user_id"]
