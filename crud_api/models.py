from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, Integer, MetaData, String, Table

TEXT_MAX_LENGTH = 255

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("full_name", String(TEXT_MAX_LENGTH), nullable=False),
    Column("study_level", String(TEXT_MAX_LENGTH), nullable=False),
    Column("age", Integer, nullable=False),
    # naive UTC, assigned by the service so every backend behaves the same
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Index("idx_users_created_at", "created_at"),
    Index("idx_users_full_name", "full_name"),
)

__all__ = ["metadata", "users_table", "TEXT_MAX_LENGTH"]
