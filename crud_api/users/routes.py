from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from ..database import StoreManager
from ..errors import StoreUnavailableError
from ..pipeline import RequestPipeline, parse_delay
from . import store
from .schemas import UserFields, payload_summary, validate_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

_MALFORMED = object()


def _live_engine(manager: StoreManager) -> AsyncEngine:
    # read again right before querying; a reconnect may have replaced the engine
    engine = manager.current_engine()
    if engine is None:
        raise StoreUnavailableError()
    return engine


async def require_store(request: Request) -> StoreManager:
    """Readiness gate: store-backed routes never run before the database is up."""
    manager = request.app.state.store
    _live_engine(manager)
    return manager


async def request_delay(request: Request) -> int:
    return parse_delay(request.query_params.get("delay"), request.app.state.settings.MAX_REQUEST_DELAY_MS)


async def _read_payload(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return _MALFORMED


def _check_payload(pipeline: RequestPipeline, payload: Any, message: str) -> UserFields:
    if payload is _MALFORMED:
        raise pipeline.reject(message, ["request body must be valid JSON"])
    result = validate_user(payload)
    if not result.is_valid:
        raise pipeline.reject(message, result.errors)
    return UserFields.from_payload(payload)


@router.get("")
async def list_users(manager: StoreManager = Depends(require_store), delay: int = Depends(request_delay)):
    pipeline = RequestPipeline(logger, "/api/users", "GET")
    pipeline.attempt("Listing users", delay=delay)
    await pipeline.pause(delay)

    engine = _live_engine(manager)
    async with pipeline.store_call("Failed to list users", "Server error while listing users"):
        users = await store.list_users(engine)

    pipeline.succeed("Users listed", count=len(users))
    return {"success": True, "count": len(users), "data": [user.model_dump(mode="json") for user in users]}


@router.get("/{user_id}")
async def get_user(user_id: str, manager: StoreManager = Depends(require_store), delay: int = Depends(request_delay)):
    pipeline = RequestPipeline(logger, "/api/users/{id}", "GET", id=user_id)
    pipeline.attempt("Fetching user", delay=delay)
    await pipeline.pause(delay)

    engine = _live_engine(manager)
    async with pipeline.store_call("Failed to fetch user", "Server error while fetching the user"):
        user = await store.get_user(engine, user_id)
    if user is None:
        raise pipeline.not_found("User not found")

    pipeline.succeed("User fetched")
    return {"success": True, "data": user.model_dump(mode="json")}


@router.post("")
async def create_user(
    request: Request,
    manager: StoreManager = Depends(require_store),
    delay: int = Depends(request_delay),
):
    pipeline = RequestPipeline(logger, "/api/users", "POST")
    payload = await _read_payload(request)
    pipeline.attempt("Creating user", data=payload_summary(payload), delay=delay)
    await pipeline.pause(delay)

    fields = _check_payload(pipeline, payload, "Validation failed while creating user")

    engine = _live_engine(manager)
    async with pipeline.store_call("Failed to create user", "Server error while creating the user"):
        user = await store.create_user(engine, fields)

    pipeline.succeed("User created", id=user.id)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "message": "User created successfully", "data": user.model_dump(mode="json")},
    )


@router.put("/{user_id}")
async def replace_user(
    user_id: str,
    request: Request,
    manager: StoreManager = Depends(require_store),
    delay: int = Depends(request_delay),
):
    pipeline = RequestPipeline(logger, "/api/users/{id}", "PUT", id=user_id)
    payload = await _read_payload(request)
    pipeline.attempt("Updating user", data=payload_summary(payload), delay=delay)
    await pipeline.pause(delay)

    fields = _check_payload(pipeline, payload, "Validation failed while updating user")

    engine = _live_engine(manager)
    async with pipeline.store_call("Failed to update user", "Server error while updating the user"):
        current = await store.get_user(engine, user_id)
        if current is None:
            raise pipeline.not_found("User not found while updating")
        user = await store.replace_user(engine, current, fields)
    if user is None:
        raise pipeline.not_found("User deleted while updating")

    pipeline.succeed("User updated")
    return {"success": True, "message": "User updated successfully", "data": user.model_dump(mode="json")}


@router.delete("/{user_id}")
async def delete_user(user_id: str, manager: StoreManager = Depends(require_store), delay: int = Depends(request_delay)):
    pipeline = RequestPipeline(logger, "/api/users/{id}", "DELETE", id=user_id)
    pipeline.attempt("Deleting user", delay=delay)
    await pipeline.pause(delay)

    engine = _live_engine(manager)
    async with pipeline.store_call("Failed to delete user", "Server error while deleting the user"):
        deleted = await store.delete_user(engine, user_id)
    if not deleted:
        raise pipeline.not_found("User not found while deleting")

    pipeline.succeed("User deleted")
    return {"success": True, "message": "User deleted successfully"}
