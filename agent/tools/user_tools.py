from __future__ import annotations

import logging
from typing import List

from langchain_core.tools import StructuredTool

from agent.core.types import (
    CreateUser,
    CreateUserInput,
    DeleteUser,
    DeleteUserInput,
    Failure,
    Success,
    ToolInvocation,
    ToolOutcome,
    UpdateUser,
    UpdateUserInput,
)
from agent.resolver import Resolved, resolve_user
from agent.store import StoreValidationError, UserStore


logger = logging.getLogger(__name__)


async def create_user(store: UserStore, args: CreateUserInput) -> ToolOutcome:
    fields = args.model_dump(exclude_none=True)
    if not (fields.get("name") or "").strip() or not (fields.get("email") or "").strip():
        return Failure("Name and email are required to create a user.")
    try:
        record = await store.insert(fields)
    except StoreValidationError as exc:
        return Failure(f"Could not create user: {exc}")
    return Success(record.name, f"Created user {record.name} with email {record.email}.")


async def update_user(store: UserStore, args: UpdateUserInput) -> ToolOutcome:
    changes = args.updates.model_dump(exclude_unset=True)
    if not changes:
        return Failure("No fields to update were given.")
    for key in ("name", "email"):
        if key in changes and not (changes[key] or "").strip():
            return Failure(f"{key.capitalize()} cannot be empty.")

    resolution = await resolve_user(store, args.name_query, args.email)
    if not isinstance(resolution, Resolved):
        return resolution
    try:
        record = await store.update_by_id(resolution.record.id, changes)
    except StoreValidationError as exc:
        return Failure(f"Could not update {resolution.record.name}: {exc}")
    return Success(record.name, f"Updated {record.name}.")


async def delete_user(store: UserStore, args: DeleteUserInput) -> ToolOutcome:
    resolution = await resolve_user(store, args.name_query, args.email)
    if not isinstance(resolution, Resolved):
        return resolution
    await store.delete_by_id(resolution.record.id)
    return Success(resolution.record.name, f"Deleted user {resolution.record.name}.")


async def execute_invocation(store: UserStore, invocation: ToolInvocation) -> ToolOutcome:
    if isinstance(invocation, CreateUser):
        outcome = await create_user(store, invocation.arguments)
    elif isinstance(invocation, UpdateUser):
        outcome = await update_user(store, invocation.arguments)
    elif isinstance(invocation, DeleteUser):
        outcome = await delete_user(store, invocation.arguments)
    else:
        raise TypeError(f"Unsupported tool invocation: {invocation!r}")
    logger.info("Tool %s -> %s", invocation.name, type(outcome).__name__)
    return outcome


def build_user_tools(store: UserStore) -> List[StructuredTool]:
    """Tool manifest bound to the model; each tool runs against ``store``."""

    async def _create(**kwargs) -> str:
        return (await create_user(store, CreateUserInput(**kwargs))).render()

    async def _update(**kwargs) -> str:
        return (await update_user(store, UpdateUserInput(**kwargs))).render()

    async def _delete(**kwargs) -> str:
        return (await delete_user(store, DeleteUserInput(**kwargs))).render()

    return [
        StructuredTool.from_function(
            coroutine=_create,
            name="create_user",
            description="Create a new user. name and email are required.",
            args_schema=CreateUserInput,
        ),
        StructuredTool.from_function(
            coroutine=_update,
            name="update_user",
            description=(
                "Update a user's information. Identify the user by name_query; "
                "add email when several users share the name."
            ),
            args_schema=UpdateUserInput,
        ),
        StructuredTool.from_function(
            coroutine=_delete,
            name="delete_user",
            description=(
                "Delete a user. Identify the user by name_query or by email; "
                "email is exact and wins over the name."
            ),
            args_schema=DeleteUserInput,
        ),
    ]
