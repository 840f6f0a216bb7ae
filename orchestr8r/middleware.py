"""Wrappers that make tool handlers context-aware.

Handlers are async callables taking a flat parameter dict. The wrappers
fetch the working context from an explicit ContextStore and either hand it
to the handler or use it to fill in missing ``projectId``/``itemId``/
``issueId`` parameters.
"""

from __future__ import annotations

import json
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Dict, Optional

from .models import VALID_TASK_STATES, WorkingContext
from .store import ContextStore

logger = logging.getLogger("orchestr8r.middleware")

Params = Dict[str, Any]
ContextHandler = Callable[[Params, WorkingContext], Awaitable[Any]]
OptionalContextHandler = Callable[[Params, Optional[WorkingContext]], Awaitable[Any]]


def with_context(store: ContextStore, handler: ContextHandler) -> Callable[[Params], Awaitable[Any]]:
    """Require a context; failures to obtain one become a RuntimeError."""

    @wraps(handler)
    async def wrapper(params: Params) -> Any:
        try:
            context = await store.get_current_context()
        except Exception as e:
            logger.error(f"Context middleware error: {e}")
            raise RuntimeError(f"Context required but unavailable: {e}") from e
        return await handler(params, context)

    return wrapper


def with_optional_context(store: ContextStore, handler: OptionalContextHandler) -> Callable[[Params], Awaitable[Any]]:
    """Pass the context when available, otherwise fall back to manual mode (None)."""

    @wraps(handler)
    async def wrapper(params: Params) -> Any:
        try:
            context = await store.get_current_context()
        except Exception as e:
            logger.warning(f"Context unavailable, falling back to manual mode: {e}")
            context = None
        return await handler(params, context)

    return wrapper


def with_validated_context(store: ContextStore, handler: ContextHandler) -> Callable[[Params], Awaitable[Any]]:
    """Like with_context, but runs an advisory integrity check first."""

    @wraps(handler)
    async def wrapper(params: Params) -> Any:
        context = await store.get_current_context()
        if not await store.validate_context_integrity():
            logger.warning("Context validation failed, but proceeding with current context")
        return await handler(params, context)

    return wrapper


def resolve_contextual_params(params: Params, context: WorkingContext) -> Params:
    """Fill ``projectId`` and ``itemId`` from the context when not supplied."""
    resolved = dict(params)
    if not resolved.get("projectId") and context.current_project_id:
        resolved["projectId"] = context.current_project_id
    if not resolved.get("itemId") and context.current_issue_id:
        resolved["itemId"] = context.current_issue_id
    return resolved


def create_context_error(message: str, context: Optional[WorkingContext] = None) -> ValueError:
    info = context.summary() if context is not None else {"context": "unavailable"}
    return ValueError(f"{message}\nContext: {json.dumps(info, indent=2)}")


def with_project_context(store: ContextStore, handler: Callable[[Params], Awaitable[Any]]) -> Callable[[Params], Awaitable[Any]]:
    """Resolve ``projectId`` (and ``itemId``) from the context before calling ``handler``."""

    async def resolve(params: Params, context: Optional[WorkingContext]) -> Any:
        if context is None:
            if not params.get("projectId"):
                raise ValueError("projectId parameter required when context is unavailable")
            return await handler(params)

        resolved = resolve_contextual_params(params, context)
        if not resolved.get("projectId"):
            raise create_context_error(
                "No project context available. Set current project or provide projectId parameter.",
                context,
            )
        return await handler(resolved)

    return with_optional_context(store, resolve)


def with_issue_context(store: ContextStore, handler: Callable[[Params], Awaitable[Any]]) -> Callable[[Params], Awaitable[Any]]:
    """Resolve ``issueId`` from the context before calling ``handler``."""

    async def resolve(params: Params, context: Optional[WorkingContext]) -> Any:
        if context is None:
            if not params.get("issueId"):
                raise ValueError("issueId parameter required when context is unavailable")
            return await handler(params)

        issue_id = params.get("issueId") or context.current_issue_id
        if not issue_id:
            raise create_context_error(
                "No issue context available. Set current issue or provide issueId parameter.",
                context,
            )
        return await handler({**params, "issueId": issue_id})

    return with_optional_context(store, resolve)


def with_task_state_transition(
    store: ContextStore,
    handler: ContextHandler,
    get_new_state: Optional[Callable[[Params, Any], Optional[str]]] = None,
) -> Callable[[Params], Awaitable[Any]]:
    """Run ``handler`` and then move the task state chosen by ``get_new_state``.

    Unknown states returned by ``get_new_state`` are ignored.
    """

    async def run(params: Params, context: WorkingContext) -> Any:
        result = await handler(params, context)
        if get_new_state is not None:
            new_state = get_new_state(params, result)
            if new_state in VALID_TASK_STATES:
                await store.transition_task_state(new_state)
        return result

    return with_context(store, run)
