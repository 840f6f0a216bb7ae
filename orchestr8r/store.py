"""Context store: the facade callers use to read and change the working context.

Reads go through the persistence manager's cache-or-load path and never
fail. Mutations are serialized by a ContextLock, optionally also by a
cross-process ProcessFileLock, and surface persistence errors. Integrity
checks consult the injected GitHub lookup and report a boolean.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import ContextConfig
from .errors import ContextValidationError
from .github import GitHubClient, ProjectLookup
from .locking import ContextLock, ProcessFileLock
from .models import (
    TaskState,
    WorkingContext,
    create_default_context,
    format_timestamp,
    next_timestamp,
    utc_now,
    validate_update,
)
from .orchestr8r_logging import ContextEventHooks, context_hooks, log_error_with_context, log_operation
from .persistence import PersistenceManager

logger = logging.getLogger("orchestr8r.store")


class ContextStore:
    """Own the in-memory working context and every change made to it."""

    def __init__(
        self,
        config: Optional[ContextConfig] = None,
        *,
        validator: Optional[ProjectLookup] = None,
        persistence: Optional[PersistenceManager] = None,
        lock: Optional[ContextLock] = None,
        process_lock: Optional[ProcessFileLock] = None,
        validation_timeout: Optional[float] = None,
        hooks: Optional[ContextEventHooks] = None,
    ):
        self.config = config or ContextConfig.from_env()
        self.validator = validator
        self.persistence = persistence or PersistenceManager(
            self.config.persistence_path,
            enable_memory_cache=self.config.enable_memory_cache,
        )
        self._lock = lock or ContextLock()
        if process_lock is None and self.config.enable_process_lock:
            process_lock = ProcessFileLock(
                self.config.lock_path,
                timeout=self.config.lock_timeout,
                max_retries=self.config.max_retries,
                retry_delay=self.config.retry_delay,
            )
        self._process_lock = process_lock
        self.validation_timeout = (
            validation_timeout if validation_timeout is not None else self.config.github_validation_timeout
        )
        self.hooks = hooks or context_hooks
        self._context: Optional[WorkingContext] = None

    @property
    def validation_enabled(self) -> bool:
        return self.validator is not None and self.config.enable_github_validation

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_current_context(self) -> WorkingContext:
        """Return a copy of the current context, loading it on first use."""
        if self._context is None:
            self._context = await self.persistence.load()
        return self._context.copy()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update_context(self, updates: Mapping[str, Any]) -> WorkingContext:
        """Merge ``updates`` over the current context and persist the result.

        Fields absent from ``updates`` are preserved. ``last_updated`` is
        stamped strictly later than the previous value.
        """
        changes = validate_update(updates)

        def merge(current: WorkingContext) -> WorkingContext:
            return replace(current, **changes, last_updated=next_timestamp(current.last_updated))

        updated = await self._mutate("update_context", merge)
        self.hooks.log_context_event(
            "context_updated",
            session_id=updated.session_id,
            fields=sorted(changes),
        )
        return updated

    async def clear_context(self) -> WorkingContext:
        """Replace the context with a fresh default and a new session id."""

        def reset(current: WorkingContext) -> WorkingContext:
            fresh = create_default_context()
            while fresh.session_id == current.session_id:
                fresh = create_default_context()
            fresh.last_updated = next_timestamp(current.last_updated)
            return fresh

        cleared = await self._mutate("clear_context", reset)
        self.hooks.log_context_event("context_cleared", session_id=cleared.session_id)
        return cleared

    async def transition_task_state(self, new_state: TaskState | str) -> WorkingContext:
        """Move to ``new_state``; every state is reachable from every other."""
        return await self.update_context({"current_task_state": new_state})

    async def link_commit_to_context(self, commit_sha: str) -> WorkingContext:
        return await self.update_context({"last_commit_sha": commit_sha})

    async def set_active_branch(self, branch: str) -> WorkingContext:
        return await self.update_context({"active_branch": branch})

    async def set_sprint(self, sprint_id: str, iteration: Optional[str] = None) -> WorkingContext:
        updates: Dict[str, Any] = {"current_sprint_id": sprint_id}
        if iteration is not None:
            updates["current_iteration"] = iteration
        return await self.update_context(updates)

    async def sync_with_git_branch(self, cwd: Path | str | None = None) -> Optional[WorkingContext]:
        """Record the checked-out git branch; returns None outside a repository."""
        branch = await current_git_branch(cwd)
        if not branch:
            return None
        return await self.set_active_branch(branch)

    async def set_current_project(self, project_id: str) -> WorkingContext:
        """Validate ``project_id`` against GitHub, then make it current."""
        validate_update({"current_project_id": project_id})
        if self.validation_enabled:
            await self._resolve("project", project_id, self.validator.get_project)
        return await self.update_context({"current_project_id": project_id})

    async def set_current_issue(self, issue_id: str) -> WorkingContext:
        """Validate ``issue_id`` against GitHub, then make it current."""
        validate_update({"current_issue_id": issue_id})
        if self.validation_enabled:
            await self._resolve("issue", issue_id, self.validator.get_issue)
        return await self.update_context({"current_issue_id": issue_id})

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    async def validate_context_integrity(self) -> bool:
        """True when the context conforms and its identifiers resolve.

        Never raises; lookup failures and timeouts count as ``False``.
        """
        try:
            report = await self.check_integrity()
        except Exception as e:
            log_error_with_context(e, {"operation": "validate_context_integrity"})
            return False
        return report["is_valid"]

    async def check_integrity(self) -> Dict[str, Any]:
        """Detailed integrity report: ``is_valid``, ``errors`` and ``warnings``."""
        context = await self.get_current_context()
        errors: List[str] = list(context.validate())
        warnings: List[str] = []

        if not errors:
            targets = [
                ("project", context.current_project_id, "get_project"),
                ("issue", context.current_issue_id, "get_issue"),
            ]
            for kind, identifier, method in targets:
                if not identifier:
                    continue
                if not self.validation_enabled:
                    warnings.append(f"{kind.capitalize()} '{identifier}' not verified: GitHub validation disabled")
                    continue
                try:
                    await asyncio.wait_for(getattr(self.validator, method)(identifier), self.validation_timeout)
                except asyncio.TimeoutError:
                    errors.append(f"Timed out after {self.validation_timeout:.1f}s resolving {kind} '{identifier}'")
                except Exception as e:
                    errors.append(f"{kind.capitalize()} '{identifier}' does not resolve: {e}")

        if errors:
            logger.warning(f"Context integrity check failed: {errors}")
        return {
            "is_valid": not errors,
            "errors": errors,
            "warnings": warnings,
            "validated_at": format_timestamp(utc_now()),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _resolve(self, kind: str, identifier: str, lookup: Callable[[str], Any]) -> None:
        try:
            await asyncio.wait_for(lookup(identifier), self.validation_timeout)
        except asyncio.TimeoutError as e:
            raise ContextValidationError(
                f"Invalid {kind} ID: {identifier} (lookup timed out after {self.validation_timeout:.1f}s)"
            ) from e
        except Exception as e:
            raise ContextValidationError(f"Invalid {kind} ID: {identifier} ({e})") from e

    async def _mutate(self, operation_name: str, compute: Callable[[WorkingContext], WorkingContext]) -> WorkingContext:
        async def critical_section() -> WorkingContext:
            with log_operation(operation_name, path=str(self.persistence.path)):
                if self._process_lock is None:
                    return await self._apply(compute, refresh=False)
                async with self._process_lock:
                    # Another process may have written since our last read.
                    return await self._apply(compute, refresh=True)

        return await self._lock.with_lock(critical_section)

    async def _apply(self, compute: Callable[[WorkingContext], WorkingContext], *, refresh: bool) -> WorkingContext:
        if refresh and self._context is not None and not self.persistence.exists():
            # Nothing durable yet; keep the session already handed out.
            current = self._context
        elif refresh or self._context is None:
            current = await self.persistence.load(use_cache=not refresh)
        else:
            current = self._context
        updated = compute(current)
        self._context = updated
        await self.persistence.persist(updated)
        return updated.copy()


def create_store(config: Optional[ContextConfig] = None) -> ContextStore:
    """Build a store wired to GitHub when a token is configured."""
    config = config or ContextConfig.from_env()
    validator = None
    if config.enable_github_validation and config.github_token:
        validator = GitHubClient(
            config.github_token,
            api_url=config.github_api_url,
            timeout=config.github_validation_timeout,
        )
    return ContextStore(config, validator=validator)


async def current_git_branch(cwd: Path | str | None = None) -> Optional[str]:
    """Name of the checked-out branch in ``cwd``, or None when git cannot tell."""
    try:
        process = await asyncio.create_subprocess_exec(
            "git", "rev-parse", "--abbrev-ref", "HEAD",
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.debug(f"git unavailable: {e}")
        return None
    stdout, _ = await process.communicate()
    if process.returncode != 0:
        return None
    branch = stdout.decode().strip()
    return branch if branch and branch != "HEAD" else None
