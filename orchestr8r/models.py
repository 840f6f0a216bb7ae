"""Data models for orchestr8r working-context tracking.

This module contains the working context that persists across MCP tool
calls and CLI invocations, the task-state enumeration, and the helpers that
validate, construct and serialize contexts.
"""

from __future__ import annotations

import json
import re
import secrets
import time
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .errors import ContextValidationError


class TaskState(str, Enum):
    """Workflow phase of the current task."""

    RESEARCH = "research"  # Investigating, planning, designing
    IMPLEMENTATION = "implementation"  # Active coding
    TESTING = "testing"  # Writing/running tests
    REVIEW = "review"  # Code review, PR process
    DONE = "done"
    BLOCKED = "blocked"  # Waiting on external dependencies

    @classmethod
    def parse(cls, value: Any) -> "TaskState":
        """Coerce a string or TaskState, raising ContextValidationError otherwise."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ContextValidationError(
                f"Invalid task state: {value!r}. Expected one of: {', '.join(VALID_TASK_STATES)}"
            ) from None


VALID_TASK_STATES = tuple(state.value for state in TaskState)

CONTEXT_CONSTANTS = {
    "DEFAULT_STORAGE_DIR": ".orchestr8r",
    "DEFAULT_CONTEXT_FILE": "context.json",
    "DEFAULT_LOCK_FILE": "context.lock",
    "DEFAULT_LOCK_TIMEOUT": 5.0,
    "DEFAULT_MAX_RETRIES": 3,
    "SESSION_ID_PREFIX": "session_",
}

SESSION_ID_PATTERN = re.compile(r"^session_\d+_[a-z0-9]+$")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

# Python field name -> durable record key
RECORD_KEYS = {
    "current_project_id": "currentProjectId",
    "current_issue_id": "currentIssueId",
    "current_task_state": "currentTaskState",
    "session_id": "sessionId",
    "last_updated": "lastUpdated",
    "last_commit_sha": "lastCommitSha",
    "active_branch": "activeBranch",
    "current_sprint_id": "currentSprintId",
    "current_iteration": "currentIteration",
}
_FIELD_NAMES = {record_key: name for name, record_key in RECORD_KEYS.items()}

IDENTIFIER_FIELDS = ("current_project_id", "current_issue_id")
OPTIONAL_TEXT_FIELDS = ("last_commit_sha", "active_branch", "current_sprint_id", "current_iteration")
UPDATABLE_FIELDS = IDENTIFIER_FIELDS + ("current_task_state",) + OPTIONAL_TEXT_FIELDS


def utc_now() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def next_timestamp(previous: Optional[datetime] = None) -> datetime:
    """Return now, bumped past ``previous`` so successive writes strictly increase."""
    stamp = utc_now()
    if previous is not None and stamp <= previous:
        stamp = previous + timedelta(milliseconds=1)
    return stamp


def format_timestamp(value: datetime) -> str:
    """Render an instant as ISO 8601 UTC text with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse ISO 8601 text produced by format_timestamp (or any offset-aware variant)."""
    if not isinstance(value, str):
        raise ContextValidationError(f"lastUpdated must be an ISO 8601 string, got {type(value).__name__}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ContextValidationError(f"lastUpdated is not a valid timestamp: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def generate_session_id() -> str:
    """Generate a unique session identifier: prefix, epoch millis, random suffix."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{CONTEXT_CONSTANTS['SESSION_ID_PREFIX']}{int(time.time() * 1000)}_{suffix}"


@dataclass(slots=True)
class WorkingContext:
    """What the developer is currently working on."""

    current_project_id: Optional[str] = None
    current_issue_id: Optional[str] = None
    current_task_state: TaskState = TaskState.RESEARCH
    session_id: str = ""
    last_updated: datetime = None  # type: ignore[assignment]
    last_commit_sha: Optional[str] = None
    active_branch: Optional[str] = None
    current_sprint_id: Optional[str] = None
    current_iteration: Optional[str] = None

    def copy(self) -> "WorkingContext":
        """Return an independent copy; every field is an immutable scalar."""
        return WorkingContext(**{f.name: getattr(self, f.name) for f in fields(self)})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the durable record representation.

        Optional workflow fields are omitted when unset, matching the record
        layout written by earlier versions.
        """
        data: Dict[str, Any] = {
            "currentProjectId": self.current_project_id,
            "currentIssueId": self.current_issue_id,
            "currentTaskState": TaskState(self.current_task_state).value,
            "sessionId": self.session_id,
            "lastUpdated": format_timestamp(self.last_updated),
        }
        for name in OPTIONAL_TEXT_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[RECORD_KEYS[name]] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkingContext":
        """Create from the durable record representation, validating it."""
        if not isinstance(data, Mapping):
            raise ContextValidationError(f"Context record must be an object, got {type(data).__name__}")
        missing = [key for key in ("currentTaskState", "sessionId", "lastUpdated") if key not in data]
        if missing:
            raise ContextValidationError(f"Context record is missing required keys: {', '.join(missing)}")

        context = cls(
            current_project_id=data.get("currentProjectId"),
            current_issue_id=data.get("currentIssueId"),
            current_task_state=TaskState.parse(data["currentTaskState"]),
            session_id=data["sessionId"],
            last_updated=parse_timestamp(data["lastUpdated"]),
            last_commit_sha=data.get("lastCommitSha"),
            active_branch=data.get("activeBranch"),
            current_sprint_id=data.get("currentSprintId"),
            current_iteration=data.get("currentIteration"),
        )
        issues = context.validate()
        if issues:
            raise ContextValidationError("; ".join(issues), context=dict(data))
        return context

    def validate(self) -> List[str]:
        """Validate the context and return any issues."""
        issues = []

        for name in IDENTIFIER_FIELDS:
            value = getattr(self, name)
            if value is not None and (not isinstance(value, str) or not value.strip()):
                issues.append(f"{RECORD_KEYS[name]} must be a non-empty string or null")
        if not isinstance(self.current_task_state, TaskState):
            issues.append(f"Invalid task state: {self.current_task_state!r}")
        if not isinstance(self.session_id, str) or not SESSION_ID_PATTERN.match(self.session_id):
            issues.append(f"Invalid session ID: {self.session_id!r}")
        if not isinstance(self.last_updated, datetime) or self.last_updated.tzinfo is None:
            issues.append("lastUpdated must be a timezone-aware datetime")
        for name in OPTIONAL_TEXT_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                issues.append(f"{RECORD_KEYS[name]} must be a string")

        return issues

    def summary(self) -> Dict[str, Any]:
        """Short view used in error messages."""
        return {
            "projectId": self.current_project_id,
            "issueId": self.current_issue_id,
            "taskState": TaskState(self.current_task_state).value,
            "sessionId": self.session_id,
        }


def create_default_context() -> WorkingContext:
    """Fresh context: no project, no issue, researching, new session."""
    return WorkingContext(
        current_project_id=None,
        current_issue_id=None,
        current_task_state=TaskState.RESEARCH,
        session_id=generate_session_id(),
        last_updated=utc_now(),
    )


def is_working_context(obj: Any) -> bool:
    """True when ``obj`` is a WorkingContext that passes validation."""
    return isinstance(obj, WorkingContext) and not obj.validate()


def validate_update(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize a caller-supplied partial update.

    Keys may be Python field names or record keys. Returns a dict keyed by
    Python field names with task states coerced to TaskState.
    """
    if not isinstance(updates, Mapping):
        raise ContextValidationError(f"Context update must be a mapping, got {type(updates).__name__}")

    normalized: Dict[str, Any] = {}
    for key, value in updates.items():
        name = _FIELD_NAMES.get(key, key)
        if name in ("session_id", "last_updated"):
            raise ContextValidationError(f"{RECORD_KEYS[name]} cannot be set directly")
        if name not in UPDATABLE_FIELDS:
            raise ContextValidationError(f"Unknown context field: {key!r}")

        if name == "current_task_state":
            value = TaskState.parse(value)
        elif name in IDENTIFIER_FIELDS:
            if value is not None and (not isinstance(value, str) or not value.strip()):
                raise ContextValidationError(f"{RECORD_KEYS[name]} must be a non-empty string or null")
        elif value is not None and not isinstance(value, str):
            raise ContextValidationError(f"{RECORD_KEYS[name]} must be a string")
        normalized[name] = value
    return normalized


class ContextSerializer:
    """Durable-record encoding of a WorkingContext."""

    @staticmethod
    def serialize(context: WorkingContext) -> str:
        return json.dumps(context.to_dict(), indent=2)

    @staticmethod
    def deserialize(data: str) -> WorkingContext:
        try:
            parsed = json.loads(data)
        except (ValueError, RecursionError) as e:
            raise ContextValidationError(f"Context record is not valid JSON: {e}") from e
        return WorkingContext.from_dict(parsed)
