"""Unit tests for orchestr8r context models.

This module tests the working context, session identifiers, partial update
validation and the durable-record serializer.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from orchestr8r.errors import ContextValidationError
from orchestr8r.models import (
    SESSION_ID_PATTERN,
    VALID_TASK_STATES,
    ContextSerializer,
    TaskState,
    WorkingContext,
    create_default_context,
    format_timestamp,
    generate_session_id,
    is_working_context,
    next_timestamp,
    parse_timestamp,
    validate_update,
)


def _record(**overrides):
    data = {
        "currentProjectId": "PVT_kwDOAbc",
        "currentIssueId": None,
        "currentTaskState": "implementation",
        "sessionId": "session_1700000000000_abc123xyz",
        "lastUpdated": "2024-01-15T10:30:00.000Z",
    }
    data.update(overrides)
    return data


class TestTaskState:
    """Test cases for TaskState."""

    def test_valid_states_in_declared_order(self):
        """Test the enumeration exposes the six workflow phases."""
        assert VALID_TASK_STATES == ("research", "implementation", "testing", "review", "done", "blocked")

    def test_parse_accepts_strings_and_members(self):
        """Test parsing strings and existing members."""
        assert TaskState.parse("testing") is TaskState.TESTING
        assert TaskState.parse(TaskState.DONE) is TaskState.DONE

    def test_parse_rejects_unknown_state(self):
        """Test that unknown states raise a validation error."""
        with pytest.raises(ContextValidationError) as exc_info:
            TaskState.parse("shipping")

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert "shipping" in exc_info.value.message


class TestSessionId:
    """Test cases for session identifier generation."""

    def test_session_id_format(self):
        """Test that generated ids match the session pattern."""
        session_id = generate_session_id()

        assert SESSION_ID_PATTERN.match(session_id)
        prefix, millis, suffix = session_id.split("_")
        assert prefix == "session"
        assert millis.isdigit()
        assert len(suffix) == 9

    def test_session_ids_are_unique(self):
        """Test that consecutive ids differ."""
        ids = {generate_session_id() for _ in range(50)}
        assert len(ids) == 50


class TestTimestamps:
    """Test cases for timestamp helpers."""

    def test_format_uses_z_suffix_and_milliseconds(self):
        """Test ISO rendering of UTC instants."""
        value = datetime(2024, 1, 15, 10, 30, 0, 123000, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-01-15T10:30:00.123Z"

    def test_parse_round_trips_format(self):
        """Test that parsing the rendered text gives the same instant."""
        value = datetime(2024, 1, 15, 10, 30, 0, 123000, tzinfo=timezone.utc)
        assert parse_timestamp(format_timestamp(value)) == value

    def test_parse_rejects_garbage(self):
        """Test that unparseable timestamps raise a validation error."""
        with pytest.raises(ContextValidationError):
            parse_timestamp("yesterday")

    def test_next_timestamp_is_strictly_later(self):
        """Test that a previous value in the future is still exceeded."""
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        assert next_timestamp(future) > future
        assert next_timestamp(future) - future == timedelta(milliseconds=1)


class TestWorkingContext:
    """Test cases for WorkingContext."""

    def test_default_context(self):
        """Test the shape of a fresh default context."""
        context = create_default_context()

        assert context.current_project_id is None
        assert context.current_issue_id is None
        assert context.current_task_state is TaskState.RESEARCH
        assert SESSION_ID_PATTERN.match(context.session_id)
        assert context.last_updated.tzinfo is not None
        assert context.validate() == []

    def test_to_dict_omits_unset_optional_fields(self):
        """Test the durable record layout."""
        context = create_default_context()
        data = context.to_dict()

        assert set(data) == {"currentProjectId", "currentIssueId", "currentTaskState", "sessionId", "lastUpdated"}
        assert data["currentTaskState"] == "research"
        assert data["lastUpdated"].endswith("Z")

    def test_to_dict_includes_set_optional_fields(self):
        """Test that workflow fields appear once set."""
        context = create_default_context()
        context.active_branch = "feature/login"
        context.last_commit_sha = "abc1234"

        data = context.to_dict()

        assert data["activeBranch"] == "feature/login"
        assert data["lastCommitSha"] == "abc1234"
        assert "currentSprintId" not in data

    def test_from_dict(self):
        """Test creating a context from a record."""
        context = WorkingContext.from_dict(_record(activeBranch="main"))

        assert context.current_project_id == "PVT_kwDOAbc"
        assert context.current_task_state is TaskState.IMPLEMENTATION
        assert context.active_branch == "main"
        assert context.last_updated == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_from_dict_missing_keys(self):
        """Test that records without required keys are rejected."""
        data = _record()
        del data["sessionId"]

        with pytest.raises(ContextValidationError, match="sessionId"):
            WorkingContext.from_dict(data)

    def test_from_dict_invalid_session(self):
        """Test that malformed session ids are rejected."""
        with pytest.raises(ContextValidationError, match="session ID"):
            WorkingContext.from_dict(_record(sessionId="not-a-session"))

    def test_from_dict_empty_project_id(self):
        """Test that an empty identifier is rejected."""
        with pytest.raises(ContextValidationError, match="currentProjectId"):
            WorkingContext.from_dict(_record(currentProjectId=""))

    def test_from_dict_non_mapping(self):
        """Test that non-object records are rejected."""
        with pytest.raises(ContextValidationError):
            WorkingContext.from_dict(["not", "a", "record"])

    def test_copy_is_independent(self):
        """Test that mutating a copy leaves the original untouched."""
        original = create_default_context()
        duplicate = original.copy()
        duplicate.current_project_id = "PVT_other"

        assert original.current_project_id is None
        assert duplicate == WorkingContext.from_dict({**original.to_dict(), "currentProjectId": "PVT_other"})

    def test_is_working_context(self):
        """Test the structural predicate."""
        assert is_working_context(create_default_context())
        assert not is_working_context(_record())

        broken = create_default_context()
        broken.session_id = "bogus"
        assert not is_working_context(broken)

    def test_summary(self):
        """Test the short summary used in error messages."""
        context = WorkingContext.from_dict(_record())
        assert context.summary() == {
            "projectId": "PVT_kwDOAbc",
            "issueId": None,
            "taskState": "implementation",
            "sessionId": "session_1700000000000_abc123xyz",
        }


class TestValidateUpdate:
    """Test cases for partial update validation."""

    def test_accepts_field_names_and_record_keys(self):
        """Test both naming styles normalize to field names."""
        result = validate_update({"currentProjectId": "PVT_1", "current_task_state": "review"})
        assert result == {"current_project_id": "PVT_1", "current_task_state": TaskState.REVIEW}

    def test_allows_clearing_identifiers(self):
        """Test that identifiers may be set back to None."""
        assert validate_update({"current_issue_id": None}) == {"current_issue_id": None}

    @pytest.mark.parametrize("key", ["sessionId", "session_id", "lastUpdated", "last_updated"])
    def test_rejects_managed_fields(self, key):
        """Test that the store-managed fields cannot be set."""
        with pytest.raises(ContextValidationError, match="cannot be set directly"):
            validate_update({key: "anything"})

    def test_rejects_unknown_fields(self):
        """Test that unknown keys are rejected."""
        with pytest.raises(ContextValidationError, match="Unknown context field"):
            validate_update({"currentMilestone": "M1"})

    def test_rejects_blank_identifier(self):
        """Test that whitespace-only identifiers are rejected."""
        with pytest.raises(ContextValidationError):
            validate_update({"current_project_id": "   "})

    def test_rejects_invalid_state(self):
        """Test that invalid states are rejected."""
        with pytest.raises(ContextValidationError):
            validate_update({"current_task_state": "shipping"})

    def test_rejects_non_mapping(self):
        """Test that non-mapping updates are rejected."""
        with pytest.raises(ContextValidationError):
            validate_update([("current_project_id", "PVT_1")])


class TestContextSerializer:
    """Test cases for ContextSerializer."""

    def test_serialize_is_indented_json(self):
        """Test the on-disk text format."""
        context = WorkingContext.from_dict(_record())
        text = ContextSerializer.serialize(context)

        assert text.startswith("{\n  ")
        assert json.loads(text) == _record()

    def test_deserialize(self):
        """Test parsing a record."""
        context = ContextSerializer.deserialize(json.dumps(_record()))
        assert context.current_project_id == "PVT_kwDOAbc"

    def test_deserialize_invalid_json(self):
        """Test that malformed text raises a validation error."""
        with pytest.raises(ContextValidationError, match="not valid JSON"):
            ContextSerializer.deserialize("{not json")
