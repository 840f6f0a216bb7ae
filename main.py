"""MCP server exposing the orchestr8r working context to agents."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from orchestr8r.config import ContextConfig
from orchestr8r.errors import ContextError
from orchestr8r.models import VALID_TASK_STATES, TaskState, WorkingContext
from orchestr8r.orchestr8r_logging import setup_logging
from orchestr8r.scoring import TaskAttributes, calculate_frvpov, format_frvpov_score
from orchestr8r.store import ContextStore, create_store

load_dotenv()

mcp = FastMCP("orchestr8r")
logger = logging.getLogger("orchestr8r.server")

_stores: Dict[Path, ContextStore] = {}

# Task state -> suggested next state, for workflow tips only.
_NEXT_STATE = {
    TaskState.RESEARCH: TaskState.IMPLEMENTATION,
    TaskState.IMPLEMENTATION: TaskState.TESTING,
    TaskState.TESTING: TaskState.REVIEW,
    TaskState.REVIEW: TaskState.DONE,
}


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv("ORCHESTR8R_PROJECT_ROOT")
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable ORCHESTR8R_PROJECT_ROOT points to '{env_root}', which does not exist."
            )
        return env_path

    return Path.cwd().resolve()


def _store(root: Optional[str] = None) -> ContextStore:
    resolved = _resolve_root(root)
    store = _stores.get(resolved)
    if store is None:
        config = ContextConfig.from_env(base_dir=resolved)
        if not _stores:
            setup_logging(config.log_level, config.log_file)
        for warning in config.validate_deployment()["warnings"]:
            logger.warning(f"{resolved}: {warning}")
        store = create_store(config)
        _stores[resolved] = store
    return store


def _serialize_context(context: WorkingContext) -> Dict[str, Any]:
    return context.to_dict()


def _error(e: ContextError) -> Dict[str, Any]:
    return {"error": e.message, "code": e.code}


def _state_tip(state: TaskState) -> Dict[str, Any]:
    suggested = _NEXT_STATE.get(state)
    if suggested is None:
        return {}
    return {
        "next_suggested_state": suggested.value,
        "workflow_tip": f"When {state.value} is finished, call transition_task_state with '{suggested.value}'",
    }


@mcp.tool()
async def get_current_context(root: Optional[str] = None) -> Dict[str, Any]:
    """Return the current working context: project, issue, task state and session."""

    context = await _store(root).get_current_context()
    return {"context": _serialize_context(context), **_state_tip(context.current_task_state)}


@mcp.tool()
async def update_context(
    project_id: Optional[str] = None,
    issue_id: Optional[str] = None,
    task_state: Optional[str] = None,
    commit_sha: Optional[str] = None,
    branch: Optional[str] = None,
    sprint_id: Optional[str] = None,
    iteration: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Merge the given fields into the working context without GitHub validation.
    Fields left out keep their current values. Prefer set_current_project/set_current_issue
    when switching work so the identifiers are checked first."""

    updates = {
        "current_project_id": project_id,
        "current_issue_id": issue_id,
        "current_task_state": task_state,
        "last_commit_sha": commit_sha,
        "active_branch": branch,
        "current_sprint_id": sprint_id,
        "current_iteration": iteration,
    }
    updates = {key: value for key, value in updates.items() if value is not None}
    if not updates:
        raise ValueError("Provide at least one field to update.")

    try:
        context = await _store(root).update_context(updates)
    except ContextError as e:
        return _error(e)
    return {
        "context": _serialize_context(context),
        "updated_fields": sorted(updates),
        "message": f"Context updated: {', '.join(sorted(updates))}",
    }


@mcp.tool()
async def set_current_project(project_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 1: Switch to a GitHub ProjectV2 by node id. The id is checked against GitHub
    before it becomes current; an unknown project leaves the context unchanged."""

    try:
        context = await _store(root).set_current_project(project_id)
    except ContextError as e:
        return _error(e)
    return {
        "context": _serialize_context(context),
        "next_suggested_step": "set_current_issue",
        "workflow_tip": "Next: pick the issue you are working on with set_current_issue",
        "message": f"Current project set to {project_id}",
    }


@mcp.tool()
async def set_current_issue(issue_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 2: Switch to a GitHub Issue by node id, validated like set_current_project."""

    try:
        context = await _store(root).set_current_issue(issue_id)
    except ContextError as e:
        return _error(e)
    return {
        "context": _serialize_context(context),
        "next_suggested_step": "transition_task_state",
        "workflow_tip": "Next: move the task to 'implementation' once research is done",
        "message": f"Current issue set to {issue_id}",
    }


@mcp.tool()
async def transition_task_state(new_state: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 3: Move the current task to research, implementation, testing, review, done or blocked.
    Any state may follow any other."""

    try:
        context = await _store(root).transition_task_state(new_state)
    except ContextError as e:
        return {**_error(e), "valid_states": list(VALID_TASK_STATES)}
    return {
        "context": _serialize_context(context),
        **_state_tip(context.current_task_state),
        "message": f"Task state is now {context.current_task_state.value}",
    }


@mcp.tool()
async def link_commit_to_context(commit_sha: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Record the latest commit made for the current issue."""

    try:
        context = await _store(root).link_commit_to_context(commit_sha)
    except ContextError as e:
        return _error(e)
    return {"context": _serialize_context(context), "message": f"Linked commit {commit_sha}"}


@mcp.tool()
async def set_active_branch(branch: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Record the active git branch; without a name the checked-out branch of the root is used."""

    store = _store(root)
    try:
        if branch:
            context = await store.set_active_branch(branch)
        else:
            context = await store.sync_with_git_branch(_resolve_root(root))
    except ContextError as e:
        return _error(e)
    if context is None:
        return {"error": "No branch given and the project root is not a git repository."}
    return {"context": _serialize_context(context), "message": f"Active branch set to {context.active_branch}"}


@mcp.tool()
async def clear_context(root: Optional[str] = None) -> Dict[str, Any]:
    """Reset the working context and start a new session."""

    try:
        context = await _store(root).clear_context()
    except ContextError as e:
        return _error(e)
    return {
        "context": _serialize_context(context),
        "next_suggested_step": "set_current_project",
        "message": f"Context cleared. New session {context.session_id}",
    }


@mcp.tool()
async def validate_context_integrity(root: Optional[str] = None) -> Dict[str, Any]:
    """Check that the stored context conforms and its project and issue still resolve on GitHub."""

    store = _store(root)
    report = await store.check_integrity()
    if report["is_valid"]:
        report["message"] = "Context is valid"
    else:
        report["message"] = "Context failed validation"
        report["workflow_tip"] = "Re-select the project or issue, or call clear_context to start over"
    return report


@mcp.tool()
async def score_task(
    title: str,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    size: Optional[str] = None,
    labels: Optional[List[str]] = None,
    dependencies: Optional[List[str]] = None,
    assignee: Optional[str] = None,
) -> Dict[str, Any]:
    """Score a task on feasibility, risk, value and predictability to judge automation readiness."""

    task = TaskAttributes(
        title=title,
        description=description,
        priority=priority,
        size=size,
        labels=list(labels or []),
        dependencies=list(dependencies or []),
        assignee=assignee,
    )
    score = calculate_frvpov(task)
    return {"score": score.to_dict(), "summary": format_frvpov_score(score)}


@mcp.resource("orchestr8r://context")
async def resource_context() -> str:
    """Resource view of the working context for the server's project root."""

    context = await _store().get_current_context()
    lines = [
        "orchestr8r Working Context",
        "",
        f"Project: {context.current_project_id or '(none)'}",
        f"Issue: {context.current_issue_id or '(none)'}",
        f"Task state: {context.current_task_state.value}",
        f"Session: {context.session_id}",
    ]
    if context.active_branch:
        lines.append(f"Branch: {context.active_branch}")
    if context.last_commit_sha:
        lines.append(f"Last commit: {context.last_commit_sha}")
    if context.current_sprint_id:
        lines.append(f"Sprint: {context.current_sprint_id}")
    return "\n".join(lines)


@mcp.prompt()
async def context_summary() -> str:
    """Prompt that briefs the agent on what is currently being worked on."""

    context = await _store().get_current_context()
    if not context.current_project_id:
        return (
            "No project is selected. Ask which GitHub project to work on, "
            "then call set_current_project."
        )
    issue = context.current_issue_id or "no specific issue"
    return (
        f"You are working on project {context.current_project_id}, {issue}, "
        f"currently in the {context.current_task_state.value} phase. "
        "Use the context tools to record progress as the task moves forward."
    )


if __name__ == "__main__":
    mcp.run(transport="stdio")
