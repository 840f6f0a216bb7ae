"""Command-line access to the working context.

Each invocation is a fresh process: it loads the durable record, applies at
most one change, persists it and exits.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from .config import LOG_LEVELS, ContextConfig
from .errors import ContextError
from .models import VALID_TASK_STATES
from .orchestr8r_logging import setup_logging
from .scoring import PRIORITIES, SIZES, TaskAttributes, calculate_frvpov, format_frvpov_score
from .store import ContextStore, create_store


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orchestr8r",
        description="Track the project, issue and task state you are working on.",
    )
    parser.add_argument("--root", help="Project root holding the .orchestr8r directory (default: cwd)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Override ORCHESTR8R_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("show", help="Print the current context")

    switch = sub.add_parser("switch", help="Switch to another project/issue")
    switch.add_argument("--project", help="GitHub ProjectV2 node id")
    switch.add_argument("--issue", help="GitHub Issue node id")
    switch.add_argument("--branch", help="Branch to record; defaults to the checked-out branch")
    switch.add_argument("--state", choices=VALID_TASK_STATES, help="Task state after switching")

    state = sub.add_parser("state", help="Transition the task state")
    state.add_argument("state", choices=VALID_TASK_STATES)

    commit = sub.add_parser("commit", help="Link a commit SHA to the context")
    commit.add_argument("sha")

    branch = sub.add_parser("branch", help="Record the active branch")
    branch.add_argument("name", nargs="?", help="Branch name; defaults to the checked-out branch")

    sub.add_parser("clear", help="Reset the context and start a new session")
    sub.add_parser("validate", help="Check that context identifiers still resolve")

    score = sub.add_parser("score", help="FRVPOV confidence score for a task")
    score.add_argument("--title", required=True)
    score.add_argument("--description")
    score.add_argument("--priority", choices=PRIORITIES)
    score.add_argument("--size", choices=SIZES)
    score.add_argument("--label", action="append", default=[], dest="labels")
    score.add_argument("--dependency", action="append", default=[], dest="dependencies")
    score.add_argument("--assignee")
    score.add_argument("--json", action="store_true", help="Print the score as JSON")

    return parser


async def _run(store: ContextStore, args: argparse.Namespace) -> Dict[str, Any]:
    command = args.command

    if command == "show":
        context = await store.get_current_context()
        return context.to_dict()

    if command == "switch":
        if args.project:
            await store.set_current_project(args.project)
        if args.issue:
            await store.set_current_issue(args.issue)
        if args.branch:
            await store.set_active_branch(args.branch)
        else:
            await store.sync_with_git_branch(args.root)
        if args.state:
            await store.transition_task_state(args.state)
        context = await store.get_current_context()
        return context.to_dict()

    if command == "state":
        return (await store.transition_task_state(args.state)).to_dict()

    if command == "commit":
        return (await store.link_commit_to_context(args.sha)).to_dict()

    if command == "branch":
        if args.name:
            return (await store.set_active_branch(args.name)).to_dict()
        context = await store.sync_with_git_branch(args.root)
        if context is None:
            raise ContextError("Not inside a git repository; pass a branch name", "GIT_ERROR")
        return context.to_dict()

    if command == "clear":
        return (await store.clear_context()).to_dict()

    if command == "validate":
        return await store.check_integrity()

    raise ValueError(f"Unknown command '{command}'")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "score":
        task = TaskAttributes(
            title=args.title,
            description=args.description,
            priority=args.priority,
            size=args.size,
            labels=args.labels,
            dependencies=args.dependencies,
            assignee=args.assignee,
        )
        score = calculate_frvpov(task)
        print(json.dumps(score.to_dict(), indent=2) if args.json else format_frvpov_score(score))
        return 0

    try:
        config = ContextConfig.from_env(base_dir=args.root)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2
    setup_logging(args.log_level or config.log_level, config.log_file)

    store = create_store(config)
    try:
        result = asyncio.run(_run(store, args))
    except ContextError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    if args.command == "validate" and not result["is_valid"]:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
