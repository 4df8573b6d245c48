"""
TaskPanel CLI — Inspect a task's detail view from the terminal.

Commands:
- taskpanel comments <task_id>        — Threaded comments (one reply level)
- taskpanel subtasks <task_id>        — Subtasks with completion badge
- taskpanel activity <task_id>        — Activity feed page (--type, --limit, --offset)
- taskpanel check-config              — Validate taskpanel.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

logger = logging.getLogger("taskpanel.cli")


def main(argv: Optional[list] = None, http_client=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="taskpanel",
        description="TaskPanel — task detail aggregation client",
    )
    parser.add_argument("--config", help="Path to taskpanel.yaml (default: search upwards from CWD)")
    parser.add_argument(
        "--token", default=os.environ.get("TASKPANEL_TOKEN"),
        help="Bearer token (default: $TASKPANEL_TOKEN)",
    )
    parser.add_argument("--user", default=os.environ.get("TASKPANEL_USER", "cli"), help="Acting user id")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # taskpanel comments
    comments_parser = subparsers.add_parser("comments", help="Show a task's comment threads")
    comments_parser.add_argument("task_id", help="Task id")

    # taskpanel subtasks
    subtasks_parser = subparsers.add_parser("subtasks", help="Show a task's subtasks and progress")
    subtasks_parser.add_argument("task_id", help="Task id")

    # taskpanel activity
    activity_parser = subparsers.add_parser("activity", help="Show a page of a task's activity")
    activity_parser.add_argument("task_id", help="Task id")
    activity_parser.add_argument("--type", help="Only this activity kind (e.g. comment_added)")
    activity_parser.add_argument("--limit", type=int, help="Page size (default: activity.page_size)")
    activity_parser.add_argument("--offset", type=int, default=0, help="Rows to skip (default: 0)")

    # taskpanel check-config
    subparsers.add_parser("check-config", help="Validate taskpanel.yaml")

    args = parser.parse_args(argv)

    if args.command == "check-config":
        return cmd_check_config(args)
    elif args.command in ("comments", "subtasks", "activity"):
        return asyncio.run(_run(args, http_client))
    else:
        parser.print_help()
        return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    """Validate taskpanel.yaml."""
    from taskpanel.engine.config import load_client_config
    from taskpanel.engine.errors import TaskPanelConfigError

    try:
        config = load_client_config(args.config)
    except TaskPanelConfigError as e:
        print(f"[ERROR] {e.message}")
        for problem in e.context.get("validation_errors", []):
            print(f"  - {problem}")
        return 1
    print(f"[OK] {config.name} ({config.environment}) → {config.backend.base_url}")
    return 0


async def _run(args: argparse.Namespace, http_client=None) -> int:
    from taskpanel.api.client import MutationClient
    from taskpanel.engine.config import load_client_config
    from taskpanel.engine.context import SessionContext, TaskPanelContext
    from taskpanel.engine.errors import TaskPanelError
    from taskpanel.engine.logging import configure_logging

    try:
        config = load_client_config(args.config)
    except TaskPanelError as e:
        print(f"[ERROR] {e.message}")
        return 1
    configure_logging(config.logging)

    session = SessionContext(user_id=args.user, access_token=args.token)
    ctx = TaskPanelContext.create(config, session, http_client=http_client)
    client = MutationClient(ctx.transport, config)
    try:
        if args.command == "comments":
            await cmd_comments(client, args)
        elif args.command == "subtasks":
            await cmd_subtasks(client, args)
        else:
            await cmd_activity(client, args)
    except TaskPanelError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        await ctx.aclose()
    return 0


# ---------------------------------------------------------------------------
# taskpanel comments / subtasks / activity
# ---------------------------------------------------------------------------

async def cmd_comments(client, args: argparse.Namespace) -> None:
    from taskpanel.rules.comment_tree import build_comment_tree, count_comments

    tree = build_comment_tree(await client.list_comments(args.task_id))
    print(f"Comments ({count_comments(tree)})")
    for thread in tree:
        print(f"- {thread.author}: {thread.content}")
        for reply in thread.replies:
            print(f"    ↳ {reply.author}: {reply.content}")


async def cmd_subtasks(client, args: argparse.Namespace) -> None:
    from taskpanel.rules.subtask_progress import subtask_progress

    subtasks = await client.list_subtasks(args.task_id)
    progress = subtask_progress(subtasks)
    print(f"Subtasks {progress.badge} ({progress.percentage}%)")
    for s in subtasks:
        print(f"  [{'x' if s.completed else ' '}] {s.title}")


async def cmd_activity(client, args: argparse.Namespace) -> None:
    from taskpanel.rules.activity_messages import format_activity, relative_time

    page = await client.fetch_activity(
        args.task_id, limit=args.limit, offset=args.offset, type=args.type,
    )
    if not page.items:
        print("No activity yet")
        return
    for a in page.items:
        print(f"{relative_time(a.created_at):>12}  {a.actor} {format_activity(a)}")
    if page.has_more:
        print(f"\nMore available: --offset {page.next_offset}")


if __name__ == "__main__":
    sys.exit(main())
