#!/usr/bin/env python3
"""
Taskboard -- command-line client for the Taskboard API.

Usage:
  python main.py register alice alice@example.com --name "Alice Smith"
  python main.py login alice@example.com
  python main.py whoami
  python main.py profile --bio "Hello" --city Berlin --country Germany --image me.png
  python main.py tasks list
  python main.py tasks add "Write report" --priority high --deadline 2026-11-01
  python main.py tasks update 3 --status completed
  python main.py tasks rm 3
  python main.py tasks summary
  python main.py logout

Environment variables:
  TASKBOARD_API_URL      API base URL (default: http://localhost:8000/api)
  TASKBOARD_SESSION_DB   Path of the local session file (default: ~/.taskboard/session.db)
"""

import argparse
import getpass
import json
import os
from pathlib import Path
from typing import Optional

from client.api import DEFAULT_BASE_URL, ApiClient, ApiError
from client.session import SessionContext
from client.session_store import SessionStore

_PRIORITIES = ["low", "medium", "high"]
_STATUSES = ["pending", "in-progress", "completed"]


def _print_error(e: ApiError) -> None:
    print(f"  [!] {e.message}")
    for err in e.field_errors:
        print(f"      {err.get('field')}: {err.get('message')}")


def _print_user(user: Optional[dict]) -> None:
    if not user:
        print("  Not logged in.")
        return
    print(f"  {user.get('name') or user.get('username')} (@{user.get('username')})")
    if user.get("email"):
        print(f"  Email:    {user['email']}")
    location = user.get("location") or {}
    place = ", ".join(p for p in (location.get("city"), location.get("country")) if p)
    if place:
        print(f"  Location: {place}")
    if user.get("bio"):
        print(f"  Bio:      {user['bio']}")
    if user.get("profileImage"):
        print(f"  Avatar:   {user['profileImage']}")


def _print_task(task: dict) -> None:
    deadline = f"  due {task['deadline']}" if task.get("deadline") else ""
    print(f"  #{task['_id']:<5} [{task['status']:<11}] {task['priority']:<6} {task['title']}{deadline}")


def _read_password(args: argparse.Namespace) -> str:
    return args.password or getpass.getpass("  Password: ")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_register(session: SessionContext, args: argparse.Namespace) -> None:
    user = session.register(args.username, args.email, _read_password(args), args.name)
    print("  Account created.")
    _print_user(user)


def cmd_login(session: SessionContext, args: argparse.Namespace) -> None:
    user = session.login(args.email, _read_password(args))
    print("  Logged in.")
    _print_user(user)


def cmd_logout(session: SessionContext, args: argparse.Namespace) -> None:
    session.logout()
    print("  Logged out.")


def cmd_whoami(session: SessionContext, args: argparse.Namespace) -> None:
    if args.json:
        print(json.dumps(session.user, indent=2))
    else:
        _print_user(session.user)


def cmd_profile(session: SessionContext, args: argparse.Namespace) -> None:
    location = {k: v for k, v in (("city", args.city), ("country", args.country)) if v}
    image = Path(args.image) if args.image else None
    if image is not None and not image.resolve().is_file():
        print(f"  [!] '{args.image}' is not a readable file.")
        return
    user = session.update_profile(
        name=args.name,
        username=args.username,
        bio=args.bio,
        location=location or None,
        image_path=image,
    )
    print("  Profile updated.")
    _print_user(user)


def cmd_tasks(session: SessionContext, args: argparse.Namespace) -> None:
    api = session.api
    if args.tasks_command == "list":
        tasks = api.list_tasks()
        if args.json:
            print(json.dumps(tasks, indent=2))
        elif not tasks:
            print("  No tasks.")
        else:
            for task in tasks:
                _print_task(task)

    elif args.tasks_command == "add":
        body = {"title": args.title, "priority": args.priority, "status": args.status}
        if args.description:
            body["description"] = args.description
        if args.deadline:
            body["deadline"] = args.deadline
        _print_task(api.create_task(body))

    elif args.tasks_command == "update":
        fields = {
            k: v
            for k, v in (
                ("title", args.title),
                ("description", args.description),
                ("deadline", args.deadline),
                ("priority", args.priority),
                ("status", args.status),
            )
            if v is not None
        }
        if not fields:
            print("  [!] Nothing to update.")
            return
        _print_task(api.update_task(args.task_id, fields))

    elif args.tasks_command == "rm":
        print(f"  {api.delete_task(args.task_id)['message']}.")

    elif args.tasks_command == "summary":
        summary = api.task_summary()
        if args.json:
            print(json.dumps(summary, indent=2))
            return
        print(f"  {summary['total']} task(s)")
        for status in _STATUSES:
            print(f"    {status:<12} {summary['counts'].get(status, 0)}")


_COMMANDS = {
    "register": cmd_register,
    "login": cmd_login,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "profile": cmd_profile,
    "tasks": cmd_tasks,
}

# Commands that need a verified session before they run.
_AUTHENTICATED = {"whoami", "profile", "tasks"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskboard",
        description="Command-line client for the Taskboard API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py login alice@example.com
  python main.py tasks add "Write report" --priority high
  TASKBOARD_API_URL=https://tasks.example.com/api python main.py whoami
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("register", help="Create an account and log in")
    p.add_argument("username")
    p.add_argument("email")
    p.add_argument("--name", required=True, help="Display name (2-50 characters)")
    p.add_argument("--password", help="Password (prompted if omitted)")

    p = sub.add_parser("login", help="Log in with email and password")
    p.add_argument("email")
    p.add_argument("--password", help="Password (prompted if omitted)")

    sub.add_parser("logout", help="Forget the stored session")

    p = sub.add_parser("whoami", help="Show the logged-in user")
    p.add_argument("--json", action="store_true", help="Output the session snapshot as JSON")

    p = sub.add_parser("profile", help="Update your profile")
    p.add_argument("--name")
    p.add_argument("--username")
    p.add_argument("--bio")
    p.add_argument("--city")
    p.add_argument("--country")
    p.add_argument("--image", metavar="PATH", help="JPEG, PNG or GIF up to 5 MB")

    p = sub.add_parser("tasks", help="Manage your tasks")
    tasks = p.add_subparsers(dest="tasks_command", metavar="ACTION", required=True)

    t = tasks.add_parser("list", help="List your tasks, newest first")
    t.add_argument("--json", action="store_true", help="Output structured JSON")

    t = tasks.add_parser("add", help="Create a task")
    t.add_argument("title")
    t.add_argument("--description")
    t.add_argument("--deadline", metavar="ISO-DATE")
    t.add_argument("--priority", choices=_PRIORITIES, default="medium")
    t.add_argument("--status", choices=_STATUSES, default="pending")

    t = tasks.add_parser("update", help="Change fields of a task")
    t.add_argument("task_id", type=int)
    t.add_argument("--title")
    t.add_argument("--description")
    t.add_argument("--deadline", metavar="ISO-DATE")
    t.add_argument("--priority", choices=_PRIORITIES)
    t.add_argument("--status", choices=_STATUSES)

    t = tasks.add_parser("rm", help="Delete a task")
    t.add_argument("task_id", type=int)

    t = tasks.add_parser("summary", help="Count tasks per status")
    t.add_argument("--json", action="store_true", help="Output structured JSON")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    base_url = os.environ.get("TASKBOARD_API_URL") or DEFAULT_BASE_URL
    db_path = os.environ.get("TASKBOARD_SESSION_DB")
    store = SessionStore(Path(db_path).expanduser()) if db_path else SessionStore()
    session = SessionContext(ApiClient(base_url), store)

    try:
        restored = session.start()
        if args.command in _AUTHENTICATED and not restored:
            print("  [!] Not logged in. Run: python main.py login EMAIL")
            return 1
        _COMMANDS[args.command](session, args)
    except ApiError as e:
        _print_error(e)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
