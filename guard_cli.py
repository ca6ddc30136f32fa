#!/usr/bin/env python3
"""
Session Guard CLI
=================

Operator tool for inspecting the gate outside of an agent session.

Example Usage:
    # See how a command would be classified
    python guard_cli.py check "ssh root@host 'docker compose down'"

    # List the effective catalog for a project
    python guard_cli.py catalog --project-dir ~/code/my-app

    # Run the HTTP evaluation service
    python guard_cli.py serve --port 8765
"""

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file (if it exists)
load_dotenv()

from guard_config import configure_logging, get_effective_settings
from security import SHELL_TOOL_KIND, InvocationRequest, get_engine


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Session Guard - pre-execution safety gate for agent shell commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--project-dir",
        type=str,
        default=None,
        help="Project whose .session-guard/config.yaml applies (default: CLAUDE_PROJECT_DIR or cwd)",
    )
    subparsers = parser.add_subparsers(dest="action", required=True)

    check = subparsers.add_parser("check", help="Classify a command without running it")
    check.add_argument("command", help="Command text to classify")
    check.add_argument(
        "--tool",
        default=SHELL_TOOL_KIND,
        help=f"Tool kind of the invocation (default: {SHELL_TOOL_KIND})",
    )
    check.add_argument("--json", action="store_true", help="Print the decision as JSON")

    catalog = subparsers.add_parser("catalog", help="List rule categories in precedence order")
    catalog.add_argument("--json", action="store_true", help="Print the catalog as JSON")

    serve = subparsers.add_parser("serve", help="Run the HTTP evaluation service")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8765, help="Port to bind to (default: 8765)")

    return parser.parse_args(argv)


def cmd_check(args: argparse.Namespace, project_dir) -> int:
    decision = get_engine(project_dir).evaluate(InvocationRequest(tool_kind=args.tool, command_text=args.command))
    if args.json:
        print(json.dumps(decision.to_record(), indent=2))
    elif decision.allowed:
        print("ALLOWED")
    else:
        print(decision.message)
    return 0 if decision.allowed else 1


def cmd_catalog(args: argparse.Namespace, project_dir) -> int:
    catalog = get_engine(project_dir).catalog
    if args.json:
        print(json.dumps({"version": catalog.version, "categories": catalog.describe()}, indent=2))
        return 0

    settings = get_effective_settings(project_dir)
    print(f"Rule catalog v{catalog.version} ({len(catalog)} categories)")
    if settings.sources:
        print("Config: " + ", ".join(str(p) for p in settings.sources))
    print("-" * 70)
    for position, category in enumerate(catalog, start=1):
        print(f"{position:>2}. {category.id:<34} {category.group}")
        print(f"    {category.title}")
    print("-" * 70)
    print("Protected containers: " + ", ".join(catalog.protected_containers))
    print("Protected processes:  " + ", ".join(catalog.protected_processes))
    print("Protected paths:      " + ", ".join(catalog.protected_paths))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import os

    import uvicorn

    from env_constants import ALLOW_REMOTE_ENV_VAR

    if args.host not in ("127.0.0.1", "localhost", "::1"):
        print("\n" + "!" * 50)
        print("  SECURITY WARNING")
        print("!" * 50)
        print(f"  Remote access enabled on host: {args.host}")
        print("  Anyone who can reach this port can query the gate.")
        print("!" * 50 + "\n")
        os.environ[ALLOW_REMOTE_ENV_VAR] = "1"

    uvicorn.run("server.main:app", host=args.host, port=args.port)
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging()
    project_dir = Path(args.project_dir).expanduser() if args.project_dir else None

    if args.action == "check":
        return cmd_check(args, project_dir)
    if args.action == "catalog":
        return cmd_catalog(args, project_dir)
    return cmd_serve(args)


if __name__ == "__main__":
    sys.exit(main())
