#!/usr/bin/env python3
"""
PreToolUse Hook
===============

Command-line entry point registered with the host runtime as a PreToolUse
hook. Reads one JSON record from stdin, evaluates it, and writes one JSON
line to stdout:

    {"allowed": true}
    {"allowed": false, "decision": "block", "reason": "<explanation>"}

The exit code is always 0; the decision travels only in the JSON reply.
A missing, slow or malformed input is treated as an allow (fail-open).

Example settings.json entry:

    "PreToolUse": [{"matcher": "Bash",
                    "hooks": [{"type": "command", "command": "session-guard-hook"}]}]
"""

import json
import logging
import sys
import threading
from typing import Optional, TextIO

from dotenv import load_dotenv

# Load environment variables from .env file (if it exists)
# Must run before guard_config reads SESSION_GUARD_* variables
load_dotenv()

from guard_config import configure_logging, get_read_timeout
from security import ALLOW, Decision, evaluate_safely

logger = logging.getLogger(__name__)

# Upper bound on hook input; larger payloads are cut off (and fail to parse)
MAX_INPUT_BYTES = 1024 * 1024


def read_hook_input(stream: TextIO, timeout: float) -> str:
    """
    Read the hook record from ``stream`` without blocking past ``timeout``.

    The read runs in a daemon thread so a caller that never closes stdin
    cannot stall the agent pipeline. Returns "" on timeout or read error.
    """
    result: dict[str, str] = {}

    def reader() -> None:
        try:
            result["data"] = stream.read(MAX_INPUT_BYTES)
        except (OSError, ValueError) as e:
            logger.debug(f"Reading hook input failed: {e}")

    thread = threading.Thread(target=reader, name="hook-stdin-reader", daemon=True)
    thread.start()
    thread.join(timeout)
    if thread.is_alive():
        logger.warning(f"No hook input within {timeout}s, treating request as empty")
        return ""
    return result.get("data", "")


def egress_record(decision: Decision) -> dict:
    """Reply written to the host: the allow flag plus the SDK-format block fields."""
    return {"allowed": decision.allowed, **decision.to_hook_output()}


def run(stdin: TextIO, stdout: TextIO, timeout: Optional[float] = None) -> int:
    if timeout is None:
        timeout = get_read_timeout()

    try:
        raw = read_hook_input(stdin, timeout)
        decision = evaluate_safely(raw)
    except Exception:
        logger.exception("Fail-open: unexpected error in hook transport")
        decision = ALLOW

    stdout.write(json.dumps(egress_record(decision)) + "\n")
    stdout.flush()
    return 0


def main() -> int:
    configure_logging()
    return run(sys.stdin, sys.stdout)


if __name__ == "__main__":
    sys.exit(main())
