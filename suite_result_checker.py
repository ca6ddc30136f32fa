#!/usr/bin/env python3
"""
Test Suite Result Checker
=========================

PostToolUse advisory hook. After a Bash command runs, scans its output for
a test-runner summary ("N tests, M failures" and friends) and warns the
agent when the run had failures or errors, or when only part of the suite
was run.

The hook never blocks anything. It replies with additional context for the
agent, or with nothing at all:

    {"hookSpecificOutput": {"hookEventName": "PostToolUse",
                            "additionalContext": "..."}}
"""

import json
import logging
import re
import shlex
import sys
from dataclasses import dataclass
from typing import Any, Mapping, Optional, TextIO

from dotenv import load_dotenv

load_dotenv()

from guard_config import configure_logging, get_read_timeout
from pre_tool_use_hook import read_hook_input

logger = logging.getLogger(__name__)

# minitest: "12 runs, 30 assertions, 1 failures, 0 errors, 0 skips"
_MINITEST_RE = re.compile(
    r"\b(\d+)\s+runs?,\s*\d+\s+assertions?,\s*(\d+)\s+failures?,\s*(\d+)\s+errors?", re.IGNORECASE
)
# generic / Test::Unit / RSpec: "12 tests, 1 failures", "12 examples, 0 failures, 1 error"
_GENERIC_RE = re.compile(
    r"\b(\d+)\s+(?:tests?|examples?|specs?),\s*(?:\d+\s+assertions?,\s*)?(\d+)\s+failures?"
    r"(?:,\s*(\d+)\s+errors?)?",
    re.IGNORECASE,
)
# pytest: "==== 2 failed, 10 passed, 1 error in 0.52s ===="
_PYTEST_LINE_RE = re.compile(r"^=*\s*\d+\s+[a-z]+(?:,\s*\d+\s+[a-z]+){0,12}\s+in\s+[\d.]+s\b", re.IGNORECASE)
_PYTEST_COUNT_RE = re.compile(r"(\d+)\s+(passed|failed|errors?|skipped|xfailed|xpassed|deselected)", re.IGNORECASE)

TEST_RUNNER_RE = re.compile(
    r"\b(?:rails\s+test|rake\s+test|rspec|pytest|py\.test|python3?\s+-m\s+(?:pytest|unittest)"
    r"|ruby\s+-Itest|jest|vitest|mocha|go\s+test|mix\s+test"
    r"|(?:npm|pnpm|yarn)\s+(?:run\s+)?test)\b",
    re.IGNORECASE,
)
# A single test file, optionally narrowed to a line or node id
TEST_FILE_RE = re.compile(
    r"(?:^|/)(?:test_[\w-]+\.py|[\w-]+_(?:test|spec)\.(?:rb|py|go|exs?)|[\w-]+\.(?:test|spec)\.[jt]sx?)"
    r"(?:::[\w:\[\]-]+|:\d+)?$"
)
# Flags that narrow a run to matching test names
NAME_FILTER_FLAGS = {"-k", "-t", "--testNamePattern", "-e", "--example", "--only", "-run"}
# minitest name filters; "-n" means worker count to pytest-xdist
MINITEST_RUNNER_RE = re.compile(r"\b(?:rails\s+test|rake\s+test|ruby\s+-Itest)\b", re.IGNORECASE)
MINITEST_FILTER_FLAGS = {"-n", "--name"}


@dataclass(frozen=True)
class SuiteSummary:
    """Counts parsed from one test-runner summary line."""

    total: int
    failures: int
    errors: int = 0
    line: str = ""

    @property
    def failed(self) -> bool:
        return self.failures > 0 or self.errors > 0


def _parse_pytest_line(line: str) -> Optional[SuiteSummary]:
    counts: dict[str, int] = {}
    for number, label in _PYTEST_COUNT_RE.findall(line):
        key = "error" if label.lower().startswith("error") else label.lower()
        counts[key] = counts.get(key, 0) + int(number)
    if "passed" not in counts and "failed" not in counts:
        return None
    failures = counts.get("failed", 0)
    errors = counts.get("error", 0)
    return SuiteSummary(total=counts.get("passed", 0) + failures + errors, failures=failures, errors=errors, line=line)


def parse_summary(output: str) -> Optional[SuiteSummary]:
    """
    Find the last test-run summary in runner output.

    Returns:
        The summary, or None when the output contains no recognizable summary
    """
    summary = None
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = _MINITEST_RE.search(line)
        if match:
            summary = SuiteSummary(int(match.group(1)), int(match.group(2)), int(match.group(3)), line)
            continue
        match = _GENERIC_RE.search(line)
        if match:
            summary = SuiteSummary(int(match.group(1)), int(match.group(2)), int(match.group(3) or 0), line)
            continue
        if _PYTEST_LINE_RE.search(line):
            parsed = _parse_pytest_line(line)
            if parsed:
                summary = parsed
    return summary


def is_partial_run(command: str) -> bool:
    """True when a test command targets a single file or test instead of the full suite."""
    if not command or not TEST_RUNNER_RE.search(command):
        return False
    try:
        tokens = shlex.split(command)
    except ValueError:
        tokens = command.split()
    filter_flags = NAME_FILTER_FLAGS
    if MINITEST_RUNNER_RE.search(command):
        filter_flags = NAME_FILTER_FLAGS | MINITEST_FILTER_FLAGS
    for token in tokens:
        flag = token.split("=", 1)[0]
        if flag in filter_flags:
            return True
        if TEST_FILE_RE.search(token):
            return True
    return False


def _tool_output(record: Mapping) -> str:
    response = record.get("tool_response", record.get("tool_output"))
    if isinstance(response, str):
        return response
    if isinstance(response, Mapping):
        parts = [response.get(key) for key in ("stdout", "stderr", "output")]
        return "\n".join(p for p in parts if isinstance(p, str))
    return ""


def build_advice(command: str, output: str) -> Optional[str]:
    """Return the warning text for the agent, or None when there is nothing to say."""
    messages = []

    summary = parse_summary(output)
    if summary is not None and summary.failed:
        messages.append(
            f"Test run reported {summary.failures} failure(s) and {summary.errors} error(s) "
            f"out of {summary.total} test(s) ({summary.line}). The work is not done: fix the "
            "failures and re-run the full suite before reporting success."
        )

    if is_partial_run(command):
        messages.append(
            "Only part of the test suite was run. Run the full suite before claiming "
            "that everything passes."
        )

    if not messages:
        return None
    return "\n".join(messages)


def check_record(record: Any) -> Optional[dict]:
    """Build the hook reply for one PostToolUse record, or None to stay silent."""
    if not isinstance(record, Mapping) or record.get("tool_name") != "Bash":
        return None

    tool_input = record.get("tool_input")
    command = tool_input.get("command", "") if isinstance(tool_input, Mapping) else ""
    if not isinstance(command, str):
        command = ""

    advice = build_advice(command, _tool_output(record))
    if advice is None:
        return None
    logger.info(f"Test advisory for {command[:80]!r}")
    return {
        "hookSpecificOutput": {
            "hookEventName": "PostToolUse",
            "additionalContext": advice,
        }
    }


def run(stdin: TextIO, stdout: TextIO, timeout: Optional[float] = None) -> int:
    if timeout is None:
        timeout = get_read_timeout()

    raw = read_hook_input(stdin, timeout)
    try:
        reply = check_record(json.loads(raw)) if raw.strip() else None
    except (ValueError, RecursionError) as e:
        logger.debug(f"Ignoring unreadable PostToolUse input: {e}")
        reply = None
    except Exception:
        # Advisory only; a failing check must not disturb the session
        logger.exception("Test result check raised, staying silent")
        reply = None

    if reply is not None:
        stdout.write(json.dumps(reply) + "\n")
        stdout.flush()
    return 0


def main() -> int:
    configure_logging()
    return run(sys.stdin, sys.stdout)


if __name__ == "__main__":
    sys.exit(main())
