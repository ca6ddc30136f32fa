"""
Security Hooks for Autonomous Coding Agent
==========================================

Pre-tool-use gate that classifies bash commands before they run.

Uses a blocklist approach: every shell command is matched against the ordered
rule catalog (see rule_catalog.py) and the first matching category blocks it
with an explanation. Everything else is allowed.

Matching runs over the whole literal command text, so a dangerous operation
is still caught when it is wrapped in ssh, sudo, ``bash -c`` or joined to
other statements with ``;``, ``&&`` or ``|``.

The gate is advisory and fails open: if the hook input cannot be read or
evaluation raises, the command is allowed and the failure is logged.
"""

import functools
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from decision_renderer import render_block_message, truncate_command
from guard_config import build_effective_catalog, resolve_project_dir
from rule_catalog import RuleCatalog

# Logger for security-related events (blocks, fail-open fallbacks)
logger = logging.getLogger(__name__)

# Only invocations of this tool are evaluated; every other tool is allowed
SHELL_TOOL_KIND = "Bash"


class MalformedRequestError(ValueError):
    """The hook input could not be interpreted as a structured record."""


@dataclass(frozen=True)
class InvocationRequest:
    """A normalized tool invocation: which tool, and the command it would run."""

    tool_kind: str
    command_text: str = ""


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating one invocation."""

    allowed: bool
    category: Optional[str] = None
    group: Optional[str] = None
    message: Optional[str] = None
    indirection: Optional[str] = None

    @property
    def via_indirection(self) -> bool:
        return self.indirection is not None

    def to_hook_output(self) -> dict:
        """
        Hook reply in the agent SDK's format.

        Returns:
            Empty dict to allow, or {"decision": "block", "reason": "..."} to block
        """
        if self.allowed:
            return {}
        return {"decision": "block", "reason": self.message}

    def to_record(self) -> dict:
        return {
            "allowed": self.allowed,
            "category": self.category,
            "group": self.group,
            "message": self.message,
            "via_indirection": self.via_indirection,
        }


ALLOW = Decision(allowed=True)


def normalize_request(record: Any) -> InvocationRequest:
    """
    Convert a raw hook record into an InvocationRequest.

    Accepts an already-decoded mapping or a JSON document (str/bytes).
    Missing or mistyped optional fields become empty strings.

    Raises:
        MalformedRequestError: If the record is not structured data at all
    """
    if isinstance(record, (bytes, bytearray)):
        try:
            record = record.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRequestError(f"Hook input is not UTF-8: {e}") from e

    if isinstance(record, str):
        if not record.strip():
            raise MalformedRequestError("Hook input is empty")
        try:
            record = json.loads(record)
        except (ValueError, RecursionError) as e:
            # RecursionError: nesting deeper than the decoder can follow
            raise MalformedRequestError(f"Hook input is not valid JSON: {e}") from e

    if not isinstance(record, Mapping):
        raise MalformedRequestError(f"Hook input must be an object, got {type(record).__name__}")

    tool_kind = record.get("tool_name")
    if not isinstance(tool_kind, str):
        tool_kind = ""

    tool_input = record.get("tool_input")
    command = tool_input.get("command") if isinstance(tool_input, Mapping) else None
    if not isinstance(command, str):
        command = ""

    return InvocationRequest(tool_kind=tool_kind, command_text=command)


class PolicyEngine:
    """
    Evaluates invocations against a rule catalog.

    The engine holds no state besides the catalog it was given, which is
    immutable, so one engine can serve concurrent evaluations.
    """

    def __init__(self, catalog: RuleCatalog):
        self.catalog = catalog

    def evaluate(self, request: InvocationRequest) -> Decision:
        """
        Decide whether a request may proceed.

        Non-shell tools and empty commands are allowed without consulting
        the catalog. Otherwise the first matching category in catalog order
        blocks the command; later matches are not reported.
        """
        if request.tool_kind != SHELL_TOOL_KIND:
            return ALLOW

        command = request.command_text
        if not command:
            return ALLOW

        category = self.catalog.first_match(command)
        if category is None:
            return ALLOW

        # Indirection is reported, never used to excuse a match
        indirection = self.catalog.detect_indirection(command)
        logger.info(
            "Blocked command [%s]%s: %s",
            category.id,
            f" via {indirection}" if indirection else "",
            truncate_command(command, 120),
        )
        return Decision(
            allowed=False,
            category=category.id,
            group=category.group,
            message=render_block_message(category, command, indirection),
            indirection=indirection,
        )


@functools.lru_cache(maxsize=32)
def _engine_for(project_dir: str) -> PolicyEngine:
    return PolicyEngine(build_effective_catalog(Path(project_dir)))


def get_engine(project_dir: Optional[Path] = None) -> PolicyEngine:
    """Return the engine for a project, building its catalog once per process."""
    return _engine_for(str(resolve_project_dir(project_dir).resolve()))


def evaluate_safely(
    record: Any,
    engine: Optional[PolicyEngine] = None,
    project_dir: Optional[Path] = None,
) -> Decision:
    """
    Evaluate a raw hook record with the fail-open policy.

    Unreadable input and any failure during evaluation resolve to an allow
    decision. The gate is a safety net for the agent, not an enforcement
    boundary, and a crashing gate must not stop legitimate work.
    """
    try:
        request = normalize_request(record)
    except MalformedRequestError as e:
        logger.warning(f"Fail-open: could not interpret hook input ({e})")
        return ALLOW

    try:
        if engine is None:
            engine = get_engine(project_dir)
        return engine.evaluate(request)
    except Exception:
        logger.exception("Fail-open: command evaluation raised, allowing")
        return ALLOW


async def bash_security_hook(input_data, tool_use_id=None, context=None):
    """
    Pre-tool-use hook that validates bash commands against the rule catalog.

    Args:
        input_data: Dict containing tool_name and tool_input
        tool_use_id: Optional tool use ID
        context: Optional context dict with 'project_dir' key

    Returns:
        Empty dict to allow, or {"decision": "block", "reason": "..."} to block
    """
    project_dir = None
    if context and isinstance(context, dict):
        project_dir_str = context.get("project_dir")
        if project_dir_str:
            project_dir = Path(project_dir_str)

    decision = evaluate_safely(input_data, project_dir=project_dir)
    return decision.to_hook_output()
