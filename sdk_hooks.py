"""
Agent SDK Hook Wiring
=====================

Registers the session guard with an in-process Claude Agent SDK client.

Usage::

    from claude_agent_sdk import ClaudeAgentOptions, ClaudeSDKClient
    from sdk_hooks import build_guard_hooks

    client = ClaudeSDKClient(
        options=ClaudeAgentOptions(hooks=build_guard_hooks(project_dir)),
    )

The catalog is built once when the hooks are created and reused for every
tool call of the session.
"""

import logging
from pathlib import Path
from typing import Optional

from claude_agent_sdk.types import HookMatcher

from security import PolicyEngine, evaluate_safely, get_engine
from suite_result_checker import check_record

logger = logging.getLogger(__name__)


def build_guard_hooks(
    project_dir: Optional[Path] = None,
    engine: Optional[PolicyEngine] = None,
) -> dict[str, list[HookMatcher]]:
    """
    Build the ``hooks`` mapping for ClaudeAgentOptions.

    Args:
        project_dir: Project whose .session-guard config applies
        engine: Pre-built engine to share (defaults to the project's engine)

    Returns:
        PreToolUse gate and PostToolUse test advisory, both matched to Bash
    """
    if engine is None:
        engine = get_engine(project_dir)

    async def guard_pre_tool_use(input_data, tool_use_id=None, context=None):
        """Block dangerous Bash commands before they run."""
        return evaluate_safely(input_data, engine=engine).to_hook_output()

    async def guard_post_tool_use(input_data, tool_use_id=None, context=None):
        """Surface failing or partial test runs to the agent."""
        try:
            return check_record(input_data) or {}
        except Exception:
            logger.exception("Test result check raised, staying silent")
            return {}

    return {
        "PreToolUse": [
            HookMatcher(matcher="Bash", hooks=[guard_pre_tool_use]),
        ],
        "PostToolUse": [
            HookMatcher(matcher="Bash", hooks=[guard_post_tool_use]),
        ],
    }
