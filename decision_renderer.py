"""
Decision Renderer
=================

Turns a blocking decision into the explanation shown to the agent and to
the human reviewing the session.
"""

from typing import Optional

from rule_catalog import CHAINED_LABEL, RuleCategory

# Maximum number of command characters echoed back in a block message
COMMAND_DISPLAY_LIMIT = 300
TRUNCATION_MARKER = "..."

INCIDENT_CONTEXT = (
    "Context: this agent has unrestricted shell access and has previously run commands "
    "that destroyed its own session and infrastructure. This gate exists to stop that "
    "from happening again."
)

APPROVAL_GUIDANCE = (
    "Do NOT retry this with a differently phrased command, a wrapper script, or another "
    "layer of indirection. Stop and ask the human operator for explicit approval, "
    "explaining why the operation is needed."
)


def truncate_command(command_text: str, limit: int = COMMAND_DISPLAY_LIMIT) -> str:
    """Return the command unchanged if it fits, else its first ``limit`` characters plus a marker."""
    if len(command_text) <= limit:
        return command_text
    return command_text[:limit] + TRUNCATION_MARKER


def indirection_notice(indirection: str) -> str:
    if indirection == CHAINED_LABEL:
        return (
            "Note: the dangerous operation is chained with other commands. "
            "The block applies to the whole command line."
        )
    return (
        f"Note: the dangerous operation is wrapped inside another command ({indirection}). "
        "The block applies to the wrapped command all the same."
    )


def render_block_message(
    category: RuleCategory,
    command_text: str,
    indirection: Optional[str] = None,
) -> str:
    """
    Render the explanation for a blocked command.

    Args:
        category: The catalog category that matched
        command_text: The literal command the agent tried to run
        indirection: Label of the wrapper the command was found inside
                     (for example "ssh"), or None

    Returns:
        Multi-line message for the host runtime
    """
    lines = [
        f"BLOCKED by session guard: {category.title} [{category.id}]",
        f"Command: {truncate_command(command_text)}",
    ]
    if indirection:
        lines.append(indirection_notice(indirection))
    lines.extend([
        "",
        f"Why: {category.reason}",
        f"Instead: {category.suggestion}",
        "",
        APPROVAL_GUIDANCE,
        INCIDENT_CONTEXT,
    ])
    return "\n".join(lines)
