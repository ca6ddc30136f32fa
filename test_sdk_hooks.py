#!/usr/bin/env python3
"""
Agent SDK Hook Wiring Tests
===========================

Run with: pytest test_sdk_hooks.py
"""

import asyncio

import pytest

from rule_catalog import build_catalog
from sdk_hooks import build_guard_hooks
from security import PolicyEngine


@pytest.fixture
def hooks():
    return build_guard_hooks(engine=PolicyEngine(build_catalog()))


def call(hooks, event, input_data):
    matcher = hooks[event][0]
    return asyncio.run(matcher.hooks[0](input_data, "tool-1", None))


def test_matchers(hooks):
    assert set(hooks) == {"PreToolUse", "PostToolUse"}
    for event in hooks:
        assert len(hooks[event]) == 1
        assert hooks[event][0].matcher == "Bash"


def test_pre_tool_use_blocks(hooks):
    result = call(hooks, "PreToolUse", {"tool_name": "Bash", "tool_input": {"command": "sudo reboot"}})
    assert result["decision"] == "block"
    assert "[system-power]" in result["reason"]


def test_pre_tool_use_allows(hooks):
    assert call(hooks, "PreToolUse", {"tool_name": "Bash", "tool_input": {"command": "make"}}) == {}
    assert call(hooks, "PreToolUse", "garbage") == {}


def test_post_tool_use_advice(hooks):
    result = call(hooks, "PostToolUse", {
        "tool_name": "Bash",
        "tool_input": {"command": "pytest"},
        "tool_response": "=== 2 failed, 3 passed in 0.40s ===",
    })
    assert "2 failure(s)" in result["hookSpecificOutput"]["additionalContext"]
    assert call(hooks, "PostToolUse", {"tool_name": "Bash", "tool_input": {"command": "ls"}}) == {}


def test_post_tool_use_is_silent_when_check_raises(hooks, monkeypatch):
    def broken(record):
        raise RuntimeError("boom")

    monkeypatch.setattr("sdk_hooks.check_record", broken)
    assert call(hooks, "PostToolUse", {"tool_name": "Bash", "tool_input": {"command": "pytest"}}) == {}


def test_default_engine_uses_project_config(project_dir):
    (project_dir / ".session-guard").mkdir()
    (project_dir / ".session-guard" / "config.yaml").write_text("version: 1\nprotected_containers: [gateway]\n")
    hooks = build_guard_hooks(project_dir)
    result = call(hooks, "PreToolUse", {"tool_name": "Bash", "tool_input": {"command": "docker stop gateway"}})
    assert result["decision"] == "block"
