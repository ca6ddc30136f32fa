#!/usr/bin/env python3
"""
Security Integration Tests
==========================

End-to-end tests that write real YAML config files into a temporary guard
home and project, then run hook records through the full pipeline
(config loading, catalog build, evaluation, JSON reply).

Run with: pytest test_security_integration.py
"""

import asyncio
import io
import json
import textwrap

from pre_tool_use_hook import run
from security import bash_security_hook, get_engine


def write_config(directory, text):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "config.yaml"
    path.write_text(textwrap.dedent(text))
    return path


def hook_reply(command):
    stdin = io.StringIO(json.dumps({"tool_name": "Bash", "tool_input": {"command": command}}))
    stdout = io.StringIO()
    assert run(stdin, stdout, timeout=1.0) == 0
    return json.loads(stdout.getvalue())


def test_defaults_without_any_config():
    assert hook_reply("docker compose restart vai")["allowed"] is False
    assert hook_reply("docker compose restart gateway")["allowed"] is True


def test_user_config_adds_protected_container(guard_home):
    write_config(guard_home, """\
        version: 1
        protected_containers:
          - gateway
    """)
    reply = hook_reply("docker compose restart gateway")
    assert reply["allowed"] is False
    assert "gateway" in reply["reason"]
    # Defaults still apply
    assert hook_reply("docker compose restart vai")["allowed"] is False


def test_project_config_adds_process_and_path(project_dir):
    write_config(project_dir / ".session-guard", """\
        version: 1
        protected_processes: [uvicorn]
        protected_paths: [/data/]
    """)
    assert hook_reply("pkill uvicorn")["allowed"] is False
    assert hook_reply("rm -rf /data")["allowed"] is False
    assert hook_reply("rm -rf /data/cache")["allowed"] is True


def test_project_category_is_checked_after_builtins(project_dir):
    write_config(project_dir / ".session-guard", """\
        version: 1
        categories:
          - id: no-force-push
            group: vcs
            title: Force push
            patterns: ['\\bgit\\s+push\\b.*--force\\b']
            reason: Rewrites shared history.
            suggestion: Push a new commit instead.
    """)
    reply = hook_reply("git push origin main --force")
    assert reply["allowed"] is False
    assert "[no-force-push]" in reply["reason"]

    # Built-in category wins when both match
    reply = hook_reply("reboot && git push --force")
    assert "[system-power]" in reply["reason"]


def test_user_and_project_configs_merge(guard_home, project_dir):
    write_config(guard_home, "version: 1\nprotected_containers: [gateway]\n")
    write_config(project_dir / ".session-guard", "version: 1\nprotected_containers: [billing]\n")

    engine = get_engine()
    assert {"gateway", "billing", "vai"} <= set(engine.catalog.protected_containers)
    assert hook_reply("docker restart billing")["allowed"] is False
    assert hook_reply("docker restart gateway")["allowed"] is False


def test_invalid_config_keeps_builtin_protection(guard_home):
    write_config(guard_home, "version: 1\nprotected_containers: gateway\n")
    assert hook_reply("docker restart gateway")["allowed"] is True
    assert hook_reply("rm -rf /")["allowed"] is False


def test_broken_category_regex_keeps_protected_names(project_dir):
    write_config(project_dir / ".session-guard", """\
        version: 1
        protected_containers: [gateway]
        categories:
          - id: broken
            title: Broken
            patterns: ['(unclosed']
            reason: r
            suggestion: s
    """)
    assert hook_reply("docker restart gateway")["allowed"] is False
    assert get_engine().catalog.get("broken") is None


def test_sdk_hook_with_project_context(tmp_path):
    other = tmp_path / "other"
    write_config(other / ".session-guard", "version: 1\nprotected_containers: [ledger]\n")
    input_data = {"tool_name": "Bash", "tool_input": {"command": "docker stop ledger"}}

    result = asyncio.run(bash_security_hook(input_data, context={"project_dir": str(other)}))
    assert result["decision"] == "block"
    assert asyncio.run(bash_security_hook(input_data)) == {}
