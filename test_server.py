#!/usr/bin/env python3
"""
Evaluation Service Tests
========================

Run with: pytest test_server.py
"""

import asyncio
import json
import time

import pytest
from fastapi.testclient import TestClient

from security import ALLOW
from server.main import app


@pytest.fixture
def client():
    previous = app.state.allow_remote
    # TestClient reports its host as "testclient", not localhost
    app.state.allow_remote = True
    with TestClient(app) as test_client:
        yield test_client
    app.state.allow_remote = previous


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy"}


def test_evaluate_blocks(client):
    response = client.post(
        "/api/evaluate",
        json={"tool_name": "Bash", "tool_input": {"command": 'ssh root@host "docker compose down"'}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["allowed"] is False
    assert body["category"] == "compose-blanket-down-up"
    assert body["group"] == "container_lifecycle"
    assert body["via_indirection"] is True
    assert "ssh" in body["message"]


def test_evaluate_allows(client):
    response = client.post("/api/evaluate", json={"tool_name": "Bash", "tool_input": {"command": "ls -la /workspace"}})
    assert response.json() == {
        "allowed": True,
        "category": None,
        "group": None,
        "message": None,
        "via_indirection": False,
    }


@pytest.mark.parametrize("body", [
    b"",
    b"not json",
    b"[1, 2]",
    pytest.param(b"[" * 200000 + b"]" * 200000, id="deeply-nested"),
])
def test_evaluate_fails_open_on_bad_body(client, body):
    response = client.post("/api/evaluate", content=body, headers={"content-type": "application/json"})
    assert response.status_code == 200
    assert response.json()["allowed"] is True


def test_evaluate_runs_off_the_event_loop(client, monkeypatch):
    seen = {}

    def fake_evaluate(record, engine=None):
        try:
            asyncio.get_running_loop()
            seen["on_loop"] = True
        except RuntimeError:
            seen["on_loop"] = False
        return ALLOW

    monkeypatch.setattr("server.routers.evaluate.evaluate_safely", fake_evaluate)
    response = client.post("/api/evaluate", json={"tool_name": "Bash", "tool_input": {"command": "ls"}})
    assert response.json()["allowed"] is True
    assert seen == {"on_loop": False}


def test_evaluate_long_repetitive_command_is_quick(client):
    record = {"tool_name": "Bash", "tool_input": {"command": "pkill " * 20000}}
    started = time.monotonic()
    response = client.post("/api/evaluate", content=json.dumps(record), headers={"content-type": "application/json"})
    assert response.status_code == 200
    assert time.monotonic() - started < 5.0


def test_catalog(client):
    body = client.get("/api/catalog").json()
    assert body["version"] == 1
    assert body["categories"][0]["id"] == "protected-container-lifecycle"
    assert "vai" in body["protected_containers"]
    assert "/" in body["protected_paths"]


def test_remote_clients_are_rejected():
    previous = app.state.allow_remote
    app.state.allow_remote = False
    try:
        with TestClient(app) as test_client:
            response = test_client.get("/api/health")
    finally:
        app.state.allow_remote = previous
    assert response.status_code == 403
    assert response.json() == {"detail": "Localhost access only"}
