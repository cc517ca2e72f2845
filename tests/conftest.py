"""Shared fixtures for gatekeeper tests."""

import json

import pytest

from gatekeeper import audit
from gatekeeper.context import EvaluationContext

HOME = "/home/user"
PROJECT = "/home/user/project"


@pytest.fixture
def make_ctx():
    """Factory for EvaluationContext rooted at a fake home and project."""
    def _create(allow=(), deny=(), cwd=PROJECT, home=HOME, workspace=None):
        return EvaluationContext(
            cwd=cwd,
            home_dir=home,
            workspace_dir=workspace,
            allow_list=tuple(allow),
            deny_list=tuple(deny),
        )
    return _create


@pytest.fixture
def ctx(make_ctx):
    """Context with empty permission lists."""
    return make_ctx()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every environment variable the gatekeeper reads."""
    for name in (
        "CLAUDE_PROJECT_DIR",
        "GATEKEEPER_TEST_MODE",
        "GATEKEEPER_TEST_ALLOW",
        "GATEKEEPER_TEST_DENY",
        "GATEKEEPER_DEBUG",
        "GATEKEEPER_LOG_PATH",
        "GATEKEEPER_WORKSPACE_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def write_settings():
    """Factory that writes a Claude settings file with allow/deny lists."""
    def _create(path, allow=None, deny=None, raw=None):
        path.parent.mkdir(parents=True, exist_ok=True)
        if raw is not None:
            path.write_text(raw, encoding="utf-8")
            return path
        permissions = {}
        if allow is not None:
            permissions["allow"] = allow
        if deny is not None:
            permissions["deny"] = deny
        path.write_text(json.dumps({"permissions": permissions}), encoding="utf-8")
        return path
    return _create


@pytest.fixture
def fake_home(tmp_path):
    """Empty home directory with a .claude folder."""
    home = tmp_path / "home"
    (home / ".claude").mkdir(parents=True)
    return home


@pytest.fixture
def audit_log(tmp_path):
    """Audit log file attached to the audit logger for one test."""
    path = tmp_path / "logs" / "gatekeeper.log"
    audit.configure_audit_log(path, debug=True)
    yield path
    audit.close_audit_log()
