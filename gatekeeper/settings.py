"""Permission lists and runtime settings from Claude's settings files.

Lists are merged from, in order:

  ~/.claude/settings.json
  ~/.claude/settings.local.json
  <project>/.claude/settings.json
  <project>/.claude/settings.local.json

Environment:
  CLAUDE_PROJECT_DIR        project root (falls back to the hook's cwd)
  GATEKEEPER_TEST_MODE=1    read GATEKEEPER_TEST_ALLOW / GATEKEEPER_TEST_DENY
                            (JSON arrays) instead of the files
  GATEKEEPER_DEBUG=1        debug-level audit log
  GATEKEEPER_LOG_PATH       audit log location
  GATEKEEPER_WORKSPACE_DIR  workspace root used for risk scoring
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from gatekeeper.context import EvaluationContext
from gatekeeper.patterns import EDIT_TOOLS

logger = logging.getLogger(__name__)

ListKind = Literal["allow", "deny"]

DEFAULT_LOG_NAME = "gatekeeper.log"


def _env(environ: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def claude_dir(home: Optional[Path] = None) -> Path:
    return (home or Path.home()) / ".claude"


def log_path(environ: Optional[Mapping[str, str]] = None, home: Optional[Path] = None) -> Path:
    """Audit log location (``GATEKEEPER_LOG_PATH`` or ~/.claude/gatekeeper.log)."""
    override = _env(environ).get("GATEKEEPER_LOG_PATH", "")
    if override:
        return Path(override).expanduser()
    return claude_dir(home) / DEFAULT_LOG_NAME


def debug_enabled(environ: Optional[Mapping[str, str]] = None) -> bool:
    return _env(environ).get("GATEKEEPER_DEBUG", "") == "1"


def is_test_mode(environ: Optional[Mapping[str, str]] = None) -> bool:
    return _env(environ).get("GATEKEEPER_TEST_MODE", "") == "1"


def project_dir(cwd: Optional[str], environ: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    configured = _env(environ).get("CLAUDE_PROJECT_DIR", "")
    if configured:
        return Path(configured)
    return Path(cwd) if cwd else None


def settings_files(project: Optional[Path], home: Optional[Path] = None) -> list[Path]:
    """Settings files to read, user-level first."""
    base = claude_dir(home)
    paths = [base / "settings.json", base / "settings.local.json"]
    if project is not None:
        project_claude = project / ".claude"
        for path in (project_claude / "settings.json", project_claude / "settings.local.json"):
            if path not in paths:
                paths.append(path)
    return paths


def load_permission_list(settings_path: Path, kind: ListKind) -> list[str]:
    """Read ``permissions.<kind>`` from one settings file; [] if absent or broken."""
    try:
        if not settings_path.exists():
            return []
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("skipping settings file %s: %s", settings_path, e)
        return []
    if not isinstance(data, dict):
        return []
    permissions = data.get("permissions")
    if not isinstance(permissions, dict):
        return []
    entries = permissions.get(kind, [])
    if not isinstance(entries, list):
        return []
    return [p for p in entries if isinstance(p, str)]


def _dedupe(patterns: list[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for p in patterns:
        if p not in seen:
            seen.add(p)
            out.append(p)
    return out


def filter_for_tool(patterns: list[str], tool_name: str) -> list[str]:
    """Keep only the patterns that can apply to ``tool_name``.

    Bash also keeps Edit/MultiEdit patterns, which gate ``sed -i``.

    >>> filter_for_tool(["Bash(ls:*)", "Read(**)", "Edit(src/**)"], "Bash")
    ['Bash(ls:*)', 'Edit(src/**)']
    >>> filter_for_tool(["Read", "Read(src/**)", "ReadX(**)"], "Read")
    ['Read', 'Read(src/**)']
    """
    tools = {tool_name}
    if tool_name == "Bash":
        tools |= EDIT_TOOLS
    kept = []
    for p in patterns:
        name = p.strip().split("(", 1)[0]
        if name in tools:
            kept.append(p)
    return kept


def _test_mode_list(kind: ListKind, environ: Mapping[str, str]) -> list[str]:
    raw = environ.get(f"GATEKEEPER_TEST_{kind.upper()}", "")
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.debug("invalid GATEKEEPER_TEST_%s: %s", kind.upper(), e)
        return []
    if not isinstance(data, list):
        return []
    return [p for p in data if isinstance(p, str)]


def load_permission_lists(
    cwd: Optional[str] = None,
    tool_name: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> tuple[list[str], list[str]]:
    """(allow, deny) lists, filtered to ``tool_name`` when one is given."""
    env = _env(environ)
    if is_test_mode(env):
        allow = _test_mode_list("allow", env)
        deny = _test_mode_list("deny", env)
    else:
        allow, deny = [], []
        for path in settings_files(project_dir(cwd, env), home):
            allow.extend(load_permission_list(path, "allow"))
            deny.extend(load_permission_list(path, "deny"))
    allow, deny = _dedupe(allow), _dedupe(deny)
    if tool_name:
        allow = filter_for_tool(allow, tool_name)
        deny = filter_for_tool(deny, tool_name)
    logger.debug("loaded %d allow / %d deny patterns for %s", len(allow), len(deny), tool_name or "*")
    return allow, deny


def build_context(
    cwd: str,
    tool_name: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> EvaluationContext:
    """EvaluationContext with the lists that apply to one tool call."""
    env = _env(environ)
    allow, deny = load_permission_lists(cwd, tool_name, env, home)
    return EvaluationContext(
        cwd=cwd,
        home_dir=str(home or Path.home()),
        workspace_dir=env.get("GATEKEEPER_WORKSPACE_DIR") or None,
        allow_list=tuple(allow),
        deny_list=tuple(deny),
    )
