"""Risk scoring for permission patterns and commands.

Three independent axes are scored and then combined:

  target     what is touched (keys, credentials, .env files)
  scope      how much is touched (one file, a project, the whole home dir)
  operation  what is done (read, edit, write, arbitrary shell)

The combined level never drops below the worst single axis, and stacking
several medium/high axes escalates it.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
from typing import Literal, Optional

from pydantic import BaseModel

from gatekeeper.tokenizer import strip_quotes, tokenize

logger = logging.getLogger(__name__)

RiskLevel = Literal["minimal", "low", "medium", "high", "critical"]
RiskCategory = Literal["target", "scope", "operation"]

RISK_ORDER: tuple[RiskLevel, ...] = ("minimal", "low", "medium", "high", "critical")


def risk_rank(level: RiskLevel) -> int:
    """Position of a level in RISK_ORDER.

    >>> risk_rank("minimal") < risk_rank("critical")
    True
    """
    return RISK_ORDER.index(level)


def max_risk(*levels: RiskLevel) -> RiskLevel:
    """Highest of the given levels; "minimal" when none are given."""
    return max(levels, key=risk_rank, default="minimal")


class RiskAssessment(BaseModel):
    """One axis of a risk score."""

    level: RiskLevel
    category: RiskCategory
    reason: str
    mitigation_possible: bool = False


class PatternRisk(BaseModel):
    """All three axes for a permission pattern, plus the combined level."""

    pattern: str
    scope: RiskAssessment
    operation: RiskAssessment
    target: RiskAssessment
    level: RiskLevel
    auto_approve: bool


PATTERN_BODY_RE = re.compile(r"^[^()\s]+\((.*)\)$", re.DOTALL)
TOOL_NAME_RE = re.compile(r"^([^()\s]+)")


def _pattern_body(pattern: str) -> str:
    """``Read(~/x)`` -> ``~/x``; anything else is returned unchanged."""
    m = PATTERN_BODY_RE.match(pattern.strip())
    return m.group(1) if m else pattern.strip()


# ---------------------------------------------------------------------------
# Target
# ---------------------------------------------------------------------------

# (regex, level, reason, mitigation possible)
TARGET_RULES = [
    (re.compile(r"(?:^|/)\.ssh(?:/|$)"), "critical", "SSH directory", False),
    (re.compile(r"(?:^|/)id_(?:rsa|dsa|ecdsa|ed25519)$"), "critical", "SSH private key", False),
    (re.compile(r"(?:^|/)\.gnupg(?:/|$)"), "critical", "GPG keyring", False),
    (re.compile(r"(?:^|/)\.aws/(?:credentials|config)$"), "critical", "AWS credentials file", False),
    (re.compile(r"^/etc/(?:shadow|passwd)$"), "critical", "system password file", False),
    (re.compile(r"\.(?:key|pem|pfx|p12)$"), "critical", "private key or certificate file", False),
    (re.compile(r"(?:\.env$|(?:^|/)\.env\.)"), "high", "environment variable file", True),
]


def _target_rule(path: str) -> RiskAssessment:
    for regex, level, reason, mitigation in TARGET_RULES:
        if regex.search(path):
            return RiskAssessment(
                level=level, category="target", reason=reason,
                mitigation_possible=mitigation,
            )
    return RiskAssessment(
        level="minimal", category="target", reason="regular file",
        mitigation_possible=True,
    )


def assess_target(path_or_command: str) -> RiskAssessment:
    """Score what a pattern, path or command touches.

    Commands are checked word by word and the worst word wins.

    >>> assess_target("Read(~/.ssh/id_rsa)").level
    'critical'
    >>> assess_target("cat .env.local").level
    'high'
    >>> assess_target("src/app.py").level
    'minimal'
    """
    body = _pattern_body(path_or_command)
    candidates = [body]
    if any(ch.isspace() for ch in body):
        candidates.extend(strip_quotes(w) for w in tokenize(body))
    worst = _target_rule(body)
    for candidate in candidates[1:]:
        assessment = _target_rule(candidate)
        if risk_rank(assessment.level) > risk_rank(worst.level):
            worst = assessment
    return worst


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------

GLOB_TAIL_RE = re.compile(r"/?[^/]*[*?\[].*$")


def resolve_pattern_path(pattern: str, cwd: str, home_dir: str) -> str:
    """Absolute directory a pattern is rooted at, with its glob tail dropped.

    >>> resolve_pattern_path("Read(~/workspace/app/**)", "/x", "/home/u")
    '/home/u/workspace/app'
    >>> resolve_pattern_path("Edit(src/*.py)", "/repo", "/home/u")
    '/repo/src'
    """
    path = GLOB_TAIL_RE.sub("", _pattern_body(pattern))
    if path == "~" or path.startswith("~/"):
        path = home_dir.rstrip("/") + path[1:]
    if not path:
        body = _pattern_body(pattern)
        return "/" if body.startswith("/") else posixpath.normpath(cwd)
    if path.startswith("/"):
        return posixpath.normpath(path)
    return posixpath.normpath(posixpath.join(cwd, path))


def _within(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory.rstrip("/") + "/")


def assess_scope(
    pattern: str,
    cwd: Optional[str] = None,
    home_dir: Optional[str] = None,
    workspace_dir: Optional[str] = None,
) -> RiskAssessment:
    """Score how much of the filesystem a pattern reaches.

    >>> assess_scope("Read(~/**)", "/home/u/p", "/home/u").level
    'critical'
    >>> assess_scope("Read(src/**)", "/home/u/p", "/home/u").level
    'low'
    >>> assess_scope("Read(/opt/data/file.csv)", "/home/u/p", "/home/u").level
    'minimal'
    """
    cwd = cwd or os.getcwd()
    home_dir = (home_dir or os.path.expanduser("~")).rstrip("/") or "/"
    workspace = (workspace_dir or posixpath.join(home_dir, "workspace")).rstrip("/")
    body = _pattern_body(pattern)
    resolved = resolve_pattern_path(pattern, cwd, home_dir)

    def scope(level, reason, mitigation=True):
        return RiskAssessment(
            level=level, category="scope", reason=reason,
            mitigation_possible=mitigation,
        )

    if resolved == "/":
        return scope("critical", "filesystem root", False)
    if _within(resolved, "/etc") or _within(resolved, "/usr"):
        return scope("critical", "system directory", False)
    if resolved == home_dir or body in ("~", "~/", "~/**", "~/*"):
        return scope("critical", "unrestricted home directory access")
    if _within(resolved, workspace) and "**" in body:
        if resolved == workspace:
            return scope("high", "entire workspace")
        return scope("medium", "whole project in the workspace")
    if _within(resolved, posixpath.normpath(cwd)):
        return scope("low", "path inside the current project")
    if "*" not in body:
        return scope("minimal", "single specific file")
    return scope("low", "limited wildcard scope")


# ---------------------------------------------------------------------------
# Operation
# ---------------------------------------------------------------------------

READ_ONLY_TOOLS = frozenset({"Read", "Glob", "LS", "Grep", "NotebookRead"})
EDIT_TOOLS = frozenset({"Edit", "MultiEdit", "NotebookEdit"})

BASH_CRITICAL_RE = re.compile(r"^(?:rm\s+-(?:[rR]f|f[rR])\b|sudo\b|dd\b|mkfs\b)")
BASH_LOW_RE = [
    (re.compile(r"^(?:ls|pwd|echo|cat|head|tail|grep|rg|find|fd|wc|which)(?:[\s:]|$)"), "read-only command"),
    (re.compile(r"^git\s+(?:status|log|diff|show|branch)(?:[\s:]|$)"), "read-only git command"),
    (re.compile(r"^(?:npm|pnpm)\s+view(?:[\s:]|$)"), "package information query"),
    (re.compile(r"^(?:npm\s+test|pnpm\s+test|bun\s+test|jest|vitest|pytest)(?:[\s:]|$)"), "test command"),
]
BASH_MEDIUM_RE = [
    (re.compile(r"^(?:pnpm\s+(?:build|typecheck|run)|npm\s+run|bun\s+run|make)(?:[\s:]|$)"), "build command"),
    (re.compile(r"^(?:npm|pnpm|bun|yarn|pip|uv|poetry)\s+(?:install|add|i|sync)(?:[\s:]|$)"), "package management command"),
]


def assess_operation(pattern: str) -> RiskAssessment:
    """Score what a pattern lets the agent do.

    >>> assess_operation("Read(**)").level
    'minimal'
    >>> assess_operation("Bash(git status:*)").level
    'low'
    >>> assess_operation("Bash(sudo apt install x)").level
    'critical'
    """
    m = TOOL_NAME_RE.match(pattern.strip())
    tool = m.group(1) if m else ""

    def op(level, reason, mitigation=True):
        return RiskAssessment(
            level=level, category="operation", reason=reason,
            mitigation_possible=mitigation,
        )

    if tool in READ_ONLY_TOOLS:
        return op("minimal", "read-only tool")
    if tool in EDIT_TOOLS:
        return op("medium", "file modification")
    if tool == "Write":
        return op("high", "file creation or overwrite")
    if tool != "Bash":
        return op("medium", f"unclassified tool {tool or '(none)'}")

    command = _pattern_body(pattern).strip()
    if BASH_CRITICAL_RE.match(command):
        return op("critical", "destructive or privileged command", False)
    for regex, reason in BASH_LOW_RE:
        if regex.match(command):
            return op("low", reason)
    for regex, reason in BASH_MEDIUM_RE:
        if regex.match(command):
            return op("medium", reason)
    return op("high", "arbitrary shell command")


# ---------------------------------------------------------------------------
# Combination
# ---------------------------------------------------------------------------

def combine(*assessments: RiskAssessment) -> RiskLevel:
    """Fold axis assessments into one level.

    >>> a = RiskAssessment(level="medium", category="scope", reason="")
    >>> b = RiskAssessment(level="medium", category="operation", reason="")
    >>> combine(a, b)
    'high'
    """
    levels = [a.level for a in assessments]
    highs = levels.count("high")
    mediums = levels.count("medium")
    if "critical" in levels:
        return "critical"
    if highs >= 2:
        return "critical"
    if highs:
        return "high"
    if mediums >= 2:
        return "high"
    if mediums:
        return "medium"
    return "low"


def should_auto_approve(level: RiskLevel) -> bool:
    """Only minimal and low risk may be approved without a human."""
    return level in ("minimal", "low")


def assess_pattern(
    pattern: str,
    cwd: Optional[str] = None,
    home_dir: Optional[str] = None,
    workspace_dir: Optional[str] = None,
) -> PatternRisk:
    """Score a permission pattern on all three axes."""
    scope = assess_scope(pattern, cwd, home_dir, workspace_dir)
    operation = assess_operation(pattern)
    target = assess_target(pattern)
    level = combine(scope, operation, target)
    logger.debug("risk %s: scope=%s operation=%s target=%s -> %s",
                 pattern, scope.level, operation.level, target.level, level)
    return PatternRisk(
        pattern=pattern,
        scope=scope,
        operation=operation,
        target=target,
        level=level,
        auto_approve=should_auto_approve(level),
    )
