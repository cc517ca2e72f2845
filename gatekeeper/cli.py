"""
CLI for the gatekeeper.

Runs the PreToolUse hook and lets you check commands and permission rules
from a terminal.
"""

import sys
import json
import logging
import os
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gatekeeper.context import EvaluationContext
from gatekeeper.engine import evaluate
from gatekeeper.risk import assess_pattern
from gatekeeper.settings import (
    load_permission_list,
    load_permission_lists,
    log_path,
    project_dir,
    settings_files,
)


console = Console()
logger = logging.getLogger(__name__)

EXIT_CODES = {"allow": 0, "ask": 1, "deny": 2}
VERDICT_STYLES = {"allow": "green", "ask": "yellow", "deny": "red"}
RISK_STYLES = {
    "minimal": "green",
    "low": "green",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def main(verbose: bool):
    """Gatekeeper - permission decisions for Claude Code tool calls."""
    setup_logging(verbose)


@main.command()
def hook():
    """Run as a PreToolUse hook (reads the event JSON from stdin)."""
    from gatekeeper.hook import main as hook_main

    sys.exit(hook_main())


def _tool_input(tool: str, subject: str) -> dict:
    if tool == "Bash":
        return {"command": subject}
    return {"file_path": subject}


@main.command()
@click.argument("subject")
@click.option("--tool", "-t", default="Bash", show_default=True, help="Tool name (Bash, Read, Edit, ...)")
@click.option("--allow", "-a", "allow", multiple=True, help="Extra allow pattern (repeatable)")
@click.option("--deny", "-d", "deny", multiple=True, help="Extra deny pattern (repeatable)")
@click.option("--cwd", type=click.Path(file_okay=False), help="Working directory (defaults to current)")
@click.option("--no-settings", is_flag=True, help="Ignore Claude settings files")
@click.option("--json", "as_json", is_flag=True, help="Print the evaluation record as JSON")
def check(subject: str, tool: str, allow: tuple, deny: tuple, cwd: Optional[str],
          no_settings: bool, as_json: bool):
    """
    Evaluate a command (or a path for file tools) like the hook would.

    Exit code is 0 for allow, 1 for ask, 2 for deny.
    """
    cwd = os.path.abspath(cwd or os.getcwd())
    allow_list, deny_list = ([], []) if no_settings else load_permission_lists(cwd, tool)
    ctx = EvaluationContext.from_environment(
        cwd=cwd,
        allow_list=list(allow_list) + list(allow),
        deny_list=list(deny_list) + list(deny),
    )
    evaluation = evaluate(tool, _tool_input(tool, subject), ctx)

    if as_json:
        click.echo(json.dumps(evaluation.audit_record(), indent=2))
    elif evaluation.decision is None:
        console.print("[dim]PASS[/dim] nothing to evaluate, Claude Code decides")
    else:
        verdict = evaluation.decision.decision
        style = VERDICT_STYLES[verdict]
        console.print(f"[{style}][{verdict.upper()}][/{style}] {escape(evaluation.decision.reason)}")

        table = Table(show_header=True)
        table.add_column("Unit")
        table.add_column("Outcome")
        table.add_column("Pattern / reason")
        table.add_column("Risk")
        for unit in evaluation.units:
            risk_style = RISK_STYLES[unit.risk]
            table.add_row(
                escape(unit.unit),
                unit.outcome,
                escape(unit.pattern or unit.reason),
                f"[{risk_style}]{unit.risk}[/{risk_style}]",
            )
        console.print(table)

    if evaluation.decision is None:
        sys.exit(0)
    sys.exit(EXIT_CODES[evaluation.decision.decision])


@main.command()
@click.argument("pattern")
@click.option("--cwd", type=click.Path(file_okay=False), help="Working directory (defaults to current)")
def risk(pattern: str, cwd: Optional[str]):
    """Score a permission pattern, e.g. 'Read(~/workspace/**)'."""
    ctx = EvaluationContext.from_environment(cwd=os.path.abspath(cwd or os.getcwd()))
    result = assess_pattern(pattern, ctx.cwd, ctx.home_dir, ctx.workspace_dir)

    table = Table(title=pattern, show_header=True)
    table.add_column("Axis")
    table.add_column("Level")
    table.add_column("Reason")
    for assessment in (result.scope, result.operation, result.target):
        style = RISK_STYLES[assessment.level]
        table.add_row(assessment.category, f"[{style}]{assessment.level}[/{style}]", assessment.reason)
    console.print(table)

    style = RISK_STYLES[result.level]
    console.print(f"Combined: [{style}]{result.level}[/{style}]")
    if result.auto_approve:
        console.print("[green][OK][/green] low enough to auto-approve")
    else:
        console.print("[yellow][REVIEW][/yellow] needs a human decision")


# Wildcard Bash rules for these programs let the agent run anything
HIGH_RISK_PREFIXES = {
    "python": "arbitrary code execution via -c",
    "python3": "arbitrary code execution via -c",
    "node": "arbitrary code execution via -e",
    "bash": "shell-in-shell, can run anything",
    "sh": "shell-in-shell, can run anything",
    "zsh": "shell-in-shell, can run anything",
    "curl": "potential data exfiltration",
    "wget": "potential data exfiltration",
    "rm": "file deletion",
    "ssh": "remote command execution",
    "scp": "file transfer to remote",
    "rsync": "file transfer to remote",
    "nc": "raw network connections",
    "sudo": "privilege escalation",
}


def _bash_wildcard_prefix(pattern: str) -> Optional[str]:
    """First word of a ``Bash(prefix:*)`` rule, None for anything else.

    >>> _bash_wildcard_prefix("Bash(git log:*)")
    'git'
    >>> _bash_wildcard_prefix("Bash(npm test)") is None
    True
    """
    if not (pattern.startswith("Bash(") and pattern.endswith(":*)")):
        return None
    words = pattern[5:-3].split()
    return words[0] if words else None


def _classify_permission(pattern: str, kind: str, cwd: str) -> tuple[str, str]:
    """Classify one rule as WARN, INFO or OK; returns (level, reason)."""
    if kind == "deny":
        return "OK", "deny rule"
    prefix = _bash_wildcard_prefix(pattern)
    if prefix in HIGH_RISK_PREFIXES:
        return "WARN", HIGH_RISK_PREFIXES[prefix]
    if pattern.strip() == "Bash":
        return "WARN", "every shell command is allowed"
    result = assess_pattern(pattern, cwd)
    if not result.auto_approve:
        reasons = ", ".join(
            a.reason for a in (result.scope, result.operation, result.target)
            if a.level not in ("minimal", "low")
        )
        return ("WARN" if result.level == "critical" else "INFO"), f"{result.level} risk: {reasons}"
    return "OK", f"{result.level} risk"


def _scan_permission_rules(cwd: str) -> list[tuple[str, str, str, str, str]]:
    """All rules from the settings files as (source, kind, pattern, level, reason)."""
    results = []
    seen = set()
    for settings_path in settings_files(project_dir(cwd)):
        for kind in ("allow", "deny"):
            for pattern in load_permission_list(settings_path, kind):
                if (kind, pattern) in seen:
                    continue
                seen.add((kind, pattern))
                level, reason = _classify_permission(pattern, kind, cwd)
                results.append((str(settings_path), kind, pattern, level, reason))
    return results


def _parse_log_for_decisions(path: Path, limit: int = 50) -> list[tuple[str, str]]:
    """(subject, decision) pairs from the audit log, most recent last."""
    if not path.exists():
        return []
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        logger.debug("cannot read %s: %s", path, e)
        return []

    decisions = []
    subject = ""
    for line in lines:
        if "EVALUATING [" in line:
            subject = line.split("]: ", 1)[-1].strip()
        elif "DECISION: " in line:
            verdict = line.split("DECISION: ", 1)[1].split(" ", 1)[0]
            decisions.append((subject, verdict))
    return decisions[-limit:]


@main.command()
@click.option("--cwd", type=click.Path(file_okay=False), help="Project directory (defaults to current)")
@click.option("--log", "scan_log", is_flag=True, help="Also summarize recent decisions from the audit log")
@click.option("--limit", "-n", default=50, help="Number of recent log entries to summarize")
def audit(cwd: Optional[str], scan_log: bool, limit: int):
    """Audit permission rules for dangerous wildcards."""
    cwd = os.path.abspath(cwd or os.getcwd())
    console.print("[bold]Scanning permission rules...[/bold]\n")

    results = _scan_permission_rules(cwd)
    if not results:
        console.print("[yellow]No permission rules found[/yellow]")
        console.print("[dim]Permission rules are set via Claude Code's /permissions command[/dim]")
    else:
        counts = {"WARN": 0, "INFO": 0, "OK": 0}
        current_source = None
        for source, kind, pattern, level, reason in results:
            if source != current_source:
                console.print(f"[dim]{source}[/dim]")
                current_source = source
            counts[level] += 1
            if level == "WARN":
                console.print(f"  [red][WARN][/red] {kind}: {escape(pattern)} - {reason}")
            elif level == "INFO":
                console.print(f"  [yellow][INFO][/yellow] {kind}: {escape(pattern)} - {reason}")
            else:
                console.print(f"  [green][OK][/green] {kind}: {escape(pattern)} - {reason}")

        console.print(f"\n{counts['WARN']} warnings, {counts['INFO']} info, {counts['OK']} OK")
        if counts["WARN"]:
            console.print("\n[yellow]TIP: Narrow or remove the flagged rules so the gatekeeper reviews those commands.[/yellow]")

    if scan_log:
        path = log_path()
        decisions = _parse_log_for_decisions(path, limit=limit)
        console.print(f"\n[bold]Last {len(decisions)} decisions from {path}[/bold]")
        if not decisions:
            console.print("[yellow]No decisions logged yet[/yellow]")
            return
        table = Table(show_header=True)
        table.add_column("Decision")
        table.add_column("Subject")
        for subject, verdict in decisions:
            style = VERDICT_STYLES.get(verdict.lower(), "dim")
            table.add_row(f"[{style}]{verdict}[/{style}]", escape(subject))
        console.print(table)


if __name__ == "__main__":
    main()
