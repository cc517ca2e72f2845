"""Decision engine: evaluate a tool call against the permission lists.

Bash commands are decomposed into atomic units and every unit is checked on
its own; the per-unit outcomes are then folded into one verdict:

  any unit denied                  -> deny
  any unit needing review/no match -> ask
  every real unit allowed          -> allow
  nothing but control keywords     -> ask

File tools are checked once against the single path they operate on. A tool
call with nothing to match (no command, no path, no matching bare-tool rule)
produces no decision at all and is passed through.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from gatekeeper.context import EvaluationContext
from gatekeeper.dangerous import DangerousCommandResult, check_dangerous_command
from gatekeeper.decompose import decompose, is_control_keyword
from gatekeeper.patterns import (
    Pattern,
    check_file_permissions,
    command_forms,
    edit_patterns,
    extract_path,
    first_match,
    is_safe_builtin_command,
    matches,
    parse_patterns,
)
from gatekeeper.risk import (
    RiskAssessment,
    RiskLevel,
    assess_operation,
    assess_scope,
    assess_target,
    combine,
    max_risk,
    risk_rank,
)
from gatekeeper.sed_parser import parse_in_place_edit
from gatekeeper.tokenizer import strip_quotes, tokenize

logger = logging.getLogger(__name__)

Verdict = Literal["allow", "deny", "ask"]
Outcome = Literal["allow", "deny", "ask", "no_match", "skip"]
DangerousCommandChecker = Callable[[str], DangerousCommandResult]

HOOK_EVENT = "PreToolUse"


class Decision(BaseModel):
    """Final verdict for one tool call."""

    model_config = ConfigDict(frozen=True)

    decision: Verdict
    reason: str


class UnitResult(BaseModel):
    """Outcome for one atomic command (or the single path of a file tool)."""

    unit: str
    outcome: Outcome
    pattern: Optional[str] = None
    reason: str = ""
    risk: RiskLevel = "minimal"


class Evaluation(BaseModel):
    """Everything an evaluation produced; ``decision`` is None for pass-through."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    subject: str = ""
    decision: Optional[Decision] = None
    units: list[UnitResult] = Field(default_factory=list)
    risk: RiskLevel = "minimal"

    @property
    def verdict(self) -> Optional[Verdict]:
        return self.decision.decision if self.decision else None

    def audit_record(self) -> dict[str, Any]:
        """Plain-dict form for logs and ``--json`` output."""
        return self.model_dump(mode="json")

    def to_hook_output(self) -> Optional[dict[str, Any]]:
        """PreToolUse hook response, or None to stay silent.

        >>> Evaluation(tool_name="Read").to_hook_output() is None
        True
        """
        if self.decision is None:
            return None
        return {
            "hookSpecificOutput": {
                "hookEventName": HOOK_EVENT,
                "permissionDecision": self.decision.decision,
                "permissionDecisionReason": self.decision.reason,
            }
        }


# ---------------------------------------------------------------------------
# Risk (informational, never changes the verdict)
# ---------------------------------------------------------------------------

def _looks_like_path(word: str) -> bool:
    return word.startswith(("/", "~", "./", "../")) or ("/" in word and "://" not in word)


def _unit_risk(unit: str, ctx: EvaluationContext) -> RiskLevel:
    words = [strip_quotes(w) for w in tokenize(unit)]
    scopes = [
        assess_scope(f"Bash({w})", ctx.cwd, ctx.home_dir, ctx.workspace_dir)
        for w in words[1:] if _looks_like_path(w)
    ]
    if scopes:
        scope = max(scopes, key=lambda a: risk_rank(a.level))
    else:
        scope = RiskAssessment(level="minimal", category="scope", reason="no path arguments")
    return combine(scope, assess_operation(f"Bash({unit})"), assess_target(unit))


def _tool_risk(tool_name: str, path: Optional[str], ctx: EvaluationContext) -> RiskLevel:
    pattern = f"{tool_name}({path})" if path else tool_name
    operation = assess_operation(pattern)
    if not path:
        return combine(operation)
    return combine(
        assess_scope(pattern, ctx.cwd, ctx.home_dir, ctx.workspace_dir),
        operation,
        assess_target(path),
    )


# ---------------------------------------------------------------------------
# Bash
# ---------------------------------------------------------------------------

def _evaluate_unit(
    unit: str,
    allow: list[Pattern],
    deny: list[Pattern],
    ctx: EvaluationContext,
    checker: DangerousCommandChecker,
) -> UnitResult:
    risk = _unit_risk(unit, ctx)

    def result(outcome, reason, pattern=None):
        return UnitResult(unit=unit, outcome=outcome, pattern=pattern, reason=reason, risk=risk)

    if is_control_keyword(unit):
        return result("skip", "shell control keyword")

    danger = checker(unit)
    if danger.is_dangerous:
        if danger.requires_manual_review:
            return result("ask", danger.reason)
        return result("deny", danger.reason)

    unit_input = {"command": unit}
    hit = first_match(deny, "Bash", unit_input, ctx, substring=True)
    if hit is not None:
        return result("deny", f"blocked by {hit.raw}", hit.raw)

    forms = command_forms(unit)
    sed = parse_in_place_edit(forms[-1] if forms else unit)
    clean_sed = sed.is_sed_in_place and not sed.parse_error and not sed.contains_glob
    if clean_sed:
        denied_edit = _first_edit_deny(sed.target_files, deny, ctx)
        if denied_edit is not None:
            path, raw = denied_edit
            return result("deny", f"in-place edit of {path} blocked by {raw}", raw)
    elif sed.is_sed_in_place and edit_patterns(deny):
        return result("ask", "in-place edit targets cannot be verified against Edit deny rules")

    if is_safe_builtin_command(unit, ctx.home_dir):
        return result("allow", "built-in safe command")

    hit = first_match(allow, "Bash", unit_input, ctx)
    if hit is not None:
        return result("allow", f"matched {hit.raw}", hit.raw)

    if clean_sed:
        check = check_file_permissions(sed.target_files, allow, ctx)
        if check.all_files_permitted:
            used = sorted({r.matched_pattern for r in check.file_results if r.matched_pattern})
            return result("allow", "all in-place edit targets are editable", ", ".join(used))
        if check.first_denied_file:
            return result("no_match", f"no Edit permission for {check.first_denied_file}")

    return result("no_match", "no allow pattern matched")


def _first_edit_deny(files, deny: list[Pattern], ctx: EvaluationContext):
    for path in files:
        for pattern in edit_patterns(deny):
            if matches(pattern, pattern.tool, {"file_path": path}, ctx, substring=True):
                return path, pattern.raw
    return None


def _describe(result: UnitResult) -> str:
    return f'"{result.unit}" -> {result.pattern or result.reason}'


def _plural(n: int) -> str:
    return f"{n} command" if n == 1 else f"{n} commands"


def aggregate(results: list[UnitResult]) -> Decision:
    """Fold per-unit outcomes into one decision (deny > ask > allow).

    >>> aggregate([UnitResult(unit="ls", outcome="allow", pattern="Bash(ls:*)"),
    ...            UnitResult(unit="make", outcome="no_match")]).decision
    'ask'
    """
    denied = [r for r in results if r.outcome == "deny"]
    if denied:
        return Decision(
            decision="deny",
            reason=f"Blocked by security rules ({_plural(len(denied))}): "
                   + ", ".join(_describe(r) for r in denied),
        )

    pending = [r for r in results if r.outcome in ("ask", "no_match")]
    if pending:
        return Decision(
            decision="ask",
            reason=f"Manual review required ({_plural(len(pending))}): "
                   + ", ".join(
                       f'"{r.unit}" -> {r.reason or "no allow pattern matched"}'
                       for r in pending
                   ),
        )

    allowed = [r for r in results if r.outcome == "allow"]
    if not allowed:
        skipped = ", ".join(f'"{r.unit}"' for r in results) or "(empty)"
        return Decision(
            decision="ask",
            reason=f"Only shell control keywords, nothing to approve: {skipped}",
        )
    return Decision(
        decision="allow",
        reason=f"All commands matched allow patterns ({_plural(len(allowed))}): "
               + ", ".join(_describe(r) for r in allowed),
    )


def evaluate_bash(
    command: Optional[str],
    ctx: EvaluationContext,
    checker: DangerousCommandChecker = check_dangerous_command,
) -> Evaluation:
    """Evaluate a Bash command line unit by unit."""
    if not isinstance(command, str) or not command.strip():
        return Evaluation(tool_name="Bash")

    allow = parse_patterns(ctx.allow_list)
    deny = parse_patterns(ctx.deny_list)
    units = decompose(command)
    results = [_evaluate_unit(unit, allow, deny, ctx, checker) for unit in units]
    decision = aggregate(results)
    logger.debug("bash %r -> %s (%d units)", command[:200], decision.decision, len(results))
    return Evaluation(
        tool_name="Bash",
        subject=command,
        decision=decision,
        units=results,
        risk=max_risk(*(r.risk for r in results)),
    )


def evaluate_tool(
    tool_name: str,
    tool_input: Optional[Mapping],
    ctx: EvaluationContext,
) -> Evaluation:
    """Evaluate a non-Bash tool call against its single path."""
    tool_input = tool_input if isinstance(tool_input, Mapping) else {}
    allow = parse_patterns(ctx.allow_list)
    deny = parse_patterns(ctx.deny_list)
    path = extract_path(tool_name, tool_input)
    risk = _tool_risk(tool_name, path, ctx)
    subject = path or tool_name

    denied = [p.raw for p in deny if matches(p, tool_name, tool_input, ctx, substring=True)]
    if denied:
        unit = UnitResult(unit=subject, outcome="deny", pattern=denied[0],
                          reason=f"blocked by {denied[0]}", risk=risk)
        decision = Decision(decision="deny", reason=f"Matched deny patterns: {', '.join(denied)}")
    else:
        allowed = [p.raw for p in allow if matches(p, tool_name, tool_input, ctx)]
        if allowed:
            unit = UnitResult(unit=subject, outcome="allow", pattern=allowed[0],
                              reason=f"matched {allowed[0]}", risk=risk)
            decision = Decision(decision="allow", reason=f"Matched allow patterns: {', '.join(allowed)}")
        elif path is None:
            # no path and no bare-tool rule: nothing to evaluate
            unit = UnitResult(unit=subject, outcome="no_match", reason="no path to evaluate", risk=risk)
            decision = None
        else:
            unit = UnitResult(unit=subject, outcome="no_match", reason="no pattern matched", risk=risk)
            decision = Decision(decision="ask", reason=f"No patterns matched for {tool_name}: {path}")

    logger.debug("%s %r -> %s", tool_name, subject, decision.decision if decision else "pass")
    return Evaluation(
        tool_name=tool_name,
        subject=subject,
        decision=decision,
        units=[unit],
        risk=risk,
    )


def evaluate(
    tool_name: str,
    tool_input: Optional[Mapping],
    ctx: EvaluationContext,
    checker: DangerousCommandChecker = check_dangerous_command,
) -> Evaluation:
    """Evaluate one tool call.

    >>> ctx = EvaluationContext(cwd="/p", home_dir="/h", allow_list=("Bash(git status:*)",))
    >>> evaluate("Bash", {"command": "git status && docker build ."}, ctx).verdict
    'ask'
    >>> evaluate("Bash", {}, ctx).decision is None
    True
    """
    if not tool_name:
        return Evaluation(tool_name="")
    tool_input = tool_input if isinstance(tool_input, Mapping) else {}
    if tool_name == "Bash":
        return evaluate_bash(tool_input.get("command"), ctx, checker)
    return evaluate_tool(tool_name, tool_input, ctx)


__all__ = [
    "Decision",
    "DangerousCommandChecker",
    "Evaluation",
    "EvaluationContext",
    "UnitResult",
    "aggregate",
    "evaluate",
    "evaluate_bash",
    "evaluate_tool",
]
