"""PreToolUse hook entry point.

Reads the hook payload from stdin, evaluates it and prints the decision.

Output format (PreToolUse):
  Allow:  {"hookSpecificOutput":{"hookEventName":"PreToolUse","permissionDecision":"allow",...}}
  Deny:   same shape with "deny"
  Ask:    same shape with "ask"
  Pass:   exit 0, no output (Claude Code's normal permission check)
  Error:  malformed input exits 0 with no output; evaluation errors become "ask"
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gatekeeper.audit import configure_audit_log, log_evaluation
from gatekeeper.engine import Decision, Evaluation, evaluate
from gatekeeper.settings import build_context, debug_enabled, log_path

logger = logging.getLogger(__name__)


class HookInput(BaseModel):
    """The subset of the PreToolUse payload the gatekeeper reads."""

    model_config = ConfigDict(extra="ignore")

    tool_name: str = ""
    tool_input: dict[str, Any] = Field(default_factory=dict)
    cwd: str = ""
    session_id: str = ""
    hook_event_name: str = "PreToolUse"


def run(
    payload: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Optional[dict[str, Any]]:
    """Evaluate one hook payload and return the hook output (None = pass)."""
    hook_input = HookInput.model_validate(payload)
    if not hook_input.tool_name:
        return None

    cwd = hook_input.cwd or os.getcwd()
    ctx = build_context(cwd, hook_input.tool_name, environ, home)
    try:
        evaluation = evaluate(hook_input.tool_name, hook_input.tool_input, ctx)
    except Exception as e:
        logger.exception("evaluation failed for %s", hook_input.tool_name)
        evaluation = Evaluation(
            tool_name=hook_input.tool_name,
            subject=str(hook_input.tool_input.get("command") or hook_input.tool_input.get("file_path") or ""),
            decision=Decision(decision="ask", reason=f"Gatekeeper error, manual review required: {e}"),
        )
    log_evaluation(evaluation, hook_input.session_id)
    return evaluation.to_hook_output()


def main(stdin=None, stdout=None) -> int:
    """Hook process entry point; always returns exit status 0."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    try:
        configure_audit_log(log_path(), debug=debug_enabled())
    except OSError as e:
        logger.debug("audit log unavailable, continuing without it: %s", e)

    try:
        payload = json.loads(stdin.read())
    except ValueError:
        logger.debug("hook input is not JSON, passing through")
        return 0
    if not isinstance(payload, dict):
        return 0

    try:
        output = run(payload)
    except ValidationError as e:
        logger.debug("hook input failed validation: %s", e)
        return 0

    if output is not None:
        stdout.write(json.dumps(output) + "\n")
        stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
