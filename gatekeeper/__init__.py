"""
Claude Gatekeeper - command safety evaluation for Claude Code PreToolUse hooks.

Decides whether a proposed Bash command or file tool call should be allowed,
denied, or escalated to the user. The engine decomposes compound command
lines, matches each piece against the allow/deny lists from Claude's settings
files, scores risk, and folds everything into one verdict with a reason.

  gatekeeper hook      - PreToolUse hook entry point (reads JSON from stdin)
  gatekeeper check     - evaluate a command from the terminal
  gatekeeper risk      - score a permission pattern
  gatekeeper audit     - review permission rules for risky wildcards
"""

__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy imports so `import gatekeeper` stays cheap inside the hook."""
    _exports = {
        "evaluate": "gatekeeper.engine",
        "Decision": "gatekeeper.engine",
        "Evaluation": "gatekeeper.engine",
        "EvaluationContext": "gatekeeper.context",
        "decompose": "gatekeeper.decompose",
        "matches": "gatekeeper.patterns",
        "parse_in_place_edit": "gatekeeper.sed_parser",
    }
    if name in _exports:
        import importlib
        module = importlib.import_module(_exports[name])
        return getattr(module, name)
    raise AttributeError(f"module 'gatekeeper' has no attribute {name!r}")


__all__ = [
    "__version__",
]
