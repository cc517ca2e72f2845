"""Compound command decomposition.

Breaks a shell command line into the atomic commands it would run, so each
one can be checked against the permission lists on its own. Three things
produce units:

  1. control operators (``&&``, ``||``, ``;``, ``|``, ``&``, newlines)
  2. wrappers that run another command (``timeout``, ``xargs``, ``env``,
     ``sh -c``, ``find -exec`` ...)
  3. command and process substitutions and subshell groups

    >>> decompose("timeout 30 rm -rf /tmp/x")
    ['timeout 30 rm -rf /tmp/x', 'rm -rf /tmp/x']
    >>> decompose("echo $(whoami) && ls")
    ['echo $(whoami)', 'whoami', 'ls']
"""

from __future__ import annotations

import logging
import re

from gatekeeper.tokenizer import (
    BARE,
    DOUBLE,
    scan_quotes,
    split_operators,
    strip_quotes,
    tokenize,
)

logger = logging.getLogger(__name__)

ENV_ASSIGN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")

# Units that are pure control-flow syntax and run nothing themselves
CONTROL_KEYWORDS = frozenset({
    "if", "then", "else", "elif", "fi",
    "for", "while", "until", "do", "done",
    "case", "esac", "{", "}", "(", ")", "!",
})

# Keywords that may prefix a real command within one unit ("then rm x")
LEADING_KEYWORDS = frozenset({
    "then", "do", "else", "elif", "if", "while", "until", "!", "{",
})

SHELLS = frozenset({"sh", "bash", "zsh", "dash", "ksh"})
PACKAGE_RUNNERS = frozenset({"npx", "pnpx", "bunx"})

# xargs flags whose value is a separate word
XARGS_VALUE_FLAGS = frozenset({"-I", "-L", "-n", "-P", "-d", "-E", "-s", "-a"})

# timeout flags whose value is a separate word
TIMEOUT_VALUE_FLAGS = frozenset({"-s", "-k", "--signal", "--kill-after"})

FIND_EXEC_RE = re.compile(
    r"""-(?:exec|execdir|ok|okdir)\s+(.+?)\s*(?:\\;|';'|";"|;|\+)(?=\s|$)"""
)
FIND_EXEC_TAIL_RE = re.compile(r"-(?:exec|execdir|ok|okdir)\s+(.+)$")


def is_control_keyword(unit: str) -> bool:
    """True for units that are only shell control-flow syntax.

    >>> is_control_keyword("done")
    True
    >>> is_control_keyword("done_task.sh")
    False
    """
    return unit.strip() in CONTROL_KEYWORDS


def _base_name(word: str) -> str:
    """Command name without its directory (``/usr/bin/env`` -> ``env``)."""
    return strip_quotes(word).rsplit("/", 1)[-1]


def _skip_flags(words: list[str], start: int, value_flags=frozenset()) -> int:
    """Index of the first word at or after ``start`` that is not a flag."""
    i = start
    while i < len(words) and words[i].startswith("-") and words[i] != "-":
        if words[i] in value_flags:
            i += 1
        i += 1
    return i


def _shell_script(words: list[str]) -> str | None:
    """The script of ``sh -c '...'`` style invocations."""
    for i, word in enumerate(words[1:], start=1):
        if not word.startswith("-"):
            return None
        # -c, or a cluster ending in c such as -lc / -ec
        if word != "--" and word[1:].isalpha() and word.endswith("c"):
            if i + 1 < len(words):
                return strip_quotes(words[i + 1])
            return None
    return None


def _find_exec_commands(unit: str) -> list[str]:
    found = [m.group(1).strip() for m in FIND_EXEC_RE.finditer(unit)]
    if not found:
        tail = FIND_EXEC_TAIL_RE.search(unit)
        if tail:
            found.append(tail.group(1).strip())
    return [f for f in found if f]


def unwrap_command(unit: str) -> list[str]:
    """Commands run by a wrapper unit, or an empty list if it wraps nothing.

    >>> unwrap_command("xargs -I {} rm {}")
    ['rm {}']
    >>> unwrap_command("FOO=1 BAR=2 make test")
    ['make test']
    >>> unwrap_command("ls -la")
    []
    """
    words = tokenize(unit)
    if not words:
        return []

    if ENV_ASSIGN_RE.match(words[0]):
        i = 0
        while i < len(words) and ENV_ASSIGN_RE.match(words[i]):
            i += 1
        rest = words[i:]
        return [" ".join(rest)] if rest else []

    head = _base_name(words[0])
    rest: list[str] = []

    if head == "env":
        i = 1
        while i < len(words):
            word = words[i]
            if word in ("-u", "--unset", "-C", "--chdir", "-S", "--split-string"):
                i += 2
            elif word.startswith("-") or ENV_ASSIGN_RE.match(word):
                i += 1
            else:
                break
        rest = words[i:]
    elif head == "timeout":
        i = _skip_flags(words, 1, TIMEOUT_VALUE_FLAGS)
        rest = words[i + 1:]
    elif head == "time":
        rest = words[_skip_flags(words, 1):]
    elif head in PACKAGE_RUNNERS:
        rest = words[_skip_flags(words, 1):]
    elif head == "nohup":
        rest = words[1:]
    elif head == "nice":
        rest = words[_skip_flags(words, 1, frozenset({"-n", "--adjustment"})):]
    elif head == "xargs":
        rest = words[_skip_flags(words, 1, XARGS_VALUE_FLAGS):]
    elif head in SHELLS:
        script = _shell_script(words)
        return [script] if script and script.strip() else []
    elif words[0] in LEADING_KEYWORDS:
        rest = words[1:]
    else:
        return _find_exec_commands(unit)

    return [" ".join(rest)] if rest else []


def extract_substitutions(command: str) -> list[str]:
    """Inner text of the outermost substitutions and subshell groups.

    Covers ``$( )``, backticks, ``<( )``, ``>( )`` and bare ``( )``. Nothing
    inside single quotes is extracted; ``$(( ))`` arithmetic is ignored. An
    unterminated span runs to end of string.

    >>> extract_substitutions("echo $(date) `id` '$(not this)'")
    ['date', 'id']
    """
    found: list[str] = []
    # (index of '(', state it was opened in, arithmetic?)
    stack: list[tuple[int, str, bool]] = []
    backtick_start = -1
    for i, ch, state in scan_quotes(command):
        if state not in (BARE, DOUBLE):
            continue
        if ch == "`":
            if backtick_start < 0:
                if not stack:
                    backtick_start = i
            else:
                found.append(command[backtick_start + 1:i])
                backtick_start = -1
            continue
        if backtick_start >= 0:
            continue
        prev = command[i - 1] if i > 0 else ""
        if ch == "(":
            if state == BARE or prev == "$":
                arithmetic = prev == "$" and command[i + 1:i + 2] == "("
                stack.append((i, state, arithmetic))
        elif ch == ")" and stack and stack[-1][1] == state:
            start, _, arithmetic = stack.pop()
            if not stack and not arithmetic:
                found.append(command[start + 1:i])
    if backtick_start >= 0:
        found.append(command[backtick_start + 1:])
    elif stack:
        start, _, arithmetic = stack[0]
        if not arithmetic:
            found.append(command[start + 1:])
    return [f.strip() for f in found if f.strip()]


def _collect(unit: str, units: list[str]) -> None:
    if unit in units:
        return
    units.append(unit)
    derived = unwrap_command(unit) + extract_substitutions(unit)
    for inner in derived:
        for segment in split_operators(inner):
            _collect(segment, units)


def decompose(command: str) -> list[str]:
    """Split a command line into its atomic commands.

    Each unit is followed by the units derived from it (unwrapped wrappers,
    substitutions), duplicates are dropped, and a command with no operators
    comes back as its trimmed self. The result is never empty.

    >>> decompose("echo 'a && b'")
    ["echo 'a && b'"]
    >>> decompose("   ")
    ['']
    """
    units: list[str] = []
    for segment in split_operators(command):
        _collect(segment, units)
    if not units:
        units.append(command.strip())
    logger.debug("decomposed %r into %d unit(s)", command[:200], len(units))
    return units
