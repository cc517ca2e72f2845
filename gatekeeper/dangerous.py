"""Default dangerous-command checker.

Runs on every atomic Bash command before any allow rule is consulted, so a
broad ``Bash(git:*)`` or ``Bash(rm:*)`` rule can never wave these through.

Two severities:
  deny           force pushes, forced rm, writes to .git
  manual review  everything that is legitimate sometimes but never blindly
                 (privilege escalation, disk tools, credential reads, ...)
"""

from __future__ import annotations

import re

from pydantic import BaseModel

from gatekeeper.tokenizer import strip_quotes, tokenize, unquote


class DangerousCommandResult(BaseModel):
    """Verdict of the dangerous-command checker for one atomic command."""

    is_dangerous: bool = False
    requires_manual_review: bool = False
    reason: str = ""


SAFE = DangerousCommandResult()


def _deny(reason: str) -> DangerousCommandResult:
    return DangerousCommandResult(is_dangerous=True, reason=reason)


def _review(reason: str) -> DangerousCommandResult:
    return DangerousCommandResult(
        is_dangerous=True, requires_manual_review=True, reason=reason,
    )


# --- git ---

# global options before the subcommand, e.g. git -C repo push
GIT_OPTS = r"(?:-\S+\s+(?:[^-\s]\S*\s+)?)*"

GIT_PUSH_RE = re.compile(r"^git\s+" + GIT_OPTS + r"push\b")
FORCE_PUSH_RE = re.compile(r"(?:^|\s)(?:-f|--force|--force-with-lease(?:=\S*)?|-[a-zA-Z]*f[a-zA-Z]*)(?:\s|$)")
# +refspec forces a single ref
FORCE_REFSPEC_RE = re.compile(r"\s\+[^\s]+")

GIT_COMMIT_RE = re.compile(r"^git\s+" + GIT_OPTS + r"commit\b")
COMMIT_BYPASS_RE = re.compile(r"(?:^|\s)(?:--no-verify|-[a-zA-Z]*n[a-zA-Z]*)(?:\s|$)")
GPGSIGN_OFF_RE = re.compile(r"-c\s+commit\.gpgsign=false", re.IGNORECASE)

GIT_CONFIG_RE = re.compile(r"^git\s+" + GIT_OPTS + r"config\b")
GIT_CONFIG_READ_RE = re.compile(r"(?:^|\s)(?:--get|--get-all|--get-regexp|--list|-l)(?:\s|$)")

GIT_ENV_OVERRIDE_RE = re.compile(r"^(?:GIT_\w*=|EMAIL=|USER=|AUTHOR=|COMMITTER=)")
GIT_ANYWHERE_RE = re.compile(r"(?:^|\s)git\s")

# --- rm ---

RM_RE = re.compile(r"^rm\s")
RM_FORCE_RE = re.compile(r"(?:^|\s)(?:-[a-zA-Z]*f[a-zA-Z]*|--force)(?:\s|$)")
GIT_DIR_WRITE_RE = re.compile(r"^(?:rm|mv|rmdir)\s")
GIT_DIR_TARGET_RE = re.compile(r"(?:^|/)\.git\*?(?:/|$)")

# --- manual review ---

REVIEW_RULES = [
    (re.compile(r"\bsudo\s"), "privilege escalation (sudo)"),
    (re.compile(r"\bsu\s+-"), "privilege escalation (su)"),
    (re.compile(r"\bdoas\s"), "privilege escalation (doas)"),
    (re.compile(r"\brunas\s", re.IGNORECASE), "privilege escalation (runas)"),
    (re.compile(r"\bdd\s+if="), "raw disk copy (dd)"),
    (re.compile(r"\bmkfs\b"), "filesystem creation (mkfs)"),
    (re.compile(r"\bfdisk\b"), "partition editing (fdisk)"),
    (re.compile(r"\bdiskpart\b", re.IGNORECASE), "partition editing (diskpart)"),
    (re.compile(r"\bformat\s+[A-Z]:", re.IGNORECASE), "drive format"),
    (re.compile(
        r"(?:cat|head|tail|less|more|strings|grep|awk|sed|cp|scp|base64|xxd)\s+.*"
        r"(?:~/?\.|/home/\w+/\.|\.)(?:ssh|aws|kube|gnupg)/",
        re.IGNORECASE,
    ), "credential directory read"),
    (re.compile(
        r"(?:cat|head|tail|less|more|strings|grep|awk|sed|cp)\s+.*/etc/(?:passwd|shadow|sudoers)",
        re.IGNORECASE,
    ), "system account file read"),
    (re.compile(r"\bbase64\s+(?:-d|--decode|-D)\b"), "encoded payload (base64 decode)"),
    (re.compile(r"powershell(?:\.exe)?\s+-[Ee](?:ncodedCommand|nc)?\s"), "encoded PowerShell command"),
    (re.compile(r"\bnc\s+(?:-\w*\s+)*-\w*l"), "network listener (nc)"),
    (re.compile(r"\bncat\b.*\s-\w*l"), "network listener (ncat)"),
    (re.compile(r"/dev/(?:tcp|udp)/"), "reverse shell (/dev/tcp)"),
    (re.compile(r"\breg\s+(?:add|delete)\b", re.IGNORECASE), "registry modification"),
    (re.compile(r"\bcrontab\b"), "scheduled task persistence (crontab)"),
    (re.compile(r"\bschtasks\b", re.IGNORECASE), "scheduled task persistence (schtasks)"),
    (re.compile(r"\bchmod\s+(?:-R\s+)?0?777\b"), "world-writable permissions"),
    (re.compile(r"\bkill\s+-9\s+1\b"), "killing init"),
    (re.compile(r"\b(?:psql|mysql)\b.*(?:-c|-e|--command|--execute)\s+[\"']?\s*(?:DROP|TRUNCATE)\b",
                re.IGNORECASE), "destructive SQL"),
    (re.compile(r"\bmongo(?:sh)?\b.*--eval\s", re.IGNORECASE), "inline database script"),
    (re.compile(r"\b(?:perl|ruby)\s+-e\b"), "inline script execution"),
]


def _base_command(command: str) -> str:
    """Command with its leading word unquoted and reduced to a bare program name.

    >>> _base_command("/usr/bin/git push -f")
    'git push -f'
    >>> _base_command("r''m -rf x")
    'rm -rf x'
    """
    words = tokenize(command)
    if not words:
        return ""
    head = unquote(words[0]).rsplit("/", 1)[-1]
    return " ".join([head] + words[1:])


def _check_git(cmd: str) -> DangerousCommandResult:
    if GIT_PUSH_RE.match(cmd):
        if FORCE_PUSH_RE.search(cmd) or FORCE_REFSPEC_RE.search(cmd):
            return _deny("Force push detected")
    if GIT_COMMIT_RE.match(cmd):
        if COMMIT_BYPASS_RE.search(cmd) or GPGSIGN_OFF_RE.search(cmd):
            return _review("Git commit with verification bypass detected")
    elif GPGSIGN_OFF_RE.search(cmd):
        return _review("Git signing disabled via -c")
    if GIT_CONFIG_RE.match(cmd) and not GIT_CONFIG_READ_RE.search(cmd):
        return _review("Git config modification detected")
    return SAFE


def check_dangerous_command(command: str) -> DangerousCommandResult:
    """Classify one atomic command.

    >>> check_dangerous_command("git push --force origin main").reason
    'Force push detected'
    >>> check_dangerous_command("git commit --no-verify -m x").requires_manual_review
    True
    >>> check_dangerous_command("git status").is_dangerous
    False
    """
    raw = command.strip()
    if not raw:
        return SAFE

    if GIT_ENV_OVERRIDE_RE.match(raw) and GIT_ANYWHERE_RE.search(raw):
        return _review("Git environment variable override detected")

    cmd = _base_command(raw)

    if cmd.startswith("git ") or cmd == "git":
        result = _check_git(cmd)
        if result.is_dangerous:
            return result

    if RM_RE.match(cmd) and RM_FORCE_RE.search(cmd):
        return _deny("Force rm detected")

    if GIT_DIR_WRITE_RE.match(cmd):
        targets = [strip_quotes(w) for w in tokenize(cmd)[1:] if not w.startswith("-")]
        if any(GIT_DIR_TARGET_RE.search(t) for t in targets):
            return _deny(".git directory protection")

    for regex, label in REVIEW_RULES:
        if regex.search(raw) or regex.search(cmd):
            return _review(f"Dangerous command requires review: {label}")

    return SAFE
