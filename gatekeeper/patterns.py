"""Permission pattern parsing and matching.

Patterns use Claude Code's permission syntax:

  Bash(git status:*)    command prefix, matched at a word boundary
  Bash(npm test)        exact command
  Read(src/**)          gitignore-style path glob for a file tool
  Edit(!secrets/**)     negated path glob
  WebSearch             bare tool name, every use of the tool

Each raw string is parsed once into a small tagged model and then matched
without I/O.
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from gatekeeper.context import EvaluationContext
from gatekeeper.tokenizer import strip_quotes, tokenize, unquote

logger = logging.getLogger(__name__)

PATTERN_RE = re.compile(r"^([^()\s]+)(?:\((.*)\))?$", re.DOTALL)

# Tool input keys that carry the path a file tool operates on
PATH_KEYS = ("file_path", "path", "notebook_path")

# Tools that default to the working directory when no path is given
DIRECTORY_TOOLS = frozenset({"Grep", "Glob", "LS"})

EDIT_TOOLS = frozenset({"Edit", "MultiEdit"})


class BashPrefix(BaseModel):
    """``Bash(prefix:*)``"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bash_prefix"] = "bash_prefix"
    raw: str
    prefix: str


class BashExact(BaseModel):
    """``Bash(command)``"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bash_exact"] = "bash_exact"
    raw: str
    command: str


class PathGlob(BaseModel):
    """``Tool(glob)`` or ``Tool(!glob)``"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["path_glob"] = "path_glob"
    raw: str
    tool: str
    glob: str
    negated: bool = False


class BareTool(BaseModel):
    """``Tool`` with no argument"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bare_tool"] = "bare_tool"
    raw: str
    tool: str


Pattern = Union[BashPrefix, BashExact, PathGlob, BareTool]


def parse_pattern(raw: str) -> Optional[Pattern]:
    """Parse a permission string; empty or malformed strings give None.

    >>> parse_pattern("Bash(git status:*)").prefix
    'git status'
    >>> parse_pattern("Read(!docs/**)").negated
    True
    >>> parse_pattern("Bash(**)") is None
    True
    """
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text:
        return None
    m = PATTERN_RE.match(text)
    if not m:
        logger.debug("unparseable permission pattern: %r", raw)
        return None
    tool, body = m.group(1), m.group(2)
    if body is None:
        return BareTool(raw=text, tool=tool)
    if tool == "Bash":
        if not body.strip() or body.strip() == "**":
            return None
        if ":" in body:
            prefix = body.rsplit(":", 1)[0].strip()
            if not prefix:
                return None
            return BashPrefix(raw=text, prefix=prefix)
        return BashExact(raw=text, command=body.strip())
    negated = body.startswith("!")
    glob = body[1:] if negated else body
    if not glob:
        return None
    return PathGlob(raw=text, tool=tool, glob=glob, negated=negated)


def parse_patterns(raw_patterns) -> list[Pattern]:
    """Parse a list of permission strings, dropping the invalid ones."""
    parsed = []
    for raw in raw_patterns:
        pattern = parse_pattern(raw)
        if pattern is not None:
            parsed.append(pattern)
    return parsed


# ---------------------------------------------------------------------------
# Bash matching
# ---------------------------------------------------------------------------

def _clean_command(command) -> str:
    if not isinstance(command, str):
        return ""
    return command.strip().lstrip("&").strip()


def command_forms(command) -> list[str]:
    """The command as written, with its first word unquoted, and as a bare program name.

    >>> command_forms("\\\\rm -rf x")
    ['\\\\rm -rf x', 'rm -rf x']
    >>> command_forms("/bin/rm x")
    ['/bin/rm x', 'rm x']
    """
    cleaned = _clean_command(command)
    if not cleaned:
        return []
    forms = [cleaned]
    words = tokenize(cleaned)
    head = unquote(words[0])
    names = [head]
    if head.startswith("/"):
        names.append(head.rsplit("/", 1)[-1])
    for name in names:
        form = " ".join([name] + words[1:])
        if name and form not in forms:
            forms.append(form)
    return forms


def _matches_prefix(command: str, prefix: str) -> bool:
    """Prefix match at a word boundary, or the prefix as a run of whole words.

    >>> _matches_prefix("git status -s", "git status")
    True
    >>> _matches_prefix("git statuses", "git status")
    False
    >>> _matches_prefix("timeout 15 pnpm test", "pnpm")
    True
    """
    prefix = prefix.strip()
    if not prefix or prefix == "**":
        return False
    escaped = re.escape(prefix)
    boundary = r"(?=\s|$)" if prefix[-1].isalnum() or prefix[-1] == "_" else ""
    if re.match(escaped + boundary, command):
        return True
    return re.search(r"(?:^|\s)" + escaped + r"(?=\s|$)", command) is not None


# ---------------------------------------------------------------------------
# Path matching
# ---------------------------------------------------------------------------

def _glob_to_regex(glob: str) -> str:
    """Translate a glob: ``**`` spans segments, ``*`` and ``?`` stay in one.

    >>> _glob_to_regex("src/**/*.ts")
    'src/(?:.*/)?[^/]*\\\\.ts'
    """
    out = []
    i = 0
    while i < len(glob):
        ch = glob[i]
        if glob.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if glob.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        if ch == "*":
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
        i += 1
    return "".join(out)


def _escapes_root(path: str) -> bool:
    return path == ".." or path.startswith("../") or "/../" in path or path.endswith("/..")


def _under(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory.rstrip("/") + "/")


def match_gitignore_pattern(file_path: str, pattern: str, substring: bool = False) -> bool:
    """Match a path against a gitignore-style glob.

    With ``substring`` an unanchored ``dir/**`` matches wherever ``dir``
    appears in the path, not only at a segment boundary.

    >>> match_gitignore_pattern("src/a/b.ts", "src/**")
    True
    >>> match_gitignore_pattern("../etc/passwd", "**")
    False
    >>> match_gitignore_pattern("/repo/config/app.env", "*.env")
    True
    >>> match_gitignore_pattern("lib/node_modules/x/index.js", "node_modules")
    True
    """
    try:
        return _match_gitignore(file_path, pattern, substring)
    except re.error as e:
        logger.debug("glob %r could not be compiled: %s", pattern, e)
        return False


def _match_gitignore(file_path: str, pattern: str, substring: bool = False) -> bool:
    if pattern.endswith("/") and pattern != "/":
        return _under(file_path, pattern.rstrip("/"))

    if pattern == "**":
        return not _escapes_root(file_path)

    if pattern.endswith("/**"):
        prefix = pattern[:-3]
        if prefix == "":
            return file_path.startswith("/")
        if prefix == ".":
            # ./** is relative paths only
            return not file_path.startswith("/") and not _escapes_root(file_path)
        regex = _glob_to_regex(prefix)
        if prefix.startswith("/"):
            return re.match(regex + r"(?:/|$)", file_path) is not None
        if substring:
            return re.search(regex, file_path) is not None
        return re.search(r"(?:^|/)" + regex + r"(?:/|$)", file_path) is not None

    if "/**/" in pattern:
        # prefix and suffix in order; the suffix also covers what lies beneath it
        regex = _glob_to_regex(pattern) + r"(?:/.*)?"
        if pattern.startswith("/"):
            return re.fullmatch(regex, file_path) is not None
        return re.search(r"(?:^|/)" + regex + "$", file_path) is not None

    if pattern.startswith("/"):
        # an anchored path also covers everything beneath it
        return re.fullmatch(_glob_to_regex(pattern) + r"(?:/.*)?", file_path) is not None

    if "/" in pattern:
        rel = pattern[2:] if pattern.startswith("./") else pattern
        return re.search(r"(?:^|/)" + _glob_to_regex(rel) + r"(?:/.*)?$", file_path) is not None

    if "." in pattern:
        basename = posixpath.basename(file_path)
        return re.fullmatch(_glob_to_regex(pattern), basename) is not None

    segment_re = re.compile(_glob_to_regex(pattern))
    return any(segment_re.fullmatch(seg) for seg in file_path.split("/") if seg)


def _expand_home(path: str, ctx: Optional[EvaluationContext]) -> str:
    if ctx is not None and (path == "~" or path.startswith("~/")):
        return ctx.home_dir.rstrip("/") + path[1:]
    return path


def normalize_glob(glob: str, ctx: Optional[EvaluationContext] = None) -> str:
    """Expand ``~`` and ``./`` in a pattern glob against the context."""
    if ctx is None:
        return glob
    glob = _expand_home(glob, ctx)
    if glob.startswith("./") and glob != "./**":
        return ctx.cwd.rstrip("/") + glob[1:]
    return glob


def normalize_path(path: str, glob: str, ctx: Optional[EvaluationContext] = None) -> str:
    """Bring a tool path into the same form as the glob it is matched against.

    ``..`` segments are always collapsed.

    >>> normalize_path("src/../../etc/passwd", "src/**")
    '../etc/passwd'
    """
    if ctx is not None:
        path = _expand_home(path, ctx)
        glob_absolute = glob.startswith(("/", "~")) or (glob.startswith("./") and glob != "./**")
        if not path.startswith("/") and glob_absolute:
            path = posixpath.join(ctx.cwd, path)
        elif path.startswith("/") and not glob_absolute and _under(path, ctx.cwd):
            path = posixpath.relpath(path, ctx.cwd)
    return posixpath.normpath(path) if path else path


def extract_path(tool_name: str, tool_input: Optional[Mapping]) -> Optional[str]:
    """The path a file tool call operates on, or None.

    >>> extract_path("Read", {"file_path": "a.txt"})
    'a.txt'
    >>> extract_path("Grep", {"pattern": "x"})
    '.'
    """
    if tool_input:
        for key in PATH_KEYS:
            value = tool_input.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if tool_name in DIRECTORY_TOOLS:
        return "."
    return None


def matches(
    pattern: Union[str, Pattern, None],
    tool_name: str,
    unit_input: Optional[Mapping],
    ctx: Optional[EvaluationContext] = None,
    substring: bool = False,
) -> bool:
    """Does one permission pattern cover this tool call?

    Bash patterns are tried against every form in command_forms(), so
    quoting or a full path on the program name does not hide it. Deny lists
    pass ``substring=True`` for the looser unanchored ``dir/**`` match.

    >>> matches("Bash(git status:*)", "Bash", {"command": "git status -s"})
    True
    >>> matches("Read(!secrets/**)", "Read", {"file_path": "secrets/key"})
    False
    """
    parsed = parse_pattern(pattern) if isinstance(pattern, str) else pattern
    if parsed is None:
        return False

    if isinstance(parsed, BareTool):
        return parsed.tool == tool_name

    if isinstance(parsed, (BashPrefix, BashExact)):
        if tool_name != "Bash" or not unit_input:
            return False
        forms = command_forms(unit_input.get("command"))
        if isinstance(parsed, BashExact):
            return parsed.command in forms
        return any(_matches_prefix(form, parsed.prefix) for form in forms)

    if parsed.tool != tool_name:
        return False
    path = extract_path(tool_name, unit_input)
    if path is None:
        return parsed.glob == "**" and not parsed.negated
    glob = normalize_glob(parsed.glob, ctx)
    hit = match_gitignore_pattern(normalize_path(path, parsed.glob, ctx), glob, substring)
    return not hit if parsed.negated else hit


def first_match(
    patterns: list[Pattern],
    tool_name: str,
    unit_input: Optional[Mapping],
    ctx: Optional[EvaluationContext] = None,
    substring: bool = False,
) -> Optional[Pattern]:
    """First pattern in list order that matches, if any."""
    for pattern in patterns:
        if matches(pattern, tool_name, unit_input, ctx, substring):
            return pattern
    return None


# ---------------------------------------------------------------------------
# Edit-permission inference for in-place edits
# ---------------------------------------------------------------------------

class FileCheckDetail(BaseModel):
    file_path: str
    permitted: bool
    matched_pattern: Optional[str] = None


class FilePermissionCheck(BaseModel):
    all_files_permitted: bool
    file_results: list[FileCheckDetail]
    first_denied_file: Optional[str] = None


def edit_patterns(patterns: list[Pattern]) -> list[Pattern]:
    """Only the Edit/MultiEdit patterns from a parsed list."""
    return [
        p for p in patterns
        if isinstance(p, (PathGlob, BareTool)) and p.tool in EDIT_TOOLS
    ]


def check_file_permissions(
    file_paths: list[str],
    patterns,
    ctx: Optional[EvaluationContext] = None,
) -> FilePermissionCheck:
    """Check every file against the Edit/MultiEdit patterns in ``patterns``.

    ``patterns`` may hold raw strings or parsed patterns; non-edit patterns
    are ignored. An empty file list is never "all permitted".
    """
    parsed = [parse_pattern(p) if isinstance(p, str) else p for p in patterns]
    candidates = edit_patterns([p for p in parsed if p is not None])
    results = []
    first_denied = None
    for file_path in file_paths:
        hit = next(
            (p for p in candidates if matches(p, p.tool, {"file_path": file_path}, ctx)),
            None,
        )
        results.append(FileCheckDetail(
            file_path=file_path,
            permitted=hit is not None,
            matched_pattern=hit.raw if hit else None,
        ))
        if hit is None and first_denied is None:
            first_denied = file_path
    return FilePermissionCheck(
        all_files_permitted=bool(file_paths) and first_denied is None,
        file_results=results,
        first_denied_file=first_denied,
    )


# ---------------------------------------------------------------------------
# Built-in safe commands
# ---------------------------------------------------------------------------

FIND_DANGEROUS_RE = [
    re.compile(r"-(?:exec|execdir|ok|okdir)\s+(?:\S*/)?(?:rm|rmdir|mv|shred|unlink)\b"),
    re.compile(r"-exec\s+(?:\S*/)?cp\s.*\s/dev/"),
]
FIND_DANGEROUS_FLAGS = frozenset({
    "-delete", "-execdir", "-ok", "-okdir",
    "-fprint", "-fprint0", "-fprintf", "-fls",
})
SYSTEM_ROOTS = ("/etc", "/proc", "/sys", "/dev", "/var/log", "/usr", "/bin", "/sbin")
SAFE_ABSOLUTE_ROOTS = ("/tmp", "/var/tmp")


def is_safe_find_command(command: str, home_dir: Optional[str] = None) -> bool:
    """Read-only ``find`` over the project, home, or temp directories.

    >>> is_safe_find_command("find . -name '*.py'")
    True
    >>> is_safe_find_command("find . -name '*.pyc' -delete")
    False
    >>> is_safe_find_command("find /etc -name passwd")
    False
    """
    words = [strip_quotes(w) for w in tokenize(command)]
    if not words or words[0] != "find":
        return False
    if any(r.search(command) for r in FIND_DANGEROUS_RE):
        return False
    for word in words[1:]:
        if word in FIND_DANGEROUS_FLAGS:
            return False
        if word.startswith("/") and any(_under(word, root) for root in SYSTEM_ROOTS):
            return False

    start = words[1] if len(words) > 1 else "."
    if start.startswith("-") or start in (".", "./"):
        return True
    if start == "~" or start.startswith("~/"):
        return True
    if start.startswith("/"):
        if home_dir and _under(start, home_dir):
            return True
        return any(_under(start, root) for root in SAFE_ABSOLUTE_ROOTS)
    return "../../../" not in start


def is_safe_builtin_command(command: str, home_dir: Optional[str] = None) -> bool:
    """Commands that are always safe to run without an allow rule.

    >>> is_safe_builtin_command("sleep 5")
    True
    >>> is_safe_builtin_command("sleepy")
    False
    """
    words = command.split()
    if not words:
        return False
    if words[0] == "sleep":
        return True
    if words[0] == "find":
        return is_safe_find_command(command, home_dir)
    return False
