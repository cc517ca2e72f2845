"""Quote-aware shell word tokenizer and operator splitter.

This is an approximation of POSIX shell lexing, good enough to find the
boundaries that matter for permission checks: words, quotes, backslash
escapes and the control operators that chain commands together.

    >>> tokenize("git commit -m 'fix the thing'")
    ['git', 'commit', '-m', "'fix the thing'"]
    >>> split_operators("ls -la && echo 'a && b' | wc -l")
    ['ls -la', "echo 'a && b'", 'wc -l']
"""

from __future__ import annotations

from typing import Iterator

# Character classes yielded by scan_quotes()
BARE = "bare"        # outside quotes, unescaped
ESCAPED = "escaped"  # backslash or the character it escapes
SINGLE = "single"    # inside '...' (including the delimiters)
DOUBLE = "double"    # inside "..." (including the delimiters)

# Inside double quotes a backslash only escapes these
_DQUOTE_ESCAPABLE = '"\\$`'


def scan_quotes(command: str) -> Iterator[tuple[int, str, str]]:
    """Walk a command string tracking quote and escape state.

    Yields ``(index, char, state)`` for every character, where ``state`` is one
    of BARE, ESCAPED, SINGLE or DOUBLE. Only BARE characters can act as word
    delimiters or shell operators. Unterminated quotes run to end of string.

    >>> [s for _, _, s in scan_quotes("a'b'")]
    ['bare', 'single', 'single', 'single']
    """
    quote = ""
    i = 0
    n = len(command)
    while i < n:
        ch = command[i]
        if ch == "\\" and quote != "'" and i + 1 < n:
            nxt = command[i + 1]
            if not quote or nxt in _DQUOTE_ESCAPABLE:
                yield i, ch, ESCAPED
                yield i + 1, nxt, ESCAPED
                i += 2
                continue
        if quote:
            state = SINGLE if quote == "'" else DOUBLE
            if ch == quote:
                quote = ""
            yield i, ch, state
        elif ch in "'\"":
            quote = ch
            yield i, ch, SINGLE if ch == "'" else DOUBLE
        else:
            yield i, ch, BARE
        i += 1


def tokenize(command: str) -> list[str]:
    """Split a command into words on whitespace outside quotes.

    Quote characters and escaping backslashes are kept in the emitted words;
    use strip_quotes() to unwrap a single word.

    >>> tokenize('echo "a b" c\\\\ d')
    ['echo', '"a b"', 'c\\\\ d']
    >>> tokenize("echo 'unterminated")
    ['echo', "'unterminated"]
    """
    words: list[str] = []
    current: list[str] = []
    for _, ch, state in scan_quotes(command):
        if state == BARE and ch.isspace():
            if current:
                words.append("".join(current))
                current = []
            continue
        current.append(ch)
    if current:
        words.append("".join(current))
    return words


def unquote(word: str) -> str:
    r"""Shell-unquote one word: drop quote delimiters and escaping backslashes.

    >>> unquote("r''m")
    'rm'
    >>> unquote(r"\rm")
    'rm'
    >>> unquote("'a b'\"c\"")
    'a bc'
    """
    out = []
    escaping = False
    for _, ch, state in scan_quotes(word):
        if state == ESCAPED:
            if escaping:
                out.append(ch)
            escaping = not escaping
            continue
        if (state == SINGLE and ch == "'") or (state == DOUBLE and ch == '"'):
            continue
        out.append(ch)
    return "".join(out)


def strip_quotes(token: str) -> str:
    """Remove one matching pair of surrounding quotes.

    >>> strip_quotes("'file.txt'")
    'file.txt'
    >>> strip_quotes('"a')
    '"a'
    """
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "'\"":
        return token[1:-1]
    return token


def _operator_width(command: str, i: int) -> int:
    """Length of the control operator starting at ``command[i]``, or 0."""
    ch = command[i]
    nxt = command[i + 1] if i + 1 < len(command) else ""
    prev = command[i - 1] if i > 0 else ""
    if ch in ";\n":
        return 1
    if ch == "&":
        if nxt == "&":
            return 2
        # redirections: 2>&1, &>file, <&3
        if prev in "<>" or nxt == ">":
            return 0
        return 1
    if ch == "|":
        # >| is a clobbering redirect
        if prev == ">":
            return 0
        if nxt in "|&":
            return 2
        return 1
    return 0


def split_operators(command: str) -> list[str]:
    """Split a command line on ``&&``, ``||``, ``;``, ``|``, ``|&``, ``&`` and newlines.

    Operators inside quotes, after a backslash, or nested inside ``$( )``,
    ``<( )``, ``>( )``, ``( )`` or backticks do not split. Segments are
    trimmed and empty ones dropped.

    >>> split_operators("a; b || c & d")
    ['a', 'b', 'c', 'd']
    >>> split_operators("echo $(a && b); c 2>&1")
    ['echo $(a && b)', 'c 2>&1']
    """
    segments: list[str] = []
    current: list[str] = []
    depth = 0
    in_backtick = False
    skip_to = -1
    for i, ch, state in scan_quotes(command):
        if i <= skip_to:
            continue
        if ch == "`" and state in (BARE, DOUBLE):
            in_backtick = not in_backtick
        elif state == BARE and not in_backtick:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth = max(depth - 1, 0)
            elif depth == 0:
                width = _operator_width(command, i)
                if width:
                    segments.append("".join(current))
                    current = []
                    skip_to = i + width - 1
                    continue
        current.append(ch)
    segments.append("".join(current))
    return [s.strip() for s in segments if s.strip()]
