"""Argument parser for in-place editing commands (``sed -i``).

An in-place sed is a file write in disguise, so its target files are checked
against the Edit permissions. The parser walks the tokens once:

    editor name -> flags -> script -> target files

Recognizing the script is heuristic: the first non-flag word is taken as the
script unless ``-e``/``-f`` already supplied one.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from pydantic import BaseModel, Field

from gatekeeper.tokenizer import strip_quotes, tokenize

logger = logging.getLogger(__name__)

GLOB_CHARS_RE = re.compile(r"[*?\[\]{}]")

# Things a sed script usually starts with: a quote, s/, an address, or a command letter
SCRIPT_RE = re.compile(r"""^(?:['"]|s\W|/|\d|\$|[acdginpqxy](?:\W|$))""")

# Short flags that take no argument and may appear in a cluster (-nE)
NO_ARG_FLAGS = frozenset("nrEsuzb")

EMPTY_COMMAND = "Empty command"
NO_TARGETS = "No target files found in sed -i command"


class SedInPlaceParseResult(BaseModel):
    """Outcome of parsing a possible ``sed -i`` command."""

    is_sed_in_place: bool = False
    target_files: list[str] = Field(default_factory=list)
    contains_glob: bool = False
    parse_error: Optional[str] = None
    backup_extension: Optional[str] = None


def _looks_like_script(token: str) -> bool:
    return bool(SCRIPT_RE.match(token))


def parse_in_place_edit(command: str, editor: str = "sed") -> SedInPlaceParseResult:
    """Parse a command line and report the files an in-place edit would touch.

    >>> r = parse_in_place_edit("sed -i 's/a/b/' one.txt 'two.txt'")
    >>> r.is_sed_in_place, r.target_files
    (True, ['one.txt', 'two.txt'])
    >>> parse_in_place_edit("sed 's/a/b/' f.txt").is_sed_in_place
    False
    >>> parse_in_place_edit("sed -i.bak -e 's/a/b/' *.txt").contains_glob
    True
    """
    tokens = tokenize(command.strip())
    if not tokens:
        return SedInPlaceParseResult(parse_error=EMPTY_COMMAND)
    if strip_quotes(tokens[0]) != editor:
        return SedInPlaceParseResult()

    in_place = False
    backup: Optional[str] = None
    script_given = False
    i = 1
    n = len(tokens)

    while i < n:
        token = tokens[i]
        if token == "--":
            i += 1
            break
        if token == "-i":
            in_place = True
            i += 1
            if i < n:
                nxt = tokens[i]
                if nxt in ("''", '""'):
                    backup = ""
                    i += 1
                elif nxt.startswith("."):
                    backup = nxt
                    i += 1
            continue
        if token.startswith("--"):
            name, eq, value = token[2:].partition("=")
            if name == "in-place":
                in_place = True
                if eq:
                    backup = strip_quotes(value)
            elif name in ("expression", "file"):
                script_given = True
                if not eq:
                    i += 1
            elif name == "line-length" and not eq:
                i += 1
            i += 1
            continue
        if token.startswith("-") and len(token) > 1:
            cluster = token[1:]
            consumed_next = False
            for pos, letter in enumerate(cluster):
                if letter == "i":
                    in_place = True
                    suffix = cluster[pos + 1:]
                    if suffix:
                        backup = strip_quotes(suffix)
                    break
                if letter in "ef":
                    script_given = True
                    consumed_next = pos == len(cluster) - 1
                    break
                if letter == "l":
                    consumed_next = pos == len(cluster) - 1
                    break
                if letter not in NO_ARG_FLAGS:
                    logger.debug("unknown sed flag %r in %r", letter, token)
            i += 2 if consumed_next else 1
            continue
        break

    if not in_place:
        return SedInPlaceParseResult()

    targets: list[str] = []
    for token in tokens[i:]:
        if not script_given:
            script_given = True
            if not _looks_like_script(token):
                logger.debug("treating %r as the sed script", token)
            continue
        targets.append(strip_quotes(token))

    if not targets:
        return SedInPlaceParseResult(
            is_sed_in_place=True,
            parse_error=NO_TARGETS,
            backup_extension=backup,
        )

    return SedInPlaceParseResult(
        is_sed_in_place=True,
        target_files=targets,
        contains_glob=any(GLOB_CHARS_RE.search(t) for t in targets),
        backup_extension=backup,
    )
