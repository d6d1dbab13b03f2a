"""
shared_lib.glob_matcher — Portable glob matching for filter rules.

Translates a glob pattern into an anchored, case-sensitive ``re`` pattern
once, at configuration time, so that malformed patterns fail before any row
is filtered and matching never depends on a host-specific wildcard operator.

Supported syntax
----------------
``*``
    Any run of characters, including the empty run.
``?``
    Exactly one character.
``[abc]`` / ``[a-z]``
    One character from the set or range. ``[!abc]`` negates the set.
``\\``
    Escapes the next character so it matches literally (``\\*``, ``\\[``).

Everything else matches literally. There is no regex pass-through.

Usage
-----
::

    from shared_lib.glob_matcher import GlobMatcher

    matcher = GlobMatcher("TMP*")
    matcher.matches("TMP001")   # True
    matcher.matches("tmp001")   # False (case-sensitive)
    matcher.matches(None)       # False (null never matches)
"""
from __future__ import annotations

import re
from typing import Any

from validation.errors import GlobPatternError


def _translate_class(pattern: str, start: int) -> tuple[str, int]:
    """
    Translate a ``[...]`` character class beginning at ``pattern[start]``.

    Returns the regex fragment and the index just past the closing ``]``.
    """
    i = start + 1
    negate = False
    if i < len(pattern) and pattern[i] == "!":
        negate = True
        i += 1

    members: list[str] = []
    while i < len(pattern) and pattern[i] != "]":
        ch = pattern[i]
        if ch == "\\":
            if i + 1 >= len(pattern):
                raise GlobPatternError(pattern, "trailing escape inside character class")
            ch = pattern[i + 1]
            i += 1
        # Range: a-z (a trailing '-' before ']' is literal)
        if i + 2 < len(pattern) and pattern[i + 1] == "-" and pattern[i + 2] != "]":
            end = pattern[i + 2]
            if end == "\\":
                if i + 3 >= len(pattern):
                    raise GlobPatternError(pattern, "trailing escape inside character class")
                end = pattern[i + 3]
                i += 1
            if ord(end) < ord(ch):
                raise GlobPatternError(pattern, f"reversed range {ch}-{end}")
            members.append(f"{re.escape(ch)}-{re.escape(end)}")
            i += 3
            continue
        members.append(re.escape(ch))
        i += 1

    if i >= len(pattern):
        raise GlobPatternError(pattern, "unclosed '['")
    if not members:
        raise GlobPatternError(pattern, "empty character class")

    body = "".join(members)
    return (f"[^{body}]" if negate else f"[{body}]"), i + 1


def glob_to_regex(pattern: str) -> str:
    """
    Convert a glob pattern into an anchored regex string.

    Example::

        glob_to_regex("E?0*")
        # -> r"\\AE.0.*\\Z"

    Raises:
        GlobPatternError: pattern is empty or malformed
    """
    if not pattern:
        raise GlobPatternError(pattern, "pattern is empty")

    parts: list[str] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "*":
            # Collapse runs of '*'
            while i + 1 < len(pattern) and pattern[i + 1] == "*":
                i += 1
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        elif ch == "[":
            fragment, i = _translate_class(pattern, i)
            parts.append(fragment)
            continue
        elif ch == "\\":
            if i + 1 >= len(pattern):
                raise GlobPatternError(pattern, "trailing escape")
            parts.append(re.escape(pattern[i + 1]))
            i += 1
        else:
            parts.append(re.escape(ch))
        i += 1
    return r"\A" + "".join(parts) + r"\Z"


def compile_glob(pattern: str) -> re.Pattern:
    """Compile a glob pattern into a case-sensitive regex (DOTALL so '*' spans newlines)."""
    return re.compile(glob_to_regex(pattern), re.DOTALL)


class GlobMatcher:
    """Pre-compiled glob pattern."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._regex = compile_glob(pattern)

    def matches(self, value: Any) -> bool:
        """Return True if value matches. Null values never match."""
        if value is None:
            return False
        return self._regex.match(str(value)) is not None

    def __repr__(self) -> str:
        return f"GlobMatcher({self.pattern!r})"
