"""Pattern matchers shared by the index store and the query engine.

A matcher answers two questions about a string column: the SQL fragment that
selects matching rows in the store, and whether a Python value matches. Three
flavours exist:

- :class:`ExactMatcher` -- byte equality.
- :class:`GlobMatcher` -- ``*`` matches any run of characters, everything else
  is literal; anchored and case-sensitive.
- :class:`RegexMatcher` -- unanchored regular-expression search.
"""

from __future__ import annotations

import re
from typing import Any, Protocol, runtime_checkable

from slipbox.errors import InvalidPattern

# Escapes the characters LIKE treats specially; the backslash goes first
_LIKE_ESCAPES = str.maketrans({"\\": "\\\\", "%": "\\%", "_": "\\_"})


@runtime_checkable
class Matcher(Protocol):
    pattern: str

    def sql(self, column: str) -> tuple[str, list[Any]]:
        """Return ``(condition, params)`` selecting rows where *column* matches."""
        ...

    def matches(self, value: str) -> bool: ...


class ExactMatcher:
    def __init__(self, pattern: str) -> None:
        self.pattern = pattern

    def sql(self, column: str) -> tuple[str, list[Any]]:
        return f"{column} = ?", [self.pattern]

    def matches(self, value: str) -> bool:
        return value == self.pattern

    def __repr__(self) -> str:
        return f"ExactMatcher({self.pattern!r})"


class GlobMatcher:
    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self.like = "%".join(part.translate(_LIKE_ESCAPES) for part in pattern.split("*"))
        self._regex = re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)

    def sql(self, column: str) -> tuple[str, list[Any]]:
        return f"{column} LIKE ? ESCAPE '\\'", [self.like]

    def matches(self, value: str) -> bool:
        return self._regex.fullmatch(value) is not None

    def __repr__(self) -> str:
        return f"GlobMatcher({self.pattern!r})"


class RegexMatcher:
    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        try:
            self._regex = re.compile(pattern)
        except re.error as exc:
            raise InvalidPattern(pattern, exc) from exc

    def sql(self, column: str) -> tuple[str, list[Any]]:
        return f"regexp_matches({column}, ?)", [self.pattern]

    def matches(self, value: str) -> bool:
        return self._regex.search(value) is not None

    def __repr__(self) -> str:
        return f"RegexMatcher({self.pattern!r})"


def as_matcher(pattern: "str | Matcher", exact: bool = False) -> Matcher:
    """Turn a user pattern into a matcher; ready matchers pass through."""
    if isinstance(pattern, str):
        return ExactMatcher(pattern) if exact else GlobMatcher(pattern)
    return pattern
