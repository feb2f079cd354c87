"""
Path scope (include/exclude globs) layering and matching.

Scope lists are replaced wholesale across layers: a higher layer that lists
any include pattern discards every include pattern below it. Within one
layer duplicate patterns collapse, first occurrence wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional, Tuple


def normalize_patterns(patterns: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Trim, drop blanks and collapse duplicates while keeping order."""
    if not patterns:
        return ()
    seen: set[str] = set()
    out: List[str] = []
    for pattern in patterns:
        trimmed = pattern.strip()
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        out.append(trimmed)
    return tuple(out)


@dataclass(frozen=True)
class PathScope:
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    @classmethod
    def from_lists(
        cls, include: Optional[Iterable[str]] = None, exclude: Optional[Iterable[str]] = None
    ) -> "PathScope":
        return cls(include=normalize_patterns(include), exclude=normalize_patterns(exclude))

    def is_empty(self) -> bool:
        return not self.include and not self.exclude

    def merge(self, higher: "PathScope") -> "PathScope":
        """Return this scope with every non-empty list of ``higher`` replacing ours."""
        return PathScope(
            include=higher.include if higher.include else self.include,
            exclude=higher.exclude if higher.exclude else self.exclude,
        )

    def matches(self, rel_path: str) -> bool:
        """Whether a repository-relative path is kept by this scope.

        An empty include list keeps everything; an exclude match always drops.
        """
        slashed = rel_path.replace("\\", "/").lstrip("/")
        if self.include and first_match(slashed, self.include) is None:
            return False
        return first_match(slashed, self.exclude) is None


def first_match(path: str, patterns: Iterable[str]) -> Optional[str]:
    for pattern in patterns:
        if _compile_glob(pattern.replace("\\", "/")).match(path):
            return pattern
    return None


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> "re.Pattern[str]":
    # `**/` spans zero or more directories, `**` anything, `*` and `?` stay within a segment
    parts: List[str] = ["^"]
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "*":
            if pattern.startswith("**/", i):
                parts.append("(?:.*/)?")
                i += 3
                continue
            if pattern.startswith("**", i):
                parts.append(".*")
                i += 2
                continue
            parts.append("[^/]*")
        elif ch == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(ch))
        i += 1
    parts.append("$")
    return re.compile("".join(parts))


__all__ = ["PathScope", "normalize_patterns", "first_match"]
