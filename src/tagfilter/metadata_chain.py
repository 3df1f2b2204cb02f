"""Default collaborators for walking a metadata hierarchy.

The evaluator never builds the hierarchy itself; it is handed:

* ``ascend``: metadata for a context followed by each enclosing group;
* a preceding-declaration-line lookup (``DeclarationLineIndex``);
* a ``DeprecationSilencer`` the metadata layer consults before warning
  about reserved-key collisions.

The defaults below follow the usual example/group layout: an example's
metadata holds its group under ``example_group``; a group holds its parent
under ``parent_example_group``.
"""
from __future__ import annotations

import contextlib
from bisect import bisect_right, insort
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

EXAMPLE_GROUP_KEY = "example_group"
PARENT_GROUP_KEY = "parent_example_group"


def ascend(metadata: Mapping[Any, Any]) -> Iterator[Mapping[Any, Any]]:
    """Yield ``metadata`` then each enclosing group, innermost first."""
    yield metadata
    group = metadata.get(EXAMPLE_GROUP_KEY)
    if group is None:
        group = metadata.get(PARENT_GROUP_KEY)
    while isinstance(group, Mapping):
        yield group
        group = group.get(PARENT_GROUP_KEY)


class DeclarationLineIndex:
    """Sorted set of line numbers at which groups/examples were declared."""

    def __init__(self, lines: Iterable[int] = ()) -> None:
        self._lines: list[int] = sorted(set(lines))

    def record(self, line: int) -> None:
        i = bisect_right(self._lines, line)
        if i and self._lines[i - 1] == line:
            return
        insort(self._lines, line)

    @property
    def lines(self) -> tuple[int, ...]:
        return tuple(self._lines)

    def preceding_declaration_line(self, line: int) -> int | None:
        """Return the nearest declaration at or above ``line`` (None if none)."""
        i = bisect_right(self._lines, line)
        if i == 0:
            return None
        return self._lines[i - 1]


class DeprecationSilencer:
    """Scoped flag read by the metadata layer while filters are evaluated."""

    __slots__ = ("_active",)

    def __init__(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @contextlib.contextmanager
    def silenced(self) -> Iterator[None]:
        self._active = True
        try:
            yield
        finally:
            self._active = False
