"""Inclusion / exclusion rules for selecting examples by metadata.

Built on ``MetadataFilter``; this is the layer a runner uses to turn
command-line options (``--tag slow``, ``--tag ~type:integration``,
``path.py:12``) into a decision about which examples to run.

Selection rules:

* no inclusion rules → every example is included;
* otherwise an example is included when *any* inclusion rule applies;
* an example is dropped when *any* exclusion rule applies;
* location (``locations``) and id (``ids``) inclusions are *standalone*:
  while present they alone decide, exclusions are ignored and later tag
  inclusions are dropped.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import Any

from tagfilter.match_values import IDS_KEY, LOCATIONS_KEY
from tagfilter.metadata_filter import MetadataFilter

log = logging.getLogger(__name__)

_STANDALONE_KEYS: frozenset[str] = frozenset({LOCATIONS_KEY, IDS_KEY})

_INT_RE = re.compile(r"^\d+$")
_FLOAT_RE = re.compile(r"^\d+\.\d+$")


# ---------------------------------------------------------------------------
# Tag option parsing
# ---------------------------------------------------------------------------

def parse_tag_value(raw: str | None) -> Any:
    """Convert the value half of a ``key:value`` tag option."""
    if raw is None or raw == "true":
        return True
    if raw == "false":
        return False
    if raw == "nil":
        return None
    if raw.startswith(":"):
        return raw[1:]
    if _INT_RE.match(raw):
        return int(raw)
    if _FLOAT_RE.match(raw):
        return float(raw)
    return raw


def parse_tag_option(option: str) -> tuple[bool, str, Any]:
    """Parse ``[~][@]key[:value]`` into ``(is_exclusion, key, value)``.

    >>> parse_tag_option("~slow")
    (True, 'slow', True)
    >>> parse_tag_option("type:unit")
    (False, 'type', 'unit')
    """
    exclude = option.startswith("~")
    body = re.sub(r"^(~@|~|@)", "", option)
    key, sep, raw = body.partition(":")
    return exclude, key, parse_tag_value(raw if sep else None)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

class FilterRules:
    """An ordered, mutable filter spec shared by inclusion and exclusion."""

    def __init__(
        self,
        rules: Mapping[Hashable, Any] | None = None,
        *,
        metadata_filter: MetadataFilter | None = None,
    ) -> None:
        self._rules: dict[Hashable, Any] = dict(rules or {})
        self._metadata_filter = metadata_filter or MetadataFilter()

    @property
    def rules(self) -> dict[Hashable, Any]:
        return dict(self._rules)

    def __bool__(self) -> bool:
        return bool(self._rules)

    def add(self, updated: Mapping[Hashable, Any]) -> None:
        for key in updated:
            self._rules.pop(key, None)
        self._rules.update(updated)

    def add_with_low_priority(self, updated: Mapping[Hashable, Any]) -> None:
        merged = dict(updated)
        merged.update(self._rules)
        self._rules = merged

    def use_only(self, updated: Mapping[Hashable, Any]) -> None:
        self._rules = dict(updated)

    def delete(self, key: Hashable) -> None:
        self._rules.pop(key, None)

    def clear(self) -> None:
        self._rules.clear()

    def applies_to(self, metadata: Mapping[Hashable, Any]) -> bool:
        return self._metadata_filter.apply("any", self._rules, metadata)


class InclusionRules(FilterRules):
    @property
    def standalone(self) -> bool:
        return any(key in _STANDALONE_KEYS for key in self._rules)

    def add(self, updated: Mapping[Hashable, Any]) -> None:
        if not self._apply_standalone(updated):
            super().add(updated)

    def add_with_low_priority(self, updated: Mapping[Hashable, Any]) -> None:
        if not self._apply_standalone(updated):
            super().add_with_low_priority(updated)

    def _apply_standalone(self, updated: Mapping[Hashable, Any]) -> bool:
        # Location and id rules replace every other inclusion; once present,
        # later tag inclusions are ignored.
        incoming = {k: v for k, v in updated.items() if k in _STANDALONE_KEYS}
        if incoming:
            kept = {k: v for k, v in self._rules.items() if k in _STANDALONE_KEYS}
            kept.update(incoming)
            self._rules = kept
            return True
        if self.standalone:
            log.debug("Ignoring inclusion rules %r alongside standalone rules", dict(updated))
            return True
        return False

    def include_example(self, metadata: Mapping[Hashable, Any]) -> bool:
        return not self._rules or self.applies_to(metadata)


class ExclusionRules(FilterRules):
    def include_example(self, metadata: Mapping[Hashable, Any]) -> bool:
        return self.applies_to(metadata)


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

def _metadata_itself(example: Any) -> Mapping[Hashable, Any]:
    return example


class FilterManager:
    """Holds inclusion and exclusion rules and prunes examples with them."""

    def __init__(self, *, metadata_filter: MetadataFilter | None = None) -> None:
        metadata_filter = metadata_filter or MetadataFilter()
        self.inclusions = InclusionRules(metadata_filter=metadata_filter)
        self.exclusions = ExclusionRules(metadata_filter=metadata_filter)

    def include(self, rules: Mapping[Hashable, Any]) -> None:
        log.debug("Adding inclusion rules %r", rules)
        for key in rules:
            self.exclusions.delete(key)
        self.inclusions.add(rules)

    def exclude(self, rules: Mapping[Hashable, Any]) -> None:
        log.debug("Adding exclusion rules %r", rules)
        for key in rules:
            self.inclusions.delete(key)
        self.exclusions.add(rules)

    def include_only(self, rules: Mapping[Hashable, Any]) -> None:
        self.inclusions.use_only(rules)

    def exclude_only(self, rules: Mapping[Hashable, Any]) -> None:
        self.exclusions.use_only(rules)

    def include_with_low_priority(self, rules: Mapping[Hashable, Any]) -> None:
        self.inclusions.add_with_low_priority(rules)

    def exclude_with_low_priority(self, rules: Mapping[Hashable, Any]) -> None:
        self.exclusions.add_with_low_priority(rules)

    def add_location(self, file_path: str, line_numbers: Iterable[int]) -> None:
        """Run only examples declared at (or enclosing) ``line_numbers``."""
        locations = dict(self.inclusions.rules.get(LOCATIONS_KEY) or {})
        lines = list(locations.get(file_path, ()))
        lines.extend(n for n in line_numbers if n not in lines)
        locations[file_path] = lines
        self._add_standalone(LOCATIONS_KEY, locations)

    def add_ids(self, rerun_path: str, scoped_ids: Iterable[str]) -> None:
        """Run only examples (or groups) with the given scoped ids."""
        ids = dict(self.inclusions.rules.get(IDS_KEY) or {})
        merged = list(ids.get(rerun_path, ()))
        merged.extend(i for i in scoped_ids if i not in merged)
        ids[rerun_path] = merged
        self._add_standalone(IDS_KEY, ids)

    def _add_standalone(self, key: str, value: Any) -> None:
        log.debug("Adding standalone %s rule %r", key, value)
        self.inclusions.add({key: value})

    def apply_tag_options(self, options: Iterable[str]) -> None:
        """Apply ``--tag`` style options in order."""
        for option in options:
            exclude, key, value = parse_tag_option(option)
            if exclude:
                self.exclude({key: value})
            else:
                self.include({key: value})

    def include_example(self, metadata: Mapping[Hashable, Any]) -> bool:
        if self.inclusions.standalone:
            return self.inclusions.include_example(metadata)
        if self.exclusions and self.exclusions.include_example(metadata):
            return False
        return self.inclusions.include_example(metadata)

    def prune[E](
        self,
        examples: Iterable[E],
        metadata_of: Callable[[E], Mapping[Hashable, Any]] = _metadata_itself,
    ) -> list[E]:
        """Keep the examples whose metadata passes the current rules."""
        return [ex for ex in examples if self.include_example(metadata_of(ex))]
