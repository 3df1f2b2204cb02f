"""Metadata filter evaluation.

Decides whether a filter spec applies to a metadata mapping. The evaluator
operates ON metadata but holds none of its state; the hierarchy is reached
only through the injected ``ascend`` and preceding-declaration-line
collaborators.

Per-clause order of checks (first that applies wins):

1. sequence-valued metadata + non-predicate filter → any element matches
2. ``locations`` rule → enclosing declaration lines intersect
3. ``ids`` rule → rerun path known and an ancestor's scoped id is listed
4. nested spec → ``all`` of its clauses against the mapping value
5. key present, then pattern / predicate / exact string form

Malformed shapes fail the clause; errors raised by predicates propagate.
"""
from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import Any, Literal

from tagfilter.errors import FilterSpecError
from tagfilter.match_values import (
    Exact,
    FilterSpec,
    IdRule,
    LocationRule,
    MatchValue,
    Nested,
    Pattern,
    Predicate,
    compile_filter_spec,
    compile_match_value,
    string_form,
)
from tagfilter.metadata_chain import DeprecationSilencer, ascend

type MatchMode = Literal["any", "all"]
type Metadata = Mapping[Any, Any]
type AscendFn = Callable[[Metadata], Iterable[Metadata]]
type PrecedingLineFn = Callable[[int], int | None]

MATCH_MODES: frozenset[str] = frozenset({"any", "all"})

ABSOLUTE_FILE_PATH_KEY = "absolute_file_path"
LINE_NUMBER_KEY = "line_number"
RERUN_FILE_PATH_KEY = "rerun_file_path"
SCOPED_ID_KEY = "scoped_id"


def validate_mode(mode: str) -> MatchMode:
    if mode == "any":
        return "any"
    if mode == "all":
        return "all"
    raise FilterSpecError(f"Invalid match mode: {mode!r} (expected 'any' or 'all')")


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _same_line(line: int) -> int | None:
    return line


def _path_key(path: Any) -> str | None:
    # Rule paths are stored as strings; metadata may carry ``pathlib.Path``.
    return None if path is None else str(path)


class MetadataFilter:
    """Evaluates filter specs against metadata mappings.

    Parameters
    ----------
    ascend:
        Yields a metadata mapping followed by its enclosing groups.
    preceding_declaration_line:
        Resolves an arbitrary source line to the enclosing declaration's
        line (``None`` when there is none). Defaults to the line itself.
    silencer:
        Flag held active while any evaluation call is in progress.
    """

    def __init__(
        self,
        *,
        ascend: AscendFn = ascend,
        preceding_declaration_line: PrecedingLineFn | None = None,
        silencer: DeprecationSilencer | None = None,
    ) -> None:
        self._ascend = ascend
        self._preceding_declaration_line = preceding_declaration_line or _same_line
        self.silencer = silencer or DeprecationSilencer()

    def apply(
        self,
        mode: MatchMode,
        filters: Mapping[Hashable, Any] | FilterSpec,
        metadata: Metadata,
    ) -> bool:
        """``any``: one clause suffices. ``all``: every clause must hold."""
        aggregate = any if validate_mode(mode) == "any" else all
        spec = compile_filter_spec(filters)
        with self.silencer.silenced():
            return aggregate(
                self._clause_applies(key, value, metadata) for key, value in spec.clauses
            )

    def filter_applies(self, key: Hashable, value: Any, metadata: Metadata) -> bool:
        """Evaluate a single ``key: value`` clause."""
        match_value = compile_match_value(key, value)
        with self.silencer.silenced():
            return self._clause_applies(key, match_value, metadata)

    # ─── Clause evaluation ──────────────────────────────────────────

    def _clause_applies(self, key: Hashable, value: MatchValue, metadata: Metadata) -> bool:
        actual = metadata.get(key)
        if _is_sequence(actual) and not isinstance(value, Predicate):
            return any(
                self._clause_applies(key, value, {key: element}) for element in actual
            )

        match value:
            case LocationRule():
                return self._location_rule_applies(value, metadata)
            case IdRule():
                return self._id_rule_applies(value, metadata)
            case Nested(spec=spec):
                if not isinstance(actual, Mapping):
                    return False
                return all(self._clause_applies(k, v, actual) for k, v in spec.clauses)
            case _ if key not in metadata:
                return False
            case Pattern(regex=regex):
                return regex.search(string_form(actual)) is not None
            case Predicate(fn=fn, call_style="no_args"):
                return bool(fn())
            case Predicate(fn=fn, call_style="value_and_metadata"):
                return bool(fn(actual, metadata))
            case Predicate(fn=fn):
                return bool(fn(actual))
            case Exact(text=text):
                return string_form(actual) == text
        return False

    def _id_rule_applies(self, rule: IdRule, metadata: Metadata) -> bool:
        scoped_ids = rule.ids_by_path.get(_path_key(metadata.get(RERUN_FILE_PATH_KEY)))
        if scoped_ids is None:
            return False
        return any(
            meta.get(SCOPED_ID_KEY) in scoped_ids for meta in self._ascend(metadata)
        )

    def _location_rule_applies(self, rule: LocationRule, metadata: Metadata) -> bool:
        requested = self._requested_lines(rule, metadata)
        if not requested:
            return True
        preceding = {self._preceding_declaration_line(n) for n in requested}
        preceding.discard(None)
        declared = {meta.get(LINE_NUMBER_KEY) for meta in self._ascend(metadata)}
        return not declared.isdisjoint(preceding)

    def _requested_lines(self, rule: LocationRule, metadata: Metadata) -> list[int]:
        # Ordered, de-duplicated lines requested for any file in the chain.
        lines: dict[int, None] = {}
        for meta in self._ascend(metadata):
            for n in rule.lines_by_path.get(_path_key(meta.get(ABSOLUTE_FILE_PATH_KEY)), ()):
                lines[n] = None
        return list(lines)


_DEFAULT_FILTER = MetadataFilter()


def matches(
    filters: Mapping[Hashable, Any] | FilterSpec,
    metadata: Metadata,
    mode: MatchMode = "any",
) -> bool:
    """Evaluate ``filters`` against ``metadata`` with the default collaborators."""
    return _DEFAULT_FILTER.apply(mode, filters, metadata)
