"""Match values, the closed vocabulary a filter spec is compiled into.

A filter spec arrives as a plain mapping of metadata key → raw value. Before
it is evaluated (and, for repositories, once at registration time) every raw
value is classified into one of six variants:

* **Exact** (leaf): compared against the *string form* of the metadata value.
* **Pattern** (leaf): ``re.Pattern`` searched in the metadata value's string form.
* **Predicate** (leaf): user callable; its call style is fixed here, not at
  evaluation time.
* **Nested** (compound): sub-spec applied with ``all`` semantics to a
  mapping-valued metadata entry.
* **LocationRule**: the ``locations`` key: absolute path → declaration lines.
* **IdRule**: the ``ids`` key: rerun file path → scoped ids.

Functions:

* ``compile_filter_spec``: raw mapping → ``FilterSpec``.
* ``filter_spec_from_json`` / ``filter_spec_to_json``: JSON round-trip
  (``"/regex/"`` strings become patterns; predicates cannot be serialised).
* ``string_form``: the stringification shared by exact and pattern matching.
"""
from __future__ import annotations

import inspect
import re
from collections.abc import Callable, Hashable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from tagfilter.errors import FilterSpecError

LOCATIONS_KEY = "locations"
IDS_KEY = "ids"

type CallStyle = Literal["no_args", "value", "value_and_metadata"]

_REGEX_LITERAL = re.compile(r"^/(.+)/$", re.DOTALL)


def string_form(value: Any) -> str:
    """Stringify a metadata or filter value for comparison.

    Booleans and ``None`` use their command-line spelling so that a filter
    written as ``slow:true`` matches ``{"slow": True}``.
    """
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return ""
    return str(value)


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Exact:
    """Leaf: string-form equality."""

    text: str
    raw: Any = None

    @classmethod
    def of(cls, value: Any) -> Exact:
        return cls(text=string_form(value), raw=value)


@dataclass(frozen=True, slots=True)
class Pattern:
    """Leaf: regex search against the string form."""

    regex: re.Pattern[str]


@dataclass(frozen=True, slots=True)
class Predicate:
    """Leaf: user callable, invoked according to ``call_style``."""

    fn: Callable[..., Any]
    call_style: CallStyle

    @classmethod
    def wrap(cls, fn: Callable[..., Any]) -> Predicate:
        return cls(fn=fn, call_style=call_style_of(fn))


@dataclass(frozen=True, slots=True)
class Nested:
    """Compound: sub-spec evaluated with ``all`` against a mapping value."""

    spec: FilterSpec


@dataclass(frozen=True, slots=True)
class LocationRule:
    """Declaration lines requested per absolute file path."""

    lines_by_path: dict[str, tuple[int, ...]]


@dataclass(frozen=True, slots=True)
class IdRule:
    """Scoped ids requested per rerun file path."""

    ids_by_path: dict[str, frozenset[str]]


type MatchValue = Exact | Pattern | Predicate | Nested | LocationRule | IdRule

_VARIANTS = (Exact, Pattern, Predicate, Nested, LocationRule, IdRule)


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """An immutable, compiled filter spec: ordered ``(key, MatchValue)`` clauses."""

    clauses: tuple[tuple[Hashable, MatchValue], ...] = ()

    def __len__(self) -> int:
        return len(self.clauses)

    def __iter__(self) -> Iterator[tuple[Hashable, MatchValue]]:
        return iter(self.clauses)

    @property
    def is_empty(self) -> bool:
        return not self.clauses

    def keys(self) -> tuple[Hashable, ...]:
        return tuple(key for key, _ in self.clauses)

    def volatile_keys(self) -> frozenset[Hashable]:
        """Keys whose outcome may change for the same metadata values.

        A key is volatile when its match value holds a predicate or a
        location/id rule anywhere inside it.
        """
        return frozenset(key for key, value in self.clauses if _is_volatile(value))

    @property
    def has_context_rule(self) -> bool:
        """True if a top-level clause walks the ancestor chain."""
        return any(isinstance(value, (LocationRule, IdRule)) for _, value in self.clauses)


def _is_volatile(value: MatchValue) -> bool:
    match value:
        case Predicate() | LocationRule() | IdRule():
            return True
        case Nested(spec=spec):
            return any(_is_volatile(inner) for _, inner in spec.clauses)
        case _:
            return False


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

def call_style_of(fn: Callable[..., Any]) -> CallStyle:
    """Pick how a predicate is invoked from its positional signature.

    Exactly two required positional parameters → ``(value, metadata)``;
    none → no arguments; anything else (one parameter, defaults, ``*args``,
    or an uninspectable builtin) → ``(value)``.
    """
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return "value"

    required = 0
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return "value"
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            if param.default is not inspect.Parameter.empty:
                return "value"
            required += 1

    if required == 0:
        return "no_args"
    if required == 2:
        return "value_and_metadata"
    return "value"


def _scoped_id_set(ids: Any) -> frozenset[str]:
    if isinstance(ids, str):
        return frozenset({ids})
    return frozenset(ids)


def compile_match_value(key: Hashable, value: Any) -> MatchValue:
    """Classify a single raw filter value for ``key``."""
    if isinstance(value, _VARIANTS):
        return value
    if key == LOCATIONS_KEY and isinstance(value, Mapping):
        return LocationRule(
            lines_by_path={
                str(path): tuple(int(n) for n in lines)
                for path, lines in value.items()
            },
        )
    if key == IDS_KEY and isinstance(value, Mapping):
        return IdRule(
            ids_by_path={
                str(path): _scoped_id_set(ids)
                for path, ids in value.items()
            },
        )
    if isinstance(value, re.Pattern):
        return Pattern(regex=value)
    if isinstance(value, Mapping):
        return Nested(spec=compile_filter_spec(value))
    if callable(value) and not isinstance(value, type):
        return Predicate.wrap(value)
    return Exact.of(value)


def compile_filter_spec(
    filters: Mapping[Hashable, Any] | FilterSpec | None,
) -> FilterSpec:
    """Compile a raw filter mapping. Already-compiled specs pass through."""
    if filters is None:
        return FilterSpec()
    if isinstance(filters, FilterSpec):
        return filters
    return FilterSpec(
        clauses=tuple(
            (key, compile_match_value(key, value)) for key, value in filters.items()
        ),
    )


# ---------------------------------------------------------------------------
# JSON serialization
# ---------------------------------------------------------------------------

def filter_spec_from_json(data: Any) -> FilterSpec:
    """Deserialize a JSON object into a ``FilterSpec``.

    * ``"/^db_/"`` → ``Pattern``
    * nested objects → ``Nested``
    * ``"locations": {"/abs/path.py": [5, 20]}`` → ``LocationRule``
    * ``"ids": {"./path.py": ["1:2"]}`` → ``IdRule``
    * anything else → ``Exact``

    Raises ``FilterSpecError`` on malformed input.
    """
    if not isinstance(data, dict):
        raise FilterSpecError("Filter spec payload must be an object")

    clauses: list[tuple[Hashable, MatchValue]] = []
    for key, value in data.items():
        clauses.append((key, _match_value_from_json(key, value)))
    return FilterSpec(clauses=tuple(clauses))


def _match_value_from_json(key: str, value: Any) -> MatchValue:
    if key == LOCATIONS_KEY and isinstance(value, dict):
        for path, lines in value.items():
            if not isinstance(lines, list) or not all(
                isinstance(n, int) and not isinstance(n, bool) for n in lines
            ):
                raise FilterSpecError(
                    f"Location lines for {path!r} must be a list of integers"
                )
        return compile_match_value(key, value)
    if key == IDS_KEY and isinstance(value, dict):
        for path, ids in value.items():
            if not isinstance(ids, list):
                raise FilterSpecError(f"Scoped ids for {path!r} must be a list")
        return compile_match_value(key, value)
    if isinstance(value, dict):
        return Nested(spec=filter_spec_from_json(value))
    if isinstance(value, str):
        m = _REGEX_LITERAL.match(value)
        if m:
            try:
                return Pattern(regex=re.compile(m.group(1)))
            except re.error as exc:
                raise FilterSpecError(f"Invalid regex for {key!r}: {exc}") from exc
    return Exact.of(value)


def filter_spec_to_json(spec: FilterSpec) -> dict[str, Any]:
    """Serialize a ``FilterSpec`` to a JSON-compatible dict.

    Raises ``FilterSpecError`` for predicates, which have no JSON form.
    """
    return {str(key): _match_value_to_json(key, value) for key, value in spec.clauses}


def _match_value_to_json(key: Hashable, value: MatchValue) -> Any:
    match value:
        case Exact(raw=raw):
            return raw
        case Pattern(regex=regex):
            return f"/{regex.pattern}/"
        case Nested(spec=spec):
            return filter_spec_to_json(spec)
        case LocationRule(lines_by_path=lines_by_path):
            return {path: list(lines) for path, lines in lines_by_path.items()}
        case IdRule(ids_by_path=ids_by_path):
            return {path: sorted(ids) for path, ids in ids_by_path.items()}
        case Predicate():
            raise FilterSpecError(f"Predicate for {key!r} cannot be serialized")

