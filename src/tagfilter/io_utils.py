"""JSON / JSONL I/O for registrations and query metadata (orjson-backed)."""
from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import orjson

from tagfilter.errors import FilterSpecError
from tagfilter.match_values import FilterSpec, filter_spec_from_json


@dataclass(frozen=True, slots=True)
class Registration:
    """One ``{"item": ..., "filter": {...}, "prepend": false}`` record."""

    item: Any
    spec: FilterSpec
    prepend: bool = False


def load_json(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


def save_json(obj: Any, path: Path, *, pretty: bool = True) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    opts = orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS if pretty else orjson.OPT_SORT_KEYS
    path.write_bytes(orjson.dumps(obj, option=opts))


def dump_json(obj: Any) -> None:
    """Write ``obj`` to stdout as indented JSON."""
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")


def load_jsonl(path: Path) -> list[dict[str, Any]]:
    """Load a JSON Lines file (one JSON object per line). Blank lines skipped."""
    records: list[dict[str, Any]] = []
    for line in path.read_bytes().split(b"\n"):
        line = line.strip()
        if line:
            records.append(orjson.loads(line))
    return records


def load_registrations(path: Path) -> list[Registration]:
    """Load a JSON list of registration records.

    Raises ``FilterSpecError`` on malformed records.
    """
    payload = load_json(path)
    if not isinstance(payload, list):
        raise FilterSpecError(f"{path}: registrations must be a JSON list")

    registrations: list[Registration] = []
    for i, record in enumerate(payload):
        if not isinstance(record, dict) or "item" not in record:
            raise FilterSpecError(f"{path}[{i}]: expected an object with an 'item' field")
        registrations.append(
            Registration(
                item=record["item"],
                spec=filter_spec_from_json(record.get("filter") or {}),
                prepend=bool(record.get("prepend", False)),
            )
        )
    return registrations


def load_metadata_records(path: Path) -> list[dict[str, Any]]:
    """Load query metadata: a JSON list, a single JSON object, or JSONL."""
    if path.suffix == ".jsonl":
        return load_jsonl(path)
    payload = load_json(path)
    if isinstance(payload, dict):
        return [payload]
    if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
        raise FilterSpecError(f"{path}: metadata must be an object or a list of objects")
    return payload
