#!/usr/bin/env python3
"""Select the registered items that apply to each query metadata record.

Registrations are a JSON list of ``{"item": ..., "filter": {...},
"prepend": false}`` records; filter values written ``"/pattern/"`` are
regular expressions. Query metadata is a JSON object, a JSON list of
objects, or a ``.jsonl`` file.

``--tag`` options prune the query records first, the way a runner prunes
examples (``--tag slow``, ``--tag ~type:integration``).

Usage::

    python3 scripts/select_items.py --registrations hooks.json --metadata examples.jsonl
    python3 scripts/select_items.py --registrations hooks.json --metadata ex.json \\
        --tag ~slow --strategy update --mode all
    python3 scripts/select_items.py --registrations hooks.json --metadata ex.json \\
        --output reports/selection.json
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from tagfilter.config import FilterSettings, build_repository
from tagfilter.errors import FilterSpecError
from tagfilter.filter_manager import FilterManager
from tagfilter.io_utils import dump_json, load_metadata_records, load_registrations, save_json

log = logging.getLogger("select_items")


def build_report(
    settings: FilterSettings,
    registrations_path: Path,
    metadata_path: Path,
    tags: list[str],
) -> dict[str, Any]:
    repository = build_repository(settings)
    for registration in load_registrations(registrations_path):
        if registration.prepend:
            repository.prepend(registration.item, registration.spec)
        else:
            repository.append(registration.item, registration.spec)
    log.info("Registered %d items (%s strategy)", len(repository), settings.strategy)

    manager = FilterManager()
    manager.apply_tag_options(tags)

    records = load_metadata_records(metadata_path)
    results: list[dict[str, Any]] = []
    for index, metadata in enumerate(records):
        selected = manager.include_example(metadata)
        items = list(repository.items_for(metadata)) if selected else []
        results.append({"index": index, "selected": selected, "items": items})

    log.info(
        "Selected %d of %d metadata records",
        sum(1 for r in results if r["selected"]),
        len(results),
    )
    return {
        "strategy": settings.strategy,
        "mode": settings.mode,
        "tags": tags,
        "results": results,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Select registered items applicable to query metadata.",
    )
    parser.add_argument("--registrations", required=True, type=Path)
    parser.add_argument("--metadata", required=True, type=Path)
    parser.add_argument(
        "--tag", action="append", default=[],
        help="Tag option, e.g. 'slow', '~slow', 'type:unit' (repeatable)",
    )
    parser.add_argument("--strategy", choices=("query", "update"), default=None)
    parser.add_argument("--mode", choices=("any", "all"), default=None)
    parser.add_argument(
        "--output", type=Path, default=None,
        help="Also write the report to this JSON file.",
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    try:
        settings = FilterSettings.from_env()
        if args.strategy or args.mode:
            settings = FilterSettings(
                strategy=args.strategy or settings.strategy,
                mode=args.mode or settings.mode,
                log_level=settings.log_level,
            )
    except FilterSpecError as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        report = build_report(settings, args.registrations, args.metadata, args.tag)
    except FilterSpecError as exc:
        log.error("%s", exc)
        return 2

    if args.output is not None:
        save_json(report, args.output)
        log.info("Wrote report to %s", args.output)
    dump_json(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
