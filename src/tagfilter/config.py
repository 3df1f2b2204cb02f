"""Repository settings, readable from the environment.

``TAGFILTER_STRATEGY``: ``query`` (memoized lookups, the default) or
``update`` (no memoization). ``TAGFILTER_MODE``: ``any`` (default) or
``all``. ``TAGFILTER_LOG_LEVEL``: a ``logging`` level name.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from tagfilter.errors import FilterSpecError
from tagfilter.item_repository import QueryOptimizedRepository, UpdateOptimizedRepository
from tagfilter.metadata_filter import MATCH_MODES, MatchMode, MetadataFilter

type Strategy = Literal["query", "update"]

STRATEGIES: frozenset[str] = frozenset({"query", "update"})

ENV_STRATEGY = "TAGFILTER_STRATEGY"
ENV_MODE = "TAGFILTER_MODE"
ENV_LOG_LEVEL = "TAGFILTER_LOG_LEVEL"


@dataclass(frozen=True, slots=True)
class FilterSettings:
    strategy: Strategy = "query"
    mode: MatchMode = "any"
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise FilterSpecError(
                f"Unknown strategy: {self.strategy!r} (expected 'query' or 'update')"
            )
        if self.mode not in MATCH_MODES:
            raise FilterSpecError(f"Invalid match mode: {self.mode!r} (expected 'any' or 'all')")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise FilterSpecError(f"Unknown log level: {self.log_level!r}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FilterSettings:
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        if env.get(ENV_STRATEGY):
            kwargs["strategy"] = env[ENV_STRATEGY].strip().lower()
        if env.get(ENV_MODE):
            kwargs["mode"] = env[ENV_MODE].strip().lower()
        if env.get(ENV_LOG_LEVEL):
            kwargs["log_level"] = env[ENV_LOG_LEVEL].strip().upper()
        return cls(**kwargs)


def build_repository[T](
    settings: FilterSettings,
    *,
    metadata_filter: MetadataFilter | None = None,
) -> UpdateOptimizedRepository[T]:
    """Construct the repository ``settings.strategy`` names."""
    if settings.strategy == "update":
        return UpdateOptimizedRepository(settings.mode, metadata_filter=metadata_filter)
    return QueryOptimizedRepository(settings.mode, metadata_filter=metadata_filter)
