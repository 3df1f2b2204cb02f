"""Error types raised by tagfilter.

Evaluation itself never raises: malformed filter shapes simply fail the
clause, and errors raised by user predicates propagate unchanged.
``FilterSpecError`` covers malformed *input* (configuration values, JSON
payloads) rejected before any evaluation happens.
"""
from __future__ import annotations


class FilterSpecError(ValueError):
    """Raised when a filter spec, mode or strategy cannot be accepted."""
