"""Numeric normalization for incoming stats fields.

Core rates and percentiles always produce a value (falling back to 0 on bad
data), while custom metrics that are not numeric are dropped from the tick.
"""

from __future__ import annotations

import logging
import math
from numbers import Real
from typing import Any, Mapping

logger = logging.getLogger(__name__)


def is_numeric(value: Any) -> bool:
    """Check whether a raw field is a usable number.

    Booleans are rejected even though ``bool`` subclasses ``int``.
    """
    return isinstance(value, Real) and not isinstance(value, bool)


def numeric_or_default(value: Any, default: float = 0) -> float:
    """Return ``value`` unchanged if numeric, otherwise ``default``."""
    return value if is_numeric(value) else default


def round_to_decimal_places(value: Any, decimals: int = 0) -> float:
    """Round a raw value half-up to the given number of decimals.

    Args:
        value: Raw field from a stats payload.
        decimals: Number of decimal places to keep.

    Returns:
        The rounded number, or 0 if ``value`` is missing or not numeric.
        Values too large to scale are returned unchanged.

    Example:
        >>> round_to_decimal_places(5.125, 2)
        5.13
        >>> round_to_decimal_places("n/a", 2)
        0
    """
    if not is_numeric(value) or not math.isfinite(value):
        return 0

    factor = 10**decimals
    scaled = value * factor
    if not math.isfinite(scaled):
        return value
    return math.floor(scaled + 0.5) / factor


def numeric_custom_metrics(metrics: Any, decimals: int = 2) -> dict[str, float]:
    """Keep only the numeric custom metrics, rounded.

    Args:
        metrics: The ``customMetrics`` mapping of a snapshot. Anything that is
            not a mapping yields no metrics.
        decimals: Number of decimal places to keep.

    Returns:
        Mapping of metric name to rounded value.
    """
    if not isinstance(metrics, Mapping):
        return {}

    rounded: dict[str, float] = {}
    for name, value in metrics.items():
        if not is_numeric(value):
            logger.debug("Skipping non-numeric custom metric %r: %r", name, value)
            continue
        rounded[name] = round_to_decimal_places(value, decimals)

    return rounded
