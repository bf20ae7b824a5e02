"""Turn warehouse rows into plain json-safe values.

the bigquery client (and the older node wrappers the dashboard used to sit
behind) hand back dates in a few different shapes: real date objects,
strings, or little wrapper objects with a `.value`. this is the one place
that deals with all of them.

order of preference for anything date-like:
  1. a `.value` accessor
  2. it's already a string
  3. str() it, and record a warning because we didn't expect that type

this never raises. anything that can't be converted becomes None and gets a
NormalizationWarning recorded on the normalizer.
"""

import inspect
import math
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from weeklybrief.errors import NormalizationWarning
from weeklybrief.log_utils import get_logger

logger = get_logger(__name__)

_PLAIN = (str, int, float, bool)


class RowNormalizer:
    """Recursive row sanitizer. collects warnings instead of raising."""

    def __init__(self) -> None:
        self.warnings: list[NormalizationWarning] = []

    def _warn(self, path: str, value: Any, action: str) -> None:
        warning = NormalizationWarning(path, type(value).__name__, action)
        self.warnings.append(warning)
        logger.warning("Normalization fallback at %s: %s -> %s", path, type(value).__name__, action)

    def normalize_rows(self, rows: list[Any]) -> list[Any]:
        return [self.normalize_value(row, f"$[{i}]") for i, row in enumerate(rows)]

    def normalize_value(self, value: Any, path: str = "$", _seen: frozenset[int] = frozenset()) -> Any:
        if isinstance(value, float) and not math.isfinite(value):
            # nan and inf from FLOAT64 columns have no json form
            self._warn(path, value, "null")
            return None
        if value is None or isinstance(value, _PLAIN):
            return value

        # datetime is a date subclass, check it first
        if isinstance(value, (datetime, date, time)):
            return value.isoformat()

        if isinstance(value, Decimal):
            if not value.is_finite():
                self._warn(path, value, "null")
                return None
            return int(value) if value == value.to_integral_value() else float(value)

        if inspect.isroutine(value):
            return None

        if id(value) in _seen:
            self._warn(path, value, "null (cycle)")
            return None

        if isinstance(value, Mapping):
            seen = _seen | {id(value)}
            return {str(k): self.normalize_value(v, f"{path}.{k}", seen) for k, v in value.items()}

        if isinstance(value, (list, tuple, set, frozenset)):
            seen = _seen | {id(value)}
            return [self.normalize_value(v, f"{path}[{i}]", seen) for i, v in enumerate(value)]

        return self._unwrap(value, path, _seen)

    def _unwrap(self, value: Any, path: str, _seen: frozenset[int]) -> Any:
        # 1. explicit value accessor
        try:
            has_value = hasattr(value, "value")
            inner = getattr(value, "value") if has_value else None
        except Exception:  # a broken property shouldn't take down the batch
            has_value = False
            inner = None
        if has_value and inner is not value:
            return self.normalize_value(inner, path, _seen | {id(value)})

        # 2. string check happened up front, so 3. stringify - but only when the
        # type actually defines __str__. object's default repr is an address,
        # not data, and is worse than null
        if type(value).__str__ is object.__str__:
            self._warn(path, value, "null")
            return None
        try:
            text = str(value)
        except Exception:
            self._warn(path, value, "null")
            return None
        self._warn(path, value, "stringified")
        return text


def normalize_rows(rows: list[Any]) -> tuple[list[Any], list[NormalizationWarning]]:
    """One-shot helper: normalize rows and return them with any warnings."""
    normalizer = RowNormalizer()
    return normalizer.normalize_rows(rows), normalizer.warnings
