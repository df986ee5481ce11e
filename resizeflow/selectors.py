"""Minimal JSONPath-style selectors for action response documents.

Supported syntax is ``$`` followed by any number of ``.Key`` and ``[index]``
segments, e.g. ``$.Reservations[0].Instances[0].State.Name``.
"""

from __future__ import annotations

import re
from typing import Any, List, Tuple, Union

from .contracts import ValueType
from .errors import ApiError, ConfigurationError

_SEGMENT = re.compile(r"\.([A-Za-z_][\w-]*)|\[(\d+)\]")

Segment = Union[str, int]


def parse_selector(selector: str) -> Tuple[Segment, ...]:
    """Split ``selector`` into keys and list indexes."""
    if not selector.startswith("$"):
        raise ConfigurationError(f"Selector must start with '$': {selector!r}")
    segments: List[Segment] = []
    pos = 1
    while pos < len(selector):
        match = _SEGMENT.match(selector, pos)
        if not match:
            raise ConfigurationError(
                f"Invalid selector {selector!r} at position {pos}"
            )
        key, index = match.groups()
        segments.append(key if key is not None else int(index))
        pos = match.end()
    return tuple(segments)


def select(document: Any, selector: str) -> Any:
    """Return the value addressed by ``selector`` inside ``document``."""
    current = document
    for segment in parse_selector(selector):
        try:
            current = current[segment]
        except (KeyError, IndexError, TypeError):
            raise ApiError(
                f"Selector {selector!r} did not match the response at {segment!r}"
            ) from None
    return current


def coerce(value: Any, value_type: ValueType) -> Any:
    """Convert ``value`` to ``value_type`` or raise ``ConfigurationError``."""
    try:
        if value_type == ValueType.STRING:
            if isinstance(value, (dict, list)):
                raise TypeError("structured value")
            return "" if value is None else str(value)
        if value_type == ValueType.INTEGER:
            if isinstance(value, bool):
                raise TypeError("boolean is not an integer")
            if isinstance(value, float) and not value.is_integer():
                raise ValueError("fractional value")
            return int(value)
        if value_type == ValueType.NUMBER:
            if isinstance(value, bool):
                raise TypeError("boolean is not a number")
            return float(value)
        if value_type == ValueType.BOOLEAN:
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in ("true", "yes", "1"):
                    return True
                if lowered in ("false", "no", "0"):
                    return False
                raise ValueError(value)
            return bool(value)
        if value_type == ValueType.STRING_LIST:
            if isinstance(value, str):
                return [v.strip() for v in value.split(",") if v.strip()]
            return [str(v) for v in value]
        return list(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Cannot convert {value!r} to {value_type.value}"
        ) from None
