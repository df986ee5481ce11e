"""Typed input bindings parsed from raw step inputs.

A raw input is turned into a binding tree once, when the workflow is
validated. Strings are never interpolated: a string is either entirely a
``{{ Parameter }}`` / ``{{ Step.Output }}`` reference or a plain literal.
Values wrapped as ``{"literal": ...}`` are taken verbatim.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Tuple, Union

from .errors import ConfigurationError

_REFERENCE = re.compile(
    r"^\{\{\s*([A-Za-z_][\w-]*)(?:\.([A-Za-z_][\w-]*))?\s*\}\}$"
)
FIRST_OF = "firstOf"
LITERAL = "literal"


@dataclass(frozen=True)
class LiteralBinding:
    value: Any


@dataclass(frozen=True)
class ReferenceBinding:
    """Reference to a run parameter (``step`` is None) or a step output."""

    name: str
    step: Optional[str] = None

    def __str__(self) -> str:
        target = f"{self.step}.{self.name}" if self.step else self.name
        return "{{ " + target + " }}"


@dataclass(frozen=True)
class FirstOfBinding:
    """Resolves to the first option that yields a non-empty value."""

    options: Tuple["Binding", ...]


@dataclass(frozen=True)
class ListBinding:
    items: Tuple["Binding", ...]


@dataclass(frozen=True)
class MappingBinding:
    items: Tuple[Tuple[str, "Binding"], ...]


Binding = Union[LiteralBinding, ReferenceBinding, FirstOfBinding, ListBinding, MappingBinding]


def parse_binding(raw: Any) -> Binding:
    """Convert a raw input value into a binding tree."""
    if isinstance(raw, str):
        match = _REFERENCE.match(raw.strip())
        if match:
            first, second = match.groups()
            if second is None:
                return ReferenceBinding(name=first)
            return ReferenceBinding(name=second, step=first)
        if "{{" in raw:
            raise ConfigurationError(
                f"Embedded reference in {raw!r}: references must make up the whole value"
            )
        return LiteralBinding(raw)
    if isinstance(raw, dict):
        if set(raw) == {LITERAL}:
            return LiteralBinding(raw[LITERAL])
        if set(raw) == {FIRST_OF}:
            options = raw[FIRST_OF]
            if not isinstance(options, list) or not options:
                raise ConfigurationError(f"'{FIRST_OF}' expects a non-empty list")
            return FirstOfBinding(tuple(parse_binding(o) for o in options))
        bound = tuple((str(k), parse_binding(v)) for k, v in raw.items())
        if all(isinstance(b, LiteralBinding) for _, b in bound):
            return LiteralBinding(dict(raw))
        return MappingBinding(bound)
    if isinstance(raw, (list, tuple)):
        items = tuple(parse_binding(v) for v in raw)
        if all(isinstance(b, LiteralBinding) for b in items):
            return LiteralBinding(list(raw))
        return ListBinding(items)
    return LiteralBinding(raw)


def iter_references(binding: Binding) -> Iterator[ReferenceBinding]:
    """Yield every reference contained in ``binding``."""
    if isinstance(binding, ReferenceBinding):
        yield binding
    elif isinstance(binding, (FirstOfBinding, ListBinding)):
        children = binding.options if isinstance(binding, FirstOfBinding) else binding.items
        for child in children:
            yield from iter_references(child)
    elif isinstance(binding, MappingBinding):
        for _, child in binding.items:
            yield from iter_references(child)
