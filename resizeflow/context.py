"""Execution context holding parameters and accumulated step outputs."""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping

from .bindings import (
    Binding,
    FirstOfBinding,
    ListBinding,
    LiteralBinding,
    MappingBinding,
    ReferenceBinding,
)
from .errors import BindingError, ResizeflowError


class ContextWriteError(ResizeflowError):
    """An output was recorded twice for the same step."""


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


class ExecutionContext:
    """Append-only store of step outputs, keyed by step name.

    Each (step, output) pair may be written once. Resolution of bindings
    reads parameters and previously recorded outputs only.
    """

    def __init__(self, parameters: Mapping[str, Any] | None = None) -> None:
        self._parameters: Dict[str, Any] = dict(parameters or {})
        self._outputs: Dict[str, Dict[str, Any]] = {}

    @property
    def parameters(self) -> Dict[str, Any]:
        return dict(self._parameters)

    def record(self, step: str, name: str, value: Any) -> None:
        outputs = self._outputs.setdefault(step, {})
        if name in outputs:
            raise ContextWriteError(f"Output {step}.{name} already recorded")
        outputs[name] = copy.deepcopy(value)

    def record_many(self, step: str, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self.record(step, name, value)

    def has(self, step: str, name: str) -> bool:
        return name in self._outputs.get(step, {})

    def get(self, step: str, name: str) -> Any:
        try:
            return copy.deepcopy(self._outputs[step][name])
        except KeyError:
            raise BindingError(f"No output {step}.{name} recorded") from None

    def outputs_of(self, step: str) -> Dict[str, Any]:
        return copy.deepcopy(self._outputs.get(step, {}))

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._outputs)

    # ------------------------------------------------------------------
    def resolve(self, binding: Binding) -> Any:
        """Resolve ``binding`` to a concrete value."""
        if isinstance(binding, LiteralBinding):
            return copy.deepcopy(binding.value)
        if isinstance(binding, ReferenceBinding):
            if binding.step is not None:
                return self.get(binding.step, binding.name)
            if binding.name not in self._parameters:
                raise BindingError(f"Parameter {binding.name} has no value")
            return copy.deepcopy(self._parameters[binding.name])
        if isinstance(binding, FirstOfBinding):
            return self._resolve_first_of(binding)
        if isinstance(binding, ListBinding):
            return [self.resolve(item) for item in binding.items]
        if isinstance(binding, MappingBinding):
            return {key: self.resolve(item) for key, item in binding.items}
        raise TypeError(f"Unknown binding {binding!r}")

    def resolve_inputs(self, bindings: Mapping[str, Binding]) -> Dict[str, Any]:
        return {name: self.resolve(b) for name, b in bindings.items()}

    def _resolve_first_of(self, binding: FirstOfBinding) -> Any:
        resolved = False
        fallback: Any = None
        errors = []
        for option in binding.options:
            try:
                value = self.resolve(option)
            except BindingError as exc:
                errors.append(exc.message)
                continue
            if not _is_empty(value):
                return value
            resolved, fallback = True, value
        if resolved:
            return fallback
        raise BindingError("No option resolved: " + "; ".join(errors))
