"""Declarative workflow construction and YAML documents."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from .contracts import (
    ActionType,
    OnFailure,
    OutputSpec,
    ParameterSpec,
    Step,
    ValueType,
    Workflow,
)
from .errors import ConfigurationError


class WorkflowBuilder:
    """Accumulates steps in order and links them into a chain.

    Each added step routes to the one added after it unless an explicit
    ``next_step`` is given; the last step becomes the end step.
    """

    def __init__(self, name: str, description: Optional[str] = None) -> None:
        self._name = name
        self._description = description
        self._parameters: Dict[str, ParameterSpec] = {}
        self._steps: List[Dict[str, Any]] = []

    def add_parameter(
        self,
        name: str,
        type: ValueType = ValueType.STRING,
        description: Optional[str] = None,
        default: Any = None,
    ) -> "WorkflowBuilder":
        self._parameters[name] = ParameterSpec(
            type=type, description=description, default=default
        )
        return self

    def add_step(
        self,
        name: str,
        action: ActionType,
        inputs: Optional[Dict[str, Any]] = None,
        outputs: Optional[List[OutputSpec]] = None,
        on_failure: OnFailure = OnFailure.ABORT,
        next_step: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        compensate_with: Optional[str] = None,
    ) -> "WorkflowBuilder":
        """Add a step to the end of the chain."""
        self._steps.append(
            {
                "name": name,
                "action": action,
                "inputs": inputs or {},
                "outputs": outputs or [],
                "on_failure": on_failure,
                "next_step": next_step,
                "timeout_seconds": timeout_seconds,
                "compensate_with": compensate_with,
            }
        )
        return self

    def build(self) -> Workflow:
        steps: List[Step] = []
        for index, fields in enumerate(self._steps):
            fields = dict(fields)
            is_last = index == len(self._steps) - 1
            if fields["next_step"] is None and not is_last:
                fields["next_step"] = self._steps[index + 1]["name"]
            steps.append(Step(is_end=is_last and fields["next_step"] is None, **fields))
        return Workflow(
            name=self._name,
            description=self._description,
            parameters=dict(self._parameters),
            main_steps=steps,
        )


def parse_workflow(data: Dict[str, Any]) -> Workflow:
    """Build a workflow from a decoded document."""
    try:
        return Workflow.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid workflow document: {exc}") from None


def load_workflow(path: Union[str, Path]) -> Workflow:
    """Load a workflow definition from a YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse workflow {path}: {exc}") from None
    if not isinstance(data, dict):
        raise ConfigurationError(f"Workflow {path} must be a mapping")
    data.setdefault("name", Path(path).stem)
    return parse_workflow(data)


def dump_workflow(workflow: Workflow) -> str:
    """Serialize ``workflow`` to a YAML document."""
    data = workflow.model_dump(mode="json", by_alias=True, exclude_none=True)
    for step in data.get("mainSteps", []):
        if not step.get("isEnd"):
            step.pop("isEnd", None)
        if not step.get("outputs"):
            step.pop("outputs", None)
    return yaml.safe_dump(data, sort_keys=False)
