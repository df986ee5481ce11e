"""Sequential workflow engine for resize and maintenance runs."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from .actions import ActionCall, ActionDefinition, get_action
from .bindings import Binding, iter_references, parse_binding
from .clients.base import ResourceClient
from .context import ExecutionContext
from .contracts import (
    ErrorInfo,
    OnFailure,
    RunResult,
    RunStatus,
    Step,
    Workflow,
)
from .errors import (
    ApiError,
    ConfigurationError,
    ResizeflowError,
    RunCancelledError,
    WaitTimeoutError,
)
from .persistence import RunRepository
from .selectors import coerce, parse_selector, select
from .utils.retry import schedule_retry
from .waiter import Waiter

logger = logging.getLogger(__name__)

# Outputs recorded for every failed step.
ERROR_OUTPUTS = frozenset({"Error", "ErrorKind"})


@dataclass(frozen=True)
class ExecutionPlan:
    """Validated workflow: the realized step path and parsed input bindings."""

    workflow: Workflow
    path: Tuple[Step, ...]
    bindings: Dict[str, Dict[str, Binding]]


def _outputs_of(step: Step, definition: ActionDefinition) -> FrozenSet[str]:
    return definition.builtin_outputs | {o.name for o in step.outputs} | ERROR_OUTPUTS


def validate_workflow(workflow: Workflow) -> ExecutionPlan:
    """Check a workflow definition and return its execution plan.

    Raises ``ConfigurationError`` for duplicate names, dangling or cyclic
    ``nextStep`` links, unterminated steps, unknown or missing inputs and
    references to parameters or steps that are not available at dispatch.
    """
    if not workflow.main_steps:
        raise ConfigurationError(f"Workflow {workflow.name} has no steps")

    by_name: Dict[str, Step] = {}
    for step in workflow.main_steps:
        if step.name in by_name:
            raise ConfigurationError(f"Duplicate step name {step.name}")
        by_name[step.name] = step

    for step in workflow.main_steps:
        if step.is_end and step.next_step:
            raise ConfigurationError(
                f"Step {step.name} is an end step but declares nextStep {step.next_step}"
            )
        if not step.is_end and not step.next_step:
            raise ConfigurationError(
                f"Step {step.name} has no nextStep and is not marked isEnd"
            )
        if step.next_step and step.next_step not in by_name:
            raise ConfigurationError(
                f"Step {step.name} routes to unknown step {step.next_step}"
            )

    path: List[Step] = []
    visited: Set[str] = set()
    current: Optional[Step] = workflow.main_steps[0]
    while current is not None:
        if current.name in visited:
            raise ConfigurationError(f"Cycle detected at step {current.name}")
        visited.add(current.name)
        path.append(current)
        current = by_name[current.next_step] if current.next_step else None

    unreachable = [s.name for s in workflow.main_steps if s.name not in visited]
    if unreachable:
        logger.warning(f"Workflow {workflow.name} has unreachable steps: {unreachable}")

    position = {step.name: index for index, step in enumerate(path)}
    bindings: Dict[str, Dict[str, Binding]] = {}
    for index, step in enumerate(path):
        definition = get_action(step.action)

        missing = definition.required_inputs - set(step.inputs)
        if missing:
            raise ConfigurationError(
                f"Step {step.name} is missing inputs: {sorted(missing)}"
            )
        unknown = set(step.inputs) - definition.accepted_inputs
        if unknown:
            raise ConfigurationError(
                f"Step {step.name} has unknown inputs for {step.action.value}: {sorted(unknown)}"
            )

        seen_outputs: Set[str] = set()
        for output in step.outputs:
            if output.name in seen_outputs or output.name in ERROR_OUTPUTS:
                raise ConfigurationError(
                    f"Step {step.name} declares output {output.name} more than once or uses a reserved name"
                )
            seen_outputs.add(output.name)
            parse_selector(output.selector)

        step_bindings = {name: parse_binding(raw) for name, raw in step.inputs.items()}
        for binding in step_bindings.values():
            for ref in iter_references(binding):
                if ref.step is None:
                    if ref.name not in workflow.parameters:
                        raise ConfigurationError(
                            f"Step {step.name} references undeclared parameter {ref.name}"
                        )
                    continue
                source_index = position.get(ref.step)
                if source_index is None or source_index >= index:
                    raise ConfigurationError(
                        f"Step {step.name} references {ref}, which does not run before it"
                    )
                source = path[source_index]
                if ref.name not in _outputs_of(source, get_action(source.action)):
                    raise ConfigurationError(
                        f"Step {step.name} references {ref}, which {source.name} does not produce"
                    )
        bindings[step.name] = step_bindings

        if step.compensate_with:
            target_index = position.get(step.compensate_with)
            if target_index is None or target_index <= index:
                raise ConfigurationError(
                    f"Step {step.name} compensates with {step.compensate_with}, "
                    "which is not a later step on the path"
                )

    return ExecutionPlan(workflow=workflow, path=tuple(path), bindings=bindings)


def resolve_parameters(
    workflow: Workflow, supplied: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Merge supplied values with declared defaults and coerce their types."""
    supplied = dict(supplied or {})
    unknown = set(supplied) - set(workflow.parameters)
    if unknown:
        raise ConfigurationError(f"Unknown parameters: {sorted(unknown)}")

    resolved: Dict[str, Any] = {}
    missing: List[str] = []
    for name, spec in workflow.parameters.items():
        value = supplied.get(name, spec.default)
        if value is None:
            missing.append(name)
            continue
        try:
            resolved[name] = coerce(value, spec.type)
        except ConfigurationError as exc:
            raise ConfigurationError(f"Parameter {name}: {exc.message}") from None
    if missing:
        raise ConfigurationError(f"Missing required parameters: {sorted(missing)}")
    return resolved


@dataclass
class _RunState:
    run_id: str
    context: ExecutionContext
    executed: List[str] = field(default_factory=list)
    step_errors: Dict[str, ErrorInfo] = field(default_factory=dict)
    compensations: List[str] = field(default_factory=list)
    compensated: List[str] = field(default_factory=list)
    current_step: Optional[str] = None
    status: RunStatus = RunStatus.FAILED
    failing_step: Optional[str] = None
    error: Optional[ErrorInfo] = None


class WorkflowEngine:
    """Executes a workflow's steps one at a time against a resource client.

    Steps are never retried by the engine. Each call to :meth:`run` owns its
    own execution context, so one engine may serve several runs.
    """

    def __init__(
        self,
        client: ResourceClient,
        repository: RunRepository | None = None,
        waiter: Waiter | None = None,
        sleep: Callable[[float, Optional[asyncio.Event]], Awaitable[None]] = schedule_retry,
    ) -> None:
        self._client = client
        self._repository = repository
        self._waiter = waiter or Waiter()
        self._sleep = sleep

    async def run(
        self,
        workflow: Workflow,
        parameters: Optional[Mapping[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        deadline_seconds: Optional[float] = None,
    ) -> RunResult:
        """Run ``workflow`` to completion and return its terminal record.

        Raises:
            ConfigurationError: The workflow or its parameters are invalid.
                Nothing has been dispatched in that case.
        """
        plan = validate_workflow(workflow)
        resolved = resolve_parameters(workflow, parameters)

        state = _RunState(run_id=str(uuid.uuid4()), context=ExecutionContext(resolved))
        started_at = datetime.now(timezone.utc)
        logger.info(f"Starting run {state.run_id} of workflow {workflow.name}")
        await self._save(
            state,
            "run start",
            lambda repo: repo.create_run(state.run_id, workflow.name, resolved),
        )

        try:
            await self._supervise(plan, state, cancel_event, deadline_seconds)
        finally:
            if state.status != RunStatus.SUCCEEDED:
                await self._compensate(plan, state)
            await self._save(
                state,
                "run outcome",
                lambda repo: repo.mark_run_completed(
                    state.run_id,
                    state.status.value,
                    failing_step=state.failing_step,
                    error=state.error.message if state.error else None,
                ),
            )

        result = RunResult(
            run_id=state.run_id,
            workflow_name=workflow.name,
            status=state.status,
            context=state.context.snapshot(),
            executed_steps=list(state.executed),
            failing_step=state.failing_step,
            error=state.error,
            step_errors=dict(state.step_errors),
            compensated_steps=list(state.compensated),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info(f"Run {state.run_id} finished with status {result.status.value}")
        return result

    async def _supervise(
        self,
        plan: ExecutionPlan,
        state: _RunState,
        cancel_event: Optional[asyncio.Event],
        deadline_seconds: Optional[float],
    ) -> None:
        """Drive the step walk, stopping it on cancellation or deadline."""
        walk = asyncio.create_task(self._walk(plan, state, cancel_event))
        watched: Set[asyncio.Future] = {walk}
        cancel_wait: Optional[asyncio.Task] = None
        if cancel_event is not None:
            cancel_wait = asyncio.create_task(cancel_event.wait())
            watched.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                watched, timeout=deadline_seconds, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            walk.cancel()
            await asyncio.wait({walk})
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if walk not in done:
            walk.cancel()
            try:
                await walk
            except (asyncio.CancelledError, RunCancelledError):
                logger.debug(f"Step walk of run {state.run_id} stopped")
            if cancel_event is not None and cancel_event.is_set():
                reason = "Run cancelled by operator"
            else:
                reason = f"Run exceeded its deadline of {deadline_seconds}s"
            self._fail_run(state, RunCancelledError(reason))
            return

        try:
            walk.result()
        except RunCancelledError as exc:
            self._fail_run(state, exc)

    def _fail_run(self, state: _RunState, exc: RunCancelledError) -> None:
        logger.error(f"Run {state.run_id} stopped at step {state.current_step}: {exc.message}")
        state.status = RunStatus.FAILED
        state.failing_step = state.current_step
        state.error = ErrorInfo.from_exception(exc, step=state.current_step)

    async def _walk(
        self,
        plan: ExecutionPlan,
        state: _RunState,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        for step in plan.path:
            state.current_step = step.name
            error = await self._execute_step(plan, step, state, cancel_event)
            if step.name in state.compensations:
                state.compensations.remove(step.name)

            if error is not None:
                if step.on_failure == OnFailure.ABORT:
                    logger.error(f"Step {step.name} failed, aborting run: {error.message}")
                    state.status = RunStatus.ABORTED
                    state.failing_step = step.name
                    state.error = ErrorInfo.from_exception(error, step=step.name)
                    return
                logger.warning(
                    f"Step {step.name} failed, continuing to {step.next_step}: {error.message}"
                )
            elif step.compensate_with:
                state.compensations.append(step.compensate_with)

            if step.is_end:
                break
        state.current_step = None
        state.status = RunStatus.SUCCEEDED

    async def _execute_step(
        self,
        plan: ExecutionPlan,
        step: Step,
        state: _RunState,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[ResizeflowError]:
        """Dispatch one step and record its outcome; return the error if it failed."""
        definition = get_action(step.action)
        logger.info(f"Running step {step.name} ({step.action.value})")
        await self._save(
            state,
            f"start of step {step.name}",
            lambda repo: repo.mark_step_started(state.run_id, step.name),
        )

        error: Optional[ResizeflowError] = None
        outputs: Dict[str, Any] = {}
        try:
            inputs = state.context.resolve_inputs(plan.bindings[step.name])
            call = ActionCall(
                client=self._client,
                step=step,
                inputs=inputs,
                waiter=self._waiter,
                cancel_event=cancel_event,
                sleep=self._sleep,
            )
            if step.timeout_seconds and not definition.waits:
                response = await asyncio.wait_for(
                    definition.handler(call), timeout=step.timeout_seconds
                )
            else:
                response = await definition.handler(call)
            outputs = self._capture(step, definition, response)
        except RunCancelledError:
            await self._record_step(state, step, "cancelled", {})
            raise
        except asyncio.CancelledError:
            await self._record_step(state, step, "cancelled", {})
            raise
        except ResizeflowError as exc:
            error = exc
        except asyncio.TimeoutError:
            error = WaitTimeoutError(
                f"Step {step.name} exceeded its timeout of {step.timeout_seconds}s"
            )
        except Exception as exc:
            logger.exception(f"Unexpected error in step {step.name}")
            error = ApiError(f"{type(exc).__name__}: {exc}")

        state.executed.append(step.name)
        if error is None:
            state.context.record_many(step.name, outputs)
            await self._record_step(state, step, "success", outputs)
            return None

        failure = {"Error": error.message, "ErrorKind": error.kind.value}
        state.context.record_many(step.name, failure)
        state.step_errors[step.name] = ErrorInfo.from_exception(error, step=step.name)
        await self._record_step(state, step, "failed", failure)
        return error

    async def _record_step(
        self, state: _RunState, step: Step, status: str, output: Dict[str, Any]
    ) -> None:
        await self._save(
            state,
            f"outcome of step {step.name}",
            lambda repo: repo.mark_step_completed(
                state.run_id, step.name, status=status, output=output
            ),
        )

    async def _save(
        self,
        state: _RunState,
        what: str,
        write: Callable[[RunRepository], Awaitable[None]],
    ) -> None:
        """Write run history; a failed write is logged and the run carries on."""
        if self._repository is None:
            return
        try:
            await write(self._repository)
        except Exception:
            logger.exception(f"Could not record {what} for run {state.run_id}")

    @staticmethod
    def _capture(
        step: Step, definition: ActionDefinition, response: Mapping[str, Any]
    ) -> Dict[str, Any]:
        declared = {o.name for o in step.outputs}
        outputs = {
            name: value
            for name, value in (response or {}).items()
            if name in definition.builtin_outputs and name not in declared
        }
        for output in step.outputs:
            outputs[output.name] = coerce(select(response, output.selector), output.type)
        return outputs

    async def _compensate(self, plan: ExecutionPlan, state: _RunState) -> None:
        """Best-effort run of cleanup steps owed by steps that succeeded."""
        pending = [name for name in reversed(state.compensations) if name not in state.executed]
        for name in pending:
            step = next(s for s in plan.path if s.name == name)
            logger.warning(f"Running compensating step {name} for run {state.run_id}")
            error = await self._execute_step(plan, step, state, cancel_event=None)
            if error is not None:
                logger.error(f"Compensating step {name} failed: {error.message}")
                continue
            state.compensated.append(name)
