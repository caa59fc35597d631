"""climan workflow - ordered execution of requests with variable flow.

Each request is resolved against a read-only snapshot of the variables,
sent, and its extracted values are merged back before the next request
starts. The first failing request aborts the run.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Mapping

from climan.core import ConcreteRequest, materialize
from climan.errors import RequestError, TransportError
from climan.extractors import extract
from climan.model import ApiSpec, Request

logger = logging.getLogger(__name__)


class StepState(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    SENDING = "sending"
    EXTRACTING = "extracting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WorkflowState(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class StepResult:
    """What happened to one request."""

    index: int
    request: Request
    state: StepState = StepState.PENDING
    concrete: ConcreteRequest | None = None
    result: object | None = None  # RequestResult from executor.py
    extracted: dict[str, str] = field(default_factory=dict)
    error: RequestError | None = None
    failed_in: StepState | None = None

    @property
    def name(self) -> str:
        return self.request.name


@dataclass
class WorkflowResult:
    state: WorkflowState = WorkflowState.RUNNING
    steps: list[StepResult] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)
    aborted_at: int | None = None
    error: RequestError | None = None

    @property
    def ok(self) -> bool:
        return self.state == WorkflowState.COMPLETED

    @property
    def failed_step(self) -> StepResult | None:
        if self.aborted_at is None:
            return None
        return self.steps[self.aborted_at]


OnRequest = Callable[[StepResult, ConcreteRequest, Mapping[str, str]], None]
OnResponse = Callable[[StepResult, object, dict[str, str]], None]


def run_step(
    step: StepResult,
    variables: Mapping[str, str],
    send: Callable,
    base_dir: Path | None = None,
    timeout: float | None = None,
    on_request: OnRequest | None = None,
) -> dict[str, str]:
    """Run one request and return the variables it extracted.

    Advances ``step.state`` as it goes. Raises RequestError on failure,
    leaving the state at the phase that failed.
    """
    request = step.request

    step.state = StepState.RESOLVING
    step.concrete = materialize(request, variables, base_dir)
    if on_request:
        on_request(step, step.concrete, variables)

    step.state = StepState.SENDING
    result = send(step.concrete, timeout=timeout)
    if result.error:
        raise TransportError(result.error)
    step.result = result
    logger.info(
        "%s %s %s -> %s",
        request.name,
        step.concrete.method,
        step.concrete.url,
        result.status_code,
    )

    step.state = StepState.EXTRACTING
    extracted = extract(request.extractors, result)
    if extracted:
        logger.debug("%s extracted %s", request.name, ", ".join(extracted))

    step.state = StepState.SUCCEEDED
    return extracted


def run_workflow(
    spec: ApiSpec,
    variables: Mapping[str, str],
    *,
    base_dir: Path | None = None,
    send: Callable | None = None,
    timeout: float | None = None,
    on_request: OnRequest | None = None,
    on_response: OnResponse | None = None,
) -> WorkflowResult:
    """Execute every request of *spec* in order.

    *send* defaults to ``climan.executor.execute_request``. Returns a
    WorkflowResult; request failures are recorded on it, not raised.
    """
    if send is None:
        from climan.executor import execute_request as send

    run = WorkflowResult(variables=dict(variables))
    logger.debug("executing workflow %s (%d requests)", spec.name or "", len(spec.requests))

    for index, request in enumerate(spec.requests):
        step = StepResult(index=index, request=request)
        run.steps.append(step)
        logger.debug("executing request %d: %s", index, request.name)

        snapshot = MappingProxyType(dict(run.variables))
        try:
            extracted = run_step(
                step,
                snapshot,
                send,
                base_dir=base_dir,
                timeout=timeout,
                on_request=on_request,
            )
        except RequestError as e:
            logger.error("request %d (%s) failed: %s", index, request.name, e)
            step.error = e
            step.failed_in = step.state
            step.state = StepState.FAILED
            run.state = WorkflowState.ABORTED
            run.aborted_at = index
            run.error = e
            return run

        step.extracted = extracted
        run.variables.update(extracted)
        if on_response:
            on_response(step, step.result, extracted)

    run.state = WorkflowState.COMPLETED
    return run
