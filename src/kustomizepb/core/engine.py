#!/usr/bin/env python3
"""
KUSTOMIZEPB ENGINE - The Rollout Driver
---------------------------------------
The ExecutionEngine walks the components of a Run strictly in declared
order and drives each one through its lifecycle:

    started -> (apply conditions unfulfilled -> skipped)
            -> applying (build + apply, retried with linear backoff)
            -> applied -> (readiness polling) -> ready

A readiness timeout or an exhausted apply aborts the whole run. Nothing is
rolled back; components applied so far stay applied.

Author: KustomizePB Team
Date: 2026-10-17
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from kustomizepb.conditions.evaluator import ConditionEvaluator
from kustomizepb.core.errors import ReadinessNotFulfilled, RunCancelled, ToolError
from kustomizepb.core.events import EventKind, EventQueue, RunEvent
from kustomizepb.core.models import RunComponent
from kustomizepb.core.run import Run
from kustomizepb.kube.access import ClusterAccessor

logger = logging.getLogger("kustomizepb.engine")


class ExecutionEngine:
    """
    Principal orchestrator of a rollout.

    `builder` needs build(manifest_spec, cancel) -> bytes and `applier`
    needs apply(manifest, cancel); both raise ToolError subclasses on
    failure. `sleep` replaces the backoff wait (tests pass a recorder);
    by default the engine waits on the cancel event so that cancellation
    interrupts a backoff immediately.
    """

    # attempts are numbered 0..APPLY_RETRIES, the last failure is fatal
    APPLY_RETRIES = 15
    READINESS_POLLS = 40

    def __init__(self, accessor: ClusterAccessor, builder: Any, applier: Any,
                 events: EventQueue, cancel: Optional[threading.Event] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        self.builder = builder
        self.applier = applier
        self.events = events
        self.cancel = cancel or threading.Event()
        self.evaluator = ConditionEvaluator(accessor, cancel=self.cancel)
        self._sleep_fn = sleep

    def run(self, run: Run) -> None:
        for component in run.components:
            self._run_component(component)
        logger.info("all %d components processed", len(run.components))

    def _run_component(self, rc: RunComponent) -> None:
        self._check_cancelled()
        self._emit(EventKind.COMPONENT_STARTED, rc)

        if rc.component.apply_conditions:
            self._emit(EventKind.TESTING_APPLY_CONDITIONS, rc)
            if not self.evaluator.is_fulfilled(rc.component.apply_conditions):
                self._emit(EventKind.APPLY_CONDITIONS_NOT_FULFILLED, rc)
                logger.info("%s: apply conditions not fulfilled, skipping", rc.name)
                rc.applied = True
                return

        self._emit(EventKind.APPLYING, rc)
        self._apply_with_retry(rc)
        rc.applied = True

        if rc.component.readiness_conditions:
            self._wait_ready(rc)

        rc.ready = True
        self._emit(EventKind.READY, rc)

    def _apply_with_retry(self, rc: RunComponent) -> None:
        for attempt in range(self.APPLY_RETRIES + 1):
            self._check_cancelled()
            try:
                self._apply(rc.component.manifest_spec)
                return
            except ToolError as e:
                if attempt == self.APPLY_RETRIES:
                    logger.error("%s: apply failed after %d attempts", rc.name, attempt + 1)
                    raise
                logger.warning("%s: apply attempt %d failed: %s", rc.name, attempt, e)
                self._emit(EventKind.APPLY_RETRY, rc, attempt=attempt, error=str(e))
                self._sleep(attempt)

    def _apply(self, manifest_spec: Dict[str, Any]) -> None:
        manifest = self.builder.build(manifest_spec, cancel=self.cancel)
        self.applier.apply(manifest, cancel=self.cancel)

    def _wait_ready(self, rc: RunComponent) -> None:
        for attempt in range(self.READINESS_POLLS):
            self._emit(EventKind.TESTING_READINESS, rc, attempt=attempt)
            self._sleep(attempt)
            if self.evaluator.is_fulfilled(rc.component.readiness_conditions):
                logger.debug("%s: ready after %d checks", rc.name, attempt + 1)
                return

        raise ReadinessNotFulfilled(f"Readiness conditions of component '{rc.name}' are not fulfilled")

    def _sleep(self, seconds: float) -> None:
        if self._sleep_fn is None:
            if self.cancel.wait(seconds):
                raise RunCancelled("run cancelled")
            return
        self._sleep_fn(seconds)
        self._check_cancelled()

    def _check_cancelled(self) -> None:
        if self.cancel.is_set():
            raise RunCancelled("run cancelled")

    def _emit(self, kind: EventKind, rc: RunComponent, attempt: int = 0, error: Optional[str] = None) -> None:
        self.events.emit(RunEvent(kind=kind, component=rc.name, attempt=attempt, error=error))
