"""Execution engine for script runs.

Each run gets its own worker thread. Handler progress goes through a bounded
queue to the stream writer, and every run ends with exactly one terminal
event, whether the handler returned or raised.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from uuid import uuid4

from .models import LogEvent, LogLevel, RunRequest, StepResult
from .registry import SCRIPT_REGISTRY, ScriptSpec
from .settings import get_settings

logger = logging.getLogger(__name__)


class PreflightError(ValueError):
    """Run request rejected before any handler code ran."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class EventClock:
    """Millisecond wall clock that never goes backwards within one run."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            self._last = max(self._last, int(time.time() * 1000))
            return self._last


class RunChannel:
    """Bounded hand-off between a running handler and the stream writer.

    ``put`` blocks while the queue is full. Once the observer goes away the
    channel is cancelled and further events are dropped.
    """

    def __init__(self, maxsize: int, poll_interval_s: float) -> None:
        self.events: queue.Queue[LogEvent] = queue.Queue(maxsize=maxsize)
        self.cancelled = threading.Event()
        self.dropped = 0
        self._poll_interval_s = poll_interval_s

    def put(self, event: LogEvent) -> bool:
        while not self.cancelled.is_set():
            try:
                self.events.put(event, timeout=self._poll_interval_s)
                return True
            except queue.Full:
                continue
        self.dropped += 1
        return False

    def get(self) -> LogEvent | None:
        try:
            return self.events.get(timeout=self._poll_interval_s)
        except queue.Empty:
            return None


class ScriptExecutor:
    def __init__(
        self,
        *,
        registry: dict[str, ScriptSpec] | None = None,
        queue_size: int | None = None,
        poll_interval_s: float | None = None,
    ) -> None:
        settings = get_settings()
        self.registry = registry if registry is not None else SCRIPT_REGISTRY
        self.queue_size = queue_size if queue_size is not None else settings.stream_queue_size
        self.poll_interval_s = (
            poll_interval_s if poll_interval_s is not None else settings.stream_poll_interval_s
        )

    def preflight(self, run_request: RunRequest) -> ScriptSpec:
        workflow_id = run_request.workflow_id.strip()
        if not workflow_id:
            raise PreflightError("Missing workflowId")
        spec = self.registry.get(workflow_id)
        if spec is None:
            raise PreflightError(f"Unknown workflow: {workflow_id}")

        config = run_request.config
        if not config.org_url.strip() or not config.api_token.strip():
            raise PreflightError("Missing config.orgUrl or config.apiToken")
        if spec.requires_oauth and not config.has_oauth_credentials():
            raise PreflightError(
                f"OAuth credentials (clientId, privateKey, keyId) are required for {spec.name}. "
                "Configure them in Settings."
            )
        return spec

    def stream(self, run_request: RunRequest) -> Iterator[LogEvent]:
        """Validate eagerly, then return the lazy event stream for one run.

        Raises PreflightError before anything is scheduled, so callers can
        answer with a plain error body instead of opening a stream.
        """
        spec = self.preflight(run_request)
        return self._drive(spec, run_request)

    def run(self, run_request: RunRequest) -> list[LogEvent]:
        return list(self.stream(run_request))

    def _drive(self, spec: ScriptSpec, run_request: RunRequest) -> Iterator[LogEvent]:
        run_id = uuid4().hex[:12]
        clock = EventClock()
        channel = RunChannel(self.queue_size, self.poll_interval_s)
        started = time.perf_counter()
        finished = False

        def emit(level: LogLevel, message: str, *, step: str | None = None) -> None:
            channel.put(
                LogEvent(level=level, message=message, step=step, timestamp=clock.now_ms())
            )

        logger.info("script_run event=start run_id=%s workflow_id=%s", run_id, spec.workflow_id)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"script-{run_id}")
        future = pool.submit(self._run_handler, spec, run_request, emit, clock, channel)
        try:
            while True:
                event = channel.get()
                if event is None:
                    if future.done() and channel.events.empty():
                        # Handler thread died without queueing a terminal event.
                        event = _terminal_event(_result_from_future(future), clock)
                    else:
                        continue
                yield event
                if event.done:
                    finished = True
                    logger.info(
                        "script_run event=completed run_id=%s workflow_id=%s success=%s duration_ms=%d",
                        run_id,
                        spec.workflow_id,
                        event.result.success if event.result else False,
                        int((time.perf_counter() - started) * 1000),
                    )
                    return
        finally:
            if not finished:
                channel.cancelled.set()
                logger.info(
                    "script_run event=disconnected run_id=%s workflow_id=%s dropped=%d",
                    run_id,
                    spec.workflow_id,
                    channel.dropped,
                )
            # In-flight API calls finish server-side; nobody waits for them.
            pool.shutdown(wait=False)

    @staticmethod
    def _run_handler(
        spec: ScriptSpec,
        run_request: RunRequest,
        emit,
        clock: EventClock,
        channel: RunChannel,
    ) -> StepResult:
        try:
            result = spec.handler(run_request.config, run_request.inputs, emit)
            if not isinstance(result, StepResult):
                raise TypeError(
                    f"handler for {spec.workflow_id} returned {type(result).__name__}, "
                    "expected StepResult"
                )
        except Exception as exc:  # noqa: BLE001
            logger.exception("script_run event=fault workflow_id=%s", spec.workflow_id)
            result = StepResult(success=False, message=str(exc) or exc.__class__.__name__)
        if not channel.put(_terminal_event(result, clock)):
            logger.info(
                "script_run event=finished_unobserved workflow_id=%s success=%s dropped=%d",
                spec.workflow_id,
                result.success,
                channel.dropped,
            )
        return result


def _terminal_event(result: StepResult, clock: EventClock) -> LogEvent:
    return LogEvent(
        level="success" if result.success else "error",
        message=result.message,
        timestamp=clock.now_ms(),
        done=True,
        result=result,
    )


def _result_from_future(future: Future[StepResult]) -> StepResult:
    exc = future.exception()
    if exc is not None:
        return StepResult(success=False, message=str(exc) or exc.__class__.__name__)
    return future.result()
