"""Client for the run stream.

``ScriptStreamConsumer`` POSTs a run request, parses frames as they arrive and
keeps a single view of the run: its ordered log, its final result and whether
it is still running. Starting a new run always aborts the previous one, and
every state change is checked against the handle of the run that caused it so
a superseded or cancelled run can never overwrite the state of a newer one.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal
from http import client as http_client
from urllib import error, request

from .models import LogEvent, RunRequest, ScriptInputs, StepResult, ToolkitConfig
from .settings import get_settings
from .streaming import EVENT_STREAM_MEDIA_TYPE, FrameParser

logger = logging.getLogger(__name__)

ConsumerState = Literal["idle", "streaming", "done", "errored", "cancelled"]
EventCallback = Callable[[LogEvent], None]


class RunHandle:
    """Cancellation handle for one run; identity is what matters."""

    def __init__(self) -> None:
        self.cancelled = threading.Event()
        self._response: Any = None
        self._socket: socket.socket | None = None
        self._lock = threading.Lock()

    def attach(self, response: Any) -> bool:
        with self._lock:
            if self.cancelled.is_set():
                response.close()
                return False
            self._response = response
            self._socket = _response_socket(response)
            return True

    def abort(self) -> None:
        with self._lock:
            self.cancelled.set()
            response, self._response = self._response, None
            sock, self._socket = self._socket, None
        if sock is not None:
            # Wakes a reader blocked in recv; close() alone waits for that read to return.
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                logger.debug("stream_consumer event=shutdown_failed", exc_info=True)
        if response is not None:
            try:
                response.close()
            except OSError:
                logger.debug("stream_consumer event=close_failed", exc_info=True)


@dataclass(frozen=True)
class ConsumerSnapshot:
    state: ConsumerState
    logs: list[LogEvent] = field(default_factory=list)
    result: StepResult | None = None
    error: str | None = None

    @property
    def is_running(self) -> bool:
        return self.state == "streaming"


class ScriptStreamConsumer:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float | None = None,
        on_event: EventCallback | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else get_settings().consumer_timeout_s
        self.on_event = on_event
        self.state: ConsumerState = "idle"
        self.logs: list[LogEvent] = []
        self.result: StepResult | None = None
        self.error: str | None = None
        self._handle: RunHandle | None = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self.state == "streaming"

    def snapshot(self) -> ConsumerSnapshot:
        with self._lock:
            return ConsumerSnapshot(
                state=self.state,
                logs=list(self.logs),
                result=self.result,
                error=self.error,
            )

    def run(
        self,
        workflow_id: str,
        config: ToolkitConfig,
        inputs: ScriptInputs | None = None,
    ) -> ConsumerSnapshot:
        """Stream one run to completion on the calling thread."""
        handle = self._begin()
        self._consume(handle, RunRequest(workflow_id=workflow_id, config=config, inputs=inputs or {}))
        return self.snapshot()

    def run_in_background(
        self,
        workflow_id: str,
        config: ToolkitConfig,
        inputs: ScriptInputs | None = None,
    ) -> threading.Thread:
        handle = self._begin()
        run_request = RunRequest(workflow_id=workflow_id, config=config, inputs=inputs or {})
        thread = threading.Thread(
            target=self._consume,
            args=(handle, run_request),
            name=f"stream-consumer-{workflow_id}",
            daemon=True,
        )
        thread.start()
        return thread

    def cancel(self) -> bool:
        """Abort the active run. Returns False when nothing was running."""
        with self._lock:
            handle = self._handle
            if handle is None or self.state != "streaming":
                return False
            self.state = "cancelled"
            self.error = None
        handle.abort()
        logger.info("stream_consumer event=cancelled")
        return True

    def _begin(self) -> RunHandle:
        handle = RunHandle()
        with self._lock:
            previous, self._handle = self._handle, handle
            self.state = "streaming"
            self.logs = []
            self.result = None
            self.error = None
        if previous is not None:
            previous.abort()
        return handle

    def _consume(self, handle: RunHandle, run_request: RunRequest) -> None:
        body = json.dumps(
            {
                "workflowId": run_request.workflow_id,
                "config": run_request.config.model_dump(by_alias=True, exclude_none=True),
                "inputs": run_request.inputs,
            }
        ).encode("utf-8")
        req = request.Request(
            url=f"{self.base_url}/scripts/run",
            method="POST",
            data=body,
            headers={"Content-Type": "application/json", "Accept": EVENT_STREAM_MEDIA_TYPE},
        )
        parser = FrameParser()
        try:
            response = request.urlopen(req, timeout=self.timeout_s)
            if not handle.attach(response):
                return
            with response:
                for raw_line in response:
                    if handle.cancelled.is_set():
                        return
                    for event in parser.feed(raw_line.decode("utf-8", errors="replace")):
                        if not self._accept(handle, event):
                            return
                for event in parser.close():
                    if not self._accept(handle, event):
                        return
        except error.HTTPError as exc:
            self._fail(handle, f"Run request failed ({exc.code}): {_error_detail(exc)}")
            return
        except (error.URLError, http_client.HTTPException, OSError, ValueError, AttributeError) as exc:
            # Aborting from cancel() surfaces here as a read error on the torn-down response.
            self._fail(handle, f"Stream interrupted: {getattr(exc, 'reason', exc)}")
            return

        self._fail(handle, "Stream ended before the run completed.")

    def _accept(self, handle: RunHandle, event: LogEvent) -> bool:
        with self._lock:
            if handle is not self._handle or self.state != "streaming":
                return False
            if event.done:
                self.result = event.result
                self.state = "done"
            else:
                self.logs.append(event)
        if self.on_event is not None:
            self.on_event(event)
        return not event.done

    def _fail(self, handle: RunHandle, message: str) -> None:
        with self._lock:
            if handle is not self._handle or handle.cancelled.is_set() or self.state != "streaming":
                return
            self.state = "errored"
            self.error = message
        logger.warning("stream_consumer event=errored reason=%s", message)


def _error_detail(exc: error.HTTPError) -> str:
    raw = exc.read().decode("utf-8", errors="replace")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return raw.strip() or str(exc.reason)
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), str):
        return parsed["error"]
    return raw.strip() or str(exc.reason)


def _response_socket(response: Any) -> socket.socket | None:
    # urllib returns an http.client.HTTPResponse whose buffered reader wraps a SocketIO.
    raw = getattr(getattr(response, "fp", None), "raw", None)
    sock = getattr(raw, "_sock", None)
    return sock if isinstance(sock, socket.socket) else None
