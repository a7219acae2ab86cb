"""Request/response task protocol for long-running simulations.

A SimulationWorker runs requests on a thread pool and posts messages to a
channel; a SimulationClient submits one request at a time and drains the
channel. Message kinds:

- REQUEST   {id, task, payload}
- PROGRESS  {id, progress: 0-100}
- SUCCESS   {id, payload}
- ERROR     {id, error}

The client ignores any message whose id is not the pending request's id,
so late messages from an abandoned request cannot leak into a new one.
"""

import concurrent.futures
import logging
import queue
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .errors import CapstackError, ConfigurationError
from .models.operations import ModelInput
from .models.simulation import SimulationConfig
from .monte_carlo import run_monte_carlo
from .result import EngineFailure, EngineResult, EngineSuccess, failure_from_error
from .scenarios import run_scenario_triad

logger = logging.getLogger(__name__)


class MessageKind(str, Enum):
    """Kinds of task message."""
    REQUEST = "REQUEST"
    PROGRESS = "PROGRESS"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class TaskType(str, Enum):
    """Work a worker knows how to run."""
    MONTE_CARLO = "monte_carlo"
    SCENARIO_TRIAD = "scenario_triad"


@dataclass(frozen=True)
class TaskMessage:
    """One message on the task channel."""
    kind: MessageKind
    id: str
    task: Optional[TaskType] = None
    payload: Any = None
    progress: Optional[float] = None
    error: Optional[EngineFailure] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (MessageKind.SUCCESS, MessageKind.ERROR)


class SimulationWorker:
    """Runs task requests on a thread pool and reports on a channel."""

    def __init__(self, channel: "queue.Queue[TaskMessage]", max_workers: int = 1):
        self.channel = channel
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)

    def handle(self, request: TaskMessage, cancel_event: threading.Event) -> concurrent.futures.Future:
        """Start ``request`` in the background."""
        if request.kind != MessageKind.REQUEST:
            raise ValueError(f"Worker only accepts REQUEST messages, got {request.kind.value}")
        return self._executor.submit(self._execute, request, cancel_event)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _post(self, message: TaskMessage) -> None:
        self.channel.put(message)

    def _progress(self, request_id: str, completed: int, total: int) -> None:
        pct = 100.0 if total == 0 else 100.0 * completed / total
        self._post(TaskMessage(kind=MessageKind.PROGRESS, id=request_id, progress=pct))

    def _execute(self, request: TaskMessage, cancel_event: threading.Event) -> None:
        try:
            payload = self._run(request, cancel_event)
        except CapstackError as e:
            self._post(TaskMessage(kind=MessageKind.ERROR, id=request.id, error=failure_from_error(e)))
        except Exception as e:
            logger.exception("Task %s failed unexpectedly", request.id)
            self._post(TaskMessage(
                kind=MessageKind.ERROR,
                id=request.id,
                error=EngineFailure(code="INTERNAL_ERROR", message=str(e)),
            ))
        else:
            self._post(TaskMessage(kind=MessageKind.SUCCESS, id=request.id, payload=payload))

    def _run(self, request: TaskMessage, cancel_event: threading.Event) -> Any:
        payload: Dict[str, Any] = request.payload or {}
        model_input = payload.get("model_input")
        if not isinstance(model_input, ModelInput):
            raise ConfigurationError("Task payload requires a model_input", field="model_input")

        if request.task == TaskType.MONTE_CARLO:
            config = payload.get("config") or SimulationConfig()
            return run_monte_carlo(
                model_input,
                config,
                progress_callback=lambda done, total: self._progress(request.id, done, total),
                cancel_event=cancel_event,
            )
        if request.task == TaskType.SCENARIO_TRIAD:
            result = run_scenario_triad(model_input, payload.get("stress_pct", 0.2))
            self._progress(request.id, 1, 1)
            return result
        raise ConfigurationError(f"Unknown task type '{request.task}'", field="task")


class SimulationClient:
    """Submits one request at a time and collects its messages.

    Progress is delivered to ``on_progress`` on the thread that calls
    ``wait``, never on the worker thread.
    """

    def __init__(
        self,
        worker: Optional[SimulationWorker] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ):
        self.channel: "queue.Queue[TaskMessage]" = queue.Queue()
        self.worker = worker or SimulationWorker(self.channel)
        if worker is not None:
            worker.channel = self.channel
        self.on_progress = on_progress
        self.pending_id: Optional[str] = None
        self.last_progress: Optional[float] = None
        self._cancel_event = threading.Event()

    def submit(self, task: TaskType, payload: Dict[str, Any]) -> str:
        """Send a request and make it the pending one.

        Returns:
            The request's correlation id
        """
        request_id = uuid.uuid4().hex
        self.pending_id = request_id
        self.last_progress = None
        self._cancel_event = threading.Event()
        self.worker.handle(
            TaskMessage(kind=MessageKind.REQUEST, id=request_id, task=task, payload=payload),
            self._cancel_event,
        )
        return request_id

    def cancel(self) -> None:
        """Ask the pending request to stop between iterations."""
        self._cancel_event.set()

    def handle_message(self, message: TaskMessage) -> Optional[TaskMessage]:
        """Process one message; returns None when it was ignored."""
        if self.pending_id is None or message.id != self.pending_id:
            logger.debug("Ignoring %s message for stale request %s", message.kind.value, message.id)
            return None
        if message.kind == MessageKind.PROGRESS:
            self.last_progress = message.progress
            if self.on_progress:
                self.on_progress(message.progress)
        elif message.is_terminal:
            self.pending_id = None
        return message

    def wait(self, timeout: Optional[float] = None) -> EngineResult:
        """Drain the channel until the pending request finishes.

        Raises:
            TimeoutError: if no message arrives within ``timeout`` seconds
        """
        if self.pending_id is None:
            raise RuntimeError("No pending request")
        request_id = self.pending_id
        while True:
            try:
                message = self.channel.get(timeout=timeout)
            except queue.Empty:
                raise TimeoutError(f"No response for request {request_id} within {timeout}s")
            handled = self.handle_message(message)
            if handled is None or not handled.is_terminal:
                continue
            if handled.kind == MessageKind.SUCCESS:
                return EngineSuccess(
                    data=handled.payload,
                    warnings=list(getattr(handled.payload, "warnings", []) or []),
                )
            return handled.error

    def run(self, task: TaskType, payload: Dict[str, Any], timeout: Optional[float] = None) -> EngineResult:
        """Submit a request and wait for its result."""
        self.submit(task, payload)
        return self.wait(timeout)

    def close(self) -> None:
        self.worker.shutdown()
