"""Asynchronous execution of algorithm runs.

A ``Task`` is one unit of work: an algorithm, its input and a parameter set.
Running it yields exactly one terminal ``TaskResult``:

- FINISHED with the produced value
- ERROR with a human-readable message
- CANCELED with neither value nor message

Cancellation is cooperative. Algorithms call ``token.raise_if_canceled()``
between top-level loop iterations (scans, bins, recursion steps, peak lists);
a canceled run publishes nothing.

Examples
--------
>>> from lcmsfast.peakpicking import LocalMaximaPicker, LocalMaximaParams
>>> with TaskExecutor(max_workers=4) as executor:
...     futures = [executor.submit(Task(LocalMaximaPicker(), f, LocalMaximaParams()))
...                for f in raw_files]
...     results = [future.result() for future in futures]
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence

from .algorithm import Algorithm
from .exceptions import ComputationError, TaskCanceled, ValidationError
from .parameters import ParameterSet

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    """Lifecycle states of a task."""
    WAITING = "waiting"
    PROCESSING = "processing"
    FINISHED = "finished"
    CANCELED = "canceled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.FINISHED, TaskStatus.CANCELED, TaskStatus.ERROR)


class CancellationToken:
    """Thread-safe cancellation flag checked by running algorithms."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_canceled(self) -> bool:
        return self._event.is_set()

    def raise_if_canceled(self) -> None:
        if self._event.is_set():
            raise TaskCanceled("Cancellation requested")


@dataclass(frozen=True)
class TaskResult:
    """Terminal outcome of one task.

    Attributes:
        status: FINISHED, ERROR or CANCELED
        source: Identifier of the input (file id, or tuple of file ids)
        value: Produced result (FINISHED only)
        parameters: Parameter set the task ran with
        error_message: Human-readable message (ERROR only)
        method: Name of the algorithm
    """

    status: TaskStatus
    source: Any = None
    value: Any = None
    parameters: Optional[ParameterSet] = None
    error_message: str = ""
    method: str = ""

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.FINISHED


class Task:
    """One algorithm run over one input.

    Parameters
    ----------
    algorithm : Algorithm
        Algorithm to run
    data : object
        Input (RawDataFile for pickers and filters, list of PeakList for aligners)
    params : ParameterSet
        Parameter set, validated when the task starts
    token : CancellationToken, optional
        Created if not given
    """

    def __init__(
        self,
        algorithm: Algorithm,
        data: Any,
        params: ParameterSet,
        token: Optional[CancellationToken] = None,
    ):
        self.algorithm = algorithm
        self.data = data
        self.params = params
        self.token = token or CancellationToken()
        self.source = algorithm.source_of(data)
        self._status = TaskStatus.WAITING
        self._lock = threading.Lock()

    @property
    def status(self) -> TaskStatus:
        return self._status

    def cancel(self) -> None:
        self.token.cancel()

    def __repr__(self) -> str:
        return f"Task({self.algorithm.name!r}, source={self.source!r}, status={self._status.name})"

    def _finish(self, status: TaskStatus, **fields) -> TaskResult:
        with self._lock:
            self._status = status
        return TaskResult(
            status=status,
            source=self.source,
            parameters=self.params,
            method=self.algorithm.name,
            **fields,
        )

    def run(self) -> TaskResult:
        """Execute the task and return its terminal result.

        Programming errors (anything other than validation, computation,
        numeric and cancellation failures) propagate to the caller.
        """
        with self._lock:
            if self._status.is_terminal:
                raise RuntimeError(f"{self!r} has already run")
            self._status = TaskStatus.PROCESSING

        try:
            self.token.raise_if_canceled()
            self.algorithm.validate(self.params)
            value = self.algorithm.run(self.data, self.params, self.token)
        except TaskCanceled:
            logger.info(f"{self.algorithm.name} on {self.source} canceled")
            return self._finish(TaskStatus.CANCELED)
        except (ValidationError, ComputationError, ValueError, FloatingPointError) as e:
            msg = f"Error while running {self.algorithm.name} on {self.source}: {e}"
            logger.error(msg)
            return self._finish(TaskStatus.ERROR, error_message=msg)

        return self._finish(TaskStatus.FINISHED, value=value)


class TaskExecutor:
    """Runs tasks on a thread pool.

    Numba kernels release no GIL by default, so the pool mainly overlaps the
    Python-level parts of independent runs; results are identical to running
    the tasks sequentially.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lcmsfast")

    def submit(self, task: Task) -> "Future[TaskResult]":
        return self._pool.submit(task.run)

    def run_all(self, tasks: Sequence[Task]) -> List[TaskResult]:
        """Run tasks concurrently; results in submission order."""
        futures = [self.submit(task) for task in tasks]
        return [future.result() for future in futures]

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "TaskExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)
