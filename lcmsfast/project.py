"""In-memory project registry used as the result sink of finished tasks.

The library never reaches for a global project; callers pass a sink into the
pipeline functions of ``lcmsfast.methods``. ``Project`` is the reference
implementation. Histories are append-only: a new peak list for a file is
added after the previous ones and becomes the current one.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .alignment.join import AlignmentResult
from .parameters import ParameterSet
from .peakpicking.peaks import PeakList
from .scans import RawDataFile

logger = logging.getLogger(__name__)


@runtime_checkable
class ResultSink(Protocol):
    def add_peak_list(self, peak_list: PeakList, method: str, parameters: ParameterSet) -> None: ...

    def add_filtered_file(
        self, source_id: str, derived: RawDataFile, method: str, parameters: ParameterSet
    ) -> None: ...

    def add_alignment_result(self, result: AlignmentResult) -> None: ...


@dataclass(frozen=True)
class HistoryEntry:
    """One processing step applied to a file."""

    file_id: str
    method: str
    parameters: Optional[ParameterSet]
    output: str


class Project:
    """Thread-safe in-memory collection of files, peak lists and alignments."""

    def __init__(self, name: str = "Untitled project"):
        self.name = name
        self._lock = threading.Lock()
        self._files: Dict[str, RawDataFile] = {}
        self._peak_lists: Dict[str, List[PeakList]] = {}
        self._history: List[HistoryEntry] = []
        self._alignments: List[AlignmentResult] = []

    def add_file(self, raw_file: RawDataFile) -> None:
        with self._lock:
            if raw_file.file_id in self._files:
                raise KeyError(f"File {raw_file.file_id!r} already in project")
            self._files[raw_file.file_id] = raw_file

    def get_file(self, file_id: str) -> RawDataFile:
        return self._files[file_id]

    @property
    def file_ids(self) -> List[str]:
        with self._lock:
            return list(self._files)

    def add_peak_list(self, peak_list: PeakList, method: str, parameters: ParameterSet) -> None:
        with self._lock:
            self._peak_lists.setdefault(peak_list.file_id, []).append(peak_list)
            self._history.append(
                HistoryEntry(peak_list.file_id, method, parameters, f"{len(peak_list)} peaks")
            )
        logger.info(f"✓ Added peak list of {peak_list.file_id} ({len(peak_list):,} peaks)")

    def add_filtered_file(
        self, source_id: str, derived: RawDataFile, method: str, parameters: ParameterSet
    ) -> None:
        with self._lock:
            self._files[derived.file_id] = derived
            self._history.append(HistoryEntry(source_id, method, parameters, derived.file_id))
        logger.info(f"✓ Added {derived.file_id} derived from {source_id}")

    def add_alignment_result(self, result: AlignmentResult) -> None:
        with self._lock:
            self._alignments.append(result)
        logger.info(f"✓ Added alignment result with {len(result):,} rows")

    def current_peak_list(self, file_id: str) -> Optional[PeakList]:
        with self._lock:
            lists = self._peak_lists.get(file_id)
            return lists[-1] if lists else None

    def peak_list_history(self, file_id: str) -> List[PeakList]:
        with self._lock:
            return list(self._peak_lists.get(file_id, []))

    @property
    def history(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._history)

    @property
    def alignment_results(self) -> List[AlignmentResult]:
        with self._lock:
            return list(self._alignments)


def commit_result(sink: ResultSink, value: Any, source: Any, method: str, parameters: ParameterSet) -> None:
    """Hand a finished task's value to the sink according to its type."""
    if isinstance(value, PeakList):
        sink.add_peak_list(value, method, parameters)
    elif isinstance(value, RawDataFile):
        sink.add_filtered_file(source, value, method, parameters)
    elif isinstance(value, AlignmentResult):
        sink.add_alignment_result(value)
    else:
        raise TypeError(f"Cannot commit result of type {type(value).__name__}")
