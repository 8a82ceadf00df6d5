"""LCMSFast - chromatographic feature extraction and alignment for LC-MS data.

This library provides Numba-optimized building blocks for processing LC-MS
raw data files into aligned feature tables:

    raw scans -> filters -> chromatograms -> peak picking -> peak lists -> alignment

Every processing step is an ``Algorithm`` that can be run directly or as a
cancellable ``Task`` on a ``TaskExecutor``; finished results are handed to a
result sink such as ``Project``.
"""

__version__ = "0.3.0"

from lcmsfast import xic
from lcmsfast import peakpicking
from lcmsfast import filters
from lcmsfast import alignment

from lcmsfast.exceptions import ComputationError, TaskCanceled, ValidationError
from lcmsfast.scans import RawDataFile, RawScan
from lcmsfast.tasks import CancellationToken, Task, TaskExecutor, TaskResult, TaskStatus
from lcmsfast.project import Project
from lcmsfast.methods import (
    ALGORITHMS,
    detect_and_align,
    get_algorithm,
    run_alignment,
    run_method,
)

__all__ = [
    "xic",
    "peakpicking",
    "filters",
    "alignment",
    "ComputationError",
    "TaskCanceled",
    "ValidationError",
    "RawDataFile",
    "RawScan",
    "CancellationToken",
    "Task",
    "TaskExecutor",
    "TaskResult",
    "TaskStatus",
    "Project",
    "ALGORITHMS",
    "detect_and_align",
    "get_algorithm",
    "run_alignment",
    "run_method",
]
