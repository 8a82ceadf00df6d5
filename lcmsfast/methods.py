"""Algorithm registry and the pipeline entry points.

The pipeline functions take an executor and a result sink explicitly:

- ``run_method``: one task per input (filters, pickers), per-input results
- ``run_alignment``: one aligner task over several peak lists
- ``detect_and_align``: peak picking on all files, then alignment once every
  picker task has finished (barrier by task ordering, no shared locks)

Parameters are validated before anything is submitted; a ValidationError
means no task ran. After that, failures are reported per input in the
returned TaskResults and finished siblings are still committed to the sink.
"""

import logging
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

from .algorithm import Algorithm
from .alignment.join import JoinAligner, JoinAlignerParams
from .exceptions import ValidationError
from .filters.crop import CropFilter
from .filters.median import ChromatographicMedianFilter
from .parameters import ParameterSet
from .peakpicking.local_maxima import LocalMaximaPicker
from .peakpicking.peaks import PeakList, PeakPicker
from .peakpicking.recursive_threshold import RecursiveThresholdPicker
from .project import ResultSink, commit_result
from .scans import RawDataFile
from .tasks import CancellationToken, Task, TaskExecutor, TaskResult, TaskStatus

logger = logging.getLogger(__name__)


ALGORITHMS: Dict[str, Algorithm] = {
    "local_maxima": LocalMaximaPicker(),
    "recursive_threshold": RecursiveThresholdPicker(),
    "median_filter": ChromatographicMedianFilter(),
    "crop_filter": CropFilter(),
    "join_aligner": JoinAligner(),
}


def get_algorithm(name: str) -> Algorithm:
    """Look up a registered algorithm by key (e.g. ``"local_maxima"``)."""
    try:
        return ALGORITHMS[name]
    except KeyError:
        raise KeyError(f"Unknown algorithm: {name}. Available: {sorted(ALGORITHMS)}") from None


def _commit(results: Sequence[TaskResult], sink: Optional[ResultSink]) -> None:
    if sink is None:
        return
    for result in results:
        if result.status == TaskStatus.FINISHED:
            commit_result(sink, result.value, result.source, result.method, result.parameters)


def run_method(
    algorithm: Algorithm,
    inputs: Sequence[RawDataFile],
    params: ParameterSet,
    executor: TaskExecutor,
    sink: Optional[ResultSink] = None,
    token: Optional[CancellationToken] = None,
) -> Dict[Hashable, TaskResult]:
    """Run ``algorithm`` on every input file as independent tasks.

    A shared ``token`` cancels the whole batch; without one every task gets
    its own.

    Returns
    -------
    dict
        Source file id -> TaskResult, in input order

    Raises
    ------
    ValidationError
        If ``params`` is invalid or two inputs share a file id; nothing is
        submitted in that case
    """
    algorithm.validate(params)
    sources = [algorithm.source_of(data) for data in inputs]
    if len(set(sources)) != len(sources):
        raise ValidationError(f"Inputs must come from distinct files, got {sources}")
    logger.info(f"Running {algorithm.name} on {len(inputs)} files")

    tasks = [Task(algorithm, data, params, token) for data in inputs]
    results = executor.run_all(tasks)
    _commit(results, sink)

    n_failed = sum(1 for r in results if r.status == TaskStatus.ERROR)
    if n_failed:
        logger.warning(f"{algorithm.name}: {n_failed} of {len(results)} runs failed")
    return {result.source: result for result in results}


def run_alignment(
    peak_lists: Sequence[PeakList],
    params: JoinAlignerParams,
    executor: TaskExecutor,
    sink: Optional[ResultSink] = None,
    aligner: Optional[Algorithm] = None,
    token: Optional[CancellationToken] = None,
) -> TaskResult:
    """Run one aligner task over ``peak_lists``."""
    aligner = aligner or ALGORITHMS["join_aligner"]
    aligner.validate(params)

    result = executor.submit(Task(aligner, list(peak_lists), params, token)).result()
    _commit([result], sink)
    return result


def detect_and_align(
    raw_files: Sequence[RawDataFile],
    picker: PeakPicker,
    picker_params: ParameterSet,
    aligner_params: JoinAlignerParams,
    executor: TaskExecutor,
    sink: Optional[ResultSink] = None,
    token: Optional[CancellationToken] = None,
) -> Tuple[Dict[Hashable, TaskResult], Optional[TaskResult]]:
    """Pick peaks in every file, then align the peak lists that finished.

    The aligner task is submitted only after every picker task is terminal.
    If no peak list finished, no alignment is run.

    Returns
    -------
    detector_results : dict
        File id -> picker TaskResult
    alignment_result : TaskResult or None
        Aligner TaskResult, None if no peak list was available
    """
    picker.validate(picker_params)
    ALGORITHMS["join_aligner"].validate(aligner_params)

    detector_results = run_method(picker, raw_files, picker_params, executor, sink, token)

    peak_lists: List[PeakList] = [
        result.value for result in detector_results.values() if result.ok
    ]
    if not peak_lists:
        logger.warning("No peak lists available, alignment skipped")
        return detector_results, None

    return detector_results, run_alignment(peak_lists, aligner_params, executor, sink, token=token)
