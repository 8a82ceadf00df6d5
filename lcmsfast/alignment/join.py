"""Join aligner: match peaks of several peak lists into aligned rows.

Algorithm
---------
1. Seed one row per peak of the first peak list
2. For every further peak list, collect all (row, peak) pairs with
   ``|dm/z| <= mz_tolerance`` and ``|dRT| <= rt_tolerance`` (closed intervals).
   A relative RT tolerance scales with max(|RT row|, |RT peak|)
3. Score every pair by its normalized distance
   ``d = hypot(dm/z / mz_tolerance, dRT / rt_tolerance)``; score = 1 / (1 + d)
4. Greedy best-first assignment. Pairs are visited by
   (distance ascending, row index ascending, peak index ascending), which is
   also the tie-break rule, and a pair is assigned if neither its row nor its
   peak is taken yet
5. Unmatched peaks become new singleton rows that later peak lists can join
6. Row anchors (m/z, RT) are the means of their member peaks and are
   recomputed after every peak list

Rows are returned in creation order. Each row holds at most one peak per
file; peaks are shared references to the peaks of the input lists.

Examples
--------
>>> result = join_align([peak_list_a, peak_list_b], JoinAlignerParams(mz_tolerance=0.05))
>>> len(result), result.file_ids
(153, ('sample_a', 'sample_b'))
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import ClassVar, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

import numba as nb
import numpy as np

from ..algorithm import Algorithm
from ..exceptions import ValidationError
from ..parameters import Parameter, ParameterSet
from ..peakpicking.peaks import Peak, PeakList
from ..xic.extraction import binary_search_mz_range

logger = logging.getLogger(__name__)


RT_TOLERANCE_TYPES = ("absolute", "relative")

# Float slack on closed tolerance windows
_SEARCH_SLACK = 1e-9

MZ_TOLERANCE = Parameter(
    "mz_tolerance", "M/Z tolerance",
    "Maximum allowed M/Z difference between a row and a matched peak",
    type="float", unit="Da", default=0.2, minimum=0.0,
)
RT_TOLERANCE_TYPE = Parameter(
    "rt_tolerance_type", "RT tolerance type",
    "Use an absolute RT tolerance or one relative to the retention time",
    type="enum", default="absolute", choices=RT_TOLERANCE_TYPES,
)
RT_TOLERANCE = Parameter(
    "rt_tolerance", "RT tolerance (absolute)",
    "Maximum allowed RT difference between a row and a matched peak",
    type="float", unit="seconds", default=15.0, minimum=0.0,
)
RT_TOLERANCE_RELATIVE = Parameter(
    "rt_tolerance_relative", "RT tolerance (relative)",
    "Maximum allowed RT difference as a fraction of the larger RT of row and peak",
    type="float", unit="%", default=0.15, minimum=0.0, maximum=1.0,
)


@dataclass(frozen=True)
class JoinAlignerParams(ParameterSet):
    """Tolerance windows of the join aligner."""

    PARAMETERS: ClassVar[Tuple[Parameter, ...]] = (
        MZ_TOLERANCE,
        RT_TOLERANCE_TYPE,
        RT_TOLERANCE,
        RT_TOLERANCE_RELATIVE,
    )

    mz_tolerance: float = MZ_TOLERANCE.default
    rt_tolerance_type: str = RT_TOLERANCE_TYPE.default
    rt_tolerance: float = RT_TOLERANCE.default
    rt_tolerance_relative: float = RT_TOLERANCE_RELATIVE.default

    @property
    def rt_relative(self) -> bool:
        return self.rt_tolerance_type == "relative"

    @property
    def rt_window(self) -> float:
        """RT tolerance in seconds, or the fraction of RT in relative mode."""
        if self.rt_relative:
            return float(self.rt_tolerance_relative)
        return float(self.rt_tolerance)


class AlignmentRow:
    """One aligned feature: at most one peak per file.

    The anchor ``mz`` and ``rt`` are the means over the member peaks.
    """

    __slots__ = ("_peaks", "_mz", "_rt")

    def __init__(self, peaks: Mapping[str, Peak]):
        if not peaks:
            raise ValidationError("An alignment row needs at least one peak")
        self._peaks = MappingProxyType(dict(peaks))
        self._mz = float(np.mean([p.mz for p in self._peaks.values()]))
        self._rt = float(np.mean([p.apex_rt for p in self._peaks.values()]))

    @property
    def peaks(self) -> Mapping[str, Peak]:
        return self._peaks

    @property
    def mz(self) -> float:
        return self._mz

    @property
    def rt(self) -> float:
        return self._rt

    @property
    def n_peaks(self) -> int:
        return len(self._peaks)

    @property
    def file_ids(self) -> Tuple[str, ...]:
        return tuple(self._peaks)

    def get(self, file_id: str) -> Optional[Peak]:
        return self._peaks.get(file_id)

    def __contains__(self, file_id: str) -> bool:
        return file_id in self._peaks

    def __len__(self) -> int:
        return len(self._peaks)

    def __repr__(self) -> str:
        return f"AlignmentRow(mz={self._mz:.4f}, rt={self._rt:.2f}, n_peaks={len(self._peaks)})"


class AlignmentResult:
    """Aligned rows over a set of files. Never modified after creation."""

    def __init__(
        self,
        rows: Sequence[AlignmentRow],
        file_ids: Sequence[str],
        parameters: Optional[ParameterSet] = None,
        method: str = "",
    ):
        self._rows = tuple(rows)
        self._file_ids = tuple(file_ids)
        self._parameters = parameters
        self._method = method

    @property
    def rows(self) -> Tuple[AlignmentRow, ...]:
        return self._rows

    @property
    def file_ids(self) -> Tuple[str, ...]:
        return self._file_ids

    @property
    def parameters(self) -> Optional[ParameterSet]:
        return self._parameters

    @property
    def method(self) -> str:
        return self._method

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[AlignmentRow]:
        return iter(self._rows)

    def __getitem__(self, index: int) -> AlignmentRow:
        return self._rows[index]

    def __repr__(self) -> str:
        return f"AlignmentResult(n_rows={len(self._rows)}, file_ids={self._file_ids})"

    def matched_pairs(self, file_a: str, file_b: str) -> Set[Tuple[Peak, Peak]]:
        """Pairs (peak of file_a, peak of file_b) that share a row."""
        return {
            (row.get(file_a), row.get(file_b))
            for row in self._rows
            if file_a in row and file_b in row
        }

    def intensity_matrix(self, kind: str = "height") -> np.ndarray:
        """Rows x files matrix of peak heights or areas, NaN where missing."""
        if kind not in ("height", "area"):
            raise ValueError(f"Unknown intensity kind: {kind}. Use 'height' or 'area'.")

        matrix = np.full((len(self._rows), len(self._file_ids)), np.nan)
        for r, row in enumerate(self._rows):
            for c, file_id in enumerate(self._file_ids):
                peak = row.get(file_id)
                if peak is not None:
                    matrix[r, c] = peak.apex_intensity if kind == "height" else peak.area
        return matrix


def match_score(distance: float) -> float:
    """Score of a candidate pair; 1.0 for a perfect match."""
    return 1.0 / (1.0 + distance)


@nb.njit
def _closed_limit(tolerance: float) -> float:
    """Upper bound of a closed tolerance window, widened by the float slack."""
    return tolerance * (1.0 + _SEARCH_SLACK) + _SEARCH_SLACK


@nb.njit
def _pair_rt_tolerance(row_rt: float, peak_rt: float, rt_tolerance: float, relative: bool) -> float:
    if relative:
        return rt_tolerance * max(abs(row_rt), abs(peak_rt))
    return rt_tolerance


@nb.njit
def find_candidate_pairs(
    row_mz: np.ndarray,
    row_rt: np.ndarray,
    sorted_peak_mz: np.ndarray,
    sorted_peak_rt: np.ndarray,
    peak_order: np.ndarray,
    mz_tolerance: float,
    rt_tolerance: float,
    rt_relative: bool,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """All (row, peak) pairs inside both tolerance windows.

    Both windows are closed. A difference that equals the tolerance up to
    float rounding (100.0 vs 100.2 at 0.2 Da) is inside.

    Parameters
    ----------
    row_mz, row_rt : np.ndarray
        Row anchors
    sorted_peak_mz, sorted_peak_rt : np.ndarray
        Peaks of the incoming list, sorted by m/z
    peak_order : np.ndarray (int64)
        Original index of every sorted peak
    mz_tolerance : float
        m/z tolerance (Da)
    rt_tolerance : float
        RT tolerance in seconds, or a fraction if ``rt_relative``
    rt_relative : bool
        Scale the RT tolerance by the larger |RT| of row and peak

    Returns
    -------
    pair_rows : np.ndarray (int64)
    pair_peaks : np.ndarray (int64)
        Original peak indices
    distances : np.ndarray (float64)
        Normalized distance of every pair
    """
    n_rows = len(row_mz)
    mz_limit = _closed_limit(mz_tolerance)

    # First pass counts pairs, second pass fills them
    n_pairs = 0
    for r in range(n_rows):
        start, end = binary_search_mz_range(sorted_peak_mz, row_mz[r], mz_limit)
        for j in range(start, end):
            rt_tol = _pair_rt_tolerance(row_rt[r], sorted_peak_rt[j], rt_tolerance, rt_relative)
            if (abs(sorted_peak_mz[j] - row_mz[r]) <= mz_limit
                    and abs(sorted_peak_rt[j] - row_rt[r]) <= _closed_limit(rt_tol)):
                n_pairs += 1

    pair_rows = np.empty(n_pairs, dtype=np.int64)
    pair_peaks = np.empty(n_pairs, dtype=np.int64)
    distances = np.empty(n_pairs, dtype=np.float64)

    k = 0
    for r in range(n_rows):
        start, end = binary_search_mz_range(sorted_peak_mz, row_mz[r], mz_limit)
        for j in range(start, end):
            d_mz = abs(sorted_peak_mz[j] - row_mz[r])
            d_rt = abs(sorted_peak_rt[j] - row_rt[r])
            rt_tol = _pair_rt_tolerance(row_rt[r], sorted_peak_rt[j], rt_tolerance, rt_relative)
            if d_mz <= mz_limit and d_rt <= _closed_limit(rt_tol):
                # A zero tolerance only admits differences within the slack, which add 0
                n_mz = d_mz / mz_tolerance if mz_tolerance > 0 else 0.0
                n_rt = d_rt / rt_tol if rt_tol > 0 else 0.0
                pair_rows[k] = r
                pair_peaks[k] = peak_order[j]
                distances[k] = np.sqrt(n_mz * n_mz + n_rt * n_rt)
                k += 1

    return pair_rows, pair_peaks, distances


@nb.njit
def greedy_assign(
    pair_rows: np.ndarray,
    pair_peaks: np.ndarray,
    n_rows: int,
    n_peaks: int,
) -> np.ndarray:
    """Greedy one-to-one assignment over pre-ordered candidate pairs.

    Args:
        pair_rows: Row index of every pair, best pair first
        pair_peaks: Peak index of every pair, same order
        n_rows: Number of rows
        n_peaks: Number of peaks

    Returns:
        Array of length n_rows with the assigned peak index, -1 if none
    """
    peak_for_row = np.full(n_rows, -1, dtype=np.int64)
    peak_taken = np.zeros(n_peaks, dtype=np.bool_)

    for k in range(len(pair_rows)):
        r = pair_rows[k]
        p = pair_peaks[k]
        if peak_for_row[r] >= 0 or peak_taken[p]:
            continue
        peak_for_row[r] = p
        peak_taken[p] = True

    return peak_for_row


def match_peaks_to_rows(
    row_mz: np.ndarray,
    row_rt: np.ndarray,
    peak_mz: np.ndarray,
    peak_rt: np.ndarray,
    params: JoinAlignerParams,
) -> np.ndarray:
    """Match one peak list against the current rows.

    Returns
    -------
    np.ndarray (int64)
        Peak index assigned to every row, -1 if the row got no peak
    """
    n_rows = len(row_mz)
    n_peaks = len(peak_mz)
    if n_rows == 0 or n_peaks == 0:
        return np.full(n_rows, -1, dtype=np.int64)

    peak_order = np.argsort(peak_mz, kind="stable").astype(np.int64)
    pair_rows, pair_peaks, distances = find_candidate_pairs(
        row_mz.astype(np.float64),
        row_rt.astype(np.float64),
        peak_mz[peak_order].astype(np.float64),
        peak_rt[peak_order].astype(np.float64),
        peak_order,
        float(params.mz_tolerance),
        params.rt_window,
        params.rt_relative,
    )

    # Best score first; ties broken by lowest row index, then lowest peak index
    order = np.lexsort((pair_peaks, pair_rows, distances))
    return greedy_assign(pair_rows[order], pair_peaks[order], n_rows, n_peaks)


def join_align(
    peak_lists: Sequence[PeakList],
    params: JoinAlignerParams,
    token=None,
    method: str = "Join aligner",
) -> AlignmentResult:
    """Align peak lists into an AlignmentResult.

    Parameters
    ----------
    peak_lists : sequence of PeakList
        One peak list per file; the first list seeds the rows
    params : JoinAlignerParams
        Tolerance windows
    token : CancellationToken, optional
        Checked between peak lists

    Returns
    -------
    AlignmentResult
        Rows in creation order

    Raises
    ------
    ValidationError
        If no peak list is given or file ids are not unique
    """
    peak_lists = list(peak_lists)
    if not peak_lists:
        raise ValidationError("Join aligner needs at least one peak list")

    file_ids = [pl.file_id for pl in peak_lists]
    if len(set(file_ids)) != len(file_ids):
        raise ValidationError(f"Peak lists must come from distinct files, got {file_ids}")

    members: List[Dict[str, Peak]] = []
    row_mz = np.zeros(0, dtype=np.float64)
    row_rt = np.zeros(0, dtype=np.float64)

    for peak_list in peak_lists:
        if token is not None:
            token.raise_if_canceled()
        if len(peak_list) == 0:
            logger.warning(f"Peak list of {peak_list.file_id} is empty")

        peaks = peak_list.peaks
        peak_for_row = match_peaks_to_rows(
            row_mz, row_rt, peak_list.mz_array(), peak_list.rt_array(), params
        )

        matched = np.zeros(len(peaks), dtype=bool)
        for r, p in enumerate(peak_for_row):
            if p >= 0:
                members[r][peak_list.file_id] = peaks[p]
                matched[p] = True

        for p, peak in enumerate(peaks):
            if not matched[p]:
                members.append({peak_list.file_id: peak})

        row_mz = np.array([np.mean([pk.mz for pk in m.values()]) for m in members], dtype=np.float64)
        row_rt = np.array([np.mean([pk.apex_rt for pk in m.values()]) for m in members], dtype=np.float64)

        logger.info(
            f"Aligned {peak_list.file_id}: {int(matched.sum()):,} of {len(peaks):,} peaks "
            f"joined existing rows, {len(members):,} rows total"
        )

    result = AlignmentResult(
        [AlignmentRow(m) for m in members], file_ids, parameters=params, method=method
    )
    logger.info(f"✓ Alignment complete: {len(result):,} rows over {len(file_ids)} peak lists")
    return result


class JoinAligner(Algorithm):
    """Join aligner over a set of peak lists."""

    name = "Join aligner"
    parameter_class = JoinAlignerParams

    def source_of(self, peak_lists: Sequence[PeakList]) -> Tuple[str, ...]:
        return tuple(pl.file_id for pl in peak_lists)

    def run(self, peak_lists: Sequence[PeakList], params: JoinAlignerParams, token=None) -> AlignmentResult:
        logger.info(f"Running {self.name} on {len(peak_lists)} peak lists")
        return join_align(peak_lists, params, token, method=self.name)
