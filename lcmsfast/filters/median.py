"""Chromatographic median filter over a raw data file.

For every data point (m/z, intensity) of every scan of the filtered MS level,
the filter looks at the ``one_sided_window_length`` scans on each side. In
each of those scans it takes the intensity of the data point closest in m/z
within ``mz_tolerance`` (0.0 if there is none); the point's own intensity
stands for its own scan. The point's intensity is replaced by the median of
these values, and the pass is repeated until nothing changes.

- Windows shrink evenly on both sides near the start and end of the run
  (no padding), so the first and last scans keep their own intensities
- Points whose median is 0.0 are dropped from the derived scan
- Scans of other MS levels pass through unchanged
- The input file is never modified; a derived file is returned

A chromatogram-level variant working on already extracted traces is
``lcmsfast.xic.median_filter_chromatogram``.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar, Tuple

import numpy as np
from numba import njit

from ..algorithm import Algorithm
from ..exceptions import ComputationError
from ..parameters import MS_LEVELS, Parameter, ParameterSet
from ..scans import RawDataFile
from ..xic.extraction import binary_search_mz_range

logger = logging.getLogger(__name__)


# Scans per kernel call; cancellation is checked between blocks
SCAN_BLOCK_SIZE = 256


ONE_SIDED_WINDOW_LENGTH = Parameter(
    "one_sided_window_length", "Window length",
    "One-sided length of the median window",
    type="int", unit="scans", default=1, minimum=1,
)
MZ_TOLERANCE = Parameter(
    "mz_tolerance", "M/Z tolerance",
    "Maximum allowed m/z difference to match data points of neighbouring scans",
    type="float", unit="Da", default=0.1, minimum=0.0,
)
MS_LEVEL = Parameter(
    "ms_level", "MS level", "MS level of scans to be filtered",
    type="enum", default=1, choices=MS_LEVELS,
)


@dataclass(frozen=True)
class MedianFilterParams(ParameterSet):
    """Parameters of the chromatographic median filter."""

    PARAMETERS: ClassVar[Tuple[Parameter, ...]] = (
        ONE_SIDED_WINDOW_LENGTH,
        MZ_TOLERANCE,
        MS_LEVEL,
    )

    one_sided_window_length: int = ONE_SIDED_WINDOW_LENGTH.default
    mz_tolerance: float = MZ_TOLERANCE.default
    ms_level: int = MS_LEVEL.default


@njit
def median_filter_scans(
    mz_array: np.ndarray,
    intensity_array: np.ndarray,
    offsets: np.ndarray,
    scan_start: int,
    scan_end: int,
    half_window: int,
    mz_tolerance: float,
) -> np.ndarray:
    """One median pass over the data points of scans ``scan_start:scan_end``.

    Parameters
    ----------
    mz_array, intensity_array : np.ndarray
        Flat data point arrays of the whole run (m/z sorted within each scan)
    offsets : np.ndarray (int64)
        CSR offsets, points of scan ``i`` are ``offsets[i]:offsets[i + 1]``
    scan_start, scan_end : int
        Block of scans to filter (end exclusive)
    half_window : int
        Number of scans on each side, reduced evenly near the ends of the run
    mz_tolerance : float
        Matching tolerance in Da

    Returns
    -------
    np.ndarray (float64)
        Filtered intensities for the points ``offsets[scan_start]:offsets[scan_end]``
    """
    n_scans = len(offsets) - 1
    base = offsets[scan_start]
    filtered = np.zeros(offsets[scan_end] - base, dtype=np.float64)
    window = np.zeros(2 * half_window + 1, dtype=np.float64)

    for s in range(scan_start, scan_end):
        k = min(half_window, s, n_scans - 1 - s)

        for i in range(offsets[s], offsets[s + 1]):
            target_mz = mz_array[i]
            count = 0

            for t in range(s - k, s + k + 1):
                if t == s:
                    value = intensity_array[i]
                else:
                    segment = mz_array[offsets[t]:offsets[t + 1]]
                    start, end = binary_search_mz_range(segment, target_mz, mz_tolerance)
                    value = 0.0
                    best = np.inf
                    for j in range(start, end):
                        distance = abs(segment[j] - target_mz)
                        if distance < best:
                            best = distance
                            value = intensity_array[offsets[t] + j]
                window[count] = value
                count += 1

            filtered[i - base] = np.median(window[:count])

    return filtered


def _median_pass(mz_array, intensity_array, offsets, params, token) -> np.ndarray:
    n_scans = len(offsets) - 1
    filtered = np.zeros(len(mz_array), dtype=np.float64)
    for block_start in range(0, n_scans, SCAN_BLOCK_SIZE):
        if token is not None:
            token.raise_if_canceled()
        block_end = min(n_scans, block_start + SCAN_BLOCK_SIZE)
        filtered[offsets[block_start]:offsets[block_end]] = median_filter_scans(
            mz_array,
            intensity_array,
            offsets,
            block_start,
            block_end,
            int(params.one_sided_window_length),
            float(params.mz_tolerance),
        )
    return filtered


def median_filter_file(raw_file: RawDataFile, params: MedianFilterParams, token=None) -> RawDataFile:
    """Apply the chromatographic median filter to ``raw_file``.

    Median passes are repeated until no data point changes or is dropped,
    so filtering the result again returns the same data points.

    Raises
    ------
    ComputationError
        If the file has no scans at ``params.ms_level`` or contains
        non-finite values
    """
    flat = raw_file.to_flat_arrays(params.ms_level)
    offsets = flat["offsets"]
    n_scans = len(offsets) - 1
    if n_scans == 0:
        raise ComputationError(f"{raw_file.file_id}: no MS{params.ms_level} scans to filter")

    mz_array = flat["mz_array"]
    intensity_array = flat["intensity_array"]
    if not (np.all(np.isfinite(mz_array)) and np.all(np.isfinite(intensity_array))):
        raise ComputationError(f"{raw_file.file_id}: scan data contains non-finite values")

    scan_index = flat["scan_array"]
    for n_passes in range(1, n_scans + 2):
        filtered = _median_pass(mz_array, intensity_array, offsets, params, token)
        keep = filtered > 0
        if keep.all() and np.array_equal(filtered, intensity_array):
            logger.debug(f"{raw_file.file_id}: median filter settled after {n_passes} passes")
            break

        mz_array = mz_array[keep]
        intensity_array = filtered[keep]
        scan_index = scan_index[keep]
        offsets = np.zeros(n_scans + 1, dtype=np.int64)
        offsets[1:] = np.cumsum(np.bincount(scan_index, minlength=n_scans))
    else:
        logger.warning(f"{raw_file.file_id}: median filter still changing after {n_scans:,} passes")

    scans = []
    level_index = 0
    for scan in raw_file:
        if scan.ms_level != params.ms_level:
            scans.append(scan)
            continue
        points = slice(offsets[level_index], offsets[level_index + 1])
        scans.append(scan.with_points(mz_array[points], intensity_array[points]))
        level_index += 1

    return raw_file.derive(f"{raw_file.file_id} filtered", scans)


class ChromatographicMedianFilter(Algorithm):
    """Chromatographic median filter over one raw data file."""

    name = "Chromatographic median filter"
    parameter_class = MedianFilterParams

    def run(self, raw_file: RawDataFile, params: MedianFilterParams, token=None) -> RawDataFile:
        logger.info(f"Running {self.name} on {raw_file.file_id}")
        result = median_filter_file(raw_file, params, token)
        n_before = sum(len(scan) for scan in raw_file)
        n_after = sum(len(scan) for scan in result)
        logger.info(
            f"✓ Median filtered {raw_file.file_id}: {n_after:,} of {n_before:,} data points kept"
        )
        return result
