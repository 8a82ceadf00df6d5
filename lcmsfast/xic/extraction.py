"""Extracted ion chromatogram (XIC) building by fixed-width m/z binning.

Every data point of the requested MS level is assigned to a bin of width
``bin_size`` counted from the global minimum m/z of the run:

    bin k covers [mz_min + k * bin_size, mz_min + (k + 1) * bin_size)

Bin boundaries are therefore a pure function of ``bin_size`` and the global
m/z extent, independent of scan order. For every non-empty bin one
Chromatogram is built with exactly one sample per scan:

- several points of one scan in the same bin are summed
  (m/z intensity-weighted)
- a scan without any point in the bin gives intensity 0.0 and NaN m/z
  (zero fill, no interpolation)

The binning kernels use pre-allocated (n_bins, n_scans) matrices indexed
directly by scan number, so no sorting of the data points is needed.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numba as nb
import numpy as np

from ..exceptions import ComputationError, ValidationError
from ..scans import RawDataFile

logger = logging.getLogger(__name__)


def _readonly(values) -> np.ndarray:
    array = np.array(values, dtype=np.float64, copy=True).reshape(-1)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class Chromatogram:
    """Intensity vs. retention time trace of one m/z bin.

    Attributes:
        mz_center: Center of the m/z bin
        mz_half_width: Half width of the m/z bin
        rt_values: Retention time of every sample (seconds)
        intensities: Summed intensity of every sample
        mz_values: Intensity-weighted m/z of every sample (NaN where empty)
        mz_lower: Smallest contributing m/z of every sample (NaN where empty)
        mz_upper: Largest contributing m/z of every sample (NaN where empty)
        bin_index: Index of the m/z bin (-1 for synthetic traces)
    """

    mz_center: float
    mz_half_width: float
    rt_values: np.ndarray
    intensities: np.ndarray
    mz_values: np.ndarray
    mz_lower: np.ndarray
    mz_upper: np.ndarray
    bin_index: int = -1

    def __post_init__(self):
        n = len(np.reshape(self.rt_values, -1))
        for name in ("rt_values", "intensities", "mz_values", "mz_lower", "mz_upper"):
            array = _readonly(getattr(self, name))
            if len(array) != n:
                raise ValidationError(
                    f"Chromatogram {name} has {len(array)} samples, expected {n}"
                )
            object.__setattr__(self, name, array)

    def __len__(self) -> int:
        return len(self.rt_values)

    @property
    def mz_range(self) -> Tuple[float, float]:
        return (self.mz_center - self.mz_half_width, self.mz_center + self.mz_half_width)

    @classmethod
    def from_arrays(
        cls,
        rt_values: np.ndarray,
        intensities: np.ndarray,
        mz: float = 0.0,
        mz_half_width: float = 0.0,
    ) -> "Chromatogram":
        """Build a chromatogram whose every sample sits exactly at ``mz``.

        Useful for synthetic traces and for data that is already extracted.
        """
        n = len(rt_values)
        mz_values = np.full(n, float(mz))
        return cls(float(mz), float(mz_half_width), rt_values, intensities,
                   mz_values, mz_values, mz_values)

    def with_intensities(self, intensities: np.ndarray) -> "Chromatogram":
        """Copy with replaced intensities, same RT and m/z information."""
        return Chromatogram(
            self.mz_center, self.mz_half_width, self.rt_values, intensities,
            self.mz_values, self.mz_lower, self.mz_upper, self.bin_index,
        )


@nb.njit
def binary_search_mz_range(
    mz_array: np.ndarray,
    target_mz: float,
    mz_tolerance: float
) -> Tuple[int, int]:
    """Find the index range of m/z values within ``target_mz +- mz_tolerance``.

    Parameters
    ----------
    mz_array : np.ndarray
        Sorted array of m/z values
    target_mz : float
        Target m/z
    mz_tolerance : float
        Absolute tolerance (Da), closed interval

    Returns
    -------
    start_idx : int
        Start index (inclusive)
    end_idx : int
        End index (exclusive)

    Examples
    --------
    >>> mz_array = np.array([100.0, 200.0, 200.1, 300.0])
    >>> binary_search_mz_range(mz_array, 200.0, 0.15)
    (1, 3)
    """
    if len(mz_array) == 0:
        return 0, 0

    low_mz = target_mz - mz_tolerance
    high_mz = target_mz + mz_tolerance

    left, right = 0, len(mz_array)
    while left < right:
        mid = (left + right) // 2
        if mz_array[mid] < low_mz:
            left = mid + 1
        else:
            right = mid
    start_idx = left

    left, right = start_idx, len(mz_array)
    while left < right:
        mid = (left + right) // 2
        if mz_array[mid] <= high_mz:
            left = mid + 1
        else:
            right = mid
    end_idx = left

    return start_idx, end_idx


@nb.njit
def bin_index_array(mz_array: np.ndarray, mz_min: float, bin_size: float) -> np.ndarray:
    """Assign every m/z value to its bin index counted from ``mz_min``."""
    n = len(mz_array)
    bins = np.empty(n, dtype=np.int64)
    for i in range(n):
        bins[i] = np.int64(np.floor((mz_array[i] - mz_min) / bin_size))
    return bins


def bin_edges(mz_min: float, mz_max: float, bin_size: float) -> np.ndarray:
    """Edges of all bins needed to cover ``[mz_min, mz_max]``.

    Edge ``k`` is ``mz_min + k * bin_size``; the last bin contains ``mz_max``.
    """
    n_bins = int(np.floor((mz_max - mz_min) / bin_size)) + 1
    return mz_min + np.arange(n_bins + 1, dtype=np.float64) * bin_size


@nb.njit
def build_binned_xics(
    mz_array: np.ndarray,
    intensity_array: np.ndarray,
    scan_array: np.ndarray,
    bin_array: np.ndarray,
    bin_ids: np.ndarray,
    n_scans: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Accumulate data points into one XIC per non-empty bin.

    Parameters
    ----------
    mz_array, intensity_array : np.ndarray
        Flat data point arrays
    scan_array : np.ndarray (int32)
        0-based scan index of every point
    bin_array : np.ndarray (int64)
        Bin index of every point (from ``bin_index_array``)
    bin_ids : np.ndarray (int64)
        Sorted unique bin indices; row ``r`` of the output belongs to
        ``bin_ids[r]``
    n_scans : int
        Number of scans in the run

    Returns
    -------
    xic_matrix : np.ndarray (float64)
        Shape (n_bins, n_scans), summed intensity
    mass_sum_matrix : np.ndarray (float64)
        Shape (n_bins, n_scans), sum of m/z * intensity
    mz_low_matrix : np.ndarray (float64)
        Smallest m/z per cell, NaN if empty
    mz_high_matrix : np.ndarray (float64)
        Largest m/z per cell, NaN if empty
    """
    n_bins = len(bin_ids)

    xic_matrix = np.zeros((n_bins, n_scans), dtype=np.float64)
    mass_sum_matrix = np.zeros((n_bins, n_scans), dtype=np.float64)
    mz_low_matrix = np.full((n_bins, n_scans), np.nan)
    mz_high_matrix = np.full((n_bins, n_scans), np.nan)

    for i in range(len(mz_array)):
        row = np.searchsorted(bin_ids, bin_array[i])
        scan_idx = scan_array[i]
        if scan_idx < 0 or scan_idx >= n_scans:
            continue

        mz = mz_array[i]
        intensity = intensity_array[i]

        xic_matrix[row, scan_idx] += intensity
        mass_sum_matrix[row, scan_idx] += mz * intensity

        # NaN comparisons are False, so the first point always wins
        if not (mz_low_matrix[row, scan_idx] <= mz):
            mz_low_matrix[row, scan_idx] = mz
        if not (mz_high_matrix[row, scan_idx] >= mz):
            mz_high_matrix[row, scan_idx] = mz

    return xic_matrix, mass_sum_matrix, mz_low_matrix, mz_high_matrix


def build_chromatograms(
    raw_file: RawDataFile,
    bin_size: float,
    ms_level: int = 1,
    token=None,
) -> List[Chromatogram]:
    """Build one chromatogram per non-empty m/z bin of ``raw_file``.

    Parameters
    ----------
    raw_file : RawDataFile
        Input file
    bin_size : float
        m/z bin width (Da)
    ms_level : int
        MS level of the scans to use (default: 1)
    token : CancellationToken, optional
        Checked between bins

    Returns
    -------
    list of Chromatogram
        Ordered by bin index. Every chromatogram has one sample per scan of
        ``ms_level``.

    Raises
    ------
    ValidationError
        If ``bin_size`` is not a positive finite number
    ComputationError
        If the file has no scans or no data points at ``ms_level``, or the
        data contains non-finite values
    """
    if not np.isfinite(bin_size) or bin_size <= 0:
        raise ValidationError(f"M/Z bin width must be positive, got {bin_size!r}")

    flat = raw_file.to_flat_arrays(ms_level)
    rt_values = flat["rt_values"]
    mz_array = flat["mz_array"]
    intensity_array = flat["intensity_array"]
    n_scans = len(rt_values)

    if n_scans == 0:
        raise ComputationError(f"{raw_file.file_id}: no MS{ms_level} scans")
    if len(mz_array) == 0:
        raise ComputationError(f"{raw_file.file_id}: no data points in MS{ms_level} scans")
    if not (np.all(np.isfinite(mz_array)) and np.all(np.isfinite(intensity_array))):
        raise ComputationError(f"{raw_file.file_id}: scan data contains non-finite values")

    mz_min = float(mz_array.min())
    bin_array = bin_index_array(mz_array, mz_min, float(bin_size))
    bin_ids = np.unique(bin_array)
    edges = bin_edges(mz_min, float(mz_array.max()), float(bin_size))
    bin_centers = 0.5 * (edges[:-1] + edges[1:])

    xic_matrix, mass_sum_matrix, mz_low, mz_high = build_binned_xics(
        mz_array, intensity_array, flat["scan_array"], bin_array, bin_ids, n_scans
    )

    with np.errstate(invalid="ignore", divide="ignore"):
        mz_matrix = np.where(xic_matrix > 0, mass_sum_matrix / xic_matrix, mz_low)

    half_width = bin_size / 2.0
    chromatograms = []
    for row, bin_id in enumerate(bin_ids):
        if token is not None:
            token.raise_if_canceled()
        chromatograms.append(
            Chromatogram(
                mz_center=float(bin_centers[bin_id]),
                mz_half_width=half_width,
                rt_values=rt_values,
                intensities=xic_matrix[row],
                mz_values=mz_matrix[row],
                mz_lower=mz_low[row],
                mz_upper=mz_high[row],
                bin_index=int(bin_id),
            )
        )

    logger.info(
        f"✓ Built {len(chromatograms):,} chromatograms from {n_scans:,} MS{ms_level} "
        f"scans of {raw_file.file_id} (bin width {bin_size} Da)"
    )
    return chromatograms


class ChromatogramBuilder:
    """Reusable chromatogram builder bound to a bin width and MS level.

    Examples
    --------
    >>> builder = ChromatogramBuilder(bin_size=0.25)
    >>> chromatograms = builder.build(raw_file)
    >>> summary = builder.summarize(chromatograms)
    """

    def __init__(self, bin_size: float = 0.25, ms_level: int = 1):
        self.bin_size = bin_size
        self.ms_level = ms_level

    def build(self, raw_file: RawDataFile, token=None) -> List[Chromatogram]:
        return build_chromatograms(raw_file, self.bin_size, self.ms_level, token)

    def summarize(self, chromatograms: List[Chromatogram]) -> Dict[str, np.ndarray]:
        """Stack chromatograms into matrices.

        Returns
        -------
        dict
            - 'mz_centers': (n_bins,)
            - 'rt_values': (n_scans,)
            - 'xic_matrix': (n_bins, n_scans)
        """
        if not chromatograms:
            return {
                "mz_centers": np.zeros(0),
                "rt_values": np.zeros(0),
                "xic_matrix": np.zeros((0, 0)),
            }
        return {
            "mz_centers": np.array([c.mz_center for c in chromatograms]),
            "rt_values": np.array(chromatograms[0].rt_values),
            "xic_matrix": np.vstack([c.intensities for c in chromatograms]),
        }
