"""Peak and peak list containers plus helpers shared by the peak pickers.

A peak is a contiguous region ``[start, end]`` (inclusive sample indices) of
one chromatogram around an apex. Both pickers define the region with
``expand_peak_region`` and build the ``Peak`` with ``make_peak``; they only
differ in how apex candidates are chosen.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from numba import njit

from ..algorithm import Algorithm
from ..exceptions import ComputationError
from ..scans import RawDataFile
from ..xic.extraction import Chromatogram, build_chromatograms
from .params import PeakPickerParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Peak:
    """Chromatographic peak detected in one file.

    Attributes:
        file_id: Identifier of the source file
        mz: Intensity-weighted m/z over the peak region
        rt_start: RT of the first sample of the region (seconds)
        rt_end: RT of the last sample of the region (seconds)
        apex_rt: RT of the apex (seconds)
        apex_intensity: Intensity at the apex
        area: Trapezoidal area under the region
        mz_width: m/z spread of the data points forming the peak (Da)
        n_scans: Number of samples in the region
        chromatogram_index: Index of the chromatogram the peak came from
    """

    file_id: str
    mz: float
    rt_start: float
    rt_end: float
    apex_rt: float
    apex_intensity: float
    area: float
    mz_width: float = 0.0
    n_scans: int = 1
    chromatogram_index: int = -1

    @property
    def duration(self) -> float:
        return self.rt_end - self.rt_start

    @property
    def height(self) -> float:
        return self.apex_intensity

    def overlaps(self, other: "Peak") -> bool:
        return self.rt_start <= other.rt_end and other.rt_start <= self.rt_end

    def contains(self, other: "Peak") -> bool:
        """True if ``other``'s RT range lies fully inside this peak's range."""
        return self.rt_start <= other.rt_start and other.rt_end <= self.rt_end


def sort_peaks(peaks: Sequence[Peak]) -> List[Peak]:
    """Order peaks by apex RT, then m/z, then start RT."""
    return sorted(peaks, key=lambda p: (p.apex_rt, p.mz, p.rt_start))


@dataclass(frozen=True, eq=False)
class PeakList:
    """Peaks detected in one file, ordered by apex RT.

    Attributes:
        file_id: Identifier of the source file
        peaks: Peaks sorted by (apex RT, m/z)
        method: Name of the algorithm that produced the list
        parameters: Parameter set used for the run
    """

    file_id: str
    peaks: Tuple[Peak, ...] = ()
    method: str = ""
    parameters: Optional[Any] = None

    def __post_init__(self):
        object.__setattr__(self, "peaks", tuple(sort_peaks(self.peaks)))

    def __len__(self) -> int:
        return len(self.peaks)

    def __iter__(self) -> Iterator[Peak]:
        return iter(self.peaks)

    def __getitem__(self, index: int) -> Peak:
        return self.peaks[index]

    def __repr__(self) -> str:
        return f"PeakList({self.file_id!r}, n_peaks={len(self.peaks)}, method={self.method!r})"

    def mz_array(self) -> np.ndarray:
        return np.array([p.mz for p in self.peaks], dtype=np.float64)

    def rt_array(self) -> np.ndarray:
        return np.array([p.apex_rt for p in self.peaks], dtype=np.float64)

    def height_array(self) -> np.ndarray:
        return np.array([p.apex_intensity for p in self.peaks], dtype=np.float64)

    def area_array(self) -> np.ndarray:
        return np.array([p.area for p in self.peaks], dtype=np.float64)


@njit
def expand_peak_region(
    intensities: np.ndarray,
    mz_values: np.ndarray,
    apex: int,
    lo: int,
    hi: int,
    floor: float,
    int_tolerance: float,
    mz_tolerance: float,
) -> Tuple[int, int]:
    """Grow a peak region outward from its apex.

    A neighbouring sample is added while it is

    - above ``floor``
    - not higher than the current edge sample by more than ``int_tolerance``
      (fraction), i.e. the trace keeps descending within tolerance
    - within ``mz_tolerance`` of the current edge sample in m/z (skipped when
      either m/z is NaN)

    Args:
        intensities: Chromatogram intensities
        mz_values: Per-sample m/z (NaN where empty)
        apex: Apex index
        lo: First index the region may use (inclusive)
        hi: Last index the region may use (exclusive)
        floor: Samples must be strictly above this intensity
        int_tolerance: Allowed fractional rise when moving away from the apex
        mz_tolerance: Allowed m/z step between successive samples (Da)

    Returns:
        Tuple of (start, end), inclusive indices
    """
    start = apex
    while start - 1 >= lo:
        current = intensities[start]
        candidate = intensities[start - 1]
        if candidate <= floor:
            break
        if candidate > current * (1.0 + int_tolerance):
            break
        mz_a = mz_values[start]
        mz_b = mz_values[start - 1]
        if not (np.isnan(mz_a) or np.isnan(mz_b)) and abs(mz_b - mz_a) > mz_tolerance:
            break
        start -= 1

    end = apex
    while end + 1 < hi:
        current = intensities[end]
        candidate = intensities[end + 1]
        if candidate <= floor:
            break
        if candidate > current * (1.0 + int_tolerance):
            break
        mz_a = mz_values[end]
        mz_b = mz_values[end + 1]
        if not (np.isnan(mz_a) or np.isnan(mz_b)) and abs(mz_b - mz_a) > mz_tolerance:
            break
        end += 1

    return start, end


def integrate_area(rt_values: np.ndarray, intensities: np.ndarray) -> float:
    """Trapezoidal area under ``intensities`` over ``rt_values``.

    Raises
    ------
    ComputationError
        If the area is not finite (overflow or invalid input)
    """
    if len(rt_values) < 2:
        return 0.0
    with np.errstate(over="ignore", invalid="ignore"):
        area = float(np.sum(np.diff(rt_values) * (intensities[1:] + intensities[:-1]) * 0.5))
    if not np.isfinite(area):
        raise ComputationError(
            f"Peak area is not finite between RT {rt_values[0]:.2f} and {rt_values[-1]:.2f}"
        )
    return area


def make_peak(
    chromatogram: Chromatogram,
    start: int,
    end: int,
    apex: int,
    file_id: str = "",
    chromatogram_index: int = -1,
) -> Peak:
    """Build a Peak from the inclusive region ``[start, end]`` of a chromatogram."""
    region = slice(start, end + 1)
    rt = chromatogram.rt_values[region]
    intensity = chromatogram.intensities[region]
    mz = chromatogram.mz_values[region]

    has_mz = np.isfinite(mz) & (intensity > 0)
    if np.any(has_mz):
        centroid_mz = float(np.average(mz[has_mz], weights=intensity[has_mz]))
        lower = chromatogram.mz_lower[region][has_mz]
        upper = chromatogram.mz_upper[region][has_mz]
        mz_width = float(np.max(upper) - np.min(lower))
    else:
        centroid_mz = float(chromatogram.mz_center)
        mz_width = 0.0

    return Peak(
        file_id=file_id,
        mz=centroid_mz,
        rt_start=float(rt[0]),
        rt_end=float(rt[-1]),
        apex_rt=float(chromatogram.rt_values[apex]),
        apex_intensity=float(chromatogram.intensities[apex]),
        area=integrate_area(rt, intensity),
        mz_width=mz_width,
        n_scans=int(end - start + 1),
        chromatogram_index=chromatogram_index,
    )


def passes_acceptance(peak: Peak, params: PeakPickerParams) -> bool:
    """Height, duration and m/z width criteria shared by all pickers."""
    return (
        peak.apex_intensity >= params.minimum_peak_height
        and peak.duration >= params.minimum_peak_duration
        and params.minimum_mz_peak_width <= peak.mz_width <= params.maximum_mz_peak_width
    )


class PeakPicker(Algorithm):
    """Chromatogram-first peak picking over a whole raw data file.

    Chromatograms are built with ``params.bin_size`` from the MS1 scans and
    each is passed to ``detect``. Subclasses implement ``detect``.
    """

    parameter_class = PeakPickerParams
    ms_level = 1

    def detect(
        self,
        chromatogram: Chromatogram,
        params: PeakPickerParams,
        file_id: str = "",
        chromatogram_index: int = -1,
        token=None,
    ) -> List[Peak]:
        raise NotImplementedError

    def run(self, raw_file: RawDataFile, params: PeakPickerParams, token=None) -> PeakList:
        logger.info(f"Running {self.name} on {raw_file.file_id}")

        chromatograms = build_chromatograms(raw_file, params.bin_size, self.ms_level, token)

        peaks = []
        for index, chromatogram in enumerate(chromatograms):
            if token is not None:
                token.raise_if_canceled()
            peaks.extend(self.detect(chromatogram, params, raw_file.file_id, index, token))

        peak_list = PeakList(raw_file.file_id, tuple(peaks), self.name, params)
        logger.info(
            f"✓ {self.name}: {len(peak_list):,} peaks in {len(chromatograms):,} "
            f"chromatograms of {raw_file.file_id}"
        )
        return peak_list
