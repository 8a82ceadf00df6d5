"""Recursive-threshold peak picker.

Recursive bisection of a chromatogram:

1. ``threshold = max(noise_level, chromatographic_threshold_level * apex)``
   where ``apex`` is the global maximum of the chromatogram
2. In the current RT sub-range, take the highest sample (lowest index on ties)
3. Stop if it is below the threshold or the sub-range spans less RT than the
   minimum peak duration
4. Expand a peak region around it, emit the peak if it passes acceptance
5. Continue independently on the samples strictly left and strictly right of
   the region

The recursion runs on an explicit work stack, so very long chromatograms
cannot exhaust the interpreter's recursion limit. Peaks are discovered by
decreasing local height; the returned list is re-sorted by apex RT.
"""

from typing import List

import numpy as np

from ..xic.extraction import Chromatogram
from .params import RecursiveThresholdParams
from .peaks import (
    Peak,
    PeakPicker,
    expand_peak_region,
    make_peak,
    passes_acceptance,
    sort_peaks,
)


def chromatographic_threshold(intensities: np.ndarray, params: RecursiveThresholdParams) -> float:
    """Relative noise floor of one chromatogram."""
    apex = float(np.max(intensities)) if len(intensities) else 0.0
    return max(float(params.noise_level), float(params.chromatographic_threshold_level) * apex)


def detect_recursive_threshold(
    chromatogram: Chromatogram,
    params: RecursiveThresholdParams,
    file_id: str = "",
    chromatogram_index: int = -1,
    token=None,
) -> List[Peak]:
    """Detect peaks in one chromatogram by recursive thresholding.

    Parameters
    ----------
    chromatogram : Chromatogram
        Intensity trace to search
    params : RecursiveThresholdParams
        Threshold level, noise level, acceptance criteria and tolerances
    file_id : str
        Identifier stored on every emitted peak
    chromatogram_index : int
        Index stored on every emitted peak
    token : CancellationToken, optional
        Checked before every recursion step

    Returns
    -------
    list of Peak
        Non-overlapping peaks sorted by apex RT
    """
    intensities = chromatogram.intensities
    rt_values = chromatogram.rt_values
    n = len(intensities)
    if n == 0:
        return []

    threshold = chromatographic_threshold(intensities, params)

    peaks = []
    stack = [(0, n)]
    while stack:
        if token is not None:
            token.raise_if_canceled()

        lo, hi = stack.pop()
        if hi <= lo:
            continue
        if rt_values[hi - 1] - rt_values[lo] < params.minimum_peak_duration:
            continue

        apex = lo + int(np.argmax(intensities[lo:hi]))
        if intensities[apex] < threshold:
            continue

        start, end = expand_peak_region(
            intensities,
            chromatogram.mz_values,
            apex,
            lo,
            hi,
            threshold,
            float(params.int_tolerance),
            float(params.mz_tolerance),
        )
        peak = make_peak(chromatogram, start, end, apex, file_id, chromatogram_index)
        if passes_acceptance(peak, params):
            peaks.append(peak)

        # Right first so the left side is processed next
        stack.append((end + 1, hi))
        stack.append((lo, start))

    return sort_peaks(peaks)


class RecursiveThresholdPicker(PeakPicker):
    """Recursive threshold peak detector over all chromatograms of a file."""

    name = "Recursive threshold peak detector"
    parameter_class = RecursiveThresholdParams

    def detect(self, chromatogram, params, file_id="", chromatogram_index=-1, token=None):
        return detect_recursive_threshold(chromatogram, params, file_id, chromatogram_index, token)
