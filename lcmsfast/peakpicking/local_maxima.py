"""Local-maxima peak picker.

Every signal sample (intensity above the noise level) that is not strictly
exceeded by either neighbour is a peak candidate. Candidates are expanded
outward with the /\\ shape test of ``expand_peak_region``, filtered by the
acceptance criteria, and overlapping candidates are resolved in favour of the
higher apex.

Examples
--------
>>> from lcmsfast.peakpicking import LocalMaximaParams, detect_local_maxima
>>> from lcmsfast.xic import Chromatogram
>>>
>>> rt = np.arange(0.0, 30.0, 0.5)
>>> intensity = 5.0 + 995.0 * np.clip(1 - np.abs(rt - 15.0) / 5.0, 0, None)
>>> peaks = detect_local_maxima(Chromatogram.from_arrays(rt, intensity, mz=300.0),
...                             LocalMaximaParams())
>>> len(peaks), peaks[0].apex_intensity
(1, 1000.0)
"""

from typing import List

import numpy as np
from numba import njit

from ..xic.extraction import Chromatogram
from .params import LocalMaximaParams, PeakPickerParams
from .peaks import (
    Peak,
    PeakPicker,
    expand_peak_region,
    make_peak,
    passes_acceptance,
    sort_peaks,
)


@njit
def find_local_maxima(intensities: np.ndarray, noise_level: float) -> np.ndarray:
    """Indices of signal samples not strictly exceeded by their neighbours.

    Args:
        intensities: Chromatogram intensities
        noise_level: Samples at or below this value are noise

    Returns:
        Sorted int64 array of candidate apex indices
    """
    n = len(intensities)
    maxima = np.empty(n, dtype=np.int64)
    count = 0

    for i in range(n):
        value = intensities[i]
        if value <= noise_level:
            continue
        if i > 0 and intensities[i - 1] > value:
            continue
        if i < n - 1 and intensities[i + 1] > value:
            continue
        maxima[count] = i
        count += 1

    return maxima[:count]


def resolve_overlaps(candidates: List[Peak]) -> List[Peak]:
    """Keep higher apexes, drop lower candidates contained in an accepted one.

    Candidates are visited by descending apex intensity (ties: earlier apex
    RT first). A candidate whose RT range lies fully inside an already
    accepted peak is discarded; partially overlapping candidates are kept.
    """
    ordered = sorted(candidates, key=lambda p: (-p.apex_intensity, p.apex_rt, p.mz))

    accepted: List[Peak] = []
    for candidate in ordered:
        if any(peak.contains(candidate) for peak in accepted):
            continue
        accepted.append(candidate)

    return sort_peaks(accepted)


def detect_local_maxima(
    chromatogram: Chromatogram,
    params: PeakPickerParams,
    file_id: str = "",
    chromatogram_index: int = -1,
    token=None,
) -> List[Peak]:
    """Detect peaks in one chromatogram by local-maximum search.

    Parameters
    ----------
    chromatogram : Chromatogram
        Intensity trace to search
    params : PeakPickerParams
        Noise level, acceptance criteria and shape tolerances
    file_id : str
        Identifier stored on every emitted peak
    chromatogram_index : int
        Index stored on every emitted peak
    token : CancellationToken, optional
        Checked between candidates

    Returns
    -------
    list of Peak
        Accepted peaks sorted by apex RT; empty if no sample exceeds the
        noise level
    """
    if len(chromatogram) == 0:
        return []

    intensities = chromatogram.intensities
    apexes = find_local_maxima(intensities, float(params.noise_level))

    candidates = []
    for apex in apexes:
        if token is not None:
            token.raise_if_canceled()

        start, end = expand_peak_region(
            intensities,
            chromatogram.mz_values,
            int(apex),
            0,
            len(intensities),
            float(params.noise_level),
            float(params.int_tolerance),
            float(params.mz_tolerance),
        )
        peak = make_peak(chromatogram, start, end, int(apex), file_id, chromatogram_index)
        if passes_acceptance(peak, params):
            candidates.append(peak)

    return resolve_overlaps(candidates)


class LocalMaximaPicker(PeakPicker):
    """Local maxima peak detector over all chromatograms of a file."""

    name = "Local maximum peak detector"
    parameter_class = LocalMaximaParams

    def detect(self, chromatogram, params, file_id="", chromatogram_index=-1, token=None):
        return detect_local_maxima(chromatogram, params, file_id, chromatogram_index, token)
