"""Chromatographic median smoothing.

Sliding-window median over the RT axis of a chromatogram, used to suppress
single-scan intensity spikes before peak detection.

Window boundary policy: symmetric truncation. Near the first and last
``half_window`` samples the window shrinks evenly on both sides, so every
window has odd length and every output is one of the input values. The end
samples themselves are left as they are.

The median pass is repeated until the trace no longer changes (a root
signal), so filtering an already filtered trace returns it unchanged.
"""

import numpy as np
from numba import njit

from .extraction import Chromatogram


@njit
def median_pass_1d(intensities: np.ndarray, half_window: int) -> np.ndarray:
    """One sliding median pass with symmetric truncation at the edges."""
    n = len(intensities)
    filtered = np.zeros(n, dtype=np.float64)

    for i in range(n):
        k = min(half_window, i, n - 1 - i)
        filtered[i] = np.median(intensities[i - k:i + k + 1])

    return filtered


@njit
def median_filter_1d(intensities: np.ndarray, half_window: int) -> np.ndarray:
    """Median-filter a 1D array down to its root signal (numba-optimized).

    Args:
        intensities: Input intensity array
        half_window: Number of samples on each side of the center
            (window length = 2 * half_window + 1)

    Returns:
        Filtered intensity array (same length as input). Filtering the
        result again returns it unchanged.

    Examples:
        >>> median_filter_1d(np.array([1.0, 1.0, 50.0, 1.0, 1.0]), 1)
        array([1., 1., 1., 1., 1.])
        >>> median_filter_1d(np.array([0.0, 10.0, 0.0, 10.0, 0.0]), 1)
        array([0., 0., 0., 0., 0.])
    """
    n = len(intensities)
    current = intensities.astype(np.float64)

    # A root signal is reached within n passes
    for _ in range(n):
        filtered = median_pass_1d(current, half_window)
        changed = False
        for i in range(n):
            if filtered[i] != current[i]:
                changed = True
                break
        current = filtered
        if not changed:
            break

    return current


def median_filter_chromatogram(chromatogram: Chromatogram, half_window: int) -> Chromatogram:
    """Median-filter the intensities of a chromatogram.

    Returns a new Chromatogram; RT and m/z information is carried over
    unchanged and the input is not modified.
    """
    if half_window < 0:
        raise ValueError(f"half_window must be >= 0, got {half_window}")
    if half_window == 0 or len(chromatogram) == 0:
        return chromatogram.with_intensities(chromatogram.intensities)

    filtered = median_filter_1d(
        np.array(chromatogram.intensities, dtype=np.float64), int(half_window)
    )
    return chromatogram.with_intensities(filtered)
