"""Pytest configuration for LCMSFast tests.

This module provides synthetic LC-MS data for all tests: triangular elution
profiles, chromatograms built from them, and small raw data files. All data is
generated in memory; no test touches the file system.
"""

import numpy as np
import pytest

from lcmsfast.scans import RawDataFile, RawScan
from lcmsfast.tasks import CancellationToken
from lcmsfast.xic import Chromatogram


def triangle(rt, center, half_width, apex, baseline=0.0):
    """Triangular elution profile on top of a constant baseline."""
    shape = np.clip(1.0 - np.abs(rt - center) / half_width, 0.0, None)
    return baseline + (apex - baseline) * shape


class CountdownToken(CancellationToken):
    """Token that cancels itself on the n-th check."""

    def __init__(self, checks):
        super().__init__()
        self.remaining = checks

    def raise_if_canceled(self):
        self.remaining -= 1
        if self.remaining <= 0:
            self.cancel()
        super().raise_if_canceled()


@pytest.fixture
def rt_grid():
    """60 s of scans every 0.5 s."""
    return np.arange(0.0, 60.0, 0.5)


@pytest.fixture
def triangle_profile():
    """Triangular profile factory: triangle(rt, center, half_width, apex, baseline)."""
    return triangle


@pytest.fixture
def single_peak_chromatogram(rt_grid):
    """One triangular peak: apex 1000 at 15 s, 10 s wide, noise floor 5."""
    intensity = triangle(rt_grid, 15.0, 5.0, 1000.0, baseline=5.0)
    return Chromatogram.from_arrays(rt_grid, intensity, mz=300.0, mz_half_width=0.125)


@pytest.fixture
def two_peak_chromatogram(rt_grid):
    """Two separated triangular peaks: apex 1000 at 15 s and apex 200 at 40 s."""
    intensity = np.maximum(
        triangle(rt_grid, 15.0, 5.0, 1000.0, baseline=5.0),
        triangle(rt_grid, 40.0, 5.0, 200.0, baseline=5.0),
    )
    return Chromatogram.from_arrays(rt_grid, intensity, mz=300.0, mz_half_width=0.125)


@pytest.fixture
def make_raw_file(rt_grid):
    """Factory building a RawDataFile from (m/z, apex RT, apex intensity) analytes.

    Every analyte elutes as a 10 s wide triangle. Data points with zero
    intensity are left out of the scans.
    """

    def _make(file_id, analytes, rt=None, ms_level=1, half_width=5.0):
        rt = rt_grid if rt is None else np.asarray(rt, dtype=np.float64)
        scans = []
        for i, scan_rt in enumerate(rt):
            points = []
            for mz, center, apex in analytes:
                intensity = float(triangle(scan_rt, center, half_width, apex))
                if intensity > 0:
                    points.append((mz, intensity))
            points.sort()
            mz_values = np.array([p[0] for p in points], dtype=np.float64)
            intensities = np.array([p[1] for p in points], dtype=np.float64)
            scans.append(RawScan(i, ms_level, scan_rt, mz_values, intensities))
        return RawDataFile(file_id, scans)

    return _make


@pytest.fixture
def countdown_token():
    """Factory for tokens that cancel on the n-th check."""
    return CountdownToken


# Random seed for reproducibility
@pytest.fixture(scope="session", autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)
