"""Extracted ion chromatogram (XIC) building and smoothing.

This module turns the scans of a raw data file into one-dimensional
intensity-vs-retention-time traces, one per fixed-width m/z bin.

Key Features
------------
- Deterministic binning: bin boundaries depend only on the bin width and
  the global m/z extent
- Exactly one sample per scan (zero fill where a bin has no data point)
- Intensity-weighted m/z and m/z spread tracked per sample
- Sliding median smoothing to a root signal

Examples
--------
>>> from lcmsfast.xic import build_chromatograms, median_filter_chromatogram
>>>
>>> chromatograms = build_chromatograms(raw_file, bin_size=0.25)
>>> smoothed = [median_filter_chromatogram(c, half_window=1) for c in chromatograms]
"""

from .extraction import (
    Chromatogram,
    ChromatogramBuilder,
    bin_edges,
    bin_index_array,
    binary_search_mz_range,
    build_binned_xics,
    build_chromatograms,
)

from .smoothing import (
    median_filter_1d,
    median_filter_chromatogram,
    median_pass_1d,
)

__all__ = [
    # Extraction
    "Chromatogram",
    "ChromatogramBuilder",
    "bin_edges",
    "bin_index_array",
    "binary_search_mz_range",
    "build_binned_xics",
    "build_chromatograms",
    # Smoothing
    "median_filter_1d",
    "median_filter_chromatogram",
    "median_pass_1d",
]
