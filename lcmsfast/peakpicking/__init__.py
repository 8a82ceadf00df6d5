"""Chromatographic peak detection.

This module provides:
- Local-maxima peak picking with overlap resolution
- Recursive-threshold peak picking (relative noise floor per chromatogram)
- Peak / PeakList containers shared by pickers and aligners
"""

from .params import (
    PeakPickerParams,
    LocalMaximaParams,
    RecursiveThresholdParams,
)

from .peaks import (
    Peak,
    PeakList,
    PeakPicker,
    expand_peak_region,
    integrate_area,
    make_peak,
    passes_acceptance,
    sort_peaks,
)

from .local_maxima import (
    LocalMaximaPicker,
    detect_local_maxima,
    find_local_maxima,
    resolve_overlaps,
)

from .recursive_threshold import (
    RecursiveThresholdPicker,
    chromatographic_threshold,
    detect_recursive_threshold,
)

__all__ = [
    # Parameters
    'PeakPickerParams',
    'LocalMaximaParams',
    'RecursiveThresholdParams',

    # Containers and shared helpers
    'Peak',
    'PeakList',
    'PeakPicker',
    'expand_peak_region',
    'integrate_area',
    'make_peak',
    'passes_acceptance',
    'sort_peaks',

    # Local maxima
    'LocalMaximaPicker',
    'detect_local_maxima',
    'find_local_maxima',
    'resolve_overlaps',

    # Recursive threshold
    'RecursiveThresholdPicker',
    'chromatographic_threshold',
    'detect_recursive_threshold',
]
