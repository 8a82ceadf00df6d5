"""Raw data pre-processing filters.

Both filters produce a derived RawDataFile and never modify their input:
- Chromatographic median filter (spike suppression along the RT axis)
- Crop filter (m/z x RT window, single MS level)
"""

from .crop import (
    CropFilter,
    CropFilterParams,
    crop_file,
    crop_scan,
)

from .median import (
    ChromatographicMedianFilter,
    MedianFilterParams,
    median_filter_file,
    median_filter_scans,
)

__all__ = [
    'CropFilter',
    'CropFilterParams',
    'crop_file',
    'crop_scan',
    'ChromatographicMedianFilter',
    'MedianFilterParams',
    'median_filter_file',
    'median_filter_scans',
]
