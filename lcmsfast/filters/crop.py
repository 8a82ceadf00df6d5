"""Crop filter: restrict a raw data file to an m/z x RT window.

The derived file contains only scans of the requested MS level whose RT lies
in ``[min_rt, max_rt]``, each keeping only the data points with
``min_mz <= m/z <= max_mz``. Scans left without data points are kept so that
chromatograms built from the cropped file still have one sample per scan.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar, Tuple

import numpy as np

from ..algorithm import Algorithm
from ..parameters import MS_LEVELS, Parameter, ParameterSet, check_range
from ..scans import RawDataFile, RawScan

logger = logging.getLogger(__name__)


MS_LEVEL = Parameter(
    "ms_level", "MS level", "MS level of scans to be filtered",
    type="enum", default=1, choices=MS_LEVELS,
)
MIN_MZ = Parameter(
    "min_mz", "Minimum M/Z", "Lower M/Z boundary of the cropped region",
    type="float", unit="Da", default=100.0, minimum=0.0,
)
MAX_MZ = Parameter(
    "max_mz", "Maximum M/Z", "Upper M/Z boundary of the cropped region",
    type="float", unit="Da", default=1000.0, minimum=0.0,
)
MIN_RT = Parameter(
    "min_rt", "Minimum Retention time", "Lower RT boundary of the cropped region",
    type="float", unit="seconds", default=0.0, minimum=0.0,
)
MAX_RT = Parameter(
    "max_rt", "Maximum Retention time", "Upper RT boundary of the cropped region",
    type="float", unit="seconds", default=600.0, minimum=0.0,
)


@dataclass(frozen=True)
class CropFilterParams(ParameterSet):
    """Crop window. Bounds are inclusive."""

    PARAMETERS: ClassVar[Tuple[Parameter, ...]] = (MS_LEVEL, MIN_MZ, MAX_MZ, MIN_RT, MAX_RT)

    ms_level: int = MS_LEVEL.default
    min_mz: float = MIN_MZ.default
    max_mz: float = MAX_MZ.default
    min_rt: float = MIN_RT.default
    max_rt: float = MAX_RT.default

    def _check_consistency(self) -> None:
        check_range(self, "min_mz", "max_mz")
        check_range(self, "min_rt", "max_rt")


def crop_scan(scan: RawScan, min_mz: float, max_mz: float) -> RawScan:
    """Keep only the data points of ``scan`` within ``[min_mz, max_mz]``."""
    start = int(np.searchsorted(scan.mz, min_mz, side="left"))
    end = int(np.searchsorted(scan.mz, max_mz, side="right"))
    return scan.with_points(scan.mz[start:end], scan.intensity[start:end])


def crop_file(raw_file: RawDataFile, params: CropFilterParams, token=None) -> RawDataFile:
    """Crop ``raw_file`` to the window described by ``params``.

    Parameters are expected to be validated already (see ``CropFilter``).
    """
    cropped = []
    for scan in raw_file:
        if token is not None:
            token.raise_if_canceled()
        if scan.ms_level != params.ms_level:
            continue
        if not (params.min_rt <= scan.rt <= params.max_rt):
            continue
        cropped.append(crop_scan(scan, params.min_mz, params.max_mz))

    if not cropped:
        logger.warning(
            f"Crop window of {raw_file.file_id} contains no MS{params.ms_level} scans"
        )

    return raw_file.derive(f"{raw_file.file_id} cropped", cropped)


class CropFilter(Algorithm):
    """Crop filter over one raw data file."""

    name = "Crop filter"
    parameter_class = CropFilterParams

    def run(self, raw_file: RawDataFile, params: CropFilterParams, token=None) -> RawDataFile:
        logger.info(f"Running {self.name} on {raw_file.file_id}")
        result = crop_file(raw_file, params, token)
        n_points = sum(len(scan) for scan in result)
        logger.info(
            f"✓ Cropped {raw_file.file_id}: {len(result):,} of {len(raw_file):,} scans, "
            f"{n_points:,} data points kept"
        )
        return result
