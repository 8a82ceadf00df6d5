"""Parameter sets of the chromatographic peak pickers."""

from dataclasses import dataclass
from typing import ClassVar, Tuple

from ..parameters import Parameter, ParameterSet, check_range


BIN_SIZE = Parameter(
    "bin_size", "M/Z bin width",
    "Width of M/Z range for each precalculated XIC",
    type="float", unit="Da", default=0.25, minimum=0.05,
)
CHROMATOGRAPHIC_THRESHOLD_LEVEL = Parameter(
    "chromatographic_threshold_level", "Chromatographic threshold level",
    "Used in defining threshold level value from an XIC",
    type="float", unit="%", default=0.0, minimum=0.0, maximum=1.0,
)
NOISE_LEVEL = Parameter(
    "noise_level", "Noise level",
    "Intensities less than this value are interpreted as noise",
    type="float", unit="absolute", default=10.0, minimum=0.0,
)
MINIMUM_PEAK_HEIGHT = Parameter(
    "minimum_peak_height", "Min peak height",
    "Minimum acceptable peak height",
    type="float", unit="absolute", default=100.0, minimum=0.0,
)
MINIMUM_PEAK_DURATION = Parameter(
    "minimum_peak_duration", "Min peak duration",
    "Minimum acceptable peak duration",
    type="float", unit="seconds", default=4.0, minimum=0.0,
)
# Centroided input has near-zero m/z spread, so the lower bound defaults to 0
MINIMUM_MZ_PEAK_WIDTH = Parameter(
    "minimum_mz_peak_width", "Min M/Z peak width",
    "Minimum acceptable peak width in M/Z",
    type="float", unit="Da", default=0.0, minimum=0.0,
)
MAXIMUM_MZ_PEAK_WIDTH = Parameter(
    "maximum_mz_peak_width", "Max M/Z peak width",
    "Maximum acceptable peak width in M/Z",
    type="float", unit="Da", default=1.0, minimum=0.0,
)
MZ_TOLERANCE = Parameter(
    "mz_tolerance", "M/Z tolerance",
    "Maximum allowed distance in M/Z between centroid peaks in successive scans",
    type="float", unit="Da", default=0.1, minimum=0.0,
)
INT_TOLERANCE = Parameter(
    "int_tolerance", "Intensity tolerance",
    "Maximum allowed deviation from expected /\\ shape of a peak in chromatographic direction",
    type="float", unit="%", default=0.15, minimum=0.0,
)


@dataclass(frozen=True)
class PeakPickerParams(ParameterSet):
    """Parameters shared by all chromatographic peak pickers.

    Intensities are absolute, durations in seconds, m/z values in Da and
    ``int_tolerance`` is a fraction (0.15 = 15 %).
    """

    PARAMETERS: ClassVar[Tuple[Parameter, ...]] = (
        BIN_SIZE,
        NOISE_LEVEL,
        MINIMUM_PEAK_HEIGHT,
        MINIMUM_PEAK_DURATION,
        MINIMUM_MZ_PEAK_WIDTH,
        MAXIMUM_MZ_PEAK_WIDTH,
        MZ_TOLERANCE,
        INT_TOLERANCE,
    )

    bin_size: float = BIN_SIZE.default
    noise_level: float = NOISE_LEVEL.default
    minimum_peak_height: float = MINIMUM_PEAK_HEIGHT.default
    minimum_peak_duration: float = MINIMUM_PEAK_DURATION.default
    minimum_mz_peak_width: float = MINIMUM_MZ_PEAK_WIDTH.default
    maximum_mz_peak_width: float = MAXIMUM_MZ_PEAK_WIDTH.default
    mz_tolerance: float = MZ_TOLERANCE.default
    int_tolerance: float = INT_TOLERANCE.default

    def _check_consistency(self) -> None:
        check_range(self, "minimum_mz_peak_width", "maximum_mz_peak_width")


@dataclass(frozen=True)
class LocalMaximaParams(PeakPickerParams):
    """Parameters of the local-maxima peak picker."""
    pass


@dataclass(frozen=True)
class RecursiveThresholdParams(PeakPickerParams):
    """Parameters of the recursive-threshold peak picker.

    ``chromatographic_threshold_level`` is a fraction of the chromatogram's
    global apex; the effective floor is
    ``max(noise_level, chromatographic_threshold_level * apex)``.
    """

    PARAMETERS: ClassVar[Tuple[Parameter, ...]] = (
        BIN_SIZE,
        CHROMATOGRAPHIC_THRESHOLD_LEVEL,
        NOISE_LEVEL,
        MINIMUM_PEAK_HEIGHT,
        MINIMUM_PEAK_DURATION,
        MINIMUM_MZ_PEAK_WIDTH,
        MAXIMUM_MZ_PEAK_WIDTH,
        MZ_TOLERANCE,
        INT_TOLERANCE,
    )

    chromatographic_threshold_level: float = CHROMATOGRAPHIC_THRESHOLD_LEVEL.default
