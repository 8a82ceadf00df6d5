"""Read-only scan model of an LC-MS raw data file.

A ``RawDataFile`` is an ordered sequence of ``RawScan`` objects. Each scan holds
centroided (m/z, intensity) pairs sorted by m/z. Files are immutable: filters
produce derived files instead of modifying their input.

The numerical kernels do not iterate over scan objects. They work on the
"wide" flat layout returned by ``RawDataFile.to_flat_arrays``:

- ``mz_array`` / ``intensity_array``: all data points concatenated scan by scan
- ``scan_array``: 0-based scan index of every data point
- ``offsets``: CSR-style boundaries, points of scan ``i`` are
  ``offsets[i]:offsets[i + 1]``
- ``rt_values``: one retention time per scan

Examples
--------
>>> scans = [
...     RawScan(0, 1, 10.0, np.array([100.0, 200.0]), np.array([50.0, 80.0])),
...     RawScan(1, 1, 11.0, np.array([100.1]), np.array([60.0])),
... ]
>>> raw = RawDataFile("sample_a", scans)
>>> flat = raw.to_flat_arrays()
>>> flat["offsets"]
array([0, 2, 3])
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import ValidationError


def _readonly(values, dtype=np.float64) -> np.ndarray:
    array = np.array(values, dtype=dtype, copy=True).reshape(-1)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class RawScan:
    """One centroided scan.

    Attributes:
        scan_number: Scan number within the original file
        ms_level: MS level (>= 1)
        rt: Retention time (seconds)
        mz: m/z values, sorted ascending (read-only)
        intensity: Intensities, same length as ``mz`` (read-only)
    """

    scan_number: int
    ms_level: int
    rt: float
    mz: np.ndarray
    intensity: np.ndarray

    def __post_init__(self):
        mz = _readonly(self.mz)
        intensity = _readonly(self.intensity)

        if len(mz) != len(intensity):
            raise ValidationError(
                f"Scan {self.scan_number}: {len(mz)} m/z values but "
                f"{len(intensity)} intensities"
            )
        if int(self.ms_level) < 1:
            raise ValidationError(f"Scan {self.scan_number}: MS level must be >= 1")
        if len(mz) > 1 and np.any(np.diff(mz) < 0):
            raise ValidationError(f"Scan {self.scan_number}: m/z values are not sorted")

        object.__setattr__(self, "mz", mz)
        object.__setattr__(self, "intensity", intensity)
        object.__setattr__(self, "ms_level", int(self.ms_level))
        object.__setattr__(self, "rt", float(self.rt))

    def __len__(self) -> int:
        return len(self.mz)

    @property
    def base_peak_intensity(self) -> float:
        return float(self.intensity.max()) if len(self.intensity) else 0.0

    @property
    def total_ion_current(self) -> float:
        return float(self.intensity.sum())

    def with_points(self, mz: np.ndarray, intensity: np.ndarray) -> "RawScan":
        """Copy of this scan carrying a different set of data points."""
        return RawScan(self.scan_number, self.ms_level, self.rt, mz, intensity)


class RawDataFile:
    """Immutable ordered collection of scans.

    Parameters
    ----------
    file_id : str
        Identifier of the file (unique within a project)
    scans : sequence of RawScan
        Scans in acquisition order. Retention times must be non-decreasing.
    parent : str, optional
        Identifier of the file this one was derived from (set by filters)
    """

    def __init__(
        self,
        file_id: str,
        scans: Sequence[RawScan],
        parent: Optional[str] = None,
    ):
        scans = tuple(scans)
        rts = np.array([scan.rt for scan in scans], dtype=np.float64)
        if len(rts) > 1 and np.any(np.diff(rts) < 0):
            raise ValidationError(f"{file_id}: retention times are not non-decreasing")

        self._file_id = str(file_id)
        self._scans = scans
        self._parent = parent

    @property
    def file_id(self) -> str:
        return self._file_id

    @property
    def parent(self) -> Optional[str]:
        return self._parent

    @property
    def scans(self) -> Tuple[RawScan, ...]:
        return self._scans

    def __len__(self) -> int:
        return len(self._scans)

    def __iter__(self) -> Iterator[RawScan]:
        return iter(self._scans)

    def __getitem__(self, index: int) -> RawScan:
        return self._scans[index]

    def __repr__(self) -> str:
        return f"RawDataFile({self._file_id!r}, n_scans={len(self._scans)})"

    @property
    def ms_levels(self) -> List[int]:
        return sorted({scan.ms_level for scan in self._scans})

    def scans_at_level(self, ms_level: int) -> List[RawScan]:
        return [scan for scan in self._scans if scan.ms_level == ms_level]

    def rt_range(self, ms_level: Optional[int] = None) -> Tuple[float, float]:
        scans = self._scans if ms_level is None else self.scans_at_level(ms_level)
        if not scans:
            return (np.nan, np.nan)
        return (scans[0].rt, scans[-1].rt)

    def mz_range(self, ms_level: Optional[int] = None) -> Tuple[float, float]:
        scans = self._scans if ms_level is None else self.scans_at_level(ms_level)
        scans = [scan for scan in scans if len(scan)]
        if not scans:
            return (np.nan, np.nan)
        return (min(s.mz[0] for s in scans), max(s.mz[-1] for s in scans))

    def derive(self, file_id: str, scans: Sequence[RawScan]) -> "RawDataFile":
        """Create a new file whose parent is this file."""
        return RawDataFile(file_id, scans, parent=self._file_id)

    def to_flat_arrays(self, ms_level: int = 1) -> Dict[str, np.ndarray]:
        """Flatten all scans of ``ms_level`` into the wide array layout.

        Returns
        -------
        dict
            Dictionary containing:
            - 'mz_array': float64, concatenated m/z values
            - 'intensity_array': float64, concatenated intensities
            - 'scan_array': int32, 0-based scan index for every point
            - 'offsets': int64, shape (n_scans + 1,)
            - 'rt_values': float64, one RT per scan
            - 'scan_numbers': int64, original scan numbers
        """
        scans = self.scans_at_level(ms_level)
        lengths = np.array([len(scan) for scan in scans], dtype=np.int64)
        offsets = np.zeros(len(scans) + 1, dtype=np.int64)
        np.cumsum(lengths, out=offsets[1:])

        if len(scans) and offsets[-1] > 0:
            mz_array = np.concatenate([scan.mz for scan in scans])
            intensity_array = np.concatenate([scan.intensity for scan in scans])
        else:
            mz_array = np.zeros(0, dtype=np.float64)
            intensity_array = np.zeros(0, dtype=np.float64)

        return {
            "mz_array": mz_array.astype(np.float64),
            "intensity_array": intensity_array.astype(np.float64),
            "scan_array": np.repeat(np.arange(len(scans), dtype=np.int32), lengths),
            "offsets": offsets,
            "rt_values": np.array([scan.rt for scan in scans], dtype=np.float64),
            "scan_numbers": np.array([scan.scan_number for scan in scans], dtype=np.int64),
        }

    @classmethod
    def from_flat_arrays(
        cls,
        file_id: str,
        mz_array: np.ndarray,
        intensity_array: np.ndarray,
        offsets: np.ndarray,
        rt_values: np.ndarray,
        ms_level: int = 1,
        scan_numbers: Optional[np.ndarray] = None,
        parent: Optional[str] = None,
    ) -> "RawDataFile":
        """Build a file from the wide array layout (inverse of ``to_flat_arrays``)."""
        n_scans = len(rt_values)
        if len(offsets) != n_scans + 1:
            raise ValidationError(
                f"offsets must have n_scans + 1 = {n_scans + 1} entries, got {len(offsets)}"
            )
        if scan_numbers is None:
            scan_numbers = np.arange(n_scans)

        scans = [
            RawScan(
                int(scan_numbers[i]),
                ms_level,
                float(rt_values[i]),
                mz_array[offsets[i]:offsets[i + 1]],
                intensity_array[offsets[i]:offsets[i + 1]],
            )
            for i in range(n_scans)
        ]
        return cls(file_id, scans, parent=parent)
