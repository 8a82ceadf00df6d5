"""Declarative parameter sets with bounds checking.

Every algorithm declares a fixed, ordered tuple of ``Parameter`` objects
(name, type, unit, default and optional bounds) and a frozen dataclass holding
one value per parameter. The dataclass is validated once when a run is
accepted and never mutated afterwards.

Examples
--------
>>> from lcmsfast.filters.crop import CropFilterParams
>>> params = CropFilterParams(min_mz=100.0, max_mz=200.0)
>>> params.validate()
CropFilterParams(ms_level=1, min_mz=100.0, max_mz=200.0, min_rt=0.0, max_rt=600.0)
>>> CropFilterParams.from_dict({"min_mz": 300.0, "max_mz": 200.0}).validate()
Traceback (most recent call last):
...
lcmsfast.exceptions.ValidationError: Minimum M/Z (300.0) must not exceed Maximum M/Z (200.0)
"""

import math
import numbers
from dataclasses import dataclass, fields, replace
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from .exceptions import ValidationError


PARAMETER_TYPES = ("int", "float", "enum")


@dataclass(frozen=True)
class Parameter:
    """Declaration of one named option of an algorithm."""

    name: str
    label: str
    description: str = ""
    type: str = "float"
    unit: str = ""
    default: Any = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    choices: Tuple[Any, ...] = ()

    def check(self, value: Any) -> None:
        """Raise ValidationError if ``value`` is not acceptable."""
        if self.type == "enum":
            if value not in self.choices:
                raise ValidationError(
                    f"{self.label} must be one of {list(self.choices)}, got {value!r}"
                )
            return

        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise ValidationError(f"{self.label} must be a number, got {value!r}")
        if self.type == "int" and not isinstance(value, numbers.Integral):
            raise ValidationError(f"{self.label} must be an integer, got {value!r}")
        if not math.isfinite(value):
            raise ValidationError(f"{self.label} must be finite, got {value!r}")

        if self.minimum is not None and value < self.minimum:
            raise ValidationError(
                f"{self.label} must be >= {self.minimum} {self.unit}".rstrip()
                + f", got {value!r}"
            )
        if self.maximum is not None and value > self.maximum:
            raise ValidationError(
                f"{self.label} must be <= {self.maximum} {self.unit}".rstrip()
                + f", got {value!r}"
            )


@dataclass(frozen=True)
class ParameterSet:
    """Base class of all algorithm parameter sets.

    Subclasses are frozen dataclasses with one field per entry of
    ``PARAMETERS`` (same names, same order).
    """

    PARAMETERS: ClassVar[Tuple[Parameter, ...]] = ()

    @classmethod
    def parameter(cls, name: str) -> Parameter:
        for param in cls.PARAMETERS:
            if param.name == name:
                return param
        raise KeyError(name)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "ParameterSet":
        """Create a parameter set from a name -> value mapping.

        Missing names take their declared default; unknown names are rejected.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValidationError(f"Unknown parameters for {cls.__name__}: {unknown}")
        return cls(**dict(values))

    def with_values(self, **changes: Any) -> "ParameterSet":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {param.name: getattr(self, param.name) for param in self.PARAMETERS}

    def describe(self) -> List[Tuple[str, Any, str]]:
        """Ordered (label, value, unit) triples, for display by external dialogs."""
        return [(p.label, getattr(self, p.name), p.unit) for p in self.PARAMETERS]

    def validate(self) -> "ParameterSet":
        """Check every value against its declaration.

        Returns
        -------
        ParameterSet
            ``self``, so calls can be chained.

        Raises
        ------
        ValidationError
            If a value is out of bounds, has the wrong type, or the set is
            internally inconsistent.
        """
        for param in self.PARAMETERS:
            param.check(getattr(self, param.name))
        self._check_consistency()
        return self

    def _check_consistency(self) -> None:
        """Hook for cross-field rules (e.g. min <= max)."""
        pass


def check_range(params: ParameterSet, low_name: str, high_name: str) -> None:
    """Raise ValidationError if ``params.low_name > params.high_name``."""
    low = getattr(params, low_name)
    high = getattr(params, high_name)
    if low > high:
        raise ValidationError(
            f"{params.parameter(low_name).label} ({low}) must not exceed "
            f"{params.parameter(high_name).label} ({high})"
        )


MS_LEVELS = tuple(range(1, 11))
