"""Common interface of all processing algorithms.

An algorithm is a stateless object with three capabilities:

- ``validate(params)``: check a parameter set before anything runs
- ``run(data, params, token)``: pure computation, returns the result
- ``supports_cancellation``: whether ``run`` checks the token

Menu entries, dialogs and task listeners live outside the library; they only
need a table mapping user actions to ``Algorithm`` instances (see
``lcmsfast.methods.ALGORITHMS``).
"""

from typing import Any, Optional, Type

from .exceptions import ValidationError
from .parameters import ParameterSet


class Algorithm:
    """Base class of peak pickers, filters and aligners."""

    name: str = ""
    parameter_class: Type[ParameterSet] = ParameterSet
    supports_cancellation: bool = True

    def default_parameters(self) -> ParameterSet:
        return self.parameter_class()

    def validate(self, params: ParameterSet) -> ParameterSet:
        """Validate ``params`` for this algorithm.

        Raises
        ------
        ValidationError
            If ``params`` has the wrong type or any value is unacceptable
        """
        if not isinstance(params, self.parameter_class):
            raise ValidationError(
                f"{self.name} expects {self.parameter_class.__name__}, "
                f"got {type(params).__name__}"
            )
        return params.validate()

    def source_of(self, data: Any) -> Any:
        """Identifier of the input, used to report per-input task results."""
        return getattr(data, "file_id", None)

    def run(self, data: Any, params: ParameterSet, token: Optional[Any] = None) -> Any:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
