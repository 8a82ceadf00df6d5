"""Exception types shared by all LCMSFast algorithms.

Three kinds of failure are distinguished:

- ``ValidationError``: bad parameters or malformed input structure. Raised
  before any computation starts.
- ``ComputationError``: a run could not complete (empty scan data, non-finite
  area). Aborts that single run only.
- ``TaskCanceled``: cooperative cancellation. Not an error and carries no
  message for the user.
"""


class ValidationError(ValueError):
    """Raised when a parameter set or an input fails validation."""
    pass


class ComputationError(RuntimeError):
    """Raised when an algorithm run cannot produce a result."""
    pass


class TaskCanceled(Exception):
    """Raised when a cancellation token is triggered during a run."""
    pass
