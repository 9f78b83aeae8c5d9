"""
foldwise Exceptions
====================
The few exception types that foldwise raises on its own. Everything else
(bad arguments, out-of-range indices) uses the built-in exceptions.

Hierarchy:
    FoldwiseError
    ├── ContractViolation        — a learner broke its train/predict contract
    └── MissingDependencyError   — a learner's declared package is not importable
"""


class FoldwiseError(Exception):
    """Base class for all foldwise-specific errors."""


class ContractViolation(FoldwiseError):
    """
    A pluggable learner reported success but returned something unusable.

    Raised when a train hook returns no model, or a predict hook returns
    something that is not a ``Prediction``. Inside an isolating capsule
    this is recorded as an ``error`` log entry like any other fault.
    """


class MissingDependencyError(FoldwiseError, ImportError):
    """A package listed in ``Learner.packages`` cannot be imported."""

    def __init__(self, packages: list[str]):
        self.packages = list(packages)
        super().__init__(
            f"The following packages are required but not installed: "
            f"{', '.join(self.packages)}"
        )
