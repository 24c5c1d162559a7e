"""Errors raised by reconciliation passes."""

from typing import List


class PassError(Exception):
    """One or more handlers of a pass failed."""

    def __init__(self, label: str, failures: List[BaseException]):
        self.label = label
        self.failures = failures
        reasons = "; ".join(str(failure) for failure in failures)
        super().__init__(f"{label} failed: {reasons}")


class DataIntegrityError(Exception):
    """A single item could not be reconciled and was skipped."""
    pass
