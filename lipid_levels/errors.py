# lipid_levels/errors.py

from typing import List


class LipidEngineError(Exception):
    """Base class for errors raised by the engine."""


class PhysiologicalRangeError(LipidEngineError, ValueError):
    """One or more values are physiologically impossible.

    Raised only in strict mode; otherwise the same issues are reported in the
    ValidationResult and the affected fields are dropped from evaluation.
    """

    def __init__(self, issues):
        self.issues = list(issues)
        messages = "; ".join(i.message for i in self.issues)
        super().__init__(f"Implausible values for {', '.join(self.fields)}: {messages}")

    @property
    def fields(self) -> List[str]:
        return sorted({f for i in self.issues for f in (i.fields or [i.field])})
