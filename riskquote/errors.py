"""
RiskQuote exception hierarchy.

RecomputeError subclasses end a single recompute attempt and are surfaced to
the caller; the previously persisted RiskAnalysis stays in place.
ScoringInvariantError is a programming defect and aborts without persisting.
"""

from typing import Optional


class RiskQuoteError(Exception):
    """Base class for all engine errors."""

    reason: str = "error"


class RecomputeError(RiskQuoteError):
    """Terminal for one recompute attempt."""

    reason = "recompute_failed"


class IncompleteProfileError(RecomputeError):
    """A mandatory identity field is missing from the profile."""

    reason = "incomplete_profile"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Profile is missing mandatory field '{field}'")


class UnsupportedRatingAttributeError(RecomputeError):
    """A pricing attribute is outside its enumerated set."""

    reason = "unsupported_rating_attribute"

    def __init__(self, attribute: str, value: object, allowed: Optional[list] = None):
        self.attribute = attribute
        self.value = value
        self.allowed = sorted(str(a) for a in allowed) if allowed else []
        super().__init__(
            f"Unsupported {attribute} '{value}'"
            + (f" (expected one of: {', '.join(self.allowed)})" if self.allowed else "")
        )


class ScoringInvariantError(RiskQuoteError):
    """The scoring model produced an internally inconsistent result."""

    reason = "scoring_invariant_violation"

    def __init__(
        self,
        message: str,
        expected: Optional[float] = None,
        actual: Optional[float] = None,
    ):
        self.expected = expected
        self.actual = actual
        super().__init__(message)
