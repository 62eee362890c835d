"""
Premium Pricing Calculator.

    monthly = base_rate_per_unit(score)
              × coverage_units
              × occupation × locality × term × gender × wellness

Every multiplier is a lookup over a closed table. A value outside its table
raises UnsupportedRatingAttributeError; there is no silent fallback, since a
guessed multiplier would misprice the policy. Absent attributes (as opposed
to unknown ones) take the documented defaults in `coverage_request_from_profile`.

All arithmetic is Decimal with fixed quantization, so the same inputs always
produce a byte-identical quote. The base rate is non-decreasing in score.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import structlog

from riskquote.config import settings
from riskquote.errors import UnsupportedRatingAttributeError
from riskquote.schemas.analysis import PremiumQuote
from riskquote.schemas.profile import ProfileSnapshot

logger = structlog.get_logger(__name__)

# ── Rate tables ───────────────────────────────────────────────────────────

# Monthly rate per coverage unit: BASE_RATE_FLOOR + RATE_PER_SCORE_POINT × score
BASE_RATE_FLOOR = Decimal("0.040")
RATE_PER_SCORE_POINT = Decimal("0.0016")

OCCUPATION_MULTIPLIERS: dict[str, Decimal] = {
    "class_1": Decimal("1.00"),     # Office / professional
    "class_2": Decimal("1.15"),     # Light manual
    "class_3": Decimal("1.35"),     # Heavy manual / field work
    "class_4": Decimal("1.60"),     # Hazardous
}

LOCALITY_MULTIPLIERS: dict[str, Decimal] = {
    "tier_1": Decimal("1.10"),      # Metro
    "tier_2": Decimal("1.00"),      # Urban
    "tier_3": Decimal("0.95"),      # Rural
}

TERM_MULTIPLIERS: dict[int, Decimal] = {
    10: Decimal("0.85"),
    15: Decimal("0.92"),
    20: Decimal("1.00"),
    25: Decimal("1.10"),
    30: Decimal("1.20"),
    40: Decimal("1.45"),
}

# Gender is validated but rated unisex.
GENDER_MULTIPLIERS: dict[str, Decimal] = {
    "male": Decimal("1.00"),
    "female": Decimal("1.00"),
    "non_binary": Decimal("1.00"),
    "other": Decimal("1.00"),
    "undisclosed": Decimal("1.00"),
}

# Health-tracking improvement score → premium discount (%)
WELLNESS_DISCOUNTS: tuple[tuple[float, int], ...] = (
    (90.0, 10),
    (80.0, 7),
    (75.0, 5),
)

_RATE_Q = Decimal("0.000001")
_MULT_Q = Decimal("0.0001")
_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class CoverageRequest:
    """Coverage parameters and rating attributes for one quote."""
    coverage_amount: int
    term_years: int
    gender: str = "undisclosed"
    occupation_class: str = "class_1"
    locality_tier: str = "tier_2"


def wellness_discount_pct(improvement_score: Optional[float]) -> int:
    if improvement_score is None:
        return 0
    for floor, pct in WELLNESS_DISCOUNTS:
        if improvement_score >= floor:
            return pct
    return 0


def _normalize(value: str) -> str:
    return value.strip().lower().replace(" ", "_").replace("-", "_")


def coverage_request_from_profile(
    snapshot: ProfileSnapshot,
    hazardous_occupation: bool = False,
    default_coverage: Optional[int] = None,
    default_term: Optional[int] = None,
) -> CoverageRequest:
    """
    Build the pricing request from a profile.

    Absent values default: coverage → settings.default_coverage_amount,
    term → settings.default_term_years, gender → undisclosed,
    occupation class → class_3 if the occupation is hazardous else class_1,
    locality → tier_2. Present-but-unknown values pass through unchanged
    and are rejected by the calculator.
    """
    demo = snapshot.demographics
    fin = snapshot.financial
    return CoverageRequest(
        coverage_amount=fin.coverage_amount or default_coverage or settings.default_coverage_amount,
        term_years=fin.policy_term or default_term or settings.default_term_years,
        gender=demo.gender or "undisclosed",
        occupation_class=demo.occupation_class or ("class_3" if hazardous_occupation else "class_1"),
        locality_tier=demo.locality_tier or "tier_2",
    )


class PremiumCalculator:
    """Score + coverage request → PremiumQuote."""

    def __init__(
        self,
        currency: Optional[str] = None,
        coverage_unit: Optional[int] = None,
    ):
        self.currency = currency or settings.currency
        self.coverage_unit = Decimal(coverage_unit or settings.coverage_unit)

    def base_rate_per_unit(self, score: float) -> Decimal:
        """Monthly rate per coverage unit; non-decreasing in score."""
        return (BASE_RATE_FLOOR + RATE_PER_SCORE_POINT * Decimal(str(score))).quantize(
            _RATE_Q, rounding=ROUND_HALF_UP
        )

    def quote(
        self,
        score: float,
        request: CoverageRequest,
        wellness_discount: int = 0,
    ) -> PremiumQuote:
        if request.coverage_amount <= 0:
            raise UnsupportedRatingAttributeError("coverage_amount", request.coverage_amount)

        multipliers: dict[str, Decimal] = {
            "occupation": self._lookup("occupation_class", _normalize(request.occupation_class), OCCUPATION_MULTIPLIERS),
            "locality": self._lookup("locality_tier", _normalize(request.locality_tier), LOCALITY_MULTIPLIERS),
            "term": self._lookup("term_years", request.term_years, TERM_MULTIPLIERS),
            "gender": self._lookup("gender", _normalize(request.gender), GENDER_MULTIPLIERS),
        }
        if wellness_discount:
            multipliers["wellness"] = (
                Decimal(1) - Decimal(wellness_discount) / Decimal(100)
            ).quantize(_MULT_Q)

        units = Decimal(request.coverage_amount) / self.coverage_unit
        amount = self.base_rate_per_unit(score) * units
        for value in multipliers.values():
            amount *= value
        monthly = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)

        logger.debug(
            "premium_quoted",
            score=score,
            coverage_amount=request.coverage_amount,
            term_years=request.term_years,
            monthly_amount=str(monthly),
        )

        return PremiumQuote(
            monthly_amount=monthly,
            currency=self.currency,
            coverage_amount=request.coverage_amount,
            term_years=request.term_years,
            applied_multipliers=multipliers,
        )

    @staticmethod
    def _lookup(attribute: str, value, table: dict) -> Decimal:
        if value not in table:
            logger.warning("unsupported_rating_attribute", attribute=attribute, value=value)
            raise UnsupportedRatingAttributeError(attribute, value, list(table))
        return table[value]
