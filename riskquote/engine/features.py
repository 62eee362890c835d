"""
Feature Extractor.

Normalizes a ProfileSnapshot into a canonical FeatureVector. Missing fields
fall back to documented population-typical defaults rather than worst-case
values, so an incomplete profile is never silently penalized.

Only a missing user id is fatal (IncompleteProfileError).

Age is derived from date of birth at extraction time against `as_of`, so the
same stored profile drifts slowly across recomputes as the user ages.
"""

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Optional, Union

import structlog

from riskquote.errors import IncompleteProfileError
from riskquote.schemas.profile import ProfileSnapshot

logger = structlog.get_logger(__name__)

# ── Defaults ──────────────────────────────────────────────────────────────

# Used when the source field is absent or unparseable.
FEATURE_DEFAULTS: dict[str, float] = {
    "age": 30.0,                        # No date of birth
    "bmi": 24.0,                        # Healthy-range median
    "smoking_status": 0.0,              # 0 never | 1 former | 2 current
    "exercise_frequency": 2.5,          # Population-median bucket (sessions/week)
    "stress_level": 5.0,                # Mid-scale (0-10)
    "alcohol_consumption": 1.0,         # 0 none | 1 light | 2 moderate | 3 heavy
    "sleep_hours": 7.5,
    "existing_conditions_count": 0.0,
    "avg_heart_rate": 70.0,             # bpm
    "avg_daily_steps": 7500.0,
    "wellness_score": 50.0,             # Health-tracking improvement score baseline
    "hazardous_occupation": 0.0,
    "annual_income": 60000.0,
    "has_emergency_fund": 0.5,          # 0.5 = unknown
    "has_existing_coverage": 0.0,
}

SMOKING_CODES: dict[str, float] = {
    "never": 0.0, "non_smoker": 0.0, "nonsmoker": 0.0, "no": 0.0, "none": 0.0,
    "former": 1.0, "former_smoker": 1.0, "quit": 1.0,
    "current": 2.0, "current_smoker": 2.0, "smoker": 2.0, "yes": 2.0,
}

ALCOHOL_CODES: dict[str, float] = {
    "none": 0.0, "never": 0.0,
    "light": 1.0, "occasional": 1.0, "social": 1.0,
    "moderate": 2.0, "regular": 2.0,
    "heavy": 3.0,
}

# Questionnaire buckets → representative sessions per week.
EXERCISE_BUCKETS: dict[str, float] = {
    "0": 0.0, "none": 0.0, "never": 0.0,
    "1-2": 1.5,
    "3-4": 3.5,
    "5+": 5.5, "5-6": 5.5, "daily": 7.0,
}

HAZARDOUS_OCCUPATION_KEYWORDS: tuple[str, ...] = (
    "pilot", "construction", "mining", "miner", "police", "firefighter",
)

_NO_CONDITION_MARKERS = {"none", "no", "n/a", ""}


@dataclass(frozen=True)
class FeatureVector(Mapping):
    """
    Immutable mapping of feature name → normalized numeric value.

    `defaulted` lists the features that were filled from FEATURE_DEFAULTS.
    """
    user_id: str
    data: Mapping[str, float]
    as_of: date
    defaulted: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "data", MappingProxyType(dict(sorted(self.data.items()))))

    def __getitem__(self, key: str) -> float:
        return self.data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def is_defaulted(self, name: str) -> bool:
        return name in self.defaulted


def compute_age(date_of_birth: date, as_of: date) -> int:
    """Whole years between date of birth and `as_of`."""
    age = as_of.year - date_of_birth.year
    if (as_of.month, as_of.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return max(age, 0)


def parse_exercise_frequency(value: Union[float, str, None]) -> Optional[float]:
    """Accept a number or a questionnaire bucket like '3-4' or '5+'."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return max(float(value), 0.0)
    text = str(value).strip().lower().replace(" ", "")
    if text in EXERCISE_BUCKETS:
        return EXERCISE_BUCKETS[text]
    m = re.fullmatch(r"(\d+(?:\.\d+)?)-(\d+(?:\.\d+)?)", text)
    if m:
        return (float(m.group(1)) + float(m.group(2))) / 2
    m = re.fullmatch(r"(\d+(?:\.\d+)?)\+?", text)
    if m:
        return float(m.group(1)) + (0.5 if text.endswith("+") else 0.0)
    return None


def is_hazardous_occupation(occupation: Optional[str]) -> bool:
    if not occupation:
        return False
    lowered = occupation.lower()
    return any(k in lowered for k in HAZARDOUS_OCCUPATION_KEYWORDS)


class FeatureExtractor:
    """Profile → FeatureVector. Pure apart from the `as_of` clock."""

    def __init__(self, defaults: Optional[dict[str, float]] = None):
        self.defaults = {**FEATURE_DEFAULTS, **(defaults or {})}

    def extract(
        self,
        snapshot: ProfileSnapshot,
        as_of: Optional[date] = None,
    ) -> FeatureVector:
        if not snapshot.user_id or not snapshot.user_id.strip():
            raise IncompleteProfileError("user_id")

        if as_of is None:
            as_of = datetime.now(timezone.utc).date()

        demo = snapshot.demographics
        health = snapshot.health
        life = snapshot.lifestyle
        fin = snapshot.financial
        tracking = snapshot.health_tracking

        raw: dict[str, Optional[float]] = {
            "age": (
                float(compute_age(demo.date_of_birth, as_of))
                if demo.date_of_birth else None
            ),
            "bmi": self._bmi(health.bmi, health.height_cm, health.weight_kg),
            "smoking_status": self._lookup(SMOKING_CODES, health.smoking_status, "smoking_status"),
            "exercise_frequency": self._exercise(life.exercise_frequency),
            "stress_level": life.stress_level,
            "alcohol_consumption": self._lookup(ALCOHOL_CODES, life.alcohol_consumption, "alcohol_consumption"),
            "sleep_hours": (
                tracking.avg_sleep_hours
                if tracking and tracking.avg_sleep_hours else life.sleep_hours
            ),
            "existing_conditions_count": self._conditions(
                health.existing_conditions_count, health.medical_conditions
            ),
            "avg_heart_rate": tracking.avg_heart_rate if tracking and tracking.avg_heart_rate else None,
            "avg_daily_steps": tracking.avg_steps if tracking and tracking.avg_steps else None,
            "wellness_score": tracking.improvement_score if tracking else None,
            "hazardous_occupation": (
                (1.0 if is_hazardous_occupation(demo.occupation) else 0.0)
                if demo.occupation else None
            ),
            "annual_income": fin.annual_income,
            "has_emergency_fund": _flag(fin.emergency_fund),
            "has_existing_coverage": _flag(fin.existing_coverage),
        }

        values: dict[str, float] = {}
        defaulted: set[str] = set()
        for name, value in raw.items():
            if value is None:
                values[name] = self.defaults[name]
                defaulted.add(name)
            else:
                values[name] = round(float(value), 4)

        logger.debug(
            "features_extracted",
            user_id=snapshot.user_id,
            n_features=len(values),
            n_defaulted=len(defaulted),
        )

        return FeatureVector(
            user_id=snapshot.user_id,
            data=values,
            as_of=as_of,
            defaulted=frozenset(defaulted),
        )

    # ── Field normalizers ─────────────────────────────────────────────

    @staticmethod
    def _bmi(
        bmi: Optional[float],
        height_cm: Optional[float],
        weight_kg: Optional[float],
    ) -> Optional[float]:
        if bmi:
            return bmi
        if height_cm and weight_kg:
            meters = height_cm / 100.0
            return round(weight_kg / (meters * meters), 1)
        return None

    @staticmethod
    def _lookup(table: dict[str, float], value: Optional[str], name: str) -> Optional[float]:
        if value is None:
            return None
        key = value.strip().lower().replace(" ", "_").replace("-", "_")
        if key not in table:
            logger.warning("feature_value_unrecognized", feature=name, value=value)
            return None
        return table[key]

    @staticmethod
    def _exercise(value: Union[float, str, None]) -> Optional[float]:
        parsed = parse_exercise_frequency(value)
        if value is not None and parsed is None:
            logger.warning("feature_value_unrecognized", feature="exercise_frequency", value=value)
        return parsed

    @staticmethod
    def _conditions(count: Optional[int], conditions: Optional[list[str]]) -> Optional[float]:
        if count is not None:
            return float(count)
        if conditions is None:
            return None
        real = [c for c in conditions if c.strip().lower() not in _NO_CONDITION_MARKERS]
        return float(len(real))


def _flag(value: Optional[bool]) -> Optional[float]:
    if value is None:
        return None
    return 1.0 if value else 0.0
