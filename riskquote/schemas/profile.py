"""
ProfileSnapshot — immutable point-in-time view of a user's answers.

Owned by the ingestion collaborator. Every section and every field is
optional except the user id; the Feature Extractor supplies documented
defaults for anything absent. Accepts camelCase keys as produced by the
questionnaire front end.
"""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Demographics(_Record):
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    occupation: Optional[str] = None
    occupation_class: Optional[str] = None     # class_1 .. class_4
    location: Optional[str] = None
    locality_tier: Optional[str] = None        # tier_1 .. tier_3


class Health(_Record):
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    bmi: Optional[float] = None
    smoking_status: Optional[str] = None       # never | former | current
    medical_conditions: Optional[list[str]] = None
    existing_conditions_count: Optional[int] = Field(default=None, ge=0)


class Lifestyle(_Record):
    exercise_frequency: Optional[Union[float, str]] = None   # per week, or "3-4" bucket
    stress_level: Optional[float] = Field(default=None, ge=0, le=10)
    alcohol_consumption: Optional[str] = None  # none | light | moderate | heavy
    sleep_hours: Optional[float] = Field(default=None, ge=0, le=24)


class Financial(_Record):
    annual_income: Optional[float] = Field(default=None, ge=0)
    emergency_fund: Optional[bool] = None
    existing_coverage: Optional[bool] = None
    coverage_amount: Optional[int] = Field(default=None, gt=0)
    policy_term: Optional[int] = None


class HealthTrackingSummary(_Record):
    """Aggregated wearable / manual health-tracking entries."""
    entry_count: int = 0
    avg_heart_rate: Optional[float] = None
    avg_steps: Optional[float] = None
    avg_sleep_hours: Optional[float] = None
    avg_weight: Optional[float] = None
    improvement_score: Optional[float] = None
    premium_adjustment_pct: float = 0.0


class ProfileSnapshot(_Record):
    """Read-only input to a recompute."""
    user_id: Optional[str] = None
    captured_at: Optional[datetime] = None
    demographics: Demographics = Field(default_factory=Demographics)
    health: Health = Field(default_factory=Health)
    lifestyle: Lifestyle = Field(default_factory=Lifestyle)
    financial: Financial = Field(default_factory=Financial)
    health_tracking: Optional[HealthTrackingSummary] = None
