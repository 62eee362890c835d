"""Trigger contract from the data-change notifier."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ChangedEntity(StrEnum):
    QUESTIONNAIRE = "questionnaire"
    HEALTH_TRACKING = "health_tracking"
    ASSESSMENT = "assessment"
    # Internal trigger sources
    PERIODIC = "periodic"
    REFRESH = "refresh"


class ChangeEvent(BaseModel):
    """A recompute is due for `user_id`. The delta itself is not needed."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    changed_entity: ChangedEntity
