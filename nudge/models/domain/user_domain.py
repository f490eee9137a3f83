from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid4())


class TaskType(str, Enum):
    """Remedial action a task asks for."""

    PASSWORD_BREACH = "pw"
    TWO_FACTOR_AUTH = "2fa"


class Task(BaseModel):
    """Stored recommendation. `domain` and `account` hold ciphertext."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id)
    type: TaskType
    domain: str
    account: str | None = None


class Interaction(BaseModel):
    """Log entry for a shown task. `domain` holds ciphertext."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id)
    date: datetime
    type: TaskType
    domain: str
    affirmative: bool | None = None
    # Absent until the survey flow fills it, set at most once
    survey: Any | None = None

    @property
    def has_survey(self) -> bool:
        return self.survey is not None


class UserRecord(BaseModel):
    """One stored document per user, keyed by normalized email."""

    model_config = ConfigDict(extra="ignore")

    email: str
    initial: bool = True
    last_access_date: datetime | None = None
    last_notification_date: datetime | None = None
    last_survey_date: datetime | None = None
    tasks: list[Task] = Field(default_factory=list)
    interactions: list[Interaction] = Field(default_factory=list)
    created_at: datetime | None = None


class BreachRecord(BaseModel):
    """Single breach returned by the breach lookup."""

    name: str
    domain: str


class Notification(BaseModel):
    """Decrypted payload handed back to the polling client."""

    id: str
    type: TaskType
    domain: str
    account: str | None = None
    affirmative: bool | None = None
    survey: bool = False
