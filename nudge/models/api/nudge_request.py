# nudge/models/api/nudge_request.py
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from nudge.models.domain.user_domain import TaskType


class _ClientRequest(BaseModel):
    """Bodies sent by the browser extension (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., min_length=3, max_length=320)

    @field_validator("email")
    @classmethod
    def _strip_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value


class PopupRequest(_ClientRequest):
    """Poll from the extension with the URL of the current page."""

    url: str = Field(..., min_length=1, max_length=2048)


class InteractionRequest(_ClientRequest):
    task_type: TaskType = Field(..., alias="taskType")
    domain: str = Field(..., min_length=1, max_length=255)
    affirmative: bool | None = None


class SurveyRequest(_ClientRequest):
    task_type: TaskType = Field(..., alias="taskType")
    domain: str = Field(..., min_length=1, max_length=255)
    survey: Any = Field(..., description="Free-form feedback on a past interaction")
    interaction_id: str | None = Field(default=None, alias="interactionId")

    @field_validator("survey")
    @classmethod
    def _survey_present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("survey must not be null")
        return value


class SupplementaryEmailsRequest(_ClientRequest):
    emails: list[str] = Field(default_factory=list, max_length=20)
