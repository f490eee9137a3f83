# nudge/models/api/nudge_response.py
from pydantic import BaseModel, ConfigDict, Field

from nudge.models.domain.user_domain import Notification, TaskType


class InitialResponse(BaseModel):
    """Returned while the user still has to submit supplementary emails."""

    initial: bool = True


class NotificationResponse(BaseModel):
    """Task or survey request shown by the extension."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: TaskType
    domain: str
    account: str | None = None
    affirmative: bool | None = None
    survey: bool = False

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationResponse":
        return cls(**notification.model_dump())


class AckResponse(BaseModel):
    success: bool = True
    message: str | None = None


class InstructionsResponse(BaseModel):
    data: str = Field(..., description="Short remediation instructions")
