# nudge/services/instructions_service.py
"""
OpenAI service for remediation instructions.
Asks a chat model for a very short how-to for changing a password on, or
enabling 2FA for, a given site.
"""

from openai import AsyncOpenAI

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import TaskType

logger = get_logger(__name__)


class InstructionsServiceError(Exception):
    """Raised when instructions cannot be generated."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


PROMPTS = {
    TaskType.PASSWORD_BREACH: "Give a very short summary on how to change your password for {domain}",
    TaskType.TWO_FACTOR_AUTH: "Give a very short summary on how to enable 2FA for {domain}",
}


class InstructionsService:
    def __init__(self, api_key: str | None, client: AsyncOpenAI | None = None):
        if client is None:
            if not api_key:
                raise InstructionsServiceError(
                    "OPENAI_API_KEY not configured in settings", recoverable=False
                )
            client = AsyncOpenAI(api_key=api_key, timeout=settings.OPENAI_TIMEOUT_SECONDS)

        self.client = client
        self.model = settings.OPENAI_MODEL

    async def get_instructions(self, task_type: TaskType, domain: str) -> str:
        prompt = PROMPTS[task_type].format(domain=domain)

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": prompt}],
            )
        except Exception as e:
            logger.error(
                "OpenAI instructions request failed",
                task_type=task_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InstructionsServiceError(f"Instructions request failed: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise InstructionsServiceError("OpenAI returned empty instructions")

        logger.info("Instructions generated", task_type=task_type.value, length=len(content))
        return content.strip()
