"""
Interaction recorder and survey submission.

Interactions are append-only. The only mutation ever applied to a stored
interaction is filling its survey, once.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import Interaction, TaskType
from nudge.security.hashing import email_log_ref, normalize_email
from nudge.services.core.matching import normalize_domain, open_interactions
from nudge.services.core.onboarding_service import UserNotFoundError
from nudge.services.infrastructure.encryption_service import EncryptionCodec

logger = get_logger(__name__)


class SurveyTargetNotFoundError(Exception):
    """Raised when a survey names no open interaction."""


class InteractionService:
    def __init__(
        self,
        repository,
        codec: EncryptionCodec,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.codec = codec
        self.clock = clock or (lambda: datetime.now(UTC))

    async def record(
        self,
        email: str,
        task_type: TaskType,
        domain: str,
        affirmative: bool | None,
        now: datetime | None = None,
    ) -> Interaction:
        """
        Append an interaction. No matching task is required.

        Raises:
            DatabaseError: Persistence failed or the user does not exist
        """
        email = normalize_email(email)
        interaction = Interaction(
            date=now or self.clock(),
            type=task_type,
            domain=self.codec.encrypt(normalize_domain(domain)),
            affirmative=affirmative,
        )
        await self.repository.append_interaction(email, interaction)

        logger.info(
            "Interaction recorded",
            user_ref=email_log_ref(email),
            interaction_id=interaction.id,
            task_type=task_type.value,
            affirmative=affirmative,
        )
        return interaction

    async def submit_survey(
        self,
        email: str,
        task_type: TaskType,
        domain: str,
        feedback: Any,
        interaction_id: str | None = None,
    ) -> Interaction:
        """
        Attach feedback to the earliest open interaction for (type, domain).

        When `interaction_id` is given only that interaction is eligible.

        Raises:
            UserNotFoundError: No record exists for `email`
            SurveyTargetNotFoundError: No open interaction matches
            DatabaseError: Persistence failed
        """
        email = normalize_email(email)
        user = await self.repository.get_user(email)
        if user is None:
            raise UserNotFoundError("User not found")

        candidates = open_interactions(user, self.codec, task_type, domain)
        if interaction_id:
            candidates = [i for i in candidates if i.id == interaction_id]
        if not candidates:
            raise SurveyTargetNotFoundError("No open interaction for this task")

        target = candidates[0]
        if not await self.repository.set_survey(email, target.id, feedback):
            # A concurrent submission filled it first
            raise SurveyTargetNotFoundError("Interaction already has a survey")

        target.survey = feedback
        logger.info(
            "Survey stored",
            user_ref=email_log_ref(email),
            interaction_id=target.id,
            task_type=task_type.value,
        )
        return target
