"""
Survey gate: decides when to ask for delayed feedback instead of a new task.

Only interactions old enough for the user to have actually acted are
eligible, and the gate debounces itself so concurrent tabs do not all show
the same survey.
"""

from datetime import datetime

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import Notification, UserRecord
from nudge.security.hashing import email_log_ref
from nudge.services.core.leases import acquire_lease, within_window
from nudge.services.core.matching import safe_decrypt
from nudge.services.infrastructure.encryption_service import EncryptionCodec

logger = get_logger(__name__)


class SurveyGate:
    def __init__(
        self,
        repository,
        codec: EncryptionCodec,
        debounce_seconds: int | None = None,
        settle_seconds: int | None = None,
        strict: bool | None = None,
    ):
        self.repository = repository
        self.codec = codec
        self.debounce_seconds = (
            settings.SURVEY_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.settle_seconds = (
            settings.SURVEY_SETTLE_SECONDS if settle_seconds is None else settle_seconds
        )
        self.strict = strict

    async def next_survey_candidate(self, user: UserRecord, now: datetime) -> Notification | None:
        if within_window(user.last_survey_date, now, self.debounce_seconds):
            return None

        eligible = sorted(
            (
                interaction
                for interaction in user.interactions
                if not interaction.has_survey
                and (now - interaction.date).total_seconds() > self.settle_seconds
            ),
            key=lambda interaction: interaction.date,
        )

        for interaction in eligible:
            domain = safe_decrypt(self.codec, interaction.domain)
            if domain is None:
                continue

            # Claimed before returning; a concurrent poll that already
            # claimed the window makes this one skip the survey.
            if not await acquire_lease(
                self.repository, user, "last_survey_date", now, strict=self.strict
            ):
                return None

            logger.info(
                "Survey requested",
                user_ref=email_log_ref(user.email),
                interaction_id=interaction.id,
                task_type=interaction.type.value,
            )
            return Notification(
                id=interaction.id,
                type=interaction.type,
                domain=domain,
                affirmative=interaction.affirmative,
                survey=True,
            )

        return None
