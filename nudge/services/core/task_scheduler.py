"""
Task scheduler: the per-poll decision of what, if anything, to show.

Order of precedence:
    1. a pending survey (strict priority over new tasks)
    2. lazily create a 2FA task for the current page if the site supports it
    3. drop tasks that already have a matching interaction
    4. respect the notification cooldown
    5. pick one of the remaining tasks uniformly at random

Completion is implicit: tasks are never removed, a task counts as addressed
once an interaction with the same type and decrypted domain exists.
"""

import random
from datetime import datetime

from nudge.config import settings
from nudge.db.helpers import DatabaseError
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import Notification, Task, UserRecord
from nudge.security.hashing import email_log_ref
from nudge.services.core.leases import acquire_lease, within_window
from nudge.services.core.matching import addressed_keys, normalize_domain, safe_decrypt
from nudge.services.core.survey_gate import SurveyGate
from nudge.services.core.task_generator import TaskGenerator
from nudge.services.infrastructure.encryption_service import EncryptionCodec, EncryptionError
from nudge.services.two_factor_directory import TwoFactorDirectory

logger = get_logger(__name__)


class TaskScheduler:
    def __init__(
        self,
        repository,
        codec: EncryptionCodec,
        directory: TwoFactorDirectory,
        survey_gate: SurveyGate,
        task_generator: TaskGenerator,
        rng: random.Random | None = None,
        cooldown_seconds: int | None = None,
        strict: bool | None = None,
    ):
        self.repository = repository
        self.codec = codec
        self.directory = directory
        self.survey_gate = survey_gate
        self.task_generator = task_generator
        self.rng = rng or random.Random()
        self.cooldown_seconds = (
            settings.NOTIFICATION_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        )
        self.strict = strict

    async def next_task(
        self, user: UserRecord, page_domain: str | None, now: datetime
    ) -> Notification | None:
        """Best-effort: storage or cipher failures mean nothing is shown."""
        try:
            return await self._next_task(user, page_domain, now)
        except (DatabaseError, EncryptionError) as e:
            logger.error(
                "Task scheduling failed, showing nothing",
                user_ref=email_log_ref(user.email),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def _next_task(
        self, user: UserRecord, page_domain: str | None, now: datetime
    ) -> Notification | None:
        survey = await self.survey_gate.next_survey_candidate(user, now)
        if survey:
            return survey

        if page_domain and self.directory.supports(page_domain):
            await self.task_generator.ensure_two_factor_task(user, page_domain)

        candidates = self.relevant_tasks(user)
        if not candidates:
            return None

        if within_window(user.last_notification_date, now, self.cooldown_seconds):
            return None

        task, domain = self.rng.choice(candidates)

        if not await acquire_lease(
            self.repository, user, "last_notification_date", now, strict=self.strict
        ):
            return None

        logger.info(
            "Task offered",
            user_ref=email_log_ref(user.email),
            task_id=task.id,
            task_type=task.type.value,
            candidates=len(candidates),
        )
        return Notification(
            id=task.id,
            type=task.type,
            domain=domain,
            account=safe_decrypt(self.codec, task.account),
        )

    def relevant_tasks(self, user: UserRecord) -> list[tuple[Task, str]]:
        """Unaddressed tasks paired with their decrypted domain."""
        addressed = addressed_keys(user, self.codec)
        relevant = []
        for task in user.tasks:
            domain = safe_decrypt(self.codec, task.domain)
            if domain is None:
                continue
            if (task.type, normalize_domain(domain)) in addressed:
                continue
            relevant.append((task, domain))
        return relevant
