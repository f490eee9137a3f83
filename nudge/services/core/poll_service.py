"""
Poll handling: access gate → bootstrap → survey gate → task scheduler.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import urlparse

from nudge.db.helpers import DatabaseError
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import Notification
from nudge.security.hashing import email_log_ref, normalize_email
from nudge.services.core.access_gate import AccessGate
from nudge.services.core.onboarding_service import OnboardingService
from nudge.services.core.task_scheduler import TaskScheduler

logger = get_logger(__name__)


class InvalidPollError(ValueError):
    """Raised when a poll carries no usable page URL."""


@dataclass(frozen=True)
class PollOutcome:
    """What a poll resolved to. Neither field set means no content."""

    initial: bool = False
    notification: Notification | None = None


def extract_hostname(url: str) -> str:
    parsed = urlparse(url.strip())
    if not parsed.hostname:
        raise InvalidPollError("url has no hostname")
    return parsed.hostname.lower()


class PollService:
    def __init__(
        self,
        repository,
        access_gate: AccessGate,
        onboarding: OnboardingService,
        scheduler: TaskScheduler,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.access_gate = access_gate
        self.onboarding = onboarding
        self.scheduler = scheduler
        self.clock = clock or (lambda: datetime.now(UTC))

    async def poll(self, email: str, url: str, now: datetime | None = None) -> PollOutcome:
        """
        Resolve one poll.

        Raises:
            InvalidPollError: The URL has no hostname
        """
        now = now or self.clock()
        email = normalize_email(email)
        hostname = extract_hostname(url)

        try:
            user = await self.repository.get_user(email)

            if await self.access_gate.should_throttle(user, now):
                return PollOutcome()

            if user is None:
                await self.onboarding.bootstrap_user(email, now)
                return PollOutcome(initial=True)

        except DatabaseError as e:
            logger.error("Poll failed on storage", user_ref=email_log_ref(email), error=str(e))
            return PollOutcome()

        if user.initial:
            return PollOutcome(initial=True)

        notification = await self.scheduler.next_task(user, hostname, now)
        return PollOutcome(notification=notification)
