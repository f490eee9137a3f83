"""
Access gate: bounds poll frequency per user.

Several extension tabs poll independently; a poll arriving within the
throttle window of the previous accepted one is answered with no content.
"""

from datetime import datetime

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import UserRecord
from nudge.security.hashing import email_log_ref
from nudge.services.core.leases import acquire_lease, within_window

logger = get_logger(__name__)


class AccessGate:
    def __init__(
        self,
        repository,
        window_seconds: int | None = None,
        strict: bool | None = None,
    ):
        self.repository = repository
        self.window_seconds = (
            settings.ACCESS_THROTTLE_SECONDS if window_seconds is None else window_seconds
        )
        self.strict = strict

    async def should_throttle(self, user: UserRecord | None, now: datetime) -> bool:
        """
        Decide whether a poll is throttled, advancing last_access_date if not.

        A missing user is never throttled; creating the record stamps the
        access date instead.
        """
        if user is None:
            return False

        if within_window(user.last_access_date, now, self.window_seconds):
            logger.debug("Poll throttled", user_ref=email_log_ref(user.email))
            return True

        acquired = await acquire_lease(
            self.repository, user, "last_access_date", now, strict=self.strict
        )
        return not acquired
