"""
Onboarding: bootstrap of unknown users and supplementary email expansion.

A user starts in the `initial` state. The extension is expected to collect
the user's other addresses and submit them, which clears `initial` and lets
normal scheduling begin.
"""

from datetime import datetime

from nudge.db.helpers import DatabaseError
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import UserRecord
from nudge.security.hashing import email_log_ref, normalize_email
from nudge.services.core.task_generator import TaskGenerator

logger = get_logger(__name__)


class UserNotFoundError(Exception):
    """Raised when an operation targets an email with no user record."""


class OnboardingService:
    def __init__(self, repository, task_generator: TaskGenerator):
        self.repository = repository
        self.task_generator = task_generator

    async def bootstrap_user(self, email: str, now: datetime) -> bool:
        """
        Create the record for a first-time poll and seed breach tasks.

        Returns True if this call created the user. When a concurrent poll
        won the insert, it also owns seeding the tasks.
        """
        email = normalize_email(email)
        if not await self.repository.create_user(email, now):
            return False

        user = UserRecord(email=email, last_access_date=now)
        try:
            await self.task_generator.create_password_breach_tasks(user, account=email)
        except DatabaseError as e:
            logger.error(
                "Could not create password breach tasks",
                user_ref=email_log_ref(email),
                error=str(e),
            )
        return True

    async def add_supplementary_emails(self, email: str, emails: list[str]) -> int:
        """
        Clear `initial` and seed breach tasks for each linked address.

        Returns the number of tasks created.

        Raises:
            UserNotFoundError: No record exists for `email`
            DatabaseError: Persistence failed
        """
        email = normalize_email(email)
        user = await self.repository.get_user(email)
        if user is None:
            raise UserNotFoundError("User not found")

        await self.repository.clear_initial(email)
        user.initial = False

        created = 0
        for address in self._unique_addresses(emails):
            tasks = await self.task_generator.create_password_breach_tasks(user, account=address)
            created += len(tasks)

        logger.info(
            "Supplementary emails processed",
            user_ref=email_log_ref(email),
            addresses=len(emails),
            tasks_created=created,
        )
        return created

    @staticmethod
    def _unique_addresses(emails: list[str]) -> list[str]:
        seen = []
        for address in emails:
            address = normalize_email(address)
            if address and address not in seen:
                seen.append(address)
        return seen
