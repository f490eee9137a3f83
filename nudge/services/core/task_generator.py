"""
Task generator: turns breach results and 2FA capability into stored tasks.

Domains and account addresses are encrypted before they are persisted.
"""

from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import Task, TaskType, UserRecord
from nudge.security.hashing import email_log_ref, normalize_email
from nudge.services.breach_lookup_service import BreachLookupService
from nudge.services.core.matching import find_task, normalize_domain, safe_decrypt
from nudge.services.infrastructure.encryption_service import EncryptionCodec

logger = get_logger(__name__)


class TaskGenerator:
    def __init__(self, repository, codec: EncryptionCodec, breach_lookup: BreachLookupService):
        self.repository = repository
        self.codec = codec
        self.breach_lookup = breach_lookup

    async def create_password_breach_tasks(self, user: UserRecord, account: str) -> list[Task]:
        """
        Look up breaches for `account` and attach one task per breached domain.

        Domains the user already has a password task for under the same
        account are skipped; the same domain under another account is not.
        """
        account = normalize_email(account)
        breaches = await self.breach_lookup.lookup(account)
        if not breaches:
            return []

        known = self._known_breach_domains(user, account)
        tasks = []
        for breach in breaches:
            domain = normalize_domain(breach.domain)
            if domain in known:
                continue
            known.add(domain)
            tasks.append(
                Task(
                    type=TaskType.PASSWORD_BREACH,
                    domain=self.codec.encrypt(domain),
                    account=self.codec.encrypt(account),
                )
            )

        if tasks:
            await self.repository.append_tasks(user.email, tasks)
            user.tasks.extend(tasks)

        logger.info(
            "Password breach tasks created",
            user_ref=email_log_ref(user.email),
            account_ref=email_log_ref(account),
            breaches=len(breaches),
            created=len(tasks),
        )
        return tasks

    async def ensure_two_factor_task(self, user: UserRecord, hostname: str) -> Task | None:
        """
        Create a 2FA task for `hostname` unless one already exists.

        The existence check and the append are separate statements; two
        concurrent polls may both create the task.
        """
        hostname = normalize_domain(hostname)
        if find_task(user, self.codec, TaskType.TWO_FACTOR_AUTH, hostname):
            return None

        task = Task(type=TaskType.TWO_FACTOR_AUTH, domain=self.codec.encrypt(hostname))
        await self.repository.append_tasks(user.email, [task])
        user.tasks.append(task)

        logger.info("2FA task created", user_ref=email_log_ref(user.email), task_id=task.id)
        return task

    def _known_breach_domains(self, user: UserRecord, account: str) -> set[str]:
        known = set()
        for task in user.tasks:
            if task.type != TaskType.PASSWORD_BREACH:
                continue
            if normalize_email(safe_decrypt(self.codec, task.account)) != account:
                continue
            domain = safe_decrypt(self.codec, task.domain)
            if domain:
                known.add(normalize_domain(domain))
        return known
