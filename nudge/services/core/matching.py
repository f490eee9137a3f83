"""Decrypt-and-compare helpers shared by the scheduler stages."""

from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import Interaction, Task, TaskType, UserRecord
from nudge.services.infrastructure.encryption_service import EncryptionCodec, EncryptionError

logger = get_logger(__name__)


def normalize_domain(domain: str | None) -> str:
    return (domain or "").strip().lower()


def safe_decrypt(codec: EncryptionCodec, token: str | None) -> str | None:
    """Decrypt a stored value; unreadable entries are skipped, not fatal."""
    if not token:
        return None
    try:
        return codec.decrypt(token)
    except EncryptionError:
        logger.warning("Skipping undecryptable stored value")
        return None


def addressed_keys(user: UserRecord, codec: EncryptionCodec) -> set[tuple[TaskType, str]]:
    """(type, domain) pairs that already have at least one interaction."""
    keys = set()
    for interaction in user.interactions:
        domain = safe_decrypt(codec, interaction.domain)
        if domain is not None:
            keys.add((interaction.type, normalize_domain(domain)))
    return keys


def find_task(
    user: UserRecord, codec: EncryptionCodec, task_type: TaskType, domain: str
) -> Task | None:
    domain = normalize_domain(domain)
    for task in user.tasks:
        if task.type == task_type and normalize_domain(safe_decrypt(codec, task.domain)) == domain:
            return task
    return None


def open_interactions(
    user: UserRecord, codec: EncryptionCodec, task_type: TaskType, domain: str
) -> list[Interaction]:
    """Interactions for (type, domain) still waiting for a survey, oldest first."""
    domain = normalize_domain(domain)
    matches = [
        interaction
        for interaction in user.interactions
        if interaction.type == task_type
        and not interaction.has_survey
        and normalize_domain(safe_decrypt(codec, interaction.domain)) == domain
    ]
    return sorted(matches, key=lambda interaction: interaction.date)
