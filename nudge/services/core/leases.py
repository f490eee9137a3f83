"""
Cooldown windows and soft leases on the per-user timestamps.

A lease is claimed by writing `now` into one of the user's timestamp fields.
By default the write is unconditional, so two polls racing inside the same
instant can both win. With strict leases the write is a compare-and-swap
against the value the poll read, and only one of them wins.
"""

from datetime import datetime

from nudge.config import settings
from nudge.models.domain.user_domain import UserRecord


def within_window(last: datetime | None, now: datetime, seconds: float) -> bool:
    """True when `last` is set and lies less than `seconds` away from `now`."""
    if last is None:
        return False
    return abs((now - last).total_seconds()) < seconds


async def acquire_lease(
    repository,
    user: UserRecord,
    field: str,
    now: datetime,
    strict: bool | None = None,
) -> bool:
    """Advance `field` to `now`. Returns False only when a strict swap loses."""
    strict = settings.STRICT_LEASES if strict is None else strict

    if strict:
        acquired = await repository.compare_and_set(user.email, field, getattr(user, field), now)
    else:
        await repository.touch(user.email, field, now)
        acquired = True

    if acquired:
        setattr(user, field, now)
    return acquired
