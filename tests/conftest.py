import random
from datetime import UTC, datetime, timedelta

import pytest
from cryptography.fernet import Fernet

from nudge.db.helpers import DatabaseError
from nudge.dependencies import build_services
from nudge.models.domain.user_domain import (
    BreachRecord,
    Interaction,
    Task,
    TaskType,
    UserRecord,
)
from nudge.services.infrastructure.encryption_service import EncryptionCodec
from nudge.services.two_factor_directory import TwoFactorDirectory

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class FakeRedis:
    configured = True

    def __init__(self):
        self.store: dict[str, str] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)


class FakeUserRepository:
    """
    In-memory UserRepository.

    Reads hand out deep copies, like separate round-trips to the database,
    so services only see writes made through the repository.
    """

    def __init__(self):
        self.users: dict[str, UserRecord] = {}
        self.fail = False
        self.writes: list[str] = []

    def _check(self):
        if self.fail:
            raise DatabaseError("database unavailable", operation="fake")

    def _require(self, email: str, operation: str) -> UserRecord:
        if email not in self.users:
            raise DatabaseError("User record missing", operation=operation)
        return self.users[email]

    def add(self, user: UserRecord) -> UserRecord:
        self.users[user.email] = user
        return user

    async def get_user(self, email: str) -> UserRecord | None:
        self._check()
        user = self.users.get(email)
        return user.model_copy(deep=True) if user else None

    async def create_user(self, email: str, now: datetime) -> bool:
        self._check()
        if email in self.users:
            return False
        self.users[email] = UserRecord(email=email, initial=True, last_access_date=now)
        self.writes.append("create_user")
        return True

    async def touch(self, email: str, field: str, now: datetime) -> bool:
        self._check()
        setattr(self._require(email, "touch"), field, now)
        self.writes.append(field)
        return True

    async def compare_and_set(self, email, field, expected, now) -> bool:
        self._check()
        user = self._require(email, "compare_and_set")
        if getattr(user, field) != expected:
            return False
        setattr(user, field, now)
        self.writes.append(field)
        return True

    async def append_tasks(self, email: str, tasks: list[Task]) -> int:
        self._check()
        self._require(email, "append_tasks").tasks.extend(t.model_copy() for t in tasks)
        self.writes.append("tasks")
        return len(tasks)

    async def append_interaction(self, email: str, interaction: Interaction) -> None:
        self._check()
        self._require(email, "append_interaction").interactions.append(interaction.model_copy())
        self.writes.append("interactions")

    async def set_survey(self, email: str, interaction_id: str, feedback) -> bool:
        self._check()
        for interaction in self._require(email, "set_survey").interactions:
            if interaction.id == interaction_id and not interaction.has_survey:
                interaction.survey = feedback
                self.writes.append("survey")
                return True
        return False

    async def clear_initial(self, email: str) -> bool:
        self._check()
        self._require(email, "clear_initial").initial = False
        self.writes.append("initial")
        return True


class FakeBreachLookup:
    def __init__(self, breaches: dict[str, list[BreachRecord]] | None = None):
        self.breaches = breaches or {}
        self.calls: list[str] = []

    async def lookup(self, email: str) -> list[BreachRecord]:
        self.calls.append(email)
        return list(self.breaches.get(email, []))


class Clock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def codec():
    return EncryptionCodec(Fernet.generate_key())


@pytest.fixture
def repository():
    return FakeUserRepository()


@pytest.fixture
def breach_lookup():
    return FakeBreachLookup()


@pytest.fixture
def directory():
    return TwoFactorDirectory(
        [
            ["GitHub", {"domain": "github.com"}],
            ["Google", {"domain": "google.com", "additional-domains": ["gmail.com"]}],
        ]
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def services(repository, codec, breach_lookup, directory, clock):
    return build_services(
        repository=repository,
        codec=codec,
        breach_lookup=breach_lookup,
        directory=directory,
        rng=random.Random(7),
        clock=clock,
    )


@pytest.fixture
def make_user(repository, codec):
    """Store a ready (non-initial) user with plaintext tasks/interactions encrypted."""

    def _make(
        email: str = "a@x.com",
        tasks: list[tuple[TaskType, str, str | None]] = (),
        interactions: list[tuple[TaskType, str, datetime]] = (),
        **fields,
    ) -> UserRecord:
        user = UserRecord(
            email=email,
            initial=fields.pop("initial", False),
            tasks=[
                Task(
                    type=task_type,
                    domain=codec.encrypt(domain),
                    account=codec.encrypt(account) if account else None,
                )
                for task_type, domain, account in tasks
            ],
            interactions=[
                Interaction(date=date, type=task_type, domain=codec.encrypt(domain))
                for task_type, domain, date in interactions
            ],
            **fields,
        )
        repository.add(user)
        return user.model_copy(deep=True)

    return _make
