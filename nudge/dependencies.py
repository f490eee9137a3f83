"""
Service wiring for the API layer.

Collaborators are built once from settings and injected into the core
services. Routes depend on `get_services`, which tests replace through
`app.dependency_overrides`.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger
from nudge.repositories.user_repository import user_repository
from nudge.services.breach_lookup_service import BreachLookupService
from nudge.services.core.access_gate import AccessGate
from nudge.services.core.interaction_service import InteractionService
from nudge.services.core.onboarding_service import OnboardingService
from nudge.services.core.poll_service import PollService
from nudge.services.core.survey_gate import SurveyGate
from nudge.services.core.task_generator import TaskGenerator
from nudge.services.core.task_scheduler import TaskScheduler
from nudge.services.infrastructure.encryption_service import (
    EncryptionCodec,
    EncryptionError,
    codec_from_settings,
)
from nudge.services.instructions_service import InstructionsService
from nudge.services.two_factor_directory import TwoFactorDirectory

logger = get_logger(__name__)


@dataclass
class NudgeServices:
    poll: PollService
    interactions: InteractionService
    onboarding: OnboardingService


def build_services(
    repository,
    codec: EncryptionCodec,
    breach_lookup: BreachLookupService,
    directory: TwoFactorDirectory,
    rng: random.Random | None = None,
    clock: Callable[[], datetime] | None = None,
) -> NudgeServices:
    task_generator = TaskGenerator(repository, codec, breach_lookup)
    survey_gate = SurveyGate(repository, codec)
    scheduler = TaskScheduler(repository, codec, directory, survey_gate, task_generator, rng=rng)
    onboarding = OnboardingService(repository, task_generator)

    return NudgeServices(
        poll=PollService(repository, AccessGate(repository), onboarding, scheduler, clock=clock),
        interactions=InteractionService(repository, codec, clock=clock),
        onboarding=onboarding,
    )


@lru_cache
def _default_services() -> NudgeServices:
    config = settings.collaborator_config()
    return build_services(
        repository=user_repository,
        codec=codec_from_settings(),
        breach_lookup=BreachLookupService(config.breach_api_key),
        directory=TwoFactorDirectory.from_file(),
    )


def get_services() -> NudgeServices | None:
    """
    Process-wide services, or None while the codec cannot be built.

    A failed build is not cached; the next request tries again.
    """
    try:
        return _default_services()
    except EncryptionError as e:
        logger.error("Nudge services unavailable", error=str(e))
        return None


@lru_cache
def get_instructions_service() -> InstructionsService:
    return InstructionsService(settings.collaborator_config().text_gen_api_key)
