from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from nudge.models.domain.user_domain import TaskType
from nudge.services.instructions_service import InstructionsService, InstructionsServiceError


def _client(content=None, error=None):
    client = MagicMock()
    if error:
        client.chat.completions.create = AsyncMock(side_effect=error)
    else:
        message = SimpleNamespace(content=content)
        completion = SimpleNamespace(choices=[SimpleNamespace(message=message)] if content else [])
        client.chat.completions.create = AsyncMock(return_value=completion)
    return client


@pytest.mark.asyncio
async def test_password_prompt_names_domain():
    client = _client("  1. Open settings\n2. Change password  ")
    service = InstructionsService(api_key=None, client=client)

    text = await service.get_instructions(TaskType.PASSWORD_BREACH, "adobe.com")

    assert text == "1. Open settings\n2. Change password"
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-3.5-turbo"
    assert "change your password for adobe.com" in kwargs["messages"][0]["content"]


@pytest.mark.asyncio
async def test_two_factor_prompt():
    client = _client("Enable it under Security")

    await InstructionsService(api_key=None, client=client).get_instructions(
        TaskType.TWO_FACTOR_AUTH, "github.com"
    )

    prompt = client.chat.completions.create.await_args.kwargs["messages"][0]["content"]
    assert "enable 2FA for github.com" in prompt


@pytest.mark.asyncio
async def test_upstream_failure_is_wrapped():
    service = InstructionsService(api_key=None, client=_client(error=RuntimeError("timeout")))

    with pytest.raises(InstructionsServiceError):
        await service.get_instructions(TaskType.TWO_FACTOR_AUTH, "github.com")


@pytest.mark.asyncio
async def test_empty_completion_is_an_error():
    service = InstructionsService(api_key=None, client=_client(content=None))

    with pytest.raises(InstructionsServiceError):
        await service.get_instructions(TaskType.PASSWORD_BREACH, "adobe.com")


def test_missing_api_key_is_not_recoverable():
    with pytest.raises(InstructionsServiceError) as exc_info:
        InstructionsService(api_key=None)

    assert exc_info.value.recoverable is False
