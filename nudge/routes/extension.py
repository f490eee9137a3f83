"""
extension.py
------------
Purpose:
    Endpoints polled and called by the browser extension.

Architecture:
    - API layer: HTTP concerns and validation
    - Service layer: scheduling decisions, returns domain models
    - API layer: converts domain models → HTTP response models

Usage:
    1. POST /popup - Poll for a task, a survey request, or the initial prompt
    2. POST /interaction - Report that a shown task was acted on
    3. POST /survey - Submit delayed feedback on a past interaction
    4. POST /email - Submit supplementary email addresses
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from nudge.db.helpers import DatabaseError
from nudge.dependencies import NudgeServices, get_services
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.api.nudge_request import (
    InteractionRequest,
    PopupRequest,
    SupplementaryEmailsRequest,
    SurveyRequest,
)
from nudge.models.api.nudge_response import AckResponse, InitialResponse, NotificationResponse
from nudge.services.core.interaction_service import SurveyTargetNotFoundError
from nudge.services.core.onboarding_service import UserNotFoundError
from nudge.services.core.poll_service import InvalidPollError
from nudge.services.infrastructure.encryption_service import EncryptionError

router = APIRouter(tags=["nudge"])
logger = get_logger(__name__)


def _require_services(services: NudgeServices | None) -> NudgeServices:
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Service not configured"
        )
    return services


@router.post(
    "/popup",
    response_model=NotificationResponse | InitialResponse,
    response_model_exclude_none=True,
    responses={204: {"description": "Nothing to show"}},
)
async def popup(request: PopupRequest, services: NudgeServices | None = Depends(get_services)):
    """
    Poll for the next thing to show on the current page.

    Returns:
        InitialResponse: while supplementary emails are outstanding
        NotificationResponse: a task, or a survey request (survey=true)
        204: nothing to show, including while the codec is unconfigured

    Raises:
        400: missing email or URL without a hostname
    """
    if services is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    try:
        outcome = await services.poll.poll(request.email, request.url)
    except InvalidPollError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if outcome.initial:
        return InitialResponse()

    if outcome.notification is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return NotificationResponse.from_domain(outcome.notification)


@router.post("/interaction", status_code=status.HTTP_201_CREATED, response_model=AckResponse)
async def record_interaction(
    request: InteractionRequest, services: NudgeServices | None = Depends(get_services)
):
    """Record that a shown task was acted on."""
    services = _require_services(services)
    try:
        await services.interactions.record(
            email=request.email,
            task_type=request.task_type,
            domain=request.domain,
            affirmative=request.affirmative,
        )
    except (DatabaseError, EncryptionError) as e:
        logger.error("Could not store interaction", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Interaction not stored"
        ) from e

    return AckResponse()


@router.post("/survey", status_code=status.HTTP_201_CREATED, response_model=AckResponse)
async def submit_survey(
    request: SurveyRequest, services: NudgeServices | None = Depends(get_services)
):
    """Attach feedback to the earliest open interaction for the task."""
    services = _require_services(services)
    try:
        await services.interactions.submit_survey(
            email=request.email,
            task_type=request.task_type,
            domain=request.domain,
            feedback=request.survey,
            interaction_id=request.interaction_id,
        )
    except (UserNotFoundError, SurveyTargetNotFoundError) as e:
        logger.warning("Survey rejected", reason=str(e), task_type=request.task_type.value)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except DatabaseError as e:
        logger.error("Could not store survey", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Survey not stored"
        ) from e

    return AckResponse()


@router.post("/email", status_code=status.HTTP_201_CREATED, response_model=AckResponse)
async def submit_emails(
    request: SupplementaryEmailsRequest, services: NudgeServices | None = Depends(get_services)
):
    """Link further addresses to the user and seed their breach tasks."""
    services = _require_services(services)
    try:
        created = await services.onboarding.add_supplementary_emails(request.email, request.emails)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except (DatabaseError, EncryptionError) as e:
        logger.error("Could not process supplementary emails", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Emails not processed"
        ) from e

    return AckResponse(message=f"{created} tasks created")
