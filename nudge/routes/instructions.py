"""
Remediation instructions for a task, generated on demand.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, status

from nudge.dependencies import get_instructions_service
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.api.nudge_response import InstructionsResponse
from nudge.models.domain.user_domain import TaskType
from nudge.services.instructions_service import InstructionsService, InstructionsServiceError

router = APIRouter(prefix="/instructions", tags=["instructions"])
logger = get_logger(__name__)


def instructions_dependency() -> InstructionsService:
    try:
        return get_instructions_service()
    except InstructionsServiceError as e:
        logger.error("Instructions service unavailable", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Instructions are not available",
        ) from e


@router.get("/{task_type}/{domain}", response_model=InstructionsResponse)
async def get_instructions(
    task_type: TaskType,
    domain: str = Path(..., min_length=1, max_length=255),
    service: InstructionsService = Depends(instructions_dependency),
):
    """
    Short how-to for changing a password on, or enabling 2FA for, a site.

    Raises:
        503: text generation not configured or failed
    """
    try:
        text = await service.get_instructions(task_type, domain.strip().lower())
    except InstructionsServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Instructions are not available",
        ) from e

    return InstructionsResponse(data=text)
