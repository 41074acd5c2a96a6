"""
Undo endpoint for actions the assistant took during a turn.
"""

import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from caselli.clients.auth import AuthenticatedUser
from caselli.db.repositories import ContactNotFoundError, DealNotFoundError
from caselli.dependencies import get_current_user, get_services
from caselli.services.container import Services
from caselli.services.undo_service import UndoError
from caselli.utils.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/undo",
    response_model=Dict[str, Any],
    status_code=status.HTTP_200_OK,
    summary="Undo an assistant action",
    description="Deletes a created deal or contact, or reverts a deal update",
)
async def undo_endpoint(
    payload: Optional[Dict[str, Any]] = Body(None),  # noqa: B008
    user: AuthenticatedUser = Depends(get_current_user),  # noqa: B008
    services: Services = Depends(get_services),  # noqa: B008
) -> Dict[str, Any]:
    """
    Apply one undo action.

    Example request:
        {"type": "revert_deal", "entity_id": "...", "previous_values": {"stage": "lead"}}

    Example response:
        {"success": true, "message": "Deal reverted"}
    """
    payload = payload if isinstance(payload, dict) else {}
    undo_type = payload.get("type")
    raw_id = payload.get("entity_id")
    if not undo_type or not raw_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing type or entity_id"
        )

    try:
        entity_id = uuid.UUID(str(raw_id))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid entity_id"
        ) from e

    previous_values = payload.get("previous_values")
    if previous_values is not None and not isinstance(previous_values, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="previous_values must be an object",
        )

    try:
        message = await services.undo.undo(
            user.id, str(undo_type), entity_id, previous_values
        )
    except UndoError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except (DealNotFoundError, ContactNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except Exception as e:
        logger.error(
            "Undo failed",
            undo_type=undo_type,
            entity_id=str(entity_id),
            error=str(e),
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to undo action",
        ) from e

    return {"success": True, "message": message}
