"""Confirmation sub-protocol: list pending approvals and resolve one.

Status codes: 410 when the id is unknown, already resolved or timed out; 400 for malformed
input; 401 when the caller is unauthenticated or does not own the execution.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from switchboard.api.deps import Services, get_services, get_user
from switchboard.api.schemas import (
    ConfirmationDecision,
    ConfirmationResponse,
    PendingConfirmationList,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/confirmations", response_model=PendingConfirmationList)
async def list_confirmations(
    user_id: str = Depends(get_user),
    services: Services = Depends(get_services),
) -> PendingConfirmationList:
    pending = [
        entry.to_dict()
        for entry in services.confirmations.list()
        if services.manager.owner_of(entry.execution_id) == user_id
    ]
    return PendingConfirmationList(pending=pending)


@router.post("/confirmations", response_model=ConfirmationResponse)
async def resolve_confirmation(
    decision: ConfirmationDecision,
    user_id: str = Depends(get_user),
    services: Services = Depends(get_services),
) -> ConfirmationResponse:
    entry = services.confirmations.get(decision.id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_410_GONE, detail="Confirmation not found or already resolved"
        )
    owner = services.manager.owner_of(entry.execution_id)
    if owner is None:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Execution no longer running")
    if owner != user_id:
        logger.warning(
            "User %s tried to resolve confirmation %s owned by another user", user_id, decision.id
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not the owner of this execution"
        )
    result = services.confirmations.resolve(decision.id, decision.approved, decision.edited_args)
    if result.not_found:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=result.message)
    return ConfirmationResponse(success=result.success, message=result.message)
