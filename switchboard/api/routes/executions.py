"""Execution status and the external stop signal."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from switchboard.api.deps import Services, get_services, get_user
from switchboard.api.schemas import CancelResponse
from switchboard.execution.state import AgentExecution

router = APIRouter()


def _owned(services: Services, execution_id: str, user_id: str) -> AgentExecution:
    execution = services.manager.get(execution_id)
    if execution is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Execution not found")
    if execution.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not the owner of this execution"
        )
    return execution


@router.get("/executions/{execution_id}")
async def get_execution(
    execution_id: str,
    user_id: str = Depends(get_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return _owned(services, execution_id, user_id).to_dict()


@router.post("/executions/{execution_id}/cancel", response_model=CancelResponse)
async def cancel_execution(
    execution_id: str,
    user_id: str = Depends(get_user),
    services: Services = Depends(get_services),
) -> CancelResponse:
    _owned(services, execution_id, user_id)
    if services.manager.cancel(execution_id):
        return CancelResponse(success=True, message="Cancellation requested")
    return CancelResponse(success=False, message="Execution already finished or stopping")
