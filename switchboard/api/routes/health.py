"""Liveness endpoint."""

from typing import Any

from fastapi import APIRouter, Depends

from switchboard.api.deps import Services, get_services

router = APIRouter()


@router.get("/health")
async def health(services: Services = Depends(get_services)) -> dict[str, Any]:
    return {
        "status": "ok",
        "executions": len(services.manager.active()),
        "pendingConfirmations": len(services.confirmations.list()),
    }
