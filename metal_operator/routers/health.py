"""Health and readiness endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from metal_operator.dependencies import get_manager, get_store
from metal_operator.models.health import ControllerHealth, HealthResponse, ReadyResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, manager=Depends(get_manager)) -> HealthResponse:
    """Liveness plus queue depth per controller. Degraded once controllers stop."""
    from metal_operator.main import get_uptime

    inventory = getattr(request.app.state, "inventory", None)

    return HealthResponse(
        status="ok" if manager.running else "degraded",
        version=request.app.state.version,
        uptime=get_uptime(),
        controllers=[ControllerHealth(name=c.name, queued=len(c.queue)) for c in manager.controllers],
        inventoryModified=inventory.last_modified if inventory else None,
        inventoryHosts=len(inventory.records) if inventory else 0,
    )


@router.get("/ready")
async def ready(request: Request, store=Depends(get_store), manager=Depends(get_manager)) -> JSONResponse:
    issues = []
    if not store.started:
        issues.append("object store not started")
    if not manager.running:
        issues.append("controllers not running")
    inventory = getattr(request.app.state, "inventory", None)
    if inventory is not None and inventory.last_modified is None:
        issues.append(f"inventory not loaded: {inventory.path}")

    if issues:
        return JSONResponse(status_code=503, content=ReadyResponse(ready=False, reason="; ".join(issues)).model_dump())
    return JSONResponse(status_code=200, content=ReadyResponse(ready=True).model_dump())
