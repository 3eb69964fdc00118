"""Health and readiness response models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class ControllerHealth(BaseModel):
    name: str
    queued: int


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    version: str
    uptime: int
    controllers: list[ControllerHealth]
    # mtime of the inventory file, None when no inventory is configured
    inventoryModified: datetime | None = None
    inventoryHosts: int = 0


class ReadyResponse(BaseModel):
    ready: bool
    reason: str | None = None
