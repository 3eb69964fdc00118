"""FastAPI dependency injection via Depends()."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from metal_operator.config import Settings
    from metal_operator.controllers.manager import ControllerManager
    from metal_operator.store.base import ObjectStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ObjectStore:
    return request.app.state.store


def get_manager(request: Request) -> ControllerManager:
    return request.app.state.manager
