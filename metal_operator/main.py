"""FastAPI application factory with lifespan context manager."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as package_version

from fastapi import FastAPI

from metal_operator.config import Settings
from metal_operator.exceptions import register_exception_handlers

logger = logging.getLogger(__name__)

_start_time: float = 0.0


def get_uptime() -> int:
    """Return process uptime in seconds."""
    return int(time.monotonic() - _start_time)


def build_manager(store, settings: Settings):
    """Controller manager with the Host, Claim, PXE and DHCP controllers."""
    from metal_operator.controllers.claim import ClaimReconciler
    from metal_operator.controllers.dhcp import DHCPReconciler
    from metal_operator.controllers.host import HostReconciler
    from metal_operator.controllers.manager import ControllerManager
    from metal_operator.controllers.pxe import PXEReconciler

    manager = ControllerManager(store, settings)
    manager.add("host", HostReconciler(store, settings))
    manager.add("claim", ClaimReconciler(store))
    manager.add("pxe", PXEReconciler(store, settings))
    manager.add("dhcp", DHCPReconciler(store, settings))
    return manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: start/stop store, inventory watcher, controllers."""
    global _start_time
    _start_time = time.monotonic()

    settings: Settings = app.state.settings

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    from metal_operator.store.sqlite import SqliteObjectStore

    store = SqliteObjectStore(settings.store_db_path)
    await store.start()
    app.state.store = store

    # --- Inventory (optional) ---
    watcher = None
    if settings.inventory_path is not None:
        from metal_operator.adapters.inventory import InventoryAdapter

        inventory = InventoryAdapter(settings.inventory_path, store, settings.inventory_namespace)
        if inventory.load():
            await inventory.sync()
        app.state.inventory = inventory

        try:
            from metal_operator.services.watcher import InventoryWatcher

            watcher = InventoryWatcher(inventory, debounce_ms=settings.watcher_debounce_ms)
            await watcher.start()
        except Exception:
            logger.warning("Inventory watcher could not start (non-fatal)", exc_info=True)
            watcher = None

    manager = build_manager(store, settings)
    app.state.manager = manager
    await manager.start()

    logger.info("metal-operator started (boot namespace %s)", settings.boot_namespace)

    yield

    # --- Shutdown ---
    if watcher:
        await watcher.stop()
    await manager.stop()
    await store.stop()
    logger.info("metal-operator stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    try:
        version = package_version("metal-operator")
    except PackageNotFoundError:
        version = "0.0.0"

    from metal_operator.models.api import ErrorResponse

    app = FastAPI(
        title="Metal Operator",
        version=version,
        summary="Bare-metal host lifecycle: inventory, claims, power and boot configuration",
        lifespan=lifespan,
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            409: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
        },
    )

    app.state.settings = settings
    app.state.version = version

    register_exception_handlers(app)

    from metal_operator.routers import boot, claims, health, hosts

    app.include_router(health.router)
    app.include_router(hosts.router)
    app.include_router(claims.router)
    app.include_router(boot.router)

    return app


# Default app instance for uvicorn
app = create_app()
