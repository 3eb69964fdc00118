"""Operator configuration via pydantic-settings."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Metal operator configuration.

    Loaded from environment variables with the ``METAL_`` prefix.
    """

    model_config = {"env_prefix": "METAL_"}

    # -- Store ---------------------------------------------------------------
    store_db_path: Path = Path("/var/lib/metal-operator/store.db")

    # -- Boot services -------------------------------------------------------
    boot_namespace: str = "metal-boot"

    # -- BMC -----------------------------------------------------------------
    bmc_basic_auth: bool = False
    bmc_timeout_s: float = 30.0

    # -- Controllers ---------------------------------------------------------
    reconcile_timeout_s: float = 120.0
    max_concurrent_reconciles: int = 4
    backoff_base_s: float = 0.5
    backoff_max_s: float = 300.0
    host_resync_s: float = 300.0
    # Re-read the BMC this soon after a power transition was issued
    power_poll_s: float = 10.0

    # -- Inventory -----------------------------------------------------------
    inventory_path: Path | None = None
    inventory_namespace: str = ""
    watcher_debounce_ms: int = 500

    # -- Misc ----------------------------------------------------------------
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("max_concurrent_reconciles")
    @classmethod
    def _at_least_one_worker(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent_reconciles must be >= 1")
        return v
