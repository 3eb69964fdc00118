"""Re-apply the host inventory whenever its file changes on disk."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from watchfiles import Change, awatch

from metal_operator.adapters.inventory import InventoryAdapter

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_DELAY_S = 0.2
_COOLDOWN_S = 5.0


class InventoryWatcher:
    """Background task feeding inventory file changes into :meth:`InventoryAdapter.sync`.

    Editors and config management usually replace the file by rename, so the
    parent directory is watched and events are narrowed to the inventory path.
    A reload that keeps failing puts the watcher in a short cooldown; Hosts
    already applied stay as they are.
    """

    def __init__(self, inventory: InventoryAdapter, debounce_ms: int = 500):
        self._inventory = inventory
        self._target = Path(inventory.path).resolve()
        self._debounce_ms = debounce_ms
        self._cooldown_until = 0.0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="inventory-watcher")
        logger.info("Inventory watcher started for %s (debounce=%dms)", self._target, self._debounce_ms)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Inventory watcher stopped")

    def _is_inventory_write(self, change: Change, path: str) -> bool:
        return change != Change.deleted and Path(path).resolve() == self._target

    async def _run(self) -> None:
        try:
            async for _changes in awatch(
                self._target.parent,
                watch_filter=self._is_inventory_write,
                debounce=self._debounce_ms,
                step=100,
            ):
                await self.reload()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Inventory watcher crashed")

    async def reload(self) -> bool:
        """Load and apply the inventory. Returns False if skipped or failed."""
        if time.monotonic() < self._cooldown_until:
            logger.debug("Inventory change ignored, cooling down")
            return False

        for attempt in range(1, _MAX_RETRIES + 1):
            try:
                if not self._inventory.load():
                    raise OSError(f"could not read {self._target}")
                applied = await self._inventory.sync()
            except Exception as exc:
                logger.warning("Inventory reload %d/%d failed: %s", attempt, _MAX_RETRIES, exc)
                if attempt < _MAX_RETRIES:
                    await asyncio.sleep(_RETRY_DELAY_S)
                continue
            logger.info("Inventory changed, %d hosts applied", applied)
            return True

        self._cooldown_until = time.monotonic() + _COOLDOWN_S
        logger.warning("Giving up on inventory reload, next attempt in %.0fs at the earliest", _COOLDOWN_S)
        return False
