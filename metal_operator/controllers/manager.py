"""Run reconcilers over work queues fed by store watches."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import ClassVar

from metal_operator.config import Settings
from metal_operator.controllers.workqueue import WorkQueue
from metal_operator.exceptions import ConflictError, PermanentError, TransientError
from metal_operator.models.meta import Resource
from metal_operator.store.base import ObjectStore, Watch

logger = logging.getLogger(__name__)

# Maps a watched object to the keys of the objects to reconcile.
Mapper = Callable[[Resource], Awaitable[list[str]]]


@dataclass
class Result:
    requeue: bool = False
    requeue_after: float | None = None


async def enqueue_self(obj: Resource) -> list[str]:
    return [obj.key]


class Reconciler(ABC):
    """A single-pass, idempotent function of persisted state."""

    resource: ClassVar[type[Resource]]

    @abstractmethod
    async def reconcile(self, key: str) -> Result | None:
        """Drive the object at ``key`` one step toward its desired state."""

    def watches(self) -> list[tuple[type[Resource], Mapper]]:
        """Secondary watches and how their events map to keys of ``resource``."""
        return []


class Controller:
    """Worker pool for one reconciler."""

    def __init__(self, name: str, reconciler: Reconciler, store: ObjectStore, settings: Settings):
        self.name = name
        self.reconciler = reconciler
        self._store = store
        self._workers = settings.max_concurrent_reconciles
        self._timeout = settings.reconcile_timeout_s
        self.queue = WorkQueue(name, settings.backoff_base_s, settings.backoff_max_s)
        self._watches: list[Watch] = []
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        sources = [(self.reconciler.resource, enqueue_self), *self.reconciler.watches()]
        # Subscribe before listing so nothing written in between is missed.
        for cls, mapper in sources:
            watch = self._store.watch(cls)
            self._watches.append(watch)
            self._tasks.append(
                asyncio.create_task(self._pump(watch, mapper), name=f"{self.name}-watch-{cls.kind}")
            )
        for obj in await self._store.list(self.reconciler.resource):
            self.queue.add(obj.key)

        for i in range(self._workers):
            self._tasks.append(asyncio.create_task(self._worker(), name=f"{self.name}-worker-{i}"))
        logger.info("Controller %s started (%d workers)", self.name, self._workers)

    async def stop(self) -> None:
        self.queue.shutdown()
        for watch in self._watches:
            watch.close()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._watches.clear()
        logger.info("Controller %s stopped", self.name)

    async def _pump(self, watch: Watch, mapper: Mapper) -> None:
        async for event in watch:
            try:
                keys = await mapper(event.object)
            except Exception:
                logger.exception(
                    "%s: failed to map %s event for %s %s",
                    self.name,
                    event.type,
                    event.object.kind,
                    event.object.key,
                )
                continue
            for key in keys:
                self.queue.add(key)

    async def _worker(self) -> None:
        while True:
            key = await self.queue.get()
            if key is None:
                return
            try:
                await self.process(key)
            finally:
                self.queue.done(key)

    async def process(self, key: str) -> None:
        """Reconcile ``key`` once and schedule its next attempt from the outcome."""
        try:
            result = await asyncio.wait_for(self.reconciler.reconcile(key), self._timeout)
        except ConflictError as exc:
            logger.debug("%s: conflict reconciling %s, requeueing: %s", self.name, key, exc)
            self.queue.add(key)
        except PermanentError as exc:
            logger.error("%s: giving up on %s: %s", self.name, key, exc)
            self.queue.forget(key)
        except TransientError as exc:
            logger.warning("%s: reconcile of %s failed, retrying: %s", self.name, key, exc)
            self.queue.add_rate_limited(key)
        except asyncio.TimeoutError:
            logger.warning("%s: reconcile of %s timed out after %.0fs", self.name, key, self._timeout)
            self.queue.add_rate_limited(key)
        except Exception:
            logger.exception("%s: unexpected error reconciling %s", self.name, key)
            self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
            if result is None:
                return
            if result.requeue_after:
                self.queue.add_after(key, result.requeue_after)
            elif result.requeue:
                self.queue.add(key)


class ControllerManager:
    """Starts and stops a set of controllers sharing one store."""

    def __init__(self, store: ObjectStore, settings: Settings):
        self._store = store
        self._settings = settings
        self._controllers: list[Controller] = []
        self._running = False

    @property
    def controllers(self) -> list[Controller]:
        return list(self._controllers)

    @property
    def running(self) -> bool:
        return self._running

    def add(self, name: str, reconciler: Reconciler) -> Controller:
        controller = Controller(name, reconciler, self._store, self._settings)
        self._controllers.append(controller)
        return controller

    async def start(self) -> None:
        for controller in self._controllers:
            await controller.start()
        self._running = True

    async def stop(self) -> None:
        self._running = False
        for controller in reversed(self._controllers):
            await controller.stop()
