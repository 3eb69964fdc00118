"""Object store interface consumed by the controllers.

The store is the only place coordination state lives. Every write is checked
against the ``resourceVersion`` the caller read, except declarative apply which
resolves concurrent writers per field.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TypeVar

from metal_operator.models.boot import DHCPConfig, PXEConfig
from metal_operator.models.claim import Claim
from metal_operator.models.core import ConfigMap, Secret
from metal_operator.models.host import Host
from metal_operator.models.meta import Resource

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Resource)

KINDS: dict[str, type[Resource]] = {
    cls.kind: cls for cls in (Host, Claim, PXEConfig, DHCPConfig, Secret, ConfigMap)
}

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    type: str
    object: Resource


class Watch:
    """Push stream of events for one kind. Registered on construction."""

    def __init__(self, kind: str, registry: dict[str, set[Watch]]):
        self.kind = kind
        self._registry = registry
        self._queue: asyncio.Queue[WatchEvent | None] = asyncio.Queue()
        self._closed = False
        registry.setdefault(kind, set()).add(self)

    def push(self, event: WatchEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._registry.get(self.kind, set()).discard(self)
        self._queue.put_nowait(None)

    def __aiter__(self) -> Watch:
        return self

    async def __anext__(self) -> WatchEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ObjectStore(ABC):
    """Declarative object store."""

    @abstractmethod
    async def get(self, cls: type[T], name: str, namespace: str = "") -> T:
        """Return the object or raise NotFoundError."""

    @abstractmethod
    async def list(self, cls: type[T], namespace: str | None = None) -> list[T]:
        """All objects of a kind, optionally restricted to one namespace."""

    @abstractmethod
    def watch(self, cls: type[Resource]) -> Watch:
        """Subscribe to ADDED/MODIFIED/DELETED events for a kind."""

    @abstractmethod
    async def create(self, obj: T) -> T:
        """Insert a new object. Raises AlreadyExistsError."""

    @abstractmethod
    async def patch(self, obj: T) -> T:
        """Write metadata and spec; fails with ConflictError on a stale version."""

    @abstractmethod
    async def patch_status(self, obj: T) -> T:
        """Write status only; fails with ConflictError on a stale version."""

    @abstractmethod
    async def apply(self, obj: T, field_manager: str, force: bool = False) -> T:
        """Upsert the fields explicitly set on ``obj``, owned by ``field_manager``."""

    @abstractmethod
    async def delete(self, cls: type[Resource], name: str, namespace: str = "") -> None:
        """Request deletion. Objects with finalizers are only marked."""

    # -- Finalizer helpers -----------------------------------------------------

    async def ensure_finalizer(self, obj: T, finalizer: str) -> tuple[T, bool]:
        """Add ``finalizer`` if missing. Returns the current object and whether it changed."""
        if obj.has_finalizer(finalizer):
            return obj, False
        updated = obj.model_copy(deep=True)
        updated.metadata.finalizers.append(finalizer)
        logger.debug("Adding finalizer %s to %s %s", finalizer, obj.kind, obj.key)
        return await self.patch(updated), True

    async def ensure_no_finalizer(self, obj: T, finalizer: str) -> tuple[T, bool]:
        """Remove ``finalizer`` if present. The returned object may already be gone."""
        if not obj.has_finalizer(finalizer):
            return obj, False
        updated = obj.model_copy(deep=True)
        updated.metadata.finalizers = [f for f in obj.metadata.finalizers if f != finalizer]
        logger.debug("Removing finalizer %s from %s %s", finalizer, obj.kind, obj.key)
        return await self.patch(updated), True
