"""Shared lifecycle of boot configs: finalizer, artifact publishing, readiness."""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import ClassVar

from metal_operator.config import Settings
from metal_operator.controllers.manager import Reconciler, Result
from metal_operator.exceptions import NotFoundError, PermanentError, TransientError
from metal_operator.models.boot import BootState
from metal_operator.models.meta import Resource, split_key
from metal_operator.store.base import ObjectStore

logger = logging.getLogger(__name__)


class BootConfigReconciler(Reconciler):
    """Materializes one artifact per boot config in the boot namespace.

    Subclasses implement :meth:`build_artifact`; returning None means there is
    nothing to publish yet and the config is left untouched.
    """

    finalizer: ClassVar[str]
    artifact_kind: ClassVar[type[Resource]]
    field_manager: ClassVar[str]

    def __init__(self, store: ObjectStore, settings: Settings):
        self._store = store
        self._namespace = settings.boot_namespace

    @abstractmethod
    async def build_artifact(self, config) -> Resource | None:
        """The artifact to publish for ``config``, or None if its inputs are not there yet."""

    @abstractmethod
    def default_artifact_name(self, config) -> str:
        """Artifact name used when the config does not pin one in status."""

    async def reconcile(self, key: str) -> Result | None:
        namespace, name = split_key(key)
        try:
            config = await self._store.get(self.resource, name, namespace)
        except NotFoundError:
            return None

        if config.being_deleted:
            if config.has_finalizer(self.finalizer):
                await self._delete(config)
            return None

        config, _ = await self._store.ensure_finalizer(config, self.finalizer)
        try:
            artifact = await self.build_artifact(config)
        except PermanentError as exc:
            await self._set_state(config, BootState.FAILED, message=exc.message)
            raise
        if artifact is None:
            return None
        await self._publish(config, artifact)
        return None

    async def _publish(self, config, artifact: Resource) -> None:
        artifact = await self._store.apply(artifact, self.field_manager, force=True)

        previous = config.status.artifact
        if previous and previous != artifact.name:
            logger.info("%s %s: removing stale artifact %s", config.kind, config.key, previous)
            await self._delete_artifact(previous)

        if config.ready and previous == artifact.name:
            return

        config = await self._set_state(config, BootState.APPLIED, artifact=artifact.name)
        try:
            await self._store.get(self.artifact_kind, artifact.name, self._namespace)
        except NotFoundError as exc:
            raise TransientError(
                f"{self.artifact_kind.kind} {artifact.key} not readable after apply"
            ) from exc
        await self._set_state(config, BootState.READY, artifact=artifact.name)
        logger.info("%s %s is ready (artifact %s)", config.kind, config.key, artifact.key)

    async def _set_state(self, config, state: BootState, *, artifact: str | None = None, message: str = ""):
        updated = config.model_copy(deep=True)
        updated.status.state = state
        updated.status.observedGeneration = config.metadata.generation
        updated.status.message = message
        if artifact is not None:
            updated.status.artifact = artifact
        return await self._store.patch_status(updated)

    async def _delete(self, config) -> None:
        name = config.status.artifact or self.default_artifact_name(config)
        await self._delete_artifact(name)
        await self._store.ensure_no_finalizer(config, self.finalizer)
        logger.info("%s %s: removed artifact %s", config.kind, config.key, name)

    async def _delete_artifact(self, name: str) -> None:
        try:
            await self._store.delete(self.artifact_kind, name, self._namespace)
        except NotFoundError:
            pass
