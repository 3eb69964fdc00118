"""PXE config reconciler: copies ignition content into the boot namespace."""

from __future__ import annotations

import logging
from typing import ClassVar

from metal_operator.controllers.boot import BootConfigReconciler
from metal_operator.controllers.manager import Mapper
from metal_operator.exceptions import ConfigurationError, NotFoundError
from metal_operator.models.boot import PXE_FINALIZER, PXEConfig
from metal_operator.models.core import Secret
from metal_operator.models.meta import ObjectMeta, Resource

logger = logging.getLogger(__name__)


def artifact_name(system_uuid: str) -> str:
    return f"ipxe-{system_uuid}"


class PXEReconciler(BootConfigReconciler):
    resource: ClassVar[type[PXEConfig]] = PXEConfig
    finalizer = PXE_FINALIZER
    artifact_kind = Secret
    field_manager = "pxe-controller"

    def watches(self) -> list[tuple[type[Resource], Mapper]]:
        return [(Secret, self.configs_for_secret)]

    async def configs_for_secret(self, secret: Resource) -> list[str]:
        """PXE configs in the secret's namespace that reference it for ignition."""
        return [
            config.key
            for config in await self._store.list(PXEConfig, secret.namespace)
            if config.spec.ignitionRef is not None and config.spec.ignitionRef.name == secret.name
        ]

    def default_artifact_name(self, config: PXEConfig) -> str:
        return artifact_name(config.spec.systemUUID)

    async def build_artifact(self, config: PXEConfig) -> Secret | None:
        ref = config.spec.ignitionRef
        if ref is None:
            return None

        try:
            ignition = await self._store.get(Secret, ref.name, config.namespace)
        except NotFoundError:
            logger.debug("PXE config %s: ignition secret %s not found yet", config.key, ref.name)
            return None
        if not ignition.data:
            raise ConfigurationError(f"Ignition secret {ignition.key} has no data")

        return Secret(
            metadata=ObjectMeta(
                name=self.default_artifact_name(config),
                namespace=self._namespace,
                labels={"metal-operator/pxe": config.key.replace("/", ".")},
            ),
            data=dict(ignition.data),
        )
