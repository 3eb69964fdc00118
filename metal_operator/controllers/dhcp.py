"""DHCP config reconciler: publishes a dnsmasq record for the claimed host."""

from __future__ import annotations

import logging
from typing import ClassVar

from metal_operator.adapters.dhcp_export import RECORD_KEY, artifact_name, render_host_record
from metal_operator.controllers.boot import BootConfigReconciler
from metal_operator.controllers.manager import Mapper
from metal_operator.exceptions import NotFoundError
from metal_operator.models.boot import DHCP_FINALIZER, DHCPConfig
from metal_operator.models.core import ConfigMap
from metal_operator.models.host import Host
from metal_operator.models.meta import ObjectMeta, Resource

logger = logging.getLogger(__name__)


class DHCPReconciler(BootConfigReconciler):
    resource: ClassVar[type[DHCPConfig]] = DHCPConfig
    finalizer = DHCP_FINALIZER
    artifact_kind = ConfigMap
    field_manager = "dhcp-controller"

    def watches(self) -> list[tuple[type[Resource], Mapper]]:
        return [(Host, self.configs_for_host)]

    async def configs_for_host(self, host: Resource) -> list[str]:
        return [
            config.key
            for config in await self._store.list(DHCPConfig)
            if config.spec.hostRef.name == host.name
        ]

    def default_artifact_name(self, config: DHCPConfig) -> str:
        return artifact_name(config.spec.hostRef.name)

    async def build_artifact(self, config: DHCPConfig) -> ConfigMap | None:
        try:
            host = await self._store.get(Host, config.spec.hostRef.name)
        except NotFoundError:
            logger.debug("DHCP config %s: host %s not found yet", config.key, config.spec.hostRef.name)
            return None
        if not host.spec.bootMACAddress:
            return None

        return ConfigMap(
            metadata=ObjectMeta(
                name=artifact_name(host.name),
                namespace=self._namespace,
                labels={"metal-operator/dhcp": config.key.replace("/", ".")},
            ),
            data={RECORD_KEY: render_host_record(host)},
        )
