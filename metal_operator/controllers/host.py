"""Host reconciler: observed hardware facts, power and coarse lifecycle state."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import ClassVar

from metal_operator.bmc.base import BMC, SystemInfo
from metal_operator.bmc.connect import connect_bmc
from metal_operator.config import Settings
from metal_operator.controllers.manager import Mapper, Reconciler, Result
from metal_operator.exceptions import BMCError, NotFoundError, PermanentError
from metal_operator.models.core import Secret
from metal_operator.models.host import (
    Host,
    HostState,
    NetworkInterface,
    Phase,
    PowerState,
    Processor,
)
from metal_operator.models.meta import Resource, split_key
from metal_operator.store.base import ObjectStore

logger = logging.getLogger(__name__)

BMCFactory = Callable[..., Awaitable[BMC]]
ReadinessCheck = Callable[[Host], bool]

# Observed power states as reported by Redfish.
OBSERVED_ON = "On"
OBSERVED_OFF = "Off"

# States in which an unclaimed host is kept powered off.
_UNPROVISIONED = (None, HostState.INITIAL, HostState.TAINTED)


def power_reported(host: Host) -> bool:
    """Default readiness: the BMC has reported a power state for the host."""
    return bool(host.status.powerState)


def merge_by_id(existing: list, observed: list) -> list:
    """Update entries in place by ``id``, append unknown ones, never drop any."""
    merged = list(existing)
    index = {item.id: i for i, item in enumerate(merged)}
    for item in observed:
        if item.id in index:
            merged[index[item.id]] = item
        else:
            index[item.id] = len(merged)
            merged.append(item)
    return merged


class HostReconciler(Reconciler):
    resource: ClassVar[type[Host]] = Host

    def __init__(
        self,
        store: ObjectStore,
        settings: Settings,
        bmc_factory: BMCFactory = connect_bmc,
        readiness_check: ReadinessCheck = power_reported,
    ):
        self._store = store
        self._settings = settings
        self._bmc_factory = bmc_factory
        self._is_ready = readiness_check

    def watches(self) -> list[tuple[type[Resource], Mapper]]:
        return [(Secret, self.hosts_for_secret)]

    async def hosts_for_secret(self, secret: Resource) -> list[str]:
        """Hosts whose BMC credentials come from ``secret``."""
        keys = []
        for host in await self._store.list(Host):
            ref = host.spec.bmc.secretRef
            if ref is not None and ref.name == secret.name and (ref.namespace or host.namespace) == secret.namespace:
                keys.append(host.key)
        return keys

    async def reconcile(self, key: str) -> Result | None:
        namespace, name = split_key(key)
        try:
            host = await self._store.get(Host, name, namespace)
        except NotFoundError:
            return None
        if host.being_deleted:
            # Nothing to tear down; the claim finalizer is released by the Claim.
            return None

        try:
            bmc = await self._bmc_factory(
                host,
                self._store,
                basic_auth=self._settings.bmc_basic_auth,
                timeout=self._settings.bmc_timeout_s,
            )
        except PermanentError as exc:
            await self._record_error(host, exc)
            raise

        async with bmc:
            try:
                info = await bmc.get_system_info()
            except BMCError as exc:
                raise BMCError(f"Failed to get system info for host {host.name}: {exc}") from exc
            host = await self._update_status_from_system_info(host, info)
            host = await self._ensure_desired_power(host)
            transitioning = await self._ensure_power_state(host, bmc)
        await self._ensure_state(host)
        if transitioning:
            return Result(requeue_after=self._settings.power_poll_s)
        return Result(requeue_after=self._settings.host_resync_s)

    async def _update_status_from_system_info(self, host: Host, info: SystemInfo) -> Host:
        updated = host.model_copy(deep=True)
        status = updated.status
        status.manufacturer = info.manufacturer
        status.model = info.model
        status.serialNumber = info.serial_number
        status.firmwareVersion = info.firmware_version
        status.systemUUID = info.system_uuid
        status.health = info.health
        status.systemState = info.state
        status.powerState = info.power_state
        status.message = ""

        logger.debug(
            "Host %s reports %d network interfaces, %d processors",
            host.name,
            len(info.network_interfaces),
            len(info.processors),
        )
        status.networkInterfaces = merge_by_id(
            status.networkInterfaces,
            [
                NetworkInterface(
                    id=nic.id,
                    macAddress=nic.mac_address,
                    permanentMacAddress=nic.permanent_mac_address,
                )
                for nic in info.network_interfaces
            ],
        )
        status.processors = merge_by_id(
            status.processors,
            [
                Processor(
                    id=cpu.id,
                    processorType=cpu.processor_type,
                    processorArchitecture=cpu.processor_architecture,
                    instructionSet=cpu.instruction_set,
                    manufacturer=cpu.manufacturer,
                    model=cpu.model,
                    mhz=cpu.max_speed_mhz,
                    cores=cpu.total_cores,
                    threads=cpu.total_threads,
                )
                for cpu in info.processors
            ],
        )
        return await self._store.patch_status(updated)

    async def _ensure_desired_power(self, host: Host) -> Host:
        if host.spec.claimRef is not None or host.status.state not in _UNPROVISIONED:
            return host
        if host.spec.power == PowerState.OFF:
            return host
        logger.info("Forcing power off for unclaimed host %s", host.name)
        updated = host.model_copy(deep=True)
        updated.spec.power = PowerState.OFF
        return await self._store.patch(updated)

    async def _ensure_power_state(self, host: Host, bmc: BMC) -> bool:
        """Issue the power action the host needs, if any. Returns True if one was issued."""
        try:
            if host.status.state in (None, HostState.INITIAL):
                await bmc.set_pxe_boot_once(host.spec.systemId)

            observed = host.status.powerState
            if host.spec.power == PowerState.ON and observed == OBSERVED_OFF:
                logger.info("Powering on host %s", host.name)
                await bmc.power_on()
                return True
            elif host.spec.power == PowerState.OFF and observed == OBSERVED_ON:
                logger.info("Powering off host %s", host.name)
                await bmc.power_off()
                return True
        except BMCError as exc:
            raise BMCError(f"Failed to ensure power state of host {host.name}: {exc}") from exc
        return False

    def _target_state(self, host: Host) -> HostState:
        state = host.status.state
        if state == HostState.MAINTENANCE:
            return state
        if state == HostState.AVAILABLE:
            return state
        if state == HostState.RESERVED:
            # claimRef was released without the claim tainting the host
            return HostState.TAINTED
        if state == HostState.TAINTED:
            return HostState.INITIAL
        if self._is_ready(host):
            return HostState.AVAILABLE
        return HostState.INITIAL

    async def _ensure_state(self, host: Host) -> Host:
        updated = host.model_copy(deep=True)
        if host.spec.claimRef is not None:
            updated.status.phase = Phase.BOUND
            updated.status.state = HostState.RESERVED
        else:
            updated.status.phase = Phase.UNBOUND
            updated.status.state = self._target_state(host)

        if updated.status != host.status:
            logger.info(
                "Host %s: state %s -> %s, phase %s",
                host.name,
                host.status.state.value if host.status.state else None,
                updated.status.state.value if updated.status.state else None,
                updated.status.phase.value,
            )
        return await self._store.patch_status(updated)

    async def _record_error(self, host: Host, exc: PermanentError) -> None:
        if host.status.message == exc.message:
            return
        updated = host.model_copy(deep=True)
        updated.status.message = exc.message
        await self._store.patch_status(updated)
