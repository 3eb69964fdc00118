"""Redfish BMC backend for local, unauthenticated endpoints (emulators, lab rigs)."""

from __future__ import annotations

import logging

import httpx

from metal_operator.bmc.redfish import RedfishBMC, redfish_request

logger = logging.getLogger(__name__)


class RedfishLocalBMC(RedfishBMC):
    """Redfish without credentials. Power is driven by patching ``PowerState``."""

    @classmethod
    async def connect(
        cls,
        system_id: str,
        address: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> RedfishLocalBMC:
        client = httpx.AsyncClient(base_url=address, timeout=timeout, transport=transport)
        try:
            await redfish_request(client, "GET", "/redfish/v1/")
        except BaseException:
            await client.aclose()
            raise
        return cls(system_id, client)

    async def power_on(self) -> None:
        await self._set_power_state("On")

    async def power_off(self) -> None:
        await self._set_power_state("Off")

    async def _set_power_state(self, state: str) -> None:
        system = await self._system()
        logger.debug("Setting power state of system %s to %s", self._system_id, state)
        await self._request("PATCH", system["@odata.id"], json={"PowerState": state})
