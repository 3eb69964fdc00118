"""Redfish BMC backend for remote, authenticated controllers."""

from __future__ import annotations

import logging

import httpx

from metal_operator.bmc.base import BMC, NetworkInterface, Processor, SystemInfo
from metal_operator.exceptions import BMCError

logger = logging.getLogger(__name__)

SYSTEMS_URI = "/redfish/v1/Systems"
SESSIONS_URI = "/redfish/v1/SessionService/Sessions"

PXE_BOOT_ONCE = {
    "Boot": {
        "BootSourceOverrideEnabled": "Once",
        "BootSourceOverrideMode": "UEFI",
        "BootSourceOverrideTarget": "Pxe",
    }
}


class RedfishBMC(BMC):
    """Redfish over HTTPS. Certificates are not verified: BMCs ship self-signed ones."""

    def __init__(self, system_id: str, client: httpx.AsyncClient, session_uri: str | None = None):
        self._system_id = system_id
        self._client = client
        self._session_uri = session_uri

    @classmethod
    async def connect(
        cls,
        system_id: str,
        address: str,
        username: str,
        password: str,
        *,
        basic_auth: bool = False,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> RedfishBMC:
        """Open a session (or validate basic auth credentials) against ``address``."""
        client = httpx.AsyncClient(
            base_url=address, verify=False, timeout=timeout, transport=transport
        )
        try:
            if basic_auth:
                client.auth = httpx.BasicAuth(username, password)
                await redfish_request(client, "GET", "/redfish/v1/")
                return cls(system_id, client)

            resp = await redfish_request(
                client,
                "POST",
                SESSIONS_URI,
                json={"UserName": username, "Password": password},
            )
            token = resp.headers.get("X-Auth-Token")
            if not token:
                raise BMCError(f"Redfish endpoint {address} returned no session token")
            client.headers["X-Auth-Token"] = token
            logger.debug("Opened Redfish session at %s", address)
            return cls(system_id, client, session_uri=resp.headers.get("Location"))
        except BaseException:
            await client.aclose()
            raise

    async def close(self) -> None:
        try:
            if self._session_uri:
                await redfish_request(self._client, "DELETE", self._session_uri)
        except BMCError as exc:
            logger.warning("Failed to log out of Redfish session %s: %s", self._session_uri, exc)
        finally:
            await self._client.aclose()

    async def power_on(self) -> None:
        await self._reset_system("On")

    async def power_off(self) -> None:
        await self._reset_system("GracefulShutdown")

    async def reset(self) -> None:
        await self._reset_system("ForceRestart")

    async def set_pxe_boot_once(self, system_id: str) -> None:
        system = await self._find_system(system_id)
        if system is None:
            raise BMCError(f"No system found for system ID {system_id}")
        await self._request("PATCH", system["@odata.id"], json=PXE_BOOT_ONCE)

    async def get_system_info(self) -> SystemInfo:
        system = await self._system()
        status = system.get("Status") or {}
        info = SystemInfo(
            system_uuid=system.get("UUID") or "",
            manufacturer=system.get("Manufacturer") or "",
            model=system.get("Model") or "",
            serial_number=system.get("SerialNumber") or "",
            firmware_version=system.get("BiosVersion") or "",
            health=status.get("Health") or "",
            state=status.get("State") or "",
            power_state=system.get("PowerState") or "",
        )

        nics: dict[str, NetworkInterface] = {}
        for member in await self._collection(system, "EthernetInterfaces"):
            nics[member["Id"]] = NetworkInterface(
                id=member["Id"],
                mac_address=member.get("MACAddress") or "",
                permanent_mac_address=member.get("PermanentMACAddress") or "",
            )
        info.network_interfaces = list(nics.values())

        processors: dict[str, Processor] = {}
        for member in await self._collection(system, "Processors"):
            processors[member["Id"]] = Processor(
                id=member["Id"],
                processor_type=member.get("ProcessorType") or "",
                processor_architecture=member.get("ProcessorArchitecture") or "",
                instruction_set=member.get("InstructionSet") or "",
                manufacturer=member.get("Manufacturer") or "",
                model=member.get("Model") or "",
                max_speed_mhz=member.get("MaxSpeedMHz") or 0,
                total_cores=member.get("TotalCores") or 0,
                total_threads=member.get("TotalThreads") or 0,
            )
        info.processors = list(processors.values())
        return info

    # -- Helpers ---------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        return await redfish_request(self._client, method, url, **kwargs)

    async def _get_json(self, url: str) -> dict:
        return (await self._request("GET", url)).json()

    async def _find_system(self, system_id: str) -> dict | None:
        systems = await self._get_json(SYSTEMS_URI)
        for member in systems.get("Members", []):
            system = await self._get_json(member["@odata.id"])
            if system.get("Id") == system_id:
                return system
        return None

    async def _system(self) -> dict:
        system = await self._find_system(self._system_id)
        if system is None:
            raise BMCError(f"No system found for system ID {self._system_id}")
        return system

    async def _collection(self, system: dict, name: str) -> list[dict]:
        link = (system.get(name) or {}).get("@odata.id")
        if not link:
            return []
        collection = await self._get_json(link)
        return [await self._get_json(m["@odata.id"]) for m in collection.get("Members", [])]

    async def _reset_system(self, reset_type: str) -> None:
        system = await self._system()
        action = (system.get("Actions") or {}).get("#ComputerSystem.Reset") or {}
        target = action.get("target") or f"{system['@odata.id']}/Actions/ComputerSystem.Reset"
        logger.debug("Resetting system %s (%s)", self._system_id, reset_type)
        await self._request("POST", target, json={"ResetType": reset_type})


async def redfish_request(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise BMCError(f"Redfish {method} {url} failed: {exc}") from exc
    if resp.status_code >= 400:
        raise BMCError(
            f"Redfish {method} {url} returned {resp.status_code}",
            details={"status": resp.status_code, "body": resp.text[:512]},
        )
    return resp
