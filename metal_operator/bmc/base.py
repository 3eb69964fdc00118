"""BMC capability interface and the facts it reports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(slots=True)
class NetworkInterface:
    id: str
    mac_address: str = ""
    permanent_mac_address: str = ""


@dataclass(slots=True)
class Processor:
    id: str
    processor_type: str = ""
    processor_architecture: str = ""
    instruction_set: str = ""
    manufacturer: str = ""
    model: str = ""
    max_speed_mhz: int = 0
    total_cores: int = 0
    total_threads: int = 0


@dataclass(slots=True)
class SystemInfo:
    """Hardware facts for one system as reported by its BMC."""

    system_uuid: str = ""
    manufacturer: str = ""
    model: str = ""
    serial_number: str = ""
    firmware_version: str = ""
    health: str = ""
    state: str = ""
    power_state: str = ""
    network_interfaces: list[NetworkInterface] = field(default_factory=list)
    processors: list[Processor] = field(default_factory=list)


class BMC(ABC):
    """Power control and inventory for one system behind a BMC."""

    @abstractmethod
    async def power_on(self) -> None:
        """Power on the system."""

    @abstractmethod
    async def power_off(self) -> None:
        """Power off the system."""

    @abstractmethod
    async def reset(self) -> None:
        """Reset the system."""

    @abstractmethod
    async def set_pxe_boot_once(self, system_id: str) -> None:
        """Boot ``system_id`` from the network on its next boot only."""

    @abstractmethod
    async def get_system_info(self) -> SystemInfo:
        """Fetch hardware facts and power state."""

    @abstractmethod
    async def close(self) -> None:
        """End the BMC session."""

    async def __aenter__(self) -> BMC:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
