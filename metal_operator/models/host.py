"""Host resource models."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field

from metal_operator.models.meta import ObjectReference, Resource, SecretReference

# Added to a Host while a Claim is bound to it, removed by the Claim on teardown.
CLAIM_FINALIZER = "metal-operator/claim"

MAC_PATTERN = r"^([0-9a-fA-F]{2}(:[0-9a-fA-F]{2}){5})?$"


class PowerState(str, Enum):
    ON = "On"
    OFF = "Off"


class Phase(str, Enum):
    BOUND = "Bound"
    UNBOUND = "Unbound"


class HostState(str, Enum):
    INITIAL = "Initial"
    AVAILABLE = "Available"
    TAINTED = "Tainted"
    RESERVED = "Reserved"
    MAINTENANCE = "Maintenance"


class BMCConfiguration(BaseModel):
    # Kept as a plain string so unknown backends reach the controller and are
    # reported on the Host instead of being rejected at write time.
    type: str
    address: str
    secretRef: SecretReference | None = None


class HostSpec(BaseModel):
    systemId: str
    systemUUID: str = ""
    power: PowerState | None = None
    claimRef: ObjectReference | None = None
    bmc: BMCConfiguration
    bootMACAddress: str = Field(default="", pattern=MAC_PATTERN)


class NetworkInterface(BaseModel):
    id: str
    macAddress: str = ""
    permanentMacAddress: str = ""


class Processor(BaseModel):
    id: str
    processorType: str = ""
    processorArchitecture: str = ""
    instructionSet: str = ""
    manufacturer: str = ""
    model: str = ""
    mhz: int = 0
    cores: int = 0
    threads: int = 0


class HostStatus(BaseModel):
    manufacturer: str = ""
    model: str = ""
    serialNumber: str = ""
    firmwareVersion: str = ""
    systemUUID: str = ""
    powerState: str = ""
    health: str = ""
    systemState: str = ""
    phase: Phase | None = None
    state: HostState | None = None
    networkInterfaces: list[NetworkInterface] = Field(default_factory=list)
    processors: list[Processor] = Field(default_factory=list)
    message: str = ""


class Host(Resource):
    kind: ClassVar[str] = "Host"

    spec: HostSpec
    status: HostStatus = Field(default_factory=HostStatus)

    @property
    def boot_key(self) -> str:
        """Stable identity used to name boot artifacts for this machine."""
        return self.spec.systemUUID or self.spec.systemId
