"""PXE and DHCP boot configuration models.

Both are owned by a Claim and only ever written by the Claim controller
(spec) and their own controllers (status).
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field

from metal_operator.models.meta import LocalObjectReference, Resource

PXE_FINALIZER = "metal-operator/pxe"
DHCP_FINALIZER = "metal-operator/dhcp"


class BootState(str, Enum):
    CREATED = "Created"
    APPLIED = "Applied"
    READY = "Ready"
    FAILED = "Failed"


class BootStatus(BaseModel):
    state: BootState | None = None
    observedGeneration: int = 0
    artifact: str = ""
    message: str = ""


class PXEConfigSpec(BaseModel):
    systemUUID: str
    claimRef: LocalObjectReference
    hostRef: LocalObjectReference
    ignitionRef: LocalObjectReference | None = None
    image: str = ""


class PXEConfig(Resource):
    kind: ClassVar[str] = "PXEConfig"

    spec: PXEConfigSpec
    status: BootStatus = Field(default_factory=BootStatus)

    @property
    def ready(self) -> bool:
        """Ready for the inputs currently in spec, not an older generation."""
        return (
            self.status.state == BootState.READY
            and self.status.observedGeneration == self.metadata.generation
        )


class DHCPConfigSpec(BaseModel):
    hostRef: LocalObjectReference


class DHCPConfig(Resource):
    kind: ClassVar[str] = "DHCPConfig"

    spec: DHCPConfigSpec
    status: BootStatus = Field(default_factory=BootStatus)

    @property
    def ready(self) -> bool:
        return (
            self.status.state == BootState.READY
            and self.status.observedGeneration == self.metadata.generation
        )
