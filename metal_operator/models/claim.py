"""Claim resource models."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, Field

from metal_operator.models.host import Phase, PowerState
from metal_operator.models.meta import LocalObjectReference, Resource


class ClaimSpec(BaseModel):
    power: PowerState = PowerState.OFF
    hostRef: LocalObjectReference
    ignitionRef: LocalObjectReference | None = None
    image: str = ""


class ClaimStatus(BaseModel):
    phase: Phase | None = None
    reason: str = ""
    message: str = ""


class Claim(Resource):
    kind: ClassVar[str] = "Claim"

    spec: ClaimSpec
    status: ClaimStatus = Field(default_factory=ClaimStatus)
