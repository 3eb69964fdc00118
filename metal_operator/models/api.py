"""Request and response bodies of the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from metal_operator.models.claim import Claim, ClaimSpec
from metal_operator.models.host import Host

NAME_PATTERN = r"^[a-z0-9]([a-z0-9.-]*[a-z0-9])?$"


class HostList(BaseModel):
    items: list[Host]


class ClaimList(BaseModel):
    items: list[Claim]


class ClaimCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=253, pattern=NAME_PATTERN)
    labels: dict[str, str] = Field(default_factory=dict)
    spec: ClaimSpec


class ErrorResponse(BaseModel):
    """Body of every non-2xx response raised from an ``OperatorError``."""

    error: str
    message: str
    details: dict | None = None
