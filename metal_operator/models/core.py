"""Generic data holders: Secret and ConfigMap."""

from __future__ import annotations

import base64
from typing import ClassVar

from pydantic import Field

from metal_operator.models.meta import Resource


class Secret(Resource):
    """Opaque key/value data. Values are stored base64 encoded."""

    kind: ClassVar[str] = "Secret"

    type: str = "Opaque"
    data: dict[str, str] = Field(default_factory=dict)

    def get_bytes(self, key: str) -> bytes | None:
        value = self.data.get(key)
        if value is None:
            return None
        return base64.b64decode(value, validate=True)

    def get_text(self, key: str) -> str | None:
        raw = self.get_bytes(key)
        return raw.decode("utf-8") if raw is not None else None

    @staticmethod
    def encode(values: dict[str, bytes | str]) -> dict[str, str]:
        """Encode raw values into the stored ``data`` form."""
        encoded = {}
        for key, value in values.items():
            if isinstance(value, str):
                value = value.encode("utf-8")
            encoded[key] = base64.b64encode(value).decode("ascii")
        return encoded


class ConfigMap(Resource):
    kind: ClassVar[str] = "ConfigMap"

    data: dict[str, str] = Field(default_factory=dict)
