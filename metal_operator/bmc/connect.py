"""Resolve a Host's BMC configuration into a connected BMC session."""

from __future__ import annotations

from enum import Enum

import httpx

from metal_operator.bmc.base import BMC
from metal_operator.bmc.redfish import RedfishBMC
from metal_operator.bmc.redfish_local import RedfishLocalBMC
from metal_operator.exceptions import ConfigurationError, NotFoundError, TransientError
from metal_operator.models.core import Secret
from metal_operator.models.host import Host
from metal_operator.models.meta import object_key
from metal_operator.store.base import ObjectStore


class BMCType(str, Enum):
    REDFISH = "Redfish"
    REDFISH_LOCAL = "RedfishLocal"


async def connect_bmc(
    host: Host,
    store: ObjectStore,
    *,
    basic_auth: bool = False,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BMC:
    """Open a BMC session for ``host``.

    Raises ConfigurationError for an unsupported BMC type or an incomplete
    credential secret; those do not go away by retrying.
    """
    try:
        bmc_type = BMCType(host.spec.bmc.type)
    except ValueError:
        raise ConfigurationError(
            f"BMC type {host.spec.bmc.type!r} is not supported",
            details={"supported": [t.value for t in BMCType]},
        ) from None

    if bmc_type is BMCType.REDFISH_LOCAL:
        return await RedfishLocalBMC.connect(
            host.spec.systemId,
            host.spec.bmc.address,
            timeout=timeout,
            transport=transport,
        )

    username, password = await resolve_credentials(host, store)
    return await RedfishBMC.connect(
        host.spec.systemId,
        host.spec.bmc.address,
        username,
        password,
        basic_auth=basic_auth,
        timeout=timeout,
        transport=transport,
    )


async def resolve_credentials(host: Host, store: ObjectStore) -> tuple[str, str]:
    """Username and password from the Host's BMC access secret."""
    ref = host.spec.bmc.secretRef
    if ref is None:
        raise ConfigurationError(f"Host {host.name} uses a {BMCType.REDFISH.value} BMC but has no secretRef")

    namespace = ref.namespace or host.namespace
    try:
        secret = await store.get(Secret, ref.name, namespace)
    except NotFoundError as exc:
        raise TransientError(
            f"Failed to get BMC access secret {object_key(namespace, ref.name)} for host {host.name}"
        ) from exc

    username = _credential(secret, "username")
    if not username:
        raise ConfigurationError(f"No username provided in BMC access secret {secret.key}")
    password = _credential(secret, "password")
    if password is None:
        raise ConfigurationError(f"No password provided in BMC access secret {secret.key}")
    return username, password


def _credential(secret: Secret, key: str) -> str | None:
    try:
        return secret.get_text(key)
    except ValueError as exc:
        # binascii.Error and UnicodeDecodeError are both ValueErrors
        raise ConfigurationError(f"BMC access secret {secret.key} has undecodable {key}") from exc
