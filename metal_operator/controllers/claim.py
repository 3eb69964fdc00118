"""Claim reconciler: exclusive binding, owned boot configs, power sequencing, teardown."""

from __future__ import annotations

import logging
from typing import ClassVar

from metal_operator.controllers.manager import Mapper, Reconciler, Result
from metal_operator.exceptions import BindingConflictError, NotFoundError, PermanentError, TransientError
from metal_operator.models.boot import (
    BootState,
    DHCPConfig,
    DHCPConfigSpec,
    PXEConfig,
    PXEConfigSpec,
)
from metal_operator.models.claim import Claim
from metal_operator.models.host import CLAIM_FINALIZER, Host, HostState, Phase, PowerState
from metal_operator.models.meta import (
    LocalObjectReference,
    ObjectMeta,
    Resource,
    object_key,
    split_key,
)
from metal_operator.store.base import ObjectStore

logger = logging.getLogger(__name__)

FIELD_MANAGER = "claim-controller"


class ClaimReconciler(Reconciler):
    resource: ClassVar[type[Claim]] = Claim

    def __init__(self, store: ObjectStore):
        self._store = store

    def watches(self) -> list[tuple[type[Resource], Mapper]]:
        return [
            (PXEConfig, owner_claim),
            (DHCPConfig, owner_claim),
            (Host, self.claims_for_host),
        ]

    async def claims_for_host(self, host: Resource) -> list[str]:
        """Keys of every Claim referencing ``host`` by name."""
        return [
            claim.key
            for claim in await self._store.list(Claim)
            if claim.spec.hostRef.name == host.name
        ]

    async def reconcile(self, key: str) -> Result | None:
        namespace, name = split_key(key)
        try:
            claim = await self._store.get(Claim, name, namespace)
        except NotFoundError:
            return None

        if claim.being_deleted:
            if claim.has_finalizer(CLAIM_FINALIZER):
                await self._delete(claim)
            return None

        try:
            await self._reconcile(claim)
        except PermanentError as exc:
            await self._record_failure(claim, exc)
            raise
        return None

    # -- Binding ---------------------------------------------------------------

    async def _reconcile(self, claim: Claim) -> None:
        claim, _ = await self._store.ensure_finalizer(claim, CLAIM_FINALIZER)

        host_name = claim.spec.hostRef.name
        try:
            host = await self._store.get(Host, host_name)
        except NotFoundError as exc:
            raise TransientError(f"Failed to get host {host_name} for claim {claim.key}") from exc

        claim_ref = host.spec.claimRef
        if claim_ref is not None and claim_ref.uid != claim.metadata.uid:
            raise BindingConflictError(
                f"Host {host.name} is already claimed by {claim_ref.namespace}/{claim_ref.name}",
                details={"host": host.name, "claim": f"{claim_ref.namespace}/{claim_ref.name}"},
            )

        host, _ = await self._store.ensure_finalizer(host, CLAIM_FINALIZER)

        pxe = await self._apply_pxe_config(claim, host)
        await self._apply_dhcp_config(claim)

        if host.spec.claimRef is None:
            logger.info("Binding host %s to claim %s", host.name, claim.key)
            updated = host.model_copy(deep=True)
            updated.spec.claimRef = claim.object_reference()
            host = await self._store.patch(updated)

        await self._ensure_power(claim, host, pxe)

        if claim.status.phase != Phase.BOUND or claim.status.reason or claim.status.message:
            updated = claim.model_copy(deep=True)
            updated.status.phase = Phase.BOUND
            updated.status.reason = ""
            updated.status.message = ""
            await self._store.patch_status(updated)

    async def _apply_pxe_config(self, claim: Claim, host: Host) -> PXEConfig:
        desired = PXEConfig(
            metadata=ObjectMeta(
                name=claim.name,
                namespace=claim.namespace,
                ownerReferences=[claim.owner_reference()],
            ),
            spec=PXEConfigSpec(
                systemUUID=host.boot_key,
                claimRef=LocalObjectReference(name=claim.name),
                hostRef=LocalObjectReference(name=host.name),
                ignitionRef=claim.spec.ignitionRef,
                image=claim.spec.image,
            ),
        )
        pxe = await self._store.apply(desired, FIELD_MANAGER, force=True)
        return await self._mark_created(pxe)

    async def _apply_dhcp_config(self, claim: Claim) -> DHCPConfig:
        desired = DHCPConfig(
            metadata=ObjectMeta(
                name=claim.name,
                namespace=claim.namespace,
                ownerReferences=[claim.owner_reference()],
            ),
            spec=DHCPConfigSpec(hostRef=claim.spec.hostRef),
        )
        dhcp = await self._store.apply(desired, FIELD_MANAGER, force=True)
        return await self._mark_created(dhcp)

    async def _mark_created(self, config):
        if config.status.state is not None:
            return config
        updated = config.model_copy(deep=True)
        updated.status.state = BootState.CREATED
        return await self._store.patch_status(updated)

    async def _ensure_power(self, claim: Claim, host: Host, pxe: PXEConfig) -> None:
        desired = claim.spec.power
        if desired == PowerState.ON and claim.spec.ignitionRef is not None and not pxe.ready:
            logger.debug("Claim %s: holding power on until PXE config %s is ready", claim.key, pxe.key)
            return
        if host.spec.power == desired:
            return
        logger.info("Setting power of host %s to %s for claim %s", host.name, desired.value, claim.key)
        updated = host.model_copy(deep=True)
        updated.spec.power = desired
        await self._store.patch(updated)

    async def _record_failure(self, claim: Claim, exc: PermanentError) -> None:
        try:
            claim = await self._store.get(Claim, claim.name, claim.namespace)
        except NotFoundError:
            return
        updated = claim.model_copy(deep=True)
        if updated.status.phase != Phase.BOUND:
            updated.status.phase = Phase.UNBOUND
        updated.status.reason = exc.reason
        updated.status.message = exc.message
        await self._store.patch_status(updated)

    # -- Teardown --------------------------------------------------------------

    async def _delete(self, claim: Claim) -> None:
        logger.info("Releasing claim %s", claim.key)
        await self._release_host(claim)

        for cls in (PXEConfig, DHCPConfig):
            try:
                await self._store.delete(cls, claim.name, claim.namespace)
            except NotFoundError:
                pass

        await self._store.ensure_no_finalizer(claim, CLAIM_FINALIZER)
        logger.info("Released claim %s", claim.key)

    async def _release_host(self, claim: Claim) -> None:
        try:
            host = await self._store.get(Host, claim.spec.hostRef.name)
        except NotFoundError:
            logger.debug("Host %s of claim %s is gone", claim.spec.hostRef.name, claim.key)
            return

        claim_ref = host.spec.claimRef
        if claim_ref is not None and claim_ref.uid != claim.metadata.uid:
            # Bound to someone else; this claim never held it.
            return

        if claim_ref is not None:
            updated = host.model_copy(deep=True)
            updated.spec.claimRef = None
            host = await self._store.patch(updated)

            updated = host.model_copy(deep=True)
            updated.status.state = HostState.TAINTED
            updated.status.phase = Phase.UNBOUND
            host = await self._store.patch_status(updated)
            logger.info("Host %s released by claim %s and tainted", host.name, claim.key)

        await self._store.ensure_no_finalizer(host, CLAIM_FINALIZER)


async def owner_claim(obj: Resource) -> list[str]:
    """Map a boot config to the key of the Claim owning it."""
    return [
        object_key(obj.namespace, ref.name)
        for ref in obj.metadata.ownerReferences
        if ref.kind == Claim.kind and ref.controller
    ]
