"""Tests for the PXE and DHCP boot config reconcilers."""

from __future__ import annotations

import pytest

from metal_operator.controllers.boot import BootConfigReconciler
from metal_operator.controllers.claim import ClaimReconciler
from metal_operator.controllers.dhcp import DHCPReconciler
from metal_operator.controllers.pxe import PXEReconciler
from metal_operator.exceptions import ConfigurationError, NotFoundError
from metal_operator.models.boot import DHCP_FINALIZER, PXE_FINALIZER, BootState, DHCPConfig, PXEConfig
from metal_operator.models.claim import Claim
from metal_operator.models.core import ConfigMap, Secret
from metal_operator.models.host import Host, PowerState
from metal_operator.models.meta import LocalObjectReference

IGNITION = b'{"ignition": {"version": "3.4.0"}}'


@pytest.fixture
def claims(store):
    return ClaimReconciler(store)


@pytest.fixture
def pxe(store, tmp_settings):
    return PXEReconciler(store, tmp_settings)


@pytest.fixture
def dhcp(store, tmp_settings):
    return DHCPReconciler(store, tmp_settings)


@pytest.fixture
async def claimed(store, claims, create_host, create_claim):
    """h1 bound to default/c1, which references ignition secret ``ign``."""
    await create_host("h1", systemUUID="4c4c4544-0001", bootMACAddress="AA:BB:CC:DD:EE:01")
    await create_claim("c1", power=PowerState.ON, ignitionRef=LocalObjectReference(name="ign"))
    await claims.reconcile("default/c1")


# -- PXE ------------------------------------------------------------------------


async def test_pxe_waits_for_ignition_secret(store, pxe, claimed):
    assert await pxe.reconcile("default/c1") is None

    config = await store.get(PXEConfig, "c1", "default")
    assert config.has_finalizer(PXE_FINALIZER)
    assert config.status.state == BootState.CREATED
    assert await store.list(Secret, "metal-boot") == []


async def test_pxe_empty_ignition_fails(store, pxe, claimed, create_secret):
    await create_secret("ign")

    with pytest.raises(ConfigurationError):
        await pxe.reconcile("default/c1")

    config = await store.get(PXEConfig, "c1", "default")
    assert config.status.state == BootState.FAILED
    assert "no data" in config.status.message


async def test_pxe_publishes_ignition_and_becomes_ready(store, pxe, claims, claimed, create_secret):
    ignition = await create_secret("ign", config=IGNITION)

    await pxe.reconcile("default/c1")

    artifact = await store.get(Secret, "ipxe-4c4c4544-0001", "metal-boot")
    assert artifact.data == ignition.data
    assert artifact.get_bytes("config") == IGNITION

    config = await store.get(PXEConfig, "c1", "default")
    assert config.status.state == BootState.READY
    assert config.status.observedGeneration == config.metadata.generation
    assert config.status.artifact == "ipxe-4c4c4544-0001"
    assert config.ready

    # Readiness unblocks power on.
    await claims.reconcile("default/c1")
    assert (await store.get(Host, "h1")).spec.power == PowerState.ON


async def test_pxe_failed_recovers_when_secret_filled(store, pxe, claimed, create_secret):
    secret = await create_secret("ign")
    with pytest.raises(ConfigurationError):
        await pxe.reconcile("default/c1")

    filled = secret.model_copy(deep=True)
    filled.data = Secret.encode({"config": IGNITION})
    await store.patch(filled)
    await pxe.reconcile("default/c1")

    config = await store.get(PXEConfig, "c1", "default")
    assert config.status.state == BootState.READY
    assert config.status.message == ""


async def test_pxe_second_reconcile_writes_nothing(store, pxe, claimed, create_secret):
    await create_secret("ign", config=IGNITION)
    await pxe.reconcile("default/c1")
    before = (await store.get(PXEConfig, "c1", "default")).metadata.resourceVersion
    artifact_before = (await store.get(Secret, "ipxe-4c4c4544-0001", "metal-boot")).metadata.resourceVersion

    await pxe.reconcile("default/c1")

    assert (await store.get(PXEConfig, "c1", "default")).metadata.resourceVersion == before
    assert (await store.get(Secret, "ipxe-4c4c4544-0001", "metal-boot")).metadata.resourceVersion == artifact_before


async def test_pxe_without_ignition_does_nothing(store, pxe, claims, create_host, create_claim):
    await create_host("h1")
    await create_claim("c1")
    await claims.reconcile("default/c1")

    await pxe.reconcile("default/c1")

    config = await store.get(PXEConfig, "c1", "default")
    assert config.status.state == BootState.CREATED
    assert await store.list(Secret, "metal-boot") == []


async def test_pxe_renamed_artifact_replaces_old_one(store, pxe, claims, claimed, create_secret):
    await create_secret("ign", config=IGNITION)
    await pxe.reconcile("default/c1")

    host = await store.get(Host, "h1")
    updated = host.model_copy(deep=True)
    updated.spec.systemUUID = "4c4c4544-0002"
    await store.patch(updated)
    await claims.reconcile("default/c1")

    config = await store.get(PXEConfig, "c1", "default")
    assert not config.ready

    await pxe.reconcile("default/c1")

    assert [s.name for s in await store.list(Secret, "metal-boot")] == ["ipxe-4c4c4544-0002"]
    config = await store.get(PXEConfig, "c1", "default")
    assert config.ready
    assert config.status.artifact == "ipxe-4c4c4544-0002"


async def test_pxe_deletion_removes_artifact_then_finalizer(store, pxe, claimed, create_secret):
    await create_secret("ign", config=IGNITION)
    await pxe.reconcile("default/c1")

    await store.delete(PXEConfig, "c1", "default")
    assert (await store.get(PXEConfig, "c1", "default")).being_deleted

    await pxe.reconcile("default/c1")

    with pytest.raises(NotFoundError):
        await store.get(Secret, "ipxe-4c4c4544-0001", "metal-boot")
    with pytest.raises(NotFoundError):
        await store.get(PXEConfig, "c1", "default")


async def test_secret_events_map_to_referencing_pxe_configs(store, pxe, claimed, create_secret):
    ignition = await create_secret("ign", config=IGNITION)
    unrelated = await create_secret("other", config=IGNITION)

    assert await pxe.configs_for_secret(ignition) == ["default/c1"]
    assert await pxe.configs_for_secret(unrelated) == []


# -- DHCP -----------------------------------------------------------------------


async def test_dhcp_publishes_host_record(store, dhcp, claimed):
    await dhcp.reconcile("default/c1")

    record = await store.get(ConfigMap, "dhcp-h1", "metal-boot")
    assert record.data == {"dnsmasq.conf": "dhcp-host=aa:bb:cc:dd:ee:01,set:h1,h1\n"}

    config = await store.get(DHCPConfig, "c1", "default")
    assert config.has_finalizer(DHCP_FINALIZER)
    assert config.ready
    assert config.status.artifact == "dhcp-h1"


async def test_dhcp_without_boot_mac_does_nothing(store, dhcp, claims, create_host, create_claim):
    await create_host("h1")
    await create_claim("c1")
    await claims.reconcile("default/c1")

    await dhcp.reconcile("default/c1")

    assert (await store.get(DHCPConfig, "c1", "default")).status.state == BootState.CREATED
    assert await store.list(ConfigMap, "metal-boot") == []


async def test_dhcp_deletion_removes_record(store, dhcp, claimed):
    await dhcp.reconcile("default/c1")
    await store.delete(DHCPConfig, "c1", "default")

    await dhcp.reconcile("default/c1")

    assert await store.list(ConfigMap, "metal-boot") == []
    with pytest.raises(NotFoundError):
        await store.get(DHCPConfig, "c1", "default")


async def test_host_events_map_to_dhcp_configs(store, dhcp, claimed):
    host = await store.get(Host, "h1")
    assert await dhcp.configs_for_host(host) == ["default/c1"]


async def test_claim_release_cleans_up_boot_artifacts(store, claims, pxe, dhcp, claimed, create_secret):
    """Deleting the claim deletes its configs, whose finalizers remove the artifacts."""
    await create_secret("ign", config=IGNITION)
    await pxe.reconcile("default/c1")
    await dhcp.reconcile("default/c1")

    await store.delete(Claim, "c1", "default")
    await claims.reconcile("default/c1")
    await pxe.reconcile("default/c1")
    await dhcp.reconcile("default/c1")

    assert await store.list(Secret, "metal-boot") == []
    assert await store.list(ConfigMap, "metal-boot") == []
    assert await store.list(Claim) == []


def test_boot_reconciler_requires_artifact_hooks(store, tmp_settings):
    class Incomplete(BootConfigReconciler):
        resource = PXEConfig

        async def build_artifact(self, config):
            return None

    with pytest.raises(TypeError, match="default_artifact_name"):
        Incomplete(store, tmp_settings)
