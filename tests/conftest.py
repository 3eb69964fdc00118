"""Shared test fixtures for the metal operator."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from metal_operator.bmc.base import BMC, NetworkInterface, Processor, SystemInfo
from metal_operator.config import Settings
from metal_operator.models.claim import Claim, ClaimSpec
from metal_operator.models.core import Secret
from metal_operator.models.host import BMCConfiguration, Host, HostSpec
from metal_operator.models.meta import LocalObjectReference, ObjectMeta, SecretReference
from metal_operator.store.sqlite import SqliteObjectStore


class FakeBMC(BMC):
    """In-memory BMC that records every call."""

    def __init__(self):
        self.info = SystemInfo(
            system_uuid="4c4c4544-0001",
            manufacturer="Contoso",
            model="X1",
            serial_number="SN-0001",
            firmware_version="2.1.0",
            health="OK",
            state="Enabled",
            power_state="Off",
            network_interfaces=[NetworkInterface(id="1", mac_address="aa:bb:cc:dd:ee:01")],
            processors=[Processor(id="CPU1", model="Xeon", total_cores=16, total_threads=32)],
        )
        self.calls: list[str] = []
        self.pxe_system_ids: list[str] = []
        self.error: Exception | None = None
        self.closed = False

    async def power_on(self) -> None:
        self.calls.append("power_on")
        self.info.power_state = "On"

    async def power_off(self) -> None:
        self.calls.append("power_off")
        self.info.power_state = "Off"

    async def reset(self) -> None:
        self.calls.append("reset")

    async def set_pxe_boot_once(self, system_id: str) -> None:
        self.calls.append("set_pxe_boot_once")
        self.pxe_system_ids.append(system_id)

    async def get_system_info(self) -> SystemInfo:
        self.calls.append("get_system_info")
        if self.error is not None:
            raise self.error
        return dataclasses.replace(
            self.info,
            network_interfaces=list(self.info.network_interfaces),
            processors=list(self.info.processors),
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    """Settings pointing to tmp_path, with short backoffs."""
    return Settings(
        store_db_path=tmp_path / "store.db",
        boot_namespace="metal-boot",
        reconcile_timeout_s=5.0,
        max_concurrent_reconciles=2,
        backoff_base_s=0.01,
        backoff_max_s=0.05,
        host_resync_s=3600.0,
        power_poll_s=0.05,
        inventory_path=None,
        log_level="WARNING",
    )


@pytest.fixture
async def store(tmp_settings: Settings):
    """A started SqliteObjectStore on a tmp DB."""
    s = SqliteObjectStore(tmp_settings.store_db_path)
    await s.start()
    yield s
    await s.stop()


@pytest.fixture
def fake_bmc() -> FakeBMC:
    return FakeBMC()


@pytest.fixture
def bmc_factory(fake_bmc: FakeBMC):
    """Drop-in for connect_bmc that always hands out ``fake_bmc``."""

    async def _factory(host, store, **kwargs):
        return fake_bmc

    return _factory


@pytest.fixture
def create_host(store):
    async def _create(name: str = "h1", **spec) -> Host:
        spec.setdefault("systemId", f"{name}-system")
        spec.setdefault(
            "bmc",
            BMCConfiguration(
                type="Redfish",
                address="https://bmc.example",
                secretRef=SecretReference(name="bmc-creds", namespace="default"),
            ),
        )
        return await store.create(Host(metadata=ObjectMeta(name=name), spec=HostSpec(**spec)))

    return _create


@pytest.fixture
def create_claim(store):
    async def _create(name: str = "c1", host: str = "h1", namespace: str = "default", **spec) -> Claim:
        claim = Claim(
            metadata=ObjectMeta(name=name, namespace=namespace),
            spec=ClaimSpec(hostRef=LocalObjectReference(name=host), **spec),
        )
        return await store.create(claim)

    return _create


@pytest.fixture
def create_secret(store):
    async def _create(name: str, namespace: str = "default", **values) -> Secret:
        secret = Secret(metadata=ObjectMeta(name=name, namespace=namespace), data=Secret.encode(values))
        return await store.create(secret)

    return _create


@pytest.fixture
async def app(tmp_settings: Settings):
    """The real FastAPI app with test settings, lifespan running."""
    from metal_operator.main import create_app

    application = create_app(settings=tmp_settings)

    # Trigger lifespan startup/shutdown
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def app_client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
