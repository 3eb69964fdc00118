"""Tests for the HTTP API."""

from __future__ import annotations

import asyncio

import pytest

from metal_operator.models.host import BMCConfiguration, Host, HostSpec
from metal_operator.models.meta import ObjectMeta


async def _eventually(check, timeout: float = 5.0):
    """Poll an async ``check`` until it returns something truthy."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        result = await check()
        if result:
            return result
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not met in time")
        await asyncio.sleep(0.02)


@pytest.fixture
async def host(app):
    # No BMC secretRef: the host controller records a configuration error and never dials out.
    return await app.state.store.create(
        Host(
            metadata=ObjectMeta(name="h1"),
            spec=HostSpec(
                systemId="437XR1138R2",
                bootMACAddress="aa:bb:cc:dd:ee:01",
                bmc=BMCConfiguration(type="Redfish", address="https://bmc.example"),
            ),
        )
    )


# -- Health ---------------------------------------------------------------------


async def test_health(app_client):
    resp = await app_client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "version" in data
    assert isinstance(data["uptime"], int)
    assert sorted(c["name"] for c in data["controllers"]) == ["claim", "dhcp", "host", "pxe"]
    assert data["inventoryModified"] is None
    assert data["inventoryHosts"] == 0


async def test_ready(app_client):
    resp = await app_client.get("/ready")
    assert resp.status_code == 200
    assert resp.json()["ready"] is True


async def test_not_ready_when_controllers_stopped(app, app_client):
    await app.state.manager.stop()

    resp = await app_client.get("/ready")
    assert resp.status_code == 503
    assert "controllers not running" in resp.json()["reason"]

    resp = await app_client.get("/health")
    assert resp.json()["status"] == "degraded"


# -- Hosts ----------------------------------------------------------------------


async def test_list_hosts(app_client, host):
    resp = await app_client.get("/api/v1/hosts")
    assert resp.status_code == 200
    assert [h["metadata"]["name"] for h in resp.json()["items"]] == ["h1"]


async def test_get_host(app_client, host):
    resp = await app_client.get("/api/v1/hosts/h1")
    assert resp.status_code == 200
    data = resp.json()
    assert data["spec"]["systemId"] == "437XR1138R2"
    assert data["spec"]["bootMACAddress"] == "aa:bb:cc:dd:ee:01"


async def test_get_host_not_found(app_client):
    resp = await app_client.get("/api/v1/hosts/ghost")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NOT_FOUND"


# -- Claims ---------------------------------------------------------------------


async def test_create_and_get_claim(app_client, host):
    resp = await app_client.post(
        "/api/v1/namespaces/default/claims",
        json={"name": "c1", "labels": {"team": "infra"}, "spec": {"hostRef": {"name": "h1"}, "power": "On"}},
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["metadata"]["namespace"] == "default"
    assert created["metadata"]["labels"] == {"team": "infra"}
    assert created["metadata"]["uid"]

    resp = await app_client.get("/api/v1/namespaces/default/claims/c1")
    assert resp.status_code == 200
    assert resp.json()["spec"]["hostRef"]["name"] == "h1"


async def test_claim_becomes_bound(app, app_client, host):
    await app_client.post(
        "/api/v1/namespaces/default/claims",
        json={"name": "c1", "spec": {"hostRef": {"name": "h1"}}},
    )

    async def bound():
        data = (await app_client.get("/api/v1/namespaces/default/claims/c1")).json()
        return data["status"]["phase"] == "Bound"

    await _eventually(bound)
    host = (await app_client.get("/api/v1/hosts/h1")).json()
    assert host["spec"]["claimRef"]["name"] == "c1"


async def test_list_claims_is_namespaced(app_client, host):
    for namespace, name in (("default", "c1"), ("other", "c2")):
        await app_client.post(
            f"/api/v1/namespaces/{namespace}/claims",
            json={"name": name, "spec": {"hostRef": {"name": "h1"}}},
        )

    resp = await app_client.get("/api/v1/namespaces/default/claims")
    assert [c["metadata"]["name"] for c in resp.json()["items"]] == ["c1"]


async def test_create_duplicate_claim(app_client, host):
    body = {"name": "c1", "spec": {"hostRef": {"name": "h1"}}}
    await app_client.post("/api/v1/namespaces/default/claims", json=body)

    resp = await app_client.post("/api/v1/namespaces/default/claims", json=body)
    assert resp.status_code == 409
    assert resp.json()["error"] == "ALREADY_EXISTS"


async def test_create_claim_invalid_name(app_client):
    resp = await app_client.post(
        "/api/v1/namespaces/default/claims",
        json={"name": "Not_Valid", "spec": {"hostRef": {"name": "h1"}}},
    )
    assert resp.status_code == 422


async def test_delete_claim_releases_host(app_client, host):
    await app_client.post(
        "/api/v1/namespaces/default/claims",
        json={"name": "c1", "spec": {"hostRef": {"name": "h1"}}},
    )

    resp = await app_client.delete("/api/v1/namespaces/default/claims/c1")
    assert resp.status_code == 202

    async def gone():
        return (await app_client.get("/api/v1/namespaces/default/claims/c1")).status_code == 404

    await _eventually(gone)
    assert (await app_client.get("/api/v1/hosts/h1")).json()["spec"]["claimRef"] is None


async def test_delete_missing_claim(app_client):
    resp = await app_client.delete("/api/v1/namespaces/default/claims/ghost")
    assert resp.status_code == 404


# -- Boot export ----------------------------------------------------------------


async def test_dnsmasq_export(app_client, host):
    await app_client.post(
        "/api/v1/namespaces/default/claims",
        json={"name": "c1", "spec": {"hostRef": {"name": "h1"}}},
    )

    async def exported():
        resp = await app_client.get("/api/v1/boot/dhcp/export/dnsmasq")
        return resp if "dhcp-host=" in resp.text else None

    resp = await _eventually(exported)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "dhcp-host=aa:bb:cc:dd:ee:01,set:h1,h1" in resp.text
    assert "# Hosts: 1" in resp.text

    etag = resp.headers["ETag"]
    resp = await app_client.get("/api/v1/boot/dhcp/export/dnsmasq", headers={"If-None-Match": etag})
    assert resp.status_code == 304


async def test_dnsmasq_export_empty(app_client):
    resp = await app_client.get("/api/v1/boot/dhcp/export/dnsmasq")
    assert resp.status_code == 200
    assert "# Hosts: 0" in resp.text
    assert resp.headers["ETag"]
