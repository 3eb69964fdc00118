"""Tests for the dnsmasq record rendering."""

from __future__ import annotations

from pathlib import Path

import pytest

from metal_operator.adapters.dhcp_export import (
    RECORD_KEY,
    artifact_name,
    generate_dnsmasq,
    render_host_record,
    sanitize_tag,
)
from metal_operator.models.core import ConfigMap
from metal_operator.models.host import BMCConfiguration, Host, HostSpec
from metal_operator.models.meta import ObjectMeta

FIXTURES = Path(__file__).parent.parent / "fixtures"


def _host(name: str, mac: str) -> Host:
    return Host(
        metadata=ObjectMeta(name=name),
        spec=HostSpec(
            systemId="1",
            bootMACAddress=mac,
            bmc=BMCConfiguration(type="RedfishLocal", address="http://localhost:8000"),
        ),
    )


def _record(host: Host, version: int) -> ConfigMap:
    return ConfigMap(
        metadata=ObjectMeta(name=artifact_name(host.name), namespace="metal-boot", resourceVersion=version),
        data={RECORD_KEY: render_host_record(host)},
    )


@pytest.fixture
def records():
    return [
        _record(_host("rack1.node02", "AA:BB:CC:DD:EE:02"), 7),
        _record(_host("rack1-node01", "aa:bb:cc:dd:ee:01"), 3),
    ]


class TestRenderHostRecord:
    def test_mac_lowercased(self):
        record = render_host_record(_host("node1", "AA:BB:CC:DD:EE:FF"))
        assert record == "dhcp-host=aa:bb:cc:dd:ee:ff,set:node1,node1\n"

    def test_tag_sanitized(self):
        assert sanitize_tag("rack1.node02") == "rack1_node02"
        assert sanitize_tag("a b/c") == "a_b_c"


class TestGoldenDnsmasq:
    def test_matches_golden_file(self, records):
        result = generate_dnsmasq(records)
        golden = (FIXTURES / "golden_dnsmasq.conf").read_text(encoding="utf-8")
        if result.content != golden:
            import difflib

            diff = "\n".join(
                difflib.unified_diff(
                    golden.splitlines(),
                    result.content.splitlines(),
                    fromfile="golden",
                    tofile="actual",
                    lineterm="",
                )
            )
            pytest.fail(f"dnsmasq output differs from golden file:\n{diff}")
        assert result.hosts == 2

    def test_output_is_stable(self, records):
        assert generate_dnsmasq(records).content == generate_dnsmasq(list(reversed(records))).content

    def test_empty(self):
        result = generate_dnsmasq([])
        assert result.hosts == 0
        assert "# Version: 0" in result.content
        assert "dhcp-host" not in result.content

    def test_records_without_key_skipped(self, records):
        stray = ConfigMap(metadata=ObjectMeta(name="dhcp-stray", namespace="metal-boot"), data={"other": "x"})
        assert generate_dnsmasq([*records, stray]).hosts == 2
