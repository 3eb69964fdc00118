"""Render dnsmasq DHCP records for claimed hosts."""

from __future__ import annotations

import re
from dataclasses import dataclass

from metal_operator.models.core import ConfigMap
from metal_operator.models.host import Host

# ConfigMap key holding a host's rendered record.
RECORD_KEY = "dnsmasq.conf"

_TAG_RE = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_tag(name: str) -> str:
    """Make a string safe for use as a dnsmasq tag."""
    return _TAG_RE.sub("_", name)


def artifact_name(host_name: str) -> str:
    return f"dhcp-{host_name}"


def render_host_record(host: Host) -> str:
    """``dhcp-host`` line pinning the boot MAC to the host name, tagged for PXE."""
    mac = host.spec.bootMACAddress.lower()
    tag = sanitize_tag(host.name)
    return f"dhcp-host={mac},set:{tag},{host.name}\n"


@dataclass
class DnsmasqExport:
    content: str
    hosts: int


def generate_dnsmasq(records: list[ConfigMap]) -> DnsmasqExport:
    """Concatenate per-host records into one dnsmasq config fragment.

    The output only depends on the records, so it can be used as a cache key.
    """
    version = max((cm.metadata.resourceVersion for cm in records), default=0)
    body = [cm.data[RECORD_KEY] for cm in sorted(records, key=lambda cm: cm.name) if RECORD_KEY in cm.data]

    lines: list[str] = []
    lines.append("#")
    lines.append("# metal-operator - dnsmasq host records")
    lines.append(f"# Version: {version}")
    lines.append(f"# Hosts: {len(body)}")
    lines.append("#")
    lines.append("")
    lines.extend(record.rstrip("\n") for record in body)
    return DnsmasqExport(content="\n".join(lines) + "\n", hosts=len(body))
