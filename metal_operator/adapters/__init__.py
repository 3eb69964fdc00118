"""File and boot record adapters."""

from metal_operator.adapters.dhcp_export import DnsmasqExport, generate_dnsmasq, render_host_record
from metal_operator.adapters.inventory import HostRecord, InventoryAdapter

__all__ = [
    "DnsmasqExport",
    "HostRecord",
    "InventoryAdapter",
    "generate_dnsmasq",
    "render_host_record",
]
