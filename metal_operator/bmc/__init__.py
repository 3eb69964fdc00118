"""Baseboard management controller backends."""

from metal_operator.bmc.base import BMC, NetworkInterface, Processor, SystemInfo
from metal_operator.bmc.connect import BMCType, connect_bmc
from metal_operator.bmc.redfish import RedfishBMC
from metal_operator.bmc.redfish_local import RedfishLocalBMC

__all__ = [
    "BMC",
    "BMCType",
    "NetworkInterface",
    "Processor",
    "RedfishBMC",
    "RedfishLocalBMC",
    "SystemInfo",
    "connect_bmc",
]
