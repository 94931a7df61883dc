"""
Device model and data structures for the HarmonyOS installer.

This module contains the Device record reported by the hdc connector and
the rules that classify a connector-assigned id as a USB or network target.
"""

import re
from typing import List
from dataclasses import dataclass, field
from enum import Enum


class ConnectionType(Enum):
    """How a device is attached to the host."""
    USB = ("usb", "USB")
    NETWORK = ("network", "Network")

    def __init__(self, short_name: str, display_name: str):
        self.short_name = short_name
        self.display_name = display_name


LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "[::1]", "::1")

_DIGIT_PATTERN = re.compile(r'\d')


def is_network_device_id(device_id: str) -> bool:
    """
    Check whether a device id denotes a network target.

    An id is a network target when it contains ':' (host:port) or is
    dot-separated and contains digits (a bare IPv4 address).
    """
    if ":" in device_id:
        return True
    return "." in device_id and bool(_DIGIT_PATTERN.search(device_id))


def is_loopback_device_id(device_id: str) -> bool:
    """Check whether a network device id points back at this host."""
    return any(host in device_id for host in LOOPBACK_HOSTS)


def classify_device_id(device_id: str) -> ConnectionType:
    """Classify a device id as USB or network."""
    if is_network_device_id(device_id):
        return ConnectionType.NETWORK
    return ConnectionType.USB


@dataclass(frozen=True)
class Device:
    """
    A device reported by `hdc list targets`.

    Devices are equal when their ids are equal; the remaining attributes are
    derived from the listing line they came from.
    """
    device_id: str
    display_name: str
    connection_type: ConnectionType
    extra_info: List[str] = field(default_factory=list, compare=False, hash=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return self.device_id == other.device_id

    def __hash__(self) -> int:
        return hash(self.device_id)

    def __str__(self) -> str:
        return f"{self.display_name} ({self.connection_type.display_name})"

    @property
    def is_usb(self) -> bool:
        return self.connection_type == ConnectionType.USB

    @classmethod
    def from_listing_tokens(cls, tokens: List[str]) -> 'Device':
        """
        Build a device from the whitespace-split tokens of one listing line.

        Args:
            tokens: Non-empty token list; the first token is the device id

        Returns:
            Device with derived name and connection type
        """
        device_id = tokens[0]
        extra_info = tokens[1:]
        connection_type = classify_device_id(device_id)

        if connection_type == ConnectionType.NETWORK:
            if is_loopback_device_id(device_id):
                display_name = "Local device (via network)"
            else:
                display_name = "Network device"
        else:
            display_name = "HarmonyOS device"

        additional = " ".join(extra_info)
        if additional and additional != "device":
            display_name += f" ({additional})"

        if connection_type == ConnectionType.USB:
            display_name += f" [SN: {device_id}]"

        return cls(
            device_id=device_id,
            display_name=display_name,
            connection_type=connection_type,
            extra_info=list(extra_info)
        )


def sort_usb_first(devices: List[Device]) -> List[Device]:
    """Stable sort placing USB devices before network devices."""
    return sorted(devices, key=lambda device: 0 if device.is_usb else 1)
