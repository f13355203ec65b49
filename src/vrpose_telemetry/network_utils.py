"""Network utility functions for vrpose-telemetry."""

import ipaddress
import logging
import socket

import psutil

logger = logging.getLogger(__name__)

BROADCAST_ADDRESS = "255.255.255.255"

# Interfaces that are never the headset's LAN address
_VIRTUAL_PREFIXES = (
    "bridge",
    "docker",
    "veth",
    "vmnet",
    "vboxnet",
    "virbr",
    "tun",
    "tap",
    "utun",
    "vnic",
    "ppp",
)


def is_ipv4(value: str) -> bool:
    """True if `value` is a dotted-quad IPv4 literal."""
    try:
        ipaddress.IPv4Address(value.strip())
    except (ipaddress.AddressValueError, ValueError, AttributeError):
        return False
    return True


def get_local_ip_addresses() -> list[str]:
    """
    Get IPv4 addresses of the physical network interfaces.

    Filters out virtual interfaces (bridges, VPNs, Docker, etc.), localhost and
    APIPA addresses (169.254.x.x).

    Returns:
        list: IP addresses as strings
    """
    ip_addresses = []
    try:
        for interface_name, interface_addresses in psutil.net_if_addrs().items():
            if interface_name.lower().startswith(_VIRTUAL_PREFIXES):
                continue

            for address in interface_addresses:
                if address.family == socket.AF_INET:
                    ip = address.address
                    if ip != "127.0.0.1" and not ip.startswith("169.254."):
                        ip_addresses.append(ip)
    except Exception as e:
        logger.warning(f"Failed to get local IP addresses: {e}")

    return ip_addresses


def get_device_path(preferred_prefix: str = "192.168") -> str | None:
    """
    Path-style identity of this device, e.g. ``/192.168.0.12``.

    Addresses starting with `preferred_prefix` win; otherwise the first
    physical address is used. Returns None when no address is available.
    """
    addresses = get_local_ip_addresses()
    for ip in addresses:
        if ip.startswith(preferred_prefix):
            return "/" + ip
    if addresses:
        return "/" + addresses[0]
    return None
