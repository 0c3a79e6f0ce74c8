from __future__ import annotations

import socket
import struct

FALLBACK_ADDRESS = "0.0.0.0"

# Linux ioctl request for an interface's primary IPv4 address.
SIOCGIFADDR = 0x8915


def interface_ipv4(name: str) -> str:
    """IPv4 address of network interface ``name``, or "" when it has none."""
    if not name or len(name) > 15:
        return ""
    try:
        import fcntl
    except ImportError:
        return ""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        try:
            packed = fcntl.ioctl(s.fileno(), SIOCGIFADDR, struct.pack("256s", name.encode("utf-8")))
        except OSError:
            return ""
    return socket.inet_ntoa(packed[20:24])


def bind_address(interface: str = "", bind: str = "") -> str:
    if bind:
        return bind
    if interface:
        return interface_ipv4(interface) or FALLBACK_ADDRESS
    return FALLBACK_ADDRESS
