"""
Multicast socket setup for the GCN notice feed.
"""

import socket
import struct
from typing import Optional


def open_multicast_socket(group: str, port: int, interface: str = "0.0.0.0") -> socket.socket:
    """
    Open a non-blocking UDP socket joined to a multicast group.

    Raises:
        OSError: the socket could not be bound or the group could not be joined
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        sock.bind(("", port))
        membership = struct.pack("4s4s", socket.inet_aton(group), socket.inet_aton(interface))
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


def send_multicast(data: bytes, group: str, port: int, ttl: Optional[int] = 1) -> int:
    """Send one datagram to a multicast group, returning the bytes sent"""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP) as sock:
        if ttl is not None:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
        return sock.sendto(data, (group, port))
