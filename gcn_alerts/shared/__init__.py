"""
Shared daemon infrastructure
Multicast socket setup and Redis status publishing
"""

from .multicast import open_multicast_socket, send_multicast
from .status import StatusPublisher, connect_redis

__all__ = ['open_multicast_socket', 'send_multicast', 'StatusPublisher', 'connect_redis']
