"""
GCN Daemons
Script starter (receive loop + control server) and datagram forwarder
"""

from .control_server import ControlServer
from .datagram_forwarder import DatagramForwarder, DestinationState, ForwardConnection, backoff_delay
from .script_starter import ReceiveState, ScriptStarter

__all__ = [
    'ControlServer', 'DatagramForwarder', 'DestinationState', 'ForwardConnection',
    'backoff_delay', 'ReceiveState', 'ScriptStarter',
]
