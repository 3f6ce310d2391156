"""
GCN Datagram Forwarder

Standalone daemon that:
- Joins the GCN notice multicast group
- Relays every packet, unmodified, to one or more TCP destinations
- Reads a fixed length reply back after each packet and logs the round trip
- Reconnects each destination independently with a backoff schedule
- Publishes status to Redis hash 'gcn:forwarder:status'

Packets for a destination are only queued while it is connected; packets
arriving while it is down are dropped and counted.

Usage:
    python -m gcn_alerts.daemons.datagram_forwarder -forward_address relay1 -forward_port 5000
    python -m gcn_alerts.daemons.datagram_forwarder -datagram_port 2005 \\
        -forward_address relay1 -forward_port 5000 -forward_address relay2 -forward_port 5001
"""

import argparse
import asyncio
import logging
import socket
import sys
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from gcn_alerts.config import get_settings, parse_destination
from gcn_alerts.log import configure_logging
from gcn_alerts.parsers.notice_types import NoticeType, notice_label
from gcn_alerts.shared.multicast import open_multicast_socket
from gcn_alerts.shared.status import StatusPublisher, connect_redis

DEFAULT_BACKOFF_SECONDS = (0, 60, 120, 240, 480, 960, 1800)

# Log forwarder stats every N packets
STATS_EVERY = 100

Streams = Tuple[asyncio.StreamReader, asyncio.StreamWriter]
Opener = Callable[..., Awaitable[Streams]]


class DestinationState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


def backoff_delay(attempt: int, schedule: Sequence[float] = DEFAULT_BACKOFF_SECONDS) -> float:
    """Delay before a connection attempt, holding at the last scheduled value"""
    if not schedule:
        return 0.0
    return schedule[min(attempt, len(schedule) - 1)]


class ForwardConnection:
    """
    One relay destination.

    Owns its own queue and connection; the only shared entry point is
    offer(), which the receive loop calls for every packet.
    """

    def __init__(
        self,
        host: str,
        port: int,
        backoff: Sequence[float] = DEFAULT_BACKOFF_SECONDS,
        reply_length: int = 160,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        open_connection: Opener = asyncio.open_connection,
        logger: Optional[logging.Logger] = None
    ):
        self.host = host
        self.port = port
        self.backoff = tuple(backoff)
        self.reply_length = reply_length
        self.sleep = sleep
        self.open_connection = open_connection
        self.logger = logger or logging.getLogger(__name__)

        self.state = DestinationState.DISCONNECTED
        self.attempts = 0
        self.queue: asyncio.Queue = asyncio.Queue()
        self.running = False

        # Stats
        self.packets_forwarded = 0
        self.packets_dropped = 0
        self.connects = 0
        self.connection_failures = 0
        self.last_rtt_ms: Optional[float] = None

    @property
    def name(self) -> str:
        return f"{self.host}:{self.port}"

    def offer(self, packet: bytes) -> bool:
        """Queue a packet if connected, otherwise drop it"""
        if self.state != DestinationState.CONNECTED:
            self.packets_dropped += 1
            return False
        self.queue.put_nowait(packet)
        return True

    async def connect(self) -> Streams:
        """Connect, retrying on the backoff schedule until it succeeds"""
        while True:
            delay = backoff_delay(self.attempts, self.backoff)
            if delay:
                self.logger.info(f"{self.name}: waiting {delay}s before connection attempt {self.attempts + 1}")
            await self.sleep(delay)

            self.state = DestinationState.CONNECTING
            try:
                reader, writer = await self.open_connection(self.host, self.port)
            except OSError as e:
                self.state = DestinationState.DISCONNECTED
                self.attempts += 1
                self.connection_failures += 1
                self.logger.warning(f"{self.name}: connection attempt {self.attempts} failed: {e}")
                continue

            self.attempts = 0
            self.connects += 1
            self.state = DestinationState.CONNECTED
            self.logger.info(f"{self.name}: connected")
            return reader, writer

    async def forward(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Send queued packets, reading the reply back after each one"""
        while self.running:
            packet = await self.queue.get()
            start = time.monotonic()
            writer.write(packet)
            await writer.drain()
            await reader.readexactly(self.reply_length)
            self.last_rtt_ms = (time.monotonic() - start) * 1000
            self.packets_forwarded += 1
            self.logger.debug(f"{self.name}: forwarded {len(packet)} bytes, "
                              f"round trip {self.last_rtt_ms:.1f}ms")

    async def run(self):
        """Connect and forward until stopped, reconnecting after every fault"""
        self.running = True
        while self.running:
            reader, writer = await self.connect()
            try:
                await self.forward(reader, writer)
            except (OSError, asyncio.IncompleteReadError) as e:
                self.logger.warning(f"{self.name}: connection lost: {e}")
            finally:
                self.state = DestinationState.DISCONNECTED
                self._drop_queued()
                writer.close()
                try:
                    await writer.wait_closed()
                except OSError as e:
                    self.logger.debug(f"{self.name}: close failed: {e}")

    def _drop_queued(self):
        while not self.queue.empty():
            self.queue.get_nowait()
            self.packets_dropped += 1

    def stop(self):
        self.running = False

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "attempts": self.attempts,
            "packets_forwarded": self.packets_forwarded,
            "packets_dropped": self.packets_dropped,
            "connects": self.connects,
            "connection_failures": self.connection_failures,
            "last_rtt_ms": self.last_rtt_ms if self.last_rtt_ms is not None else "",
        }


class DatagramForwarder:
    """Multicast receive loop fanning packets out to ForwardConnections"""

    STATUS_KEY = "gcn:forwarder:status"

    def __init__(
        self,
        connections: List[ForwardConnection],
        publisher: Optional[StatusPublisher] = None,
        group_address: str = "224.103.114.98",
        multicast_port: int = 2005,
        packet_length: int = 160,
        socket_factory: Callable[[str, int], socket.socket] = open_multicast_socket,
        logger: Optional[logging.Logger] = None
    ):
        self.connections = connections
        self.logger = logger or logging.getLogger(__name__)
        self.publisher = publisher or StatusPublisher(status_key=self.STATUS_KEY, logger=self.logger)
        self.group_address = group_address
        self.multicast_port = multicast_port
        self.packet_length = packet_length
        self.socket_factory = socket_factory
        self.running = False
        self._tasks: List[asyncio.Task] = []

        # Stats
        self.packets_received = 0
        self.imalive_received = 0
        self.start_time: Optional[datetime] = None

    def dispatch(self, packet: bytes) -> int:
        """Offer one packet to every destination, returning how many queued it"""
        self.packets_received += 1
        notice_type = int.from_bytes(packet[:4], "big") if len(packet) >= 4 else 0
        if notice_type == NoticeType.IMALIVE:
            self.imalive_received += 1
            self.logger.debug("Received IMALIVE")
        else:
            self.logger.info(f"Received {notice_label(notice_type)} ({len(packet)} bytes)")

        queued = sum(1 for connection in self.connections if connection.offer(packet))

        if self.packets_received % STATS_EVERY == 0:
            self.logger.info(f"Stats: received={self.packets_received}, imalive={self.imalive_received}, "
                             f"destinations={[c.get_stats() for c in self.connections]}")
        return queued

    async def _update_status(self):
        """Update status in Redis for monitoring"""
        status = {
            "running": self.running,
            "packets_received": self.packets_received,
            "imalive_received": self.imalive_received,
            "uptime_seconds": (datetime.now(timezone.utc) - self.start_time).total_seconds()
                if self.start_time else 0,
        }
        for connection in self.connections:
            status[f"{connection.name}:state"] = connection.state.value
            status[f"{connection.name}:forwarded"] = connection.packets_forwarded
            status[f"{connection.name}:dropped"] = connection.packets_dropped
        await self.publisher.update_status(status)

    async def run(self) -> int:
        """
        Main run loop.

        Returns:
            Process exit status: 1 when the multicast socket fails
        """
        self.start_time = datetime.now(timezone.utc)
        try:
            sock = self.socket_factory(self.group_address, self.multicast_port)
        except OSError as e:
            self.logger.error(f"Could not open multicast socket "
                              f"{self.group_address}:{self.multicast_port}: {e}")
            return 1

        self.running = True
        self._tasks = [asyncio.create_task(c.run()) for c in self.connections]
        self.logger.info(f"Forwarding {self.group_address}:{self.multicast_port} to "
                         f"{', '.join(c.name for c in self.connections)}")

        loop = asyncio.get_running_loop()
        exit_code = 0
        try:
            while self.running:
                try:
                    packet = await loop.sock_recv(sock, self.packet_length)
                except OSError as e:
                    self.logger.error(f"Multicast socket failed, stopping forwarder: {e}")
                    exit_code = 1
                    break
                self.dispatch(packet)
                await self._update_status()
        finally:
            self.stop()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            sock.close()
            await self._update_status()
            self.logger.info("Forwarder stopped")
        return exit_code

    def stop(self):
        """Stop the receive loop and every destination"""
        self.running = False
        for connection in self.connections:
            connection.stop()
        for task in self._tasks:
            task.cancel()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GCN Datagram Forwarder: relay GCN multicast packets to TCP destinations",
        allow_abbrev=False
    )
    parser.add_argument("-datagram_address", help="Multicast group address of the notice feed")
    parser.add_argument("-datagram_port", type=int, help="Multicast port of the notice feed")
    parser.add_argument(
        "-forward_address",
        action="append",
        default=[],
        help="Destination host, paired with the -forward_port that follows it"
    )
    parser.add_argument(
        "-forward_port",
        action="append",
        type=int,
        default=[],
        help="Destination port"
    )
    parser.add_argument("--redis-url", help="Redis connection URL")
    parser.add_argument("--dry-run", action="store_true", help="Run without Redis connection")
    parser.add_argument("--log-dir", help="Directory for daily log files")
    parser.add_argument("--log-level", help="Logging level")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    arg_parser = build_arg_parser()
    args = arg_parser.parse_args(argv)
    if len(args.forward_address) != len(args.forward_port):
        arg_parser.error("-forward_address and -forward_port must be given in pairs")

    settings = get_settings()
    log = configure_logging("FORWARDER", args.log_level or settings.log_level, args.log_dir or settings.log_dir)

    destinations = list(zip(args.forward_address, args.forward_port))
    if not destinations:
        destinations = [parse_destination(text) for text in settings.forward_destinations]
    if not destinations:
        log.error("No forward destinations specified")
        return 1

    # Connect to Redis
    redis_client = None
    if not args.dry_run:
        redis_client = await connect_redis(args.redis_url or settings.redis_url, log)

    connections = [
        ForwardConnection(
            host, port,
            backoff=settings.forward_backoff_seconds,
            reply_length=settings.forward_reply_length,
            logger=log
        )
        for host, port in destinations
    ]
    forwarder = DatagramForwarder(
        connections,
        publisher=StatusPublisher(redis_client, DatagramForwarder.STATUS_KEY, logger=log),
        group_address=args.datagram_address or settings.group_address,
        multicast_port=args.datagram_port or settings.multicast_port,
        packet_length=settings.packet_length,
        logger=log
    )

    try:
        return await forwarder.run()
    finally:
        if redis_client:
            await redis_client.close()


def run_main():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_main()
