"""
Control Server

Line based TCP control socket of the script starter. Each connection sends
one command line, receives one response and is closed. Commands run under
the alert context lock shared with the receive loop, so a manual alert and
a feed notice are never processed at the same time.

Usage (from a shell):
    echo "disable socket" | nc localhost 2006
"""

import asyncio
import logging
from typing import Optional

from gcn_alerts.alerting.control_commands import ControlCommandHandler

# Longest accepted command line
MAX_LINE_LENGTH = 4096


class ControlServer:
    """asyncio TCP server feeding lines to a ControlCommandHandler"""

    def __init__(
        self,
        handler: ControlCommandHandler,
        lock: asyncio.Lock,
        host: str = "0.0.0.0",
        port: int = 2006,
        logger: Optional[logging.Logger] = None
    ):
        self.handler = handler
        self.lock = lock
        self.host = host
        self.port = port
        self.logger = logger or logging.getLogger(__name__)
        self.server: Optional[asyncio.AbstractServer] = None
        self.connections = 0
        self.errors = 0

    async def start(self) -> asyncio.AbstractServer:
        """Start listening; the bound port is available as self.port afterwards"""
        self.server = await asyncio.start_server(
            self._handle_connection, self.host, self.port, limit=MAX_LINE_LENGTH
        )
        sockets = self.server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        self.logger.info(f"Control server listening on {self.host}:{self.port}")
        return self.server

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle one control connection: read a line, answer it, close"""
        self.connections += 1
        peer = writer.get_extra_info("peername")
        try:
            line = await reader.readline()
            command = line.decode("utf-8", errors="replace").strip()
            self.logger.info(f"Control command from {peer}: {command!r}")

            async with self.lock:
                response = self.handler.handle_line(command)

            writer.write(response.encode("utf-8"))
            await writer.drain()
        except (OSError, ValueError, asyncio.IncompleteReadError) as e:
            # ValueError: line longer than the stream limit
            self.logger.error(f"Control connection {peer} failed: {e}")
            self.errors += 1
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                self.logger.debug(f"Control connection {peer} close failed: {e}")

    async def stop(self):
        """Stop accepting connections"""
        if self.server is None:
            return
        self.server.close()
        await self.server.wait_closed()
        self.server = None
        self.logger.info("Control server stopped")
