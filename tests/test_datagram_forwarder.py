"""
Datagram forwarder tests: backoff schedule, relay and read-back
"""

import asyncio

from gcn_alerts.daemons.datagram_forwarder import (
    DatagramForwarder,
    DestinationState,
    ForwardConnection,
    backoff_delay,
    build_arg_parser,
)


class FakeWriter:
    def close(self):
        pass

    async def wait_closed(self):
        pass


class ScriptedOpener:
    """open_connection stand-in failing a given number of times"""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self, host, port):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionRefusedError(f"{host}:{port} refused")
        return object(), FakeWriter()


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def wait_until(condition, timeout: float = 5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def test_backoff_schedule_holds_at_last_value():
    assert [backoff_delay(n) for n in range(9)] == [0, 60, 120, 240, 480, 960, 1800, 1800, 1800]


def test_reconnect_backoff_and_reset():
    sleep = RecordingSleep()
    opener = ScriptedOpener(failures=3)
    connection = ForwardConnection("relay", 5000, sleep=sleep, open_connection=opener)

    asyncio.run(connection.connect())
    # Three refused attempts after 0s, 60s and 120s, connected on the fourth
    assert sleep.delays == [0, 60, 120, 240]
    assert opener.calls == 4
    assert connection.state == DestinationState.CONNECTED
    assert connection.attempts == 0
    assert connection.connection_failures == 3

    # A successful connect resets the schedule
    sleep.delays.clear()
    connection.open_connection = ScriptedOpener(failures=1)
    asyncio.run(connection.connect())
    assert sleep.delays == [0, 60]


def test_packets_dropped_while_disconnected():
    connection = ForwardConnection("relay", 5000)
    assert connection.offer(b"x" * 160) is False
    assert connection.packets_dropped == 1
    assert connection.queue.empty()


def test_relays_packets_and_reads_reply(builder):
    packet = builder.swift_bat_position(100, 1, 150.0, 20.0)
    received = []

    async def echo(reader, writer):
        while True:
            try:
                data = await reader.readexactly(160)
            except asyncio.IncompleteReadError:
                break
            received.append(data)
            writer.write(data)
            await writer.drain()
        writer.close()

    async def scenario():
        server = await asyncio.start_server(echo, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        connection = ForwardConnection("127.0.0.1", port)
        task = asyncio.create_task(connection.run())
        try:
            await wait_until(lambda: connection.state == DestinationState.CONNECTED)
            assert connection.offer(packet)
            await wait_until(lambda: connection.packets_forwarded == 1)
        finally:
            connection.stop()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            server.close()
            await server.wait_closed()
        return connection

    connection = asyncio.run(scenario())
    assert received == [packet]
    assert connection.last_rtt_ms is not None


def test_missing_reply_triggers_reconnect(builder):
    async def swallow(reader, writer):
        # Read the packet but never reply
        try:
            await reader.readexactly(160)
        except asyncio.IncompleteReadError:
            pass
        writer.close()

    async def scenario():
        server = await asyncio.start_server(swallow, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        connection = ForwardConnection("127.0.0.1", port)
        task = asyncio.create_task(connection.run())
        try:
            await wait_until(lambda: connection.state == DestinationState.CONNECTED)
            connection.offer(builder.imalive())
            await wait_until(lambda: connection.connects == 2)
        finally:
            connection.stop()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            server.close()
            await server.wait_closed()
        return connection

    connection = asyncio.run(scenario())
    assert connection.packets_forwarded == 0
    assert connection.attempts == 0


def test_dispatch_only_queues_for_connected_destinations(builder):
    up = ForwardConnection("up", 1)
    down = ForwardConnection("down", 2)
    up.state = DestinationState.CONNECTED
    forwarder = DatagramForwarder([up, down])

    assert forwarder.dispatch(builder.imalive()) == 1
    assert forwarder.dispatch(builder.swift_bat_position(1, 0, 10.0, 10.0)) == 1
    assert forwarder.packets_received == 2
    assert forwarder.imalive_received == 1
    assert up.queue.qsize() == 2
    assert down.packets_dropped == 2


def test_forward_pairs_on_command_line():
    args = build_arg_parser().parse_args([
        "-datagram_port", "2005",
        "-forward_address", "relay1", "-forward_port", "5000",
        "-forward_address", "relay2", "-forward_port", "5001",
    ])
    assert list(zip(args.forward_address, args.forward_port)) == [("relay1", 5000), ("relay2", 5001)]
