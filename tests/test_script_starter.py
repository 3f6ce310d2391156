"""
Script starter daemon tests: packet handling, control socket and receive loop
"""

import asyncio
import socket

from gcn_alerts.config import GCNSettings
from gcn_alerts.daemons.script_starter import (
    ReceiveState,
    ScriptStarter,
    apply_arguments,
    build_arg_parser,
)
from gcn_alerts.schema import Mission, Policy
from gcn_alerts.shared.status import StatusPublisher


class FakeRedis:
    """Records hset/xadd calls"""

    def __init__(self):
        self.hashes = {}
        self.streams = {}

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update(mapping)

    async def xadd(self, name, fields, maxlen=None):
        self.streams.setdefault(name, []).append((fields, maxlen))


def make_starter(policy, launcher, **kwargs) -> ScriptStarter:
    return ScriptStarter(policy, launcher, control_host="127.0.0.1", control_port=0, **kwargs)


async def wait_until(condition, timeout: float = 5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def send_command(port: int, line: str) -> str:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(line.encode() + b"\n")
    await writer.drain()
    response = await reader.read()
    writer.close()
    await writer.wait_closed()
    return response.decode()


def test_accepted_packet_starts_script(builder, policy, launcher):
    async def scenario():
        starter = make_starter(policy, launcher)
        run = await starter.handle_packet(builder.swift_bat_position(100, 1, 150.0, 20.0))
        return starter, run

    starter, run = asyncio.run(scenario())
    assert run is not None
    assert len(launcher.arguments) == 1
    assert starter.alerts_accepted == 1
    assert starter.scripts_launched == 1


def test_rejected_packets_do_not_start_script(builder, launcher):
    async def scenario():
        starter = make_starter(Policy(allowed_missions=Mission.HETE), launcher)
        await starter.handle_packet(builder.swift_bat_position(100, 1, 150.0, 20.0))
        await starter.handle_packet(builder.imalive())
        await starter.handle_packet(b"\x00" * 12)
        return starter

    starter = asyncio.run(scenario())
    assert launcher.arguments == []
    assert starter.alerts_rejected == 3
    assert starter.parser.decode_errors == 1


def test_scenario_disable_socket_alerts(builder, policy, launcher):
    packet = builder.swift_bat_position(100, 1, 150.0, 20.0)

    async def scenario():
        starter = make_starter(policy, launcher)
        await starter.control_server.start()
        port = starter.control_server.port
        try:
            assert await send_command(port, "disable socket") == "Socket alerts disabled.\n"
            await starter.handle_packet(packet)
            launches_while_disabled = len(launcher.arguments)
            assert await send_command(port, "enable socket") == "Socket alerts enabled.\n"
            await starter.handle_packet(packet)
        finally:
            await starter.control_server.stop()
        return launches_while_disabled

    assert asyncio.run(scenario()) == 0
    assert len(launcher.arguments) == 1


def test_run_receives_packets_until_quit(builder, policy, launcher):
    receiver, sender = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
    receiver.setblocking(False)

    async def scenario():
        starter = make_starter(policy, launcher, socket_factory=lambda group, port: receiver)
        task = asyncio.create_task(starter.run())
        await wait_until(lambda: starter.state == ReceiveState.LISTENING)
        sender.send(builder.swift_bat_position(100, 1, 150.0, 20.0))
        await wait_until(lambda: starter.packets_received == 1)
        response = await send_command(starter.control_server.port, "quit")
        exit_code = await asyncio.wait_for(task, 10)
        return starter, response, exit_code

    try:
        starter, response, exit_code = asyncio.run(scenario())
    finally:
        sender.close()

    assert response == "Quitting script starter.\n"
    assert exit_code == 0
    assert starter.state == ReceiveState.STOPPED
    assert len(launcher.arguments) == 1


def test_socket_failure_is_fatal(policy, launcher):
    def broken_socket(group, port):
        raise OSError("cannot join group")

    starter = make_starter(policy, launcher, socket_factory=broken_socket)
    assert asyncio.run(starter.run()) == 1
    assert starter.state == ReceiveState.STOPPED


def test_status_and_notices_published(builder, policy, launcher):
    redis = FakeRedis()

    async def scenario():
        publisher = StatusPublisher(redis, ScriptStarter.STATUS_KEY)
        starter = make_starter(policy, launcher, publisher=publisher)
        await starter.handle_packet(builder.swift_bat_position(100, 1, 150.0, 20.0))
        await starter._update_status()

    asyncio.run(scenario())
    status = redis.hashes[ScriptStarter.STATUS_KEY]
    assert status["packets_received"] == 1
    assert status["scripts_launched"] == 1
    assert status["socket_alerts_enabled"] == "True"
    fields, maxlen = redis.streams["gcn:notices"][0]
    assert fields["mission"] == "SWIFT"
    assert fields["trigger_number"] == 100
    assert maxlen == 10000


def test_command_line_overrides_settings():
    args = build_arg_parser().parse_args([
        "-script", "/usr/local/bin/grb_alert",
        "-swift", "-hete",
        "-meb", "600",
        "-sssam", "0x3",
        "-sssrm", "32",
        "-max_propagation_delay", "300",
        "-swift_merit_filter",
        "-disable_manual_alerts",
        "--dry-run",
    ])
    settings = apply_arguments(GCNSettings(_env_file=None), args)
    assert settings.script == "/usr/local/bin/grb_alert"
    assert settings.allowed_missions == ["SWIFT", "HETE"]
    assert settings.max_error_box_arcsec == 600.0
    assert settings.swift_accept_mask == 0x3
    assert settings.swift_reject_mask == 32
    assert settings.swift_filter_on_merit is True
    assert settings.manual_alerts_enabled is False
    assert settings.socket_alerts_enabled is True

    policy = Policy.from_settings(settings)
    assert policy.allowed_missions == Mission.SWIFT | Mission.HETE
    assert policy.max_propagation_delay.total_seconds() == 300


def test_all_missions_flag():
    args = build_arg_parser().parse_args(["-all"])
    settings = apply_arguments(GCNSettings(_env_file=None), args)
    assert Policy.from_settings(settings).allowed_missions == (
        Mission.HETE | Mission.INTEGRAL | Mission.SWIFT | Mission.AGILE | Mission.FERMI
    )
