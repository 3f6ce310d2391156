"""
GCN Script Starter

Standalone daemon that:
- Joins the GCN notice multicast group and decodes each 160 byte packet
- Filters notices against the alert policy
- Starts the alert script for every accepted notice
- Serves the line based control socket (enable/disable, manual alerts, quit)
- Publishes status to Redis hash 'gcn:script_starter:status' and accepted
  notices to Redis stream 'gcn:notices'

Decoding, filtering and launching one packet happens under the alert context
lock, which the control server also holds while running a command.

Usage:
    python -m gcn_alerts.daemons.script_starter -script ./grb_alert.sh -swift -meb 600
    python -m gcn_alerts.daemons.script_starter -script ./grb_alert.sh -all --dry-run
"""

import argparse
import asyncio
import logging
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from dotenv import load_dotenv

from gcn_alerts.alerting.alert_filter import AlertFilter
from gcn_alerts.alerting.control_commands import ControlCommandHandler
from gcn_alerts.alerting.script_launcher import ScriptLauncher, ScriptProcess
from gcn_alerts.config import GCNSettings, get_settings, parse_mask
from gcn_alerts.daemons.control_server import ControlServer
from gcn_alerts.log import configure_logging
from gcn_alerts.parsers.binary_notice_parser import BinaryNoticeParser
from gcn_alerts.parsers.notice_types import notice_label
from gcn_alerts.schema import DELIVERABLE_MISSIONS, Policy
from gcn_alerts.shared.multicast import open_multicast_socket
from gcn_alerts.shared.status import StatusPublisher, connect_redis


class ReceiveState(str, Enum):
    INIT = "INIT"
    LISTENING = "LISTENING"
    STOPPED = "STOPPED"


class ScriptStarter:
    """
    Receive loop and control server around one alert policy.

    The policy and the in-flight notice are only touched while holding
    self.lock. quit() is cooperative: the loop stops before the next packet.
    """

    STATUS_KEY = "gcn:script_starter:status"

    def __init__(
        self,
        policy: Policy,
        launcher: ScriptLauncher,
        publisher: Optional[StatusPublisher] = None,
        group_address: str = "224.103.114.98",
        multicast_port: int = 2005,
        control_host: str = "0.0.0.0",
        control_port: int = 2006,
        packet_length: int = 160,
        status_interval: float = 10.0,
        socket_factory: Callable[[str, int], socket.socket] = open_multicast_socket,
        logger: Optional[logging.Logger] = None
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.policy = policy
        self.launcher = launcher
        self.publisher = publisher or StatusPublisher(status_key=self.STATUS_KEY, logger=self.logger)
        self.group_address = group_address
        self.multicast_port = multicast_port
        self.packet_length = packet_length
        self.status_interval = status_interval
        self.socket_factory = socket_factory

        self.lock = asyncio.Lock()
        self.parser = BinaryNoticeParser(logger=self.logger)
        self.alert_filter = AlertFilter(logger=self.logger)
        self.handler = ControlCommandHandler(policy, launcher, on_quit=self.quit, logger=self.logger)
        self.control_server = ControlServer(
            self.handler, self.lock, host=control_host, port=control_port, logger=self.logger
        )

        self.state = ReceiveState.INIT
        self.quit_requested = False
        self._receive_task: Optional[asyncio.Task] = None

        # Stats
        self.packets_received = 0
        self.alerts_accepted = 0
        self.alerts_rejected = 0
        self.scripts_launched = 0
        self.errors = 0
        self.start_time: Optional[datetime] = None

    async def handle_packet(
        self,
        data: bytes,
        received_at: Optional[datetime] = None
    ) -> Optional[ScriptProcess]:
        """
        Decode, filter and (if accepted) launch for one packet.

        Returns:
            The started script, or None if the notice was rejected
        """
        async with self.lock:
            self.packets_received += 1
            record = self.parser.parse_packet(data, self.policy.swift_accept_mask, received_at)
            label = notice_label(record.notice_type)

            decision = self.alert_filter.evaluate(record, self.policy)
            if not decision.accepted:
                self.alerts_rejected += 1
                self.logger.debug(f"[{label}] Notice rejected: {decision.reason}")
                return None

            self.alerts_accepted += 1
            self.logger.info(
                f"[{label}] Notice accepted: {record.mission.label} "
                f"trigger={record.trigger_number} seq={record.sequence_number}"
            )
            run = self.launcher.launch(record)
            if run is not None:
                self.scripts_launched += 1

        await self.publisher.publish_notice(record)
        return run

    async def receive_loop(self, sock: socket.socket) -> int:
        """
        Receive packets until quit() or a socket failure.

        Returns:
            0 after quit, 1 when the multicast socket failed
        """
        loop = asyncio.get_running_loop()
        self.state = ReceiveState.LISTENING
        self.logger.info(f"Listening for notices on {self.group_address}:{self.multicast_port}")
        exit_code = 0

        while not self.quit_requested:
            try:
                data = await loop.sock_recv(sock, self.packet_length)
            except OSError as e:
                self.logger.error(f"Multicast socket failed, stopping receive loop: {e}")
                exit_code = 1
                break

            try:
                await self.handle_packet(data)
            except Exception as e:
                self.logger.exception(f"Error handling packet: {e}")
                self.errors += 1

        self.state = ReceiveState.STOPPED
        return exit_code

    def quit(self):
        """Request the receive loop to stop"""
        self.quit_requested = True
        if self._receive_task is not None and not self._receive_task.done():
            # The loop may be blocked in sock_recv
            self._receive_task.cancel()

    async def _status_loop(self):
        while True:
            await self._update_status()
            await asyncio.sleep(self.status_interval)

    async def _update_status(self):
        """Update status in Redis for monitoring"""
        await self.publisher.update_status({
            "state": self.state.value,
            "socket_alerts_enabled": self.policy.socket_alerts_enabled,
            "manual_alerts_enabled": self.policy.manual_alerts_enabled,
            "allowed_missions": self.policy.allowed_missions.label,
            "packets_received": self.packets_received,
            "decode_errors": self.parser.decode_errors,
            "alerts_accepted": self.alerts_accepted,
            "alerts_rejected": self.alerts_rejected,
            "scripts_launched": self.scripts_launched,
            "manual_alerts_started": self.handler.manual_alerts_started,
            "errors": self.errors,
            "uptime_seconds": (datetime.now(timezone.utc) - self.start_time).total_seconds()
                if self.start_time else 0,
        })

    async def run(self) -> int:
        """
        Main run loop.

        Returns:
            Process exit status: 0 after quit, 1 on a fatal socket error
        """
        self.start_time = datetime.now(timezone.utc)
        self.logger.info(
            f"Starting script starter (missions={self.policy.allowed_missions.label}, "
            f"max error box={self.policy.max_error_radius_arcsec} arcsec)"
        )

        try:
            sock = self.socket_factory(self.group_address, self.multicast_port)
        except OSError as e:
            self.logger.error(f"Could not open multicast socket "
                              f"{self.group_address}:{self.multicast_port}: {e}")
            self.state = ReceiveState.STOPPED
            return 1

        status_task = None
        exit_code = 0
        try:
            try:
                await self.control_server.start()
            except OSError as e:
                self.logger.error(f"Could not start control server on port {self.control_server.port}: {e}")
                return 1
            status_task = asyncio.create_task(self._status_loop())
            self._receive_task = asyncio.create_task(self.receive_loop(sock))
            try:
                exit_code = await self._receive_task
            except asyncio.CancelledError:
                if not self.quit_requested:
                    raise
                self.logger.info("Receive loop stopped by quit command")
        finally:
            self.state = ReceiveState.STOPPED
            if status_task is not None:
                status_task.cancel()
                await asyncio.gather(status_task, return_exceptions=True)
            await self.control_server.stop()
            sock.close()
            await self._update_status()
            self.logger.info("Script starter stopped")

        return exit_code

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "packets_received": self.packets_received,
            "alerts_accepted": self.alerts_accepted,
            "alerts_rejected": self.alerts_rejected,
            "scripts_launched": self.scripts_launched,
            "parser": self.parser.get_stats(),
            "launcher": self.launcher.get_status(),
        }


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GCN Script Starter: start a script for each accepted GCN notice",
        allow_abbrev=False
    )
    parser.add_argument("-multicast_port", type=int, help="Multicast port of the notice feed")
    parser.add_argument("-group_address", help="Multicast group address of the notice feed")
    parser.add_argument("-control_port", type=int, help="TCP port of the control server")
    parser.add_argument("-script", help="Script started for each accepted notice")
    parser.add_argument("-all", action="store_true", help="Allow notices from every mission")
    for mission in DELIVERABLE_MISSIONS:
        parser.add_argument(
            f"-{mission.name.lower()}",
            dest="missions",
            action="append_const",
            const=mission.name,
            help=f"Allow {mission.name} notices"
        )
    parser.add_argument(
        "-max_error_box", "-meb",
        type=float,
        help="Largest notice error radius in arcseconds that starts the script"
    )
    parser.add_argument(
        "-max_propagation_delay",
        type=float,
        help="Largest burst-to-receipt delay in seconds that starts the script"
    )
    parser.add_argument(
        "-swift_soln_status_accept_mask", "-sssam",
        type=parse_mask,
        help="Swift solnStatus bits that must all be set (decimal or 0x hex)"
    )
    parser.add_argument(
        "-swift_soln_status_reject_mask", "-sssrm",
        type=parse_mask,
        help="Swift solnStatus bits that must all be clear (decimal or 0x hex)"
    )
    parser.add_argument(
        "-swift_merit_filter",
        action="store_true",
        help="Reject Swift BAT notices whose merit parameters say 'not a GRB'"
    )
    parser.add_argument("-disable_manual_alerts", action="store_true", help="Start with manual alerts disabled")
    parser.add_argument("-disable_socket_alerts", action="store_true", help="Start with socket alerts disabled")
    parser.add_argument("--redis-url", help="Redis connection URL")
    parser.add_argument("--dry-run", action="store_true", help="Run without Redis connection")
    parser.add_argument("--log-dir", help="Directory for daily log files")
    parser.add_argument("--log-level", help="Logging level")
    return parser


def apply_arguments(settings: GCNSettings, args: argparse.Namespace) -> GCNSettings:
    """Return settings with every command line override applied"""
    overrides = {}
    plain = {
        "multicast_port": args.multicast_port,
        "group_address": args.group_address,
        "control_port": args.control_port,
        "script": args.script,
        "max_error_box_arcsec": args.max_error_box,
        "max_propagation_delay_seconds": args.max_propagation_delay,
        "swift_accept_mask": args.swift_soln_status_accept_mask,
        "swift_reject_mask": args.swift_soln_status_reject_mask,
        "redis_url": args.redis_url,
        "log_dir": args.log_dir,
        "log_level": args.log_level,
    }
    overrides.update({key: value for key, value in plain.items() if value is not None})

    missions: List[str] = []
    if args.all:
        missions = [mission.name for mission in DELIVERABLE_MISSIONS]
    elif args.missions:
        missions = args.missions
    if missions:
        overrides["allowed_missions"] = missions

    if args.swift_merit_filter:
        overrides["swift_filter_on_merit"] = True
    if args.disable_manual_alerts:
        overrides["manual_alerts_enabled"] = False
    if args.disable_socket_alerts:
        overrides["socket_alerts_enabled"] = False

    return settings.model_copy(update=overrides)


async def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_arg_parser().parse_args(argv)
    settings = apply_arguments(get_settings(), args)
    log = configure_logging("SCRIPT_STARTER", settings.log_level, settings.log_dir)

    if not settings.script:
        log.error("No script specified (-script or GCN_SCRIPT)")
        return 1
    if not settings.allowed_missions:
        log.warning("No missions allowed, feed notices will never start the script")

    # Connect to Redis
    redis_client = None
    if not args.dry_run:
        redis_client = await connect_redis(settings.redis_url, log)

    starter = ScriptStarter(
        policy=Policy.from_settings(settings),
        launcher=ScriptLauncher(settings.script, logger=log),
        publisher=StatusPublisher(redis_client, ScriptStarter.STATUS_KEY, logger=log),
        group_address=settings.group_address,
        multicast_port=settings.multicast_port,
        control_port=settings.control_port,
        packet_length=settings.packet_length,
        logger=log
    )

    try:
        return await starter.run()
    finally:
        if redis_client:
            await redis_client.close()


def run_main():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_main()
