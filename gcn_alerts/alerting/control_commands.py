"""
Control Commands

Parsing and execution of the line based control protocol:

    disable [all|socket|manual|status]
    enable [all|socket|manual|status]
    gamma_ray_burst_alert -ra <ra> -dec <dec> -epoch <epoch> -error_box <arcmin>
        -trigger_number <n> -sequence_number <n> -grb_date <date> -notice_date <date>
        [-HETE|-INTEGRAL|-SWIFT|-AGILE|-FERMI] [-test]
    help
    quit
    test

Parsing never raises on bad input: it returns a CommandError carrying the
response text. Execution mutates the policy or starts the script, and must
run under the alert context lock.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from astropy.coordinates import Angle

from gcn_alerts.alerting.script_launcher import ScriptLauncher
from gcn_alerts.parsers.angles import parse_dec, parse_ra
from gcn_alerts.parsers.time_codec import parse_alert_date
from gcn_alerts.schema import J2000_EPOCH, Mission, NoticeRecord, Policy

ALERT_TARGETS = ("all", "socket", "manual", "status")

HELP_TEXT = (
    "GCN Alert Command Server Help:\n"
    "\tdisable [all|socket|manual|status]\n"
    "\tenable [all|socket|manual|status]\n"
    "\tgamma_ray_burst_alert -ra <ra> -dec <dec> -epoch <epoch> -error_box <error_box> "
    "-trigger_number <n> -sequence_number <n> -grb_date <date> -notice_date <date> "
    "-HETE -INTEGRAL -SWIFT -AGILE -FERMI -test\n"
    "\thelp\n"
    "\tquit\n"
    "\ttest\n"
    "Dates specified in the form: yyyy-MM-dd'T'HH:mm:ss\n"
    "-ra specified as HH:MM:SS.ss\n"
    "-dec specified as [+|-]DD:MM:SS.ss\n"
    "-error_box specified as a radius in decimal arc-minutes\n"
)

MANUAL_PREFIX = "doGammaRayBurstAlertControlCommand:"


@dataclass(frozen=True)
class CommandError:
    """Command that could not be parsed; message is the response text"""
    message: str


@dataclass(frozen=True)
class AlertSwitchCommand:
    """enable/disable of socket and/or manual alerts"""
    enable: bool
    target: str = "all"


@dataclass(frozen=True)
class SimpleCommand:
    """help, quit or test"""
    name: str


@dataclass
class ManualAlertCommand:
    """gamma_ray_burst_alert arguments, collected flag by flag"""
    ra: Optional[Angle] = None
    dec: Optional[Angle] = None
    epoch: float = J2000_EPOCH
    error_box_arcmin: float = 0.0
    trigger_number: int = 0
    sequence_number: int = 0
    grb_date: Optional[datetime] = None
    notice_date: Optional[datetime] = None
    mission: Mission = Mission.UNKNOWN
    test: bool = False

    def to_record(self, now: Optional[datetime] = None) -> NoticeRecord:
        return NoticeRecord(
            mission=self.mission,
            trigger_number=self.trigger_number,
            sequence_number=self.sequence_number,
            ra=self.ra,
            dec=self.dec,
            epoch=self.epoch,
            error_radius_arcmin=self.error_box_arcmin,
            burst_time=self.grb_date,
            notice_time=self.notice_date or now or datetime.now(timezone.utc),
            is_test=self.test,
        )


ControlCommand = Union[AlertSwitchCommand, SimpleCommand, ManualAlertCommand]


def _parse_switch(tokens: List[str]) -> Union[AlertSwitchCommand, CommandError]:
    name = tokens[0]
    if len(tokens) == 1:
        return AlertSwitchCommand(enable=name == "enable")
    if len(tokens) == 2 and tokens[1] in ALERT_TARGETS:
        return AlertSwitchCommand(enable=name == "enable", target=tokens[1])
    return CommandError(f"Illegal {name} command : {name} [all|socket|manual|status].\n")


def _non_negative(text: str) -> float:
    value = float(text)
    if value < 0:
        raise ValueError("must not be negative")
    return value


# flag -> (attribute, converter, description used in errors, argument kind)
_VALUE_FLAGS = {
    "-ra": ("ra", parse_ra, "RA", "a string"),
    "-dec": ("dec", parse_dec, "Dec", "a string"),
    "-epoch": ("epoch", float, "epoch", "a double"),
    "-error_box": ("error_box_arcmin", _non_negative, "error box", "a double"),
    "-trigger_number": ("trigger_number", int, "trigger number", "an integer"),
    "-sequence_number": ("sequence_number", int, "sequence number", "an integer"),
    "-grb_date": ("grb_date", parse_alert_date, "GRB date", "an argument of the form yyyy-MM-dd'T'HH:mm:ss"),
    "-notice_date": ("notice_date", parse_alert_date, "notice date",
                     "an argument of the form yyyy-MM-dd'T'HH:mm:ss"),
}

_MISSION_FLAGS = {f"-{m.name}": m for m in (
    Mission.HETE, Mission.INTEGRAL, Mission.SWIFT, Mission.AGILE, Mission.FERMI
)}


def _parse_manual_alert(tokens: List[str]) -> Union[ManualAlertCommand, CommandError]:
    command = ManualAlertCommand()
    i = 1
    while i < len(tokens):
        flag = tokens[i]
        if flag in _VALUE_FLAGS:
            attribute, convert, description, kind = _VALUE_FLAGS[flag]
            if i + 1 >= len(tokens):
                return CommandError(f"{MANUAL_PREFIX}{flag} requires {kind}.\n")
            text = tokens[i + 1]
            try:
                setattr(command, attribute, convert(text))
            except ValueError as e:
                return CommandError(f"{MANUAL_PREFIX}Parsing {description}:{text} failed:{e}.\n")
            i += 2
            continue
        if flag in _MISSION_FLAGS:
            command.mission = _MISSION_FLAGS[flag]
        elif flag == "-test":
            command.test = True
        else:
            return CommandError(f"{MANUAL_PREFIX}Received unknown command argument:{flag}.\n")
        i += 1
    return command


def parse_command(line: str) -> Union[ControlCommand, CommandError]:
    """Parse one control line into a command or a CommandError."""
    tokens = line.split()
    if not tokens:
        return CommandError("No command specified.\n")
    name = tokens[0]
    if name in ("enable", "disable"):
        return _parse_switch(tokens)
    if name == "gamma_ray_burst_alert":
        return _parse_manual_alert(tokens)
    if name in ("help", "quit", "test"):
        return SimpleCommand(name)
    return CommandError(f"Unknown command:{name}\n")


def _flag(value: bool) -> str:
    return "true" if value else "false"


class ControlCommandHandler:
    """
    Executes parsed control commands against the policy and launcher.

    The caller holds the alert context lock around handle_line.
    """

    def __init__(
        self,
        policy: Policy,
        launcher: ScriptLauncher,
        on_quit: Optional[Callable[[], None]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.policy = policy
        self.launcher = launcher
        self.on_quit = on_quit
        self.logger = logger or logging.getLogger(__name__)
        self.commands_handled = 0
        self.manual_alerts_started = 0

    def handle_line(self, line: str) -> str:
        """Parse and execute one line, returning the response text"""
        self.commands_handled += 1
        command = parse_command(line)
        if isinstance(command, CommandError):
            self.logger.info(f"Control command rejected: {command.message.strip()}")
            return command.message
        try:
            return self.execute(command)
        except Exception as e:
            self.logger.exception(f"Control command {line.strip()!r} failed")
            return f"doControlCommand:An Exception occurred:{e}\n"

    def execute(self, command: ControlCommand) -> str:
        if isinstance(command, AlertSwitchCommand):
            return self._switch(command)
        if isinstance(command, ManualAlertCommand):
            return self._manual_alert(command)
        if command.name == "help":
            return HELP_TEXT
        if command.name == "quit":
            self.logger.info("doControlCommand:Quitting script starter.")
            if self.on_quit is not None:
                self.on_quit()
            return "Quitting script starter.\n"
        self.logger.info("doControlCommand:Test command received.")
        return "Test command received.\n"

    def _switch(self, command: AlertSwitchCommand) -> str:
        policy = self.policy
        word = "enabled" if command.enable else "disabled"
        if command.target == "status":
            response = (f"Socket alerts enable:{_flag(policy.socket_alerts_enabled)}, "
                        f"Manual alerts enable:{_flag(policy.manual_alerts_enabled)}.\n")
        elif command.target == "socket":
            policy.socket_alerts_enabled = command.enable
            response = f"Socket alerts {word}.\n"
        elif command.target == "manual":
            policy.manual_alerts_enabled = command.enable
            response = f"Manual alerts {word}.\n"
        else:
            policy.socket_alerts_enabled = command.enable
            policy.manual_alerts_enabled = command.enable
            response = f"All alerts {word}.\n"
        self.logger.info(f"doControlCommand:{response.strip()}")
        return response

    def _manual_alert(self, command: ManualAlertCommand) -> str:
        if not self.policy.manual_alerts_enabled:
            message = ("Failed to start script. "
                       "Manual Socket alerts have been disabled from the control socket.")
            self.logger.info(message)
            return message + "\n"
        if command.ra is None:
            return self._manual_failure("RA was NULL.")
        if command.dec is None:
            return self._manual_failure("Dec was NULL.")
        if command.mission == Mission.UNKNOWN:
            return self._manual_failure("No alert type specified.")

        record = command.to_record()
        if self.launcher.launch(record) is None:
            return self._manual_failure("Failed to start script.")
        self.manual_alerts_started += 1
        return f"{MANUAL_PREFIX} Script started.\n"

    def _manual_failure(self, reason: str) -> str:
        self.logger.info(f"{MANUAL_PREFIX} {reason}")
        return f"{MANUAL_PREFIX} {reason}\n"
