"""
Script Launcher

Starts the alert script for an accepted notice and monitors it.
Each launch returns as soon as the process is spawned; background threads
drain the script's stdout/stderr into the log (so a chatty script never
blocks on a full pipe) and wait for its exit code.

Script invocation:
    <script> -<MISSION> -ra <HH:MM:SS.ss> -dec <+DD:MM:SS.ss> -epoch <epoch>
        -error_box <arcmin> -trigger_number <n> -sequence_number <n>
        [-grb_date <yyyy-MM-ddTHH:mm:ss>] [-notice_date <yyyy-MM-ddTHH:mm:ss>] [-test]
"""

import logging
import shlex
import subprocess
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, IO, List, Optional, Sequence, Union

from gcn_alerts.parsers.angles import format_dec, format_ra
from gcn_alerts.parsers.time_codec import format_alert_date
from gcn_alerts.schema import Mission, NoticeRecord

# Maximum log lines to keep per script run
MAX_LOG_LINES = 100
# Finished runs kept for status reporting
MAX_FINISHED_RUNS = 20


@dataclass
class ScriptProcess:
    """One alert script run"""
    command: List[str]
    process: subprocess.Popen
    started_at: datetime
    log_buffer: deque = field(default_factory=lambda: deque(maxlen=MAX_LOG_LINES))
    threads: List[threading.Thread] = field(default_factory=list)
    exit_code: Optional[int] = None
    finished: threading.Event = field(default_factory=threading.Event)

    @property
    def pid(self) -> int:
        return self.process.pid

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the script exits and its output is drained"""
        self.finished.wait(timeout)
        return self.exit_code


class ScriptLauncher:
    """
    Builds script arguments from notice records and spawns the script.

    Spawn failures are logged and reported as None, never raised.
    """

    def __init__(
        self,
        script: Union[str, Sequence[str]],
        logger: Optional[logging.Logger] = None
    ):
        self.command = shlex.split(script) if isinstance(script, str) else list(script)
        self.logger = logger or logging.getLogger(__name__)
        self.processes: Dict[int, ScriptProcess] = {}
        self.launched = 0
        self.launch_failures = 0
        self._lock = threading.Lock()

    def build_arguments(self, record: NoticeRecord) -> List[str]:
        """
        Build the full script command line for a record.

        Raises:
            ValueError: record has no mission or no position
        """
        if record.mission == Mission.UNKNOWN:
            raise ValueError("Notice mission is UNKNOWN, refusing to start script")
        if not record.has_position:
            raise ValueError("Notice has no RA/Dec, refusing to start script")

        args = [
            f"-{record.mission.label}",
            "-ra", format_ra(record.ra),
            "-dec", format_dec(record.dec),
            "-epoch", str(record.epoch),
            "-error_box", str(record.error_radius_arcmin),
            "-trigger_number", str(record.trigger_number),
            "-sequence_number", str(record.sequence_number),
        ]
        if record.burst_time is not None:
            args.extend(["-grb_date", format_alert_date(record.burst_time)])
        if record.notice_time is not None:
            args.extend(["-notice_date", format_alert_date(record.notice_time)])
        if record.is_test:
            args.append("-test")
        return self.command + args

    def launch(self, record: NoticeRecord) -> Optional[ScriptProcess]:
        """
        Start the script for a record without waiting for it.

        Returns:
            The running ScriptProcess, or None if it could not be started
        """
        if not self.command:
            self.logger.error("No script configured, cannot start script")
            self.launch_failures += 1
            return None

        try:
            cmd = self.build_arguments(record)
        except ValueError as e:
            self.logger.error(f"startScript: {e}")
            self.launch_failures += 1
            return None

        self.logger.info(f"startScript: Executing: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1
            )
        except OSError as e:
            self.logger.error(f"startScript: Failed to start {cmd[0]}: {e}")
            self.launch_failures += 1
            return None

        run = ScriptProcess(command=cmd, process=process, started_at=datetime.now(timezone.utc))
        drains = [
            threading.Thread(
                target=self._drain_stream,
                args=(run, process.stdout, "stdout", logging.INFO),
                daemon=True
            ),
            threading.Thread(
                target=self._drain_stream,
                args=(run, process.stderr, "stderr", logging.WARNING),
                daemon=True
            ),
        ]
        waiter = threading.Thread(target=self._wait_for_exit, args=(run, drains), daemon=True)
        run.threads = drains + [waiter]

        with self._lock:
            self.processes[process.pid] = run
            self.launched += 1
            self._prune_finished()

        for thread in run.threads:
            thread.start()

        return run

    def _drain_stream(self, run: ScriptProcess, stream: IO[str], name: str, level: int):
        """Background thread copying one script stream into the log."""
        try:
            for line in stream:
                line = line.rstrip("\n")
                run.log_buffer.append(f"[{name}] {line}")
                self.logger.log(level, f"Script {run.pid} {name}: {line}")
        except (OSError, ValueError) as e:
            self.logger.error(f"Script {run.pid} {name} reader error: {e}")
        finally:
            stream.close()

    def _wait_for_exit(self, run: ScriptProcess, drains: List[threading.Thread]):
        """Background thread waiting for the script to exit."""
        exit_code = run.process.wait()
        for thread in drains:
            thread.join()
        run.exit_code = exit_code
        level = logging.INFO if exit_code == 0 else logging.WARNING
        self.logger.log(level, f"Script {run.pid} terminated with exit value {exit_code}")
        run.finished.set()

    def _prune_finished(self):
        finished = [pid for pid, run in self.processes.items() if run.finished.is_set()]
        for pid in finished[:max(0, len(finished) - MAX_FINISHED_RUNS)]:
            del self.processes[pid]

    def get_status(self) -> dict:
        """Get launcher statistics and running scripts"""
        with self._lock:
            running = [
                {"pid": run.pid, "started_at": run.started_at.isoformat()}
                for run in self.processes.values()
                if not run.finished.is_set()
            ]
        return {
            "launched": self.launched,
            "launch_failures": self.launch_failures,
            "running": running,
        }

    def get_logs(self, pid: int, lines: int = 50) -> List[str]:
        """Recent output lines of a script run"""
        run = self.processes.get(pid)
        if run is None:
            return []
        return list(run.log_buffer)[-lines:]
