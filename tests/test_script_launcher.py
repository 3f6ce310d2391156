"""
Script launcher tests, running a small Python script as the alert script
"""

import sys
from datetime import datetime, timezone

import pytest

from gcn_alerts.alerting.script_launcher import ScriptLauncher
from gcn_alerts.parsers.angles import parse_dec, parse_ra
from gcn_alerts.schema import Mission, NoticeRecord

ALERT_SCRIPT = """
import sys
print(" ".join(sys.argv[1:]))
print("alert script warning", file=sys.stderr)
sys.exit(3)
"""

LATIN1_SCRIPT = """
import sys
import time
sys.stdout.buffer.write(b"caf\\xe9\\n")
sys.stdout.flush()
time.sleep(0.2)
for i in range(3):
    print(f"line {i}", flush=True)
"""


def make_record(**overrides) -> NoticeRecord:
    fields = dict(
        mission=Mission.SWIFT,
        notice_type=61,
        trigger_number=100,
        sequence_number=1,
        ra=parse_ra("05:34:30.0"),
        dec=parse_dec("+22:00:52.0"),
        error_radius_arcmin=2.0,
        burst_time=datetime(2024, 3, 14, 12, 30, 15, tzinfo=timezone.utc),
        notice_time=datetime(2024, 3, 14, 12, 31, 0, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return NoticeRecord(**fields)


@pytest.fixture
def script(tmp_path):
    path = tmp_path / "alert.py"
    path.write_text(ALERT_SCRIPT)
    return path


def test_build_arguments():
    launcher = ScriptLauncher("/usr/local/bin/grb_alert --site test")
    args = launcher.build_arguments(make_record(is_test=True))
    assert args == [
        "/usr/local/bin/grb_alert", "--site", "test",
        "-SWIFT",
        "-ra", "05:34:30.00",
        "-dec", "+22:00:52.00",
        "-epoch", "2000.0",
        "-error_box", "2.0",
        "-trigger_number", "100",
        "-sequence_number", "1",
        "-grb_date", "2024-03-14T12:30:15",
        "-notice_date", "2024-03-14T12:31:00",
        "-test",
    ]


def test_unknown_mission_is_never_launched():
    launcher = ScriptLauncher("alert")
    with pytest.raises(ValueError):
        launcher.build_arguments(make_record(mission=Mission.UNKNOWN))
    assert launcher.launch(make_record(mission=Mission.UNKNOWN)) is None
    assert launcher.launch_failures == 1


def test_launch_drains_output_and_reports_exit(script, caplog):
    launcher = ScriptLauncher([sys.executable, str(script)])
    with caplog.at_level("INFO"):
        run = launcher.launch(make_record())
        assert run is not None
        assert run.wait(timeout=30) == 3

    logs = launcher.get_logs(run.pid)
    assert any(line.startswith("[stdout] -SWIFT -ra 05:34:30.00 -dec +22:00:52.00") for line in logs)
    assert "[stderr] alert script warning" in logs
    assert "terminated with exit value 3" in caplog.text
    assert launcher.launched == 1
    assert launcher.get_status()["running"] == []


def test_undecodable_output_does_not_break_the_script(tmp_path, caplog):
    path = tmp_path / "latin1.py"
    path.write_text(LATIN1_SCRIPT)
    launcher = ScriptLauncher([sys.executable, str(path)])
    with caplog.at_level("INFO"):
        run = launcher.launch(make_record())
        assert run is not None
        assert run.wait(timeout=30) == 0

    logs = launcher.get_logs(run.pid)
    assert "[stdout] caf\ufffd" in logs
    assert "[stdout] line 2" in logs
    assert "reader error" not in caplog.text


def test_spawn_failure_is_logged_not_raised(tmp_path, caplog):
    launcher = ScriptLauncher([str(tmp_path / "missing_script")])
    with caplog.at_level("ERROR"):
        assert launcher.launch(make_record()) is None
    assert launcher.launch_failures == 1
    assert "Failed to start" in caplog.text
