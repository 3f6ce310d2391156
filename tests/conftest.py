"""
Shared fixtures for the GCN alert tests
"""

from datetime import datetime, timezone

import pytest

from gcn_alerts.alerting.script_launcher import ScriptLauncher
from gcn_alerts.generators.notice_generator import NoticePacketBuilder
from gcn_alerts.parsers.binary_notice_parser import BinaryNoticeParser
from gcn_alerts.schema import ALL_MISSIONS, Policy

BURST_TIME = datetime(2024, 3, 14, 12, 30, 15, tzinfo=timezone.utc)
RECEIVED_AT = datetime(2024, 3, 14, 12, 31, 0, tzinfo=timezone.utc)


class RecordingLauncher(ScriptLauncher):
    """Launcher that records argument lists instead of spawning"""

    def __init__(self):
        super().__init__("alert_script")
        self.records = []
        self.arguments = []

    def launch(self, record):
        self.records.append(record)
        self.arguments.append(self.build_arguments(record))
        self.launched += 1
        return object()


@pytest.fixture
def builder():
    return NoticePacketBuilder()


@pytest.fixture
def parser():
    return BinaryNoticeParser()


@pytest.fixture
def policy():
    return Policy(allowed_missions=ALL_MISSIONS)


@pytest.fixture
def launcher():
    return RecordingLauncher()
