"""
Settings, mission flags and notice record tests
"""

import pytest
from pydantic import ValidationError

from gcn_alerts.config import GCNSettings, parse_destination, parse_mask
from gcn_alerts.parsers.angles import angle_from_degrees
from gcn_alerts.schema import Mission, NoticeRecord, Policy


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("GCN_SCRIPT", "/opt/alerts/grb_alert")
    monkeypatch.setenv("GCN_ALLOWED_MISSIONS", '["SWIFT", "FERMI"]')
    monkeypatch.setenv("GCN_SWIFT_ACCEPT_MASK", "0x3")
    monkeypatch.setenv("GCN_MAX_ERROR_BOX_ARCSEC", "600")
    settings = GCNSettings(_env_file=None)

    assert settings.script == "/opt/alerts/grb_alert"
    assert settings.swift_accept_mask == 3
    assert settings.multicast_port == 2005
    assert settings.control_port == 2006

    policy = Policy.from_settings(settings)
    assert policy.allowed_missions == Mission.SWIFT | Mission.FERMI
    assert policy.max_error_radius_arcsec == 600.0
    assert policy.max_propagation_delay is None


def test_parse_helpers():
    assert parse_mask("0x20") == 32
    assert parse_mask("7") == 7
    assert parse_destination("relay.example.org:5000") == ("relay.example.org", 5000)
    with pytest.raises(ValueError):
        parse_destination("relay.example.org")


def test_mission_labels():
    assert Mission.SWIFT.label == "SWIFT"
    assert Mission.UNKNOWN.label == "UNKNOWN"
    assert (Mission.HETE | Mission.SWIFT).label == "HETE|SWIFT"
    assert Mission.from_name(" fermi ") == Mission.FERMI
    with pytest.raises(ValueError):
        Mission.from_name("VELA")


def test_record_position_is_both_or_neither():
    with pytest.raises(ValidationError):
        NoticeRecord(mission=Mission.SWIFT, ra=angle_from_degrees(10.0))
    record = NoticeRecord(mission=Mission.SWIFT)
    assert not record.has_position


def test_record_error_radius_is_non_negative():
    with pytest.raises(ValidationError):
        NoticeRecord(error_radius_arcmin=-1.0)


def test_unknown_record_is_not_deliverable():
    record = NoticeRecord.unknown(61)
    assert record.notice_type == 61
    assert not record.is_deliverable
    assert record.to_redis_dict()["ra_deg"] == ""
