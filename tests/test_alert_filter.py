"""
Alert filter tests
"""

from datetime import datetime, timedelta, timezone

import pytest

from gcn_alerts.alerting.alert_filter import AlertFilter
from gcn_alerts.parsers.angles import angle_from_degrees
from gcn_alerts.schema import Mission, NoticeRecord, Policy

NOW = datetime(2024, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


def make_record(**overrides) -> NoticeRecord:
    fields = dict(
        mission=Mission.SWIFT,
        notice_type=61,
        trigger_number=100,
        sequence_number=1,
        ra=angle_from_degrees(150.0),
        dec=angle_from_degrees(20.0),
        error_radius_arcmin=3.0,
        burst_time=NOW - timedelta(seconds=30),
        notice_time=NOW,
        status_bits=0x3,
    )
    fields.update(overrides)
    return NoticeRecord(**fields)


@pytest.fixture
def alert_filter():
    return AlertFilter()


def test_accepts_good_notice(alert_filter, policy):
    assert alert_filter.accept(make_record(), policy, now=NOW)


def test_rejects_missions_not_allowed(alert_filter):
    policy = Policy(allowed_missions=Mission.HETE | Mission.INTEGRAL)
    decision = alert_filter.evaluate(make_record(), policy, now=NOW)
    assert not decision.accepted
    assert "allowed missions" in decision.reason


def test_rejects_unknown_mission(alert_filter, policy):
    assert not alert_filter.accept(make_record(mission=Mission.UNKNOWN), policy, now=NOW)


def test_rejects_when_socket_alerts_disabled(alert_filter, policy):
    policy.socket_alerts_enabled = False
    decision = alert_filter.evaluate(make_record(), policy, now=NOW)
    assert not decision.accepted
    assert "disabled" in decision.reason


def test_error_radius_boundary_is_inclusive(alert_filter, policy):
    policy.max_error_radius_arcsec = 180.0
    assert alert_filter.accept(make_record(error_radius_arcmin=3.0), policy, now=NOW)
    assert not alert_filter.accept(make_record(error_radius_arcmin=3.0001), policy, now=NOW)


def test_propagation_delay(alert_filter, policy):
    policy.max_propagation_delay = timedelta(minutes=5)
    late = make_record(burst_time=NOW - timedelta(minutes=10))
    assert not alert_filter.accept(late, policy, now=NOW)
    assert alert_filter.accept(make_record(), policy, now=NOW)
    # No limit configured
    policy.max_propagation_delay = None
    assert alert_filter.accept(late, policy, now=NOW)


def test_requires_position(alert_filter, policy):
    decision = alert_filter.evaluate(make_record(ra=None, dec=None), policy, now=NOW)
    assert not decision.accepted
    assert decision.reason == "RA was NULL"


def test_swift_reject_mask_wins_over_accept_mask(alert_filter, policy):
    policy.swift_accept_mask = 0x1
    policy.swift_reject_mask = 0x20
    record = make_record(status_bits=0x1 | 0x20)
    assert not alert_filter.accept(record, policy, now=NOW)
    assert alert_filter.accept(make_record(status_bits=0x1), policy, now=NOW)


def test_swift_accept_mask_requires_all_bits(alert_filter, policy):
    policy.swift_accept_mask = 0x3
    assert not alert_filter.accept(make_record(status_bits=0x1), policy, now=NOW)
    assert alert_filter.accept(make_record(status_bits=0x7), policy, now=NOW)


def test_overlapping_masks_only_warn(alert_filter, policy, caplog):
    policy.swift_accept_mask = 0x3
    policy.swift_reject_mask = 0x2
    with caplog.at_level("WARNING"):
        assert alert_filter.accept(make_record(status_bits=0x0), policy, now=NOW)
    assert "overlapping" in caplog.text


def test_masks_only_apply_to_swift(alert_filter, policy):
    policy.swift_reject_mask = 0x1
    record = make_record(mission=Mission.INTEGRAL, status_bits=0x1)
    assert alert_filter.accept(record, policy, now=NOW)


def test_merit_filter(alert_filter, policy):
    record = make_record(has_merit=False)
    assert alert_filter.accept(record, policy, now=NOW)
    policy.swift_filter_on_merit = True
    assert not alert_filter.accept(record, policy, now=NOW)


def test_filter_is_deterministic(alert_filter, policy):
    record = make_record(error_radius_arcmin=100.0)
    first = alert_filter.evaluate(record, policy, now=NOW)
    second = alert_filter.evaluate(record, policy, now=NOW)
    assert first == second
    assert record.error_radius_arcmin == 100.0
