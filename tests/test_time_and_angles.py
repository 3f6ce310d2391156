"""
TJD time codec and angle helper tests
"""

from datetime import datetime, timezone

import pytest

from gcn_alerts.parsers.angles import (
    angle_from_fixed_point,
    fixed_point_from_degrees,
    format_dec,
    format_ra,
    parse_dec,
    parse_ra,
)
from gcn_alerts.parsers.time_codec import (
    TJD_ANCHOR,
    datetime_to_tjd,
    decimal_year,
    format_alert_date,
    parse_alert_date,
    tjd_to_datetime,
)
from gcn_alerts.tools import tjd as tjd_tool


def test_tjd_anchor():
    assert tjd_to_datetime(TJD_ANCHOR, 0) == datetime(2003, 1, 1, tzinfo=timezone.utc)


def test_tjd_with_centiseconds():
    when = tjd_to_datetime(12641, 360050)
    assert when == datetime(2003, 1, 2, 1, 0, 0, 500000, tzinfo=timezone.utc)
    assert datetime_to_tjd(when) == (12641, 360050)


def test_naive_datetimes_are_utc():
    assert datetime_to_tjd(datetime(2003, 1, 1)) == (TJD_ANCHOR, 0)


def test_decimal_year():
    assert decimal_year(datetime(2000, 1, 1, tzinfo=timezone.utc)) == 2000.0
    # 2004 is a leap year: 183 of 366 days have passed on 2nd July
    assert decimal_year(datetime(2004, 7, 2, tzinfo=timezone.utc)) == pytest.approx(2004.5)


def test_alert_date_round_trip():
    when = parse_alert_date("2024-03-14T12:30:15")
    assert when == datetime(2024, 3, 14, 12, 30, 15, tzinfo=timezone.utc)
    assert format_alert_date(when) == "2024-03-14T12:30:15"


def test_alert_date_rejects_other_formats():
    with pytest.raises(ValueError):
        parse_alert_date("14/03/2024")


def test_parse_and_format_ra():
    ra = parse_ra("05:34:30.0")
    assert ra.degree == pytest.approx(83.625)
    assert format_ra(ra) == "05:34:30.00"


def test_parse_and_format_dec():
    dec = parse_dec("+22:00:52.0")
    assert dec.degree == pytest.approx(22.0144444, abs=1e-6)
    assert format_dec(dec) == "+22:00:52.00"
    assert format_dec(parse_dec("-05:30:00")) == "-05:30:00.00"


@pytest.mark.parametrize("text", ["25:00:00", "not an angle"])
def test_parse_ra_rejects_bad_values(text):
    with pytest.raises(ValueError):
        parse_ra(text)


@pytest.mark.parametrize("text", ["+91:00:00", "north"])
def test_parse_dec_rejects_bad_values(text):
    with pytest.raises(ValueError):
        parse_dec(text)


def test_fixed_point_angles():
    assert fixed_point_from_degrees(150.0) == 1500000
    assert angle_from_fixed_point(-456789).degree == pytest.approx(-45.6789)


def test_tjd_tool(capsys):
    assert tjd_tool.main(["12640", "360000"]) == 0
    out = capsys.readouterr().out
    assert "TJD 12640 SOD 360000" in out
    assert "2003-01-01T01:00:00" in out
