"""
Celestial angle helpers.

GCN packets carry RA/Dec as signed degrees x 10000. Positions are held as
astropy Angles and rendered as H:M:S / +D:M:S strings for the alert script.
"""

import astropy.units as u
from astropy.coordinates import Angle

# Fixed point scale of all GCN angle words
ANGLE_SCALE = 10000


def angle_from_degrees(degrees: float) -> Angle:
    return Angle(degrees, unit=u.deg)


def angle_from_fixed_point(raw: int) -> Angle:
    """Convert a degrees x 10000 word to an Angle"""
    return angle_from_degrees(raw / ANGLE_SCALE)


def fixed_point_from_degrees(degrees: float) -> int:
    """Inverse of angle_from_fixed_point, rounded to the nearest step"""
    return int(round(degrees * ANGLE_SCALE))


def parse_ra(text: str) -> Angle:
    """
    Parse a right ascension given as HH:MM:SS.ss.

    Raises:
        ValueError: text is not a valid right ascension
    """
    try:
        ra = Angle(text, unit=u.hourangle)
    except (ValueError, u.UnitsError) as e:
        raise ValueError(f"Invalid RA {text!r}: {e}") from None
    if not 0 <= ra.hour < 24:
        raise ValueError(f"RA out of range: {text!r}")
    return ra


def parse_dec(text: str) -> Angle:
    """
    Parse a declination given as [+|-]DD:MM:SS.ss.

    Raises:
        ValueError: text is not a valid declination
    """
    try:
        dec = Angle(text, unit=u.deg)
    except (ValueError, u.UnitsError) as e:
        raise ValueError(f"Invalid Dec {text!r}: {e}") from None
    if not -90 <= dec.degree <= 90:
        raise ValueError(f"Dec out of range: {text!r}")
    return dec


def format_ra(ra: Angle) -> str:
    return ra.wrap_at(360 * u.deg).to_string(unit=u.hourangle, sep=":", precision=2, pad=True)


def format_dec(dec: Angle) -> str:
    return dec.to_string(unit=u.deg, sep=":", precision=2, alwayssign=True, pad=True)
