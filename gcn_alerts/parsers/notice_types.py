"""
GCN notice type codes (packet word 0).
"""

from enum import IntEnum


class NoticeType(IntEnum):
    """GCN socket packet type identifiers"""
    IMALIVE = 3
    KILL_SOCKET = 4
    SAX_WFC_GRB_POS = 34
    HETE_ALERT = 40
    HETE_UPDATE = 41
    HETE_LAST = 42
    HETE_GNDANA = 43
    HETE_TEST = 44
    INTEGRAL_POINTDIR = 51
    INTEGRAL_SPIACS = 52
    INTEGRAL_WAKEUP = 53
    INTEGRAL_REFINED = 54
    INTEGRAL_OFFLINE = 55
    SWIFT_BAT_GRB_ALERT = 60
    SWIFT_BAT_GRB_POSITION = 61
    SWIFT_BAT_GRB_NACK_POSITION = 62
    SWIFT_BAT_GRB_LC = 63
    SWIFT_BAT_SCALEDMAP = 64
    SWIFT_FOM_OBS = 65
    SWIFT_SC_SLEW = 66
    SWIFT_XRT_POSITION = 67
    SWIFT_XRT_SPECTRUM = 68
    SWIFT_XRT_IMAGE = 69
    SWIFT_XRT_LC = 70
    SWIFT_XRT_NACK_POSITION = 71
    SWIFT_UVOT_DBURST = 72
    SWIFT_UVOT_FCHART = 73
    SWIFT_BAT_GRB_LC_PROC = 76
    SWIFT_XRT_SPECTRUM_PROC = 77
    SWIFT_XRT_IMAGE_PROC = 78
    SWIFT_UVOT_DBURST_PROC = 79
    SWIFT_UVOT_FCHART_PROC = 80
    SWIFT_UVOT_POSITION = 81
    SWIFT_BAT_GRB_POS_TEST = 82
    AGILE_GRB_WAKEUP = 100
    AGILE_TRANSIENT = 109
    FERMI_LAT_POS_UPD = 121
    FERMI_LAT_POS_TEST = 124
    FERMI_LAT_GND = 127


def notice_label(code: int) -> str:
    """Readable label for a type code, TYPE-<n> when the code is not known"""
    try:
        return NoticeType(code).name
    except ValueError:
        return f"TYPE-{code}"
