"""
GCN Notice Packet Generator

Builds binary GCN notice packets for testing. Uses the same layout table as
binary_notice_parser.py, so any field the parser reads can be written.

Packet format:
- 40 big-endian 32-bit words, 160 bytes
- Header words 0-3: type, serial number, hop count, seconds of day
- Word 39: terminator (bytes 0, 0, 0, 10)
"""

import struct
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence, Union

from gcn_alerts.parsers.binary_notice_parser import MERIT_IS_GRB
from gcn_alerts.parsers.layouts import (
    MERIT_PARAMETER_COUNT,
    SOLN_GRB,
    SOLN_INTERESTING,
    SOLN_POINT_SOURCE,
    WORDS_PER_PACKET,
    get_layout,
)
from gcn_alerts.parsers.notice_types import NoticeType
from gcn_alerts.parsers.time_codec import datetime_to_tjd

TERMINATOR = 10
HOP_COUNT = 1

Number = Union[int, float]


class NoticePacketBuilder:
    """
    Generate binary GCN notice packets.

    Each packet gets the next serial number, like a GCN socket server.
    """

    def __init__(self, first_serial: int = 1):
        self.serial = first_serial
        self.message_count = 0
        self.bytes_generated = 0

    def build(
        self,
        notice_type: int,
        values: Optional[Dict[str, Number]] = None,
        when: Optional[datetime] = None
    ) -> bytes:
        """
        Build one packet.

        Args:
            notice_type: Type code for word 0
            values: Field values by layout field name, in decoded units
            when: Time used for the packet seconds-of-day word

        Raises:
            ValueError: a value names a field the layout does not have
        """
        ts = when or datetime.now(timezone.utc)
        _, centiseconds = datetime_to_tjd(ts)

        words = [0] * WORDS_PER_PACKET
        words[0] = notice_type
        words[1] = self.serial
        words[2] = HOP_COUNT
        words[3] = centiseconds
        words[WORDS_PER_PACKET - 1] = TERMINATOR

        values = values or {}
        layout = get_layout(notice_type)
        specs = {spec.name: spec for spec in layout.fields} if layout else {}
        for name, value in values.items():
            spec = specs.get(name)
            if spec is None:
                raise ValueError(f"Notice type {notice_type} has no field {name!r}")
            words[spec.word] = (words[spec.word] & ~spec.mask) | spec.encode(value)

        message = struct.pack(f'>{WORDS_PER_PACKET}I', *(w & 0xFFFFFFFF for w in words))
        self.serial += 1
        self.message_count += 1
        self.bytes_generated += len(message)
        return message

    def imalive(self, when: Optional[datetime] = None) -> bytes:
        """Generate heartbeat packet (header only)"""
        return self.build(NoticeType.IMALIVE, when=when)

    def position_notice(
        self,
        notice_type: int,
        trigger_number: int,
        sequence_number: int,
        ra_deg: float,
        dec_deg: float,
        burst_time: Optional[datetime] = None,
        **values: Number
    ) -> bytes:
        """Generate any notice carrying a trigger, burst time and position"""
        burst_time = burst_time or datetime.now(timezone.utc)
        tjd, sod = datetime_to_tjd(burst_time)
        fields = {
            "trigger_number": trigger_number,
            "sequence_number": sequence_number,
            "burst_tjd": tjd,
            "burst_sod": sod,
            "ra_deg": ra_deg,
            "dec_deg": dec_deg,
        }
        fields.update(values)
        return self.build(notice_type, fields, when=burst_time)

    def swift_bat_position(
        self,
        trigger_number: int,
        sequence_number: int,
        ra_deg: float,
        dec_deg: float,
        error_arcmin: float = 3.0,
        soln_status: int = SOLN_POINT_SOURCE | SOLN_GRB | SOLN_INTERESTING,
        merit: Optional[Sequence[int]] = None,
        burst_time: Optional[datetime] = None,
        notice_type: int = NoticeType.SWIFT_BAT_GRB_POSITION,
        **values: Number
    ) -> bytes:
        """
        Generate a Swift BAT position notice (type 61, or 82 for the test type).

        Defaults describe a rate-triggered point source GRB with a
        3 arcmin error radius, burst flue 1000 and peak 500 counts,
        and merit parameter 0 saying it is a GRB.
        """
        fields = {
            "burst_flue": 1000,
            "burst_ipeak": 500,
            "error_radius_arcmin": error_arcmin,
            "soln_status": soln_status,
        }
        if merit is None:
            merit = (MERIT_IS_GRB,)
        for i, param in enumerate(merit[:MERIT_PARAMETER_COUNT]):
            fields[f"merit_{i}"] = param
        fields.update(values)
        return self.position_notice(
            notice_type, trigger_number, sequence_number, ra_deg, dec_deg, burst_time, **fields
        )

    def hete_update(
        self,
        trigger_number: int,
        sequence_number: int,
        ra_deg: float,
        dec_deg: float,
        wxm_diameter_arcsec: int = 0,
        sxc_diameter_arcsec: int = 0,
        validity: int = 0x1,
        burst_time: Optional[datetime] = None,
        notice_type: int = NoticeType.HETE_UPDATE,
        **values: Number
    ) -> bytes:
        """Generate a HETE update (41) or ground analysis (43) notice"""
        fields = {
            "wxm_error_diameter_arcsec": wxm_diameter_arcsec,
            "sxc_error_diameter_arcsec": sxc_diameter_arcsec,
            "validity": validity,
        }
        fields.update(values)
        return self.position_notice(
            notice_type, trigger_number, sequence_number, ra_deg, dec_deg, burst_time, **fields
        )

    def integral_position(
        self,
        trigger_number: int,
        sequence_number: int,
        ra_deg: float,
        dec_deg: float,
        error_arcsec: float = 120.0,
        test_flags: int = 0,
        burst_time: Optional[datetime] = None,
        notice_type: int = NoticeType.INTEGRAL_WAKEUP,
        **values: Number
    ) -> bytes:
        """Generate an INTEGRAL wakeup/refined/offline notice (53-55)"""
        fields = {
            "error_radius_arcmin": error_arcsec / 60.0,
            "test_flags": test_flags,
        }
        fields.update(values)
        return self.position_notice(
            notice_type, trigger_number, sequence_number, ra_deg, dec_deg, burst_time, **fields
        )

    def get_stats(self) -> Dict:
        """Get generator statistics"""
        return {
            "message_count": self.message_count,
            "bytes_generated": self.bytes_generated,
            "next_serial": self.serial,
        }
