"""
GCN Binary Notice Parser

Decodes the fixed 160 byte packets broadcast on the GCN multicast feed.

Packet format:
- 40 big-endian 32-bit words
- Word 0: notice type code
- Words 1-3: serial number, hop count, seconds of day (logged only)
- Words 4-38: mission specific payload, see layouts.py
- Word 39: terminator (logged, not validated)

Decoding is one dispatcher driven by the per-type layout table. Notice types
without a layout, and packets that fail to decode, produce an UNKNOWN
mission record so they are never propagated.
"""

import logging
import struct
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple, Union

from pydantic import ValidationError

from gcn_alerts.parsers.angles import angle_from_degrees, format_dec, format_ra
from gcn_alerts.parsers.layouts import (
    EPOCH_BURST_DATE,
    ERROR_RADIUS,
    ERROR_SMALLEST_DIAMETER,
    MERIT_PARAMETER_COUNT,
    PACKET_LENGTH,
    SOLN_IMAGE_TRIGGER,
    SOLN_STATUS_DESCRIPTIONS,
    STATUS_NATIVE,
    STATUS_SYNTHESISED,
    WORDS_PER_PACKET,
    NoticeLayout,
    get_layout,
    translate_misc_bits,
)
from gcn_alerts.parsers.notice_types import notice_label
from gcn_alerts.parsers.time_codec import decimal_year, tjd_to_datetime
from gcn_alerts.schema import J2000_EPOCH, Mission, NoticeRecord

FieldValues = Dict[str, Union[int, float]]

# Merit parameter 0 values
MERIT_IS_GRB = 1
MERIT_NOT_GRB = 0


class NoticeDecodeError(ValueError):
    """Packet is short or carries values that cannot be decoded"""


def smallest_nonzero(*values: float) -> float:
    """Smallest non-zero value, or 0 when all are zero"""
    nonzero = [v for v in values if v > 0]
    return min(nonzero) if nonzero else 0.0


def merit_has_grb(param0: int) -> Optional[bool]:
    """
    Interpret merit parameter 0.

    Returns True (confirmed GRB), False (confirmed not a GRB) or None when
    the value cannot be decoded.
    """
    if param0 == MERIT_IS_GRB:
        return True
    if param0 == MERIT_NOT_GRB:
        return False
    return None


class BinaryNoticeParser:
    """
    Parser for GCN binary notice packets.

    A parser holds only statistics; every call decodes into a fresh record.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.packets_parsed = 0
        self.decode_errors = 0
        self.unknown_types = 0
        self.type_counts: Counter = Counter()

    def unpack_words(self, data: bytes) -> Tuple[int, ...]:
        """
        Split a packet into its 40 words, each taken as unsigned.

        Raises:
            NoticeDecodeError: fewer than 160 bytes
        """
        if len(data) < PACKET_LENGTH:
            raise NoticeDecodeError(f"Packet too short: {len(data)} bytes, expected {PACKET_LENGTH}")
        return struct.unpack(f'>{WORDS_PER_PACKET}I', bytes(data[:PACKET_LENGTH]))

    @staticmethod
    def extract_fields(layout: NoticeLayout, words: Tuple[int, ...]) -> FieldValues:
        return {spec.name: spec.extract(words[spec.word]) for spec in layout.fields}

    def decode(
        self,
        data: bytes,
        swift_accept_mask: int = 0,
        received_at: Optional[datetime] = None
    ) -> NoticeRecord:
        """
        Decode one packet.

        Args:
            data: Raw packet (at least 160 bytes)
            swift_accept_mask: Current Swift accept mask, seeds the status
                of XRT/UVOT notices
            received_at: Notice time, defaults to now

        Raises:
            NoticeDecodeError: short packet or undecodable values
        """
        notice_time = received_at or datetime.now(timezone.utc)
        words = self.unpack_words(data)
        notice_type = words[0]
        label = notice_label(notice_type)

        self.packets_parsed += 1
        self.type_counts[label] += 1
        self.logger.info(f"Read packet type: {notice_type} [{label}]")

        layout = get_layout(notice_type)
        if layout is None:
            self.unknown_types += 1
            self.logger.info(f"[{label}] No layout for notice type, not propagated")
            return NoticeRecord.unknown(notice_type, notice_time)

        values = self.extract_fields(layout, words)
        self.logger.debug(f"[{label}] " + ", ".join(f"{k}={v}" for k, v in values.items()))
        return self._build_record(layout, values, swift_accept_mask, notice_time)

    def parse_packet(
        self,
        data: bytes,
        swift_accept_mask: int = 0,
        received_at: Optional[datetime] = None
    ) -> NoticeRecord:
        """
        Decode one packet, never raising.

        Decode failures are logged and downgraded to an UNKNOWN mission record.
        """
        notice_time = received_at or datetime.now(timezone.utc)
        try:
            return self.decode(data, swift_accept_mask, notice_time)
        except (NoticeDecodeError, struct.error, ValidationError) as e:
            self.decode_errors += 1
            notice_type = int.from_bytes(data[:4], "big") if len(data) >= 4 else 0
            self.logger.error(f"[{notice_label(notice_type)}] Error decoding packet: {e}")
            return NoticeRecord.unknown(notice_type, notice_time)

    def _build_record(
        self,
        layout: NoticeLayout,
        values: FieldValues,
        swift_accept_mask: int,
        notice_time: datetime
    ) -> NoticeRecord:
        label = layout.label
        mission = layout.mission
        fields = {"notice_type": layout.notice_type.value, "notice_time": notice_time}

        if "trigger_number" in values:
            fields["trigger_number"] = values["trigger_number"]
            fields["sequence_number"] = values["sequence_number"]
            self.logger.info(f"[{label}] Trigger No: {values['trigger_number']} "
                             f"Mesg Seq. No: {values['sequence_number']}")

        burst_time = None
        if "burst_tjd" in values:
            try:
                burst_time = tjd_to_datetime(values["burst_tjd"], values["burst_sod"])
            except OverflowError as e:
                raise NoticeDecodeError(f"Burst TJD {values['burst_tjd']} out of range: {e}") from e
            fields["burst_time"] = burst_time
            self.logger.info(f"[{label}] Burst TJD: {values['burst_tjd']} : {values['burst_sod']} "
                             f"centi-seconds of day, date {burst_time.isoformat()}")

        position_valid = "ra_deg" in values
        if position_valid and layout.position_floor_deg is not None:
            if values["ra_deg"] < layout.position_floor_deg or values["dec_deg"] < layout.position_floor_deg:
                self.logger.info(f"[{label}] RA/Dec out of range: ra={values['ra_deg']} "
                                 f"dec={values['dec_deg']} degrees")
                position_valid = False
                mission = Mission.UNKNOWN

        if layout.invalid_mask:
            validity = values.get("validity", 0)
            self.logger.info(f"[{label}] Validity Flag: 0x{validity:x}")
            if validity & layout.invalid_mask:
                self.logger.info(f"[{label}] BURST INVALID: RA/Dec not set")
                position_valid = False
                mission = Mission.UNKNOWN

        if position_valid:
            ra = angle_from_degrees(values["ra_deg"])
            dec = angle_from_degrees(values["dec_deg"])
            fields["ra"] = ra
            fields["dec"] = dec
            epoch = J2000_EPOCH
            if layout.epoch_rule == EPOCH_BURST_DATE and burst_time is not None:
                epoch = decimal_year(burst_time)
            fields["epoch"] = epoch
            self.logger.info(f"[{label}] Burst RA: {format_ra(ra)} Dec: {format_dec(dec)} Epoch: {epoch}")

        fields["error_radius_arcmin"] = self._error_radius(layout, values)

        if layout.status_rule == STATUS_NATIVE:
            fields["status_bits"] = values["soln_status"]
            self._log_soln_status(label, values["soln_status"])
        elif layout.status_rule == STATUS_SYNTHESISED:
            misc = values["misc"]
            status = swift_accept_mask | translate_misc_bits(misc, layout.misc_status_bits)
            fields["status_bits"] = status
            self.logger.info(f"[{label}] Misc Bits: 0x{misc:x}, synthesised status: 0x{status:x}")

        if layout.merit:
            fields["has_merit"] = self._merit(label, values)

        if layout.test_field is not None and values[layout.test_field] & layout.test_mask:
            self.logger.info(f"[{label}] Test Notice - Not a real event")
            fields["is_test"] = True
            mission = Mission.UNKNOWN

        if layout.test_type:
            fields["is_test"] = True
            mission = Mission.UNKNOWN

        fields["mission"] = mission
        return NoticeRecord(**fields)

    def _error_radius(self, layout: NoticeLayout, values: FieldValues) -> float:
        label = layout.label
        if layout.error_rule == ERROR_RADIUS:
            radius = values["error_radius_arcmin"]
        elif layout.error_rule == ERROR_SMALLEST_DIAMETER:
            wxm = values["wxm_error_diameter_arcsec"]
            sxc = values["sxc_error_diameter_arcsec"]
            self.logger.info(f"[{label}] Error box diameters (arcsec): WXM {wxm} SXC {sxc}")
            # Diameter in arcsec to radius in arcmin
            radius = smallest_nonzero(wxm, sxc) / (2.0 * 60.0)
        else:
            return 0.0

        if radius < 0:
            raise NoticeDecodeError(f"Negative error radius: {radius} arcmin")
        self.logger.info(f"[{label}] Error Box Radius (arcmin): {radius}")
        return float(radius)

    def _log_soln_status(self, label: str, status: int):
        self.logger.info(f"[{label}] Soln Status: 0x{status:x}")
        for bit, description in SOLN_STATUS_DESCRIPTIONS:
            if status & bit:
                self.logger.info(f"[{label}] Soln Status: {description}")
        if not status & SOLN_IMAGE_TRIGGER:
            self.logger.info(f"[{label}] Soln Status: It is a rate trigger.")

    def _merit(self, label: str, values: FieldValues) -> bool:
        params = [values[f"merit_{i}"] for i in range(MERIT_PARAMETER_COUNT)]
        self.logger.info(f"[{label}] Merit parameters: {params}")
        verdict = merit_has_grb(params[0])
        if verdict is None:
            self.logger.warning(f"[{label}] Merit parameter 0 undecodable: {params[0]}")
            return True
        if not verdict:
            self.logger.info(f"[{label}] Merit parameters say this is NOT a GRB")
        return verdict

    def get_stats(self) -> Dict:
        """Get parser statistics"""
        return {
            "packets_parsed": self.packets_parsed,
            "decode_errors": self.decode_errors,
            "unknown_types": self.unknown_types,
            "type_counts": dict(self.type_counts),
        }


# Demo/test
if __name__ == "__main__":
    from gcn_alerts.generators.notice_generator import NoticePacketBuilder

    logging.basicConfig(level=logging.INFO, format='%(levelname)s - %(message)s')
    parser = BinaryNoticeParser()

    print("GCN Binary Notice Parser Demo")
    print("=" * 60)

    packet = NoticePacketBuilder().swift_bat_position(
        trigger_number=100, sequence_number=1, ra_deg=150.0, dec_deg=20.0, error_arcmin=3.0
    )
    print(f"\nTest packet ({len(packet)} bytes):")
    print(f"Hex: {packet.hex()}")

    record = parser.parse_packet(packet)
    print("\nParsed:")
    for key, value in record.to_redis_dict().items():
        print(f"  {key}: {value}")

    print(f"\nParser stats: {parser.get_stats()}")
