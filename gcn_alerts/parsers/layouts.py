"""
GCN Notice Field Layouts

Declarative description of every notice type the decoder understands.
A packet is forty big-endian 32-bit words; each layout lists the words it
reads as FieldSpecs (word index, name, scale, unit, optional sub-field) plus
a few rules telling the dispatcher how to turn the extracted values into a
NoticeRecord.

Field names the dispatcher acts on:
- trigger_number, sequence_number
- burst_tjd, burst_sod (centiseconds of day)
- ra_deg, dec_deg
- error_radius_arcmin, or wxm/sxc_error_diameter_arcsec for HETE
- soln_status, misc, validity, test_flags
- merit_0 .. merit_9
Every other field is only logged.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from gcn_alerts.parsers.notice_types import NoticeType
from gcn_alerts.schema import Mission

WORDS_PER_PACKET = 40
PACKET_LENGTH = WORDS_PER_PACKET * 4

# Epoch rules
EPOCH_J2000 = "j2000"
EPOCH_BURST_DATE = "burst_date"  # apparent coordinates

# Error radius rules
ERROR_NONE = "none"
ERROR_RADIUS = "radius"  # error_radius_arcmin field
ERROR_SMALLEST_DIAMETER = "smallest_diameter"  # HETE WXM/SXC boxes

# Status rules
STATUS_NONE = "none"
STATUS_NATIVE = "native"  # soln_status word
STATUS_SYNTHESISED = "synthesised"  # accept mask | translated misc bits

# Swift BAT solnStatus bits (word 18)
SOLN_POINT_SOURCE = 1 << 0
SOLN_GRB = 1 << 1
SOLN_INTERESTING = 1 << 2
SOLN_FLIGHT_CATALOGUE = 1 << 3
SOLN_IMAGE_TRIGGER = 1 << 4
SOLN_DEF_NOT_GRB = 1 << 5
SOLN_HIGH_BACKGROUND = 1 << 6
SOLN_LOW_IMAGE_SIGNIFICANCE = 1 << 7
SOLN_GROUND_CATALOGUE = 1 << 8
SOLN_XRAY_BURSTER = 1 << 9
SOLN_BIT_10 = 1 << 10

# Bit 10 is documented two ways by successive protocol revisions. Both
# readings are logged rather than picking one.
SOLN_BIT_10_READINGS = (
    "X-ray burster source",
    "StarTracker not locked",
)

SOLN_STATUS_DESCRIPTIONS: Tuple[Tuple[int, str], ...] = (
    (SOLN_POINT_SOURCE, "A point source was found."),
    (SOLN_GRB, "It is a GRB."),
    (SOLN_INTERESTING, "It is an interesting source."),
    (SOLN_FLIGHT_CATALOGUE, "It is a flight catalogue source."),
    (SOLN_IMAGE_TRIGGER, "It is an image trigger."),
    (SOLN_DEF_NOT_GRB, "It is definitely not a GRB (ground-processing assigned)."),
    (SOLN_HIGH_BACKGROUND, "It is probably not a GRB (high background level)."),
    (SOLN_LOW_IMAGE_SIGNIFICANCE, "It is probably not a GRB (low image significance)."),
    (SOLN_GROUND_CATALOGUE, "It is a ground catalogue source."),
    (SOLN_XRAY_BURSTER, "It is an X-ray burster (automated ground assignment)."),
    (SOLN_BIT_10, "Bit 10 set: " + " or ".join(SOLN_BIT_10_READINGS) + " (documented inconsistently)."),
)

# XRT (word 14) and UVOT (word 12) misc bits carried over into a
# solnStatus-shaped value, so one status mask filters every Swift instrument.
XRT_MISC_TO_SOLN_STATUS: Tuple[Tuple[int, int], ...] = (
    (1 << 0, SOLN_POINT_SOURCE),
    (1 << 1, SOLN_FLIGHT_CATALOGUE),
    (1 << 2, SOLN_GROUND_CATALOGUE),
)
UVOT_MISC_TO_SOLN_STATUS: Tuple[Tuple[int, int], ...] = (
    (1 << 0, SOLN_POINT_SOURCE),
    (1 << 1, SOLN_GROUND_CATALOGUE),
)

# HETE validity word (37)
HETE_BURST_VALID = 0x1
HETE_BURST_INVALID = 0x2
# RA/Dec below this (degrees) means neither WXM nor SXC localised the burst
HETE_NO_POSITION_DEG = -99.9

# Test notice flag (bit 31 of the INTEGRAL test_mpos and AGILE/Fermi misc words)
TEST_NOTICE_BIT = 1 << 31

MERIT_PARAMETER_COUNT = 10


@dataclass(frozen=True)
class FieldSpec:
    """
    One value read from a packet word.

    The raw word is taken as unsigned, so sub-fields are extracted with a
    logical shift. ``signed`` sign-extends the extracted ``width`` bits.
    The value is ``raw * multiplier / divisor`` when either is not 1.
    """
    word: int
    name: str
    unit: str = ""
    divisor: float = 1
    multiplier: float = 1
    shift: int = 0
    width: int = 32
    signed: bool = True

    def extract(self, word_value: int) -> Union[int, float]:
        value = (word_value >> self.shift) & ((1 << self.width) - 1)
        if self.signed and value & (1 << (self.width - 1)):
            value -= 1 << self.width
        if self.multiplier == 1 and self.divisor == 1:
            return value
        return (value * self.multiplier) / self.divisor

    @property
    def mask(self) -> int:
        return ((1 << self.width) - 1) << self.shift

    def encode(self, value: Union[int, float]) -> int:
        """Inverse of extract: the bits this field contributes to its word"""
        raw = int(round((value * self.divisor) / self.multiplier))
        return (raw << self.shift) & self.mask


def word(index: int, name: str, unit: str = "", signed: bool = True) -> FieldSpec:
    return FieldSpec(index, name, unit=unit, signed=signed)


def flags(index: int, name: str) -> FieldSpec:
    return FieldSpec(index, name, unit="bits", signed=False)


def scaled(index: int, name: str, divisor: float, unit: str = "") -> FieldSpec:
    return FieldSpec(index, name, unit=unit, divisor=divisor)


def bits(index: int, name: str, shift: int, width: int,
         divisor: float = 1, unit: str = "", signed: bool = False) -> FieldSpec:
    return FieldSpec(index, name, unit=unit, divisor=divisor, shift=shift, width=width, signed=signed)


def degrees_to_arcmin(index: int, name: str = "error_radius_arcmin") -> FieldSpec:
    """Error radius sent as degrees x 10000"""
    return FieldSpec(index, name, unit="arcmin", multiplier=60.0, divisor=10000.0)


def arcsec_to_arcmin(index: int, name: str = "error_radius_arcmin") -> FieldSpec:
    return FieldSpec(index, name, unit="arcmin", divisor=60.0)


HEADER = (
    word(0, "pkt_type"),
    word(1, "pkt_sernum"),
    word(2, "pkt_hop_cnt"),
    scaled(3, "pkt_sod", 100, "s"),
)
TERMINATOR = (flags(39, "pkt_term"),)

TRIGGER_16_16 = (
    bits(4, "trigger_number", 0, 16),
    bits(4, "sequence_number", 16, 16),
)
TRIGGER_24_8 = (
    bits(4, "trigger_number", 0, 24),
    bits(4, "sequence_number", 24, 8),
)
BURST_TIME = (
    word(5, "burst_tjd", "days"),
    word(6, "burst_sod", "cs"),
)
POSITION = (
    scaled(7, "ra_deg", 10000, "deg"),
    scaled(8, "dec_deg", 10000, "deg"),
)


def _corners(first_word: int, prefix: str) -> Tuple[FieldSpec, ...]:
    specs = []
    for i in range(4):
        specs.append(scaled(first_word + 2 * i, f"{prefix}_ra{i + 1}_deg", 10000, "deg"))
        specs.append(scaled(first_word + 2 * i + 1, f"{prefix}_dec{i + 1}_deg", 10000, "deg"))
    return tuple(specs)


def _merit_parameters(first_word: int) -> Tuple[FieldSpec, ...]:
    # Four signed bytes per word, parameter 0 in the least significant byte
    return tuple(
        bits(first_word + i // 4, f"merit_{i}", (i % 4) * 8, 8, signed=True)
        for i in range(MERIT_PARAMETER_COUNT)
    )


HETE_COUNTS = (
    flags(9, "trig_flags"),
    word(10, "gamma_cnts", "counts"),
    word(11, "wxm_cnts", "counts"),
    word(12, "sxc_cnts", "counts"),
    word(13, "gamma_time"),
    word(14, "wxm_time"),
    bits(15, "sc_ra_deg", 16, 16, divisor=10000, unit="deg"),
    bits(15, "sc_dec_deg", 0, 16, divisor=10000, unit="deg"),
)

HETE_POSITION_FIELDS = HEADER + TRIGGER_16_16 + BURST_TIME + POSITION + HETE_COUNTS + _corners(16, "wxm") + (
    bits(24, "wxm_stat_error_arcsec", 16, 16, unit="arcsec"),
    bits(24, "wxm_sys_error_arcsec", 0, 16, unit="arcsec"),
    bits(25, "wxm_error_diameter_arcsec", 16, 16, unit="arcsec"),
) + _corners(26, "sxc") + (
    bits(34, "sxc_stat_error_arcsec", 16, 16, unit="arcsec"),
    bits(34, "sxc_sys_error_arcsec", 0, 16, unit="arcsec"),
    bits(35, "sxc_error_diameter_arcsec", 16, 16, unit="arcsec"),
    flags(36, "pos_flags"),
    flags(37, "validity"),
) + TERMINATOR

INTEGRAL_POSITION_FIELDS = HEADER + TRIGGER_16_16 + BURST_TIME + POSITION + (
    flags(9, "det_flags"),
    scaled(10, "intensity_sigma", 100, "sigma"),
    arcsec_to_arcmin(11),
    flags(12, "test_flags"),
) + TERMINATOR

SWIFT_BAT_POSITION_FIELDS = HEADER + TRIGGER_24_8 + BURST_TIME + POSITION + (
    word(9, "burst_flue", "counts"),
    word(10, "burst_ipeak", "counts"),
    degrees_to_arcmin(11),
    scaled(12, "phi_deg", 100, "deg"),
    scaled(13, "theta_deg", 100, "deg"),
    scaled(14, "integ_time", 250, "s"),
    flags(18, "soln_status"),
    flags(19, "misc"),
    scaled(20, "image_significance", 100, "sigma"),
    scaled(21, "rate_significance", 100, "sigma"),
) + _merit_parameters(36) + TERMINATOR

SWIFT_XRT_POSITION_FIELDS = HEADER + TRIGGER_24_8 + BURST_TIME + POSITION + (
    word(9, "burst_flux", "counts"),
    degrees_to_arcmin(11),
    word(12, "x_tam"),
    word(13, "amp_wave"),
    flags(14, "misc"),
    scaled(15, "det_sig", 100, "sigma"),
) + TERMINATOR

SWIFT_UVOT_POSITION_FIELDS = HEADER + TRIGGER_16_16 + BURST_TIME + POSITION + (
    scaled(9, "uvot_mag", 100, "mag"),
    word(10, "filter"),
    degrees_to_arcmin(11),
    flags(12, "misc"),
) + TERMINATOR

AGILE_POSITION_FIELDS = HEADER + TRIGGER_16_16 + BURST_TIME + POSITION + (
    word(9, "burst_intensity", "counts"),
    degrees_to_arcmin(11),
    scaled(12, "phi_deg", 100, "deg"),
    scaled(13, "theta_deg", 100, "deg"),
    scaled(14, "integ_time", 100, "s"),
    flags(18, "trigger_flags"),
    flags(19, "misc"),
) + TERMINATOR

FERMI_LAT_POSITION_FIELDS = HEADER + TRIGGER_24_8 + BURST_TIME + POSITION + (
    word(9, "burst_intensity", "counts"),
    word(10, "burst_peak", "counts"),
    degrees_to_arcmin(11),
    scaled(12, "phi_deg", 100, "deg"),
    scaled(13, "theta_deg", 100, "deg"),
    scaled(14, "integ_time", 100, "s"),
    # Photon counts per energy band, four unsigned bytes
    bits(16, "energy_band_1_cnts", 0, 8, unit="counts"),
    bits(16, "energy_band_2_cnts", 8, 8, unit="counts"),
    bits(16, "energy_band_3_cnts", 16, 8, unit="counts"),
    bits(16, "energy_band_4_cnts", 24, 8, unit="counts"),
    scaled(17, "temporal_significance", 100, "sigma"),
    scaled(18, "image_significance", 100, "sigma"),
    flags(19, "misc"),
) + TERMINATOR


@dataclass(frozen=True)
class NoticeLayout:
    """How to decode one notice type"""
    notice_type: NoticeType
    fields: Tuple[FieldSpec, ...]
    mission: Mission = Mission.UNKNOWN
    epoch_rule: str = EPOCH_J2000
    error_rule: str = ERROR_NONE
    status_rule: str = STATUS_NONE
    misc_status_bits: Tuple[Tuple[int, int], ...] = ()
    # Bits of the named word that mark the notice as a test
    test_field: Optional[str] = None
    test_mask: int = 0
    # Bits of the validity word that mark the position as invalid
    invalid_mask: int = 0
    position_floor_deg: Optional[float] = None
    merit: bool = False
    # Designated test type: never delivered whatever the payload says
    test_type: bool = False

    @property
    def label(self) -> str:
        return self.notice_type.name

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)


def _hete(notice_type: NoticeType) -> NoticeLayout:
    return NoticeLayout(
        notice_type, HETE_POSITION_FIELDS,
        mission=Mission.HETE,
        epoch_rule=EPOCH_BURST_DATE,
        error_rule=ERROR_SMALLEST_DIAMETER,
        invalid_mask=HETE_BURST_INVALID,
        position_floor_deg=HETE_NO_POSITION_DEG,
    )


def _integral(notice_type: NoticeType) -> NoticeLayout:
    return NoticeLayout(
        notice_type, INTEGRAL_POSITION_FIELDS,
        mission=Mission.INTEGRAL,
        epoch_rule=EPOCH_BURST_DATE,
        error_rule=ERROR_RADIUS,
        test_field="test_flags",
        test_mask=TEST_NOTICE_BIT,
    )


def _fermi_lat(notice_type: NoticeType, test_type: bool = False) -> NoticeLayout:
    return NoticeLayout(
        notice_type, FERMI_LAT_POSITION_FIELDS,
        mission=Mission.UNKNOWN if test_type else Mission.FERMI,
        error_rule=ERROR_RADIUS,
        test_field="misc",
        test_mask=TEST_NOTICE_BIT,
        test_type=test_type,
    )


def _log_only(notice_type: NoticeType, fields: Tuple[FieldSpec, ...] = ()) -> NoticeLayout:
    return NoticeLayout(notice_type, HEADER + fields + TERMINATOR)


LAYOUTS: Dict[int, NoticeLayout] = {layout.notice_type.value: layout for layout in (
    _log_only(NoticeType.IMALIVE),
    _log_only(NoticeType.KILL_SOCKET),
    _log_only(NoticeType.SAX_WFC_GRB_POS, BURST_TIME + POSITION + (
        word(9, "burst_intensity", "mCrab"),
        degrees_to_arcmin(11, "burst_error_arcmin"),
        scaled(12, "burst_conf", 100, "%"),
    )),
    _log_only(NoticeType.HETE_ALERT, TRIGGER_16_16 + BURST_TIME + HETE_COUNTS),
    _hete(NoticeType.HETE_UPDATE),
    _hete(NoticeType.HETE_GNDANA),
    _log_only(NoticeType.INTEGRAL_POINTDIR, TRIGGER_16_16 + (
        word(5, "slew_tjd", "days"),
        word(6, "slew_sod", "cs"),
        flags(12, "test_flags"),
        scaled(14, "next_ra_deg", 10000, "deg"),
        scaled(15, "next_dec_deg", 10000, "deg"),
        flags(19, "sc_status"),
    )),
    _log_only(NoticeType.INTEGRAL_SPIACS, TRIGGER_16_16 + BURST_TIME),
    _integral(NoticeType.INTEGRAL_WAKEUP),
    _integral(NoticeType.INTEGRAL_REFINED),
    _integral(NoticeType.INTEGRAL_OFFLINE),
    _log_only(NoticeType.SWIFT_BAT_GRB_ALERT, TRIGGER_24_8 + BURST_TIME),
    NoticeLayout(
        NoticeType.SWIFT_BAT_GRB_POSITION, SWIFT_BAT_POSITION_FIELDS,
        mission=Mission.SWIFT,
        error_rule=ERROR_RADIUS,
        status_rule=STATUS_NATIVE,
        merit=True,
    ),
    _log_only(NoticeType.SWIFT_BAT_GRB_NACK_POSITION, TRIGGER_24_8 + BURST_TIME),
    _log_only(NoticeType.SWIFT_FOM_OBS, TRIGGER_24_8 + BURST_TIME),
    _log_only(NoticeType.SWIFT_SC_SLEW, TRIGGER_24_8 + BURST_TIME),
    NoticeLayout(
        NoticeType.SWIFT_XRT_POSITION, SWIFT_XRT_POSITION_FIELDS,
        mission=Mission.SWIFT,
        error_rule=ERROR_RADIUS,
        status_rule=STATUS_SYNTHESISED,
        misc_status_bits=XRT_MISC_TO_SOLN_STATUS,
    ),
    _log_only(NoticeType.SWIFT_XRT_NACK_POSITION, TRIGGER_24_8 + BURST_TIME),
    NoticeLayout(
        NoticeType.SWIFT_UVOT_POSITION, SWIFT_UVOT_POSITION_FIELDS,
        mission=Mission.SWIFT,
        error_rule=ERROR_RADIUS,
        status_rule=STATUS_SYNTHESISED,
        misc_status_bits=UVOT_MISC_TO_SOLN_STATUS,
    ),
    NoticeLayout(
        NoticeType.SWIFT_BAT_GRB_POS_TEST, SWIFT_BAT_POSITION_FIELDS,
        error_rule=ERROR_RADIUS,
        status_rule=STATUS_NATIVE,
        merit=True,
        test_type=True,
    ),
    NoticeLayout(
        NoticeType.AGILE_GRB_WAKEUP, AGILE_POSITION_FIELDS,
        mission=Mission.AGILE,
        error_rule=ERROR_RADIUS,
        test_field="misc",
        test_mask=TEST_NOTICE_BIT,
    ),
    # AGILE transients are not bursts: decoded for the log, never delivered
    _log_only(NoticeType.AGILE_TRANSIENT, TRIGGER_16_16 + BURST_TIME + POSITION + (
        word(9, "flux", "counts"),
        degrees_to_arcmin(11),
    )),
    _fermi_lat(NoticeType.FERMI_LAT_POS_UPD),
    _fermi_lat(NoticeType.FERMI_LAT_POS_TEST, test_type=True),
    _fermi_lat(NoticeType.FERMI_LAT_GND),
)}


def get_layout(notice_type: int) -> Optional[NoticeLayout]:
    return LAYOUTS.get(notice_type)


def translate_misc_bits(misc: int, table: Tuple[Tuple[int, int], ...]) -> int:
    """OR together the solnStatus bits whose misc bit is set"""
    status = 0
    for misc_bit, status_bit in table:
        if misc & misc_bit:
            status |= status_bit
    return status
