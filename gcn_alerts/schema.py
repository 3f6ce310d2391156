"""
Schema for decoded GCN notices
Notice records produced by the packet decoder or the control server, and the
alert policy shared by the filter, the receive loop and the control server.
"""

from datetime import datetime, timedelta, timezone
from enum import IntFlag
from typing import Iterable, Optional

from astropy.coordinates import Angle
from pydantic import BaseModel, Field, model_validator


J2000_EPOCH = 2000.0


class Mission(IntFlag):
    """Originating mission of a notice. UNKNOWN means do not propagate."""
    UNKNOWN = 0
    HETE = 1 << 0
    INTEGRAL = 1 << 1
    SWIFT = 1 << 2
    AGILE = 1 << 3
    FERMI = 1 << 4

    @property
    def label(self) -> str:
        """Name used for the -<MISSION> script argument, A|B for a mission set"""
        if not self.value:
            return "UNKNOWN"
        return "|".join(m.name for m in type(self) if m.value and m & self)

    @classmethod
    def from_name(cls, name: str) -> "Mission":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown mission: {name}") from None

    @classmethod
    def combine(cls, names: Iterable[str]) -> "Mission":
        """Build a mission bitset from a list of mission names"""
        mask = cls.UNKNOWN
        for name in names:
            mask |= cls.from_name(name)
        return mask


DELIVERABLE_MISSIONS = (
    Mission.HETE, Mission.INTEGRAL, Mission.SWIFT, Mission.AGILE, Mission.FERMI
)
ALL_MISSIONS = Mission.HETE | Mission.INTEGRAL | Mission.SWIFT | Mission.AGILE | Mission.FERMI


class NoticeRecord(BaseModel):
    """One decoded alert, from the multicast feed or a manual control command"""

    mission: Mission = Mission.UNKNOWN
    notice_type: int = 0

    # Burst identification
    trigger_number: int = 0
    sequence_number: int = 0

    # Position, set together once validity is confirmed
    ra: Optional[Angle] = None
    dec: Optional[Angle] = None
    epoch: float = J2000_EPOCH
    error_radius_arcmin: float = Field(default=0.0, ge=0.0)

    # Timing
    burst_time: Optional[datetime] = None
    notice_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Mission specific quality flags
    status_bits: int = 0
    is_test: bool = False
    has_merit: bool = True

    class Config:
        arbitrary_types_allowed = True

    @model_validator(mode="after")
    def _check_position_pair(self) -> "NoticeRecord":
        if (self.ra is None) != (self.dec is None):
            raise ValueError("RA and Dec must be set together")
        return self

    @property
    def has_position(self) -> bool:
        return self.ra is not None and self.dec is not None

    @property
    def is_deliverable(self) -> bool:
        return self.mission != Mission.UNKNOWN

    @classmethod
    def unknown(
        cls,
        notice_type: int = 0,
        notice_time: Optional[datetime] = None
    ) -> "NoticeRecord":
        """Record that must never reach the script launcher"""
        return cls(
            notice_type=notice_type,
            notice_time=notice_time or datetime.now(timezone.utc)
        )

    def to_redis_dict(self) -> dict:
        """Convert to dict for Redis storage"""
        return {
            "mission": self.mission.label,
            "notice_type": self.notice_type,
            "trigger_number": self.trigger_number,
            "sequence_number": self.sequence_number,
            "ra_deg": float(self.ra.degree) if self.ra is not None else "",
            "dec_deg": float(self.dec.degree) if self.dec is not None else "",
            "epoch": self.epoch,
            "error_radius_arcmin": self.error_radius_arcmin,
            "burst_time": self.burst_time.isoformat() if self.burst_time else "",
            "notice_time": self.notice_time.isoformat(),
            "status_bits": self.status_bits,
            "is_test": str(self.is_test),
            "has_merit": str(self.has_merit),
        }


class Policy(BaseModel):
    """
    Runtime alert policy.

    Mutated only by control commands, and read under the same lock that
    guards the decode/filter/launch cycle.
    """

    allowed_missions: Mission = Mission.UNKNOWN
    # Radius in arcseconds; notice records carry arcminutes
    max_error_radius_arcsec: float = 3600.0
    max_propagation_delay: Optional[timedelta] = None
    swift_accept_mask: int = 0
    swift_reject_mask: int = 0
    swift_filter_on_merit: bool = False
    socket_alerts_enabled: bool = True
    manual_alerts_enabled: bool = True

    @classmethod
    def from_settings(cls, settings) -> "Policy":
        delay = None
        if settings.max_propagation_delay_seconds is not None:
            delay = timedelta(seconds=settings.max_propagation_delay_seconds)
        return cls(
            allowed_missions=Mission.combine(settings.allowed_missions),
            max_error_radius_arcsec=settings.max_error_box_arcsec,
            max_propagation_delay=delay,
            swift_accept_mask=settings.swift_accept_mask,
            swift_reject_mask=settings.swift_reject_mask,
            swift_filter_on_merit=settings.swift_filter_on_merit,
            socket_alerts_enabled=settings.socket_alerts_enabled,
            manual_alerts_enabled=settings.manual_alerts_enabled,
        )
