"""
GCN Alerts Configuration

All settings loaded from environment variables (prefix GCN_) or a .env file,
with defaults matching the public GCN multicast feed. Daemon command lines
override these values.
"""

from typing import List, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class GCNSettings(BaseSettings):
    """Script starter and forwarder configuration."""

    # Multicast feed
    group_address: str = Field(
        default="224.103.114.98",
        description="Multicast group the GCN notices are broadcast to"
    )
    multicast_port: int = Field(
        default=2005,
        description="Multicast port of the notice feed"
    )
    packet_length: int = Field(
        default=160,
        description="Size of one GCN notice packet in bytes"
    )

    # Control server
    control_port: int = Field(
        default=2006,
        description="TCP port of the line based control server"
    )

    # Script dispatch
    script: str = Field(
        default="",
        description="Script started for each accepted notice"
    )
    allowed_missions: List[str] = Field(
        default_factory=list,
        description="Missions whose notices may start the script (HETE, INTEGRAL, SWIFT, AGILE, FERMI)"
    )
    max_error_box_arcsec: float = Field(
        default=3600.0,
        description="Largest error radius (arcsec) that still starts the script"
    )
    max_propagation_delay_seconds: Optional[float] = Field(
        default=None,
        description="Largest burst-to-receipt delay that still starts the script (unset = no limit)"
    )
    swift_accept_mask: int = Field(
        default=0,
        description="Swift solnStatus bits that must all be set"
    )
    swift_reject_mask: int = Field(
        default=0,
        description="Swift solnStatus bits that must all be clear"
    )
    swift_filter_on_merit: bool = Field(
        default=False,
        description="Reject Swift BAT notices whose merit parameters say 'not a GRB'"
    )
    socket_alerts_enabled: bool = Field(
        default=True,
        description="Start the script for notices received from the feed"
    )
    manual_alerts_enabled: bool = Field(
        default=True,
        description="Start the script for gamma_ray_burst_alert control commands"
    )

    # Relay forwarder
    forward_destinations: List[str] = Field(
        default_factory=list,
        description="TCP destinations (host:port) raw packets are relayed to"
    )
    forward_backoff_seconds: List[float] = Field(
        default=[0, 60, 120, 240, 480, 960, 1800],
        description="Reconnect delay per consecutive failed connection attempt"
    )
    forward_reply_length: int = Field(
        default=160,
        description="Bytes read back from a destination after each relayed packet"
    )

    # Status publishing and logging
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL for status publishing"
    )
    log_dir: Optional[str] = Field(
        default=None,
        description="Directory for daily log files (unset = console only)"
    )
    log_level: str = Field(
        default="INFO",
        description="Root logging level"
    )

    @field_validator("swift_accept_mask", "swift_reject_mask", mode="before")
    @classmethod
    def _parse_mask(cls, value):
        # Masks may be given as 0x prefixed hex
        if isinstance(value, str):
            return int(value, 0)
        return value

    class Config:
        env_file = ".env"
        env_prefix = "GCN_"
        extra = "ignore"


def parse_mask(text: str) -> int:
    """Parse a bit mask given in decimal or 0x prefixed hex."""
    return int(text, 0)


def parse_destination(text: str) -> Tuple[str, int]:
    """Split a 'host:port' relay destination."""
    host, sep, port = text.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Destination must be host:port, got {text!r}")
    return host, int(port)


def get_settings() -> GCNSettings:
    """Load settings from the environment and .env file."""
    return GCNSettings()
