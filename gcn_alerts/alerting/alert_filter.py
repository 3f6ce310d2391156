"""
Alert Filter

Decides whether a notice received from the feed may start the alert script.
Checks run in a fixed order and stop at the first rejection:

1. mission is in the allowed mission set
2. socket alerts are enabled
3. error radius is no larger than the configured maximum
4. propagation delay is within the configured maximum (when enabled)
5. RA and Dec are present
6. Swift only: solnStatus reject/accept masks, then the merit flag

Manual alerts from the control server are checked by the caller instead.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from gcn_alerts.schema import Mission, NoticeRecord, Policy


@dataclass(frozen=True)
class FilterDecision:
    """Outcome of filtering one notice"""
    accepted: bool
    reason: str = ""


ACCEPTED = FilterDecision(True, "accepted")


class AlertFilter:
    """Notice filter. Holds no state besides its logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def accept(self, record: NoticeRecord, policy: Policy, now: Optional[datetime] = None) -> bool:
        return self.evaluate(record, policy, now).accepted

    def evaluate(
        self,
        record: NoticeRecord,
        policy: Policy,
        now: Optional[datetime] = None
    ) -> FilterDecision:
        """
        Run every check against the record.

        Args:
            record: Decoded notice
            policy: Current alert policy
            now: Reference time for the propagation delay check, defaults to now
        """
        if not record.mission & policy.allowed_missions:
            return self._reject(
                f"allowed missions {policy.allowed_missions.label} ({int(policy.allowed_missions)}) "
                f"not compatible with notice mission {record.mission.label} ({int(record.mission)})"
            )

        if not policy.socket_alerts_enabled:
            return self._reject("socket alerts have been disabled from the control socket")

        # Policy radius is in arcseconds, record radius in arcminutes
        error_arcsec = record.error_radius_arcmin * 60.0
        if error_arcsec > policy.max_error_radius_arcsec:
            return self._reject(
                f"max error box radius {policy.max_error_radius_arcsec} arcseconds smaller than "
                f"notice error box radius {error_arcsec} arcseconds"
            )

        if policy.max_propagation_delay is not None and record.burst_time is not None:
            delay = (now or datetime.now(timezone.utc)) - record.burst_time
            if delay > policy.max_propagation_delay:
                return self._reject(
                    f"propagation delay {delay.total_seconds():.1f}s exceeds maximum "
                    f"{policy.max_propagation_delay.total_seconds():.1f}s"
                )

        if record.ra is None:
            return self._reject("RA was NULL")
        if record.dec is None:
            return self._reject("Dec was NULL")

        if record.mission == Mission.SWIFT:
            return self._swift_checks(record, policy)

        return ACCEPTED

    def _swift_checks(self, record: NoticeRecord, policy: Policy) -> FilterDecision:
        accept_mask = policy.swift_accept_mask
        reject_mask = policy.swift_reject_mask
        status = record.status_bits

        if reject_mask & accept_mask:
            # Overlapping masks would block every Swift notice; warn and skip them
            self.logger.warning(
                f"alertFilter detected overlapping solnStatus masks: "
                f"Accept: 0x{accept_mask:x} Reject: 0x{reject_mask:x}"
            )
        else:
            if status & reject_mask:
                return self._reject(
                    f"solnStatus 0x{status:x} contains bits in reject mask 0x{reject_mask:x}"
                )
            if status & accept_mask != accept_mask:
                return self._reject(
                    f"solnStatus 0x{status:x} does NOT contain bits in accept mask 0x{accept_mask:x}"
                )

        if policy.swift_filter_on_merit and not record.has_merit:
            return self._reject("merit parameters indicate the trigger is not a GRB")

        return ACCEPTED

    def _reject(self, reason: str) -> FilterDecision:
        self.logger.info(f"alertFilter stopped propagation of alert: {reason}.")
        return FilterDecision(False, reason)
