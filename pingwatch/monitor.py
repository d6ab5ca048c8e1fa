"""Multi-target monitoring with fault evaluation and peak tracking."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from PySide6.QtCore import QObject, QTimer, Signal

from pingwatch.models import AlertMask, DataBufferType, PeakType, ProbeResult
from pingwatch.network_target import NetworkTarget

logger = logging.getLogger(__name__)

PENDING_POLL_MS = 500
# Latency tolerance above the expected value, in multiples of the expected jitter.
LATENCY_JITTER_FACTOR = 3.0


@dataclass
class FaultStatus:
    """Per-metric fault flags of one probe round."""

    latency: bool = False
    jitter: bool = False
    loss: bool = False

    @property
    def mask(self) -> AlertMask:
        mask = AlertMask.NONE
        if self.latency:
            mask |= AlertMask.LATENCY
        if self.jitter:
            mask |= AlertMask.JITTER
        if self.loss:
            mask |= AlertMask.LOSS
        return mask


@dataclass
class TargetStatus:
    """Snapshot of a target after one probe round."""

    target_id: str
    destination: str
    error: bool
    latency_ms: float
    jitter_ms: float
    packet_loss: float
    peak_latency_ms: float
    peak_jitter_ms: float
    peak_packet_loss: float
    fault_mask: AlertMask
    alerting_mask: AlertMask
    ts: datetime = field(default_factory=datetime.now)


def evaluate_faults(result: ProbeResult) -> FaultStatus:
    """Decide which metrics of a probe round are at fault.

    A failed round faults every metric. Otherwise a metric is only judged
    once its buffer is filled, so a target that just started does not
    raise alarms on a handful of samples.
    """
    target: NetworkTarget = result.sender
    if result.error:
        return FaultStatus(latency=True, jitter=True, loss=True)

    latency_limit = target.expected_latency + LATENCY_JITTER_FACTOR * target.expected_jitter
    return FaultStatus(
        latency=(
            target.is_buffer_filled(DataBufferType.LATENCY)
            and result.ping_latency_ms > latency_limit
        ),
        jitter=(
            target.is_buffer_filled(DataBufferType.JITTER)
            and result.ping_jitter > target.expected_jitter
        ),
        loss=(
            target.is_buffer_filled(DataBufferType.LOSS)
            and result.packet_loss > target.tolerable_loss
        ),
    )


class PeakTracker:
    """Highest level seen per metric of one target.

    A peak is replaced by a higher level, or by any level once the
    target reports the peak as expired. Every replacement refreshes the
    target's peak timestamp.
    """

    def __init__(self):
        self._peaks: dict[PeakType, float] = {}

    def get(self, peak_type: PeakType) -> float | None:
        return self._peaks.get(peak_type)

    def update(self, target: NetworkTarget, peak_type: PeakType, level: float) -> float:
        current = self._peaks.get(peak_type)
        if current is None or target.is_peak_expired(peak_type) or level > current:
            self._peaks[peak_type] = level
            target.update_peak_time(peak_type)
        return self._peaks[peak_type]

    def clear(self):
        self._peaks.clear()


class TargetMonitor(QObject):
    """Runs a set of network targets and turns their results into statuses.

    Targets are keyed by ID; adding a target whose effective destination
    is already monitored is ignored. Gateway targets still discovering
    their destination are polled and started once it is known.
    """

    status_updated = Signal(object)  # Emits TargetStatus

    def __init__(self, parent=None):
        super().__init__(parent)
        self._targets: dict[str, NetworkTarget] = {}
        self._peaks: dict[str, PeakTracker] = {}
        self._awaiting_destination: set[str] = set()
        self._rounds = 0
        self._error_rounds = 0
        self.is_monitoring = False

        self._poll_timer = QTimer(self)
        self._poll_timer.setSingleShot(True)
        self._poll_timer.timeout.connect(self._poll_pending)

    def add_target(self, target: NetworkTarget) -> bool:
        """Register a target. Returns False if its ID is already registered."""
        if target.id in self._targets:
            logger.warning(
                "Duplicate target ignored: type=%s, dest=%s",
                target.target_type.value,
                target.target_destination or "(pending)",
            )
            return False

        self._targets[target.id] = target
        self._peaks[target.id] = PeakTracker()
        target.ready.connect(self._on_ready)
        logger.debug("Target added: %s (total: %d)", target.id[:12], len(self._targets))

        if self.is_monitoring:
            self._start_target(target)
        return True

    def remove_target(self, target_id: str):
        target = self._targets.pop(target_id, None)
        if target is None:
            return
        target.stop()
        target.ready.disconnect(self._on_ready)
        self._peaks.pop(target_id, None)
        self._awaiting_destination.discard(target_id)
        logger.debug("Target removed: %s (remaining: %d)", target_id[:12], len(self._targets))

    def get_target(self, target_id: str) -> NetworkTarget | None:
        return self._targets.get(target_id)

    def targets(self) -> list[NetworkTarget]:
        return list(self._targets.values())

    def start(self):
        """Start monitoring every registered target."""
        if self.is_monitoring:
            return
        self.is_monitoring = True
        for tracker in self._peaks.values():
            tracker.clear()
        for target in self._targets.values():
            self._start_target(target)
        logger.info("Monitoring started: %d targets", len(self._targets))

    def stop(self):
        """Stop all targets. Rounds already in flight are still reported."""
        if not self.is_monitoring:
            return
        self.is_monitoring = False
        self._poll_timer.stop()
        self._awaiting_destination.clear()
        for target in self._targets.values():
            target.stop()
        logger.info("Monitoring stopped")

    def get_stats(self) -> dict:
        return {
            "targets": len(self._targets),
            "awaiting_destination": len(self._awaiting_destination),
            "rounds": self._rounds,
            "error_rounds": self._error_rounds,
            "monitoring": self.is_monitoring,
        }

    def _start_target(self, target: NetworkTarget):
        if target.is_target_destination_pending:
            self._awaiting_destination.add(target.id)
            if not self._poll_timer.isActive():
                self._poll_timer.start(PENDING_POLL_MS)
            return
        target.start()

    def _poll_pending(self):
        if not self.is_monitoring:
            return
        for target_id in list(self._awaiting_destination):
            target = self._targets.get(target_id)
            if target is None:
                self._awaiting_destination.discard(target_id)
            elif not target.is_target_destination_pending:
                self._awaiting_destination.discard(target_id)
                target.start()
        if self._awaiting_destination:
            self._poll_timer.start(PENDING_POLL_MS)

    def _on_ready(self, result: ProbeResult):
        target = result.sender
        tracker = self._peaks.get(target.id)
        if tracker is None:
            return

        self._rounds += 1
        if result.error:
            self._error_rounds += 1

        faults = evaluate_faults(result)
        alerting = AlertMask.NONE
        for alert in (AlertMask.LATENCY, AlertMask.JITTER, AlertMask.LOSS):
            if (faults.mask & alert) and target.is_alert_active(alert):
                alerting |= alert

        status = TargetStatus(
            target_id=target.id,
            destination=target.target_destination,
            error=result.error,
            latency_ms=result.ping_latency_ms,
            jitter_ms=result.ping_jitter,
            packet_loss=result.packet_loss,
            peak_latency_ms=tracker.update(target, PeakType.LATENCY, result.ping_latency_ms),
            peak_jitter_ms=tracker.update(target, PeakType.JITTER, result.ping_jitter),
            peak_packet_loss=tracker.update(target, PeakType.LOSS, result.packet_loss),
            fault_mask=faults.mask,
            alerting_mask=alerting,
        )
        self.status_updated.emit(status)
