"""Network performance monitoring of a single ping target."""

import hashlib
import logging
import math
import time
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import urlsplit

from PySide6.QtCore import QObject, QTimer, Signal

from pingwatch.command_runner import CommandRunner, Runner
from pingwatch.gateway import ROUTE_COMMAND, Platform, detect_platform, extract_gateway, parser_for
from pingwatch.models import (
    AlertMask,
    CommandResponse,
    DataBufferType,
    PeakType,
    PingReading,
    ProbeResult,
    RoundMetrics,
    StdDevType,
    TargetConfig,
    TargetType,
)
from pingwatch.ping import PING_COMMAND, PING_ENVIRONMENT, build_ping_arguments, parse_ping_output
from pingwatch.statistics import compute_avt, compute_jitter, compute_stats
from pingwatch.validation import resolve_destination

logger = logging.getLogger(__name__)

SEC_TO_MS = 1000.0
# Delay before re-checking when a probe could not be launched.
RETRY_DELAY_MS = 1

RunnerFactory = Callable[[QObject], Runner]


def compute_round_metrics(reading: PingReading) -> RoundMetrics | None:
    """Derive loss, jitter and latency for one ping round.

    Returns None when the round produced no readings at all. Otherwise
    packet loss and latency are always present (a round in which every
    packet was lost has a mean latency of 0), while jitter is None when
    no packet came back.
    """
    if reading.total <= 0:
        return None

    metrics = RoundMetrics(loss=reading.lost / reading.total * 100.0)
    try:
        metrics.jitter = compute_jitter(reading.latencies_ms)
    except ValueError:
        logger.debug("Jitter unavailable: no latency samples")
    metrics.latency = compute_stats(reading.latencies_ms, StdDevType.SAMPLE).mean
    return metrics


def _as_member(value: Any, enum_cls, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise TypeError(f"{name} is not a member of {enum_cls.__name__}: {value!r}") from None


class NetworkTarget(QObject):
    """Periodically pings one destination and reports filtered metrics.

    Each probe round runs ``ping`` through a command runner, parses the
    per-packet replies and appends the round's packet loss, jitter and
    mean latency to sliding buffers. After every round the ``ready``
    signal carries a ProbeResult with the AVT filtered value of each
    buffer.

    Only one probe is ever in flight. ``start()`` resets the buffers and
    peak timestamps and probes immediately; ``stop()`` cancels further
    scheduling but lets a running probe finish and be reported.

    Gateway targets discover their destination from the routing table
    when constructed. Until that completes ``is_target_destination_pending``
    is True and probes are skipped.
    """

    ready = Signal(object)  # Emits ProbeResult
    destination_resolved = Signal(str)  # Emits the gateway address, "" if not found

    def __init__(
        self,
        config: TargetConfig | Mapping[str, Any] | None = None,
        *,
        runner_factory: RunnerFactory = CommandRunner,
        platform: Platform | None = None,
        clock: Callable[[], float] = time.monotonic,
        parent=None,
    ):
        """Create a target from its configuration.

        Args:
            config: TargetConfig, or a mapping of its fields
            runner_factory: Builds the command runners, called with this
                target as parent
            platform: Operating system family used for gateway discovery;
                detected when omitted
            clock: Monotonic time source in seconds
            parent: Qt parent object

        Raises:
            ConfigError: The configuration or destination is invalid.
        """
        if not isinstance(config, TargetConfig):
            config = TargetConfig.from_mapping(config)
        target_type, target_dest = resolve_destination(config.target_type, config.target_dest)

        super().__init__(parent)

        self._config = config
        self._target_type = target_type
        self._target_dest = target_dest
        self._platform = platform if platform is not None else detect_platform()
        self._clock = clock
        self._buffer_capacity = math.floor(config.filter_time_window / config.ping_period)
        self._buffers: dict[DataBufferType, list[float]] = {t: [] for t in DataBufferType}
        now = clock()
        self._peak_times: dict[PeakType, float] = {p: now for p in PeakType}
        self._probe_in_flight = False
        self._running = False
        self._destination_pending = False

        digest = hashlib.sha256()
        digest.update(target_type.value.encode("utf-8"))
        digest.update(target_dest.encode("utf-8"))
        self._id = digest.hexdigest()

        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._on_initiate_check)

        self._runner = runner_factory(self)
        self._runner.complete.connect(self._on_process_ping)

        self._route_runner: Runner | None = None
        if target_type is TargetType.GATEWAY:
            self._find_gateway(runner_factory)

        logger.debug(
            "NetworkTarget created: id=%s, type=%s, dest=%s, capacity=%d",
            self._id[:12],
            target_type.value,
            target_dest or "(pending)",
            self._buffer_capacity,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        """SHA-256 hex digest of the resolved target type and destination."""
        return self._id

    @property
    def config(self) -> TargetConfig:
        return self._config

    @property
    def ping_count(self) -> int:
        return self._config.ping_count

    @property
    def tolerable_loss(self) -> float:
        return self._config.loss_limit

    @property
    def packet_size(self) -> int:
        return self._config.packet_size

    @property
    def ping_interval(self) -> float:
        return self._config.ping_interval

    @property
    def ping_period(self) -> float:
        return self._config.ping_period

    @property
    def target_destination(self) -> str:
        return self._target_dest

    @property
    def target_type(self) -> TargetType:
        return self._target_type

    @property
    def expected_latency(self) -> float:
        return self._config.expected_latency

    @property
    def expected_jitter(self) -> float:
        return self._config.expected_jitter

    @property
    def peak_expiration_ms(self) -> float:
        return self._config.peak_expiration_ms

    @property
    def alert_mask(self) -> AlertMask:
        return self._config.alert_mask

    @property
    def buffer_capacity(self) -> int:
        return self._buffer_capacity

    @property
    def is_target_destination_pending(self) -> bool:
        return self._destination_pending

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_probe_in_flight(self) -> bool:
        return self._probe_in_flight

    @property
    def ping_destination(self) -> str:
        """Host handed to ping; URI destinations are reduced to their host."""
        if self._target_type is TargetType.URI and "://" in self._target_dest:
            return urlsplit(self._target_dest).hostname or self._target_dest
        return self._target_dest

    def buffer(self, buffer_type: DataBufferType | str) -> list[float]:
        """Return a copy of a sliding data buffer."""
        buffer_type = _as_member(buffer_type, DataBufferType, "buffer_type")
        return list(self._buffers[buffer_type])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_buffer_filled(self, buffer_type: DataBufferType | str) -> bool:
        """True when the buffer holds at least its capacity of values.

        Raises:
            TypeError: buffer_type is not a DataBufferType value.
        """
        buffer_type = _as_member(buffer_type, DataBufferType, "buffer_type")
        return len(self._buffers[buffer_type]) >= self._buffer_capacity

    def is_peak_expired(self, peak_type: PeakType | str) -> bool:
        """True when the peak has not been updated within the expiration time.

        Raises:
            TypeError: peak_type is not a PeakType value.
        """
        peak_type = _as_member(peak_type, PeakType, "peak_type")
        elapsed_ms = (self._clock() - self._peak_times[peak_type]) * SEC_TO_MS
        return elapsed_ms > self._config.peak_expiration_ms

    def update_peak_time(self, peak_type: PeakType | str) -> None:
        """Mark the peak as updated now.

        Raises:
            TypeError: peak_type is not a PeakType value.
        """
        peak_type = _as_member(peak_type, PeakType, "peak_type")
        self._peak_times[peak_type] = self._clock()

    def is_alert_active(self, mask: AlertMask | int) -> bool:
        """True when every alert in mask is enabled for this target.

        Raises:
            TypeError: mask is not an integer between NONE and ALL.
        """
        if isinstance(mask, bool) or not isinstance(mask, int):
            raise TypeError(f"mask is not an AlertMask: {mask!r}")
        if not AlertMask.NONE <= mask <= AlertMask.ALL:
            raise TypeError(f"mask is not an AlertMask: {mask!r}")
        return (mask & self._config.alert_mask) == mask

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[ProbeResult], None]) -> None:
        """Call callback with the ProbeResult of every completed round."""
        self.ready.connect(callback)

    def unsubscribe(self, callback: Callable[[ProbeResult], None]) -> None:
        self.ready.disconnect(callback)

    def start(self):
        """Start (or restart) monitoring with fresh buffers and peaks."""
        self.stop()
        self._reset()
        self._running = True
        logger.info(
            "Monitoring started: dest=%s, period=%ss",
            self._target_dest or "(pending)",
            self.ping_period,
        )
        self._on_initiate_check()

    def stop(self):
        """Stop scheduling probes. A probe already in flight still reports."""
        self._timer.stop()
        if self._running:
            self._running = False
            logger.info("Monitoring stopped: dest=%s", self._target_dest or "(pending)")

    def _reset(self):
        for values in self._buffers.values():
            values.clear()
        now = self._clock()
        for peak_type in self._peak_times:
            self._peak_times[peak_type] = now

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def _on_initiate_check(self):
        """Launch a probe if possible and arm the next check.

        Without a destination the round is skipped and the next check is a
        full period away. A probe still in flight is re-checked shortly.
        """
        period_ms = int(self.ping_period * SEC_TO_MS)
        delay_ms = RETRY_DELAY_MS

        if not self._target_dest:
            logger.debug("Probe skipped: no destination (pending=%s)", self._destination_pending)
            delay_ms = period_ms
        elif not self._probe_in_flight:
            self._probe_in_flight = True
            arguments = build_ping_arguments(
                self.ping_count, self.ping_interval, self.packet_size, self.ping_destination
            )
            try:
                self._runner.run(PING_COMMAND, arguments, PING_ENVIRONMENT)
            except (RuntimeError, TypeError, ValueError):
                logger.exception("Failed to launch ping: dest=%s", self._target_dest)
                self._probe_in_flight = False
            else:
                delay_ms = period_ms

        self._timer.start(delay_ms)

    def _on_process_ping(self, response: CommandResponse):
        """Fold a completed ping run into the buffers and publish results."""
        try:
            logger.debug(
                "Ping completed: dest=%s, valid=%s, output_size=%d",
                self._target_dest,
                response.valid,
                len(response.result or ""),
            )

            metrics = None
            if response.valid and response.result is not None:
                metrics = compute_round_metrics(parse_ping_output(response.result))
            error = metrics is None

            if error:
                logger.debug("Ping round failed: dest=%s, detail=%s", self._target_dest,
                             (response.result or "")[:100])
                evict = {buffer_type: True for buffer_type in DataBufferType}
            else:
                self._push(DataBufferType.LOSS, metrics.loss)
                self._push(DataBufferType.JITTER, metrics.jitter)
                self._push(DataBufferType.LATENCY, metrics.latency)
                # A buffer still under capacity after the push keeps its oldest value.
                evict = {
                    buffer_type: len(values) >= self._buffer_capacity
                    for buffer_type, values in self._buffers.items()
                }

            for buffer_type, values in self._buffers.items():
                if evict[buffer_type] and values:
                    values.pop(0)

            result = ProbeResult(
                sender=self,
                error=error,
                packet_loss=compute_avt(self._buffers[DataBufferType.LOSS]),
                ping_latency_ms=compute_avt(self._buffers[DataBufferType.LATENCY]),
                ping_jitter=compute_avt(self._buffers[DataBufferType.JITTER]),
            )
        finally:
            self._probe_in_flight = False

        logger.debug(
            "Ping results: dest=%s, error=%s, loss=%.2f%%, latency=%.3fms, jitter=%.3fms",
            self._target_dest,
            result.error,
            result.packet_loss,
            result.ping_latency_ms,
            result.ping_jitter,
        )
        self.ready.emit(result)

    def _push(self, buffer_type: DataBufferType, value: float | None):
        if value is not None:
            self._buffers[buffer_type].append(value)

    # ------------------------------------------------------------------
    # Gateway discovery
    # ------------------------------------------------------------------

    def _find_gateway(self, runner_factory: RunnerFactory):
        route_arguments = parser_for(self._platform).route_arguments
        if route_arguments is None:
            logger.warning(
                "Gateway discovery not supported on platform: %s", self._platform.value
            )
            return

        self._destination_pending = True
        self._route_runner = runner_factory(self)
        self._route_runner.complete.connect(self._on_find_gateway_address)
        self._route_runner.run(ROUTE_COMMAND, list(route_arguments))

    def _on_find_gateway_address(self, response: CommandResponse):
        # Success or failure, the destination is no longer pending.
        self._destination_pending = False

        gateway = None
        if response.valid:
            gateway = extract_gateway(self._platform, response.result)

        if gateway:
            self._target_dest = gateway
            logger.info("Gateway identified: %s", gateway)
            if self._running and not self._probe_in_flight:
                # Started while pending: probe now instead of a period later.
                self._timer.stop()
                self._on_initiate_check()
        else:
            logger.warning(
                "Gateway not identified: valid=%s, detail=%s",
                response.valid,
                (response.result or "")[:100],
            )
        self.destination_resolved.emit(self._target_dest)
