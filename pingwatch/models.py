"""Data models for PingWatch targets, probe rounds and results."""

from dataclasses import dataclass, field, fields
from enum import Enum, IntFlag
from typing import Any, Mapping

from pingwatch.errors import ConfigRangeError, ConfigTypeError

DEFAULT_TARGET_DEST = "localhost"
DEFAULT_LOSS_LIMIT = 5.0
MIN_LOSS_LIMIT = 0.0
MAX_LOSS_LIMIT = 100.0
MIN_PACKET_SIZE = 56
DEFAULT_PACKET_SIZE = MIN_PACKET_SIZE
MIN_PING_COUNT = 3  # Need at least 3 to compute a standard deviation
DEFAULT_PING_COUNT = 5
MIN_PING_INTERVAL = 1
DEFAULT_PING_INTERVAL = 1
DEFAULT_PING_PERIOD = 20.0
DEFAULT_PEAK_EXPIRATION_HOURS = 12.0
DEFAULT_EXPECTED_LATENCY = 10.0
DEFAULT_EXPECTED_JITTER = 1.0
DEFAULT_DATA_FILTER_TIME = 180.0

MS_PER_HOUR = 3600.0 * 1000.0


class TargetType(str, Enum):
    """Kinds of monitored destination."""

    URI = "uri"
    IPV4 = "ipv4"
    IPV6 = "ipv6"
    GATEWAY = "gateway"
    CABLE_MODEM = "cable_modem"


class PeakType(str, Enum):
    """Metrics whose peak value age is tracked."""

    LATENCY = "peak_latency"
    JITTER = "peak_jitter"
    LOSS = "peak_packet_loss"


class DataBufferType(str, Enum):
    """Sliding sample buffers kept per target."""

    LATENCY = "data_latency"
    JITTER = "data_jitter"
    LOSS = "data_packet_loss"


class AlertMask(IntFlag):
    """Bitmask of alert categories enabled for a target."""

    NONE = 0
    LATENCY = 1
    LOSS = 2
    JITTER = 4
    ALL = 7


class StdDevType(Enum):
    """Standard deviation flavour. The value is the divisor offset."""

    POPULATION = 0
    SAMPLE = 1


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class TargetConfig:
    """Configuration of one monitored network target.

    Every field is optional and falls back to the documented default.
    The whole record is validated once in ``__post_init__``; an invalid
    value raises a ``ConfigTypeError`` or ``ConfigRangeError`` naming the
    offending field, so a half-validated configuration never exists.

    Units: ``loss_limit`` percent, ``packet_size`` bytes, ``ping_interval``
    and ``ping_period`` seconds, ``peak_expiration`` hours,
    ``expected_latency``/``expected_jitter`` milliseconds and
    ``data_filter_time_window`` seconds.
    """

    target_type: TargetType | str = TargetType.URI
    target_dest: str | None = None
    loss_limit: float = DEFAULT_LOSS_LIMIT
    packet_size: int = DEFAULT_PACKET_SIZE
    ping_count: int = DEFAULT_PING_COUNT
    ping_interval: float = DEFAULT_PING_INTERVAL
    ping_period: float = DEFAULT_PING_PERIOD
    peak_expiration: float = DEFAULT_PEAK_EXPIRATION_HOURS
    expected_latency: float = DEFAULT_EXPECTED_LATENCY
    expected_jitter: float = DEFAULT_EXPECTED_JITTER
    data_filter_time_window: float | None = None
    alert_mask: AlertMask | int = AlertMask.ALL

    def __post_init__(self):
        # target_type
        if isinstance(self.target_type, TargetType):
            target_type = self.target_type
        elif isinstance(self.target_type, str):
            try:
                target_type = TargetType(self.target_type.lower())
            except ValueError:
                raise ConfigRangeError(
                    f"target_type is invalid: {self.target_type!r}", "target_type"
                ) from None
        else:
            raise ConfigTypeError(
                f"target_type must be a string: {self.target_type!r}", "target_type"
            )
        object.__setattr__(self, "target_type", target_type)

        # target_dest
        if self.target_dest is not None:
            if not isinstance(self.target_dest, str):
                raise ConfigTypeError(
                    f"target_dest must be a string: {self.target_dest!r}", "target_dest"
                )
            if not self.target_dest:
                raise ConfigRangeError("target_dest must not be empty", "target_dest")
            if target_type in (TargetType.GATEWAY, TargetType.CABLE_MODEM):
                raise ConfigRangeError(
                    f"target_dest cannot be set for a {target_type.value} target: "
                    f"{self.target_dest!r}",
                    "target_dest",
                )

        for name in ("loss_limit", "ping_interval", "ping_period", "peak_expiration",
                     "expected_latency", "expected_jitter"):
            if not _is_number(getattr(self, name)):
                raise ConfigTypeError(f"{name} must be a number: {getattr(self, name)!r}", name)
        for name in ("packet_size", "ping_count", "alert_mask"):
            if not _is_integer(getattr(self, name)):
                raise ConfigTypeError(f"{name} must be an integer: {getattr(self, name)!r}", name)
        if self.data_filter_time_window is not None and not _is_number(
            self.data_filter_time_window
        ):
            raise ConfigTypeError(
                f"data_filter_time_window must be a number: {self.data_filter_time_window!r}",
                "data_filter_time_window",
            )

        if not MIN_LOSS_LIMIT <= self.loss_limit <= MAX_LOSS_LIMIT:
            raise ConfigRangeError(
                f"loss_limit is outside the allowed range: {self.loss_limit}", "loss_limit"
            )
        if self.packet_size < MIN_PACKET_SIZE:
            raise ConfigRangeError(
                f"packet_size is less than the minimum: {self.packet_size}", "packet_size"
            )
        if self.ping_count < MIN_PING_COUNT:
            raise ConfigRangeError(
                f"ping_count is less than the minimum: {self.ping_count}", "ping_count"
            )
        if self.ping_interval < MIN_PING_INTERVAL:
            raise ConfigRangeError(
                f"ping_interval is less than the minimum: {self.ping_interval}", "ping_interval"
            )
        min_period = 2.0 * self.ping_interval * self.ping_count
        if self.ping_period < min_period:
            raise ConfigRangeError(
                f"ping_period {self.ping_period} is less than the minimum of {min_period}",
                "ping_period",
            )
        if self.peak_expiration < 0:
            raise ConfigRangeError(
                f"peak_expiration is negative: {self.peak_expiration}", "peak_expiration"
            )
        if self.expected_latency <= 0:
            raise ConfigRangeError(
                f"expected_latency is invalid: {self.expected_latency}", "expected_latency"
            )
        if self.expected_jitter <= 0:
            raise ConfigRangeError(
                f"expected_jitter is invalid: {self.expected_jitter}", "expected_jitter"
            )
        if not AlertMask.NONE <= self.alert_mask <= AlertMask.ALL:
            raise ConfigRangeError(f"alert_mask is invalid: {self.alert_mask}", "alert_mask")
        object.__setattr__(self, "alert_mask", AlertMask(self.alert_mask))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "TargetConfig":
        """Build a config from a plain mapping, ignoring unknown keys.

        Keys whose value is None are treated as absent.
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigTypeError(f"Configuration is invalid: {data!r}")
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        return cls(**kwargs)

    @property
    def peak_expiration_ms(self) -> float:
        return self.peak_expiration * MS_PER_HOUR

    @property
    def filter_time_window(self) -> float:
        """Effective data filter window in seconds.

        An explicit window shorter than the ping period is raised to the
        ping period so that at least one round fits in the buffers.
        """
        if self.data_filter_time_window is None:
            return DEFAULT_DATA_FILTER_TIME
        return max(self.data_filter_time_window, self.ping_period)


@dataclass
class Stats:
    """Summary statistics of a numeric sample set."""

    mean: float
    stddev: float
    median: float
    min: float
    max: float
    size: int


@dataclass
class PingReading:
    """Raw per-packet results parsed from one ping run."""

    latencies_ms: list[float] = field(default_factory=list)
    lost: int = 0

    @property
    def total(self) -> int:
        return len(self.latencies_ms) + self.lost


@dataclass
class RoundMetrics:
    """Metrics derived from one probe round.

    A field is None when that metric could not be computed this round,
    e.g. jitter when every packet was lost.
    """

    loss: float | None = None
    jitter: float | None = None
    latency: float | None = None


@dataclass
class ProbeResult:
    """Payload of a target's ``ready`` event."""

    sender: Any
    error: bool
    packet_loss: float
    ping_latency_ms: float
    ping_jitter: float


@dataclass
class CommandResponse:
    """Outcome of one command runner execution."""

    valid: bool
    result: str
    source: Any
