"""Error types raised by the PingWatch monitoring engine."""


class PingWatchError(Exception):
    """Base class for PingWatch errors."""


class ConfigError(PingWatchError):
    """Invalid target configuration.

    Raised synchronously while a target is being constructed. The
    offending configuration key is kept in ``field`` so callers can
    report which setting needs fixing.
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConfigTypeError(ConfigError, TypeError):
    """A configuration value has the wrong type."""


class ConfigRangeError(ConfigError, ValueError):
    """A configuration value is outside its allowed range."""
