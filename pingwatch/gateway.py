"""Default gateway discovery from routing table output.

The route command and its output differ per operating system, so each
supported platform has its own parser. The platform is detected once
and passed in, which keeps parsing testable on any host.
"""

import logging
import platform as _platform
import re
from enum import Enum

from pingwatch.validation import is_ipv4

logger = logging.getLogger(__name__)

ROUTE_COMMAND = "route"
DEFAULT_IPV4_ROUTE = "0.0.0.0"

_WHITESPACE = re.compile(r"\s+")


class Platform(str, Enum):
    """Operating system families with distinct routing table formats."""

    DARWIN = "darwin"
    LINUX = "linux"
    WINDOWS = "windows"
    UNSUPPORTED = "unsupported"


def detect_platform() -> Platform:
    """Map the running operating system onto a Platform."""
    system = _platform.system().lower()
    try:
        return Platform(system)
    except ValueError:
        logger.debug("Platform not supported for gateway discovery: %s", system)
        return Platform.UNSUPPORTED


class GatewayParser:
    """Strategy for extracting the default gateway from route output."""

    route_arguments: list[str] | None = None

    def parse(self, lines: list[str]) -> str | None:
        return None


class DarwinGatewayParser(GatewayParser):
    """Parses ``route get default`` output ("gateway: 10.0.0.1")."""

    route_arguments = ["get", "default"]
    GATEWAY_LABEL = "gateway: "

    def parse(self, lines: list[str]) -> str | None:
        for line in lines:
            start = line.find(self.GATEWAY_LABEL)
            if start >= 0 and len(line) > start + len(self.GATEWAY_LABEL):
                return line[start + len(self.GATEWAY_LABEL):].strip()
        return None


class LinuxGatewayParser(GatewayParser):
    """Parses the ``route -n`` kernel routing table.

    The second line holds the column headers; the default route is the
    first row whose Destination column is 0.0.0.0.
    """

    route_arguments = ["-n"]
    HEADER_ROW = 1
    DESTINATION_HEADER = "Destination"
    GATEWAY_HEADER = "Gateway"

    def parse(self, lines: list[str]) -> str | None:
        if len(lines) <= self.HEADER_ROW + 1:
            return None

        headers = _WHITESPACE.split(lines[self.HEADER_ROW])
        if len(headers) <= 2:
            return None
        try:
            col_destination = headers.index(self.DESTINATION_HEADER)
            col_gateway = headers.index(self.GATEWAY_HEADER)
        except ValueError:
            return None

        for row in lines[self.HEADER_ROW + 1:]:
            route_fields = _WHITESPACE.split(row)
            if len(route_fields) != len(headers):
                continue
            if route_fields[col_destination] == DEFAULT_IPV4_ROUTE:
                return route_fields[col_gateway]
        return None


class WindowsGatewayParser(GatewayParser):
    """Parses ``route print 0.0.0.0``.

    Active route rows read ``Network Destination, Netmask, Gateway,
    Interface, Metric``; the default route has destination and netmask
    0.0.0.0. Rows whose gateway is "On-link" are skipped.
    """

    route_arguments = ["print", DEFAULT_IPV4_ROUTE]

    def parse(self, lines: list[str]) -> str | None:
        for line in lines:
            route_fields = line.split()
            if len(route_fields) < 3:
                continue
            if route_fields[0] == DEFAULT_IPV4_ROUTE and route_fields[1] == DEFAULT_IPV4_ROUTE:
                if is_ipv4(route_fields[2]):
                    return route_fields[2]
        return None


_PARSERS = {
    Platform.DARWIN: DarwinGatewayParser,
    Platform.LINUX: LinuxGatewayParser,
    Platform.WINDOWS: WindowsGatewayParser,
}


def parser_for(platform: Platform) -> GatewayParser:
    """Return the gateway parser for platform (a no-op one if unsupported)."""
    return _PARSERS.get(platform, GatewayParser)()


def extract_gateway(platform: Platform, output: str) -> str | None:
    """Extract the default gateway address from route command output."""
    if not output:
        return None
    gateway = parser_for(platform).parse(output.splitlines())
    if gateway:
        logger.debug("Gateway parsed: platform=%s, gateway=%s", platform.value, gateway)
    return gateway or None
