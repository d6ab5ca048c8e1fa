"""Ping command construction and output parsing."""

import logging
import re

from pingwatch.models import PingReading

logger = logging.getLogger(__name__)

PING_COMMAND = "ping"
# Keeps ping's output keywords ("time=") in English whatever the user locale.
PING_ENVIRONMENT = ["LC_ALL=C"]

SEQUENCE_MARKER = "icmp_seq="
_LATENCY_PATTERN = re.compile(r"time\s*=\s*(\d+(?:\.\d+)?)", re.IGNORECASE)


def parse_ping_line(line: str) -> float | None:
    """Parse the latency of one per-packet ping line (pure function).

    Examples:
        >>> parse_ping_line("64 bytes from 1.1.1.1: icmp_seq=1 ttl=57 time=12.3 ms")
        12.3
        >>> parse_ping_line("From 10.0.0.1 icmp_seq=2 Destination Host Unreachable") is None
        True
    """
    match = _LATENCY_PATTERN.search(line)
    if match is None:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def parse_ping_output(output: str | None) -> PingReading:
    """Split raw ping output into per-packet latencies and a loss count.

    Only lines carrying an ``icmp_seq=`` marker are considered. A marked
    line with a ``time=`` field contributes a latency sample; one without
    it counts as a lost packet. Summary lines are ignored.

    Args:
        output: Complete ping stdout, reassembled from all chunks

    Returns:
        PingReading with latencies in the order the replies arrived
    """
    reading = PingReading()
    if not output:
        return reading

    for line in output.splitlines():
        if SEQUENCE_MARKER not in line.lower():
            continue
        latency = parse_ping_line(line)
        if latency is None:
            reading.lost += 1
        else:
            reading.latencies_ms.append(latency)

    logger.debug(
        "Ping output parsed: samples=%d, lost=%d", len(reading.latencies_ms), reading.lost
    )
    return reading


def build_ping_arguments(count: int, interval: float, packet_size: int, destination: str) -> list[str]:
    """Build the argument list for one ping round.

    Args:
        count: Number of echo requests
        interval: Seconds between requests
        packet_size: Payload size in bytes
        destination: Host, address or URI to ping
    """
    return [
        f"-c{count}",
        f"-i{interval:g}",
        f"-s{packet_size}",
        destination,
    ]
