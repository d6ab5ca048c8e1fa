"""Validation of configured target destinations."""

import ipaddress
import logging
import re
from urllib.parse import urlsplit

from pingwatch.errors import ConfigRangeError
from pingwatch.models import DEFAULT_TARGET_DEST, TargetType

logger = logging.getLogger(__name__)

CABLE_MODEM_ADDRESS = "192.168.100.1"
DEFAULT_URL_SCHEME = "https://"

_URL_SCHEMES = ("http", "https")
_HOST_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$", re.IGNORECASE)
_TLD = re.compile(r"^(?:[a-z]{2,63}|xn--[a-z0-9-]{1,59})$", re.IGNORECASE)


def is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def is_ipv6(value: str) -> bool:
    try:
        ipaddress.IPv6Address(value)
    except ValueError:
        return False
    return True


def _is_hostname(host: str) -> bool:
    labels = host.rstrip(".").split(".")
    if len(labels) < 2:
        return False
    if not all(_HOST_LABEL.match(label) for label in labels):
        return False
    return bool(_TLD.match(labels[-1]))


def is_url(value: str) -> bool:
    """Check that value is an http(s) URL with a usable host.

    Hosts must be a dotted domain name with an alphabetic top level
    domain, an IPv4 address or a bracketed IPv6 address.
    """
    if not value or any(ch.isspace() for ch in value):
        return False
    try:
        parts = urlsplit(value)
        port = parts.port  # raises ValueError for a malformed port
    except ValueError:
        return False
    if parts.scheme.lower() not in _URL_SCHEMES or not parts.hostname:
        return False
    if port is not None and port == 0:
        return False

    host = parts.hostname
    if is_ipv4(host) or is_ipv6(host):
        return True
    return _is_hostname(host)


def validate_destination(target_type: TargetType, destination: str) -> None:
    """Check that destination is syntactically valid for target_type.

    URI destinations may omit the scheme; ``https://`` is assumed for
    the check. A bare ``localhost`` is always accepted as a URI.

    Raises:
        ConfigRangeError: destination does not match the target type.
    """
    if target_type is TargetType.URI:
        candidate = destination.lower()
        if not candidate.startswith(("http://", "https://")):
            candidate = DEFAULT_URL_SCHEME + candidate
        if destination.lower() != DEFAULT_TARGET_DEST and not is_url(candidate):
            raise ConfigRangeError(
                f"Target destination is not a URI/URL: {destination!r}", "target_dest"
            )
    elif target_type is TargetType.IPV4:
        if not is_ipv4(destination):
            raise ConfigRangeError(
                f"Target destination is not an IPv4 address: {destination!r}", "target_dest"
            )
    elif target_type is TargetType.IPV6:
        if not is_ipv6(destination):
            raise ConfigRangeError(
                f"Target destination is not an IPv6 address: {destination!r}", "target_dest"
            )
    else:
        raise ConfigRangeError(
            f"Cannot validate a destination for target type {target_type.value}", "target_type"
        )


def resolve_destination(
    target_type: TargetType, destination: str | None
) -> tuple[TargetType, str]:
    """Resolve target aliases and validate the final destination.

    Returns the effective (type, destination) pair:

    - cable modem targets become the well known IPv4 modem address
    - gateway targets keep their type with an empty destination, which is
      filled in later by gateway discovery
    - everything else is validated as configured, defaulting to
      ``localhost`` when no destination was given
    """
    if target_type is TargetType.CABLE_MODEM:
        return TargetType.IPV4, CABLE_MODEM_ADDRESS
    if target_type is TargetType.GATEWAY:
        return TargetType.GATEWAY, ""

    destination = destination or DEFAULT_TARGET_DEST
    validate_destination(target_type, destination)
    logger.debug("Destination validated: type=%s, dest=%s", target_type.value, destination)
    return target_type, destination
