from __future__ import annotations

import ipaddress
import re
from typing import Any
from urllib.parse import urlsplit, urlunsplit

_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")


def mask_ip_address(value: str | None) -> str | None:
    """Reduce an address to its network part so broadcast events never carry a full IP."""
    if not value:
        return None
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return "unknown"
    if address.version == 4:
        octets = str(address).split(".")
        return ".".join(octets[:3] + ["xxx"])
    hextets = address.exploded.split(":")
    return ":".join(hextets[:3]) + "::"


def redact_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return _EMAIL_RE.sub("[redacted-email]", value)


def redact_referrer(value: str | None) -> str | None:
    """Drop query string and fragment, which is where referrers leak identifiers."""
    if not value:
        return None
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        return redact_value(value.split("?", 1)[0])
    return redact_value(urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")))
