"""
Response parsing and identity resolution for Speaker Discovery.

Turns raw SSDP datagrams and sweep hits into DeviceObservation objects and
resolves an observation into the normalized attributes of a device record.
Every function here is pure and total: missing data only ever degrades to a
weaker default, there is no parse error path.
"""

import re
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Dict, Iterable, Optional

from .data_models import DeviceObservation, DiscoveryStrategy


IDENTITY_KEY_PREFIX = "MAC_"
DEFAULT_NAME_PREFIX = "Samsung Speaker"
DEFAULT_MODEL = "Samsung Multiroom Speaker"
DEFAULT_VENDOR_TOKENS = ("samsung", "multiroom")

# Six hex byte pairs separated by ':' or '-'
MAC_PATTERN = re.compile(r"(?<![0-9A-Fa-f])(?:[0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}(?![0-9A-Fa-f])")


@dataclass(frozen=True)
class ResolvedDevice:
    """Normalized device attributes derived from one observation."""
    identity_key: str
    name: str
    model: str
    ip: str


def parse_headers(response: str) -> Dict[str, str]:
    """
    Parse SSDP header lines into a dictionary with lowercase keys.

    The request/status line and any line without a colon are ignored.

    Args:
        response: Decoded datagram text

    Returns:
        Dict mapping lowercase header names to stripped values
    """
    headers = {}
    for line in response.splitlines():
        if ':' not in line:
            continue
        key, value = line.split(':', 1)
        key = key.strip().lower()
        if key and key not in headers:
            headers[key] = value.strip()
    return headers


def matches_vendor(response: str, vendor_tokens: Iterable[str] = DEFAULT_VENDOR_TOKENS) -> bool:
    """Case-insensitive substring match of the response against the vendor allow-list."""
    lowered = response.lower()
    return any(token.lower() in lowered for token in vendor_tokens if token)


def extract_mac(text: Optional[str]) -> Optional[str]:
    """
    Find a MAC-shaped token in the given text.

    Args:
        text: Text to search (typically the USN header)

    Returns:
        The first MAC-shaped token verbatim, or None
    """
    if not text:
        return None
    match = MAC_PATTERN.search(text)
    return match.group(0) if match else None


def synthesize_identity_key(ip_address: str) -> str:
    """
    Build a deterministic identity key from a dotted IPv4 address.

    Each octet is zero-padded to three digits and concatenated in order
    behind a fixed prefix, so distinct addresses never share a key
    (``1.11.1.1`` and ``11.1.1.1`` stay apart).

    Args:
        ip_address: Dotted IPv4 address

    Returns:
        Synthesized identity key, e.g. ``MAC_192168001005``
    """
    parts = ip_address.strip().split('.')
    if len(parts) == 4 and all(part.isdigit() for part in parts):
        return IDENTITY_KEY_PREFIX + "".join(part.zfill(3) for part in parts)
    # Not a dotted quad; keep the raw text so the key stays unique
    return IDENTITY_KEY_PREFIX + ip_address.strip()


def default_name(ip_address: str) -> str:
    return f"{DEFAULT_NAME_PREFIX} {ip_address}"


def is_default_name(name: Optional[str]) -> bool:
    """True for empty names and for the placeholder produced by default_name()."""
    return not name or name.startswith(DEFAULT_NAME_PREFIX)


def is_default_model(model: Optional[str]) -> bool:
    return not model or model == DEFAULT_MODEL


def parse_ssdp_response(response: str, source_ip: str,
                        vendor_tokens: Iterable[str] = DEFAULT_VENDOR_TOKENS,
                        observed_at: Optional[datetime] = None) -> Optional[DeviceObservation]:
    """
    Convert one SSDP datagram into an observation.

    Args:
        response: Decoded datagram text
        source_ip: Address the datagram came from
        vendor_tokens: Allow-list of vendor signature tokens
        observed_at: Observation time (defaults to now)

    Returns:
        DeviceObservation for matching responses, None for non-matching or
        empty packets
    """
    if not response or not response.strip():
        return None
    if not matches_vendor(response, vendor_tokens):
        return None

    headers = parse_headers(response)
    server = headers.get('server') or None
    user_agent = headers.get('user-agent') or None

    return DeviceObservation(
        source_ip=source_ip,
        strategy=DiscoveryStrategy.SSDP,
        raw_mac=extract_mac(headers.get('usn')),
        model=server or user_agent,
        name=server.split()[0] if server else None,
        observed_at=observed_at or datetime.now(UTC),
        headers={
            key: headers[key]
            for key in ('usn', 'location', 'server', 'st', 'user-agent')
            if key in headers
        },
    )


def observation_from_scan_hit(ip_address: str, port: int,
                              observed_at: Optional[datetime] = None) -> DeviceObservation:
    """Build the observation for a host that answered on one of the sweep ports."""
    return DeviceObservation(
        source_ip=ip_address,
        strategy=DiscoveryStrategy.SCAN,
        port=port,
        observed_at=observed_at or datetime.now(UTC),
    )


def resolve_identity_key(observation: DeviceObservation) -> str:
    if observation.raw_mac:
        return observation.raw_mac
    return synthesize_identity_key(observation.source_ip)


def resolve_name(observation: DeviceObservation) -> str:
    if observation.name and observation.name.strip():
        return f"{observation.name.strip()} ({observation.source_ip})"
    return default_name(observation.source_ip)


def resolve_model(observation: DeviceObservation) -> str:
    if observation.model and observation.model.strip():
        return observation.model.strip()
    return DEFAULT_MODEL


def resolve(observation: DeviceObservation) -> ResolvedDevice:
    """Resolve identity key, name and model for an observation."""
    return ResolvedDevice(
        identity_key=resolve_identity_key(observation),
        name=resolve_name(observation),
        model=resolve_model(observation),
        ip=observation.source_ip,
    )
