"""
Network utility functions for local interface detection and host probing.

This module provides helpers to pick the host's private IPv4 address from its
interfaces (via psutil), enumerate the /24 sweep range, and run the TCP based
port and reachability probes used by the subnet sweep and status checks.
"""

import ipaddress
import socket
from typing import List, Optional, Sequence, Tuple

import psutil


# Interface name prefixes that belong to containers, VMs, tunnels and bridges
VIRTUAL_INTERFACE_PREFIXES = (
    "lo", "docker", "veth", "br-", "virbr", "vmnet", "vboxnet", "vnic",
    "tun", "tap", "utun", "wg", "zt", "tailscale", "podman", "cni", "flannel",
)

DEFAULT_REACHABILITY_PORTS = (80, 443)


def is_valid_ip(ip_address: str) -> bool:
    """
    Check if a string represents a valid IPv4 address.

    Args:
        ip_address: String to validate as IPv4 address

    Returns:
        bool: True if valid IPv4 address, False otherwise
    """
    try:
        ipaddress.IPv4Address(ip_address)
        return True
    except ipaddress.AddressValueError:
        return False


def is_private_ipv4(ip_address: str) -> bool:
    """True for RFC 1918 style addresses that are neither loopback nor link-local."""
    try:
        address = ipaddress.IPv4Address(ip_address)
    except ipaddress.AddressValueError:
        return False
    return address.is_private and not address.is_loopback and not address.is_link_local


def is_virtual_interface(interface_name: str) -> bool:
    return interface_name.lower().startswith(VIRTUAL_INTERFACE_PREFIXES)


def find_local_private_ipv4(preferred_interface: Optional[str] = None) -> Optional[Tuple[str, str]]:
    """
    Find the host's private IPv4 address.

    Walks the interfaces reported by psutil and returns the first private IPv4
    address that belongs to an interface which is up, not a loopback and not a
    virtual/tunnel device.

    Args:
        preferred_interface: Only consider this interface when given

    Returns:
        Tuple of (interface_name, ip_address), or None when nothing matches
    """
    addresses = psutil.net_if_addrs()
    stats = psutil.net_if_stats()

    for interface_name, interface_addresses in addresses.items():
        if preferred_interface and interface_name != preferred_interface:
            continue
        interface_stats = stats.get(interface_name)
        if interface_stats is None or not interface_stats.isup:
            continue
        if is_virtual_interface(interface_name):
            continue

        for address in interface_addresses:
            if address.family != socket.AF_INET:
                continue
            if is_private_ipv4(address.address):
                return interface_name, address.address

    return None


def network_prefix(ip_address: str) -> str:
    """Return the first three octets of an IPv4 address (the /24 prefix)."""
    return ip_address.rsplit('.', 1)[0]


def subnet_candidates(host_ip: str) -> List[str]:
    """
    Enumerate the /24 sweep range around the host address.

    Host suffixes 1..254 are returned in order, excluding the host itself.

    Args:
        host_ip: IPv4 address of the scanning host

    Returns:
        List of candidate IP addresses
    """
    prefix = network_prefix(host_ip)
    return [
        f"{prefix}.{suffix}"
        for suffix in range(1, 255)
        if f"{prefix}.{suffix}" != host_ip
    ]


def is_port_open(ip_address: str, port: int, timeout: float) -> bool:
    """
    Check whether a TCP port accepts connections.

    Args:
        ip_address: Target host
        port: TCP port
        timeout: Connect timeout in seconds

    Returns:
        True if the connection was established
    """
    try:
        with socket.create_connection((ip_address, port), timeout=timeout):
            return True
    except OSError:
        return False


def is_host_reachable(ip_address: str, timeout: float,
                      ports: Sequence[int] = DEFAULT_REACHABILITY_PORTS) -> bool:
    """
    Portable reachability check based on TCP connect attempts.

    A host counts as reachable when any probe port either accepts the
    connection or actively refuses it: a refusal means the host's stack
    answered. Timeouts and routing errors mean unreachable.

    Args:
        ip_address: Target host
        timeout: Connect timeout per probe port, in seconds
        ports: Probe ports tried in order

    Returns:
        True if the host answered on any probe port
    """
    for port in ports:
        try:
            with socket.create_connection((ip_address, port), timeout=timeout):
                return True
        except ConnectionRefusedError:
            return True
        except OSError:
            continue
    return False
