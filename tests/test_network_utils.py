import socket
from types import SimpleNamespace

import pytest

from speaker_discovery.utils import network_utils


def addr(ip, family=socket.AF_INET):
    return SimpleNamespace(family=family, address=ip)


@pytest.fixture
def fake_interfaces(monkeypatch):
    def _install(addresses, down=()):
        stats = {name: SimpleNamespace(isup=name not in down) for name in addresses}
        monkeypatch.setattr(network_utils.psutil, "net_if_addrs", lambda: addresses)
        monkeypatch.setattr(network_utils.psutil, "net_if_stats", lambda: stats)
    return _install


def test_skips_loopback_virtual_and_down_interfaces(fake_interfaces):
    fake_interfaces({
        "lo": [addr("127.0.0.1")],
        "docker0": [addr("172.17.0.1")],
        "eth1": [addr("10.0.0.4")],
        "wlan0": [addr("fe80::1", socket.AF_INET6), addr("192.168.1.33")],
    }, down={"eth1"})

    assert network_utils.find_local_private_ipv4() == ("wlan0", "192.168.1.33")


def test_public_addresses_are_ignored(fake_interfaces):
    fake_interfaces({"eth0": [addr("8.8.8.8")]})
    assert network_utils.find_local_private_ipv4() is None


def test_preferred_interface(fake_interfaces):
    fake_interfaces({"eth0": [addr("10.0.0.4")], "wlan0": [addr("192.168.1.33")]})
    assert network_utils.find_local_private_ipv4("wlan0") == ("wlan0", "192.168.1.33")


def test_subnet_candidates_exclude_host():
    candidates = network_utils.subnet_candidates("192.168.1.1")

    assert len(candidates) == 253
    assert candidates[0] == "192.168.1.2"
    assert candidates[-1] == "192.168.1.254"


def test_refused_connection_counts_as_reachable(monkeypatch):
    def refuse(address, timeout):
        raise ConnectionRefusedError()

    monkeypatch.setattr(network_utils.socket, "create_connection", refuse)
    assert network_utils.is_host_reachable("192.168.1.5", 0.1) is True
    assert network_utils.is_port_open("192.168.1.5", 80, 0.1) is False


def test_timeouts_mean_unreachable(monkeypatch):
    attempts = []

    def time_out(address, timeout):
        attempts.append(address[1])
        raise socket.timeout()

    monkeypatch.setattr(network_utils.socket, "create_connection", time_out)
    assert network_utils.is_host_reachable("192.168.1.5", 0.1, ports=(80, 443)) is False
    assert attempts == [80, 443]
