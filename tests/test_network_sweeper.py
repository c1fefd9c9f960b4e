import threading
import time

from speaker_discovery.config.config_loader import SweepConfig
from speaker_discovery.core.data_models import DiscoveryStrategy, ScanStatus
from speaker_discovery.scanners.network_sweeper import NetworkSweeper

from tests.conftest import ReachabilityStub


class PortStub:
    def __init__(self, open_ports):
        self.open_ports = open_ports
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, ip_address, port, timeout):
        with self._lock:
            self.calls.append((ip_address, port))
        return port in self.open_ports.get(ip_address, ())


def make_sweeper(quiet_logger, error_handler, reachability, ports, **config):
    config.setdefault("local_ip", "192.168.1.10")
    return NetworkSweeper(
        SweepConfig(**config), quiet_logger, error_handler,
        reachability_probe=reachability, port_probe=ports,
    )


def test_sweep_covers_subnet_except_host(quiet_logger, error_handler):
    reachability = ReachabilityStub()
    sweeper = make_sweeper(quiet_logger, error_handler, reachability, PortStub({}))

    result = sweeper.scan()

    assert result.scan_status is ScanStatus.COMPLETED
    assert len(reachability.calls) == 253
    assert "192.168.1.10" not in reachability.calls
    assert "192.168.1.0" not in reachability.calls
    assert "192.168.1.255" not in reachability.calls


def test_first_open_port_wins(quiet_logger, error_handler):
    reachability = ReachabilityStub({"192.168.1.20", "192.168.1.21"})
    ports = PortStub({"192.168.1.20": {8080, 49152}, "192.168.1.21": set()})
    seen = []

    result = make_sweeper(quiet_logger, error_handler, reachability, ports).scan(sink=seen.append)

    assert [(o.source_ip, o.port) for o in seen] == [("192.168.1.20", 8080)]
    assert all(o.strategy is DiscoveryStrategy.SCAN for o in result.observations)
    assert ("192.168.1.20", 49152) not in ports.calls
    assert [p for ip, p in ports.calls if ip == "192.168.1.21"] == [80, 8080, 49152, 49153, 49154]


def test_unreachable_hosts_skip_port_checks(quiet_logger, error_handler):
    ports = PortStub({})
    make_sweeper(quiet_logger, error_handler, ReachabilityStub(), ports).scan()
    assert ports.calls == []


def test_concurrency_ceiling_is_respected(quiet_logger, error_handler):
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def slow_probe(ip_address, timeout, ports):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.005)
        with lock:
            state["active"] -= 1
        return False

    make_sweeper(quiet_logger, error_handler, slow_probe, PortStub({}), max_parallel=4).scan()

    assert state["active"] == 0
    assert 1 <= state["peak"] <= 4


def test_missing_interface_skips_sweep(quiet_logger, error_handler):
    reachability = ReachabilityStub()
    sweeper = NetworkSweeper(
        SweepConfig(), quiet_logger, error_handler,
        reachability_probe=reachability, port_probe=PortStub({}),
        local_ip_resolver=lambda interface: None,
    )

    result = sweeper.scan()

    assert result.scan_status is ScanStatus.SKIPPED
    assert result.observations == []
    assert reachability.calls == []
    assert error_handler.get_error_statistics() == {"interface_error": 1}


def test_detected_interface_is_used(quiet_logger, error_handler):
    sweeper = NetworkSweeper(
        SweepConfig(), quiet_logger, error_handler,
        reachability_probe=ReachabilityStub(), port_probe=PortStub({}),
        local_ip_resolver=lambda interface: ("eth0", "10.0.5.7"),
    )

    info = sweeper.detect_network()

    assert info.interface_name == "eth0"
    assert info.network_prefix == "10.0.5"
    assert info.scan_range[0] == "10.0.5.1"
    assert "10.0.5.7" not in info.scan_range


def test_probe_exception_is_contained(quiet_logger, error_handler):
    def broken_probe(ip_address, timeout, ports):
        if ip_address == "192.168.1.50":
            raise RuntimeError("boom")
        return False

    result = make_sweeper(quiet_logger, error_handler, broken_probe, PortStub({})).scan()

    assert result.scan_status is ScanStatus.COMPLETED
    assert len(result.errors) == 1
