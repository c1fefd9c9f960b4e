import threading

from speaker_discovery.core.data_models import DeviceObservation, DeviceState, DiscoveryStrategy
from speaker_discovery.core.device_registry import DeviceRegistry
from speaker_discovery.core.response_parser import DEFAULT_MODEL, observation_from_scan_hit
from speaker_store import InMemorySpeakerStore, OperationError


def ssdp_observation(ip="192.168.1.20", mac=None):
    return DeviceObservation(
        source_ip=ip,
        strategy=DiscoveryStrategy.SSDP,
        raw_mac=mac,
        model="SamsungMultiroom/1.0 UPnP/1.0",
        name="SamsungMultiroom/1.0",
    )


class FailingStore(InMemorySpeakerStore):
    def save(self, record):
        raise OperationError("write refused", operation="save")


def test_first_observation_creates_connected_record(registry, clock, memory_store):
    record = registry.merge(observation_from_scan_hit("192.168.1.40", 80))

    assert record.identity_key == "MAC_192168001040"
    assert record.connected is True
    assert record.last_seen == clock.now
    assert record.state is DeviceState.DISCOVERED
    assert memory_store.find_by_identity_key(record.identity_key).record == record


def test_merge_is_idempotent(registry):
    observation = ssdp_observation()
    first = registry.merge(observation)
    second = registry.merge(observation)

    assert first == second
    assert len(registry.list()) == 1


def test_ssdp_and_scan_merges_commute(memory_store, reachability, clock, quiet_logger):
    results = []
    for order in ((ssdp_observation(), observation_from_scan_hit("192.168.1.20", 80)),
                  (observation_from_scan_hit("192.168.1.20", 80), ssdp_observation())):
        registry = DeviceRegistry(InMemorySpeakerStore(), reachability, clock, quiet_logger)
        for observation in order:
            registry.merge(observation)
        results.append(registry.list())

    assert results[0] == results[1]
    record = results[0][0]
    assert record.name == "SamsungMultiroom/1.0 (192.168.1.20)"
    assert record.model == "SamsungMultiroom/1.0 UPnP/1.0"


def test_existing_name_is_preserved(registry):
    registry.merge(ssdp_observation(mac="a0:b1:c2:d3:e4:f5"))
    renamed = DeviceObservation(
        source_ip="192.168.1.21",
        strategy=DiscoveryStrategy.SSDP,
        raw_mac="a0:b1:c2:d3:e4:f5",
        model="SamsungMultiroom/2.0",
        name="OtherName",
    )
    record = registry.merge(renamed)

    assert record.name == "SamsungMultiroom/1.0 (192.168.1.20)"
    assert record.ip == "192.168.1.21"
    assert record.model == "SamsungMultiroom/2.0"


def test_default_model_does_not_overwrite_specific(registry):
    registry.merge(ssdp_observation())
    record = registry.merge(observation_from_scan_hit("192.168.1.20", 8080))
    assert record.model != DEFAULT_MODEL


def test_list_is_sorted_by_ip_and_immutable(registry):
    for ip in ("192.168.1.100", "192.168.1.9", "192.168.1.20"):
        registry.merge(observation_from_scan_hit(ip, 80))

    listed = registry.list()
    assert isinstance(listed, tuple)
    assert [r.ip for r in listed] == ["192.168.1.9", "192.168.1.20", "192.168.1.100"]

    registry.merge(observation_from_scan_hit("192.168.1.1", 80))
    assert len(listed) == 3


def test_status_check_transitions(registry, reachability, clock):
    created = registry.merge(observation_from_scan_hit("192.168.1.40", 80))

    clock.advance(60)
    assert registry.status_check("192.168.1.40") is False
    stale = registry.get(created.identity_key).record
    assert stale.connected is False
    assert stale.state is DeviceState.STALE
    assert stale.last_seen == created.last_seen

    reachability.reachable.add("192.168.1.40")
    clock.advance(60)
    assert registry.status_check("192.168.1.40") is True
    back = registry.get(created.identity_key).record
    assert back.connected is True
    assert back.last_seen == clock.now


def test_later_observation_reconnects_stale_record(registry):
    registry.merge(observation_from_scan_hit("192.168.1.40", 80))
    registry.status_check("192.168.1.40")

    record = registry.merge(observation_from_scan_hit("192.168.1.40", 80))
    assert record.connected is True


def test_status_check_never_creates_records(registry, reachability, memory_store):
    reachability.default = True
    assert registry.status_check("192.168.1.77") is True
    assert registry.list() == ()
    assert len(memory_store) == 0


def test_status_check_updates_store_after_refresh(registry, memory_store):
    record = registry.merge(observation_from_scan_hit("192.168.1.40", 80))
    registry.clear_snapshot()

    registry.status_check("192.168.1.40")

    assert registry.list() == ()
    assert memory_store.find_by_identity_key(record.identity_key).record.connected is False


def test_clear_snapshot_keeps_store_and_name(registry, memory_store):
    registry.merge(ssdp_observation())
    registry.clear_snapshot()

    assert registry.list() == ()
    assert len(memory_store) == 1

    record = registry.merge(observation_from_scan_hit("192.168.1.20", 80))
    assert record.name == "SamsungMultiroom/1.0 (192.168.1.20)"


def test_get_falls_back_to_store(registry):
    registry.merge(ssdp_observation(mac="a0:b1:c2:d3:e4:f5"))
    registry.clear_snapshot()

    assert registry.get("a0:b1:c2:d3:e4:f5").found
    assert not registry.get("MAC_000000000000").found


def test_store_failure_does_not_abort_merge(reachability, clock, quiet_logger):
    registry = DeviceRegistry(FailingStore(), reachability, clock, quiet_logger)
    record = registry.merge(observation_from_scan_hit("192.168.1.40", 80))

    assert registry.list() == (record,)


def test_concurrent_merges_for_one_key_yield_one_record(registry, memory_store):
    barrier = threading.Barrier(8)

    def worker(i):
        barrier.wait()
        if i % 2:
            registry.merge(ssdp_observation())
        else:
            registry.merge(observation_from_scan_hit("192.168.1.20", 80))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    listed = registry.list()
    assert len(listed) == 1
    assert len(memory_store) == 1
    assert listed[0].name == "SamsungMultiroom/1.0 (192.168.1.20)"
    assert listed[0].model == "SamsungMultiroom/1.0 UPnP/1.0"


def test_status_check_updates_every_record_at_the_address(registry, memory_store):
    registry.merge(ssdp_observation(mac="a0:b1:c2:d3:e4:f5"))
    registry.merge(observation_from_scan_hit("192.168.1.20", 80))

    assert registry.status_check("192.168.1.20") is False

    listed = registry.list()
    assert sorted(r.identity_key for r in listed) == ["MAC_192168001020", "a0:b1:c2:d3:e4:f5"]
    assert all(r.state is DeviceState.STALE for r in listed)
    assert not any(r.connected for r in memory_store.all())


class InterleavingStore(InMemorySpeakerStore):
    """Runs a callback right after the first find_by_ip answer is computed."""

    def __init__(self):
        super().__init__()
        self.after_find_by_ip = None

    def find_by_ip(self, ip_address):
        result = super().find_by_ip(ip_address)
        callback, self.after_find_by_ip = self.after_find_by_ip, None
        if callback is not None:
            callback()
        return result


def test_status_check_does_not_overwrite_a_concurrent_merge(reachability, clock, quiet_logger):
    store = InterleavingStore()
    registry = DeviceRegistry(store, reachability, clock, quiet_logger)
    record = registry.merge(observation_from_scan_hit("192.168.1.20", 80))
    registry.clear_snapshot()

    def merge_then_refresh():
        registry.merge(DeviceObservation(
            source_ip="192.168.1.20",
            strategy=DiscoveryStrategy.SSDP,
            model="SamsungMultiroom/2.0",
            name="SamsungMultiroom/2.0",
        ))
        registry.clear_snapshot()

    store.after_find_by_ip = merge_then_refresh
    assert registry.status_check("192.168.1.20") is False

    stored = store.find_by_identity_key(record.identity_key).record
    assert stored.model == "SamsungMultiroom/2.0"
    assert stored.name == "SamsungMultiroom/2.0 (192.168.1.20)"
    assert stored.connected is False
