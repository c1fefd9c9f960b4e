from datetime import datetime, timedelta, UTC

from speaker_discovery.core.data_models import DeviceRecord
from speaker_store import InMemorySpeakerStore


def record(key, ip, minutes=0):
    return DeviceRecord(
        identity_key=key, name=f"Samsung Speaker {ip}", ip=ip,
        model="Samsung Multiroom Speaker", connected=True,
        last_seen=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(minutes=minutes),
    )


def test_lookup_miss_is_explicit():
    store = InMemorySpeakerStore()
    result = store.find_by_identity_key("nope")

    assert result.found is False
    assert result.record is None


def test_save_replaces_by_identity_key():
    store = InMemorySpeakerStore()
    store.save(record("k1", "10.0.0.1"))
    store.save(record("k1", "10.0.0.2"))

    assert len(store) == 1
    assert store.find_by_identity_key("k1").record.ip == "10.0.0.2"
    assert not store.find_by_ip("10.0.0.1").found


def test_find_by_ip_prefers_most_recent():
    store = InMemorySpeakerStore()
    store.save(record("old", "10.0.0.9", minutes=0))
    store.save(record("new", "10.0.0.9", minutes=5))

    assert store.find_by_ip("10.0.0.9").record.identity_key == "new"
