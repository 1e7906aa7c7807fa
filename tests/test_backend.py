from unittest.mock import MagicMock

import pytest
import redis

from backend import SignalBackend, escape_glob
from errors import StoreUnavailable


def test_set_get_delete(backend):
    backend.set("webrtc_signal:r:offer", {"sdp": "O1"})
    assert backend.get("webrtc_signal:r:offer") == {"sdp": "O1"}
    assert backend.delete("webrtc_signal:r:offer") is True
    assert backend.get("webrtc_signal:r:offer") is None
    assert backend.delete("webrtc_signal:r:offer") is False


def test_list_returns_sorted_entries_under_prefix_only(backend):
    backend.set("webrtc_signal:r:b", 2)
    backend.set("webrtc_signal:r:a", 1)
    backend.set("webrtc_signal:r2:a", 3)
    assert backend.list("webrtc_signal:r:") == [("webrtc_signal:r:a", 1), ("webrtc_signal:r:b", 2)]


def test_handshake_write_overwrites(backend):
    backend.store_handshake("room-1", "offer", {"sdp": "O1"})
    backend.store_handshake("room-1", "offer", {"sdp": "O2"})
    assert backend.get_handshake("room-1", "offer") == {"sdp": "O2"}
    assert backend.list_room("room-1") == ["webrtc_signal:room-1:offer"]


def test_candidates_are_scoped_by_room_and_direction(backend):
    first = backend.add_candidate("room-1", "for-receiver", {"candidate": "c1"})
    second = backend.add_candidate("room-1", "for-receiver", {"candidate": "c2"})
    backend.add_candidate("room-1", "for-initiator", {"candidate": "other-direction"})
    backend.add_candidate("room-2", "for-receiver", {"candidate": "other-room"})

    entries = dict(backend.list_candidates("room-1", "for-receiver"))
    assert entries == {first: {"candidate": "c1"}, second: {"candidate": "c2"}}


def test_deleted_candidate_is_not_listed_again(backend):
    candidate_id = backend.add_candidate("room-1", "for-initiator", {"candidate": "c1"})
    assert backend.delete_candidate("room-1", "for-initiator", candidate_id) is True
    assert backend.list_candidates("room-1", "for-initiator") == []
    assert backend.delete_candidate("room-1", "for-initiator", candidate_id) is False


def test_delete_room_removes_every_record(backend):
    backend.store_handshake("room-1", "offer", {"sdp": "O1"})
    backend.store_handshake("room-1", "answer", {"sdp": "A1"})
    backend.add_candidate("room-1", "for-initiator", {"candidate": "c1"})
    backend.add_candidate("room-1", "for-receiver", {"candidate": "c2"})
    backend.store_handshake("room-2", "offer", {"sdp": "keep"})

    assert backend.delete_room("room-1") == 4
    assert backend.list_room("room-1") == []
    assert backend.get_handshake("room-2", "offer") == {"sdp": "keep"}


def test_ttl_is_applied_when_configured(fake_redis):
    backend = SignalBackend(redis_client=fake_redis, ttl=60)
    backend.store_handshake("room-1", "offer", {"sdp": "O1"})
    assert 0 < fake_redis.ttl("webrtc_signal:room-1:offer") <= 60


def test_non_json_values_are_returned_raw(backend, fake_redis):
    fake_redis.set("webrtc_signal:room-1:offer", "not json")
    assert backend.get_handshake("room-1", "offer") == "not json"


@pytest.mark.parametrize("error", [redis.exceptions.ConnectionError("down"), redis.exceptions.TimeoutError("slow")])
def test_transport_failures_become_store_unavailable(error):
    redis_client = MagicMock()
    redis_client.get.side_effect = error
    redis_client.scan_iter.side_effect = error
    backend = SignalBackend(redis_client=redis_client)

    with pytest.raises(StoreUnavailable):
        backend.get_handshake("room-1", "offer")
    with pytest.raises(StoreUnavailable):
        backend.list_candidates("room-1", "for-receiver")


def test_escape_glob():
    assert escape_glob("a*b?[c]") == "a\\*b\\?\\[c\\]"
