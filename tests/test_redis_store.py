# tests/test_redis_store.py
"""RedisCouponStore against a mocked client: key layout, decoding, error wrapping."""

from unittest.mock import MagicMock, call

import pytest
import redis

from coupon_drop.domain.clock import add_ms, to_epoch_ms
from coupon_drop.domain.errors import DuplicateCouponCode, StorageUnavailable
from coupon_drop.domain.records import TrackerKind
from coupon_drop.repos.redis_store import RedisCouponStore


@pytest.fixture()
def client():
    c = MagicMock(spec=redis.Redis)
    c.register_script.side_effect = lambda source: MagicMock(name="script")
    return c


@pytest.fixture()
def redis_store(client):
    return RedisCouponStore(client, prefix="t")


def test_keys_share_one_hash_tag(redis_store):
    keys = [
        redis_store._all_key,
        redis_store._unclaimed_key,
        redis_store._coupon_prefix + "ABCD1234",
        redis_store._tracker_key(TrackerKind.ADDRESS, "10.0.0.1"),
    ]
    assert all(k.startswith("{t}:") for k in keys)


def test_reserve_decodes_script_result(redis_store, now):
    redis_store._reserve.return_value = ["ABCD1234", "7"]

    coupon = redis_store.reserve_next("10.0.0.1", None, now)

    assert coupon.code == "ABCD1234"
    assert coupon.sequence_number == 7
    assert coupon.claimed_at == now
    redis_store._reserve.assert_called_once_with(
        keys=["{t}:coupons:unclaimed"],
        args=["{t}:coupon:", "10.0.0.1", "", to_epoch_ms(now)],
    )


def test_reserve_on_empty_pool(redis_store, now):
    redis_store._reserve.return_value = None
    assert redis_store.reserve_next("10.0.0.1", "s", now) is None


def test_insert_numbers_from_script_result(redis_store):
    redis_store._insert.return_value = [1, 4]

    inserted = redis_store.insert_coupons(["AAAA0001", "BBBB0002"])

    assert [(c.code, c.sequence_number) for c in inserted] == [("AAAA0001", 4), ("BBBB0002", 5)]
    assert not any(c.is_claimed for c in inserted)
    redis_store._insert.assert_called_once_with(
        keys=["{t}:coupons:all", "{t}:coupons:unclaimed"],
        args=["{t}:coupon:", "AAAA0001", "BBBB0002"],
    )


def test_insert_raises_on_duplicates(redis_store):
    redis_store._insert.return_value = [0, ["AAAA0001"]]

    with pytest.raises(DuplicateCouponCode) as info:
        redis_store.insert_coupons(["AAAA0001"])

    assert info.value.codes == ["AAAA0001"]


def test_insert_nothing_skips_script(redis_store):
    assert redis_store.insert_coupons([]) == []
    redis_store._insert.assert_not_called()


def test_peek_next_sequence(redis_store, client):
    client.zrange.return_value = [("ABCD1234", 12.0)]
    assert redis_store.peek_next_sequence() == 12

    client.zrange.return_value = []
    assert redis_store.peek_next_sequence() is None


def test_list_coupons_decodes_hashes(redis_store, client, now):
    client.zrange.return_value = ["AAAA0001", "BBBB0002"]
    pipe = client.pipeline.return_value
    pipe.execute.return_value = [
        {
            "code": "AAAA0001",
            "sequence_number": "1",
            "claimed_by_address": "10.0.0.1",
            "claimed_by_session": "sess-1",
            "claimed_at": str(to_epoch_ms(now)),
        },
        {"code": "BBBB0002", "sequence_number": "2"},
    ]

    first, second = redis_store.list_coupons(0, 2)

    client.zrange.assert_called_once_with("{t}:coupons:all", 0, 1)
    client.pipeline.assert_called_once_with(transaction=False)
    assert pipe.hgetall.call_args_list == [call("{t}:coupon:AAAA0001"), call("{t}:coupon:BBBB0002")]
    assert (first.code, first.sequence_number, first.claimed_at) == ("AAAA0001", 1, now)
    assert (first.claimed_by_address, first.claimed_by_session) == ("10.0.0.1", "sess-1")
    assert second.sequence_number == 2
    assert not second.is_claimed


def test_list_coupons_past_the_end(redis_store, client):
    client.zrange.return_value = []

    assert redis_store.list_coupons(100, 20) == []
    client.pipeline.return_value.execute.assert_not_called()


def test_clear_coupons_drops_hashes_and_queues(redis_store, client):
    client.scan_iter.return_value = iter(["{t}:coupon:AAAA0001", "{t}:coupon:BBBB0002"])
    pipe = client.pipeline.return_value

    redis_store.clear_coupons()

    client.scan_iter.assert_called_once_with(match="{t}:coupon:*", count=500)
    assert pipe.delete.call_args_list == [
        call("{t}:coupon:AAAA0001"),
        call("{t}:coupon:BBBB0002"),
        call("{t}:coupons:all", "{t}:coupons:unclaimed"),
    ]
    pipe.execute.assert_called_once_with()


def test_upsert_tracker_stamps_and_counts(redis_store, client, now):
    later = add_ms(now, 30_000)
    pipe = client.pipeline.return_value
    pipe.execute.return_value = [2, 3]

    tracker = redis_store.upsert_tracker(TrackerKind.ADDRESS, "10.0.0.1", now, later)

    pipe.hset.assert_called_once_with(
        "{t}:tracker:ip:10.0.0.1",
        mapping={"last_claim_at": to_epoch_ms(now), "next_claim_at": to_epoch_ms(later)},
    )
    pipe.hincrby.assert_called_once_with("{t}:tracker:ip:10.0.0.1", "claim_count", 1)
    assert (tracker.last_claim_at, tracker.next_claim_at, tracker.claim_count) == (now, later, 3)


def test_get_tracker_decodes_hash(redis_store, client, now):
    later = add_ms(now, 30_000)
    client.hgetall.return_value = {
        "last_claim_at": str(to_epoch_ms(now)),
        "next_claim_at": str(to_epoch_ms(later)),
        "claim_count": "3",
    }

    tracker = redis_store.get_tracker(TrackerKind.SESSION, "sess-1")

    client.hgetall.assert_called_once_with("{t}:tracker:session:sess-1")
    assert (tracker.last_claim_at, tracker.next_claim_at, tracker.claim_count) == (now, later, 3)


def test_missing_tracker(redis_store, client):
    client.hgetall.return_value = {}
    assert redis_store.get_tracker(TrackerKind.ADDRESS, "10.0.0.1") is None


def test_redis_errors_become_storage_unavailable(redis_store, client):
    client.zcard.side_effect = redis.ConnectionError("refused")

    with pytest.raises(StorageUnavailable):
        redis_store.count_unclaimed()


def test_pipeline_errors_become_storage_unavailable(redis_store, client, now):
    client.pipeline.return_value.execute.side_effect = redis.TimeoutError("timed out")

    with pytest.raises(StorageUnavailable):
        redis_store.upsert_tracker(TrackerKind.SESSION, "sess-1", now, add_ms(now, 30_000))


def test_ping_reports_false_when_down(redis_store, client):
    client.ping.side_effect = redis.ConnectionError("refused")
    assert redis_store.ping() is False
