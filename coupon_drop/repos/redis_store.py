from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Optional

import redis

from coupon_drop.domain.clock import from_epoch_ms, to_epoch_ms
from coupon_drop.domain.errors import DuplicateCouponCode, StorageUnavailable
from coupon_drop.domain.records import ClaimTracker, Coupon, TrackerKind
from coupon_drop.repos.coupon_store import CouponStore

# Pops the lowest-scored unclaimed coupon and stamps its claim fields.
# Runs as one script, so no other client can take the same coupon.
RESERVE_LUA = """
local popped = redis.call('ZPOPMIN', KEYS[1])
if #popped == 0 then
  return false
end
local code = popped[1]
local key = ARGV[1] .. code
redis.call('HSET', key, 'claimed_by_address', ARGV[2], 'claimed_at', ARGV[4])
if ARGV[3] ~= '' then
  redis.call('HSET', key, 'claimed_by_session', ARGV[3])
end
return {code, popped[2]}
"""

# Numbers the batch from the current highest sequence and inserts it,
# or rejects the whole batch if any code is taken. Both happen in one
# script, so a rejected batch never consumes sequence numbers.
INSERT_LUA = """
local dupes = {}
local seen = {}
for i = 2, #ARGV do
  local code = ARGV[i]
  if seen[code] or redis.call('ZSCORE', KEYS[1], code) then
    table.insert(dupes, code)
  end
  seen[code] = true
end
if #dupes > 0 then
  return {0, dupes}
end
local top = redis.call('ZREVRANGE', KEYS[1], 0, 0, 'WITHSCORES')
local seq = 0
if #top > 0 then
  seq = tonumber(top[2])
end
local first = seq + 1
for i = 2, #ARGV do
  local code = ARGV[i]
  seq = seq + 1
  redis.call('HSET', ARGV[1] .. code, 'code', code, 'sequence_number', seq)
  redis.call('ZADD', KEYS[1], seq, code)
  redis.call('ZADD', KEYS[2], seq, code)
end
return {1, first}
"""


@contextmanager
def _storage_errors():
    try:
        yield
    except redis.RedisError as e:
        raise StorageUnavailable(str(e)) from e


class RedisCouponStore(CouponStore):
    """
    Layout (every key starts with the ``{prefix}`` hash tag):
      coupons:all        zset code -> sequence, every coupon
      coupons:unclaimed  zset code -> sequence, claim queue
      coupon:<code>      hash with the coupon fields
      tracker:<kind>:<identifier>  hash with ms timestamps + claim_count

    The Lua scripts build ``coupon:<code>`` keys from ARGV rather than
    declaring them in KEYS. The shared hash tag keeps every key in one
    cluster slot, so this also runs on Redis Cluster.
    """

    def __init__(self, client: redis.Redis, prefix: str = "coupon-drop"):
        self.client = client
        self.prefix = prefix
        self._reserve = client.register_script(RESERVE_LUA)
        self._insert = client.register_script(INSERT_LUA)

    @classmethod
    def from_url(cls, url: str, prefix: str = "coupon-drop") -> "RedisCouponStore":
        return cls(redis.from_url(url, decode_responses=True), prefix=prefix)

    # keys
    def _key(self, suffix: str) -> str:
        return f"{{{self.prefix}}}:{suffix}"

    @property
    def _all_key(self) -> str:
        return self._key("coupons:all")

    @property
    def _unclaimed_key(self) -> str:
        return self._key("coupons:unclaimed")

    @property
    def _coupon_prefix(self) -> str:
        return self._key("coupon:")

    def _tracker_key(self, kind: TrackerKind, identifier: str) -> str:
        return self._key(f"tracker:{kind.value}:{identifier}")

    # coupons
    def count_unclaimed(self) -> int:
        with _storage_errors():
            return int(self.client.zcard(self._unclaimed_key))

    def count_all(self) -> int:
        with _storage_errors():
            return int(self.client.zcard(self._all_key))

    def peek_next_sequence(self) -> Optional[int]:
        with _storage_errors():
            head = self.client.zrange(self._unclaimed_key, 0, 0, withscores=True)
        return int(head[0][1]) if head else None

    def reserve_next(self, address, session_token, now):
        with _storage_errors():
            popped = self._reserve(
                keys=[self._unclaimed_key],
                args=[self._coupon_prefix, address, session_token or "", to_epoch_ms(now)],
            )
        if not popped:
            return None
        code, seq = popped
        return Coupon(
            code=code,
            sequence_number=int(float(seq)),
            claimed_by_address=address,
            claimed_by_session=session_token,
            claimed_at=from_epoch_ms(to_epoch_ms(now)),
        )

    def insert_coupons(self, codes):
        if not codes:
            return []
        with _storage_errors():
            ok, payload = self._insert(
                keys=[self._all_key, self._unclaimed_key],
                args=[self._coupon_prefix, *codes],
            )
        if not int(ok):
            raise DuplicateCouponCode(list(payload))
        first = int(payload)
        return [Coupon(code=code, sequence_number=first + i) for i, code in enumerate(codes)]

    def list_coupons(self, offset, limit):
        with _storage_errors():
            codes = self.client.zrange(self._all_key, offset, offset + limit - 1)
            pipe = self.client.pipeline(transaction=False)
            for code in codes:
                pipe.hgetall(self._coupon_prefix + code)
            rows = pipe.execute() if codes else []
        return [self._coupon_from_hash(row) for row in rows if row]

    def clear_coupons(self) -> None:
        with _storage_errors():
            pipe = self.client.pipeline()
            for key in self.client.scan_iter(match=self._coupon_prefix + "*", count=500):
                pipe.delete(key)
            pipe.delete(self._all_key, self._unclaimed_key)
            pipe.execute()

    @staticmethod
    def _coupon_from_hash(row: Dict[str, str]) -> Coupon:
        claimed_at = row.get("claimed_at")
        return Coupon(
            code=row["code"],
            sequence_number=int(row["sequence_number"]),
            claimed_by_address=row.get("claimed_by_address"),
            claimed_by_session=row.get("claimed_by_session"),
            claimed_at=from_epoch_ms(int(claimed_at)) if claimed_at else None,
        )

    # trackers
    def get_tracker(self, kind, identifier):
        with _storage_errors():
            row = self.client.hgetall(self._tracker_key(kind, identifier))
        if not row:
            return None
        return ClaimTracker(
            kind=kind,
            identifier=identifier,
            last_claim_at=from_epoch_ms(int(row["last_claim_at"])),
            next_claim_at=from_epoch_ms(int(row["next_claim_at"])),
            claim_count=int(row.get("claim_count", 0)),
        )

    def upsert_tracker(self, kind, identifier, claimed_at, next_claim_at):
        # validates the identifier before anything is written
        tracker = ClaimTracker(
            kind=kind,
            identifier=identifier,
            last_claim_at=claimed_at,
            next_claim_at=next_claim_at,
            claim_count=0,
        )
        key = self._tracker_key(kind, identifier)
        with _storage_errors():
            pipe = self.client.pipeline()
            pipe.hset(key, mapping={
                "last_claim_at": to_epoch_ms(claimed_at),
                "next_claim_at": to_epoch_ms(next_claim_at),
            })
            pipe.hincrby(key, "claim_count", 1)
            _, count = pipe.execute()
        tracker.claim_count = int(count)
        return tracker

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False
