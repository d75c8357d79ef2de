from __future__ import annotations

import datetime
import heapq
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from coupon_drop.domain.errors import DuplicateCouponCode
from coupon_drop.domain.records import ClaimTracker, Coupon, TrackerKind


class CouponStore(ABC):
    """
    Storage seam for coupons and claim trackers.

    Implementations must make ``reserve_next`` a single indivisible
    operation: the lowest unclaimed coupon is selected and stamped as
    claimed without any other caller being able to take it in between.
    Backend failures are raised as StorageUnavailable.
    """

    # --- coupons
    @abstractmethod
    def count_unclaimed(self) -> int: ...

    @abstractmethod
    def count_all(self) -> int: ...

    @abstractmethod
    def peek_next_sequence(self) -> Optional[int]: ...

    @abstractmethod
    def reserve_next(
        self, address: str, session_token: Optional[str], now: datetime.datetime
    ) -> Optional[Coupon]: ...

    @abstractmethod
    def insert_coupons(self, codes: List[str]) -> List[Coupon]:
        """
        Insert one unclaimed coupon per code, all or nothing.

        Sequence numbers continue from the highest existing coupon (claimed
        or not) and are assigned inside the same atomic step, so a rejected
        batch leaves no gap. Raises DuplicateCouponCode if any code exists.
        """

    @abstractmethod
    def list_coupons(self, offset: int, limit: int) -> List[Coupon]: ...

    @abstractmethod
    def clear_coupons(self) -> None: ...

    # --- trackers
    @abstractmethod
    def get_tracker(self, kind: TrackerKind, identifier: str) -> Optional[ClaimTracker]: ...

    @abstractmethod
    def upsert_tracker(
        self,
        kind: TrackerKind,
        identifier: str,
        claimed_at: datetime.datetime,
        next_claim_at: datetime.datetime,
    ) -> ClaimTracker: ...

    # --- health
    @abstractmethod
    def ping(self) -> bool: ...


class MemoryCouponStore(CouponStore):
    """
    In-process store, used when no REDIS_URL is configured.
    One lock serialises every mutation; state is lost on restart.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._coupons: Dict[str, Coupon] = {}
        self._unclaimed: List[Tuple[int, str]] = []  # heap of (sequence, code)
        self._trackers: Dict[Tuple[TrackerKind, str], ClaimTracker] = {}
        self._last_sequence = 0  # highest sequence among stored coupons

    def count_unclaimed(self) -> int:
        with self._lock:
            return len(self._unclaimed)

    def count_all(self) -> int:
        with self._lock:
            return len(self._coupons)

    def peek_next_sequence(self) -> Optional[int]:
        with self._lock:
            return self._unclaimed[0][0] if self._unclaimed else None

    def reserve_next(self, address, session_token, now):
        with self._lock:
            if not self._unclaimed:
                return None
            _, code = heapq.heappop(self._unclaimed)
            coupon = self._coupons[code]
            coupon.claimed_by_address = address
            coupon.claimed_by_session = session_token
            coupon.claimed_at = now
            return replace(coupon)

    def insert_coupons(self, codes):
        with self._lock:
            seen = set()
            dupes = []
            for code in codes:
                if code in self._coupons or code in seen:
                    dupes.append(code)
                seen.add(code)
            if dupes:
                raise DuplicateCouponCode(dupes)

            inserted = []
            for code in codes:
                self._last_sequence += 1
                coupon = Coupon(code=code, sequence_number=self._last_sequence)
                self._coupons[code] = coupon
                heapq.heappush(self._unclaimed, (coupon.sequence_number, code))
                inserted.append(replace(coupon))
            return inserted

    def list_coupons(self, offset, limit):
        with self._lock:
            ordered = sorted(self._coupons.values(), key=lambda c: c.sequence_number)
            return [replace(c) for c in ordered[offset:offset + limit]]

    def clear_coupons(self) -> None:
        with self._lock:
            self._coupons.clear()
            self._unclaimed.clear()
            self._last_sequence = 0

    def get_tracker(self, kind, identifier):
        with self._lock:
            tracker = self._trackers.get((kind, identifier))
            return replace(tracker) if tracker else None

    def upsert_tracker(self, kind, identifier, claimed_at, next_claim_at):
        with self._lock:
            tracker = self._trackers.get((kind, identifier))
            if tracker is None:
                tracker = ClaimTracker(
                    kind=kind,
                    identifier=identifier,
                    last_claim_at=claimed_at,
                    next_claim_at=next_claim_at,
                    claim_count=1,
                )
                self._trackers[(kind, identifier)] = tracker
            else:
                tracker.last_claim_at = claimed_at
                tracker.next_claim_at = next_claim_at
                tracker.claim_count += 1
            return replace(tracker)

    def ping(self) -> bool:
        return True


_store: Optional[CouponStore] = None


def get_store() -> CouponStore:
    """Process-wide store; Redis when REDIS_URL is set, else in-process."""
    global _store
    if _store is None:
        from coupon_drop.config import settings

        if settings.REDIS_URL:
            from coupon_drop.repos.redis_store import RedisCouponStore

            _store = RedisCouponStore.from_url(settings.REDIS_URL, prefix=settings.REDIS_KEY_PREFIX)
        else:
            _store = MemoryCouponStore()
    return _store
