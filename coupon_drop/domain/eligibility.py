from __future__ import annotations

import datetime
from typing import List, Optional

from coupon_drop.domain.clock import format_time, ms_between, utcnow
from coupon_drop.domain.records import ClaimTracker, EligibilityResult, TrackerKind
from coupon_drop.repos.coupon_store import CouponStore


def load_trackers(store: CouponStore, address: str, session_token: Optional[str]) -> List[ClaimTracker]:
    trackers = []
    ip_tracker = store.get_tracker(TrackerKind.ADDRESS, address)
    if ip_tracker is not None:
        trackers.append(ip_tracker)
    if session_token:
        session_tracker = store.get_tracker(TrackerKind.SESSION, session_token)
        if session_tracker is not None:
            trackers.append(session_tracker)
    return trackers


def strictest_gate(trackers: List[ClaimTracker], now: datetime.datetime) -> tuple[Optional[ClaimTracker], int]:
    """
    Returns (gating tracker, remaining ms) for the tracker whose cooldown ends
    last, or (None, 0) if every cooldown has already elapsed.
    On a tie the address tracker wins, since it is loaded first.
    """
    gate, remaining = None, 0
    for tracker in trackers:
        left = ms_between(now, tracker.next_claim_at)
        if left > remaining:
            gate, remaining = tracker, left
    return gate, remaining


def evaluate(
    store: CouponStore,
    address: str,
    session_token: Optional[str] = None,
    now: Optional[datetime.datetime] = None,
) -> EligibilityResult:
    """
    Read-only eligibility check, cheap enough for client polling.
    Never writes to the store.
    """
    now = now or utcnow()
    trackers = load_trackers(store, address, session_token)
    gate, remaining = strictest_gate(trackers, now)

    if gate is not None:
        total_claims = gate.claim_count
    else:
        total_claims = next((t.claim_count for t in trackers if t.kind is TrackerKind.ADDRESS), 0)

    return EligibilityResult(
        can_claim=gate is None,
        remaining_ms=remaining,
        remaining_formatted=format_time(remaining),
        available_coupons=store.count_unclaimed(),
        next_sequence_number=store.peek_next_sequence(),
        checked_at=now,
        total_claims=total_claims,
        gate=gate,
    )
