from __future__ import annotations

import datetime
import logging
import secrets
from typing import Optional, Union

from coupon_drop.config import settings
from coupon_drop.domain.clock import add_ms, format_time, utcnow
from coupon_drop.domain.eligibility import load_trackers, strictest_gate
from coupon_drop.domain.errors import CouponsExhausted, StorageUnavailable
from coupon_drop.domain.records import ClaimResult, CooldownRejection, Coupon, TrackerKind
from coupon_drop.domain.replenish import ensure_stock
from coupon_drop.repos.coupon_store import CouponStore

logger = logging.getLogger(__name__)


def mint_session_token() -> str:
    return secrets.token_urlsafe(18)


def _reserve(
    store: CouponStore,
    address: str,
    session_token: str,
    now: datetime.datetime,
    issued: Optional[str],
) -> Coupon:
    coupon = store.reserve_next(address, session_token, now)
    if coupon is not None:
        return coupon

    # pool is dry: top up once and take one more shot
    ensure_stock(store)
    coupon = store.reserve_next(address, session_token, now)
    if coupon is None:
        logger.warning("no coupons available for %s after replenishment", address)
        raise CouponsExhausted(issued_session_token=issued)
    return coupon


def _record_claim(store: CouponStore, address: str, session_token: str, now: datetime.datetime) -> datetime.datetime:
    next_claim_at = add_ms(now, settings.COOLDOWN_MS)
    try:
        store.upsert_tracker(TrackerKind.ADDRESS, address, now, next_claim_at)
        store.upsert_tracker(TrackerKind.SESSION, session_token, now, next_claim_at)
    except StorageUnavailable:
        # the coupon is already reserved; the caller still gets it, only the
        # cooldown for this identity may go unrecorded
        logger.exception("tracker update failed after reserving a coupon for %s", address)
    return next_claim_at


def claim(
    store: CouponStore,
    address: str,
    session_token: Optional[str] = None,
    now: Optional[datetime.datetime] = None,
) -> Union[ClaimResult, CooldownRejection]:
    """
    Hand out the next coupon in sequence to (address, session_token).

    Returns a CooldownRejection without touching the pool or the trackers
    when either identity is still cooling down. Raises CouponsExhausted
    when the pool is empty even after replenishing. When the caller had no
    session token a new one is minted and returned on every outcome.
    """
    now = now or utcnow()
    issued = None if session_token else mint_session_token()

    gate, remaining = strictest_gate(load_trackers(store, address, session_token), now)
    if gate is not None:
        logger.info("claim rejected for %s: %s cooldown, %s ms left", address, gate.kind.value, remaining)
        return CooldownRejection(
            kind=gate.kind,
            next_claim_at=gate.next_claim_at,
            remaining_ms=remaining,
            remaining_formatted=format_time(remaining),
            issued_session_token=issued,
        )

    session_token = session_token or issued
    coupon = _reserve(store, address, session_token, now, issued)

    next_claim_at = _record_claim(store, address, session_token, now)
    logger.info("coupon #%s claimed by %s", coupon.sequence_number, address)

    return ClaimResult(
        code=coupon.code,
        sequence_number=coupon.sequence_number,
        claimed_at=now,
        next_claim_at=next_claim_at,
        cooldown_ms=settings.COOLDOWN_MS,
        cooldown_formatted=format_time(settings.COOLDOWN_MS),
        issued_session_token=issued,
    )
