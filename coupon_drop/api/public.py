from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from coupon_drop.config import settings
from coupon_drop.domain.arbiter import claim
from coupon_drop.domain.clock import isoformat
from coupon_drop.domain.eligibility import evaluate
from coupon_drop.domain.errors import CouponsExhausted
from coupon_drop.domain.models import (
    ClaimOut,
    CooldownOut,
    EligibilityOut,
    ExhaustedOut,
    InventoryOut,
    RemainingTime,
)
from coupon_drop.domain.records import CooldownRejection, EligibilityResult
from coupon_drop.domain.replenish import ensure_stock
from coupon_drop.repos.coupon_store import CouponStore, get_store
from coupon_drop.security.session import issue_session_cookie, read_session_token

router = APIRouter(prefix="/api/coupons", tags=["coupons"])
limiter = Limiter(key_func=get_remote_address)
logger = logging.getLogger(__name__)


def _eligibility_out(result: EligibilityResult) -> EligibilityOut:
    gate = result.gate
    return EligibilityOut(
        can_claim=result.can_claim,
        remaining_time=RemainingTime(total=result.remaining_ms, formatted=result.remaining_formatted),
        last_claim_at=isoformat(gate.last_claim_at) if gate else None,
        next_claim_time=isoformat(gate.next_claim_at) if gate else None,
        total_claims=result.total_claims,
        tracker_type=gate.kind.label if gate else None,
        available_coupons=result.available_coupons,
        next_sequence_number=result.next_sequence_number,
        timestamp=isoformat(result.checked_at),
    )


def _cooldown_response(rejection: CooldownRejection) -> JSONResponse:
    body = CooldownOut(
        message=rejection.message,
        next_claim_time=isoformat(rejection.next_claim_at),
        remaining_time=RemainingTime(total=rejection.remaining_ms, formatted=rejection.remaining_formatted),
        tracker_type=rejection.kind.label,
    )
    resp = JSONResponse(status_code=429, content=body.model_dump(by_alias=True))
    issue_session_cookie(resp, rejection.issued_session_token)
    return resp


@router.get("/check-eligibility", response_model=EligibilityOut, response_model_exclude_none=True)
@limiter.limit(lambda: settings.PUBLIC_RATE_LIMIT)
def check_eligibility(request: Request, store: CouponStore = Depends(get_store)):
    """
    Polled by the client: may this browser/address claim right now, and how
    long until it may. Never writes anything, not even the session cookie.
    """
    address = get_remote_address(request)
    session_token = read_session_token(request)
    logger.debug("checking eligibility for %s (session=%s)", address, bool(session_token))
    return _eligibility_out(evaluate(store, address, session_token))


@router.post("/claim", response_model=ClaimOut)
@limiter.limit(lambda: settings.PUBLIC_RATE_LIMIT)
def claim_coupon(request: Request, response: Response, store: CouponStore = Depends(get_store)):
    address = get_remote_address(request)
    try:
        outcome = claim(store, address, read_session_token(request))
    except CouponsExhausted as e:
        resp = JSONResponse(
            status_code=404,
            content=ExhaustedOut(message=str(e)).model_dump(by_alias=True),
        )
        issue_session_cookie(resp, e.issued_session_token)
        return resp

    if isinstance(outcome, CooldownRejection):
        return _cooldown_response(outcome)

    issue_session_cookie(response, outcome.issued_session_token)
    return ClaimOut(
        coupon=outcome.code,
        sequence_number=outcome.sequence_number,
        claim_time=isoformat(outcome.claimed_at),
        next_claim_time=isoformat(outcome.next_claim_at),
        cooldown_period=RemainingTime(total=outcome.cooldown_ms, formatted=outcome.cooldown_formatted),
    )


@router.get("/remaining", response_model=InventoryOut)
@limiter.limit(lambda: settings.PUBLIC_RATE_LIMIT)
def remaining_coupons(request: Request, store: CouponStore = Depends(get_store)):
    """Inventory snapshot; also tops the pool up when it runs low."""
    count = store.count_unclaimed()
    next_seq = store.peek_next_sequence()
    replenished = ensure_stock(store)
    return InventoryOut(
        remaining_coupons=count,
        next_sequence_number=next_seq,
        was_replenished=replenished,
        message="Coupons were automatically replenished" if replenished else None,
    )
