from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from coupon_drop.config import settings
from coupon_drop.domain.clock import isoformat
from coupon_drop.domain.models import CouponOut, CouponPageOut, CouponStats, Pagination
from coupon_drop.domain.replenish import seed_coupons
from coupon_drop.repos.coupon_store import CouponStore, get_store
from coupon_drop.security.api_key import require_admin_api_key


router = APIRouter(prefix="/api/admin", tags=["admin"])
limiter = Limiter(key_func=get_remote_address)


@router.get("/config")
@limiter.limit(lambda: settings.ADMIN_RATE_LIMIT)
def admin_config(request: Request, _=Depends(require_admin_api_key)):
    # don't leak secrets
    return {
        "env": settings.APP_ENV,
        "allowed_origins": settings.ALLOWED_ORIGINS,
        "storage": "redis" if settings.REDIS_URL else "memory",
        "claims": {
            "COOLDOWN_MS": settings.COOLDOWN_MS,
            "SESSION_COOKIE_NAME": settings.SESSION_COOKIE_NAME,
        },
        "pool": {
            "MINIMUM_COUPONS": settings.MINIMUM_COUPONS,
            "REPLENISH_COUNT": settings.REPLENISH_COUNT,
            "INITIAL_SEED_COUNT": settings.INITIAL_SEED_COUNT,
            "COUPON_CODE_LENGTH": settings.COUPON_CODE_LENGTH,
        },
        "rate_limits": {
            "PUBLIC_RATE_LIMIT": settings.PUBLIC_RATE_LIMIT,
            "ADMIN_RATE_LIMIT": settings.ADMIN_RATE_LIMIT,
        },
    }


@router.get("/coupons", response_model=CouponPageOut)
@limiter.limit(lambda: settings.ADMIN_RATE_LIMIT)
def list_coupons(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store: CouponStore = Depends(get_store),
    _=Depends(require_admin_api_key),
):
    total = store.count_all()
    active = store.count_unclaimed()
    claimed = total - active
    rows = store.list_coupons(offset=(page - 1) * limit, limit=limit)

    return CouponPageOut(
        coupons=[
            CouponOut(
                code=c.code,
                sequence_number=c.sequence_number,
                is_active=not c.is_claimed,
                claimed_by=c.claimed_by_address,
                session_id=c.claimed_by_session,
                claimed_at=isoformat(c.claimed_at) if c.claimed_at else None,
            )
            for c in rows
        ],
        pagination=Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_coupons=total,
            active_coupons=active,
            claimed_coupons=claimed,
        ),
        stats=CouponStats(
            total_coupons=total,
            active_coupons=active,
            claimed_coupons=claimed,
            usage_percentage=f"{(claimed / total * 100) if total else 0:.2f}%",
        ),
    )


@router.post("/reseed")
@limiter.limit(lambda: settings.ADMIN_RATE_LIMIT)
def reseed(
    request: Request,
    count: int | None = Query(None, ge=1, le=10_000),
    store: CouponStore = Depends(get_store),
    _=Depends(require_admin_api_key),
):
    """Drop every coupon and generate a fresh pool starting at sequence 1."""
    count = count or settings.INITIAL_SEED_COUNT
    if not seed_coupons(store, count):
        raise HTTPException(status_code=500, detail="Seeding failed; check server logs")
    return {"ok": True, "seeded": count, "available": store.count_unclaimed()}
