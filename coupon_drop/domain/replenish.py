from __future__ import annotations

import logging
import secrets
import string
from typing import List

from coupon_drop.config import settings
from coupon_drop.domain.errors import DuplicateCouponCode
from coupon_drop.domain.records import Coupon
from coupon_drop.repos.coupon_store import CouponStore

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_coupon_code(length: int | None = None) -> str:
    length = length or settings.COUPON_CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_coupons(store: CouponStore, count: int) -> bool:
    """
    Insert ``count`` new coupons continuing the sequence.

    The store numbers the batch as it inserts it. A code collision rejects
    the whole batch without using up any sequence numbers; it is logged
    and reported as False.
    """
    if count <= 0:
        return False

    codes = [generate_coupon_code() for _ in range(count)]
    try:
        coupons: List[Coupon] = store.insert_coupons(codes)
    except DuplicateCouponCode as e:
        logger.error("coupon batch of %s rejected: %s", count, e)
        return False

    logger.info("generated %s coupons starting from sequence %s", count, coupons[0].sequence_number)
    return True


def ensure_stock(store: CouponStore) -> bool:
    """Top the pool up when unclaimed coupons drop below MINIMUM_COUPONS."""
    remaining = store.count_unclaimed()
    if remaining >= settings.MINIMUM_COUPONS:
        return False

    logger.info("coupons running low (%s remaining); generating %s more", remaining, settings.REPLENISH_COUNT)
    return generate_coupons(store, settings.REPLENISH_COUNT)


def seed_coupons(store: CouponStore, count: int | None = None) -> bool:
    """Full reseed: drop every coupon and start the sequence over at 1."""
    count = settings.INITIAL_SEED_COUNT if count is None else count
    store.clear_coupons()
    logger.info("cleared existing coupons")
    return generate_coupons(store, count)
