from __future__ import annotations

import argparse
import logging
import sys

from coupon_drop.config import settings
from coupon_drop.domain.errors import StorageUnavailable
from coupon_drop.domain.replenish import seed_coupons
from coupon_drop.logging_setup import setup_logging
from coupon_drop.repos.coupon_store import get_store

logger = logging.getLogger("coupon_drop.worker.seed")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Wipe the coupon pool and seed a fresh one.")
    parser.add_argument("--count", type=int, default=settings.INITIAL_SEED_COUNT)
    args = parser.parse_args(argv)

    setup_logging()
    if not settings.REDIS_URL:
        logger.warning("REDIS_URL is not set; seeding an in-process store that vanishes on exit")

    try:
        ok = seed_coupons(get_store(), args.count)
    except StorageUnavailable:
        logger.exception("could not reach coupon storage")
        return 1

    if ok:
        logger.info("seeded %s coupons", args.count)
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
