from __future__ import annotations


class CouponError(Exception):
    """Base class for every failure the claim core reports."""


class CouponsExhausted(CouponError):
    """The pool stayed empty even after a replenishment attempt."""

    def __init__(self, issued_session_token: str | None = None):
        super().__init__("No coupons available. Please try again later.")
        self.issued_session_token = issued_session_token


class TrackerValidationError(CouponError, ValueError):
    pass


class DuplicateCouponCode(CouponError):
    def __init__(self, codes: list[str]):
        super().__init__(f"coupon code already exists: {', '.join(codes)}")
        self.codes = codes


class StorageUnavailable(CouponError):
    """Wraps any backend failure so raw driver errors never reach a response."""
