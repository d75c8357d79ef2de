from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RemainingTime(CamelModel):
    total: int
    formatted: str


class EligibilityOut(CamelModel):
    can_claim: bool
    remaining_time: RemainingTime
    last_claim_at: Optional[str] = None
    next_claim_time: Optional[str] = None
    total_claims: int
    tracker_type: Optional[str] = None
    available_coupons: int
    next_sequence_number: Optional[int] = None
    timestamp: str


class ClaimOut(CamelModel):
    message: str = "Coupon claimed successfully!"
    coupon: str
    sequence_number: int
    claim_time: str
    next_claim_time: str
    cooldown_period: RemainingTime


class CooldownOut(CamelModel):
    message: str
    next_claim_time: str
    remaining_time: RemainingTime
    tracker_type: str


class ExhaustedOut(CamelModel):
    message: str
    should_retry: bool = False


class InventoryOut(CamelModel):
    remaining_coupons: int
    next_sequence_number: Optional[int] = None
    was_replenished: bool
    message: Optional[str] = None


class HealthOut(CamelModel):
    status: str
    storage_connected: bool
    timestamp: str


class CouponOut(CamelModel):
    code: str
    sequence_number: int
    is_active: bool
    claimed_by: Optional[str] = None
    session_id: Optional[str] = None
    claimed_at: Optional[str] = None


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_coupons: int
    active_coupons: int
    claimed_coupons: int


class CouponStats(CamelModel):
    total_coupons: int
    active_coupons: int
    claimed_coupons: int
    usage_percentage: str


class CouponPageOut(CamelModel):
    coupons: List[CouponOut]
    pagination: Pagination
    stats: CouponStats
