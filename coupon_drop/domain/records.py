from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from coupon_drop.domain.errors import TrackerValidationError


class TrackerKind(str, Enum):
    ADDRESS = "ip"
    SESSION = "session"

    @property
    def label(self) -> str:
        return "IP Address" if self is TrackerKind.ADDRESS else "Browser Session"

    @property
    def where(self) -> str:
        return "from this IP" if self is TrackerKind.ADDRESS else "in this browser"


@dataclass
class Coupon:
    code: str
    sequence_number: int
    claimed_by_address: Optional[str] = None
    claimed_by_session: Optional[str] = None
    claimed_at: Optional[datetime.datetime] = None

    @property
    def is_claimed(self) -> bool:
        return self.claimed_at is not None


@dataclass
class ClaimTracker:
    """Cooldown state of one identity; one record per (kind, identifier)."""

    kind: TrackerKind
    identifier: str
    last_claim_at: datetime.datetime
    next_claim_at: datetime.datetime
    claim_count: int = 1

    def __post_init__(self):
        if not self.identifier:
            raise TrackerValidationError(f"{self.kind.value} tracker needs an identifier")


@dataclass
class EligibilityResult:
    can_claim: bool
    remaining_ms: int
    remaining_formatted: str
    available_coupons: int
    next_sequence_number: Optional[int]
    checked_at: datetime.datetime
    total_claims: int = 0
    gate: Optional[ClaimTracker] = None


@dataclass
class CooldownRejection:
    kind: TrackerKind
    next_claim_at: datetime.datetime
    remaining_ms: int
    remaining_formatted: str
    issued_session_token: Optional[str] = None

    @property
    def message(self) -> str:
        return (
            f"Please wait {self.remaining_formatted} before claiming "
            f"another coupon {self.kind.where}."
        )


@dataclass
class ClaimResult:
    code: str
    sequence_number: int
    claimed_at: datetime.datetime
    next_claim_at: datetime.datetime
    cooldown_ms: int
    cooldown_formatted: str
    issued_session_token: Optional[str] = None
