from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from ledger.codec import to_major_units
from rewards import LEVELS, Level, SkipReason


class BindError(str, Enum):
    SELF_REF = "self_ref"
    INVITER_NOT_FOUND = "inviter_not_found"
    USER_NOT_FOUND = "user_not_found"
    ALREADY_BOUND = "already_bound"
    CYCLE = "cycle"


class Upline(BaseModel):
    l1: Optional[str] = None
    l2: Optional[str] = None
    l3: Optional[str] = None

    @classmethod
    def from_ancestors(cls, ancestors: list[str]) -> "Upline":
        return cls(**{level.value: user_id for level, user_id in zip(LEVELS, ancestors)})

    @property
    def is_empty(self) -> bool:
        return self.l1 is None

    def ancestors(self) -> list[str]:
        return [user_id for _, user_id in self.recipients()]

    def recipients(self) -> list[tuple[Level, str]]:
        """(level, user_id) pairs for every resolved ancestor, nearest first."""
        pairs = []
        for level in LEVELS:
            user_id = getattr(self, level.value)
            if user_id is None:
                break
            pairs.append((level, user_id))
        return pairs


class BindRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    inviter_id: str = Field(..., min_length=1)


class BindResult(BaseModel):
    ok: bool
    bound_to: Optional[str] = None
    upline: Optional[Upline] = None
    error: Optional[BindError] = None


class PaidLevel(BaseModel):
    level: Level
    user_id: str
    amount_ue: int
    applied: bool
    capped: bool = False

    @computed_field
    @property
    def amount(self) -> Decimal:
        return to_major_units(self.amount_ue)


class PurchaseAwardRequest(BaseModel):
    buyer_id: str = Field(..., min_length=1)
    purchase_id: str = Field(..., min_length=1, description="Caller's id for this purchase event")
    tier: Optional[str] = None


class PurchaseAwardResult(BaseModel):
    buyer_id: str
    purchase_id: str
    tier: str
    sequence: Optional[int] = None
    upline: Optional[Upline] = None
    paid: list[PaidLevel] = Field(default_factory=list)
    skipped: Optional[SkipReason] = None


class KycAwardRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class KycAwardResult(BaseModel):
    user_id: str
    self_applied: bool
    upline: Upline
    paid: list[PaidLevel] = Field(default_factory=list)


class DownlineLevel(BaseModel):
    level: Level
    count: int
    user_ids: list[str]


class Downline(BaseModel):
    user_id: str
    levels: list[DownlineLevel]
