from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .codec import to_major_units


class EchoKind(str, Enum):
    REFERRAL = "referral"
    PURCHASE = "purchase"
    ACTIVITY = "activity"
    BONUS = "bonus"
    REVOKE = "revoke"


class UserAccount(BaseModel):
    id: str
    referrer_id: Optional[str] = None
    balance_echo_ue: int = 0
    participation_score_ue: int = 0
    bound_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerEntry(BaseModel):
    id: int
    user_id: str
    kind: EchoKind
    action: str
    amount_ue: int
    source_id: Optional[str] = None
    ref_user_id: Optional[str] = None
    meta: dict[str, Any] = Field(default_factory=dict)
    dedupe_key: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def amount(self) -> Decimal:
        return to_major_units(self.amount_ue)


class CreditRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    kind: EchoKind
    action: str = Field(..., min_length=1, description="Rule code, e.g. referral.registered.l1")
    amount: Decimal = Field(..., description="Amount in echo; negative for revoke")
    source_id: Optional[str] = None
    ref_user_id: Optional[str] = None
    meta: dict[str, Any] = Field(default_factory=dict)
    dedupe_key: Optional[str] = Field(default=None, description="Globally unique idempotency key")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "user_id": "user-b",
            "kind": "referral",
            "action": "referral.registered.l1",
            "amount": "3",
            "source_id": "user-a",
            "ref_user_id": "user-a",
            "dedupe_key": "refbind:user-a:l1",
        }
    })


class CreditResult(BaseModel):
    applied: bool
    entry_id: Optional[int] = None
    amount_ue: Optional[int] = None
    balance_echo_ue: Optional[int] = None
    participation_score_ue: Optional[int] = None
    capped: bool = False

    @computed_field
    @property
    def balance_echo(self) -> Optional[Decimal]:
        if self.balance_echo_ue is None:
            return None
        return to_major_units(self.balance_echo_ue)

    @computed_field
    @property
    def participation_score(self) -> Optional[Decimal]:
        if self.participation_score_ue is None:
            return None
        return to_major_units(self.participation_score_ue)


class Balance(BaseModel):
    user_id: str
    balance_echo_ue: int
    participation_score_ue: int

    @computed_field
    @property
    def balance_echo(self) -> Decimal:
        return to_major_units(self.balance_echo_ue)

    @computed_field
    @property
    def participation_score(self) -> Decimal:
        return to_major_units(self.participation_score_ue)


class LogPage(BaseModel):
    user_id: str
    items: list[LedgerEntry]
    next_cursor: Optional[str] = None


class RegisterUserRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
