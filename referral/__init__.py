"""
Referral Package

One-shot inviter binding over a single-parent invitation forest, upline
resolution (L1-L3) and dispatch of registration, purchase and KYC rewards
through the echo ledger.
"""

from .models import (
    BindError,
    BindResult,
    Downline,
    KycAwardResult,
    PaidLevel,
    PurchaseAwardResult,
    Upline,
)
from .resolver import ReferralResolver
from .service import ReferralService

__all__ = [
    "BindError",
    "BindResult",
    "Downline",
    "KycAwardResult",
    "PaidLevel",
    "PurchaseAwardResult",
    "Upline",
    "ReferralResolver",
    "ReferralService",
]
