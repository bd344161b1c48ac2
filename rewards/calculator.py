"""
Pure reward arithmetic: no storage, no I/O.

Purchase rewards per level are ``base(sequence) * tier_factor(tier) *
level_decay(level)``, quantized to minor-units. A level that rounds to zero
is dropped from the quote; a not-for-sale tier produces a quote with a
``skip_reason`` and no levels.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from ledger.codec import quantize_minor_units, to_major_units

from .schedule import LEVELS, Level, RewardSchedule, TriggerEvent


class SkipReason(str, Enum):
    NOT_FOR_SALE = "not_for_sale"
    NO_INVITER = "no_inviter"


@dataclass(frozen=True)
class LevelReward:
    level: Level
    amount_ue: int
    multiplier: Decimal = Decimal("1")

    @property
    def amount(self) -> Decimal:
        return to_major_units(self.amount_ue)

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "amount_ue": self.amount_ue,
            "amount": str(self.amount),
            "multiplier": str(self.multiplier),
        }


@dataclass
class RewardQuote:
    trigger: TriggerEvent
    levels: list[LevelReward] = field(default_factory=list)
    self_amount_ue: Optional[int] = None
    tier: Optional[str] = None
    tier_factor: Optional[Decimal] = None
    sequence: Optional[int] = None
    base: Optional[Decimal] = None
    skip_reason: Optional[SkipReason] = None

    @property
    def is_skipped(self) -> bool:
        return self.skip_reason is not None

    def for_level(self, level: Level) -> Optional[LevelReward]:
        for reward in self.levels:
            if reward.level == level:
                return reward
        return None

    def to_dict(self) -> dict:
        return {
            "trigger": self.trigger.value,
            "levels": [r.to_dict() for r in self.levels],
            "self_amount_ue": self.self_amount_ue,
            "tier": self.tier,
            "tier_factor": str(self.tier_factor) if self.tier_factor is not None else None,
            "sequence": self.sequence,
            "base": str(self.base) if self.base is not None else None,
            "skip_reason": self.skip_reason.value if self.skip_reason else None,
        }


class RewardCalculator:
    def __init__(self, schedule: Optional[RewardSchedule] = None):
        self.schedule = schedule or RewardSchedule()
        self._tiers_by_key = {t.lower(): t for t in self.schedule.tier_factors}
        self._not_for_sale = {t.lower() for t in self.schedule.not_for_sale_tiers}

    def normalize_tier(self, tier: Optional[str]) -> str:
        """Canonical tier name; unknown or empty tiers map to the default tier."""
        key = (tier or "").strip().lower()
        if key in self._not_for_sale:
            return next(t for t in self.schedule.not_for_sale_tiers if t.lower() == key)
        return self._tiers_by_key.get(key, self.schedule.default_tier)

    def is_not_for_sale(self, tier: Optional[str]) -> bool:
        return (tier or "").strip().lower() in self._not_for_sale

    def tier_factor(self, tier: Optional[str]) -> Decimal:
        return self.schedule.tier_factors[self.normalize_tier(tier)]

    def purchase_base(self, sequence: int) -> Decimal:
        if sequence < 1:
            raise ValueError(f"Purchase sequence starts at 1, got {sequence}")
        bases = self.schedule.purchase_bases
        return bases[min(sequence, len(bases)) - 1]

    def level_decay(self, level: Level) -> Decimal:
        return self.schedule.level_decay[Level(level)]

    def registration(self) -> RewardQuote:
        return RewardQuote(
            trigger=TriggerEvent.REGISTRATION,
            levels=self._fixed_levels(self.schedule.registration),
        )

    def kyc(self) -> RewardQuote:
        return RewardQuote(
            trigger=TriggerEvent.KYC,
            levels=self._fixed_levels(self.schedule.kyc_levels),
            self_amount_ue=quantize_minor_units(self.schedule.kyc_self),
        )

    def purchase(self, sequence: int, tier: Optional[str]) -> RewardQuote:
        if self.is_not_for_sale(tier):
            return RewardQuote(
                trigger=TriggerEvent.PURCHASE,
                tier=self.normalize_tier(tier),
                sequence=sequence,
                skip_reason=SkipReason.NOT_FOR_SALE,
            )

        base = self.purchase_base(sequence)
        factor = self.tier_factor(tier)
        levels = []
        for level in LEVELS:
            decay = self.level_decay(level)
            amount_ue = quantize_minor_units(base * factor * decay)
            if amount_ue > 0:
                levels.append(LevelReward(level=level, amount_ue=amount_ue, multiplier=decay))

        return RewardQuote(
            trigger=TriggerEvent.PURCHASE,
            levels=levels,
            tier=self.normalize_tier(tier),
            tier_factor=factor,
            sequence=sequence,
            base=base,
        )

    @staticmethod
    def _fixed_levels(amounts: dict[Level, Decimal]) -> list[LevelReward]:
        rewards = []
        for level in LEVELS:
            amount_ue = quantize_minor_units(amounts[level])
            if amount_ue > 0:
                rewards.append(LevelReward(level=level, amount_ue=amount_ue))
        return rewards
