from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Optional, Union
import json


class Level(str, Enum):
    L1 = "l1"
    L2 = "l2"
    L3 = "l3"

    @property
    def depth(self) -> int:
        return int(self.value[1:])


LEVELS = (Level.L1, Level.L2, Level.L3)


class TriggerEvent(str, Enum):
    REGISTRATION = "registration"
    PURCHASE = "purchase"
    KYC = "kyc"


class ScheduleError(ValueError):
    pass


def _levels(values: dict) -> dict[Level, Decimal]:
    try:
        return {level: Decimal(str(values[level.value])) for level in LEVELS}
    except KeyError as e:
        raise ScheduleError(f"Missing level {e.args[0]!r}") from None


def _strictly_decreasing(values: list[Decimal]) -> bool:
    return all(a > b for a, b in zip(values, values[1:]))


@dataclass
class RewardSchedule:
    registration: dict[Level, Decimal] = field(default_factory=lambda: {
        Level.L1: Decimal("3"), Level.L2: Decimal("1.5"), Level.L3: Decimal("0.75"),
    })
    # first purchase, second purchase, third and later
    purchase_bases: list[Decimal] = field(default_factory=lambda: [
        Decimal("0.4"), Decimal("0.1"), Decimal("0.05"),
    ])
    level_decay: dict[Level, Decimal] = field(default_factory=lambda: {
        Level.L1: Decimal("1.0"), Level.L2: Decimal("0.5"), Level.L3: Decimal("0.2"),
    })
    tier_factors: dict[str, Decimal] = field(default_factory=lambda: {
        "Base": Decimal("1"),
        "Tree": Decimal("0.5"),
        "Steel": Decimal("0.5"),
        "Bronze": Decimal("1"),
        "Silver": Decimal("2"),
        "Gold": Decimal("5"),
        "Platinum": Decimal("15"),
    })
    default_tier: str = "Base"
    not_for_sale_tiers: list[str] = field(default_factory=lambda: ["WS-20"])
    kyc_self: Decimal = Decimal("20")
    kyc_levels: dict[Level, Decimal] = field(default_factory=lambda: {
        Level.L1: Decimal("5"), Level.L2: Decimal("1"), Level.L3: Decimal("1"),
    })
    version: int = 1

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not _strictly_decreasing([self.registration[lvl] for lvl in LEVELS]):
            raise ScheduleError("Registration amounts must strictly decrease from L1 to L3")
        if self.registration[Level.L3] <= 0:
            raise ScheduleError("Registration amounts must be positive")
        if len(self.purchase_bases) != 3:
            raise ScheduleError("Purchase bases must have exactly 3 steps")
        if not _strictly_decreasing(self.purchase_bases) or self.purchase_bases[-1] <= 0:
            raise ScheduleError("Purchase bases must be positive and strictly decreasing")
        decay = [self.level_decay[lvl] for lvl in LEVELS]
        if decay[0] > 1 or decay[-1] <= 0 or not _strictly_decreasing(decay):
            raise ScheduleError("Level decay must strictly decrease within (0, 1]")
        if any(f <= 0 for f in self.tier_factors.values()):
            raise ScheduleError("Tier factors must be positive")
        if self.default_tier not in self.tier_factors:
            raise ScheduleError(f"Default tier {self.default_tier!r} has no factor")

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "registration": {lvl.value: str(v) for lvl, v in self.registration.items()},
            "purchase_bases": [str(v) for v in self.purchase_bases],
            "level_decay": {lvl.value: str(v) for lvl, v in self.level_decay.items()},
            "tier_factors": {t: str(v) for t, v in self.tier_factors.items()},
            "default_tier": self.default_tier,
            "not_for_sale_tiers": list(self.not_for_sale_tiers),
            "kyc": {"self": str(self.kyc_self), **{lvl.value: str(v) for lvl, v in self.kyc_levels.items()}},
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict) -> "RewardSchedule":
        defaults = cls()
        kyc = data.get("kyc")
        return cls(
            version=data.get("version", 1),
            registration=_levels(data["registration"]) if "registration" in data else defaults.registration,
            purchase_bases=[Decimal(str(v)) for v in data.get("purchase_bases", defaults.purchase_bases)],
            level_decay=_levels(data["level_decay"]) if "level_decay" in data else defaults.level_decay,
            tier_factors=(
                {t: Decimal(str(v)) for t, v in data["tier_factors"].items()}
                if "tier_factors" in data else defaults.tier_factors
            ),
            default_tier=data.get("default_tier", defaults.default_tier),
            not_for_sale_tiers=list(data.get("not_for_sale_tiers", defaults.not_for_sale_tiers)),
            kyc_self=Decimal(str(kyc["self"])) if kyc and "self" in kyc else defaults.kyc_self,
            kyc_levels=(
                _levels(kyc) if kyc and any(lvl.value in kyc for lvl in LEVELS)
                else defaults.kyc_levels
            ),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "RewardSchedule":
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


def load_schedule(path: Optional[str] = None) -> RewardSchedule:
    return RewardSchedule.load(path) if path else RewardSchedule()
