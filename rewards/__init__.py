"""
Reward Rules Package

Pure calculation of referral reward amounts: registration, purchase
(sequence decay x tier factor x level decay) and KYC payouts.
"""

from .calculator import (
    LevelReward,
    RewardCalculator,
    RewardQuote,
    SkipReason,
)
from .schedule import (
    LEVELS,
    Level,
    RewardSchedule,
    ScheduleError,
    TriggerEvent,
    load_schedule,
)

__all__ = [
    "LEVELS",
    "Level",
    "LevelReward",
    "RewardCalculator",
    "RewardQuote",
    "RewardSchedule",
    "ScheduleError",
    "SkipReason",
    "TriggerEvent",
    "load_schedule",
]
