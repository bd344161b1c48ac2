from ledger.storage import InMemoryStorage
from rewards import LEVELS

from .models import Downline, DownlineLevel, Upline


class ReferralResolver:
    """Read-side traversal of the invitation forest."""

    def __init__(self, storage: InMemoryStorage):
        self.storage = storage

    def resolve_chain(self, user_id: str) -> Upline:
        """Up to three ancestors of ``user_id``, one referrer lookup per level.

        Stops at the first missing referrer; an unknown user has an empty
        upline.
        """
        ancestors = []
        current = user_id
        for _ in LEVELS:
            current = self.storage.get_referrer_id(current)
            if current is None:
                break
            ancestors.append(current)
        return Upline.from_ancestors(ancestors)

    def is_ancestor(self, candidate_id: str, user_id: str) -> bool:
        """Whether ``candidate_id`` is ``user_id`` or one of its ancestors at any depth."""
        current = user_id
        while current is not None:
            if current == candidate_id:
                return True
            current = self.storage.get_referrer_id(current)
        return False

    def list_downline(self, user_id: str, per_level_limit: int = 25) -> Downline:
        levels = []
        with self.storage.lock:
            frontier = [user_id]
            for level in LEVELS:
                members = [child for parent in frontier for child in self.storage.referrals_of(parent)]
                newest_first = sorted(members, key=lambda uid: self.storage.users[uid]["bind_seq"], reverse=True)
                levels.append(DownlineLevel(
                    level=level,
                    count=len(members),
                    user_ids=newest_first[:per_level_limit],
                ))
                frontier = members
        return Downline(user_id=user_id, levels=levels)
