import itertools
import threading
from datetime import datetime, timezone
from typing import Optional


class InMemoryStorage:
    """Single authoritative store for users, ledger entries and indexes.

    Callers that need several reads and writes to be observed as one unit
    hold ``lock`` for the whole sequence; it is re-entrant, so the helpers
    below take it too.
    """

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.ledger_entries: dict[int, dict] = {}
        self.dedupe_index: dict[str, int] = {}
        self.user_entry_index: dict[str, list[int]] = {}
        self.ref_user_entry_index: dict[str, list[int]] = {}
        self.referrals_index: dict[str, list[str]] = {}
        self.lock = threading.RLock()
        self._entry_ids = itertools.count(1)
        self._bind_seq = itertools.count(1)

    # users

    def add_user(self, user_id: str) -> dict:
        with self.lock:
            user = self.users.get(user_id)
            if user is None:
                user = {
                    "id": user_id,
                    "referrer_id": None,
                    "balance_echo_ue": 0,
                    "participation_score_ue": 0,
                    "bound_at": None,
                    "bind_seq": None,
                    "bind_upline": [],
                    "created_at": datetime.now(timezone.utc),
                }
                self.users[user_id] = user
            return user

    def get_user(self, user_id: str) -> Optional[dict]:
        return self.users.get(user_id)

    def user_exists(self, user_id: str) -> bool:
        return user_id in self.users

    def get_referrer_id(self, user_id: str) -> Optional[str]:
        user = self.users.get(user_id)
        return user["referrer_id"] if user else None

    def set_referrer(self, user_id: str, referrer_id: str, upline: Optional[list[str]] = None) -> None:
        """Point ``user_id`` at ``referrer_id``.

        ``upline`` is the nearest-first ancestor list as of this bind and
        defaults to the referrer alone.
        """
        with self.lock:
            user = self.users[user_id]
            user["referrer_id"] = referrer_id
            user["bound_at"] = datetime.now(timezone.utc)
            user["bind_seq"] = next(self._bind_seq)
            user["bind_upline"] = list(upline) if upline is not None else [referrer_id]
            self.referrals_index.setdefault(referrer_id, []).append(user_id)

    def get_bind_upline(self, user_id: str) -> list[str]:
        user = self.users.get(user_id)
        return list(user["bind_upline"]) if user else []

    def referrals_of(self, user_id: str) -> list[str]:
        """Direct invitees of ``user_id`` in bind order."""
        with self.lock:
            return list(self.referrals_index.get(user_id, ()))

    def increment_balances(self, user_id: str, balance_delta: int, score_delta: int) -> dict:
        with self.lock:
            user = self.users[user_id]
            user["balance_echo_ue"] += balance_delta
            user["participation_score_ue"] += score_delta
            return dict(user)

    # ledger entries

    def find_entry_id_by_dedupe_key(self, dedupe_key: str) -> Optional[int]:
        return self.dedupe_index.get(dedupe_key)

    def insert_entry(self, entry_data: dict) -> dict:
        with self.lock:
            dedupe_key = entry_data.get("dedupe_key")
            if dedupe_key is not None and dedupe_key in self.dedupe_index:
                raise KeyError(f"Duplicate dedupe key: {dedupe_key}")

            entry = dict(entry_data, id=next(self._entry_ids))
            self.ledger_entries[entry["id"]] = entry
            self.user_entry_index.setdefault(entry["user_id"], []).append(entry["id"])
            if entry.get("ref_user_id"):
                self.ref_user_entry_index.setdefault(entry["ref_user_id"], []).append(entry["id"])
            if dedupe_key is not None:
                self.dedupe_index[dedupe_key] = entry["id"]
            return dict(entry)

    def entries_for_user(self, user_id: str) -> list[dict]:
        """All entries credited to ``user_id``, oldest first."""
        with self.lock:
            return [self.ledger_entries[i] for i in self.user_entry_index.get(user_id, ())]

    def entries_referencing(self, ref_user_id: str) -> list[dict]:
        """All entries whose ``ref_user_id`` is ``ref_user_id``, oldest first."""
        with self.lock:
            return [self.ledger_entries[i] for i in self.ref_user_entry_index.get(ref_user_id, ())]
