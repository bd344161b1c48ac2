from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from loguru import logger

from .codec import SCALE, Amount, to_minor_units
from .config import Settings, get_settings
from .errors import InvalidCursorError, InvalidKindError, UserNotFoundError
from .models import (
    Balance,
    CreditResult,
    EchoKind,
    LedgerEntry,
    LogPage,
    UserAccount,
)
from .storage import InMemoryStorage


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _month_start(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class LedgerService:
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage or InMemoryStorage()
        self.settings = settings or get_settings()
        self.clock = clock

    def register_user(self, user_id: str) -> UserAccount:
        with self.storage.lock:
            existed = self.storage.user_exists(user_id)
            user = self.storage.add_user(user_id)
        if not existed:
            logger.bind(user_id=user_id).info("User registered")
        return UserAccount(**user)

    def get_user(self, user_id: str) -> UserAccount:
        user = self.storage.get_user(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return UserAccount(**user)

    def credit(
        self,
        user_id: str,
        kind: Union[EchoKind, str],
        action: str,
        amount: Amount,
        *,
        source_id: Optional[str] = None,
        ref_user_id: Optional[str] = None,
        meta: Optional[dict[str, Any]] = None,
        dedupe_key: Optional[str] = None,
    ) -> CreditResult:
        """Append one ledger entry and move the user's balance by its amount.

        A ``dedupe_key`` that was already recorded turns the call into a
        no-op returning ``applied=False``. The duplicate check, the entry
        insert and the balance update happen under the store lock, so two
        concurrent calls with the same key apply exactly once.

        Raises:
            InvalidKindError: ``kind`` is not an :class:`EchoKind` value.
            InvalidAmountError: amount is zero, not finite or out of range.
            AmountTooSmallError: amount rounds to 0 minor-units.
            UserNotFoundError: ``user_id`` is not registered.
        """
        try:
            kind = EchoKind(kind)
        except ValueError:
            raise InvalidKindError(f"Unknown echo kind: {kind!r}") from None
        delta_ue = to_minor_units(amount)
        dedupe_key = dedupe_key or None
        log = logger.bind(user_id=user_id, kind=kind.value, action=action, dedupe_key=dedupe_key)

        with self.storage.lock:
            if not self.storage.user_exists(user_id):
                raise UserNotFoundError(f"User {user_id} not found")

            if dedupe_key is not None and self.storage.find_entry_id_by_dedupe_key(dedupe_key) is not None:
                log.debug("Duplicate credit ignored")
                return CreditResult(applied=False)

            capped = False
            if kind == EchoKind.REFERRAL and delta_ue > 0:
                remaining_ue = self._referral_cap_remaining(user_id)
                if remaining_ue is not None:
                    if remaining_ue <= 0:
                        log.info("Monthly referral cap reached, credit skipped")
                        return CreditResult(applied=False, capped=True)
                    if remaining_ue < delta_ue:
                        delta_ue = remaining_ue
                        capped = True

            entry = self.storage.insert_entry({
                "user_id": user_id,
                "kind": kind,
                "action": action,
                "amount_ue": delta_ue,
                "source_id": source_id,
                "ref_user_id": ref_user_id,
                "meta": dict(meta or {}),
                "dedupe_key": dedupe_key,
                "created_at": self.clock(),
            })
            # participation score tracks engagement and never goes down
            user = self.storage.increment_balances(user_id, delta_ue, max(delta_ue, 0))

        log.bind(entry_id=entry["id"], amount_ue=delta_ue, capped=capped).info("Echo credited")
        return CreditResult(
            applied=True,
            entry_id=entry["id"],
            amount_ue=delta_ue,
            balance_echo_ue=user["balance_echo_ue"],
            participation_score_ue=user["participation_score_ue"],
            capped=capped,
        )

    def read_balance(self, user_id: str) -> Balance:
        user = self.get_user(user_id)
        return Balance(
            user_id=user.id,
            balance_echo_ue=user.balance_echo_ue,
            participation_score_ue=user.participation_score_ue,
        )

    def read_log(self, user_id: str, limit: Optional[int] = None, cursor: Optional[str] = None) -> LogPage:
        """Newest-first page of ``user_id``'s entries.

        ``cursor`` is the ``next_cursor`` of the previous page.
        """
        if not self.storage.user_exists(user_id):
            raise UserNotFoundError(f"User {user_id} not found")

        if limit is None:
            limit = self.settings.read_log_default_limit
        limit = max(1, min(limit, self.settings.read_log_max_limit))
        before_id = self._decode_cursor(cursor)

        entries = self.storage.entries_for_user(user_id)
        page: list[dict] = []
        has_more = False
        for entry in reversed(entries):
            if before_id is not None and entry["id"] >= before_id:
                continue
            if len(page) == limit:
                has_more = True
                break
            page.append(entry)

        return LogPage(
            user_id=user_id,
            items=[LedgerEntry(**e) for e in page],
            next_cursor=str(page[-1]["id"]) if has_more else None,
        )

    def _referral_cap_remaining(self, user_id: str) -> Optional[int]:
        cap = self.settings.referral_monthly_cap
        if not cap:
            return None
        month_start = _month_start(self.clock())
        used_ue = sum(
            e["amount_ue"]
            for e in self.storage.entries_for_user(user_id)
            if e["kind"] == EchoKind.REFERRAL and e["created_at"] >= month_start
        )
        return int(cap * SCALE) - used_ue

    @staticmethod
    def _decode_cursor(cursor: Optional[str]) -> Optional[int]:
        if cursor is None or cursor == "":
            return None
        try:
            value = int(cursor)
        except (TypeError, ValueError):
            raise InvalidCursorError(f"Invalid cursor: {cursor!r}") from None
        if value <= 0:
            raise InvalidCursorError(f"Invalid cursor: {cursor!r}")
        return value
