"""
Unit Tests for the Ledger Service

Tests cover:
1. Credit flow and balance projection
2. Idempotency (duplicate prevention), sequential and concurrent
3. Conservation of balance against the log
4. Monthly referral cap
5. Cursor pagination of the ledger log
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal

from ledger.config import Settings
from ledger.errors import (
    AmountTooSmallError,
    InvalidAmountError,
    InvalidCursorError,
    InvalidKindError,
    UserNotFoundError,
)
from ledger.models import EchoKind
from ledger.service import LedgerService
from ledger.storage import InMemoryStorage


USER_ID = "user-b"
OTHER_ID = "user-a"


def make_service(**settings) -> LedgerService:
    service = LedgerService(settings=Settings(**settings))
    service.register_user(USER_ID)
    service.register_user(OTHER_ID)
    return service


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestCreditFlow:
    """Tests for the credit flow."""

    def test_credit_success(self):
        """Test a credit creates one entry and moves both running totals."""
        service = make_service()

        result = service.credit(
            USER_ID, EchoKind.REFERRAL, "referral.registered.l1", Decimal("3"),
            source_id=OTHER_ID, ref_user_id=OTHER_ID, meta={"invited": OTHER_ID},
            dedupe_key="refbind:user-a:l1",
        )

        assert result.applied is True
        assert result.amount_ue == 3_000_000
        assert result.balance_echo_ue == 3_000_000
        assert result.participation_score_ue == 3_000_000
        assert result.balance_echo == Decimal("3")

        entries = service.read_log(USER_ID).items
        assert len(entries) == 1
        entry = entries[0]
        assert entry.kind == EchoKind.REFERRAL
        assert entry.action == "referral.registered.l1"
        assert entry.amount_ue == 3_000_000
        assert entry.ref_user_id == OTHER_ID
        assert entry.meta == {"invited": OTHER_ID}
        assert entry.dedupe_key == "refbind:user-a:l1"

    def test_kind_accepts_plain_string(self):
        service = make_service()
        result = service.credit(USER_ID, "bonus", "bonus.manual", "1.5")
        assert result.applied is True
        assert service.read_log(USER_ID).items[0].kind == EchoKind.BONUS

    def test_unknown_kind_is_rejected(self):
        service = make_service()

        with pytest.raises(InvalidKindError) as exc_info:
            service.credit(USER_ID, "cash", "bonus.manual", 1)

        assert exc_info.value.code == "invalid_kind"
        assert service.read_log(USER_ID).items == []

    def test_unknown_user_fails(self):
        service = make_service()
        with pytest.raises(UserNotFoundError):
            service.credit("ghost", EchoKind.BONUS, "bonus.manual", 1)

    def test_amount_too_small_creates_no_entry(self):
        """Test an amount rounding to 0 minor-units is rejected, not dropped."""
        service = make_service()

        with pytest.raises(AmountTooSmallError):
            service.credit(USER_ID, EchoKind.BONUS, "bonus.manual", Decimal("0.0000001"))

        assert service.read_log(USER_ID).items == []
        assert service.read_balance(USER_ID).balance_echo_ue == 0

    def test_zero_amount_is_invalid(self):
        service = make_service()
        with pytest.raises(InvalidAmountError):
            service.credit(USER_ID, EchoKind.BONUS, "bonus.manual", 0)

    def test_revoke_reduces_balance_but_not_participation(self):
        """Test participation score stays non-decreasing under revoke entries."""
        service = make_service()
        service.credit(USER_ID, EchoKind.PURCHASE, "purchase.buyer", Decimal("5"))

        result = service.credit(USER_ID, EchoKind.REVOKE, "revoke.purchase", Decimal("-2"))

        assert result.applied is True
        assert result.balance_echo_ue == 3_000_000
        assert result.participation_score_ue == 5_000_000


class TestIdempotency:
    """Tests for dedupe-key idempotency."""

    def test_duplicate_key_is_a_noop(self):
        service = make_service()

        first = service.credit(USER_ID, EchoKind.REFERRAL, "referral.kyc.l1", 5, dedupe_key="kyc.l1:a:b")
        second = service.credit(USER_ID, EchoKind.REFERRAL, "referral.kyc.l1", 5, dedupe_key="kyc.l1:a:b")

        assert first.applied is True
        assert second.applied is False
        assert second.balance_echo_ue is None
        assert service.read_balance(USER_ID).balance_echo_ue == 5_000_000
        assert len(service.read_log(USER_ID).items) == 1

    def test_dedupe_key_is_global_across_users(self):
        service = make_service()
        service.credit(USER_ID, EchoKind.BONUS, "bonus.manual", 1, dedupe_key="shared")
        result = service.credit(OTHER_ID, EchoKind.BONUS, "bonus.manual", 1, dedupe_key="shared")
        assert result.applied is False
        assert service.read_balance(OTHER_ID).balance_echo_ue == 0

    def test_entries_without_key_all_apply(self):
        service = make_service()
        service.credit(USER_ID, EchoKind.ACTIVITY, "activity.share", 1)
        service.credit(USER_ID, EchoKind.ACTIVITY, "activity.share", 1)
        assert service.read_balance(USER_ID).balance_echo_ue == 2_000_000

    def test_concurrent_same_key_applies_once(self):
        """Test racing credits with one dedupe key apply exactly once."""
        service = make_service()

        def attempt(_):
            return service.credit(
                USER_ID, EchoKind.REFERRAL, "referral.award.purchase.l1", Decimal("2"),
                dedupe_key="award:buyer:p-1:l1",
            ).applied

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(attempt, range(64)))

        assert results.count(True) == 1
        assert results.count(False) == 63
        assert service.read_balance(USER_ID).balance_echo_ue == 2_000_000
        assert len(service.read_log(USER_ID, limit=100).items) == 1

    def test_concurrent_distinct_keys_all_apply(self):
        service = make_service()

        def attempt(i):
            return service.credit(USER_ID, EchoKind.ACTIVITY, "activity.share", Decimal("0.5"), dedupe_key=f"k-{i}")

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(attempt, range(50)))

        assert all(r.applied for r in results)
        assert service.read_balance(USER_ID).balance_echo_ue == 25_000_000

    def test_storage_rejects_duplicate_key_insert(self):
        storage = InMemoryStorage()
        storage.add_user(USER_ID)
        row = {"user_id": USER_ID, "kind": EchoKind.BONUS, "action": "x", "amount_ue": 1, "dedupe_key": "k"}
        storage.insert_entry(row)
        with pytest.raises(KeyError):
            storage.insert_entry(row)


class TestConservation:
    """Balance must equal the sum of the user's entries."""

    def test_balance_equals_sum_of_entries(self):
        service = make_service()
        amounts = [Decimal("3"), Decimal("0.4"), Decimal("-1.25"), Decimal("0.000001"), Decimal("7")]
        for i, amount in enumerate(amounts):
            kind = EchoKind.REVOKE if amount < 0 else EchoKind.BONUS
            service.credit(USER_ID, kind, "mixed", amount, dedupe_key=f"c-{i}")
        # replays change nothing
        for i, amount in enumerate(amounts):
            kind = EchoKind.REVOKE if amount < 0 else EchoKind.BONUS
            service.credit(USER_ID, kind, "mixed", amount, dedupe_key=f"c-{i}")

        entries = service.read_log(USER_ID, limit=100).items
        balance = service.read_balance(USER_ID)
        assert balance.balance_echo_ue == sum(e.amount_ue for e in entries)
        assert balance.balance_echo == Decimal("9.150001")


class TestReferralCap:
    """Monthly cap on positive referral credits."""

    def test_credit_is_clipped_then_skipped(self):
        clock = FixedClock(datetime(2026, 3, 10, tzinfo=timezone.utc))
        service = LedgerService(settings=Settings(referral_monthly_cap=Decimal("10")), clock=clock)
        service.register_user(USER_ID)

        first = service.credit(USER_ID, EchoKind.REFERRAL, "referral.kyc.l1", 8)
        clipped = service.credit(USER_ID, EchoKind.REFERRAL, "referral.kyc.l1", 5)
        skipped = service.credit(USER_ID, EchoKind.REFERRAL, "referral.kyc.l1", 1, dedupe_key="late")

        assert first.applied and not first.capped
        assert clipped.applied and clipped.capped
        assert clipped.amount_ue == 2_000_000
        assert skipped.applied is False and skipped.capped is True
        assert service.read_balance(USER_ID).balance_echo_ue == 10_000_000

        # a capped call writes nothing, so its key is still free next month
        clock.now = datetime(2026, 4, 1, tzinfo=timezone.utc)
        retried = service.credit(USER_ID, EchoKind.REFERRAL, "referral.kyc.l1", 1, dedupe_key="late")
        assert retried.applied is True

    def test_cap_ignores_other_kinds(self):
        service = LedgerService(settings=Settings(referral_monthly_cap=Decimal("1")))
        service.register_user(USER_ID)
        result = service.credit(USER_ID, EchoKind.BONUS, "bonus.manual", 50)
        assert result.applied and not result.capped

    def test_zero_disables_cap(self):
        service = LedgerService(settings=Settings(referral_monthly_cap=Decimal("0")))
        service.register_user(USER_ID)
        result = service.credit(USER_ID, EchoKind.REFERRAL, "referral.kyc.l1", 100_000)
        assert result.applied and not result.capped


class TestReadLog:
    """Tests for ledger history pagination."""

    def test_newest_first_with_cursor(self):
        service = make_service()
        for i in range(5):
            service.credit(USER_ID, EchoKind.ACTIVITY, f"activity.{i}", 1)

        page1 = service.read_log(USER_ID, limit=2)
        page2 = service.read_log(USER_ID, limit=2, cursor=page1.next_cursor)
        page3 = service.read_log(USER_ID, limit=2, cursor=page2.next_cursor)

        actions = [e.action for p in (page1, page2, page3) for e in p.items]
        assert actions == ["activity.4", "activity.3", "activity.2", "activity.1", "activity.0"]
        assert page1.next_cursor is not None
        assert page3.next_cursor is None

    def test_only_own_entries(self):
        service = make_service()
        service.credit(USER_ID, EchoKind.BONUS, "mine", 1)
        service.credit(OTHER_ID, EchoKind.BONUS, "theirs", 1)
        assert [e.action for e in service.read_log(USER_ID).items] == ["mine"]

    def test_limit_is_capped(self):
        service = make_service(read_log_max_limit=3)
        for _ in range(5):
            service.credit(USER_ID, EchoKind.ACTIVITY, "activity.share", 1)
        page = service.read_log(USER_ID, limit=1000)
        assert len(page.items) == 3
        assert page.next_cursor is not None

    def test_invalid_cursor(self):
        service = make_service()
        with pytest.raises(InvalidCursorError):
            service.read_log(USER_ID, cursor="not-a-cursor")

    def test_unknown_user(self):
        service = make_service()
        with pytest.raises(UserNotFoundError):
            service.read_log("ghost")
        with pytest.raises(UserNotFoundError):
            service.read_balance("ghost")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
