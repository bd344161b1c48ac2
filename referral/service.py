"""
Referral service.

Binds users to their inviter and dispatches the referral rewards that hang
off the invitation chain: registration, purchase and KYC payouts.
"""

from typing import Optional

from loguru import logger

from ledger.codec import to_major_units
from ledger.errors import UserNotFoundError
from ledger.models import EchoKind
from ledger.service import LedgerService
from rewards import RewardCalculator, SkipReason

from .models import (
    BindError,
    BindResult,
    KycAwardResult,
    PaidLevel,
    PurchaseAwardResult,
    Upline,
)
from .resolver import ReferralResolver

PURCHASE_AWARD_ACTION = "referral.award.purchase"


class ReferralService:
    def __init__(
        self,
        ledger: LedgerService,
        calculator: Optional[RewardCalculator] = None,
        resolver: Optional[ReferralResolver] = None,
    ):
        self.ledger = ledger
        self.storage = ledger.storage
        self.calculator = calculator or RewardCalculator()
        self.resolver = resolver or ReferralResolver(self.storage)

    def bind(self, user_id: str, inviter_id: str) -> BindResult:
        """Attach ``user_id`` to ``inviter_id`` once, then pay registration rewards.

        The pointer write is the durable part; reward payouts that fail are
        logged and can be retried with :meth:`pay_registration_rewards`.
        """
        log = logger.bind(user_id=user_id, inviter_id=inviter_id)

        error = self._attach(user_id, inviter_id)
        if error is not None:
            log.bind(error=error.value).warning("Referral bind rejected")
            return BindResult(ok=False, error=error)

        log.info("Referral bound")
        upline = self.pay_registration_rewards(user_id)
        return BindResult(ok=True, bound_to=inviter_id, upline=upline)

    def pay_registration_rewards(self, user_id: str) -> Upline:
        """Pay the registration rewards owed for ``user_id``'s bind.

        Recipients are the upline recorded when the bind happened, so a
        retry pays the same users even if the inviter has since been bound
        under someone. Each level is keyed by (user, level) and pays once.
        An unbound user has nothing owed.
        """
        upline = Upline.from_ancestors(self.storage.get_bind_upline(user_id))
        quote = self.calculator.registration()

        for level, recipient in upline.recipients():
            reward = quote.for_level(level)
            if reward is None:
                continue
            try:
                self.ledger.credit(
                    recipient,
                    EchoKind.REFERRAL,
                    f"referral.registered.{level.value}",
                    reward.amount,
                    source_id=user_id,
                    ref_user_id=user_id,
                    meta={"invited": user_id, "level": level.depth},
                    dedupe_key=f"refbind:{user_id}:{level.value}",
                )
            except Exception:
                logger.bind(user_id=user_id, recipient=recipient, level=level.value).exception(
                    "Registration reward failed"
                )
        return upline

    def award_purchase(self, buyer_id: str, purchase_id: str, tier: Optional[str]) -> PurchaseAwardResult:
        """Pay the buyer's upline for one purchase.

        Retrying with the same ``purchase_id`` recomputes the same sequence
        and amounts, and every credit is keyed by (buyer, purchase, level).

        Raises:
            UserNotFoundError: ``buyer_id`` is not registered.
        """
        if not self.storage.user_exists(buyer_id):
            raise UserNotFoundError(f"User {buyer_id} not found")

        source_id = f"purchase:{buyer_id}:{purchase_id}"
        log = logger.bind(buyer_id=buyer_id, purchase_id=purchase_id, tier=tier)

        with self.storage.lock:
            sequence = self.purchase_sequence(buyer_id, exclude_source_id=source_id)
            quote = self.calculator.purchase(sequence, tier)
            result = PurchaseAwardResult(
                buyer_id=buyer_id,
                purchase_id=purchase_id,
                tier=quote.tier,
                sequence=sequence,
            )
            if quote.is_skipped:
                log.bind(reason=quote.skip_reason.value).info("Purchase award skipped")
                result.skipped = quote.skip_reason
                return result

            upline = self.resolver.resolve_chain(buyer_id)
            result.upline = upline
            if upline.is_empty:
                log.debug("Buyer has no inviter, nothing to award")
                result.skipped = SkipReason.NO_INVITER
                return result

            for level, recipient in upline.recipients():
                reward = quote.for_level(level)
                if reward is None:
                    continue
                credit = self.ledger.credit(
                    recipient,
                    EchoKind.REFERRAL,
                    f"{PURCHASE_AWARD_ACTION}.{level.value}",
                    reward.amount,
                    source_id=source_id,
                    ref_user_id=buyer_id,
                    meta={
                        "tier": quote.tier,
                        "seq": sequence,
                        "tier_factor": str(quote.tier_factor),
                        "multiplier": str(reward.multiplier),
                    },
                    dedupe_key=f"award:{buyer_id}:{purchase_id}:{level.value}",
                )
                result.paid.append(PaidLevel(
                    level=level,
                    user_id=recipient,
                    amount_ue=credit.amount_ue if credit.amount_ue is not None else reward.amount_ue,
                    applied=credit.applied,
                    capped=credit.capped,
                ))

        log.bind(sequence=sequence, levels=len(result.paid)).info("Purchase award dispatched")
        return result

    def purchase_sequence(self, buyer_id: str, exclude_source_id: Optional[str] = None) -> int:
        """1-based ordinal of the buyer's next rewarded purchase.

        Counts distinct purchase events that already produced a purchase
        award with the buyer as ``ref_user_id``; a purchase with no inviter
        leaves no entry and so does not advance the sequence.
        """
        sources = {
            entry["source_id"]
            for entry in self.storage.entries_referencing(buyer_id)
            if entry["action"].startswith(PURCHASE_AWARD_ACTION)
            and entry["source_id"] != exclude_source_id
        }
        return len(sources) + 1

    def award_kyc(self, user_id: str) -> KycAwardResult:
        """Credit the user's own KYC bonus and pay their upline.

        Raises:
            UserNotFoundError: ``user_id`` is not registered.
        """
        if not self.storage.user_exists(user_id):
            raise UserNotFoundError(f"User {user_id} not found")

        quote = self.calculator.kyc()
        source_id = f"kyc_approved:{user_id}"
        meta = {"reason": "kyc_approved"}

        self_applied = False
        if quote.self_amount_ue:
            self_applied = self.ledger.credit(
                user_id,
                EchoKind.ACTIVITY,
                "kyc.approved",
                to_major_units(quote.self_amount_ue),
                source_id=source_id,
                meta=meta,
                dedupe_key=f"kyc.self:{user_id}",
            ).applied

        upline = self.resolver.resolve_chain(user_id)
        result = KycAwardResult(user_id=user_id, self_applied=self_applied, upline=upline)
        for level, recipient in upline.recipients():
            reward = quote.for_level(level)
            if reward is None:
                continue
            try:
                credit = self.ledger.credit(
                    recipient,
                    EchoKind.REFERRAL,
                    f"referral.kyc.{level.value}",
                    reward.amount,
                    source_id=source_id,
                    ref_user_id=user_id,
                    meta=meta,
                    dedupe_key=f"kyc.{level.value}:{user_id}:{recipient}",
                )
            except Exception:
                logger.bind(user_id=user_id, recipient=recipient, level=level.value).exception(
                    "KYC referral reward failed"
                )
                continue
            result.paid.append(PaidLevel(
                level=level,
                user_id=recipient,
                amount_ue=credit.amount_ue if credit.amount_ue is not None else reward.amount_ue,
                applied=credit.applied,
                capped=credit.capped,
            ))
        return result

    def _attach(self, user_id: str, inviter_id: str) -> Optional[BindError]:
        if user_id == inviter_id:
            return BindError.SELF_REF

        with self.storage.lock:
            if not self.storage.user_exists(inviter_id):
                return BindError.INVITER_NOT_FOUND
            if not self.storage.user_exists(user_id):
                return BindError.USER_NOT_FOUND
            if self.storage.get_referrer_id(user_id) is not None:
                return BindError.ALREADY_BOUND
            if self.resolver.is_ancestor(user_id, inviter_id):
                return BindError.CYCLE
            inviter_upline = self.resolver.resolve_chain(inviter_id)
            upline = Upline.from_ancestors([inviter_id, *inviter_upline.ancestors()])
            self.storage.set_referrer(user_id, inviter_id, upline=upline.ancestors())
        return None
