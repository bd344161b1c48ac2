from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ledger.api import error_detail
from ledger.errors import UserNotFoundError

from .models import (
    BindError,
    BindRequest,
    BindResult,
    Downline,
    KycAwardRequest,
    KycAwardResult,
    PurchaseAwardRequest,
    PurchaseAwardResult,
    Upline,
)
from .service import ReferralService

router = APIRouter()

BIND_ERROR_STATUS = {
    BindError.SELF_REF: status.HTTP_400_BAD_REQUEST,
    BindError.INVITER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BindError.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BindError.ALREADY_BOUND: status.HTTP_409_CONFLICT,
    BindError.CYCLE: status.HTTP_409_CONFLICT,
}


def get_referral_service(request: Request) -> ReferralService:
    return request.app.state.referral_service


@router.post("/referral/bind", response_model=BindResult, tags=["Referral"])
def bind_referrer(
    request: BindRequest,
    referrals: ReferralService = Depends(get_referral_service),
):
    result = referrals.bind(request.user_id, request.inviter_id)
    if not result.ok:
        return JSONResponse(
            status_code=BIND_ERROR_STATUS[result.error],
            content=result.model_dump(mode="json"),
        )
    return result


@router.get("/users/{user_id}/upline", response_model=Upline, tags=["Referral"])
def get_upline(user_id: str, referrals: ReferralService = Depends(get_referral_service)) -> Upline:
    return referrals.resolver.resolve_chain(user_id)


@router.get("/users/{user_id}/downline", response_model=Downline, tags=["Referral"])
def get_downline(
    user_id: str,
    limit: int = 25,
    referrals: ReferralService = Depends(get_referral_service),
) -> Downline:
    return referrals.resolver.list_downline(user_id, per_level_limit=max(1, min(limit, 100)))


@router.post("/referral/award/purchase", response_model=PurchaseAwardResult, tags=["Referral"])
def award_purchase(
    request: PurchaseAwardRequest,
    referrals: ReferralService = Depends(get_referral_service),
) -> PurchaseAwardResult:
    try:
        return referrals.award_purchase(request.buyer_id, request.purchase_id, request.tier)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error_detail(e))


@router.post("/referral/award/kyc", response_model=KycAwardResult, tags=["Referral"])
def award_kyc(
    request: KycAwardRequest,
    referrals: ReferralService = Depends(get_referral_service),
) -> KycAwardResult:
    try:
        return referrals.award_kyc(request.user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error_detail(e))
