from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from .errors import LedgerServiceError, UserNotFoundError
from .models import (
    Balance,
    CreditRequest,
    CreditResult,
    LogPage,
    RegisterUserRequest,
    UserAccount,
)
from .service import LedgerService

router = APIRouter()


def get_ledger_service(request: Request) -> LedgerService:
    return request.app.state.ledger_service


def error_detail(e: LedgerServiceError) -> dict:
    return {"error": e.code, "message": str(e)}


@router.post("/users", response_model=UserAccount, status_code=status.HTTP_201_CREATED, tags=["Users"])
def register_user(
    request: RegisterUserRequest,
    ledger: LedgerService = Depends(get_ledger_service),
) -> UserAccount:
    return ledger.register_user(request.user_id)


@router.post("/echo/credit", response_model=CreditResult, tags=["Echo"])
def credit_echo(
    request: CreditRequest,
    ledger: LedgerService = Depends(get_ledger_service),
) -> CreditResult:
    try:
        return ledger.credit(
            request.user_id,
            request.kind,
            request.action,
            request.amount,
            source_id=request.source_id,
            ref_user_id=request.ref_user_id,
            meta=request.meta,
            dedupe_key=request.dedupe_key,
        )
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error_detail(e))
    except LedgerServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail(e))


@router.get("/users/{user_id}/balance", response_model=Balance, tags=["Users"])
def get_user_balance(user_id: str, ledger: LedgerService = Depends(get_ledger_service)) -> Balance:
    try:
        return ledger.read_balance(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error_detail(e))


@router.get("/users/{user_id}/log", response_model=LogPage, tags=["Users"])
def get_user_log(
    user_id: str,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    ledger: LedgerService = Depends(get_ledger_service),
) -> LogPage:
    try:
        return ledger.read_log(user_id, limit, cursor)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error_detail(e))
    except LedgerServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail(e))
