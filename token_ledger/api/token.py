"""
Token endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import get_caller, get_ledger_system
from .schemas import (
    AllowanceResponse, ApproveRequest, BalanceResponse, TokenInfoResponse,
    TransferFromRequest, TransferRequest, TransitionResponse
)
from ..errors import LedgerError, LedgerErrorKind
from ..system import LedgerSystem


router = APIRouter()


# Issuance has no endpoint, so ALREADY_INITIALIZED is mapped only to keep the
# closed set of error kinds total
_ERROR_STATUS = {
    LedgerErrorKind.INSUFFICIENT_BALANCE: status.HTTP_400_BAD_REQUEST,
    LedgerErrorKind.INSUFFICIENT_ALLOWANCE: status.HTTP_400_BAD_REQUEST,
    LedgerErrorKind.ALREADY_INITIALIZED: status.HTTP_409_CONFLICT,
    LedgerErrorKind.NOT_INITIALIZED: status.HTTP_409_CONFLICT,
}


def _ledger_http_error(error: LedgerError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS[error.kind], detail=error.to_dict())


@router.get("/token", response_model=TokenInfoResponse)
async def get_token_info(system: LedgerSystem = Depends(get_ledger_system)):
    """Token metadata and total supply"""
    ledger = system.ledger
    return TokenInfoResponse(
        name=ledger.name(),
        symbol=ledger.symbol(),
        decimals=ledger.decimals(),
        total_supply=str(ledger.total_supply())
    )


@router.get("/balances/{account}", response_model=BalanceResponse)
async def get_balance(account: str, system: LedgerSystem = Depends(get_ledger_system)):
    return BalanceResponse(account=account, balance=str(system.ledger.balance_of(account)))


@router.get("/allowances/{owner}/{spender}", response_model=AllowanceResponse)
async def get_allowance(owner: str, spender: str, system: LedgerSystem = Depends(get_ledger_system)):
    return AllowanceResponse(
        owner=owner,
        spender=spender,
        allowance=str(system.ledger.allowance(owner, spender))
    )


@router.post("/transfer", response_model=TransitionResponse)
async def transfer(
    request: TransferRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Transfer from the caller's balance"""
    try:
        transition = system.ledger.transfer(caller, request.to, int(request.amount))
    except LedgerError as e:
        raise _ledger_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return TransitionResponse.from_transition(transition)


@router.post("/approve", response_model=TransitionResponse)
async def approve(
    request: ApproveRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Set the allowance the caller grants to a spender"""
    try:
        transition = system.ledger.approve(caller, request.spender, int(request.amount))
    except LedgerError as e:
        raise _ledger_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return TransitionResponse.from_transition(transition)


@router.post("/transfer-from", response_model=TransitionResponse)
async def transfer_from(
    request: TransferFromRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Spend from an owner's balance within the caller's allowance"""
    try:
        transition = system.ledger.transfer_from(caller, request.owner, request.to, int(request.amount))
    except LedgerError as e:
        raise _ledger_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return TransitionResponse.from_transition(transition)
