"""
Pydantic schemas for API requests and responses

Amounts are decimal strings: base-unit values routinely exceed what JSON
numbers carry safely.
"""

from typing import Dict, Any
from pydantic import BaseModel, Field

from ..state import Transition


AMOUNT_PATTERN = r"^[0-9]{1,78}$"


class TransferRequest(BaseModel):
    to: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=AMOUNT_PATTERN, description="Base units as decimal string")


class ApproveRequest(BaseModel):
    spender: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=AMOUNT_PATTERN, description="Base units as decimal string")


class TransferFromRequest(BaseModel):
    owner: str = Field(..., min_length=1)
    to: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=AMOUNT_PATTERN, description="Base units as decimal string")


class TokenInfoResponse(BaseModel):
    name: str
    symbol: str
    decimals: int
    total_supply: str


class BalanceResponse(BaseModel):
    account: str
    balance: str


class AllowanceResponse(BaseModel):
    owner: str
    spender: str
    allowance: str


class TransitionResponse(BaseModel):
    success: bool
    operation: str
    transition: Dict[str, Any]

    @classmethod
    def from_transition(cls, transition: Transition) -> 'TransitionResponse':
        return cls(
            success=transition.success,
            operation=transition.operation.value,
            transition=transition.to_dict()
        )
