from fastapi import APIRouter, Depends, status
from typing import List

from bitlend.core.dependencies import get_current_user, get_transaction_service
from bitlend.modules.transactions import schemas
from bitlend.modules.transactions.services import TransactionService
from bitlend.modules.users.schemas import UserRecord

router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])


@router.get("", response_model=List[schemas.TransactionResponse])
async def list_transactions(
    current_user: UserRecord = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service)
):
    """Get the current user's transactions, newest first"""
    return await service.get_user_transactions(current_user.id)


@router.post("/deposit", response_model=schemas.TransactionResponse, status_code=status.HTTP_201_CREATED)
async def deposit(
    deposit_data: schemas.DepositRequest,
    current_user: UserRecord = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service)
):
    """
    Deposit funds into the custodial balance.

    - Supported currencies: BTC, ETH, SOL
    - Records the on-chain hash, or a flagged placeholder when none is given
    """
    return await service.deposit(
        current_user.id,
        deposit_data.amount,
        currency=deposit_data.currency,
        tx_hash=deposit_data.tx_hash
    )


@router.post("/withdraw", response_model=schemas.TransactionResponse, status_code=status.HTTP_201_CREATED)
async def withdraw(
    withdrawal_data: schemas.WithdrawalRequest,
    current_user: UserRecord = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service)
):
    """
    Withdraw funds from the custodial balance.

    - Fails if the balance would go negative
    """
    return await service.withdraw(
        current_user.id,
        withdrawal_data.amount,
        currency=withdrawal_data.currency,
        tx_hash=withdrawal_data.tx_hash
    )
