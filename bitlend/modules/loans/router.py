from fastapi import APIRouter, Depends, status
from typing import List, Optional

from bitlend.core.dependencies import get_current_user, get_loan_service
from bitlend.modules.loans import schemas
from bitlend.modules.loans.schemas import LoanRole
from bitlend.modules.loans.services import LoanService
from bitlend.modules.transactions.schemas import TransactionResponse
from bitlend.modules.users.schemas import UserRecord

router = APIRouter(prefix="/api/v1/loans", tags=["loans"])


@router.get("", response_model=List[schemas.LoanResponse])
async def list_my_loans(
    current_user: UserRecord = Depends(get_current_user),
    service: LoanService = Depends(get_loan_service)
):
    """Get loans where the current user is lender or borrower"""
    return await service.get_user_loans(current_user.id)


@router.get("/active", response_model=List[schemas.LoanResponse])
async def list_active_loans(
    current_user: UserRecord = Depends(get_current_user),
    service: LoanService = Depends(get_loan_service)
):
    """Get the current user's active loans"""
    return await service.get_active_loans(current_user.id)


@router.get("/marketplace", response_model=List[schemas.LoanResponse])
async def list_marketplace(
    current_user: UserRecord = Depends(get_current_user),
    service: LoanService = Depends(get_loan_service)
):
    """
    Browse the marketplace.

    - Returns every pending request and offer
    """
    return await service.list_marketplace_loans()


@router.post("/quote", response_model=schemas.RepaymentQuoteResponse)
async def quote_repayment(quote: schemas.RepaymentQuoteRequest):
    """
    Preview the simple-interest repayment for a loan.

    - total = principal + principal * rate/100 * months/12
    - Monthly payment is the total split evenly over the duration
    """
    return schemas.RepaymentQuoteResponse.build(
        quote.amount, quote.interest_rate, quote.duration_months
    )


@router.post("/request", response_model=schemas.LoanResponse, status_code=status.HTTP_201_CREATED)
async def request_loan(
    loan_data: schemas.LoanCreateRequest,
    current_user: UserRecord = Depends(get_current_user),
    service: LoanService = Depends(get_loan_service)
):
    """
    Ask to borrow.

    - Creates a pending request waiting for a lender
    """
    return await service.create_loan(
        current_user.id,
        LoanRole.BORROWER,
        loan_data.amount,
        loan_data.interest_rate,
        loan_data.duration_months,
        has_collateral=loan_data.has_collateral,
        currency=loan_data.currency
    )


@router.post("/offer", response_model=schemas.LoanResponse, status_code=status.HTTP_201_CREATED)
async def offer_loan(
    loan_data: schemas.LoanCreateRequest,
    current_user: UserRecord = Depends(get_current_user),
    service: LoanService = Depends(get_loan_service)
):
    """
    Offer to lend.

    - Creates a pending offer waiting for a borrower
    """
    return await service.create_loan(
        current_user.id,
        LoanRole.LENDER,
        loan_data.amount,
        loan_data.interest_rate,
        loan_data.duration_months,
        has_collateral=loan_data.has_collateral,
        currency=loan_data.currency
    )


@router.get("/{loan_id}", response_model=schemas.LoanResponse)
async def get_loan(
    loan_id: int,
    current_user: UserRecord = Depends(get_current_user),
    service: LoanService = Depends(get_loan_service)
):
    """Get loan details"""
    return await service.get_loan(loan_id)


@router.post("/{loan_id}/accept", response_model=schemas.LoanResponse)
async def accept_loan(
    loan_id: int,
    accept_data: Optional[schemas.LoanAcceptRequest] = None,
    current_user: UserRecord = Depends(get_current_user),
    service: LoanService = Depends(get_loan_service)
):
    """
    Accept a pending request or offer.

    - The current user fills the open lender or borrower role
    - Loan becomes active and the disbursement is recorded for the lender
    """
    tx_hash = accept_data.tx_hash if accept_data else None
    return await service.accept_loan(loan_id, current_user.id, tx_hash=tx_hash)


@router.post("/{loan_id}/repay", response_model=TransactionResponse)
async def repay_loan(
    loan_id: int,
    repayment: schemas.LoanRepaymentRequest,
    current_user: UserRecord = Depends(get_current_user),
    service: LoanService = Depends(get_loan_service)
):
    """
    Repay part or all of an active loan.

    - Only the borrower may repay
    - Loan completes once the total repayment is reached
    """
    return await service.repay_loan(
        loan_id,
        current_user.id,
        repayment.amount,
        tx_hash=repayment.tx_hash,
        currency=repayment.currency
    )
