from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from typing import AsyncIterator

from bitlend.core.security import decode_token
from bitlend.modules.loans.services import LoanService
from bitlend.modules.stats.services import AccountingService
from bitlend.modules.transactions.services import TransactionService
from bitlend.modules.users.schemas import UserRecord
from bitlend.modules.users.services import UserService
from bitlend.modules.valuation.services import ValuationSource
from bitlend.store.base import LedgerStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/users/login")


# ============ Shared state ============

async def get_store(request: Request) -> AsyncIterator[LedgerStore]:
    """Get the ledger store for this request"""
    async with request.app.state.store_provider.session() as store:
        yield store


def get_locks(request: Request):
    return request.app.state.locks


def get_valuation(request: Request) -> ValuationSource:
    return request.app.state.valuation


# ============ Services ============

def get_user_service(store: LedgerStore = Depends(get_store)) -> UserService:
    return UserService(store)


def get_accounting_service(store: LedgerStore = Depends(get_store)) -> AccountingService:
    return AccountingService(store)


def get_loan_service(
    store: LedgerStore = Depends(get_store),
    accounting: AccountingService = Depends(get_accounting_service),
    valuation: ValuationSource = Depends(get_valuation),
    locks=Depends(get_locks)
) -> LoanService:
    return LoanService(store, accounting=accounting, valuation=valuation, locks=locks)


def get_transaction_service(
    store: LedgerStore = Depends(get_store),
    valuation: ValuationSource = Depends(get_valuation),
    locks=Depends(get_locks)
) -> TransactionService:
    return TransactionService(store, valuation=valuation, locks=locks)


# ============ Authentication ============

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    store: LedgerStore = Depends(get_store)
) -> UserRecord:
    """Get current authenticated user from JWT token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    user_id = payload.get("sub")
    if user_id is None or payload.get("type") != "access":
        raise credentials_exception

    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise credentials_exception

    user = await store.get_user(user_id)
    if user is None:
        raise credentials_exception

    return user
