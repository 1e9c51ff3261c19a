from fastapi import APIRouter, Depends, status

from bitlend.core.dependencies import get_current_user, get_user_service
from bitlend.core.security import create_access_token
from bitlend.modules.users import schemas
from bitlend.modules.users.schemas import UserRecord
from bitlend.modules.users.services import UserService

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def issue_token(user: UserRecord) -> schemas.TokenResponse:
    access_token = create_access_token({"sub": str(user.id)})
    return schemas.TokenResponse(
        access_token=access_token,
        user=schemas.UserProfileResponse.model_validate(user)
    )


@router.post("/register", response_model=schemas.TokenResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: schemas.UserRegistrationRequest,
    service: UserService = Depends(get_user_service)
):
    """
    Register a new user.

    - Checks email and wallet uniqueness
    - Creates the user's empty lending stats
    - Returns a JWT access token and the profile
    """
    user = await service.register_user(
        user_data.username,
        user_data.email,
        user_data.password,
        wallet_address=user_data.wallet_address
    )
    return issue_token(user)


@router.post("/login", response_model=schemas.TokenResponse)
async def login(
    login_data: schemas.UserLoginRequest,
    service: UserService = Depends(get_user_service)
):
    """
    Login with email and password.
    """
    user = await service.authenticate_user(login_data.email, login_data.password)
    return issue_token(user)


@router.post("/connect-wallet", response_model=schemas.TokenResponse)
async def connect_wallet(
    wallet_data: schemas.ConnectWalletRequest,
    service: UserService = Depends(get_user_service)
):
    """
    Sign in with a wallet address.

    - First connection creates a wallet-only account
    """
    user = await service.connect_wallet(wallet_data.wallet_address)
    return issue_token(user)


@router.get("/me", response_model=schemas.UserProfileResponse)
async def get_profile(current_user: UserRecord = Depends(get_current_user)):
    """Get current user profile"""
    return current_user
