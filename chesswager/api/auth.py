"""Authentication API endpoints.

Login exchanges an identity-provider proof for a session token. Accounts are
created on first login; there are no passwords.
"""

from fastapi import APIRouter, status

from chesswager.api.deps import CurrentAccount, DbSession, Identity
from chesswager.config import get_settings
from chesswager.logging_config import get_logger
from chesswager.schemas import AccountResponse, ErrorResponse, LoginRequest, LoginResponse, TokenResponse
from chesswager.services.account import AccountService
from chesswager.utils.errors import AccountInactive
from chesswager.utils.security import create_access_token

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = get_logger(__name__)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid identity proof"},
        403: {"model": ErrorResponse, "description": "Account deactivated"},
    },
)
async def login(
    request_body: LoginRequest,
    db: DbSession,
    identity_provider: Identity,
):
    """Log in with an identity proof, creating the account on first use."""
    identity = identity_provider.verify(request_body.proof)
    account, created = await AccountService(db).get_or_create(identity)
    if not account.is_active:
        raise AccountInactive(account.id)

    settings = get_settings()
    token = create_access_token(account.id)
    logger.info("login_succeeded", account_id=account.id, created=created)

    return LoginResponse(
        account=AccountResponse.model_validate(account),
        tokens=TokenResponse(
            access_token=token,
            expires_in=settings.jwt_access_token_expire_minutes * 60,
        ),
        created=created,
    )


@router.get(
    "/me",
    response_model=AccountResponse,
    status_code=status.HTTP_200_OK,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
)
async def get_me(current_account: CurrentAccount):
    return AccountResponse.model_validate(current_account)
