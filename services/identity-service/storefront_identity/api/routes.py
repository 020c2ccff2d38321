"""HTTP route definitions for the storefront identity service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from ..domain.account import Account
from ..domain.contracts import RegisterAccountInput, RegistrationOutcome
from ..domain.errors import IdentityError, StorageUnavailableError
from ..domain.service import IdentityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/req")


class AccountResponse(BaseModel):
    """Public representation of an `Account`; never carries secrets."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    username: str
    email: str
    is_verified: bool
    is_seller: bool
    is_admin: bool
    location: str | None = None
    created_at: str

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            id=account.account_id,
            username=account.username,
            email=account.email,
            is_verified=account.is_verified,
            is_seller=account.is_seller,
            is_admin=account.is_admin,
            location=account.location,
            created_at=account.created_at.isoformat(),
        )


class SignupRequest(BaseModel):
    """Payload accepted when registering an account."""

    username: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(..., min_length=1)
    location: str | None = None

    @field_validator("username")
    @classmethod
    def _strip_username(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("username must not be empty")
        return value


class LoginRequest(BaseModel):
    email: str
    password: str


class MessageResponse(BaseModel):
    message: str


class AccountMessageResponse(BaseModel):
    message: str
    account: AccountResponse


def get_service(request: Request) -> IdentityService:
    """Resolve the `IdentityService` stored on the FastAPI application state."""
    service: IdentityService = request.app.state.identity_service
    return service


# 201 for a new account, 200 when only the verification email is resent.
@router.post("/signup", response_model=AccountMessageResponse, status_code=status.HTTP_201_CREATED)
def signup(
    response: Response,
    payload: SignupRequest,
    service: IdentityService = Depends(get_service),
) -> AccountMessageResponse:
    """Register an account, or resend the verification email for a pending one."""
    try:
        result = service.register(
            RegisterAccountInput(
                username=payload.username,
                email=payload.email,
                password=payload.password,
                location=payload.location,
            )
        )
    except (IdentityError, StorageUnavailableError) as exc:
        raise _http_error_from_identity_error(exc) from exc

    if result.outcome is RegistrationOutcome.RESENT:
        response.status_code = status.HTTP_200_OK
        message = "verification email resent, check your inbox"
    else:
        message = "registration successful, please verify your email"
    return AccountMessageResponse(message=message, account=AccountResponse.from_domain(result.account))


@router.get("/signup/verify", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def verify_email(
    token: str = Query(...),
    service: IdentityService = Depends(get_service),
) -> MessageResponse:
    try:
        service.verify_email(token)
    except (IdentityError, StorageUnavailableError) as exc:
        raise _http_error_from_identity_error(exc) from exc
    return MessageResponse(message="email successfully verified")


@router.post("/login", response_model=AccountResponse)
def login(
    payload: LoginRequest,
    service: IdentityService = Depends(get_service),
) -> AccountResponse:
    """Check credentials and return the account without its password hash."""
    try:
        account = service.login(payload.email, payload.password)
    except (IdentityError, StorageUnavailableError) as exc:
        raise _http_error_from_identity_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    email: str = Query(...),
    service: IdentityService = Depends(get_service),
) -> MessageResponse:
    try:
        service.request_password_reset(email)
    except (IdentityError, StorageUnavailableError) as exc:
        raise _http_error_from_identity_error(exc) from exc
    return MessageResponse(message=f"password reset email sent to {email}")


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    token: str = Query(...),
    new_password: str = Query(..., alias="newPassword", min_length=1),
    service: IdentityService = Depends(get_service),
) -> MessageResponse:
    try:
        service.reset_password(token, new_password)
    except (IdentityError, StorageUnavailableError) as exc:
        raise _http_error_from_identity_error(exc) from exc
    return MessageResponse(message="password changed successfully")


@router.get("/users/{username}", response_model=AccountResponse)
def get_user(
    username: str,
    service: IdentityService = Depends(get_service),
) -> AccountResponse:
    try:
        account = service.get_account(username)
    except StorageUnavailableError as exc:
        raise _http_error_from_identity_error(exc) from exc
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account not found")
    return AccountResponse.from_domain(account)


@router.post("/users/{username}/become-seller", response_model=AccountResponse)
def become_seller(
    username: str,
    service: IdentityService = Depends(get_service),
) -> AccountResponse:
    try:
        account = service.become_seller(username)
    except (IdentityError, StorageUnavailableError) as exc:
        raise _http_error_from_identity_error(exc) from exc
    return AccountResponse.from_domain(account)


def _http_error_from_identity_error(exc: IdentityError | StorageUnavailableError) -> HTTPException:
    if isinstance(exc, StorageUnavailableError):
        logger.error("request failed, storage unavailable: %s", exc)
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="service unavailable")
    return HTTPException(status_code=exc.status_code, detail=exc.message)
