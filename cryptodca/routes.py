"""
HTTP routes for the backend API.
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from fastapi import APIRouter, Body, Depends, Response

from cryptodca.auth import AuthService
from cryptodca.db import TransactionRecord, UserRecord
from cryptodca.dependencies import get_auth_service, get_user_repository
from cryptodca.errors import ApiError, ErrorKind, Result
from cryptodca.middleware import authorize_user_path, require_user_id
from cryptodca.schemas import (
    AccessTokenResponse,
    ForgotPasswordRequest,
    LogInRequest,
    ProfileResponse,
    RefreshTokenRequest,
    SignUpRequest,
    StatusResponse,
    TokenPairResponse,
    TransactionResponse,
    UserResponse,
    WatchPairsResponse,
)
from cryptodca.users import UserRepository

router = APIRouter()

T = TypeVar("T")

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 400,
}


def _unwrap(result: Result[T], status_code: Optional[int] = None) -> T:
    """
    Return the value of a successful result or raise the matching ApiError.
    ``status_code`` forces one status for every failure of the route.
    """
    if result.ok:
        return result.value
    raise ApiError(
        status_code or STATUS_BY_KIND[result.error.kind], result.error.message
    )


def _profile(user: UserRecord) -> ProfileResponse:
    return ProfileResponse(
        id=user.user_id,
        firstname=user.firstname,
        lastname=user.lastname,
        email=user.email,
        settings=user.settings,
    )


def _transaction(record: TransactionRecord) -> TransactionResponse:
    return TransactionResponse.model_validate(record.as_dict())


@router.get("/status", response_model=StatusResponse)
def status():
    return StatusResponse(status="ok")


# -- auth ------------------------------------------------------------------


@router.post("/user", response_model=TokenPairResponse)
@router.post("/users", response_model=TokenPairResponse)
def sign_up(payload: SignUpRequest, auth: AuthService = Depends(get_auth_service)):
    tokens = _unwrap(
        auth.sign_up(
            payload.firstname, payload.lastname, payload.email, payload.password
        ),
        status_code=401,
    )
    return TokenPairResponse(**tokens.as_dict())


@router.post("/auth/login", response_model=TokenPairResponse)
def log_in(payload: LogInRequest, auth: AuthService = Depends(get_auth_service)):
    tokens = _unwrap(auth.log_in(payload.email, payload.password), status_code=401)
    return TokenPairResponse(**tokens.as_dict())


@router.post("/auth/logout", status_code=204, response_class=Response)
def log_out(
    payload: RefreshTokenRequest, auth: AuthService = Depends(get_auth_service)
):
    _unwrap(auth.log_out(payload.refreshToken), status_code=400)
    return Response(status_code=204)


@router.post("/auth/refresh", response_model=AccessTokenResponse)
def refresh_access_token(
    payload: RefreshTokenRequest, auth: AuthService = Depends(get_auth_service)
):
    access_token = _unwrap(auth.refresh(payload.refreshToken), status_code=401)
    return AccessTokenResponse(accessToken=access_token)


@router.post("/auth/forgot", status_code=204, response_class=Response)
def forgot_password(
    payload: ForgotPasswordRequest, auth: AuthService = Depends(get_auth_service)
):
    # Same answer whether or not the email is registered.
    auth.request_password_reset(payload.email)
    return Response(status_code=204)


# -- deprecated bearer routes, kept until the frontend moves to /users/{id} --


@router.get("/profile", response_model=ProfileResponse)
def get_own_profile(
    user_id: str = Depends(require_user_id),
    users: UserRepository = Depends(get_user_repository),
):
    user = users.get_by_id(user_id)
    if user is None:
        raise ApiError(401, "Unauthorized")
    return _profile(user)


@router.get("/user", response_model=list)
def get_portfolio(user_id: str = Depends(require_user_id)):
    return []


# -- profile ---------------------------------------------------------------


@router.get("/users/{user_id}/profile", response_model=ProfileResponse)
def get_user_profile(
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    user = users.get_by_id(user_id)
    if user is None:
        raise ApiError(404, "User not found")
    return _profile(user)


@router.patch("/users/{user_id}/profile", response_model=UserResponse)
def update_user_profile(
    payload: dict = Body(...),
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    user = _unwrap(users.update_profile(user_id, payload))
    return UserResponse.model_validate(user.as_dict())


# -- watch pairs -----------------------------------------------------------


@router.get("/users/{user_id}/watch_pairs", response_model=WatchPairsResponse)
def get_watch_pairs(
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    return WatchPairsResponse(watchPairs=_unwrap(users.get_watch_pairs(user_id)))


@router.put("/users/{user_id}/watch_pairs", response_model=WatchPairsResponse)
def set_watch_pairs(
    payload: dict = Body(...),
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    pairs = _unwrap(users.set_watch_pairs(user_id, payload.get("watchPairs")))
    return WatchPairsResponse(watchPairs=pairs)


# -- transactions ----------------------------------------------------------


@router.post(
    "/users/{user_id}/transactions",
    response_model=TransactionResponse,
    status_code=201,
)
def create_transaction(
    payload: Any = Body(...),
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    return _transaction(_unwrap(users.append_transaction(user_id, payload)))


@router.get(
    "/users/{user_id}/transactions", response_model=list[TransactionResponse]
)
def get_transactions(
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    return [_transaction(t) for t in _unwrap(users.get_transactions(user_id))]


@router.get(
    "/users/{user_id}/transactions/{transaction_id}",
    response_model=TransactionResponse,
)
def get_transaction(
    transaction_id: str,
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    return _transaction(_unwrap(users.get_transaction(user_id, transaction_id)))


@router.put(
    "/users/{user_id}/transactions/{transaction_id}",
    response_model=TransactionResponse,
)
def set_transaction(
    transaction_id: str,
    payload: Any = Body(...),
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    user = _unwrap(users.replace_transaction(user_id, transaction_id, payload))
    return _transaction(user.find_transaction(transaction_id))


@router.delete(
    "/users/{user_id}/transactions/{transaction_id}",
    status_code=204,
    response_class=Response,
)
def delete_transaction(
    transaction_id: str,
    user_id: str = Depends(authorize_user_path),
    users: UserRepository = Depends(get_user_repository),
):
    _unwrap(users.remove_transaction(user_id, transaction_id))
    return Response(status_code=204)
