from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import OAuth2PasswordRequestForm
from fastapi_users import exceptions

from pixinity.errors import AuthenticationRequired, Conflict, ValidationFailed
from pixinity.models import User
from pixinity.schemas import LoginRequest, UserCreate, UserPrivate
from pixinity.users import SessionTableStrategy, cookie_transport, get_session_strategy, get_user_manager
from pixinity.utils import require_authenticated_user

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=cookie_transport.cookie_name,
        value=token,
        httponly=True,
        max_age=cookie_transport.cookie_max_age,
        secure=cookie_transport.cookie_secure,
        samesite=cookie_transport.cookie_samesite,
        path="/",
    )


@router.post("/register", status_code=201)
async def register(
    payload: UserCreate,
    request: Request,
    response: Response,
    user_manager=Depends(get_user_manager),
    strategy: SessionTableStrategy = Depends(get_session_strategy),
):
    try:
        user = await user_manager.create(payload, safe=True, request=request)
    except exceptions.UserAlreadyExists:
        raise Conflict("An account with this email already exists") from None
    except exceptions.InvalidPasswordException as exc:
        raise ValidationFailed(str(exc.reason)) from None
    _set_session_cookie(response, await strategy.write_token(user))
    return {"user": UserPrivate.model_validate(user)}


@router.post("/login")
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    user_manager=Depends(get_user_manager),
    strategy: SessionTableStrategy = Depends(get_session_strategy),
):
    credentials = OAuth2PasswordRequestForm(username=payload.email, password=payload.password)
    user = await user_manager.authenticate(credentials)
    if user is None or not user.is_active:
        raise AuthenticationRequired("Invalid email or password")
    _set_session_cookie(response, await strategy.write_token(user))
    await user_manager.on_after_login(user, request, response)
    return {"user": UserPrivate.model_validate(user)}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    user: User = Depends(require_authenticated_user),
    strategy: SessionTableStrategy = Depends(get_session_strategy),
):
    token = request.cookies.get(cookie_transport.cookie_name)
    if token:
        await strategy.destroy_token(token, user)
    response.delete_cookie(cookie_transport.cookie_name, path="/")
    return {"message": "Logged out"}


@router.get("/me")
async def me(user: User = Depends(require_authenticated_user)):
    return {"user": UserPrivate.model_validate(user)}
