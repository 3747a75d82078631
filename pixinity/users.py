import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi_users import FastAPIUsers, exceptions
from fastapi_users.authentication import AuthenticationBackend, CookieTransport
from fastapi_users.authentication.strategy import Strategy
from fastapi_users.db import SQLAlchemyUserDatabase
from fastapi_users.manager import BaseUserManager, IntegerIDMixin
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .background import spawn
from .database import get_db
from .errors import Conflict
from .models import User, UserSession
from .services.mailer import send_welcome_email
from .settings.config import settings


logger = logging.getLogger(__name__)


SECRET = (settings.SECRET or "").strip()
if not SECRET or SECRET == "CHANGE_ME_SECRET":
    raise RuntimeError(
        "SECRET environment variable must be set to a strong value; the default placeholder is not allowed."
    )

SESSION_TTL = timedelta(days=settings.SESSION_TTL_DAYS)
MIN_PASSWORD_LENGTH = 6


# -------------------------
# Database Dependency
# -------------------------
async def get_user_db(session: AsyncSession = Depends(get_db)):
    yield SQLAlchemyUserDatabase(session, User)


# -------------------------
# User Manager
# -------------------------
class UserManager(IntegerIDMixin, BaseUserManager[User, int]):
    reset_password_token_secret = SECRET
    verification_token_secret = SECRET

    async def validate_password(self, password: str, user) -> None:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise exceptions.InvalidPasswordException(
                reason=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

    async def create(self, user_create, safe: bool = False, request: Optional[Request] = None) -> User:
        taken = await self.user_db.session.scalar(
            select(User.id).where(func.lower(User.username) == user_create.username.lower())
        )
        if taken is not None:
            raise Conflict("Username is already taken")
        return await super().create(user_create, safe=safe, request=request)

    async def on_after_register(self, user: User, request: Optional[Request] = None):
        logger.info("User %s registered", user.id)
        spawn(send_welcome_email(user.email, user.display_name), name=f"welcome-email-{user.id}")

    async def on_after_login(self, user: User, request: Optional[Request] = None, response=None):
        logger.info("User %s logged in", user.id)


async def get_user_manager(user_db=Depends(get_user_db)):
    yield UserManager(user_db)


# -------------------------
# Session strategy
# -------------------------
class SessionTableStrategy(Strategy[User, int]):
    """Opaque bearer tokens stored in ``user_session`` rows.

    A token is valid iff its row exists and ``expires_at`` is strictly in
    the future. Rows are never swept; expired ones simply stop validating.
    Any number of live sessions per user is allowed.
    """

    def __init__(self, session: AsyncSession, lifetime: timedelta = SESSION_TTL):
        self.session = session
        self.lifetime = lifetime

    async def read_token(
        self, token: Optional[str], user_manager: BaseUserManager[User, int]
    ) -> Optional[User]:
        if not token:
            return None
        row = await self.session.scalar(
            select(UserSession).where(
                UserSession.token == token,
                UserSession.expires_at > datetime.now(timezone.utc),
            )
        )
        if row is None:
            return None
        try:
            return await user_manager.get(row.user_id)
        except exceptions.UserNotExists:
            return None

    async def write_token(self, user: User) -> str:
        token = secrets.token_urlsafe(32)
        self.session.add(
            UserSession(
                token=token,
                user_id=user.id,
                expires_at=datetime.now(timezone.utc) + self.lifetime,
            )
        )
        await self.session.commit()
        return token

    async def destroy_token(self, token: str, user: User) -> None:
        await self.session.execute(delete(UserSession).where(UserSession.token == token))
        await self.session.commit()


def get_session_strategy(session: AsyncSession = Depends(get_db)) -> SessionTableStrategy:
    return SessionTableStrategy(session)


# -------------------------
# Authentication Backend
# -------------------------
cookie_transport = CookieTransport(
    cookie_name=settings.COOKIE_NAME,
    cookie_max_age=int(SESSION_TTL.total_seconds()),
    cookie_secure=settings.COOKIE_SECURE,
    cookie_httponly=True,
)

auth_backend = AuthenticationBackend(
    name="session",
    transport=cookie_transport,
    get_strategy=get_session_strategy,
)

# -------------------------
# FastAPI Users instance
# -------------------------
fastapi_users = FastAPIUsers[User, int](
    get_user_manager,
    [auth_backend],
)

current_active_user = fastapi_users.current_user(active=True)
current_optional_user = fastapi_users.current_user(active=True, optional=True)
