"""Who is shopping, and may they administer the store."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from firebase_admin import auth
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from .firebase import ensure_app

logger = logging.getLogger(__name__)

ADMIN_CLAIM = "admin"


class User(BaseModel):
    id: str
    email: Optional[str] = None


class IdentityProvider(Protocol):
    async def current_user(self) -> Optional[User]: ...

    async def is_admin(self, user: User) -> bool: ...

    async def sign_out(self, user: User) -> None: ...


class FirebaseIdentity:
    """
    Identity resolved from a Firebase ID token sent by the browser.

    Admin privilege is the boolean `admin` custom claim on the token; nothing
    else is consulted.
    """

    def __init__(self, id_token: Optional[str]) -> None:
        self._id_token = id_token
        self._claims: Optional[Dict[str, Any]] = None

    async def _verify(self) -> Optional[Dict[str, Any]]:
        if not self._id_token:
            return None
        if self._claims is None:
            ensure_app()
            try:
                self._claims = await run_in_threadpool(auth.verify_id_token, self._id_token)
            except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError,
                    auth.RevokedIdTokenError, ValueError) as e:
                logger.info("rejected id token: %s", e)
                return None
        return self._claims

    async def current_user(self) -> Optional[User]:
        claims = await self._verify()
        if not claims:
            return None
        return User(id=claims["uid"], email=claims.get("email"))

    async def is_admin(self, user: User) -> bool:
        claims = await self._verify()
        if not claims or claims.get("uid") != user.id:
            return False
        return claims.get(ADMIN_CLAIM) is True

    async def sign_out(self, user: User) -> None:
        ensure_app()
        await run_in_threadpool(auth.revoke_refresh_tokens, user.id)
        self._claims = None
        self._id_token = None
