from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..services.identity import IdentityProvider, User
from .deps import get_current_user, get_identity

router = APIRouter(prefix="/auth", tags=["auth"])


class MeOut(BaseModel):
    user: Optional[User] = None
    is_admin: bool = False


@router.get("/me", response_model=MeOut)
async def me(identity: IdentityProvider = Depends(get_identity)):
    """Signed-out callers get {user: null}; the storefront uses this to pick its menu."""
    user = await identity.current_user()
    if user is None:
        return MeOut()
    return MeOut(user=user, is_admin=await identity.is_admin(user))


@router.post("/sign-out")
async def sign_out(
    user: User = Depends(get_current_user),
    identity: IdentityProvider = Depends(get_identity),
):
    await identity.sign_out(user)
    return {"ok": True}
