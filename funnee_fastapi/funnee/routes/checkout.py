from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..checkout.errors import (
    CheckoutError,
    NotAuthenticatedError,
    ReservationValidationError,
)
from ..checkout.models import CheckoutResult, CheckoutState, PaymentMethod, ReservationRequest
from ..checkout.orchestrator import CheckoutOrchestrator
from ..checkout.registry import CheckoutRegistry
from ..services.identity import IdentityProvider
from .deps import get_cart_session, get_checkout, get_checkout_registry, get_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


class MethodIn(BaseModel):
    method: PaymentMethod
    return_url: Optional[str] = None


class PayIn(BaseModel):
    return_url: Optional[str] = None


def _http_error(e: CheckoutError, result: Optional[CheckoutResult] = None) -> HTTPException:
    detail = {"message": str(e)}
    if isinstance(e, ReservationValidationError):
        detail["missing"] = e.fields
    if result is not None:
        detail["result"] = result.model_dump(mode="json")
    return HTTPException(status_code=e.status_code, detail=detail)


def _raise_for(result: CheckoutResult) -> CheckoutResult:
    """Turn a recoverable outcome of the last call into the matching HTTP status."""
    if result.state == CheckoutState.redirect_to_sign_in:
        raise _http_error(NotAuthenticatedError(), result)
    if result.field_errors:
        raise _http_error(ReservationValidationError(list(result.field_errors)), result)
    if result.notice is not None and result.notice.level == "error":
        # a collaborator call failed; the orchestrator already went back one step
        raise HTTPException(status_code=502, detail={
            "message": result.notice.message,
            "result": result.model_dump(mode="json"),
        })
    return result


@router.get("/state", response_model=CheckoutResult)
def checkout_state(
    session_id: str = Depends(get_cart_session),
    registry: CheckoutRegistry = Depends(get_checkout_registry),
):
    """Read-only: sessions without an attempt in progress are idle."""
    orch = registry.peek(session_id)
    if orch is None:
        return CheckoutResult(state=CheckoutState.idle)
    return orch.result()


@router.post("/start", response_model=CheckoutResult)
async def checkout_start(
    orch: CheckoutOrchestrator = Depends(get_checkout),
    identity: IdentityProvider = Depends(get_identity),
):
    try:
        result = await orch.begin(identity)
    except CheckoutError as e:
        raise _http_error(e)
    return _raise_for(result)


@router.post("/method", response_model=CheckoutResult)
async def checkout_method(
    body: MethodIn,
    orch: CheckoutOrchestrator = Depends(get_checkout),
    identity: IdentityProvider = Depends(get_identity),
):
    try:
        result = await orch.choose_method(body.method, body.return_url, identity)
    except CheckoutError as e:
        raise _http_error(e)
    return _raise_for(result)


@router.post("/pay", response_model=CheckoutResult)
async def checkout_pay(
    body: Optional[PayIn] = None,
    orch: CheckoutOrchestrator = Depends(get_checkout),
    identity: IdentityProvider = Depends(get_identity),
):
    try:
        result = await orch.pay_now(body.return_url if body else None, identity)
    except CheckoutError as e:
        raise _http_error(e)
    return _raise_for(result)


@router.post("/reserve", response_model=CheckoutResult)
async def checkout_reserve(
    body: ReservationRequest,
    orch: CheckoutOrchestrator = Depends(get_checkout),
    identity: IdentityProvider = Depends(get_identity),
):
    try:
        result = await orch.submit_reservation(body, identity)
    except CheckoutError as e:
        raise _http_error(e)
    return _raise_for(result)


@router.post("/cancel", response_model=CheckoutResult)
def checkout_cancel(orch: CheckoutOrchestrator = Depends(get_checkout)):
    try:
        return orch.cancel()
    except CheckoutError as e:
        raise _http_error(e)


@router.get("/return", response_model=CheckoutResult)
def checkout_return(
    success: bool = Query(False),
    session_id: Optional[str] = Query(None),
    orch: CheckoutOrchestrator = Depends(get_checkout),
):
    """Landing route for the hosted payment page (success_url / cancel_url)."""
    logger.info("payment return for %s: success=%s", orch.cart.session_id, success)
    return orch.handle_payment_return(success, session_id)
