from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CheckoutState(str, Enum):
    idle = "idle"
    require_auth_check = "require_auth_check"
    redirect_to_sign_in = "redirect_to_sign_in"
    choosing_method = "choosing_method"
    submitting_payment = "submitting_payment"
    awaiting_redirect = "awaiting_redirect"
    filling_reservation = "filling_reservation"
    submitting_reservation = "submitting_reservation"
    success = "success"


# states from which a fresh attempt may start; an open dialog is dropped
RESTARTABLE = frozenset({
    CheckoutState.idle,
    CheckoutState.choosing_method,
    CheckoutState.filling_reservation,
    CheckoutState.redirect_to_sign_in,
    CheckoutState.awaiting_redirect,
    CheckoutState.success,
})

# attempts in these states are over; nothing is waiting on them
SETTLED = frozenset({
    CheckoutState.idle,
    CheckoutState.redirect_to_sign_in,
    CheckoutState.success,
})


class PaymentMethod(str, Enum):
    pay_now = "pay_now"
    reserve = "reserve"


REQUIRED_CONTACT_FIELDS = ("contact_name", "contact_email", "contact_phone")


class ReservationRequest(BaseModel):
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None

    def missing_fields(self) -> List[str]:
        return [f for f in REQUIRED_CONTACT_FIELDS if not (getattr(self, f) or "").strip()]

    def cleaned(self) -> "ReservationRequest":
        return ReservationRequest(
            contact_name=(self.contact_name or "").strip(),
            contact_email=(self.contact_email or "").strip(),
            contact_phone=(self.contact_phone or "").strip(),
            notes=(self.notes or "").strip() or None,
        )


class Notice(BaseModel):
    level: str = "info"   # info | success | error
    title: str
    message: str = ""


class CheckoutResult(BaseModel):
    state: CheckoutState
    processing: bool = False
    dialog_open: bool = False
    redirect_url: Optional[str] = None
    order_id: Optional[str] = None
    field_errors: Dict[str, str] = Field(default_factory=dict)
    notice: Optional[Notice] = None

    @property
    def sign_in_required(self) -> bool:
        return self.state == CheckoutState.redirect_to_sign_in
