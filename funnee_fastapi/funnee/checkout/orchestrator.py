"""
Checkout state machine for one browsing session.

    idle -> require_auth_check -> redirect_to_sign_in
                               -> choosing_method -> submitting_payment -> awaiting_redirect
                                                  -> filling_reservation -> submitting_reservation -> success

Failures of a submission go back one step (choosing_method or
filling_reservation) with an error notice; the cart is only emptied after a
reservation has been committed or the payment provider has sent the browser
back with success=true.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from starlette.concurrency import run_in_threadpool

from ..cart.models import CartLineItem
from ..cart.store import CartStore
from ..schemas.orders import OrderCreate, OrderLineCreate, OrderStatus
from ..services.identity import IdentityProvider, User
from ..services.orders import OrderRepository
from ..services.payments import PaymentGateway, PaymentSessionItem, PaymentSessionRequest
from .errors import (
    EmptyCartError,
    IdentityChangedError,
    InvalidTransitionError,
    OrderLinesWriteError,
    OrderWriteError,
)
from .models import (
    RESTARTABLE,
    SETTLED,
    CheckoutResult,
    CheckoutState,
    Notice,
    PaymentMethod,
    ReservationRequest,
)

logger = logging.getLogger(__name__)

Listener = Callable[[CheckoutResult], None]

_SIGN_IN = Notice(level="info", title="Sign in required",
                  message="Please sign in to complete your order.")
_PAYMENT_FAILED = Notice(level="error", title="Payment failed",
                         message="We could not start the payment. Please try again.")
_RESERVATION_FAILED = Notice(level="error", title="Reservation failed",
                             message="We could not save your reservation. Please try again.")
_AUTH_FAILED = Notice(level="error", title="Sign-in check failed",
                      message="We could not verify your session. Please try again.")
_PAYMENT_CANCELLED = Notice(level="info", title="Payment cancelled",
                            message="Your cart is still here if you want to try again.")
_PAYMENT_SUCCEEDED = Notice(level="success", title="Payment received",
                            message="Thank you! Your order is being processed.")
_RESERVED = Notice(level="success", title="Reservation confirmed",
                   message="We will contact you to arrange payment.")
_USER_CHANGED = Notice(level="error", title="Session changed",
                       message="You signed in as someone else. Please start checkout again.")


class CheckoutOrchestrator:
    def __init__(
        self,
        cart: CartStore,
        payments: PaymentGateway,
        orders: OrderRepository,
        *,
        allow_guest: bool = False,
        return_url: str = "",
        payment_method: str = "card",
    ) -> None:
        self.cart = cart
        self.payments = payments
        self.orders = orders
        self.allow_guest = allow_guest
        self.return_url = return_url
        self.payment_method = payment_method

        self.state = CheckoutState.idle
        self.processing = False
        self.dialog_open = False
        self.user: Optional[User] = None
        self.redirect_url: Optional[str] = None
        self.order_id: Optional[str] = None
        self.field_errors: Dict[str, str] = {}
        self.notice: Optional[Notice] = None
        self.notices: List[Notice] = []

        self._closed = False
        self._listeners: List[Listener] = []

    # --- observers -----------------------------------------------------------
    def result(self) -> CheckoutResult:
        return CheckoutResult(
            state=self.state,
            processing=self.processing,
            dialog_open=self.dialog_open,
            redirect_url=self.redirect_url,
            order_id=self.order_id,
            field_errors=dict(self.field_errors),
            notice=self.notice,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def close(self) -> None:
        """The view went away; responses still in flight are dropped."""
        self._closed = True
        self._listeners.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def settled(self) -> bool:
        """Nothing is in flight and the attempt has ended."""
        return not self.processing and self.state in SETTLED

    def _transition(self, state: CheckoutState, notice: Optional[Notice] = None) -> None:
        if self._closed:
            return
        if state != self.state:
            logger.info("checkout %s: %s -> %s", self.cart.session_id, self.state.value, state.value)
        self.state = state
        self.notice = notice
        # the same toast twice in a row is shown once
        if notice is not None and (not self.notices or self.notices[-1] != notice):
            self.notices.append(notice)
        result = self.result()
        for listener in list(self._listeners):
            listener(result)

    def _require(self, action: str, *states: CheckoutState) -> None:
        if self.state not in states:
            raise InvalidTransitionError(action, self.state.value)

    async def _confirm_user(self, identity: Optional[IdentityProvider]) -> None:
        """
        The caller of a submission must still be the user the attempt started
        with. Otherwise the attempt is dropped and IdentityChangedError raised.
        """
        if identity is None:
            return
        self.processing = True
        try:
            user = await identity.current_user()
            failed = False
        except Exception:
            logger.exception("identity lookup failed for %s", self.cart.session_id)
            user, failed = None, True
        finally:
            self.processing = False

        started_as = self.user.id if self.user else None
        if not failed and (user.id if user else None) == started_as:
            return
        logger.warning("checkout %s: user changed mid-attempt", self.cart.session_id)
        self.user = None
        self.field_errors = {}
        self.redirect_url = None
        self.dialog_open = False
        self._transition(CheckoutState.idle, _AUTH_FAILED if failed else _USER_CHANGED)
        raise IdentityChangedError()

    # --- transitions ---------------------------------------------------------
    async def begin(self, identity: IdentityProvider) -> CheckoutResult:
        """
        Start an attempt. The current user is looked up again on every call;
        nothing from a previous attempt is trusted. A dialog left open (for
        instance by a page reload) is dropped as if cancelled.
        """
        if self.processing:
            return self.result()
        self._require("start checkout", *RESTARTABLE)
        if self.cart.is_empty:
            raise EmptyCartError()
        if self.state in (CheckoutState.choosing_method, CheckoutState.filling_reservation):
            logger.info("checkout %s: restarted from %s", self.cart.session_id, self.state.value)

        self.user = None
        self.redirect_url = None
        self.order_id = None
        self.field_errors = {}
        self.dialog_open = True
        self.processing = True
        self._transition(CheckoutState.require_auth_check)
        try:
            user = await identity.current_user()
        except Exception:
            logger.exception("identity lookup failed for %s", self.cart.session_id)
            self.processing = False
            self.dialog_open = False
            self._transition(CheckoutState.idle, _AUTH_FAILED)
            return self.result()
        self.processing = False

        if user is None and not self.allow_guest:
            self.dialog_open = False
            self._transition(CheckoutState.redirect_to_sign_in, _SIGN_IN)
            return self.result()

        self.user = user
        self._transition(CheckoutState.choosing_method)
        return self.result()

    async def choose_method(self, method: PaymentMethod,
                            return_url: Optional[str] = None,
                            identity: Optional[IdentityProvider] = None) -> CheckoutResult:
        if self.processing:
            return self.result()
        self._require("choose a payment method", CheckoutState.choosing_method)
        if method == PaymentMethod.pay_now:
            return await self.pay_now(return_url, identity)
        self.field_errors = {}
        self._transition(CheckoutState.filling_reservation)
        return self.result()

    def cancel(self) -> CheckoutResult:
        if self.state == CheckoutState.idle:
            return self.result()
        if self.processing:
            raise InvalidTransitionError("cancel", self.state.value)
        self._require("cancel", CheckoutState.choosing_method, CheckoutState.filling_reservation)
        self.user = None
        self.field_errors = {}
        self.dialog_open = False
        self._transition(CheckoutState.idle)
        return self.result()

    async def pay_now(self, return_url: Optional[str] = None,
                      identity: Optional[IdentityProvider] = None) -> CheckoutResult:
        if self.processing:
            return self.result()
        self._require("pay", CheckoutState.choosing_method)
        if self.cart.is_empty:
            raise EmptyCartError()
        await self._confirm_user(identity)

        request = PaymentSessionRequest(
            items=[
                PaymentSessionItem(
                    product_id=li.product_id,
                    name=li.name,
                    price=li.unit_price,
                    quantity=li.quantity,
                    image=li.image_ref,
                )
                for li in self.cart.items
            ],
            return_url=return_url or self.return_url,
            payment_method=self.payment_method,
            user_id=self.user.id if self.user else None,
            user_email=self.user.email if self.user else None,
        )

        self.processing = True
        self._transition(CheckoutState.submitting_payment)
        session = None
        try:
            session = await self.payments.create_session(request)
        except Exception:
            logger.exception("payment session failed for %s", self.cart.session_id)
        finally:
            self.processing = False

        if session is None or not session.url:
            self._transition(CheckoutState.choosing_method, _PAYMENT_FAILED)
            return self.result()

        # the cart stays as it is until the provider sends the browser back
        if not self._closed:
            self.redirect_url = session.url
            self.order_id = session.order_id
        self._transition(CheckoutState.awaiting_redirect)
        return self.result()

    async def submit_reservation(self, request: ReservationRequest,
                                 identity: Optional[IdentityProvider] = None) -> CheckoutResult:
        if self.processing:
            return self.result()
        self._require("submit a reservation", CheckoutState.filling_reservation)

        missing = request.missing_fields()
        if missing:
            self.field_errors = {f: "required" for f in missing}
            self._transition(CheckoutState.filling_reservation, Notice(
                level="error",
                title="Missing information",
                message="Please fill in: " + ", ".join(missing),
            ))
            return self.result()
        if self.cart.is_empty:
            raise EmptyCartError()
        await self._confirm_user(identity)

        contact = request.cleaned()
        lines = self.cart.items
        total = self.cart.total_price

        self.field_errors = {}
        self.processing = True
        self._transition(CheckoutState.submitting_reservation)
        order_id = None
        try:
            order_id = await self._write_reservation(contact, lines, total)
        except Exception:
            logger.exception("reservation failed for %s", self.cart.session_id)
        finally:
            self.processing = False

        if order_id is None:
            self._transition(CheckoutState.filling_reservation, _RESERVATION_FAILED)
            return self.result()

        # the order is committed; the cart belongs to the session, not the view
        await run_in_threadpool(self.cart.clear)
        if not self._closed:
            self.order_id = order_id
            self.dialog_open = False
        self._transition(CheckoutState.success, _RESERVED)
        return self.result()

    async def _write_reservation(self, contact: ReservationRequest,
                                 lines: Sequence[CartLineItem], total: Decimal) -> str:
        """
        Order first, then its lines, inside one repository transaction: a
        failure at either step leaves nothing behind.
        """
        async with self.orders.transaction() as tx:
            try:
                order = await tx.create_order(OrderCreate(
                    user_id=self.user.id if self.user else None,
                    customer_email=self.user.email if self.user else None,
                    total_amount=total,
                    status=OrderStatus.reserved,
                    contact_name=contact.contact_name,
                    contact_email=contact.contact_email,
                    contact_phone=contact.contact_phone,
                    notes=contact.notes,
                ))
            except Exception as e:
                raise OrderWriteError("order write failed") from e
            try:
                await tx.create_order_lines([
                    OrderLineCreate(
                        order_id=order.id,
                        product_id=li.product_id,
                        product_name=li.name,
                        price=li.unit_price,
                        quantity=li.quantity,
                    )
                    for li in lines
                ])
            except Exception as e:
                raise OrderLinesWriteError("order-line write failed") from e
        return order.id

    def handle_payment_return(self, success: bool, session_id: Optional[str]) -> CheckoutResult:
        """
        The browser is back from the hosted payment page. Ignored while a
        submission is in flight; that submission decides what happens next.
        """
        if self.processing:
            logger.warning("payment return for %s ignored during %s",
                           self.cart.session_id, self.state.value)
            return self.result()
        if success and session_id:
            self.cart.clear()
            self.dialog_open = False
            self.redirect_url = None
            self._transition(CheckoutState.success, _PAYMENT_SUCCEEDED)
        else:
            self.redirect_url = None
            self.dialog_open = False
            self._transition(CheckoutState.idle, _PAYMENT_CANCELLED)
        return self.result()
