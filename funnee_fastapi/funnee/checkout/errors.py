from __future__ import annotations

from typing import Sequence


class CheckoutError(Exception):
    """Base for checkout failures; status_code is what the HTTP layer answers with."""
    status_code = 400


class EmptyCartError(CheckoutError):
    def __init__(self) -> None:
        super().__init__("cart is empty")


class InvalidTransitionError(CheckoutError):
    status_code = 409

    def __init__(self, action: str, state: str) -> None:
        super().__init__(f"cannot {action} while checkout is {state}")
        self.action = action
        self.state = state


class NotAuthenticatedError(CheckoutError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("sign in to continue")


class IdentityChangedError(CheckoutError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("the signed-in user changed; start checkout again")


class ReservationValidationError(CheckoutError):
    status_code = 422

    def __init__(self, fields: Sequence[str]) -> None:
        super().__init__("missing required fields: " + ", ".join(fields))
        self.fields = list(fields)


class PaymentSessionError(CheckoutError):
    status_code = 502


class OrderWriteError(CheckoutError):
    status_code = 502


class OrderLinesWriteError(OrderWriteError):
    pass
