from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from .models import CartLineItem, ProductSnapshot
from .persistence import CartPersistence

Listener = Callable[["CartStore"], None]


class CartStore:
    """
    Line items of one browsing session.

    - One row per product_id; adding the same product again merges quantities.
    - Every mutation is saved through `persistence` before it returns.
    - Listeners registered with subscribe() are told after each mutation.
    """

    def __init__(self, session_id: str, persistence: CartPersistence) -> None:
        self.session_id = session_id
        self._persistence = persistence
        self._lines: Dict[str, CartLineItem] = {
            li.product_id: li for li in persistence.load(session_id)
        }
        self._listeners: List[Listener] = []

    # --- reads ---------------------------------------------------------------
    @property
    def items(self) -> Tuple[CartLineItem, ...]:
        return tuple(self._lines.values())

    @property
    def total_item_count(self) -> int:
        return sum(li.quantity for li in self._lines.values())

    @property
    def total_price(self) -> Decimal:
        return sum((li.line_total for li in self._lines.values()), Decimal("0"))

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def get(self, product_id: str) -> Optional[CartLineItem]:
        return self._lines.get(product_id)

    def __len__(self) -> int:
        return len(self._lines)

    # --- mutations -----------------------------------------------------------
    def add_item(self, product: ProductSnapshot, quantity: int = 1) -> None:
        if quantity <= 0:
            return
        current = self._lines.get(product.product_id)
        if current is not None:
            self._lines[product.product_id] = current.model_copy(
                update={"quantity": current.quantity + quantity}
            )
        else:
            self._lines[product.product_id] = CartLineItem.from_snapshot(product, quantity)
        self._commit()

    def remove_item(self, product_id: str) -> None:
        if self._lines.pop(product_id, None) is not None:
            self._commit()

    def update_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(product_id)
            return
        current = self._lines.get(product_id)
        if current is None:
            return
        self._lines[product_id] = current.model_copy(update={"quantity": quantity})
        self._commit()

    def clear(self) -> None:
        self._lines.clear()
        self._commit()

    # --- observers -----------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self) -> None:
        self._persistence.save(self.session_id, list(self._lines.values()))
        for listener in list(self._listeners):
            listener(self)
