from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Optional

from ..cart.store import CartStore
from .orchestrator import CheckoutOrchestrator

DEFAULT_MAX_SESSIONS = 10_000


class CheckoutRegistry:
    """
    One orchestrator per cart session with an attempt in progress.

    Routes call release() when a request is done; attempts that have ended
    are dropped then. At most max_sessions are kept, least recently used
    first out.
    """

    def __init__(self, max_sessions: int = DEFAULT_MAX_SESSIONS) -> None:
        self.max_sessions = max_sessions
        self._by_session: "OrderedDict[str, CheckoutOrchestrator]" = OrderedDict()

    def get_or_create(self, cart: CartStore,
                      factory: Callable[[CartStore], CheckoutOrchestrator]) -> CheckoutOrchestrator:
        orch = self._by_session.get(cart.session_id)
        if orch is None or orch.closed:
            orch = factory(cart)
            self._by_session[cart.session_id] = orch
            self._evict()
        else:
            # every request loads its own CartStore; point the orchestrator at the latest
            orch.cart = cart
            self._by_session.move_to_end(cart.session_id)
        return orch

    def peek(self, session_id: str) -> Optional[CheckoutOrchestrator]:
        return self._by_session.get(session_id)

    def release(self, session_id: str) -> None:
        orch = self._by_session.get(session_id)
        if orch is not None and orch.settled:
            self.discard(session_id)

    def discard(self, session_id: str) -> None:
        orch = self._by_session.pop(session_id, None)
        if orch is not None:
            orch.close()

    def _evict(self) -> None:
        while len(self._by_session) > self.max_sessions:
            _, orch = self._by_session.popitem(last=False)
            orch.close()

    def __len__(self) -> int:
        return len(self._by_session)
