"""Where cart snapshots live between page reloads."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Protocol

from .models import CartLineItem

logger = logging.getLogger(__name__)

COLLECTION = "carts"


class CartPersistence(Protocol):
    def load(self, session_id: str) -> List[CartLineItem]: ...

    def save(self, session_id: str, items: List[CartLineItem]) -> None: ...


def _dump(items: List[CartLineItem]) -> List[Dict[str, Any]]:
    return [i.model_dump(mode="json") for i in items]


def _restore(rows: List[Dict[str, Any]]) -> List[CartLineItem]:
    return [CartLineItem.model_validate(r) for r in rows]


class InMemoryCartPersistence:
    """
    Process-local snapshots. Rows are stored JSON-encoded so a reload gets
    fresh objects, the same as it would from Firestore.
    """

    def __init__(self) -> None:
        self._carts: Dict[str, List[Dict[str, Any]]] = {}

    def load(self, session_id: str) -> List[CartLineItem]:
        return _restore(self._carts.get(session_id, []))

    def save(self, session_id: str, items: List[CartLineItem]) -> None:
        self._carts[session_id] = _dump(items)


class FirestoreCartPersistence:
    """
    One document per browsing session: carts/{session_id} = { items, updatedAt }.
    The Firestore client is synchronous, so save() has returned only after the
    write is acknowledged.
    """

    def __init__(self, db=None) -> None:
        self._db = db

    @property
    def db(self):
        if self._db is None:
            from ..services.firebase import ensure_firestore
            self._db = ensure_firestore()
        return self._db

    def load(self, session_id: str) -> List[CartLineItem]:
        snap = self.db.collection(COLLECTION).document(session_id).get()
        if not snap.exists:
            return []
        data = snap.to_dict() or {}
        try:
            return _restore(data.get("items") or [])
        except ValueError:
            logger.warning("discarding unreadable cart snapshot %s", session_id)
            return []

    def save(self, session_id: str, items: List[CartLineItem]) -> None:
        self.db.collection(COLLECTION).document(session_id).set({
            "items": _dump(items),
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        })
