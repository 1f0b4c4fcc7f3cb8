"""Tests for the session cart: merging, totals, persistence, observers."""
from __future__ import annotations

import logging
from decimal import Decimal
from itertools import permutations

from funnee.cart.models import format_price
from funnee.cart.persistence import FirestoreCartPersistence
from funnee.cart.store import CartStore
from conftest import snapshot


def test_adding_same_product_merges_quantities(cart):
    p = snapshot("A", "10")
    cart.add_item(p, 2)
    cart.add_item(p, 3)

    assert len(cart.items) == 1
    assert cart.items[0].product_id == "A"
    assert cart.items[0].quantity == 5


def test_add_defaults_to_one(cart):
    cart.add_item(snapshot("A", "10"))
    assert cart.get("A").quantity == 1


def test_totals_for_reference_cart(filled_cart):
    assert filled_cart.total_price == Decimal("25")
    assert filled_cart.total_item_count == 3


def test_update_quantity_zero_is_remove(persistence):
    a = CartStore("s-a", persistence)
    b = CartStore("s-b", persistence)
    for c in (a, b):
        c.add_item(snapshot("A", "10"), 2)
        c.add_item(snapshot("B", "5"), 1)

    a.update_quantity("A", 0)
    b.remove_item("A")

    assert [li.product_id for li in a.items] == ["B"]
    assert [li.model_dump() for li in a.items] == [li.model_dump() for li in b.items]


def test_negative_quantity_also_removes(filled_cart):
    filled_cart.update_quantity("B", -3)
    assert filled_cart.get("B") is None
    assert filled_cart.total_item_count == 2


def test_update_quantity_sets_value(filled_cart):
    filled_cart.update_quantity("A", 7)
    assert filled_cart.get("A").quantity == 7
    assert filled_cart.total_price == Decimal("75")


def test_remove_and_update_of_absent_product_are_noops(filled_cart):
    before = [li.model_dump() for li in filled_cart.items]
    filled_cart.remove_item("nope")
    filled_cart.update_quantity("nope", 4)
    assert [li.model_dump() for li in filled_cart.items] == before


def test_clear_empties_everything_and_is_idempotent(filled_cart):
    filled_cart.clear()
    filled_cart.clear()
    assert list(filled_cart.items) == []
    assert filled_cart.total_item_count == 0
    assert filled_cart.total_price == Decimal("0")
    assert filled_cart.is_empty


def test_final_state_does_not_depend_on_call_order(persistence):
    ops = [
        ("add", "A", 2),
        ("add", "B", 1),
        ("add", "A", 1),
        ("add", "C", 4),
        ("remove", "C", 0),
    ]
    prices = {"A": "10", "B": "5", "C": "2.25"}
    results = set()
    for i, order in enumerate(permutations(ops[:4])):
        c = CartStore(f"perm-{i}", persistence)
        for op, pid, qty in list(order) + [ops[4]]:
            if op == "add":
                c.add_item(snapshot(pid, prices[pid]), qty)
            else:
                c.remove_item(pid)
        lines = frozenset((li.product_id, li.quantity) for li in c.items)
        results.add((lines, c.total_item_count, c.total_price))

    assert results == {(frozenset({("A", 3), ("B", 1)}), 4, Decimal("35"))}


def test_items_keep_insertion_order_and_can_be_reiterated(cart):
    for pid in ("C", "A", "B"):
        cart.add_item(snapshot(pid, "1"))
    cart.add_item(snapshot("C", "1"))  # merge keeps the original position

    items = cart.items
    assert [li.product_id for li in items] == ["C", "A", "B"]
    assert [li.product_id for li in items] == ["C", "A", "B"]


def test_every_mutation_is_persisted_before_returning(cart, persistence):
    cart.add_item(snapshot("A", "10"), 2)
    assert [(li.product_id, li.quantity) for li in persistence.load("session-1")] == [("A", 2)]

    cart.update_quantity("A", 4)
    assert persistence.load("session-1")[0].quantity == 4

    cart.clear()
    assert persistence.load("session-1") == []


def test_reload_restores_snapshot(filled_cart, persistence):
    reloaded = CartStore("session-1", persistence)
    assert [(li.product_id, li.quantity) for li in reloaded.items] == [("A", 2), ("B", 1)]
    assert reloaded.total_price == Decimal("25")


def test_snapshot_is_not_a_live_join(cart):
    cart.add_item(snapshot("A", "10", name="Old name"))
    cart.add_item(snapshot("A", "99", name="New name"))
    line = cart.get("A")
    assert line.name == "Old name"
    assert line.unit_price == Decimal("10")
    assert line.quantity == 2


def test_subscribers_are_notified_until_unsubscribed(cart):
    seen = []
    unsubscribe = cart.subscribe(lambda c: seen.append(c.total_item_count))

    cart.add_item(snapshot("A", "10"), 2)
    cart.update_quantity("A", 3)
    unsubscribe()
    cart.clear()

    assert seen == [2, 3]


def test_totals_are_not_rounded_internally(cart):
    cart.add_item(snapshot("A", "0.125"), 3)
    assert cart.total_price == Decimal("0.375")
    assert format_price(cart.total_price) == "0.38"


# ---------- Firestore snapshots ----------

class _FakeSnapshot:
    def __init__(self, data):
        self._data = data
        self.exists = data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class _FakeDocument:
    def __init__(self, db, path):
        self._db = db
        self._path = path

    def get(self):
        return _FakeSnapshot(self._db.docs.get(self._path))

    def set(self, data):
        self._db.docs[self._path] = data


class _FakeCollection:
    def __init__(self, db, name):
        self._db = db
        self._name = name

    def document(self, doc_id):
        return _FakeDocument(self._db, f"{self._name}/{doc_id}")


class FakeFirestore:
    def __init__(self):
        self.docs = {}

    def collection(self, name):
        return _FakeCollection(self, name)


def test_firestore_snapshot_survives_a_reload():
    db = FakeFirestore()
    store = CartStore("web-1", FirestoreCartPersistence(db=db))
    store.add_item(snapshot("A", "10.50"), 2)
    store.add_item(snapshot("B", "5"))

    doc = db.docs["carts/web-1"]
    assert [row["product_id"] for row in doc["items"]] == ["A", "B"]
    assert doc["items"][0]["unit_price"] == "10.50"
    assert "updatedAt" in doc

    reloaded = CartStore("web-1", FirestoreCartPersistence(db=db))
    assert [(li.product_id, li.quantity) for li in reloaded.items] == [("A", 2), ("B", 1)]
    assert reloaded.total_price == Decimal("26")


def test_firestore_missing_document_is_an_empty_cart():
    persistence = FirestoreCartPersistence(db=FakeFirestore())
    assert persistence.load("never-seen") == []
    assert CartStore("never-seen", persistence).is_empty


def test_firestore_unreadable_snapshot_is_discarded(caplog):
    db = FakeFirestore()
    db.docs["carts/web-2"] = {"items": [{"product_id": "A", "quantity": "lots"}]}

    with caplog.at_level(logging.WARNING, logger="funnee.cart.persistence"):
        items = FirestoreCartPersistence(db=db).load("web-2")

    assert items == []
    assert "web-2" in caplog.text
