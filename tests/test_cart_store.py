import json
from decimal import Decimal

import pytest

from conftest import BrokenStorage, MemoryStorage
from storefront.cart_store import CartStore
from storefront.exceptions import ValidationError
from storefront.models import Cart


def _add_rice(store, quantity=1, price=Decimal("1500")):
    return store.add_item("P1", "Arroz", price, quantity=quantity)


def test_new_store_is_empty(store):
    cart = store.get_cart()
    assert cart.items == []
    assert cart.total == 0
    assert cart.item_count == 0


def test_cart_scenario(store):
    cart = _add_rice(store, quantity=2)
    assert cart.total == Decimal("3000")
    assert cart.item_count == 2

    cart = _add_rice(store, quantity=1)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.total == Decimal("4500")

    cart = store.add_item("P2", "Queso", Decimal("2000"), quantity=1, variant_id="V1", variant_name="Libra")
    assert cart.total == Decimal("6500")
    assert cart.item_count == 4
    assert len(cart.items) == 2

    cart = store.update_quantity("P1", None, 0)
    assert [line.product_id for line in cart.items] == ["P2"]
    assert cart.total == Decimal("2000")
    assert cart.item_count == 1

    cart = store.clear()
    assert cart.items == []
    assert cart.total == 0
    assert cart.item_count == 0


def test_same_product_different_variants_are_distinct_lines(store):
    store.add_item("P2", "Queso", Decimal("2000"), variant_id="V1")
    store.add_item("P2", "Queso", Decimal("3800"), variant_id="V2")
    store.add_item("P2", "Queso", Decimal("2000"), variant_id="V1", quantity=2)
    store.add_item("P2", "Queso", Decimal("9999"))

    cart = store.get_cart()
    keys = [line.key for line in cart.items]
    assert keys == [("P2", "V1"), ("P2", "V2"), ("P2", None)]
    assert cart.items[0].quantity == 3


def test_blank_variant_id_is_the_base_product(store):
    store.add_item("P1", "Arroz", Decimal("1500"), variant_id="")
    store.add_item("P1", "Arroz", Decimal("1500"), variant_id=None)

    cart = store.get_cart()
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 2


def test_padded_variant_id_matches_stored_line(store):
    store.add_item("P2", "Queso", Decimal("2000"), variant_id=" V1 ")
    store.add_item("P2", "Queso", Decimal("2000"), variant_id=" V1 ")

    cart = store.get_cart()
    assert [line.key for line in cart.items] == [("P2", "V1")]
    assert cart.items[0].quantity == 2

    cart = store.update_quantity("P2", "V1  ", 5)
    assert cart.items[0].quantity == 5

    assert store.remove_item("P2", "  V1").items == []


def test_first_add_wins_for_snapshot_fields(store):
    store.add_item("P1", "Arroz", Decimal("1500"), image_url="a.png")
    store.add_item("P1", "Arroz Premium", Decimal("1900"), image_url="b.png")

    line = store.get_cart().items[0]
    assert line.product_name == "Arroz"
    assert line.unit_price == Decimal("1500")
    assert line.image_url == "a.png"
    assert line.quantity == 2


def test_totals_match_lines_after_every_mutation(store):
    operations = [
        lambda: store.add_item("A", "a", Decimal("1200"), quantity=3),
        lambda: store.add_item("B", "b", Decimal("350"), quantity=7, variant_id="x"),
        lambda: store.update_quantity("A", None, 5),
        lambda: store.add_item("C", "c", Decimal("99.5"), quantity=2),
        lambda: store.remove_item("B", "x"),
        lambda: store.update_quantity("C", None, 1),
    ]
    for operation in operations:
        cart = operation()
        assert cart.total == sum(line.unit_price * line.quantity for line in cart.items)
        assert cart.item_count == sum(line.quantity for line in cart.items)


def test_non_positive_add_is_ignored(store, storage):
    store.add_item("P1", "Arroz", Decimal("1500"), quantity=0)
    store.add_item("P1", "Arroz", Decimal("1500"), quantity=-2)

    assert store.get_cart().items == []
    assert storage.writes == []


def test_update_quantity_replaces(store):
    _add_rice(store, quantity=2)
    cart = store.update_quantity("P1", None, 7)
    assert cart.items[0].quantity == 7
    assert cart.total == Decimal("10500")


def test_update_quantity_zero_equals_remove(storage):
    first = CartStore(MemoryStorage(), "a")
    second = CartStore(MemoryStorage(), "b")
    for s in (first, second):
        s.add_item("P1", "Arroz", Decimal("1500"), quantity=2)
        s.add_item("P2", "Queso", Decimal("2000"), variant_id="V1")

    first.update_quantity("P2", "V1", 0)
    second.remove_item("P2", "V1")

    assert first.get_cart() == second.get_cart()


def test_update_negative_quantity_removes(store):
    _add_rice(store)
    assert store.update_quantity("P1", None, -1).items == []


def test_update_unknown_key_is_noop(store, storage):
    _add_rice(store)
    writes = len(storage.writes)
    before = store.get_cart()

    assert store.update_quantity("missing", None, 4) == before
    assert store.update_quantity("P1", "V9", 4) == before
    assert len(storage.writes) == writes


def test_remove_absent_key_is_noop(store, storage):
    _add_rice(store)
    before = store.get_cart()
    writes = len(storage.writes)

    store.remove_item("nope")
    store.remove_item("P1", "some-variant")

    assert store.get_cart() == before
    assert len(storage.writes) == writes


def test_every_mutation_writes_full_snapshot(store, storage):
    store.add_item("P1", "Arroz", Decimal("1500"), quantity=2)
    store.add_item("P2", "Queso", Decimal("2000"))

    saved = json.loads(storage.data["test-cart"])
    assert saved["total"] == 5000
    assert saved["itemCount"] == 3
    assert [item["productId"] for item in saved["items"]] == ["P1", "P2"]
    assert saved["items"][0]["price"] == 1500
    assert saved["items"][0]["unitType"] == "unit"


def test_clear_persists_empty_cart(store, storage):
    _add_rice(store)
    store.clear()
    assert json.loads(storage.data["test-cart"]) == {"items": [], "total": 0, "itemCount": 0}


def test_rehydrates_from_storage(storage):
    first = CartStore(storage, "test-cart")
    first.add_item("P1", "Arroz", Decimal("1500"), quantity=2, image_url="a.png")
    first.add_item("P2", "Queso", Decimal("2000"), variant_id="V1", variant_name="Libra", unit_kind="weight")

    second = CartStore(storage, "test-cart")
    assert second.get_cart() == first.get_cart()


@pytest.mark.parametrize("lines", [
    [],
    [("P1", None, 1, "1500")],
    [("P1", None, 3, "1500"), ("P1", "V1", 2, "2000.5"), ("P2", "V2", 1, "0")],
])
def test_serialization_round_trip(lines):
    store = CartStore(MemoryStorage(), "k")
    for product_id, variant_id, quantity, price in lines:
        store.add_item(product_id, f"name-{product_id}", Decimal(price), quantity=quantity, variant_id=variant_id)

    cart = store.get_cart()
    assert Cart.from_json(cart.to_json()) == cart


def test_recomputes_totals_on_load(storage):
    storage.data["test-cart"] = json.dumps({
        "items": [
            {"productId": "P1", "productName": "Arroz", "quantity": 2, "price": 1500, "unitType": "unit"},
        ],
        "total": 999999,
        "itemCount": 42,
    })

    cart = CartStore(storage, "test-cart").get_cart()
    assert cart.total == Decimal("3000")
    assert cart.item_count == 2


def test_duplicate_stored_lines_are_merged(storage):
    line = {"productId": "P1", "productName": "Arroz", "quantity": 1, "price": 1500, "unitType": "unit"}
    storage.data["test-cart"] = json.dumps({"items": [line, dict(line, quantity=2)], "total": 0, "itemCount": 0})

    cart = CartStore(storage, "test-cart").get_cart()
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3


@pytest.mark.parametrize("raw", [
    "not json",
    "{\"items\": 5}",
    "{\"items\": [{\"productId\": \"P1\"}]}",
    "{\"items\": [{\"productId\": \"P1\", \"productName\": \"x\", \"quantity\": 0, \"price\": 10}]}",
    "[]",
])
def test_malformed_storage_falls_back_to_empty(storage, raw, caplog):
    storage.data["test-cart"] = raw

    cart = CartStore(storage, "test-cart").get_cart()

    assert cart == Cart.empty()
    assert "malformed" in caplog.text.lower()


def test_storage_failures_do_not_break_the_cart():
    store = CartStore(BrokenStorage(), "k")
    assert store.get_cart().items == []

    cart = store.add_item("P1", "Arroz", Decimal("1500"), quantity=2)
    assert cart.total == Decimal("3000")


def test_price_snapshot_survives_upstream_change(store, rice):
    store.add_product(rice, quantity=2)
    rice.base_price = Decimal("2500")
    store.add_product(rice, quantity=1)

    line = store.get_cart().items[0]
    assert line.unit_price == Decimal("1500")
    assert store.get_cart().total == Decimal("4500")


def test_add_product_uses_variant_price(store, cheese):
    cart = store.add_product(cheese, quantity=2, variant_id="v-pound")

    line = cart.items[0]
    assert line.unit_price == Decimal("3800")
    assert line.variant_name == "Libra"
    assert line.unit_kind == "weight"
    assert cart.total == Decimal("7600")


def test_add_product_requires_variant_for_variant_products(store, cheese):
    with pytest.raises(ValidationError):
        store.add_product(cheese)
    assert store.get_cart().items == []


def test_subscribers_receive_each_snapshot(store):
    seen = []
    unsubscribe = store.subscribe(lambda cart: seen.append(cart.item_count))

    _add_rice(store, quantity=2)
    store.remove_item("missing")
    store.update_quantity("P1", None, 5)
    unsubscribe()
    store.clear()

    assert seen == [2, 5]
