from __future__ import annotations

import math

import pytest

from conftest import make_item
from order_builder.services.cart import CartItem, CartStore, Totals, build_variant_key, cart_totals


class TestVariantKey:
    def test_same_arguments_give_same_key(self) -> None:
        assert build_variant_key("P", "White", "60x60", "2mm") == build_variant_key("P", "White", "60x60", "2mm")

    def test_different_color_gives_different_key(self) -> None:
        assert build_variant_key("P", "White", "60x60", "2mm") != build_variant_key("P", "Grey", "60x60", "2mm")

    def test_order_sensitive(self) -> None:
        assert build_variant_key("P", "60x60", "2mm", "") != build_variant_key("P", "", "60x60", "2mm")

    def test_missing_fields_are_empty(self) -> None:
        assert build_variant_key("P") == "P|||"
        assert build_variant_key("P", None, "60x60") == "P||60x60|"

    def test_case_and_whitespace_insensitive(self) -> None:
        assert build_variant_key("P", " White ", "60X60", "2MM") == build_variant_key("P", "white", "60x60", "2mm")

    def test_item_key_follows_fields(self) -> None:
        item = make_item()
        assert item.variant_key == build_variant_key("P", "White", "60x60", "2mm")


class TestAddToCart:
    def test_same_variant_upserts_with_last_quantity(self, cart: CartStore) -> None:
        cart.add_to_cart(make_item(qty_boxes=3))
        cart.add_to_cart(make_item(qty_boxes=7))

        items = cart.get_cart()
        assert len(items) == 1
        assert items[0].qty_boxes == 7

    def test_upsert_keeps_existing_box_metrics(self, cart: CartStore) -> None:
        cart.add_to_cart(make_item(qty_boxes=3, box_kg=5.0))
        cart.add_to_cart(make_item(qty_boxes=4, box_kg=99.0))
        assert cart.get_cart()[0].box_kg == 5.0

    def test_different_variants_are_separate_lines(self, cart: CartStore) -> None:
        cart.add_to_cart(make_item(color="White"))
        cart.add_to_cart(make_item(color="Grey"))
        assert [i.color for i in cart.get_cart()] == ["White", "Grey"]

    def test_numerics_are_sanitized(self, cart: CartStore) -> None:
        cart.add_to_cart(make_item(qty_boxes="4", pcs_per_box="abc", box_kg=float("nan"), box_m3=None))
        it = cart.get_cart()[0]
        assert (it.qty_boxes, it.pcs_per_box, it.box_kg, it.box_m3) == (4, 0, 0.0, 0.0)

    def test_snapshot_is_a_copy(self, cart: CartStore) -> None:
        cart.add_to_cart(make_item(qty_boxes=3))
        cart.get_cart()[0].qty_boxes = 100
        assert cart.get_cart()[0].qty_boxes == 3


class TestUpdateAndRemove:
    def test_update_merges_patch(self, cart: CartStore) -> None:
        item = make_item(qty_boxes=3)
        cart.add_to_cart(item)
        cart.update_cart_item(item.variant_key, {"qty_boxes": 9})
        assert cart.find(item.variant_key).qty_boxes == 9

    def test_update_unknown_key_is_noop(self, cart: CartStore) -> None:
        cart.add_to_cart(make_item())
        before = cart.get_cart()
        cart.update_cart_item("nope", {"qty_boxes": 9})
        assert cart.get_cart() == before

    def test_update_to_zero_removes_line(self, cart: CartStore) -> None:
        item = make_item()
        cart.add_to_cart(item)
        cart.update_cart_item(item.variant_key, {"qty_boxes": 0})
        assert len(cart) == 0

    def test_changing_variant_recomputes_key(self, cart: CartStore) -> None:
        item = make_item(color="White")
        cart.add_to_cart(item)
        cart.update_cart_item(item.variant_key, {"color": "Grey"})

        assert cart.find(item.variant_key) is None
        assert cart.find(build_variant_key("P", "Grey", "60x60", "2mm")).qty_boxes == 3

    def test_changing_variant_onto_existing_line_sums(self, cart: CartStore) -> None:
        white = make_item(color="White", qty_boxes=3)
        grey = make_item(color="Grey", qty_boxes=2)
        cart.add_to_cart(white)
        cart.add_to_cart(grey)

        cart.update_cart_item(white.variant_key, {"color": "Grey"})

        items = cart.get_cart()
        assert len(items) == 1
        assert items[0].qty_boxes == 5

    def test_update_keeps_position(self, cart: CartStore) -> None:
        a = make_item(color="White")
        b = make_item(color="Grey")
        cart.add_to_cart(a)
        cart.add_to_cart(b)
        cart.update_cart_item(a.variant_key, {"qty_boxes": 8})
        assert [i.color for i in cart.get_cart()] == ["White", "Grey"]

    def test_remove(self, cart: CartStore) -> None:
        item = make_item()
        cart.add_to_cart(item)
        cart.remove_cart_item(item.variant_key)
        assert cart.get_cart() == []
        assert cart_totals(cart.get_cart()) == Totals()

    def test_remove_unknown_key_is_noop(self, cart: CartStore) -> None:
        cart.add_to_cart(make_item())
        cart.remove_cart_item("nope")
        assert len(cart) == 1

    def test_set_cart_drops_duplicates_last_wins(self, cart: CartStore) -> None:
        cart.set_cart([make_item(qty_boxes=1), make_item(qty_boxes=6), make_item(color="Grey")])
        assert [(i.color, i.qty_boxes) for i in cart.get_cart()] == [("White", 6), ("Grey", 3)]

    def test_clear(self, cart: CartStore) -> None:
        cart.add_to_cart(make_item())
        cart.clear_cart()
        assert len(cart) == 0


class TestSubscribe:
    def test_listener_gets_snapshot_then_every_mutation(self, cart: CartStore) -> None:
        seen = []
        cart.subscribe(lambda items: seen.append([(i.color, i.qty_boxes) for i in items]))

        cart.add_to_cart(make_item(qty_boxes=3))
        cart.add_to_cart(make_item(qty_boxes=5))

        assert seen == [[], [("White", 3)], [("White", 5)]]

    def test_multiple_listeners(self, cart: CartStore) -> None:
        table, sidebar = [], []
        cart.subscribe(table.append)
        cart.subscribe(sidebar.append)
        cart.add_to_cart(make_item())
        assert len(table[-1]) == len(sidebar[-1]) == 1

    def test_removed_key_not_in_notification(self, cart: CartStore) -> None:
        item = make_item()
        cart.add_to_cart(item)
        last = []
        cart.subscribe(lambda items: last.append(items))
        cart.remove_cart_item(item.variant_key)
        assert all(i.variant_key != item.variant_key for i in last[-1])

    def test_unsubscribe(self, cart: CartStore) -> None:
        seen = []
        unsubscribe = cart.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        cart.add_to_cart(make_item())
        assert len(seen) == 1


class TestTotals:
    def test_empty(self) -> None:
        assert cart_totals([]) == Totals(0, 0, 0.0, 0.0)

    def test_linear_sum(self) -> None:
        items = [
            make_item(color="White", qty_boxes=3, box_kg=5.0, box_m3=0.1, pcs_per_box=10),
            make_item(color="Grey", qty_boxes=2, box_kg=0.0, box_m3=0.25, pcs_per_box=4),
        ]
        t = cart_totals(items)
        assert t.total_boxes == 5
        assert t.total_pcs == 38
        assert t.total_kg == 15.0
        assert math.isclose(t.total_m3, 0.8)

    def test_garbage_counts_as_zero(self) -> None:
        bad = make_item(qty_boxes=2)
        bad.box_kg = "abc"
        bad.box_m3 = float("inf")
        t = cart_totals([bad])
        assert t.total_kg == 0.0
        assert t.total_m3 == 0.0
        assert t.total_pcs == 20


class TestCartItemFromDict:
    def test_camel_case_payload(self) -> None:
        it = CartItem.from_dict(
            {"id": "P", "name": "Panel", "qtyBoxes": "3", "pcsPerBox": 10, "boxKg": "5", "boxM3": 0.1, "addedAt": 0}
        )
        assert (it.qty_boxes, it.pcs_per_box, it.box_kg, it.box_m3) == (3, 10, 5.0, 0.1)

    @pytest.mark.parametrize("raw", [{}, {"id": "P"}, {"name": "Panel"}])
    def test_requires_id_and_name(self, raw) -> None:
        assert CartItem.from_dict(raw) is None

    def test_to_dict_carries_key(self) -> None:
        d = make_item().to_dict()
        assert d["variant_key"] == "P|white|60x60|2mm"
        assert isinstance(d["added_at"], str)
