"""Shared fixtures: a small catalog and cart item factory."""
from __future__ import annotations

from typing import Any

import pytest

from order_builder.services.cart import CartItem, CartStore
from order_builder.services.catalog import Catalog, Product


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def panel() -> Product:
    return Product(
        id="P",
        category="Wall Panel",
        sub="PVC",
        name="Panel P",
        sizes=["60x60", "120x60"],
        thickness=["2mm", "3mm"],
        colors=["White", "Grey"],
        pcs_per_box=10,
        box_kg=5.0,
        box_m3=0.1,
    )


@pytest.fixture()
def glue() -> Product:
    # без вариантов: ни цвета, ни размеров, ни толщины
    return Product(
        id="G",
        category="Adhesive",
        sub="General",
        name="Glue G",
        pcs_per_box=12,
        box_kg=18.0,
        box_m3=0.02,
    )


@pytest.fixture()
def floor() -> Product:
    return Product(
        id="F",
        category="Flooring",
        sub="SPC",
        name="Floor F",
        sizes=["1220x180"],
        thickness=["4mm"],
        colors=[],
        pcs_per_box=8,
        box_kg=22.5,
        box_m3=0.03,
    )


@pytest.fixture()
def catalog(panel: Product, glue: Product, floor: Product) -> Catalog:
    return Catalog([panel, glue, floor])


@pytest.fixture()
def cart() -> CartStore:
    return CartStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def make_item(**overrides: Any) -> CartItem:
    data = dict(
        id="P",
        sku="P",
        name="Panel P",
        category="Wall Panel",
        sub="PVC",
        color="White",
        size="60x60",
        thickness="2mm",
        qty_boxes=3,
        pcs_per_box=10,
        box_kg=5.0,
        box_m3=0.1,
    )
    data.update(overrides)
    return CartItem(**data)
