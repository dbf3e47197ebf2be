from __future__ import annotations

from typing import Iterable, List, Union

from order_builder.constants import ORDER_COLUMNS
from order_builder.services.cart import CartItem
from order_builder.utils.formatters import fixed
from order_builder.utils.validators import safe_int, safe_num, safe_str

Cell = Union[str, int]


def order_row(it: CartItem) -> List[Cell]:
    qty = safe_int(it.qty_boxes, 0)
    pcs_per_box = safe_int(it.pcs_per_box, 0)
    box_kg = safe_num(it.box_kg, 0.0)
    box_m3 = safe_num(it.box_m3, 0.0)
    return [
        safe_str(it.category),
        safe_str(it.name),
        safe_str(it.size),
        safe_str(it.thickness),
        safe_str(it.color),
        pcs_per_box,
        qty,
        qty * pcs_per_box,
        fixed(box_kg, 1),
        fixed(box_m3, 2),
        fixed(qty * box_kg, 1),
        fixed(qty * box_m3, 2),
        safe_str(it.sku),
    ]


def order_table(items: Iterable[CartItem]) -> List[List[Cell]]:
    return [list(ORDER_COLUMNS)] + [order_row(it) for it in items]
