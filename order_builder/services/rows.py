from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from order_builder.config import settings
from order_builder.services.cart import CartItem, CartStore, build_variant_key
from order_builder.services.catalog import Product
from order_builder.utils.formatters import variant_label
from order_builder.utils.validators import clamp_boxes, safe_str

logger = logging.getLogger(__name__)

MSG_NEED_BOXES = "Укажите количество коробок перед добавлением в корзину."
MSG_NEED_OPTIONS = "Выберите параметры: {missing}."

_OPTION_NAMES = {"color": "цвет", "thickness": "толщину", "size": "размер"}


@dataclass
class RowState:
    size: str = ""
    thickness: str = ""
    color: str = ""
    boxes: int = 0


def missing_selections(product: Product, row: RowState) -> List[str]:
    missing = []
    if product.colors and not row.color:
        missing.append("color")
    if product.thickness and not row.thickness:
        missing.append("thickness")
    if product.sizes and not row.size:
        missing.append("size")
    return missing


class RowBook:
    """
    Состояние строк каталога (выбор цвета/толщины/размера и коробок) до
    попадания позиции в корзину. Живёт только в памяти сессии.
    """

    def __init__(self, invalid_ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._rows: Dict[str, RowState] = {}
        self._invalid_until: Dict[str, float] = {}
        self._ttl = settings.invalid_row_ttl if invalid_ttl is None else invalid_ttl
        self._clock = clock

    def get(self, product_id: str) -> RowState:
        r = self._rows.get(str(product_id))
        return replace(r) if r else RowState()

    def set(self, product_id: str, **patch: Any) -> RowState:
        cur = self._rows.get(str(product_id)) or RowState()
        for k in ("size", "thickness", "color"):
            if k in patch and patch[k] is not None:
                patch[k] = safe_str(patch[k]).strip()
        merged = replace(cur, **{k: v for k, v in patch.items() if v is not None})
        merged.boxes = clamp_boxes(merged.boxes)
        self._rows[str(product_id)] = merged
        return replace(merged)

    def reset(self, product_id: str) -> None:
        self._rows.pop(str(product_id), None)
        self._invalid_until.pop(str(product_id), None)

    # ---------------- invalid markers ----------------

    def mark_invalid(self, product_id: str) -> None:
        self._invalid_until[str(product_id)] = self._clock() + self._ttl

    def is_invalid(self, product_id: str) -> bool:
        until = self._invalid_until.get(str(product_id))
        if until is None:
            return False
        if self._clock() >= until:
            del self._invalid_until[str(product_id)]
            return False
        return True

    # ---------------- validation ----------------

    def ensure_selected(self, product: Product, row: RowState) -> Tuple[bool, str]:
        missing = missing_selections(product, row)
        if not missing:
            return True, "ok"
        self.mark_invalid(product.id)
        return False, MSG_NEED_OPTIONS.format(missing=", ".join(_OPTION_NAMES[m] for m in missing))

    def is_ready(self, product: Product) -> bool:
        row = self.get(product.id)
        return row.boxes > 0 and not missing_selections(product, row)

    # ---------------- boxes ----------------

    def step_boxes(self, product: Product, delta: int) -> Tuple[bool, str]:
        row = self.get(product.id)
        row.boxes = clamp_boxes(row.boxes + int(delta))
        ok, err = self.ensure_selected(product, row)
        if not ok:
            return False, err
        self.set(product.id, boxes=row.boxes)
        return True, "ok"

    def set_boxes_from_input(self, product: Product, raw: Any) -> Tuple[bool, str]:
        row = self.get(product.id)
        row.boxes = clamp_boxes(raw)
        ok, err = self.ensure_selected(product, row)
        if not ok:
            return False, err
        self.set(product.id, boxes=row.boxes)
        return True, "ok"

    # ---------------- cart ----------------

    def add_row_to_cart(self, product: Product, cart: CartStore) -> Tuple[bool, str]:
        row = self.get(product.id)
        if row.boxes <= 0:
            self.mark_invalid(product.id)
            return False, MSG_NEED_BOXES

        ok, err = self.ensure_selected(product, row)
        if not ok:
            return False, err

        color = row.color if product.colors else ""
        key = build_variant_key(product.id, color, row.size, row.thickness)

        if cart.find(key) is not None:
            cart.update_cart_item(key, {"qty_boxes": row.boxes})
            logger.info("Row %s: cart line %s updated to %s boxes", product.id, key, row.boxes)
            return True, "Обновлено: позиция в корзине обновлена."

        cart.add_to_cart(
            CartItem(
                id=product.id,
                sku=product.id,
                name=product.name,
                category=product.category,
                sub=product.sub or "",
                color=color,
                size=row.size,
                thickness=row.thickness,
                qty_boxes=row.boxes,
                pcs_per_box=product.pcs_per_box,
                box_kg=product.box_kg,
                box_m3=product.box_m3,
                thumbnail_url=product.image,
            )
        )
        logger.info("Row %s: added to cart as %s (%s boxes)", product.id, key, row.boxes)
        label = variant_label(color, row.thickness, row.size)
        return True, f"Добавлено в корзину: {product.name}" + (f" ({label})" if label else "")
