from __future__ import annotations

import itertools
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from order_builder.utils.validators import safe_int, safe_num, safe_str

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "|"

CartListener = Callable[[List["CartItem"]], None]


def build_variant_key(
    product_id: Any,
    color: Optional[str] = None,
    size: Optional[str] = None,
    thickness: Optional[str] = None,
) -> str:
    parts = [safe_str(product_id)]
    for v in (color, size, thickness):
        parts.append(safe_str(v).strip().lower())
    return KEY_SEPARATOR.join(parts)


@dataclass
class CartItem:
    id: str
    sku: str
    name: str
    category: str = ""
    sub: str = ""
    color: str = ""
    size: str = ""
    thickness: str = ""
    qty_boxes: int = 0
    pcs_per_box: int = 0
    box_kg: float = 0.0
    box_m3: float = 0.0
    thumbnail_url: str = ""
    added_at: datetime = field(default_factory=datetime.now)

    @property
    def variant_key(self) -> str:
        return variant_key_for(self)

    def sanitize(self) -> "CartItem":
        self.qty_boxes = safe_int(self.qty_boxes, 0)
        self.pcs_per_box = safe_int(self.pcs_per_box, 0)
        self.box_kg = safe_num(self.box_kg, 0.0)
        self.box_m3 = safe_num(self.box_m3, 0.0)
        return self

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Optional["CartItem"]:
        """
        Принимает как camelCase (как приходит из браузера), так и snake_case.
        Без id или name позиция не считается валидной.
        """
        if not raw or not raw.get("id") or not raw.get("name"):
            return None

        def pick(*keys: str) -> Any:
            for k in keys:
                if raw.get(k) not in (None, ""):
                    return raw[k]
            return None

        added_at = pick("added_at", "addedAt")
        if isinstance(added_at, str):
            try:
                added_at = datetime.fromisoformat(added_at)
            except ValueError:
                added_at = None
        elif isinstance(added_at, (int, float)):
            # миллисекунды, как Date.now()
            added_at = datetime.fromtimestamp(added_at / 1000)
        if not isinstance(added_at, datetime):
            added_at = datetime.now()

        item = cls(
            id=str(raw["id"]),
            sku=safe_str(pick("sku")),
            name=str(raw["name"]),
            category=safe_str(pick("category")),
            sub=safe_str(pick("sub")),
            color=safe_str(pick("color")),
            size=safe_str(pick("size")),
            thickness=safe_str(pick("thickness")),
            qty_boxes=pick("qty_boxes", "qtyBoxes"),
            pcs_per_box=pick("pcs_per_box", "pcsPerBox"),
            box_kg=pick("box_kg", "boxKg"),
            box_m3=pick("box_m3", "boxM3"),
            thumbnail_url=safe_str(pick("thumbnail_url", "thumbnailUrl")),
            added_at=added_at,
        )
        return item.sanitize()

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["added_at"] = self.added_at.isoformat()
        d["variant_key"] = self.variant_key
        return d


def variant_key_for(item: CartItem) -> str:
    return build_variant_key(item.id, item.color, item.size, item.thickness)


@dataclass(frozen=True)
class Totals:
    total_boxes: int = 0
    total_pcs: int = 0
    total_kg: float = 0.0
    total_m3: float = 0.0


def cart_totals(items: Iterable[CartItem]) -> Totals:
    total_boxes = 0
    total_pcs = 0
    total_kg = 0.0
    total_m3 = 0.0
    for it in items or []:
        qty = safe_int(it.qty_boxes, 0)
        total_boxes += qty
        total_pcs += qty * safe_int(it.pcs_per_box, 0)
        total_kg += qty * safe_num(it.box_kg, 0.0)
        total_m3 += qty * safe_num(it.box_m3, 0.0)
    return Totals(
        total_boxes=total_boxes,
        total_pcs=total_pcs,
        total_kg=total_kg,
        total_m3=total_m3,
    )


_PATCHABLE = {f.name for f in fields(CartItem)}
_VARIANT_FIELDS = ("color", "size", "thickness")


class CartStore:
    """
    Корзина одной сессии заказа.

    Все изменения синхронные; после каждого изменения каждый подписчик
    получает полный текущий список позиций (копию), а не diff.
    """

    def __init__(self, items: Optional[Iterable[CartItem]] = None) -> None:
        self._items: List[CartItem] = []
        self._listeners: Dict[int, CartListener] = {}
        self._ids = itertools.count(1)
        if items:
            self._items = self._dedupe(items)

    def __len__(self) -> int:
        return len(self._items)

    def get_cart(self) -> List[CartItem]:
        return [replace(it) for it in self._items]

    @property
    def items(self) -> List[CartItem]:
        return self.get_cart()

    def find(self, variant_key: str) -> Optional[CartItem]:
        idx = self._index(variant_key)
        return replace(self._items[idx]) if idx >= 0 else None

    def totals(self) -> Totals:
        return cart_totals(self._items)

    def _index(self, variant_key: str) -> int:
        for i, it in enumerate(self._items):
            if it.variant_key == variant_key:
                return i
        return -1

    @staticmethod
    def _dedupe(items: Iterable[CartItem]) -> List[CartItem]:
        out: Dict[str, CartItem] = {}
        for it in items:
            if it is None:
                continue
            it = replace(it).sanitize()
            out[it.variant_key] = it  # последняя побеждает
        return list(out.values())

    # ---------------- mutations ----------------

    def add_to_cart(self, item: CartItem) -> List[CartItem]:
        key = item.variant_key
        idx = self._index(key)
        qty = safe_int(item.qty_boxes, 0)

        if idx >= 0:
            # замена количества, не сложение; метрики коробки остаются прежними
            self._items[idx].qty_boxes = qty
            logger.debug("cart: %s qty set to %s", key, qty)
        else:
            new_item = replace(item).sanitize()
            if new_item.added_at is None:
                new_item.added_at = datetime.now()
            self._items.append(new_item)
            logger.debug("cart: %s added, qty=%s", key, qty)

        self._notify()
        return self.get_cart()

    def update_cart_item(self, variant_key: str, patch: Mapping[str, Any]) -> List[CartItem]:
        idx = self._index(variant_key)
        if idx < 0:
            return self.get_cart()

        changes = {k: v for k, v in dict(patch).items() if k in _PATCHABLE}
        for k in _VARIANT_FIELDS:
            if k in changes:
                changes[k] = safe_str(changes[k])
        nxt = replace(self._items[idx], **changes).sanitize()
        del self._items[idx]

        if nxt.qty_boxes > 0:
            merge_idx = self._index(nxt.variant_key)
            if merge_idx >= 0:
                # вариант поменяли на уже существующий: объединяем строки
                self._items[merge_idx].qty_boxes += nxt.qty_boxes
                logger.debug("cart: %s merged into %s", variant_key, nxt.variant_key)
            else:
                self._items.insert(idx, nxt)
        else:
            logger.debug("cart: %s dropped (qty <= 0)", variant_key)

        self._notify()
        return self.get_cart()

    def remove_cart_item(self, variant_key: str) -> List[CartItem]:
        before = len(self._items)
        self._items = [it for it in self._items if it.variant_key != variant_key]
        if len(self._items) != before:
            logger.debug("cart: %s removed", variant_key)
        self._notify()
        return self.get_cart()

    def set_cart(self, items: Iterable[CartItem]) -> List[CartItem]:
        self._items = self._dedupe(items)
        self._notify()
        return self.get_cart()

    def clear_cart(self) -> List[CartItem]:
        self._items = []
        self._notify()
        return []

    # ---------------- subscriptions ----------------

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        token = next(self._ids)
        self._listeners[token] = listener
        listener(self.get_cart())

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    subscribe_cart = subscribe

    def _notify(self) -> None:
        for listener in list(self._listeners.values()):
            listener(self.get_cart())
