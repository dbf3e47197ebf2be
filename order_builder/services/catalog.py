from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import requests

from order_builder.config import settings
from order_builder.constants import (
    CATEGORIES,
    CATEGORY_ALIASES,
    DEFAULT_CATEGORY,
    DEFAULT_PRODUCT_NAME,
    DEFAULT_SUB,
    DEFAULT_THUMBNAIL,
    SUB_ALL,
    TAB_ALL,
)
from order_builder.utils.validators import safe_int, safe_num, safe_str

logger = logging.getLogger(__name__)


@dataclass
class Product:
    id: str
    category: str
    sub: str
    name: str
    sizes: List[str] = field(default_factory=list)
    thickness: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    pcs_per_box: int = 0
    box_kg: float = 0.0
    box_m3: float = 0.0
    image: str = DEFAULT_THUMBNAIL


@dataclass(frozen=True)
class CategoryRef:
    id: str
    name: str
    slug: str


def normalize_category(value: Any) -> str:
    c = re.sub(r"[\s_-]+", " ", safe_str(value).lower()).strip()
    return CATEGORY_ALIASES.get(c, DEFAULT_CATEGORY)


def normalize_sub(value: Any) -> str:
    return safe_str(value).strip() or DEFAULT_SUB


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(x) for x in value if x is not None]


def extract_colors(raw: Dict[str, Any]) -> List[str]:
    variants = raw.get("colorVariants")
    if isinstance(variants, list):
        names = [(c or {}).get("name") if isinstance(c, dict) else None for c in variants]
        return [str(n) for n in names if n]

    colors = raw.get("colors")
    if isinstance(colors, list):
        out = []
        for c in colors:
            if isinstance(c, dict):
                name = c.get("nameEn") or c.get("nameRU") or c.get("nameRu") or c.get("name")
            else:
                name = c
            if name:
                out.append(str(name))
        return out

    return []


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = raw.get(k)
        if v not in (None, ""):
            return v
    return None


def product_from_api(raw: Dict[str, Any]) -> Product:
    photos = raw.get("photos") if isinstance(raw.get("photos"), dict) else {}
    return Product(
        id=safe_str(_first(raw, "id", "sku", "slug", "name")),
        category=normalize_category(raw.get("category")),
        sub=normalize_sub(_first(raw, "sub", "subcategory", "subCategory", "sub_cat")),
        name=safe_str(raw.get("name")) or DEFAULT_PRODUCT_NAME,
        sizes=_str_list(raw.get("sizes")),
        thickness=_str_list(raw.get("thickness")),
        colors=extract_colors(raw),
        pcs_per_box=safe_int(raw.get("pcsPerBox", raw.get("pcs_per_box")), 0),
        box_kg=safe_num(raw.get("boxKg", raw.get("box_kg")), 0.0),
        box_m3=safe_num(raw.get("boxM3", raw.get("box_m3")), 0.0),
        image=safe_str(raw.get("thumbnailUrl") or photos.get("main")) or DEFAULT_THUMBNAIL,
    )


def _payload_list(data: Any) -> List[Any]:
    if isinstance(data, dict) and isinstance(data.get("items"), list):
        return data["items"]
    if isinstance(data, list):
        return data
    return []


def products_from_payload(data: Any) -> List[Product]:
    return [product_from_api(p) for p in _payload_list(data) if isinstance(p, dict)]


def _get_json(url: str, params: Optional[Dict[str, Any]] = None, session: Any = None) -> Any:
    http = session or requests
    resp = http.get(url, params=params, timeout=settings.catalog_timeout)
    resp.raise_for_status()
    return resp.json()


def fetch_catalog(base_url: Optional[str] = None, session: Any = None) -> List[Product]:
    url = f"{(base_url or settings.catalog_api_url).rstrip('/')}/products"
    try:
        data = _get_json(url, params={"limit": 1000}, session=session)
    except (requests.RequestException, ValueError):
        logger.exception("Catalog load failed: %s", url)
        return []
    products = products_from_payload(data)
    logger.info("Catalog loaded: %s products", len(products))
    return products


def fetch_categories(base_url: Optional[str] = None, session: Any = None) -> List[CategoryRef]:
    url = f"{(base_url or settings.catalog_api_url).rstrip('/')}/categories"
    try:
        data = _get_json(url, session=session)
    except (requests.RequestException, ValueError):
        logger.exception("Categories load failed: %s", url)
        return []
    out = []
    for c in _payload_list(data):
        if not isinstance(c, dict) or not c.get("id"):
            continue
        out.append(
            CategoryRef(
                id=str(c["id"]),
                name=safe_str(c.get("name")),
                slug=safe_str(c.get("slug")),
            )
        )
    return out


class Catalog:
    def __init__(self, products: Optional[Iterable[Product]] = None) -> None:
        self._products: Dict[str, Product] = {}
        self.replace(products or [])

    def replace(self, products: Iterable[Product]) -> None:
        self._products = {p.id: p for p in products}

    def __len__(self) -> int:
        return len(self._products)

    def __iter__(self):
        return iter(self._products.values())

    def get(self, product_id: str) -> Optional[Product]:
        return self._products.get(str(product_id))

    def filter(self, tab: str = TAB_ALL, sub: str = SUB_ALL) -> List[Product]:
        if tab == TAB_ALL or tab not in CATEGORIES:
            return list(self._products.values())
        base = [p for p in self._products.values() if p.category == tab]
        if sub == SUB_ALL:
            return base
        return [p for p in base if p.sub == sub]

    def subcategories(self, tab: str) -> List[str]:
        if tab == TAB_ALL:
            return []
        subs = sorted({p.sub for p in self._products.values() if p.category == tab and p.sub})
        return [SUB_ALL] + subs
