from __future__ import annotations

from typing import Any

from order_builder.utils.validators import safe_num


def fixed(v: Any, digits: int) -> str:
    return f"{safe_num(v):.{digits}f}"


def kg_total(v: Any) -> str:
    return fixed(v, 0)


def m3_total(v: Any) -> str:
    return fixed(v, 1)


def variant_label(color: str = "", thickness: str = "", size: str = "") -> str:
    return ", ".join(x for x in (color, thickness, size) if x)
