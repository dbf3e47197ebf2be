from __future__ import annotations

import math
from typing import Any


def require_positive_number(v: float, name: str = "value") -> None:
    if v <= 0:
        raise ValueError(f"{name} must be > 0")


def safe_num(v: Any, fallback: float = 0.0) -> float:
    """Число, если оно конечное, иначе fallback (None, '', 'abc', nan, inf)."""
    if v is None or isinstance(v, (list, dict, tuple, set)):
        return fallback
    try:
        n = float(v)
    except (TypeError, ValueError):
        return fallback
    return n if math.isfinite(n) else fallback


def safe_int(v: Any, fallback: int = 0) -> int:
    n = safe_num(v, fallback=math.nan)
    if math.isnan(n):
        return fallback
    return int(n)


def safe_str(v: Any, fallback: str = "") -> str:
    if v is None:
        return fallback
    return str(v)


def clamp_boxes(v: Any) -> int:
    # "3.9" -> 3, "-2" -> 0, "abc" -> 0
    return max(0, math.floor(safe_num(v, 0.0)))
