from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from order_builder.constants import CONTAINERS
from order_builder.services.cart import Totals
from order_builder.utils.validators import require_positive_number, safe_num


@dataclass(frozen=True)
class ContainerSpec:
    code: str
    label: str
    capacity_kg: float
    capacity_m3: float


@dataclass(frozen=True)
class ContainerFit:
    container: ContainerSpec
    total_kg: float
    total_m3: float
    kg_percent: int
    m3_percent: int

    @property
    def overloaded(self) -> bool:
        # проценты обрезаны до 100, поэтому перегруз видно только по сырым цифрам
        return self.total_kg > self.container.capacity_kg or self.total_m3 > self.container.capacity_m3


def pct(part: Any, whole: Any) -> int:
    try:
        part = float(part)
        whole = float(whole)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(part) or not math.isfinite(whole) or whole <= 0:
        return 0
    p = part / whole * 100
    return max(0, min(100, math.floor(p + 0.5)))


def container_fit(totals: Totals, container: ContainerSpec) -> ContainerFit:
    kg = safe_num(totals.total_kg, 0.0)
    m3 = safe_num(totals.total_m3, 0.0)
    return ContainerFit(
        container=container,
        total_kg=kg,
        total_m3=m3,
        kg_percent=pct(kg, container.capacity_kg),
        m3_percent=pct(m3, container.capacity_m3),
    )


class ContainerRegistry:
    def __init__(self, specs: Optional[List[ContainerSpec]] = None) -> None:
        self._specs: Dict[str, ContainerSpec] = {}
        for spec in specs or []:
            self._specs[spec.code] = spec

    @classmethod
    def default(cls) -> "ContainerRegistry":
        return cls(
            [
                ContainerSpec(code=code, label=label, capacity_kg=kg, capacity_m3=m3)
                for code, (label, kg, m3) in CONTAINERS.items()
            ]
        )

    def list(self) -> List[ContainerSpec]:
        return list(self._specs.values())

    def get(self, code: str) -> Optional[ContainerSpec]:
        return self._specs.get(str(code))

    def __contains__(self, code: object) -> bool:
        return str(code) in self._specs

    def add(self, code: str, label: str, capacity_kg: Any, capacity_m3: Any) -> ContainerSpec:
        code = str(code or "").strip()
        if not code:
            raise ValueError("code is required")
        if code in self._specs:
            raise ValueError(f"container {code} already exists")
        spec = ContainerSpec(
            code=code,
            label=(label or "").strip() or f"{code}'",
            capacity_kg=safe_num(capacity_kg),
            capacity_m3=safe_num(capacity_m3),
        )
        require_positive_number(spec.capacity_kg, "capacity_kg")
        require_positive_number(spec.capacity_m3, "capacity_m3")
        self._specs[code] = spec
        return spec

    def update(
        self,
        code: str,
        label: Optional[str] = None,
        capacity_kg: Any = None,
        capacity_m3: Any = None,
    ) -> ContainerSpec:
        cur = self._specs.get(str(code))
        if cur is None:
            raise KeyError(code)
        changes: Dict[str, Any] = {}
        if label is not None and label.strip():
            changes["label"] = label.strip()
        if capacity_kg is not None:
            changes["capacity_kg"] = safe_num(capacity_kg)
            require_positive_number(changes["capacity_kg"], "capacity_kg")
        if capacity_m3 is not None:
            changes["capacity_m3"] = safe_num(capacity_m3)
            require_positive_number(changes["capacity_m3"], "capacity_m3")
        spec = replace(cur, **changes)
        self._specs[cur.code] = spec
        return spec

    def remove(self, code: str) -> ContainerSpec:
        spec = self._specs.pop(str(code), None)
        if spec is None:
            raise KeyError(code)
        return spec
