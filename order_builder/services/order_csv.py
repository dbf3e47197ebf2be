from __future__ import annotations

import logging
import os
from typing import Iterable, Optional

from order_builder.config import settings
from order_builder.constants import CSV_FILENAME
from order_builder.services.cart import CartItem
from order_builder.services.order_table import order_table

logger = logging.getLogger(__name__)


def build_order_csv(items: Iterable[CartItem]) -> str:
    # без экранирования: запятая в названии сломает колонку
    return "\n".join(",".join(str(v) for v in row) for row in order_table(items))


def write_order_csv(items: Iterable[CartItem], path: Optional[str] = None) -> str:
    if path is None:
        os.makedirs(settings.export_dir, exist_ok=True)
        path = os.path.join(settings.export_dir, CSV_FILENAME)

    text = build_order_csv(items)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)

    logger.info("Order CSV written: %s", path)
    return path
