from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from order_builder.config import settings
from order_builder.services.cart import CartStore
from order_builder.services.containers import ContainerFit, ContainerRegistry, ContainerSpec, container_fit
from order_builder.services.rows import RowBook

logger = logging.getLogger(__name__)


@dataclass
class OrderSession:
    cart: CartStore = field(default_factory=CartStore)
    rows: RowBook = field(default_factory=RowBook)
    container_code: str = settings.default_container

    def container(self, registry: ContainerRegistry) -> Optional[ContainerSpec]:
        spec = registry.get(self.container_code)
        if spec is None:
            # выбранный контейнер удалили из реестра
            specs = registry.list()
            spec = specs[0] if specs else None
        return spec

    def fit(self, registry: ContainerRegistry) -> Optional[ContainerFit]:
        spec = self.container(registry)
        if spec is None:
            return None
        return container_fit(self.cart.totals(), spec)


class SessionRegistry:
    """
    Сессии заказа по id (cookie веб-клиента или Telegram user id).
    Сессия, к которой не обращались дольше idle_ttl секунд, удаляется
    при следующем обращении к реестру.
    """

    def __init__(self, idle_ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._sessions: Dict[str, OrderSession] = {}
        self._last_seen: Dict[str, float] = {}
        self._ttl = settings.session_idle_ttl if idle_ttl is None else idle_ttl
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return str(session_id) in self._sessions

    def peek(self, session_id: str) -> Optional[OrderSession]:
        """Существующая сессия или None; новую не создаёт."""
        self.sweep()
        sid = str(session_id)
        s = self._sessions.get(sid)
        if s is not None:
            self._last_seen[sid] = self._clock()
        return s

    def get(self, session_id: str) -> OrderSession:
        s = self.peek(session_id)
        if s is None:
            sid = str(session_id)
            s = OrderSession()
            self._sessions[sid] = s
            self._last_seen[sid] = self._clock()
            logger.debug("Order session started: %s", sid)
        return s

    def drop(self, session_id: str) -> None:
        sid = str(session_id)
        self._last_seen.pop(sid, None)
        if self._sessions.pop(sid, None) is not None:
            logger.debug("Order session closed: %s", sid)

    def sweep(self) -> int:
        if self._ttl <= 0:
            return 0
        cutoff = self._clock() - self._ttl
        stale = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
        for sid in stale:
            self.drop(sid)
        if stale:
            logger.info("Order sessions expired: %s", len(stale))
        return len(stale)
