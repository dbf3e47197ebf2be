from aiogram.fsm.state import State, StatesGroup

from order_builder.services.catalog import Catalog
from order_builder.services.containers import ContainerRegistry
from order_builder.services.session import SessionRegistry


class OrderPick(StatesGroup):
    waiting_color = State()
    waiting_thickness = State()
    waiting_size = State()
    waiting_boxes = State()


CATALOG = Catalog()
CONTAINERS = ContainerRegistry.default()
SESSIONS = SessionRegistry()  # user_id -> OrderSession
