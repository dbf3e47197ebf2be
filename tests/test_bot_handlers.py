from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.types import BufferedInputFile

from order_builder.bot import handlers
from order_builder.bot.states import OrderPick
from order_builder.config import settings
from order_builder.services.catalog import Catalog
from order_builder.services.containers import ContainerRegistry
from order_builder.services.session import SessionRegistry


@pytest.fixture(autouse=True)
def bot_globals(monkeypatch: pytest.MonkeyPatch, catalog: Catalog) -> SessionRegistry:
    sessions = SessionRegistry()
    monkeypatch.setattr(handlers, "CATALOG", catalog)
    monkeypatch.setattr(handlers, "CONTAINERS", ContainerRegistry.default())
    monkeypatch.setattr(handlers, "SESSIONS", sessions)
    return sessions


@pytest.fixture()
def state() -> FSMContext:
    key = StorageKey(bot_id=1, chat_id=settings.admin_id, user_id=settings.admin_id)
    return FSMContext(storage=MemoryStorage(), key=key)


def make_message(text: str, user_id: int | None = None) -> MagicMock:
    message = MagicMock()
    message.text = text
    message.from_user.id = settings.admin_id if user_id is None else user_id
    message.answer = AsyncMock()
    message.answer_document = AsyncMock()
    return message


def last_text(message: MagicMock) -> str:
    return message.answer.call_args[0][0]


async def _order_panel(state: FSMContext, boxes: str = "3") -> None:
    await handlers.cmd_pick(make_message("/pick P"), state)
    await handlers.pick_color(make_message("white"), state)
    await handlers.pick_thickness(make_message("2mm"), state)
    await handlers.pick_size(make_message("60x60"), state)
    await handlers.pick_boxes(make_message(boxes), state)


@pytest.mark.asyncio
async def test_non_admin_is_ignored() -> None:
    message = make_message("/cart", user_id=settings.admin_id + 1)
    await handlers.cmd_cart(message)
    message.answer.assert_not_called()


@pytest.mark.asyncio
async def test_empty_cart() -> None:
    message = make_message("/cart")
    await handlers.cmd_cart(message)
    assert "Корзина пуста" in last_text(message)


@pytest.mark.asyncio
async def test_catalog_lists_products() -> None:
    message = make_message("/catalog floor")
    await handlers.cmd_catalog(message)
    text = last_text(message)
    assert "<code>F</code>" in text
    assert "Panel P" not in text


@pytest.mark.asyncio
async def test_pick_unknown_product(state: FSMContext) -> None:
    message = make_message("/pick NOPE")
    await handlers.cmd_pick(message, state)
    assert "не найден" in last_text(message)
    assert await state.get_state() is None


@pytest.mark.asyncio
async def test_pick_asks_missing_options_in_order(state: FSMContext) -> None:
    await handlers.cmd_pick(make_message("/pick P"), state)
    assert await state.get_state() == OrderPick.waiting_color.state

    await handlers.pick_color(make_message("White"), state)
    assert await state.get_state() == OrderPick.waiting_thickness.state

    await handlers.pick_thickness(make_message("2mm"), state)
    assert await state.get_state() == OrderPick.waiting_size.state

    message = make_message("60x60")
    await handlers.pick_size(message, state)
    assert await state.get_state() == OrderPick.waiting_boxes.state
    assert "КОРОБОК" in last_text(message)


@pytest.mark.asyncio
async def test_pick_rejects_unknown_option(state: FSMContext) -> None:
    await handlers.cmd_pick(make_message("/pick P"), state)
    message = make_message("Purple")
    await handlers.pick_color(message, state)

    assert "White, Grey" in last_text(message)
    assert await state.get_state() == OrderPick.waiting_color.state


@pytest.mark.asyncio
async def test_pick_product_without_options_goes_to_boxes(state: FSMContext) -> None:
    await handlers.cmd_pick(make_message("/pick G"), state)
    assert await state.get_state() == OrderPick.waiting_boxes.state


@pytest.mark.asyncio
async def test_full_pick_adds_to_cart(state: FSMContext, bot_globals: SessionRegistry) -> None:
    await _order_panel(state)

    assert await state.get_state() is None
    cart = bot_globals.get(str(settings.admin_id)).cart
    [item] = cart.get_cart()
    assert item.variant_key == "P|white|60x60|2mm"
    assert item.color == "White"
    assert item.qty_boxes == 3


@pytest.mark.asyncio
async def test_repeat_pick_replaces_quantity(state: FSMContext, bot_globals: SessionRegistry) -> None:
    await _order_panel(state, boxes="3")
    await _order_panel(state, boxes="7")

    cart = bot_globals.get(str(settings.admin_id)).cart
    assert [i.qty_boxes for i in cart.get_cart()] == [7]


@pytest.mark.asyncio
async def test_boxes_must_be_positive(state: FSMContext) -> None:
    await handlers.cmd_pick(make_message("/pick G"), state)
    message = make_message("0")
    await handlers.pick_boxes(message, state)

    assert "> 0" in last_text(message)
    assert await state.get_state() == OrderPick.waiting_boxes.state


@pytest.mark.asyncio
async def test_cart_shows_totals_and_container(state: FSMContext) -> None:
    await _order_panel(state)
    message = make_message("/cart")
    await handlers.cmd_cart(message)

    text = last_text(message)
    assert "Panel P (White, 2mm, 60x60)" in text
    assert "3 кор | 30 шт | 15 кг | 0.3 м³" in text
    assert "KG 0%" in text


@pytest.mark.asyncio
async def test_cart_qty_zero_removes(state: FSMContext, bot_globals: SessionRegistry) -> None:
    await _order_panel(state)
    message = make_message("/cart_qty 1 0")
    await handlers.cmd_cart_qty(message)

    assert "Удалено" in last_text(message)
    assert len(bot_globals.get(str(settings.admin_id)).cart) == 0


@pytest.mark.asyncio
async def test_cart_remove_bad_number(state: FSMContext) -> None:
    await _order_panel(state)
    message = make_message("/cart_remove 5")
    await handlers.cmd_cart_remove(message)
    assert "Нет такой позиции" in last_text(message)


@pytest.mark.asyncio
async def test_container_switch(bot_globals: SessionRegistry) -> None:
    message = make_message("/container 20")
    await handlers.cmd_container(message)

    assert "20'" in last_text(message)
    assert bot_globals.get(str(settings.admin_id)).container_code == "20"


@pytest.mark.asyncio
async def test_container_unknown() -> None:
    message = make_message("/container 99")
    await handlers.cmd_container(message)
    assert "Неизвестный контейнер" in last_text(message)


@pytest.mark.asyncio
async def test_csv_empty_cart() -> None:
    message = make_message("/csv")
    await handlers.cmd_csv(message)
    message.answer_document.assert_not_called()
    assert "Корзина пуста" in last_text(message)


@pytest.mark.asyncio
async def test_csv_sends_document(state: FSMContext) -> None:
    await _order_panel(state)
    message = make_message("/csv")
    await handlers.cmd_csv(message)

    doc = message.answer_document.call_args[0][0]
    assert isinstance(doc, BufferedInputFile)
    assert doc.filename == "order.csv"
    assert doc.data.decode("utf-8").startswith("Category,Name")


@pytest.mark.asyncio
async def test_pdf_sends_document(state: FSMContext) -> None:
    await _order_panel(state)
    message = make_message("/pdf")
    await handlers.cmd_pdf(message)

    doc = message.answer_document.call_args[0][0]
    assert doc.filename == "order.pdf"
    assert doc.data.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_second_pick_of_same_product_starts_from_color(state: FSMContext, bot_globals: SessionRegistry) -> None:
    await _order_panel(state, boxes="3")

    await handlers.cmd_pick(make_message("/pick P"), state)
    assert await state.get_state() == OrderPick.waiting_color.state

    await handlers.pick_color(make_message("Grey"), state)
    await handlers.pick_thickness(make_message("2mm"), state)
    await handlers.pick_size(make_message("60x60"), state)
    await handlers.pick_boxes(make_message("2"), state)

    cart = bot_globals.get(str(settings.admin_id)).cart
    assert [(i.color, i.qty_boxes) for i in cart.get_cart()] == [("White", 3), ("Grey", 2)]


def _handler_for(callback):
    return next(h for h in handlers.router.message.handlers if h.callback is callback)


def test_commands_registered_before_pick_steps() -> None:
    callbacks = [h.callback for h in handlers.router.message.handlers]
    last_command = max(callbacks.index(c) for c in (handlers.cmd_cart, handlers.cmd_container, handlers.cmd_csv, handlers.cmd_pdf))
    first_step = min(callbacks.index(c) for c in (handlers.pick_color, handlers.pick_thickness, handlers.pick_size, handlers.pick_boxes))
    assert last_command < first_step


@pytest.mark.asyncio
async def test_pick_step_ignores_commands() -> None:
    handler = _handler_for(handlers.pick_boxes)
    raw_state = OrderPick.waiting_boxes.state

    ok, _ = await handler.check(make_message("/cart"), raw_state=raw_state)
    assert not ok
    ok, _ = await handler.check(make_message("3"), raw_state=raw_state)
    assert ok
