import asyncio
import logging
from typing import List, Optional

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import BufferedInputFile, Message, ReplyKeyboardRemove

from order_builder.bot.keyboards import main_kb, options_kb
from order_builder.bot.states import CATALOG, CONTAINERS, SESSIONS, OrderPick
from order_builder.config import settings
from order_builder.constants import CSV_FILENAME, PDF_FILENAME, TAB_ALL
from order_builder.services.cart import CartItem
from order_builder.services.catalog import Product, fetch_catalog, normalize_category
from order_builder.services.order_csv import build_order_csv
from order_builder.services.order_pdf import generate_order_pdf
from order_builder.services.rows import missing_selections
from order_builder.services.session import OrderSession
from order_builder.utils.formatters import fixed, kg_total, m3_total, variant_label
from order_builder.utils.validators import clamp_boxes

logger = logging.getLogger(__name__)

router = Router()

CATALOG_PAGE = 50

_STEP_STATE = {
    "color": OrderPick.waiting_color,
    "thickness": OrderPick.waiting_thickness,
    "size": OrderPick.waiting_size,
}
_STEP_PROMPT = {
    "color": "Выберите ЦВЕТ",
    "thickness": "Выберите ТОЛЩИНУ",
    "size": "Выберите РАЗМЕР",
}


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) == int(settings.admin_id)
    except Exception:
        return False


def _session(message: Message) -> OrderSession:
    return SESSIONS.get(str(message.from_user.id))


def _options(product: Product, field: str) -> List[str]:
    return {"color": product.colors, "thickness": product.thickness, "size": product.sizes}[field]


def _match_option(values: List[str], text: str) -> Optional[str]:
    t = text.strip().lower()
    for v in values:
        if v.lower() == t:
            return v
    return None


def _item_line(n: int, it: CartItem) -> str:
    label = variant_label(it.color, it.thickness, it.size)
    return (
        f"{n}. {it.name}" + (f" ({label})" if label else "") + "\n"
        f"   {it.qty_boxes} кор × {it.pcs_per_box} = {it.qty_boxes * it.pcs_per_box} шт, "
        f"{fixed(it.qty_boxes * it.box_kg, 1)} кг, {fixed(it.qty_boxes * it.box_m3, 2)} м³"
    )


def _cart_text(session: OrderSession) -> str:
    items = session.cart.get_cart()
    if not items:
        return "🧺 Корзина пуста. Добавьте товар: /catalog, затем /pick ID"

    totals = session.cart.totals()
    lines = ["<b>Корзина:</b>"]
    for n, it in enumerate(items, start=1):
        lines.append(_item_line(n, it))
    lines.append("")
    lines.append(
        f"<b>Итого:</b> {totals.total_boxes} кор | {totals.total_pcs} шт | "
        f"{kg_total(totals.total_kg)} кг | {m3_total(totals.total_m3)} м³"
    )

    fit = session.fit(CONTAINERS)
    if fit is not None:
        spec = fit.container
        lines.append(
            f"<b>Контейнер {spec.label}:</b> KG {fit.kg_percent}% "
            f"({kg_total(fit.total_kg)}/{kg_total(spec.capacity_kg)}), "
            f"m³ {fit.m3_percent}% ({m3_total(fit.total_m3)}/{m3_total(spec.capacity_m3)})"
        )
        if fit.overloaded:
            lines.append("⚠️ Контейнер перегружен")
    return "\n".join(lines)


def _item_by_number(session: OrderSession, raw: str) -> Optional[CartItem]:
    try:
        n = int(raw)
    except ValueError:
        return None
    items = session.cart.get_cart()
    if n < 1 or n > len(items):
        return None
    return items[n - 1]


async def _ensure_catalog() -> None:
    if not len(CATALOG):
        CATALOG.replace(await asyncio.to_thread(fetch_catalog))


async def _ask_next(message: Message, state: FSMContext, session: OrderSession, product: Product) -> None:
    row = session.rows.get(product.id)
    missing = missing_selections(product, row)
    if missing:
        step = missing[0]
        await state.set_state(_STEP_STATE[step])
        await message.answer(
            f"{product.name}: {_STEP_PROMPT[step]}\nОтмена: /cancel",
            reply_markup=options_kb(_options(product, step)),
        )
        return

    await state.set_state(OrderPick.waiting_boxes)
    hint = f" (сейчас {row.boxes})" if row.boxes else ""
    await message.answer(
        f"{product.name}: введите количество КОРОБОК{hint}\n"
        f"В коробке {product.pcs_per_box} шт, {fixed(product.box_kg, 1)} кг, {fixed(product.box_m3, 2)} м³\n"
        "Отмена: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    await _ensure_catalog()
    await message.answer(f"✅ Create'N'Order запущен. Товаров в каталоге: {len(CATALOG)}", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Отменено. Можно вводить команды заново.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    codes = "|".join(c.code for c in CONTAINERS.list())
    text = (
        "<b>Create'N'Order — команды</b>\n\n"
        "<b>Основное</b>\n"
        "/start — запуск\n"
        "/cancel — отмена ввода\n"
        "/help — помощь\n"
        "/ping — проверка\n"
        "/reload — перечитать каталог\n\n"
        "<b>Каталог</b>\n"
        "/catalog — все товары\n"
        "/catalog КАТЕГОРИЯ — Wall Panel, Flooring, Adhesive, Accessories\n"
        "/pick ID — выбрать цвет/толщину/размер и коробки\n\n"
        "<b>Корзина</b>\n"
        "/cart — показать корзину и заполнение контейнера\n"
        "/cart_qty N QTY — изменить количество коробок (0 — удалить)\n"
        "/cart_remove N — удалить позицию\n"
        "/cart_clear — очистить корзину\n"
        f"/container {codes} — выбрать контейнер\n\n"
        "<b>Экспорт</b>\n"
        "/csv — order.csv\n"
        "/pdf — order.pdf\n"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


@router.message(Command("reload"))
async def cmd_reload(message: Message):
    if not _is_admin(message):
        return
    products = await asyncio.to_thread(fetch_catalog)
    if not products:
        await message.answer("❌ Ошибка загрузки каталога. Попробуйте позже.")
        return
    CATALOG.replace(products)
    await message.answer(f"✅ Каталог обновлён: {len(products)} товаров")


@router.message(Command("catalog"))
async def cmd_catalog(message: Message):
    if not _is_admin(message):
        return

    await _ensure_catalog()
    parts = message.text.split(maxsplit=1)
    tab = normalize_category(parts[1]) if len(parts) > 1 else TAB_ALL
    products = CATALOG.filter(tab)
    if not products:
        await message.answer("Нет товаров")
        return

    lines = [f"<b>Каталог ({tab}):</b>"]
    for p in products[:CATALOG_PAGE]:
        lines.append(
            f"• <code>{p.id}</code> — {p.name} ({p.sub}) | {p.pcs_per_box} шт/кор, "
            f"{fixed(p.box_kg, 1)} кг, {fixed(p.box_m3, 2)} м³"
        )
    if len(products) > CATALOG_PAGE:
        lines.append(f"… и ещё {len(products) - CATALOG_PAGE}")
    lines.append("\nВыбрать: /pick ID")
    await message.answer("\n".join(lines))


@router.message(Command("pick"))
async def cmd_pick(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    parts = message.text.split(maxsplit=1)
    if len(parts) < 2 or not parts[1].strip():
        await message.answer("Формат: /pick ID (список: /catalog)")
        return

    await _ensure_catalog()
    product = CATALOG.get(parts[1].strip())
    if product is None:
        await message.answer("❌ Товар не найден")
        return

    session = _session(message)
    # каждый /pick начинает выбор варианта заново
    session.rows.reset(product.id)
    await state.clear()
    await state.update_data(product_id=product.id)
    await _ask_next(message, state, session, product)


async def _pick_option(message: Message, state: FSMContext, field: str) -> None:
    if not _is_admin(message):
        return

    data = await state.get_data()
    product = CATALOG.get(str(data.get("product_id", "")))
    if product is None:
        await state.clear()
        await message.answer("❌ Товар не найден. Начните заново: /pick ID", reply_markup=ReplyKeyboardRemove())
        return

    values = _options(product, field)
    value = _match_option(values, message.text or "")
    if value is None:
        await message.answer(f"Выберите вариант из списка: {', '.join(values)}\nОтмена: /cancel")
        return

    session = _session(message)
    session.rows.set(product.id, **{field: value})
    await _ask_next(message, state, session, product)


@router.message(Command("cart"))
async def cmd_cart(message: Message):
    if not _is_admin(message):
        return
    await message.answer(_cart_text(_session(message)))


@router.message(Command("cart_qty"))
async def cmd_cart_qty(message: Message):
    if not _is_admin(message):
        return

    parts = message.text.split()
    if len(parts) != 3:
        await message.answer("Формат: /cart_qty N QTY")
        return

    session = _session(message)
    item = _item_by_number(session, parts[1])
    if item is None:
        await message.answer("❌ Нет такой позиции. Список: /cart")
        return

    qty = clamp_boxes(parts[2].replace(",", "."))
    session.cart.update_cart_item(item.variant_key, {"qty_boxes": qty})
    if qty == 0:
        await message.answer(f"✅ Удалено из корзины: {item.name}")
        return
    await message.answer(f"✅ {item.name}: {qty} кор")


@router.message(Command("cart_remove"))
async def cmd_cart_remove(message: Message):
    if not _is_admin(message):
        return

    parts = message.text.split()
    if len(parts) != 2:
        await message.answer("Формат: /cart_remove N")
        return

    session = _session(message)
    item = _item_by_number(session, parts[1])
    if item is None:
        await message.answer("❌ Нет такой позиции. Список: /cart")
        return

    session.cart.remove_cart_item(item.variant_key)
    await message.answer(f"✅ Удалено из корзины: {item.name}")


@router.message(Command("cart_clear"))
async def cmd_cart_clear(message: Message):
    if not _is_admin(message):
        return
    _session(message).cart.clear_cart()
    await message.answer("🧺 Корзина очищена")


@router.message(Command("container"))
async def cmd_container(message: Message):
    if not _is_admin(message):
        return

    session = _session(message)
    parts = message.text.split()
    if len(parts) != 2:
        spec = session.container(CONTAINERS)
        current = spec.label if spec else "—"
        codes = ", ".join(c.code for c in CONTAINERS.list())
        await message.answer(f"Контейнер: <b>{current}</b>\nФормат: /container CODE ({codes})")
        return

    code = parts[1].strip().rstrip("'")
    spec = CONTAINERS.get(code)
    if spec is None:
        await message.answer(f"❌ Неизвестный контейнер: {code}")
        return

    session.container_code = spec.code
    await message.answer(
        f"✅ Контейнер: <b>{spec.label}</b> ({kg_total(spec.capacity_kg)} кг, {m3_total(spec.capacity_m3)} м³)"
    )


@router.message(Command("csv"))
async def cmd_csv(message: Message):
    if not _is_admin(message):
        return

    items = _session(message).cart.get_cart()
    if not items:
        await message.answer("🧺 Корзина пуста")
        return
    data = build_order_csv(items).encode("utf-8")
    await message.answer_document(BufferedInputFile(data, filename=CSV_FILENAME))


@router.message(Command("pdf"))
async def cmd_pdf(message: Message):
    if not _is_admin(message):
        return

    session = _session(message)
    items = session.cart.get_cart()
    if not items:
        await message.answer("🧺 Корзина пуста")
        return
    try:
        data = generate_order_pdf(items, fit=session.fit(CONTAINERS))
        await message.answer_document(BufferedInputFile(data, filename=PDF_FILENAME))
    except Exception as e:
        logger.exception("PDF export failed")
        await message.answer(f"❌ PDF не сгенерировался: {e}")


# ---------------- шаги /pick ----------------
# после команд: текст "/..." посреди выбора уходит в команду

@router.message(OrderPick.waiting_color, F.text, ~F.text.startswith("/"))
async def pick_color(message: Message, state: FSMContext):
    await _pick_option(message, state, "color")


@router.message(OrderPick.waiting_thickness, F.text, ~F.text.startswith("/"))
async def pick_thickness(message: Message, state: FSMContext):
    await _pick_option(message, state, "thickness")


@router.message(OrderPick.waiting_size, F.text, ~F.text.startswith("/"))
async def pick_size(message: Message, state: FSMContext):
    await _pick_option(message, state, "size")


@router.message(OrderPick.waiting_boxes, F.text, ~F.text.startswith("/"))
async def pick_boxes(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    data = await state.get_data()
    product = CATALOG.get(str(data.get("product_id", "")))
    if product is None:
        await state.clear()
        await message.answer("❌ Товар не найден. Начните заново: /pick ID")
        return

    boxes = clamp_boxes((message.text or "").strip().replace(",", "."))
    if boxes <= 0:
        await message.answer("Количество коробок должно быть целым числом > 0\nОтмена: /cancel")
        return

    session = _session(message)
    session.rows.set(product.id, boxes=boxes)
    ok, msg = session.rows.add_row_to_cart(product, session.cart)
    await state.clear()
    if not ok:
        await message.answer(f"❌ {msg}")
        return
    await message.answer(f"✅ {msg}\n\nКорзина: /cart", reply_markup=main_kb())
