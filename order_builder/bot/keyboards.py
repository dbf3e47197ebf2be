from typing import Iterable, List

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/help"), KeyboardButton(text="/catalog")],
            [KeyboardButton(text="/cart"), KeyboardButton(text="/container")],
            [KeyboardButton(text="/csv"), KeyboardButton(text="/pdf")],
        ],
        resize_keyboard=True,
    )


def options_kb(values: Iterable[str], per_row: int = 3) -> ReplyKeyboardMarkup:
    buttons = [KeyboardButton(text=v) for v in values]
    rows: List[List[KeyboardButton]] = [buttons[i : i + per_row] for i in range(0, len(buttons), per_row)]
    rows.append([KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)
