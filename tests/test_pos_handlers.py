"""
Тесты хендлеров кассы на заглушках сообщений Telegram
"""
from datetime import datetime, timedelta

import pytest
from aiogram.exceptions import TelegramBadRequest

from database.repository import OrderRepository
from handlers.pos_handlers import (
    add_product, callback_tables, clear_items, edit_or_keep, parse_start_time,
    refresh_session,
)

NOW = datetime(2024, 5, 1, 18, 0)


class StubMessage:
    """Сообщение, которое отклоняет повторное редактирование тем же текстом"""

    def __init__(self, error: str = None):
        self.text = None
        self.edits = 0
        self.answers = []
        self.error = error

    async def edit_text(self, text, reply_markup=None):
        if self.error:
            raise TelegramBadRequest(method=None, message=self.error)
        if text == self.text:
            raise TelegramBadRequest(
                method=None,
                message="Bad Request: message is not modified: specified new message content "
                        "and reply markup are exactly the same"
            )
        self.text = text
        self.edits += 1

    async def answer(self, text, reply_markup=None):
        self.answers.append(text)


class StubCallback:
    def __init__(self, data: str, message: StubMessage = None):
        self.data = data
        self.message = message or StubMessage()
        self.answers = []

    async def answer(self, text=None, show_alert=False):
        self.answers.append((text, show_alert))


class StubState:
    async def clear(self):
        pass


@pytest.mark.asyncio
async def test_refresh_twice_answers_callback(controller):
    await controller.select_table(1)
    callback = StubCallback("session:refresh")

    await refresh_session(callback, StubState(), controller)
    await refresh_session(callback, StubState(), controller)

    assert callback.message.edits == 1
    assert callback.answers == [(None, False), (None, False)]


@pytest.mark.asyncio
async def test_other_edit_errors_are_raised():
    message = StubMessage(error="Bad Request: message to edit not found")
    with pytest.raises(TelegramBadRequest):
        await edit_or_keep(message, "текст", None)


@pytest.mark.asyncio
async def test_add_product_requires_table(controller):
    callback = StubCallback("product:1")
    await add_product(callback, controller)

    assert controller.state.items == []
    assert callback.answers == [("Сначала выберите стол", True)]


@pytest.mark.asyncio
async def test_add_product_to_selected_table(controller):
    await controller.select_table(1)
    await add_product(StubCallback("product:2"), controller)
    assert controller.state.find_item(2).quantity == 1


@pytest.mark.asyncio
async def test_clear_items_button(controller, executor):
    await controller.select_table(2)
    order_id = await controller.start_session()
    await add_product(StubCallback("product:1"), controller)

    callback = StubCallback("items:clear")
    await clear_items(callback, controller)
    await executor.flush(order_id)

    assert controller.state.items == []
    assert OrderRepository.get_order_by_id(order_id).items == []
    assert callback.message.edits == 1


@pytest.mark.asyncio
async def test_back_to_tables_saves_order(controller, executor):
    await controller.select_table(2)
    order_id = await controller.start_session()
    controller.state.notes = ["без сдачи"]

    await callback_tables(StubCallback("tables"), StubState(), controller)
    await executor.flush(order_id)

    assert controller.state.table_id is None
    assert OrderRepository.get_order_by_id(order_id).note == ["без сдачи"]


def test_parse_start_time_today():
    assert parse_start_time("17:30", NOW) == datetime(2024, 5, 1, 17, 30)
    assert parse_start_time("9.05", NOW) == datetime(2024, 5, 1, 9, 5)


def test_parse_start_time_after_midnight_refers_to_yesterday():
    assert parse_start_time("23:15", NOW) == datetime(2024, 5, 1, 23, 15) - timedelta(days=1)


@pytest.mark.parametrize("text", ["", "18", "25:00", "18:75", "вечер"])
def test_parse_start_time_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_start_time(text, NOW)
