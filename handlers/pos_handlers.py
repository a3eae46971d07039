"""
Обработчики кассы: столы, корзина, оплата
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

from config import settings
from billing.errors import BillingError, InvalidCouponError, SessionActionError
from billing.lifecycle import SessionController
from database.models import Customer, PAYMENT_TRANSFER
from database.repository import (
    TableRepository, OrderRepository, ProductRepository, CustomerRepository,
)
from states.pos_states import SessionInputStates
from keyboards.keyboards import (
    get_main_menu_keyboard, get_tables_keyboard, get_session_keyboard,
    get_products_keyboard, get_items_keyboard, get_payment_keyboard,
    get_cancel_session_keyboard, get_cancel_keyboard,
)
from utils.receipt import format_money, render_bill, render_receipt, transfer_qr_url
from utils.time_utils import elapsed_minutes, format_duration

logger = logging.getLogger(__name__)
router = Router()


def parse_amount(text: str) -> Optional[int]:
    """Сумма из текста; '0' или '-' означает «сбросить»"""
    text = text.strip().replace(' ', '').replace('\xa0', '')
    if text in ('', '-', '0'):
        return None
    value = int(text)
    if value < 0:
        raise ValueError("отрицательная сумма")
    return value


def parse_duration(text: str) -> Optional[int]:
    """Длительность в минутах: '95' или '1:35'; '0' или '-' — сбросить"""
    text = text.strip()
    if text in ('', '-', '0'):
        return None
    match = re.fullmatch(r'(\d+):(\d{1,2})', text)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2))
    return int(text)


def parse_start_time(text: str, now: datetime) -> datetime:
    """Время начала 'ЧЧ:ММ'; время позже текущего относится ко вчерашнему дню"""
    match = re.fullmatch(r'(\d{1,2})[:.](\d{2})', text.strip())
    if not match:
        raise ValueError(f"Неверный формат времени: {text}")
    started_at = now.replace(hour=int(match.group(1)), minute=int(match.group(2)),
                             second=0, microsecond=0)
    if started_at > now:
        started_at -= timedelta(days=1)
    return started_at


def _table_name(table_id: Optional[int]) -> str:
    if table_id is None:
        return "Стол не выбран"
    table = TableRepository.get_table_by_id(table_id)
    return table.name if table else f"Стол #{table_id}"


def session_text(controller: SessionController) -> str:
    """Карточка выбранного стола"""
    state = controller.state
    return render_bill(
        _table_name(state.table_id),
        state.items,
        controller.bill(),
        state.notes,
    )


async def edit_or_keep(message: Message, text: str, markup):
    """Редактирование сообщения; повторный показ того же текста не ошибка"""
    try:
        await message.edit_text(text, reply_markup=markup)
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            raise


async def show_session(message: Message, controller: SessionController, edit: bool = True):
    """Показать карточку стола"""
    text = session_text(controller)
    markup = get_session_keyboard(controller.state.is_occupied)
    if edit:
        await edit_or_keep(message, text, markup)
    else:
        await message.answer(text, reply_markup=markup)


async def show_tables(message: Message, edit: bool = False):
    """Список столов с временем игры"""
    tables = TableRepository.get_all_tables()
    labels = {}
    for order in OrderRepository.get_pending_orders():
        if order.table_id is not None:
            labels[order.table_id] = format_duration(elapsed_minutes(order.date))

    text = "🎱 Выберите стол:"
    markup = get_tables_keyboard(tables, labels)
    if edit:
        await edit_or_keep(message, text, markup)
    else:
        await message.answer(text, reply_markup=markup)


@router.message(Command("start"))
async def cmd_start(message: Message, state: FSMContext):
    """Обработка команды /start"""
    await state.clear()

    is_admin = settings.is_admin(message.from_user.id)

    await message.answer(
        f"👋 Касса бильярдного клуба\n\n"
        f"Здесь вы можете:\n"
        f"🎱 Открыть игру на столе\n"
        f"➕ Добавить товары к заказу\n"
        f"💰 Рассчитать и закрыть стол\n\n"
        f"Выберите действие:",
        reply_markup=get_main_menu_keyboard(is_admin)
    )


@router.message(F.text == "🎱 Столы")
async def tables_menu(message: Message, state: FSMContext):
    await state.clear()
    await show_tables(message)


@router.callback_query(F.data == "tables")
async def callback_tables(callback: CallbackQuery, state: FSMContext, controller: SessionController):
    await state.clear()
    controller.save_current_order()
    controller.deselect()
    await show_tables(callback.message, edit=True)
    await callback.answer()


@router.callback_query(F.data.startswith("table:"))
async def process_table(callback: CallbackQuery, state: FSMContext, controller: SessionController):
    """Выбор стола"""
    await state.clear()
    table_id = int(callback.data.split(":")[1])

    try:
        await controller.select_table(table_id)
    except BillingError as e:
        await callback.answer(f"⚠️ {e}", show_alert=True)
        return

    await show_session(callback.message, controller)
    await callback.answer()


@router.callback_query(F.data == "session:refresh")
async def refresh_session(callback: CallbackQuery, state: FSMContext, controller: SessionController):
    await state.clear()
    if controller.state.table_id is None:
        await show_tables(callback.message, edit=True)
    else:
        await show_session(callback.message, controller)
    await callback.answer()


@router.callback_query(F.data == "session:start")
async def start_session(callback: CallbackQuery, controller: SessionController):
    """Начало игры на столе"""
    try:
        order_id = await controller.start_session()
    except BillingError as e:
        logger.warning(f"Не удалось начать игру: {e}")
        await callback.answer(f"⚠️ Не удалось начать игру: {e}", show_alert=True)
        return

    await show_session(callback.message, controller)
    await callback.answer(f"▶️ Игра начата, заказ #{order_id}")


@router.callback_query(F.data == "session:products")
async def choose_product(callback: CallbackQuery, controller: SessionController):
    if controller.state.table_id is None:
        await callback.answer("Сначала выберите стол", show_alert=True)
        return
    products = ProductRepository.get_all_products()
    await callback.message.edit_text("➕ Выберите товар:", reply_markup=get_products_keyboard(products))
    await callback.answer()


@router.callback_query(F.data.startswith("product:"))
async def add_product(callback: CallbackQuery, controller: SessionController):
    if controller.state.table_id is None:
        await callback.answer("Сначала выберите стол", show_alert=True)
        return
    product = ProductRepository.get_product_by_id(int(callback.data.split(":")[1]))
    if product is None:
        await callback.answer("Товар не найден", show_alert=True)
        return

    controller.add_item(product)
    await callback.answer(f"➕ {product.name}")


@router.callback_query(F.data == "session:items")
async def show_items(callback: CallbackQuery, controller: SessionController):
    items = controller.state.items
    if not items:
        await callback.answer("Корзина пуста", show_alert=True)
        return
    await callback.message.edit_text(
        "🧾 Позиции (нажмите на количество, чтобы изменить цену):",
        reply_markup=get_items_keyboard(items)
    )
    await callback.answer()


@router.callback_query(F.data.startswith("qty:"))
async def change_quantity(callback: CallbackQuery, controller: SessionController):
    _, product_id, delta = callback.data.split(":")
    item = controller.state.find_item(int(product_id))
    if item is None:
        await callback.answer()
        return

    controller.set_quantity(item.product_id, item.quantity + int(delta))
    if controller.state.items:
        await callback.message.edit_reply_markup(reply_markup=get_items_keyboard(controller.state.items))
    else:
        await show_session(callback.message, controller)
    await callback.answer()


@router.callback_query(F.data == "items:clear")
async def clear_items(callback: CallbackQuery, controller: SessionController):
    """Очистка корзины"""
    controller.clear_items()
    await show_session(callback.message, controller)
    await callback.answer("🗑 Корзина очищена")


@router.callback_query(F.data.startswith("price:"))
async def ask_item_price(callback: CallbackQuery, state: FSMContext, controller: SessionController):
    item = controller.state.find_item(int(callback.data.split(":")[1]))
    if item is None:
        await callback.answer()
        return
    await state.update_data(product_id=item.product_id)
    await state.set_state(SessionInputStates.entering_item_price)
    await callback.message.answer(
        f"Новая цена для «{item.name}» (сейчас {format_money(item.price)}, "
        f"по прайсу {format_money(item.original_price)}):",
        reply_markup=get_cancel_keyboard()
    )
    await callback.answer()


# --- Ввод значений ---

_PROMPTS = {
    "session:discount": (SessionInputStates.entering_discount, "Введите сумму скидки (0 — без скидки):"),
    "session:coupon": (SessionInputStates.entering_coupon, "Введите промокод:"),
    "session:duration": (SessionInputStates.entering_duration,
                         "Введите время игры в минутах или как 1:30 (0 — считать по часам):"),
    "session:table_fee": (SessionInputStates.entering_table_fee,
                          "Введите сумму за стол (0 — считать по тарифу):"),
    "session:items_total": (SessionInputStates.entering_items_total,
                            "Введите общую сумму товаров (0 — считать по позициям):"),
    "session:note": (SessionInputStates.entering_note, "Введите заметку (- — удалить все заметки):"),
    "session:customer": (SessionInputStates.entering_phone, "Введите телефон клиента:"),
    "session:start_time": (SessionInputStates.entering_start_time,
                           "Введите время начала игры, например 18:30:"),
    "session:rate": (SessionInputStates.entering_price_per_hour, "Введите цену часа для этой игры:"),
}


@router.callback_query(F.data.in_(set(_PROMPTS)))
async def ask_value(callback: CallbackQuery, state: FSMContext, controller: SessionController):
    if not controller.state.is_occupied:
        await callback.answer("Сначала начните игру", show_alert=True)
        return
    input_state, prompt = _PROMPTS[callback.data]
    await state.set_state(input_state)
    await callback.message.answer(prompt, reply_markup=get_cancel_keyboard())
    await callback.answer()


@router.callback_query(F.data == "input_cancel")
async def cancel_input(callback: CallbackQuery, state: FSMContext):
    await state.clear()
    await callback.message.delete()
    await callback.answer("Отменено")


async def _finish_input(message: Message, state: FSMContext, controller: SessionController):
    await state.clear()
    await show_session(message, controller, edit=False)


@router.message(SessionInputStates.entering_discount, F.text)
async def process_discount(message: Message, state: FSMContext, controller: SessionController):
    try:
        controller.set_discount(parse_amount(message.text) or 0)
    except ValueError:
        await message.answer("⚠️ Введите целое неотрицательное число")
        return
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_coupon, F.text)
async def process_coupon(message: Message, state: FSMContext, controller: SessionController):
    try:
        discount = await controller.apply_coupon(message.text)
    except InvalidCouponError as e:
        await message.answer(f"⚠️ {e}")
        return
    except SessionActionError as e:
        await message.answer(f"⚠️ Ошибка при проверке промокода: {e}")
        return

    await message.answer(f"✅ Промокод применён: −{format_money(discount)}")
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_duration, F.text)
async def process_duration(message: Message, state: FSMContext, controller: SessionController):
    try:
        controller.set_custom_duration(parse_duration(message.text))
    except ValueError:
        await message.answer("⚠️ Введите минуты числом или в формате 1:30")
        return
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_table_fee, F.text)
async def process_table_fee(message: Message, state: FSMContext, controller: SessionController):
    try:
        controller.set_custom_table_fee(parse_amount(message.text))
    except ValueError:
        await message.answer("⚠️ Введите целое неотрицательное число")
        return
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_items_total, F.text)
async def process_items_total(message: Message, state: FSMContext, controller: SessionController):
    try:
        controller.set_custom_items_total(parse_amount(message.text))
    except ValueError:
        await message.answer("⚠️ Введите целое неотрицательное число")
        return
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_item_price, F.text)
async def process_item_price(message: Message, state: FSMContext, controller: SessionController):
    data = await state.get_data()
    try:
        price = parse_amount(message.text) or 0
    except ValueError:
        await message.answer("⚠️ Введите целое неотрицательное число")
        return
    controller.set_item_price(data['product_id'], price)
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_note, F.text)
async def process_note(message: Message, state: FSMContext, controller: SessionController):
    text = message.text.strip()
    if text == '-':
        controller.set_notes([])
    else:
        controller.set_notes(controller.state.notes + [text])
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_start_time, F.text)
async def process_start_time(message: Message, state: FSMContext, controller: SessionController):
    try:
        started_at = parse_start_time(message.text, controller.clock())
    except ValueError:
        await message.answer("⚠️ Введите время в формате ЧЧ:ММ")
        return
    controller.set_start_time(started_at)
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_price_per_hour, F.text)
async def process_price_per_hour(message: Message, state: FSMContext, controller: SessionController):
    try:
        price_per_hour = parse_amount(message.text)
    except ValueError:
        price_per_hour = None
    if price_per_hour is None:
        await message.answer("⚠️ Введите цену часа целым положительным числом")
        return
    controller.set_price_per_hour(price_per_hour)
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_phone, F.text)
async def process_phone(message: Message, state: FSMContext, controller: SessionController):
    """Поиск клиента по телефону"""
    phone = message.text.strip()
    if phone == '-':
        controller.set_customer(None)
        await _finish_input(message, state, controller)
        return

    if len(phone) < 10:
        await message.answer("⚠️ Введите корректный номер телефона")
        return

    customer = CustomerRepository.get_customer_by_phone(phone)
    if customer is None:
        await state.update_data(phone=phone)
        await state.set_state(SessionInputStates.entering_customer_name)
        await message.answer("Клиент не найден. Введите имя для регистрации:",
                             reply_markup=get_cancel_keyboard())
        return

    controller.set_customer(customer.id)
    await message.answer(f"👤 {customer.name}, баллов: {customer.points}")
    await _finish_input(message, state, controller)


@router.message(SessionInputStates.entering_customer_name, F.text)
async def process_customer_name(message: Message, state: FSMContext, controller: SessionController):
    """Регистрация нового клиента"""
    data = await state.get_data()
    customer_id = CustomerRepository.create_customer(
        Customer(id=None, name=message.text.strip(), phone=data['phone'])
    )
    controller.set_customer(customer_id)
    await message.answer(f"✅ Клиент зарегистрирован: {message.text.strip()}")
    await _finish_input(message, state, controller)


# --- Оплата и отмена ---

@router.callback_query(F.data == "session:pay")
async def ask_payment(callback: CallbackQuery, controller: SessionController):
    if not controller.state.is_occupied:
        await callback.answer("На столе нет игры", show_alert=True)
        return
    try:
        bill = controller.bill()
    except BillingError as e:
        await callback.answer(f"⚠️ {e}", show_alert=True)
        return
    await callback.message.edit_text(
        session_text(controller) + "\n\nВыберите способ оплаты:",
        reply_markup=get_payment_keyboard(bill.grand_total)
    )
    await callback.answer()


@router.callback_query(F.data.startswith("pay:"))
async def process_payment(callback: CallbackQuery, controller: SessionController):
    """Оплата и освобождение стола"""
    _, method, amount_str = callback.data.split(":")
    amount = int(amount_str)

    state = controller.state
    table_name = _table_name(state.table_id)
    items = list(state.items)
    bill = controller.bill()
    customer_id = state.customer_id

    try:
        result = await controller.checkout(amount, payment_method=method)
    except BillingError as e:
        logger.error(f"Ошибка оплаты: {e}")
        await callback.answer(f"⚠️ Оплата не проведена: {e}. Попробуйте ещё раз.", show_alert=True)
        return

    customer = CustomerRepository.get_customer_by_id(customer_id) if customer_id else None
    receipt = render_receipt(
        result.order_id, table_name, items, bill, result.amount,
        customer=customer, points_awarded=result.points_awarded,
    )

    await callback.message.edit_text(f"✅ Стол закрыт\n\n{receipt}")
    if method == PAYMENT_TRANSFER:
        await callback.message.answer(f"📱 QR для оплаты: {transfer_qr_url(result.amount, result.order_id)}")
    for warning in result.warnings:
        await callback.message.answer(f"⚠️ {warning}")
    await callback.answer()


@router.callback_query(F.data == "session:cancel")
async def ask_cancel(callback: CallbackQuery, controller: SessionController):
    if not controller.state.is_occupied:
        await callback.answer("На столе нет игры", show_alert=True)
        return
    await callback.message.edit_text(
        "🗑 Отменить игру? Заказ будет удалён без сохранения в истории.",
        reply_markup=get_cancel_session_keyboard()
    )
    await callback.answer()


@router.callback_query(F.data == "session:cancel_confirm")
async def confirm_cancel(callback: CallbackQuery, controller: SessionController):
    table_id = controller.state.table_id
    try:
        await controller.reset_table()
    except BillingError as e:
        await callback.answer(f"⚠️ Не удалось отменить игру: {e}", show_alert=True)
        return

    await callback.message.edit_text(f"🗑 Игра на столе «{_table_name(table_id)}» отменена")
    await callback.answer()
