"""
Клавиатуры для Telegram бота
"""
from typing import List, Optional

from aiogram.types import InlineKeyboardMarkup, ReplyKeyboardMarkup, KeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from billing.session import CartItem
from database.models import BilliardTable, Product
from utils.receipt import format_money


def get_main_menu_keyboard(is_admin: bool = False) -> ReplyKeyboardMarkup:
    """Главное меню"""
    buttons = [
        [KeyboardButton(text="🎱 Столы")],
    ]

    if is_admin:
        buttons.append([KeyboardButton(text="⚙️ Админ-панель")])

    return ReplyKeyboardMarkup(keyboard=buttons, resize_keyboard=True)


def get_tables_keyboard(tables: List[BilliardTable], labels: Optional[dict] = None) -> InlineKeyboardMarkup:
    """Клавиатура выбора стола; labels — подписи с временем игры по ID стола"""
    builder = InlineKeyboardBuilder()
    labels = labels or {}

    for table in tables:
        icon = "🔴" if table.is_occupied else "🟢"
        text = f"{icon} {table.name}"
        if table.id in labels:
            text += f" · {labels[table.id]}"
        builder.button(text=text, callback_data=f"table:{table.id}")

    builder.adjust(1)
    return builder.as_markup()


def get_session_keyboard(is_occupied: bool) -> InlineKeyboardMarkup:
    """Действия с выбранным столом"""
    builder = InlineKeyboardBuilder()

    if not is_occupied:
        builder.button(text="▶️ Начать игру", callback_data="session:start")
        builder.button(text="➕ Товар", callback_data="session:products")
        builder.button(text="🔄 Обновить", callback_data="session:refresh")
        builder.button(text="◀️ Столы", callback_data="tables")
        builder.adjust(1, 2, 1)
        return builder.as_markup()

    builder.button(text="➕ Товар", callback_data="session:products")
    builder.button(text="🧾 Позиции", callback_data="session:items")
    builder.button(text="👤 Клиент", callback_data="session:customer")
    builder.button(text="🏷 Промокод", callback_data="session:coupon")
    builder.button(text="💸 Скидка", callback_data="session:discount")
    builder.button(text="⏱ Время", callback_data="session:duration")
    builder.button(text="🎱 Сумма за стол", callback_data="session:table_fee")
    builder.button(text="🍺 Сумма товаров", callback_data="session:items_total")
    builder.button(text="📝 Заметка", callback_data="session:note")
    builder.button(text="🕐 Начало игры", callback_data="session:start_time")
    builder.button(text="💲 Тариф", callback_data="session:rate")
    builder.button(text="🔄 Обновить", callback_data="session:refresh")
    builder.button(text="💰 Оплата", callback_data="session:pay")
    builder.button(text="🗑 Отменить игру", callback_data="session:cancel")
    builder.button(text="◀️ Столы", callback_data="tables")
    builder.adjust(2, 2, 2, 2, 2, 2, 2, 1)

    return builder.as_markup()


def get_products_keyboard(products: List[Product]) -> InlineKeyboardMarkup:
    """Клавиатура выбора товара"""
    builder = InlineKeyboardBuilder()

    for product in products:
        builder.button(
            text=f"{product.name} — {format_money(product.price)}",
            callback_data=f"product:{product.id}"
        )

    builder.button(text="◀️ Назад", callback_data="session:refresh")
    builder.adjust(1)

    return builder.as_markup()


def get_items_keyboard(items: List[CartItem]) -> InlineKeyboardMarkup:
    """Позиции корзины: количество и цена"""
    builder = InlineKeyboardBuilder()

    for item in items:
        builder.button(text=f"➖ {item.name}", callback_data=f"qty:{item.product_id}:-1")
        builder.button(text=f"{item.quantity}", callback_data=f"price:{item.product_id}")
        builder.button(text="➕", callback_data=f"qty:{item.product_id}:1")

    builder.button(text="🗑 Очистить", callback_data="items:clear")
    builder.button(text="◀️ Назад", callback_data="session:refresh")
    builder.adjust(*([3] * len(items)), 2)

    return builder.as_markup()


def get_payment_keyboard(amount: int) -> InlineKeyboardMarkup:
    """Выбор способа оплаты"""
    builder = InlineKeyboardBuilder()

    builder.button(text=f"💵 Наличные {format_money(amount)}", callback_data=f"pay:cash:{amount}")
    builder.button(text=f"📱 Перевод / QR {format_money(amount)}", callback_data=f"pay:transfer:{amount}")
    builder.button(text="◀️ Назад", callback_data="session:refresh")
    builder.adjust(1)

    return builder.as_markup()


def get_cancel_session_keyboard() -> InlineKeyboardMarkup:
    """Подтверждение отмены игры"""
    builder = InlineKeyboardBuilder()

    builder.button(text="✅ Да, отменить", callback_data="session:cancel_confirm")
    builder.button(text="◀️ Назад", callback_data="session:refresh")
    builder.adjust(1)

    return builder.as_markup()


def get_admin_keyboard() -> InlineKeyboardMarkup:
    """Клавиатура админ-панели"""
    builder = InlineKeyboardBuilder()

    builder.button(text="📊 Сегодня", callback_data="admin_revenue:today")
    builder.button(text="📊 Неделя", callback_data="admin_revenue:week")
    builder.button(text="📊 Месяц", callback_data="admin_revenue:month")
    builder.button(text="📊 Год", callback_data="admin_revenue:year")
    builder.button(text="🎱 Открытые столы", callback_data="admin_active")
    builder.adjust(2, 2, 1)

    return builder.as_markup()


def get_cancel_keyboard() -> InlineKeyboardMarkup:
    """Простая клавиатура отмены ввода"""
    builder = InlineKeyboardBuilder()
    builder.button(text="❌ Отмена", callback_data="input_cancel")
    return builder.as_markup()
