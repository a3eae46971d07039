"""
Обработчики команд администраторов
"""
import logging
from datetime import datetime, timedelta

from aiogram import Router, F
from aiogram.filters import Command
from aiogram.types import Message, CallbackQuery

from config import settings
from database.repository import OrderRepository, TableRepository
from keyboards.keyboards import get_admin_keyboard
from utils.receipt import format_money
from utils.time_utils import PERIODS, elapsed_minutes, format_duration, format_time, period_bounds

logger = logging.getLogger(__name__)
router = Router()


def is_admin(user_id: int) -> bool:
    """Проверка прав администратора"""
    return settings.is_admin(user_id)


PERIOD_TITLES = {
    'today': "сегодня",
    'week': "неделю",
    'month': "месяц",
    'year': "год",
}


def build_revenue_report(period: str = 'today', now: datetime = None) -> str:
    """Выручка по оплаченным заказам за период"""
    period_start, period_end = period_bounds(period, now or datetime.now())
    orders = OrderRepository.get_completed_orders_between(period_start, period_end)

    revenue = sum(order.total for order in orders)
    average = revenue // len(orders) if orders else 0
    last_day = period_end - timedelta(days=1)

    if period == 'today':
        dates = period_start.strftime('%d.%m.%Y')
    else:
        dates = f"{period_start.strftime('%d.%m.%Y')} – {last_day.strftime('%d.%m.%Y')}"

    return (
        f"📊 Выручка за {PERIOD_TITLES[period]} ({dates})\n\n"
        f"Оплачено заказов: {len(orders)}\n"
        f"Выручка: {format_money(revenue)}\n"
        f"Средний чек: {format_money(average)}"
    )


def build_active_report(now: datetime = None) -> str:
    """Список открытых столов"""
    orders = OrderRepository.get_pending_orders()
    if not orders:
        return "🎱 Открытых столов нет"

    text = "🎱 Открытые столы:\n\n"
    for order in orders:
        table = TableRepository.get_table_by_id(order.table_id) if order.table_id else None
        table_name = table.name if table else f"Стол #{order.table_id}"
        text += (
            f"🔹 {table_name} — заказ #{order.id}\n"
            f"   🕐 с {format_time(order.date)}, "
            f"{format_duration(elapsed_minutes(order.date, now))}\n"
            f"   🧾 товары: {format_money(order.total)}\n\n"
        )
    text += f"Всего: {len(orders)}"
    return text


@router.message(F.text == "⚙️ Админ-панель")
async def admin_panel(message: Message):
    """Открытие админ-панели"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к админ-панели")
        return

    await message.answer(
        "⚙️ Админ-панель\n\nВыберите действие:",
        reply_markup=get_admin_keyboard()
    )


@router.message(Command("today"))
async def cmd_today(message: Message):
    """Команда /today - выручка за сегодня"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    await message.answer(build_revenue_report('today'))


@router.callback_query(F.data.startswith("admin_revenue:"))
async def callback_revenue(callback: CallbackQuery):
    """Callback для выручки за период"""
    if not is_admin(callback.from_user.id):
        await callback.answer("⚠️ У вас нет доступа", show_alert=True)
        return

    period = callback.data.split(":")[1]
    if period not in PERIODS:
        await callback.answer()
        return

    await callback.message.answer(build_revenue_report(period))
    await callback.answer()


@router.callback_query(F.data == "admin_active")
async def callback_active(callback: CallbackQuery):
    """Callback для списка открытых столов"""
    if not is_admin(callback.from_user.id):
        await callback.answer("⚠️ У вас нет доступа", show_alert=True)
        return

    await callback.message.answer(build_active_report())
    await callback.answer()
