"""
Тесты отчётов админ-панели
"""
from datetime import datetime

from database.models import Order, ORDER_COMPLETED
from database.repository import OrderRepository
from handlers.admin_handlers import build_active_report, build_revenue_report

NOW = datetime(2024, 5, 15, 20, 0)


def paid_order(date: datetime, total: int) -> int:
    order_id = OrderRepository.create_order(Order(id=None, date=date, table_id=1))
    OrderRepository.update_order(order_id, {'status': ORDER_COMPLETED, 'total': total})
    return order_id


def test_revenue_by_period(db):
    paid_order(datetime(2024, 5, 15, 12, 0), 100000)
    paid_order(datetime(2024, 5, 13, 19, 0), 50000)
    paid_order(datetime(2024, 4, 30, 19, 0), 30000)
    paid_order(datetime(2023, 12, 31, 23, 0), 999000)

    today = build_revenue_report('today', NOW)
    assert "Оплачено заказов: 1" in today
    assert "15.05.2024" in today

    week = build_revenue_report('week', NOW)
    assert "Оплачено заказов: 2" in week
    assert "Выручка: 150 000" in week
    assert "Средний чек: 75 000" in week

    assert "Оплачено заказов: 2" in build_revenue_report('month', NOW)
    assert "Выручка: 180 000" in build_revenue_report('year', NOW)


def test_pending_orders_are_not_revenue(db):
    OrderRepository.create_order(Order(id=None, date=NOW, table_id=1, total=5000))
    report = build_revenue_report('today', NOW)
    assert "Оплачено заказов: 0" in report
    assert "Средний чек: 0" in report


def test_active_report(db):
    assert build_active_report(NOW) == "🎱 Открытых столов нет"
    OrderRepository.create_order(Order(id=None, date=datetime(2024, 5, 15, 19, 0), table_id=2))
    report = build_active_report(NOW)
    assert "Русский (Зеленый)" in report
    assert "1ч 00м" in report
