"""
Тесты репозиториев SQLite
"""
from datetime import datetime

import pytest

from database.database import get_db
from database.models import (
    Order, OrderItem, ORDER_COMPLETED, TABLE_AVAILABLE, TABLE_OCCUPIED,
)
from database.repository import (
    UNSET, OrderRepository, ProductRepository, TableRepository,
)

DATE = datetime(2024, 5, 1, 18, 0)


def test_seed_data(db):
    tables = TableRepository.get_all_tables()
    assert [table.price_per_hour for table in tables] == [60000, 50000]
    assert all(table.status == TABLE_AVAILABLE for table in tables)
    assert len(ProductRepository.get_all_products()) == 4


def test_update_table_distinguishes_unset_and_none(db):
    TableRepository.update_table(1, status=TABLE_OCCUPIED, current_order_id=5)

    TableRepository.update_table(1, price_per_hour=70000)
    table = TableRepository.get_table_by_id(1)
    assert table.status == TABLE_OCCUPIED
    assert table.current_order_id == 5
    assert table.price_per_hour == 70000

    TableRepository.update_table(1, current_order_id=None)
    assert TableRepository.get_table_by_id(1).current_order_id is None


def test_update_table_without_changes(db):
    assert not TableRepository.update_table(1)
    assert not TableRepository.update_table(1, status=UNSET)


def test_release_checks_expected_order(db):
    TableRepository.claim_table(1, 10)
    assert not TableRepository.release_table(1, expected_order_id=11)
    assert TableRepository.get_table_by_id(1).current_order_id == 10
    assert TableRepository.release_table(1, expected_order_id=10)
    assert TableRepository.get_table_by_id(1).status == TABLE_AVAILABLE


def test_order_round_trip(db):
    order_id = OrderRepository.create_order(Order(
        id=None,
        date=DATE,
        table_id=1,
        items=[OrderItem(product_id=1, name="Чай", price=12000, quantity=2, original_price=15000)],
        discount=1000,
        price_per_hour=60000,
        note=["первая", "вторая"],
        total=23000,
    ))
    order = OrderRepository.get_order_by_id(order_id)
    assert order.date == DATE
    assert order.items[0].original_price == 15000
    assert order.note == ["первая", "вторая"]
    assert order.custom_table_fee is None


def test_update_order_clears_with_none(db):
    order_id = OrderRepository.create_order(Order(id=None, date=DATE, custom_table_fee=5000))
    assert OrderRepository.update_order(order_id, {'custom_table_fee': None, 'discount': 300})
    order = OrderRepository.get_order_by_id(order_id)
    assert order.custom_table_fee is None
    assert order.discount == 300


def test_update_order_rejects_unknown_fields(db):
    order_id = OrderRepository.create_order(Order(id=None, date=DATE))
    with pytest.raises(ValueError):
        OrderRepository.update_order(order_id, {'id': 5})


def test_completed_order_is_immutable(db):
    order_id = OrderRepository.create_order(Order(id=None, date=DATE))
    assert OrderRepository.update_order(order_id, {'status': ORDER_COMPLETED, 'total': 500})
    assert not OrderRepository.update_order(order_id, {'total': 900})
    assert OrderRepository.get_order_by_id(order_id).total == 500
    assert OrderRepository.update_order(order_id, {'total': 900}, only_pending=False)


def test_legacy_rows_are_normalized(db):
    order_id = OrderRepository.create_order(Order(id=None, date=DATE))
    with get_db() as conn:
        conn.execute(
            "UPDATE orders SET note = ?, items = ?, date = ? WHERE id = ?",
            (
                "звонить заранее",
                '[{"productId": 2, "name": "Кофе", "price": 25000, "quantity": 1}]',
                "2024-05-01T15:00:00Z",
                order_id,
            )
        )
    order = OrderRepository.get_order_by_id(order_id)
    assert order.note == ["звонить заранее"]
    assert order.items[0].product_id == 2
    assert order.items[0].original_price is None
    assert order.date.tzinfo is None


def test_completed_orders_between(db):
    inside = OrderRepository.create_order(Order(id=None, date=DATE))
    OrderRepository.update_order(inside, {'status': ORDER_COMPLETED, 'total': 1000})
    OrderRepository.create_order(Order(id=None, date=DATE))
    outside = OrderRepository.create_order(Order(id=None, date=datetime(2024, 5, 2, 0, 0)))
    OrderRepository.update_order(outside, {'status': ORDER_COMPLETED})

    orders = OrderRepository.get_completed_orders_between(
        datetime(2024, 5, 1), datetime(2024, 5, 2)
    )
    assert [order.id for order in orders] == [inside]
