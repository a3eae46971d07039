"""
Тесты жизненного цикла сессии стола на реальной SQLite
"""
from datetime import datetime, timedelta

import pytest

from billing.errors import (
    InvalidCouponError, NoActiveSessionError, SessionActionError,
    TableNotFoundError, TableOccupiedError,
)
from billing.lifecycle import reconcile_tables
from database.models import (
    Coupon, Customer, Order, COUPON_FIXED, COUPON_PERCENT, ORDER_COMPLETED,
    PAYMENT_TRANSFER, TABLE_AVAILABLE, TABLE_OCCUPIED,
)
from database.repository import (
    CouponRepository, CustomerRepository, OrderRepository, ProductRepository,
    TableRepository,
)
from database.database import get_db

START = datetime(2024, 5, 1, 18, 0)


def with_legacy_note(order_id, text):
    """Заметка в старом формате: одна строка вместо JSON-списка"""
    with get_db() as conn:
        conn.execute("UPDATE orders SET note = ? WHERE id = ?", (text, order_id))


async def open_session(controller, table_id=2):
    await controller.select_table(table_id)
    return await controller.start_session()


@pytest.mark.asyncio
async def test_start_session_claims_table(controller):
    order_id = await open_session(controller)

    table = TableRepository.get_table_by_id(2)
    assert table.status == TABLE_OCCUPIED
    assert table.current_order_id == order_id

    order = OrderRepository.get_order_by_id(order_id)
    assert order.is_pending
    assert order.price_per_hour == 50000
    assert order.date == START
    assert controller.state.is_occupied


@pytest.mark.asyncio
async def test_unknown_table(controller):
    with pytest.raises(TableNotFoundError):
        await controller.select_table(999)
    assert controller.state.table_id is None


@pytest.mark.asyncio
async def test_actions_require_open_order(controller):
    await controller.select_table(1)
    with pytest.raises(NoActiveSessionError):
        await controller.checkout(0)
    with pytest.raises(NoActiveSessionError):
        await controller.reset_table()


@pytest.mark.asyncio
async def test_session_survives_reload(controller, executor, clock):
    customer_id = CustomerRepository.create_customer(
        Customer(id=None, name="Ольга", phone="+79005554433")
    )
    order_id = await open_session(controller)
    tea = ProductRepository.get_product_by_id(1)
    controller.add_item(tea)
    controller.add_item(tea)
    controller.add_item(ProductRepository.get_product_by_id(2))
    controller.set_item_price(2, 20000)
    controller.set_discount(5000)
    controller.set_notes(["у окна"])
    controller.set_customer(customer_id)
    controller.set_custom_duration(40)
    controller.set_custom_table_fee(30000)
    controller.set_custom_items_total(45000)
    await executor.flush(order_id)

    controller.deselect()
    clock.now = START + timedelta(minutes=90)
    state = await controller.select_table(2)

    assert state.order_id == order_id
    assert [(item.product_id, item.price, item.original_price, item.quantity)
            for item in state.items] == [(1, 15000, 15000, 2), (2, 20000, 25000, 1)]
    assert state.customer_id == customer_id
    assert state.discount == 5000
    assert state.notes == ["у окна"]
    assert state.custom_duration == 40
    assert state.custom_table_fee == 30000
    assert state.custom_items_total == 45000
    assert state.total() == 40000
    assert controller.last_fee.minutes == 40
    assert controller.last_fee.fee == 30000
    assert controller.last_fee.calculated_fee == 33333


@pytest.mark.asyncio
async def test_reload_without_overrides_uses_timer(controller, executor, clock):
    order_id = await open_session(controller)
    controller.add_item(ProductRepository.get_product_by_id(1))
    await executor.flush(order_id)

    controller.deselect()
    clock.now = START + timedelta(minutes=90)
    state = await controller.select_table(2)

    assert state.custom_duration is None
    assert state.custom_table_fee is None
    assert state.custom_items_total is None
    assert controller.last_fee.fee == 75000


@pytest.mark.asyncio
async def test_checkout_awards_points_and_frees_table(controller, executor, clock):
    customer_id = CustomerRepository.create_customer(
        Customer(id=None, name="Иван", phone="+79001112233", points=3)
    )
    order_id = await open_session(controller)
    controller.add_item(ProductRepository.get_product_by_id(2))
    controller.set_customer(customer_id)

    clock.now = START + timedelta(minutes=90)
    bill = controller.bill()
    assert bill.grand_total == 100000

    result = await controller.checkout(bill.grand_total, PAYMENT_TRANSFER)

    assert result.points_awarded == 100
    assert result.warnings == []
    assert CustomerRepository.get_customer_by_id(customer_id).points == 103

    order = OrderRepository.get_order_by_id(order_id)
    assert order.status == ORDER_COMPLETED
    assert order.total == 100000
    assert order.payment_method == PAYMENT_TRANSFER
    assert order.customer_id == customer_id

    table = TableRepository.get_table_by_id(2)
    assert table.status == TABLE_AVAILABLE
    assert table.current_order_id is None
    assert controller.state.table_id is None
    assert not executor.has_pending(order_id)


@pytest.mark.asyncio
async def test_checkout_without_customer_awards_nothing(controller):
    await open_session(controller)
    result = await controller.checkout(45000)
    assert result.customer_id is None
    assert result.points_awarded == 0


@pytest.mark.asyncio
async def test_checkout_rejects_negative_amount(controller):
    await open_session(controller)
    with pytest.raises(ValueError):
        await controller.checkout(-1)


@pytest.mark.asyncio
async def test_checkout_of_closed_order(controller):
    order_id = await open_session(controller)
    OrderRepository.update_order(order_id, {'status': ORDER_COMPLETED})
    with pytest.raises(NoActiveSessionError):
        await controller.checkout(1000)


@pytest.mark.asyncio
async def test_missing_customer_is_a_warning(controller):
    await open_session(controller)
    controller.set_customer(404)
    result = await controller.checkout(5000)
    assert result.points_awarded == 0
    assert len(result.warnings) == 1
    assert TableRepository.get_table_by_id(2).status == TABLE_AVAILABLE


@pytest.mark.asyncio
async def test_reset_table_deletes_order(controller):
    order_id = await open_session(controller)
    controller.add_item(ProductRepository.get_product_by_id(3))

    assert await controller.reset_table() == order_id
    assert OrderRepository.get_order_by_id(order_id) is None
    assert controller.state.table_id is None
    assert controller.state.order_id is None
    assert controller.state.items == []
    assert controller.last_fee is None
    table = TableRepository.get_table_by_id(2)
    assert table.status == TABLE_AVAILABLE
    assert table.current_order_id is None


@pytest.mark.asyncio
async def test_start_on_occupied_table(controller):
    await open_session(controller)
    with pytest.raises(TableOccupiedError):
        await controller.start_session()


@pytest.mark.asyncio
async def test_lost_claim_race_removes_new_order(controller, monkeypatch):
    await controller.select_table(2)
    other_id = OrderRepository.create_order(Order(id=None, date=START, table_id=2))
    claim = TableRepository.claim_table

    def racing_claim(table_id, order_id):
        # Другой кассир занимает стол между проверкой и захватом
        claim(table_id, other_id)
        return claim(table_id, order_id)

    monkeypatch.setattr(TableRepository, "claim_table", racing_claim)
    with pytest.raises(TableOccupiedError):
        await controller.start_session()

    assert [order.id for order in OrderRepository.get_pending_orders()] == [other_id]
    assert TableRepository.get_table_by_id(2).current_order_id == other_id
    assert controller.state.order_id is None


def test_claim_is_exclusive(db):
    first = OrderRepository.create_order(Order(id=None, date=START, table_id=1))
    second = OrderRepository.create_order(Order(id=None, date=START, table_id=1))
    assert TableRepository.claim_table(1, first)
    assert not TableRepository.claim_table(1, second)


@pytest.mark.asyncio
async def test_failed_order_creation_leaves_table_free(controller, monkeypatch):
    await controller.select_table(2)

    def broken_create(order):
        raise RuntimeError("disk I/O error")

    monkeypatch.setattr(controller.orders, 'create_order', broken_create)
    with pytest.raises(SessionActionError):
        await controller.start_session()
    assert TableRepository.get_table_by_id(2).status == TABLE_AVAILABLE


@pytest.mark.asyncio
async def test_stale_reference_is_healed_on_select(controller):
    order_id = await open_session(controller)
    controller.deselect()
    OrderRepository.delete_order(order_id)

    state = await controller.select_table(2)

    assert state.order_id is None
    assert not state.is_occupied
    table = TableRepository.get_table_by_id(2)
    assert table.status == TABLE_AVAILABLE
    assert table.current_order_id is None


def test_reconcile_releases_completed_and_orphaned_tables(db):
    done = OrderRepository.create_order(Order(id=None, date=START, table_id=1))
    TableRepository.claim_table(1, done)
    OrderRepository.update_order(done, {'status': ORDER_COMPLETED})
    TableRepository.update_table(2, status=TABLE_OCCUPIED)

    assert reconcile_tables(TableRepository, OrderRepository) == 2
    assert all(table.status == TABLE_AVAILABLE for table in TableRepository.get_all_tables())
    assert reconcile_tables(TableRepository, OrderRepository) == 0


@pytest.mark.asyncio
async def test_legacy_string_note_is_loaded_as_list(controller):
    order_id = await open_session(controller)
    controller.deselect()
    with_legacy_note(order_id, "старая заметка")

    state = await controller.select_table(2)
    assert state.notes == ["старая заметка"]


@pytest.mark.asyncio
async def test_percent_coupon(controller):
    CouponRepository.create_coupon(
        Coupon(id=None, code="sale10", type=COUPON_PERCENT, value=10)
    )
    await open_session(controller)
    controller.set_custom_items_total(200000)

    discount = await controller.apply_coupon(" Sale10 ")

    assert discount == 20000
    assert controller.state.discount == 20000
    assert controller.state.total() == 180000


@pytest.mark.asyncio
async def test_fixed_coupon(controller):
    CouponRepository.create_coupon(
        Coupon(id=None, code="MINUS5", type=COUPON_FIXED, value=5000)
    )
    await controller.select_table(1)
    controller.add_item(ProductRepository.get_product_by_id(2))
    assert await controller.apply_coupon("minus5") == 5000
    assert controller.state.total() == 20000


@pytest.mark.asyncio
async def test_inactive_or_unknown_coupon(controller):
    CouponRepository.create_coupon(
        Coupon(id=None, code="OLD", type=COUPON_PERCENT, value=50, is_active=False)
    )
    await controller.select_table(1)
    for code in ("OLD", "NOPE"):
        with pytest.raises(InvalidCouponError):
            await controller.apply_coupon(code)
    assert controller.state.discount == 0


@pytest.mark.asyncio
async def test_rate_snapshot_survives_table_price_change(controller, executor, clock):
    order_id = await open_session(controller)
    TableRepository.update_table(2, price_per_hour=90000)
    controller.deselect()

    clock.now = START + timedelta(minutes=60)
    await controller.select_table(2)
    assert controller.state.table_rate == 90000
    assert controller.last_fee.fee == 50000

    controller.set_price_per_hour(90000)
    assert controller.last_fee.fee == 90000
    await executor.flush(order_id)
    assert OrderRepository.get_order_by_id(order_id).price_per_hour == 90000


@pytest.mark.asyncio
async def test_clear_items_is_persisted(controller, executor):
    order_id = await open_session(controller)
    controller.add_item(ProductRepository.get_product_by_id(1))
    controller.add_item(ProductRepository.get_product_by_id(4))
    write = controller.clear_items()
    await executor.flush(order_id)

    assert write.reason == 'clear_items'
    assert controller.state.items == []
    order = OrderRepository.get_order_by_id(order_id)
    assert order.items == []
    assert order.total == 0


@pytest.mark.asyncio
async def test_start_time_change_recomputes_fee(controller, executor, clock):
    order_id = await open_session(controller)
    clock.now = START + timedelta(minutes=30)
    assert controller.refresh_fee().fee == 25000

    controller.set_start_time(START - timedelta(minutes=60))
    assert controller.last_fee.minutes == 90
    assert controller.last_fee.fee == 75000

    await executor.flush(order_id)
    assert OrderRepository.get_order_by_id(order_id).date == START - timedelta(minutes=60)


@pytest.mark.asyncio
async def test_save_current_order_writes_full_snapshot(controller, executor):
    order_id = await open_session(controller)
    controller.state.discount = 7000
    controller.state.notes = ["постоянный гость"]

    write = controller.save_current_order()
    await executor.flush(order_id)

    assert write.reason == 'save'
    order = OrderRepository.get_order_by_id(order_id)
    assert order.discount == 7000
    assert order.note == ["постоянный гость"]


@pytest.mark.asyncio
async def test_save_current_order_without_order_is_noop(controller, executor):
    await controller.select_table(1)
    assert controller.save_current_order() is None
    assert not executor.has_pending(1)
