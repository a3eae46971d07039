"""
Жизненный цикл сессии стола

Свободен -> Занят (один открытый заказ) -> Оплачен | Отменён.
Контроллер владеет SessionState выбранного стола и согласует его с
хранилищами столов, заказов, клиентов и промокодов.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from billing.errors import (
    InvalidCouponError, NoActiveSessionError, SessionActionError,
    TableNotFoundError, TableOccupiedError, BillingConfigError,
)
from billing.persistence import OrderWrite, PersistenceExecutor
from billing.policy import BillingPolicy, TableFee, round_half_up
from billing.session import Bill, SessionState
from database.models import (
    BilliardTable, Order, Product, COUPON_PERCENT, COUPON_FIXED,
    ORDER_PENDING, PAYMENT_CASH, TABLE_OCCUPIED,
)

logger = logging.getLogger(__name__)


def release_stale_table(tables, table: BilliardTable, reason: str) -> None:
    """Освобождение стола с устаревшей ссылкой на заказ"""
    logger.warning(f"Стол #{table.id} ({table.name}): {reason}, стол освобождается")
    try:
        tables.release_table(table.id, expected_order_id=table.current_order_id)
    except Exception as e:
        logger.error(f"Не удалось освободить стол #{table.id}: {e}", exc_info=True)


def reconcile_tables(tables, orders) -> int:
    """
    Проход восстановления после сбоя между записью заказа и стола

    Освобождает столы, которые ссылаются на отсутствующий или закрытый
    заказ, а также занятые столы без заказа.
    """
    healed = 0
    for table in tables.get_all_tables():
        if table.current_order_id is None:
            if table.status != TABLE_OCCUPIED:
                continue
            reason = "занят без заказа"
        else:
            order = orders.get_order_by_id(table.current_order_id)
            if order is not None and order.is_pending:
                continue
            reason = f"заказ #{table.current_order_id} закрыт или удалён"
        release_stale_table(tables, table, reason)
        healed += 1
    return healed


@dataclass
class CheckoutResult:
    """Итог оплаты сессии"""
    order_id: int
    table_id: int
    amount: int
    customer_id: Optional[int] = None
    points_awarded: int = 0
    warnings: List[str] = field(default_factory=list)


class SessionController:
    """Контроллер сессии одного кассира"""

    def __init__(
        self,
        tables,
        orders,
        customers,
        coupons,
        executor: PersistenceExecutor,
        policy: BillingPolicy,
        points_per_amount: int = 1000,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if points_per_amount <= 0:
            raise BillingConfigError(
                f"Сумма за один балл должна быть больше нуля: {points_per_amount}"
            )
        self.tables = tables
        self.orders = orders
        self.customers = customers
        self.coupons = coupons
        self.executor = executor
        self.policy = policy
        self.points_per_amount = points_per_amount
        self.clock = clock
        self.state = SessionState()
        self.last_fee: Optional[TableFee] = None

    # --- Выбор стола ---

    async def select_table(self, table_id: int) -> SessionState:
        """
        Выбор стола и загрузка его открытого заказа

        Ссылка стола на несуществующий или закрытый заказ считается
        устаревшей: стол освобождается, состояние сбрасывается.
        """
        if self.state.order_id is not None:
            await self.executor.flush(self.state.order_id)

        try:
            table = self.tables.get_table_by_id(table_id)
        except Exception as e:
            logger.error(f"Ошибка загрузки стола #{table_id}: {e}", exc_info=True)
            raise SessionActionError('select_table', e) from e
        if table is None:
            self.state = SessionState()
            self.last_fee = None
            raise TableNotFoundError(table_id)

        order = self._load_pending_order(table)
        if order is not None:
            self.state = SessionState.from_order(order, table_rate=table.price_per_hour)
            self.state.table_id = table.id
        else:
            self.state = SessionState(table_id=table.id, table_rate=table.price_per_hour)

        self.refresh_fee()
        return self.state

    def deselect(self) -> None:
        """Сброс выбранного стола"""
        self.state = SessionState()
        self.last_fee = None

    def _load_pending_order(self, table: BilliardTable) -> Optional[Order]:
        if table.current_order_id is None:
            if table.status == TABLE_OCCUPIED:
                release_stale_table(self.tables, table, "занят без заказа")
            return None

        try:
            order = self.orders.get_order_by_id(table.current_order_id)
        except Exception as e:
            logger.error(f"Ошибка загрузки заказа #{table.current_order_id}: {e}", exc_info=True)
            raise SessionActionError('select_table', e) from e

        if order is None:
            release_stale_table(self.tables, table, f"заказ #{table.current_order_id} не найден")
            return None
        if order.status != ORDER_PENDING:
            release_stale_table(self.tables, table, f"заказ #{order.id} в статусе {order.status}")
            return None
        return order

    # --- Мутации корзины ---

    def _submit(self, write: Optional[OrderWrite]) -> Optional[OrderWrite]:
        self.executor.submit(write)
        return write

    def add_item(self, product: Product) -> Optional[OrderWrite]:
        return self._submit(self.state.add_item(product))

    def remove_item(self, product_id: int) -> Optional[OrderWrite]:
        return self._submit(self.state.remove_item(product_id))

    def set_quantity(self, product_id: int, quantity: int) -> Optional[OrderWrite]:
        return self._submit(self.state.set_quantity(product_id, quantity))

    def set_item_price(self, product_id: int, price: int) -> Optional[OrderWrite]:
        return self._submit(self.state.set_item_price(product_id, price))

    def clear_items(self) -> Optional[OrderWrite]:
        return self._submit(self.state.clear_items())

    def set_discount(self, amount: int) -> Optional[OrderWrite]:
        return self._submit(self.state.set_discount(amount))

    def set_custom_table_fee(self, amount: Optional[int]) -> Optional[OrderWrite]:
        write = self._submit(self.state.set_custom_table_fee(amount))
        self.refresh_fee()
        return write

    def set_custom_items_total(self, amount: Optional[int]) -> Optional[OrderWrite]:
        return self._submit(self.state.set_custom_items_total(amount))

    def set_custom_duration(self, minutes: Optional[int]) -> Optional[OrderWrite]:
        write = self._submit(self.state.set_custom_duration(minutes))
        self.refresh_fee()
        return write

    def set_notes(self, notes: List[str]) -> Optional[OrderWrite]:
        return self._submit(self.state.set_notes(notes))

    def set_customer(self, customer_id: Optional[int]) -> Optional[OrderWrite]:
        return self._submit(self.state.set_customer(customer_id))

    def set_start_time(self, started_at: datetime) -> Optional[OrderWrite]:
        write = self._submit(self.state.set_start_time(started_at))
        self.refresh_fee()
        return write

    def set_price_per_hour(self, price_per_hour: int) -> Optional[OrderWrite]:
        write = self._submit(self.state.set_price_per_hour(price_per_hour))
        self.refresh_fee()
        return write

    def save_current_order(self) -> Optional[OrderWrite]:
        """Сохранение всех изменяемых полей в открытый заказ"""
        return self._submit(self.state.save_write('save'))

    # --- Расчёты ---

    def refresh_fee(self) -> Optional[TableFee]:
        """Пересчёт стоимости аренды по таймеру"""
        self.last_fee = self.state.table_fee(self.policy, self.clock())
        return self.last_fee

    def bill(self) -> Bill:
        bill = self.state.bill(self.policy, self.clock())
        self.last_fee = bill.table_fee
        return bill

    async def apply_coupon(self, code: str) -> int:
        """Применение промокода как скидки на товары; возвращает сумму скидки"""
        code = code.strip().upper()
        try:
            coupon = self.coupons.find_by_code(code)
        except Exception as e:
            logger.error(f"Ошибка поиска промокода {code}: {e}", exc_info=True)
            raise SessionActionError('apply_coupon', e) from e

        if coupon is None or not coupon.is_active:
            raise InvalidCouponError(code)

        if coupon.type == COUPON_PERCENT:
            discount = round_half_up(self.state.items_subtotal() * coupon.value, 100)
        elif coupon.type == COUPON_FIXED:
            discount = coupon.value
        else:
            raise InvalidCouponError(code)

        self.set_discount(discount)
        logger.info(f"Промокод {code} применён к столу #{self.state.table_id}: скидка {discount}")
        return discount

    # --- Переходы ---

    def _require_table(self) -> int:
        if self.state.table_id is None:
            raise NoActiveSessionError("Стол не выбран")
        return self.state.table_id

    def _require_order(self) -> int:
        self._require_table()
        if self.state.order_id is None:
            raise NoActiveSessionError("На столе нет открытого заказа")
        return self.state.order_id

    async def start_session(self) -> int:
        """
        Открытие сессии: создание заказа и атомарный захват стола

        Возвращает ID нового заказа. Если стол успели занять, созданный
        заказ удаляется и выбрасывается TableOccupiedError.
        """
        table_id = self._require_table()
        if self.state.is_occupied:
            raise TableOccupiedError(table_id)

        try:
            table = self.tables.get_table_by_id(table_id)
        except Exception as e:
            raise SessionActionError('start_session', e) from e
        if table is None:
            raise TableNotFoundError(table_id)
        if table.is_occupied or table.current_order_id is not None:
            raise TableOccupiedError(table_id)

        price_per_hour = self.state.price_per_hour
        if price_per_hour is None:
            price_per_hour = table.price_per_hour
        if price_per_hour is None:
            raise BillingConfigError(f"У стола #{table_id} не задана цена за час")

        started_at = self.clock()
        order = Order(
            id=None,
            date=started_at,
            table_id=table_id,
            customer_id=self.state.customer_id,
            items=self.state.order_items(),
            discount=self.state.discount,
            price_per_hour=price_per_hour,
            custom_duration=self.state.custom_duration,
            custom_table_fee=self.state.custom_table_fee,
            custom_items_total=self.state.custom_items_total,
            note=list(self.state.notes),
            total=self.state.total(),
        )

        try:
            order_id = self.orders.create_order(order)
        except Exception as e:
            logger.error(f"Не удалось создать заказ для стола #{table_id}: {e}", exc_info=True)
            raise SessionActionError('start_session', e) from e

        try:
            claimed = self.tables.claim_table(table_id, order_id)
        except Exception as e:
            logger.error(f"Не удалось занять стол #{table_id}: {e}", exc_info=True)
            self._drop_orphan_order(order_id)
            raise SessionActionError('start_session', e) from e

        if not claimed:
            logger.warning(f"Стол #{table_id} занят параллельно, заказ #{order_id} удаляется")
            self._drop_orphan_order(order_id)
            raise TableOccupiedError(table_id)

        self.state.order_id = order_id
        self.state.is_occupied = True
        self.state.started_at = started_at
        self.state.price_per_hour = price_per_hour
        self.state.table_rate = table.price_per_hour
        self.refresh_fee()
        logger.info(f"Стол #{table_id}: открыта сессия, заказ #{order_id}")
        return order_id

    def _drop_orphan_order(self, order_id: int) -> None:
        try:
            self.orders.delete_order(order_id)
        except Exception as e:
            logger.error(f"Не удалось удалить лишний заказ #{order_id}: {e}", exc_info=True)

    async def checkout(self, final_amount: int, payment_method: str = PAYMENT_CASH) -> CheckoutResult:
        """
        Оплата: заказ закрывается с итоговой суммой, клиенту начисляются
        баллы, стол освобождается.

        final_amount уже включает аренду стола и скидки.
        """
        if final_amount < 0:
            raise ValueError(f"Сумма оплаты не может быть отрицательной: {final_amount}")
        order_id = self._require_order()
        table_id = self.state.table_id
        customer_id = self.state.customer_id

        # Фоновые сохранения больше не нужны: итоговая запись их заменяет
        await self.executor.discard(order_id)

        try:
            completed = self.orders.complete_order(
                order_id,
                total=final_amount,
                items=self.state.order_items(),
                payment_method=payment_method,
                customer_id=customer_id,
            )
        except Exception as e:
            logger.error(f"Не удалось закрыть заказ #{order_id}: {e}", exc_info=True)
            raise SessionActionError('checkout', e) from e
        if not completed:
            raise NoActiveSessionError(f"Заказ #{order_id} уже закрыт или удалён")

        result = CheckoutResult(
            order_id=order_id,
            table_id=table_id,
            amount=final_amount,
            customer_id=customer_id,
        )

        if customer_id is not None:
            points = final_amount // self.points_per_amount
            try:
                if self.customers.add_points(customer_id, points):
                    result.points_awarded = points
                else:
                    result.warnings.append(f"Клиент #{customer_id} не найден, баллы не начислены")
            except Exception as e:
                logger.error(
                    f"Не удалось начислить {points} баллов клиенту #{customer_id}: {e}",
                    exc_info=True
                )
                result.warnings.append(f"Баллы ({points}) не начислены: {e}")

        try:
            self.tables.release_table(table_id, expected_order_id=order_id)
        except Exception as e:
            # Стол со ссылкой на оплаченный заказ освободит проход восстановления
            logger.error(f"Не удалось освободить стол #{table_id}: {e}", exc_info=True)
            result.warnings.append(f"Стол не освобождён: {e}")

        self.deselect()
        logger.info(
            f"Стол #{table_id}: заказ #{order_id} оплачен на {final_amount}, "
            f"баллов начислено {result.points_awarded}"
        )
        return result

    async def reset_table(self) -> int:
        """Отмена сессии: заказ удаляется, стол освобождается"""
        order_id = self._require_order()
        table_id = self.state.table_id

        await self.executor.discard(order_id)

        try:
            self.orders.delete_order(order_id)
        except Exception as e:
            logger.error(f"Не удалось удалить заказ #{order_id}: {e}", exc_info=True)
            raise SessionActionError('reset_table', e) from e

        try:
            self.tables.release_table(table_id, expected_order_id=order_id)
        except Exception as e:
            logger.error(f"Не удалось освободить стол #{table_id}: {e}", exc_info=True)
            self.deselect()
            raise SessionActionError('reset_table', e) from e

        self.deselect()
        logger.info(f"Стол #{table_id}: сессия отменена, заказ #{order_id} удалён")
        return order_id
