"""
Репозиторий для работы с данными
"""
import json
from datetime import datetime
from typing import Any, Dict, List, Optional
from database.database import get_db
from database.models import (
    BilliardTable, Order, OrderItem, Customer, Coupon, Product, normalize_notes,
    TABLE_AVAILABLE, TABLE_OCCUPIED, ORDER_PENDING, ORDER_COMPLETED,
)
from utils.time_utils import parse_timestamp


class _Unset:
    """Маркер «поле не меняется» для частичных обновлений"""

    def __repr__(self):
        return 'UNSET'


# None в частичном обновлении означает «очистить поле», а UNSET означает «не трогать»
UNSET = _Unset()

ORDER_FIELDS = (
    'date', 'status', 'table_id', 'customer_id', 'items', 'discount',
    'price_per_hour', 'custom_duration', 'custom_table_fee',
    'custom_items_total', 'note', 'total', 'payment_method',
)


def _ts(dt: datetime) -> str:
    """Формат хранения дат"""
    return dt.isoformat(sep=' ', timespec='seconds')


def _dump_items(items) -> str:
    return json.dumps([
        item.to_dict() if isinstance(item, OrderItem) else dict(item)
        for item in items
    ], ensure_ascii=False)


def _load_items(raw) -> List[OrderItem]:
    if not raw:
        return []
    data = json.loads(raw) if isinstance(raw, str) else raw
    return [OrderItem.from_dict(item) for item in data]


def _order_column(field: str, value: Any) -> Any:
    """Преобразование значения поля заказа в значение колонки"""
    if value is None:
        return None
    if field == 'items':
        return _dump_items(value)
    if field == 'note':
        return json.dumps(normalize_notes(value), ensure_ascii=False)
    if field == 'date':
        return _ts(parse_timestamp(value))
    return value


class TableRepository:
    """Репозиторий для работы со столами"""

    @staticmethod
    def get_all_tables() -> List[BilliardTable]:
        """Получение всех столов"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM billiard_tables ORDER BY id")
            rows = cursor.fetchall()
            return [TableRepository._row_to_table(row) for row in rows]

    @staticmethod
    def get_table_by_id(table_id: int) -> Optional[BilliardTable]:
        """Получение стола по ID"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM billiard_tables WHERE id = ?", (table_id,))
            row = cursor.fetchone()
            return TableRepository._row_to_table(row) if row else None

    @staticmethod
    def update_table(table_id: int, status=UNSET, price_per_hour=UNSET,
                     current_order_id=UNSET) -> bool:
        """
        Частичное обновление стола

        Поля со значением UNSET не меняются, None очищает значение.
        """
        changes = {
            'status': status,
            'price_per_hour': price_per_hour,
            'current_order_id': current_order_id,
        }
        changes = {key: value for key, value in changes.items() if value is not UNSET}
        if not changes:
            return False

        assignments = ", ".join(f"{key} = ?" for key in changes)
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE billiard_tables SET {assignments} WHERE id = ?",
                (*changes.values(), table_id)
            )
            return cursor.rowcount > 0

    @staticmethod
    def claim_table(table_id: int, order_id: int) -> bool:
        """
        Атомарный захват стола заказом

        Срабатывает только если стол свободен и не ссылается на заказ.
        """
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE billiard_tables SET status = ?, current_order_id = ?
                WHERE id = ? AND status = ? AND current_order_id IS NULL
            """, (TABLE_OCCUPIED, order_id, table_id, TABLE_AVAILABLE))
            return cursor.rowcount > 0

    @staticmethod
    def release_table(table_id: int, expected_order_id: Optional[int] = None) -> bool:
        """
        Освобождение стола

        Если передан expected_order_id, стол освобождается только пока
        ссылается именно на этот заказ.
        """
        query = """
            UPDATE billiard_tables SET status = ?, current_order_id = NULL
            WHERE id = ?
        """
        params = [TABLE_AVAILABLE, table_id]
        if expected_order_id is not None:
            query += " AND current_order_id = ?"
            params.append(expected_order_id)

        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_table(row) -> BilliardTable:
        """Преобразование строки БД в объект BilliardTable"""
        return BilliardTable(
            id=row['id'],
            name=row['name'],
            status=row['status'] or TABLE_AVAILABLE,
            price_per_hour=row['price_per_hour'],
            current_order_id=row['current_order_id']
        )


class OrderRepository:
    """Репозиторий для работы с заказами"""

    @staticmethod
    def create_order(order: Order) -> int:
        """Создание нового заказа"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO orders
                (date, status, table_id, customer_id, items, discount, price_per_hour,
                 custom_duration, custom_table_fee, custom_items_total, note, total,
                 payment_method)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                _ts(order.date),
                order.status,
                order.table_id,
                order.customer_id,
                _dump_items(order.items),
                order.discount,
                order.price_per_hour,
                order.custom_duration,
                order.custom_table_fee,
                order.custom_items_total,
                json.dumps(normalize_notes(order.note), ensure_ascii=False),
                order.total,
                order.payment_method
            ))
            return cursor.lastrowid

    @staticmethod
    def get_order_by_id(order_id: int) -> Optional[Order]:
        """Получение заказа по ID"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM orders WHERE id = ?", (order_id,))
            row = cursor.fetchone()
            return OrderRepository._row_to_order(row) if row else None

    @staticmethod
    def get_pending_orders() -> List[Order]:
        """Открытые заказы"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM orders WHERE status = ? ORDER BY date",
                (ORDER_PENDING,)
            )
            return [OrderRepository._row_to_order(row) for row in cursor.fetchall()]

    @staticmethod
    def get_completed_orders_between(start: datetime, end: datetime) -> List[Order]:
        """Оплаченные заказы за период [start, end)"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM orders
                WHERE status = ? AND date >= ? AND date < ?
                ORDER BY date
            """, (ORDER_COMPLETED, _ts(start), _ts(end)))
            return [OrderRepository._row_to_order(row) for row in cursor.fetchall()]

    @staticmethod
    def update_order(order_id: int, fields: Dict[str, Any], only_pending: bool = True) -> bool:
        """
        Частичное обновление заказа

        По умолчанию меняются только открытые заказы: оплаченные и
        отменённые остаются неизменной историей.
        """
        unknown = set(fields) - set(ORDER_FIELDS)
        if unknown:
            raise ValueError(f"Неизвестные поля заказа: {', '.join(sorted(unknown))}")
        if not fields:
            return False

        assignments = ", ".join(f"{key} = ?" for key in fields)
        params = [_order_column(key, value) for key, value in fields.items()]
        query = f"UPDATE orders SET {assignments} WHERE id = ?"
        params.append(order_id)
        if only_pending:
            query += " AND status = ?"
            params.append(ORDER_PENDING)

        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount > 0

    @staticmethod
    def complete_order(order_id: int, total: int, items: List[OrderItem],
                       payment_method: str, customer_id: Optional[int]) -> bool:
        """Перевод открытого заказа в оплаченные"""
        return OrderRepository.update_order(order_id, {
            'status': ORDER_COMPLETED,
            'total': total,
            'items': items,
            'payment_method': payment_method,
            'customer_id': customer_id,
        })

    @staticmethod
    def delete_order(order_id: int) -> bool:
        """Удаление заказа"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM orders WHERE id = ?", (order_id,))
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_order(row) -> Order:
        """Преобразование строки БД в объект Order"""
        return Order(
            id=row['id'],
            date=parse_timestamp(row['date']),
            status=row['status'],
            table_id=row['table_id'],
            customer_id=row['customer_id'],
            items=_load_items(row['items']),
            discount=row['discount'] or 0,
            price_per_hour=row['price_per_hour'],
            custom_duration=row['custom_duration'],
            custom_table_fee=row['custom_table_fee'],
            custom_items_total=row['custom_items_total'],
            note=normalize_notes(row['note']),
            total=row['total'] or 0,
            payment_method=row['payment_method']
        )


class CustomerRepository:
    """Репозиторий для работы с клиентами"""

    @staticmethod
    def create_customer(customer: Customer) -> int:
        """Создание клиента"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO customers (name, phone, points) VALUES (?, ?, ?)",
                (customer.name, customer.phone, customer.points)
            )
            return cursor.lastrowid

    @staticmethod
    def get_customer_by_id(customer_id: int) -> Optional[Customer]:
        """Получение клиента по ID"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM customers WHERE id = ?", (customer_id,))
            row = cursor.fetchone()
            return CustomerRepository._row_to_customer(row) if row else None

    @staticmethod
    def get_customer_by_phone(phone: str) -> Optional[Customer]:
        """Поиск клиента по телефону"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM customers WHERE phone = ?", (phone,))
            row = cursor.fetchone()
            return CustomerRepository._row_to_customer(row) if row else None

    @staticmethod
    def add_points(customer_id: int, points: int) -> bool:
        """Начисление баллов одним запросом"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE customers SET points = COALESCE(points, 0) + ? WHERE id = ?",
                (points, customer_id)
            )
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_customer(row) -> Customer:
        return Customer(
            id=row['id'],
            name=row['name'],
            phone=row['phone'],
            points=row['points'] or 0
        )


class CouponRepository:
    """Репозиторий промокодов"""

    @staticmethod
    def create_coupon(coupon: Coupon) -> int:
        """Создание промокода"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO coupons (code, type, value, is_active, description)
                VALUES (?, ?, ?, ?, ?)
            """, (
                coupon.code.upper(),
                coupon.type,
                coupon.value,
                int(coupon.is_active),
                coupon.description
            ))
            return cursor.lastrowid

    @staticmethod
    def find_by_code(code: str) -> Optional[Coupon]:
        """Поиск промокода по коду (без учёта регистра)"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM coupons WHERE code = ?", (code.strip().upper(),))
            row = cursor.fetchone()
            if row:
                return Coupon(
                    id=row['id'],
                    code=row['code'],
                    type=row['type'],
                    value=row['value'],
                    is_active=bool(row['is_active']),
                    description=row['description'] or ''
                )
            return None


class ProductRepository:
    """Репозиторий товаров"""

    @staticmethod
    def get_all_products() -> List[Product]:
        """Получение всех товаров"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM products ORDER BY category, name")
            return [ProductRepository._row_to_product(row) for row in cursor.fetchall()]

    @staticmethod
    def get_product_by_id(product_id: int) -> Optional[Product]:
        """Получение товара по ID"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM products WHERE id = ?", (product_id,))
            row = cursor.fetchone()
            return ProductRepository._row_to_product(row) if row else None

    @staticmethod
    def _row_to_product(row) -> Product:
        return Product(
            id=row['id'],
            name=row['name'],
            price=row['price'],
            cost=row['cost'] or 0,
            stock=row['stock'] or 0,
            category=row['category'] or '',
            barcode=row['barcode'] or ''
        )
