"""
Состояние сессии стола (корзина)

Рабочая копия открытого заказа: позиции, клиент, заметки, скидка и
ручные значения. Каждая мутация меняет состояние в памяти и возвращает
OrderWrite — описание записи, которую нужно применить к хранилищу.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from billing.persistence import OrderWrite
from billing.policy import BillingPolicy, TableFee, calculate_table_fee
from database.models import Order, OrderItem, Product
from utils.time_utils import elapsed_minutes


@dataclass
class CartItem:
    """Позиция корзины с редактируемой ценой"""
    product_id: int
    name: str
    price: int
    original_price: int
    quantity: int = 1

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    @property
    def is_discounted(self) -> bool:
        return self.price != self.original_price

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            name=self.name,
            price=self.price,
            quantity=self.quantity,
            original_price=self.original_price,
        )

    @classmethod
    def from_order_item(cls, item: OrderItem) -> 'CartItem':
        original = item.original_price if item.original_price is not None else item.price
        return cls(
            product_id=item.product_id,
            name=item.name,
            price=item.price,
            original_price=original,
            quantity=item.quantity,
        )


@dataclass(frozen=True)
class Bill:
    """Итоги для отображения и оплаты"""
    items_subtotal: int
    discount: int
    items_total: int
    table_fee: Optional[TableFee]

    @property
    def table_amount(self) -> int:
        return self.table_fee.fee if self.table_fee else 0

    @property
    def grand_total(self) -> int:
        return self.items_total + self.table_amount


def _check_amount(name: str, value: Optional[int]):
    if value is not None and value < 0:
        raise ValueError(f"{name} не может быть отрицательным: {value}")


@dataclass
class SessionState:
    """Рабочая копия сессии выбранного стола"""
    table_id: Optional[int] = None
    order_id: Optional[int] = None
    is_occupied: bool = False
    started_at: Optional[datetime] = None
    table_rate: Optional[int] = None      # текущий тариф стола
    price_per_hour: Optional[int] = None  # тариф, зафиксированный в заказе
    items: List[CartItem] = field(default_factory=list)
    customer_id: Optional[int] = None
    notes: List[str] = field(default_factory=list)
    discount: int = 0
    custom_table_fee: Optional[int] = None
    custom_items_total: Optional[int] = None
    custom_duration: Optional[int] = None

    @classmethod
    def from_order(cls, order: Order, table_rate: Optional[int] = None) -> 'SessionState':
        """Восстановление состояния из открытого заказа"""
        return cls(
            table_id=order.table_id,
            order_id=order.id,
            is_occupied=True,
            started_at=order.date,
            table_rate=table_rate,
            price_per_hour=order.price_per_hour,
            items=[CartItem.from_order_item(item) for item in order.items],
            customer_id=order.customer_id,
            notes=list(order.note),
            discount=order.discount or 0,
            custom_table_fee=order.custom_table_fee,
            custom_items_total=order.custom_items_total,
            custom_duration=order.custom_duration,
        )

    # --- Итоги ---

    def find_item(self, product_id: int) -> Optional[CartItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def items_subtotal(self) -> int:
        """Сумма по позициям; ручная сумма товаров имеет приоритет"""
        if self.custom_items_total is not None:
            return self.custom_items_total
        return sum(item.line_total for item in self.items)

    def total(self) -> int:
        """Сумма товаров со скидкой, не меньше нуля"""
        return max(0, self.items_subtotal() - self.discount)

    @property
    def effective_rate(self) -> Optional[int]:
        """Тариф заказа важнее текущего тарифа стола"""
        if self.price_per_hour is not None:
            return self.price_per_hour
        return self.table_rate

    def billed_minutes(self, now: Optional[datetime] = None) -> int:
        if self.custom_duration is not None:
            return max(0, self.custom_duration)
        return elapsed_minutes(self.started_at, now)

    def table_fee(self, policy: BillingPolicy, now: Optional[datetime] = None) -> Optional[TableFee]:
        """Стоимость аренды; None, пока сессия не начата"""
        if not self.is_occupied:
            return None
        return calculate_table_fee(
            self.billed_minutes(now),
            self.effective_rate,
            policy,
            custom_fee=self.custom_table_fee,
        )

    def bill(self, policy: BillingPolicy, now: Optional[datetime] = None) -> Bill:
        return Bill(
            items_subtotal=self.items_subtotal(),
            discount=self.discount,
            items_total=self.total(),
            table_fee=self.table_fee(policy, now),
        )

    def order_items(self) -> List[OrderItem]:
        return [item.to_order_item() for item in self.items]

    # --- Сохранение ---

    def snapshot(self) -> dict:
        """Все изменяемые поля открытого заказа"""
        fields = {
            'items': self.order_items(),
            'customer_id': self.customer_id,
            'note': list(self.notes),
            'discount': self.discount,
            'custom_table_fee': self.custom_table_fee,
            'custom_items_total': self.custom_items_total,
            'custom_duration': self.custom_duration,
            'total': self.total(),
        }
        if self.price_per_hour is not None:
            fields['price_per_hour'] = self.price_per_hour
        if self.started_at is not None:
            fields['date'] = self.started_at
        return fields

    def save_write(self, reason: str) -> Optional[OrderWrite]:
        """Запись текущего состояния в открытый заказ (если он есть)"""
        if self.order_id is None:
            return None
        return OrderWrite(order_id=self.order_id, fields=self.snapshot(), reason=reason)

    # --- Мутации ---

    def add_item(self, product: Product) -> Optional[OrderWrite]:
        """Добавление товара: повторное добавление увеличивает количество"""
        item = self.find_item(product.id)
        if item:
            item.quantity += 1
        else:
            self.items.append(CartItem(
                product_id=product.id,
                name=product.name,
                price=product.price,
                original_price=product.price,
            ))
        return self.save_write('add_item')

    def remove_item(self, product_id: int) -> Optional[OrderWrite]:
        self.items = [item for item in self.items if item.product_id != product_id]
        return self.save_write('remove_item')

    def set_quantity(self, product_id: int, quantity: int) -> Optional[OrderWrite]:
        """Изменение количества; ноль и меньше удаляет позицию"""
        if quantity <= 0:
            return self.remove_item(product_id)
        item = self.find_item(product_id)
        if item:
            item.quantity = quantity
        return self.save_write('set_quantity')

    def set_item_price(self, product_id: int, price: int) -> Optional[OrderWrite]:
        """Ручная цена позиции; каталог не меняется"""
        _check_amount("Цена", price)
        item = self.find_item(product_id)
        if item:
            item.price = price
        return self.save_write('set_item_price')

    def clear_items(self) -> Optional[OrderWrite]:
        self.items = []
        return self.save_write('clear_items')

    def set_discount(self, amount: int) -> Optional[OrderWrite]:
        _check_amount("Скидка", amount)
        self.discount = amount
        return self.save_write('set_discount')

    def set_custom_table_fee(self, amount: Optional[int]) -> Optional[OrderWrite]:
        _check_amount("Сумма за стол", amount)
        self.custom_table_fee = amount
        return self.save_write('set_custom_table_fee')

    def set_custom_items_total(self, amount: Optional[int]) -> Optional[OrderWrite]:
        _check_amount("Сумма товаров", amount)
        self.custom_items_total = amount
        return self.save_write('set_custom_items_total')

    def set_custom_duration(self, minutes: Optional[int]) -> Optional[OrderWrite]:
        _check_amount("Длительность", minutes)
        self.custom_duration = minutes
        return self.save_write('set_custom_duration')

    def set_notes(self, notes: List[str]) -> Optional[OrderWrite]:
        self.notes = [note for note in notes if note]
        return self.save_write('set_notes')

    def set_customer(self, customer_id: Optional[int]) -> Optional[OrderWrite]:
        self.customer_id = customer_id
        return self.save_write('set_customer')

    def set_start_time(self, started_at: datetime) -> Optional[OrderWrite]:
        self.started_at = started_at
        return self.save_write('set_start_time')

    def set_price_per_hour(self, price_per_hour: int) -> Optional[OrderWrite]:
        _check_amount("Цена за час", price_per_hour)
        self.price_per_hour = price_per_hour
        return self.save_write('set_price_per_hour')
