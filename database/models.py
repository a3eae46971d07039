"""
Модели данных для работы с БД
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

TABLE_AVAILABLE = 'available'
TABLE_OCCUPIED = 'occupied'

ORDER_PENDING = 'pending'
ORDER_COMPLETED = 'completed'
ORDER_CANCELLED = 'cancelled'

COUPON_PERCENT = 'percent'
COUPON_FIXED = 'fixed'

PAYMENT_CASH = 'cash'
PAYMENT_TRANSFER = 'transfer'


@dataclass
class Product:
    """Модель товара"""
    id: Optional[int]
    name: str
    price: int
    cost: int = 0
    stock: int = 0
    category: str = ''
    barcode: str = ''


@dataclass
class BilliardTable:
    """Модель бильярдного стола"""
    id: int
    name: str
    status: str = TABLE_AVAILABLE  # available, occupied
    price_per_hour: Optional[int] = None
    current_order_id: Optional[int] = None

    @property
    def is_occupied(self) -> bool:
        return self.status == TABLE_OCCUPIED


@dataclass
class OrderItem:
    """Позиция заказа (снимок товара на момент продажи)"""
    product_id: int
    name: str
    price: int
    quantity: int
    original_price: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'product_id': self.product_id,
            'name': self.name,
            'price': self.price,
            'original_price': self.original_price,
            'quantity': self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'OrderItem':
        # Старые записи могли хранить ключи в camelCase
        product_id = data.get('product_id', data.get('productId'))
        original_price = data.get('original_price', data.get('originalPrice'))
        return cls(
            product_id=product_id,
            name=data.get('name', ''),
            price=int(data.get('price', 0)),
            quantity=int(data.get('quantity', 1)),
            original_price=int(original_price) if original_price is not None else None,
        )


@dataclass
class Order:
    """Модель заказа (сессии стола)"""
    id: Optional[int]
    date: datetime
    status: str = ORDER_PENDING  # pending, completed, cancelled
    table_id: Optional[int] = None
    customer_id: Optional[int] = None
    items: List[OrderItem] = field(default_factory=list)
    discount: int = 0
    price_per_hour: Optional[int] = None
    custom_duration: Optional[int] = None
    custom_table_fee: Optional[int] = None
    custom_items_total: Optional[int] = None
    note: List[str] = field(default_factory=list)
    total: int = 0
    payment_method: Optional[str] = None  # cash, transfer

    @property
    def is_pending(self) -> bool:
        return self.status == ORDER_PENDING


@dataclass
class Customer:
    """Модель клиента"""
    id: Optional[int]
    name: str
    phone: str
    points: int = 0


@dataclass
class Coupon:
    """Модель промокода"""
    id: Optional[int]
    code: str
    type: str  # percent, fixed
    value: int
    is_active: bool = True
    description: str = ''


def normalize_notes(value: Any) -> List[str]:
    """
    Приведение заметок заказа к списку строк

    Старые заказы хранили заметку одной строкой, новые — JSON-списком.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(note) for note in value if note is not None and str(note) != '']
    text = str(value)
    if not text.strip():
        return []
    if text.lstrip().startswith('['):
        try:
            parsed = json.loads(text)
        except ValueError:
            return [text]
        if isinstance(parsed, list):
            return normalize_notes(parsed)
    return [text]
