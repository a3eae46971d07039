"""
Текст счёта и чека
"""
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode

from config import settings
from billing.session import Bill, CartItem
from database.models import Customer
from utils.time_utils import format_datetime, format_duration

PAPER_WIDTH = {'58': 32, '80': 48}


def _num(amount: int) -> str:
    return f"{amount:,}".replace(',', ' ')


def format_money(amount: int) -> str:
    """Сумма с разделителями разрядов: 75 000 ₽"""
    return f"{_num(amount)} {settings.CURRENCY_SYMBOL}"


def _align(text: str, width: int) -> str:
    if settings.RECEIPT_ALIGNMENT == 'left':
        return text.ljust(width).rstrip()
    if settings.RECEIPT_ALIGNMENT == 'right':
        return text.rjust(width)
    return text.center(width).rstrip()


def _row(left: str, right: str, width: int) -> str:
    """Строка «название ..... сумма»"""
    space = width - len(right) - 1
    if len(left) > space:
        left = left[:max(space - 1, 0)] + '…'
    return f"{left.ljust(space)} {right}"


def _header_lines() -> List[str]:
    values = {
        'shop_name': settings.SHOP_NAME,
        'shop_address': settings.SHOP_ADDRESS,
        'shop_phone': settings.SHOP_PHONE,
    }
    return [values[key] for key in settings.RECEIPT_HEADER_LAYOUT if values.get(key)]


def render_bill(table_name: str, items: List[CartItem], bill: Bill,
                notes: Optional[List[str]] = None) -> str:
    """Карточка стола для кассира"""
    lines = [f"🎱 {table_name}"]

    fee = bill.table_fee
    if fee is not None:
        lines.append(f"⏱ {fee.label}: {format_money(fee.fee)}")
        if fee.is_override and fee.calculated_fee != fee.fee:
            rate = fee.effective_hourly_rate
            rate_text = f", фактически {format_money(rate)}/ч" if rate is not None else ""
            lines.append(f"   по тарифу {format_money(fee.calculated_fee)}{rate_text}")
    else:
        lines.append("Стол свободен")

    if items:
        lines.append("")
        for item in items:
            price = format_money(item.price)
            if item.is_discounted:
                price += f" (было {format_money(item.original_price)})"
            lines.append(f"• {item.name} × {item.quantity} — {price}")

    lines.append("")
    lines.append(f"Товары: {format_money(bill.items_subtotal)}")
    if bill.discount:
        lines.append(f"Скидка: −{format_money(bill.discount)}")
    lines.append(f"💰 Итого: {format_money(bill.grand_total)}")

    if notes:
        lines.append("")
        lines.extend(f"📝 {note}" for note in notes)

    return "\n".join(lines)


def render_receipt(
    order_id: int,
    table_name: str,
    items: List[CartItem],
    bill: Bill,
    paid_amount: int,
    customer: Optional[Customer] = None,
    points_awarded: int = 0,
    printed_at: Optional[datetime] = None,
) -> str:
    """Чек по настройкам печати (ширина ленты, шапка, подвал)"""
    width = PAPER_WIDTH.get(settings.RECEIPT_PAPER_SIZE, PAPER_WIDTH['80'])
    printed_at = printed_at or datetime.now()
    separator = '-' * width

    lines = [_align(line, width) for line in _header_lines()]
    lines.append(separator)
    lines.append(f"Чек #{order_id}  {format_datetime(printed_at)}")
    lines.append(f"Стол: {table_name}")
    if customer is not None:
        lines.append(f"Клиент: {customer.name} ({customer.phone})")
    lines.append(separator)

    for item in items:
        lines.append(_row(f"{item.name} x{item.quantity}", _num(item.line_total), width))
        if item.is_discounted:
            lines.append(f"  цена {_num(item.price)} вместо {_num(item.original_price)}")

    fee = bill.table_fee
    if fee is not None:
        lines.append(_row(f"Аренда {format_duration(fee.minutes)}", _num(fee.fee), width))

    lines.append(separator)
    lines.append(_row("Товары", _num(bill.items_subtotal), width))
    if bill.discount:
        lines.append(_row("Скидка", "-" + _num(bill.discount), width))
    lines.append(_row("ИТОГО", format_money(paid_amount), width))
    if points_awarded:
        lines.append(f"Начислено баллов: {points_awarded}")

    if settings.RECEIPT_FOOTER:
        lines.append(separator)
        lines.append(_align(settings.RECEIPT_FOOTER, width))

    return "\n".join(lines)


def transfer_qr_url(amount: int, order_id: Optional[int] = None) -> str:
    """Ссылка на картинку QR для оплаты переводом (только отображение)"""
    info = f"Оплата заказа {order_id}" if order_id else "Оплата заказа"
    query = urlencode({'amount': amount, 'addInfo': info})
    return f"https://img.vietqr.io/image/{settings.QR_BANK_CODE}-{settings.QR_ACCOUNT}-compact.jpg?{query}"
