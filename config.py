"""
Конфигурация проекта
"""
import os
from dataclasses import dataclass
from typing import List

from billing.policy import BillingPolicy


def _get_bool(name: str, default: bool) -> bool:
    """Чтение булевого флага из переменной окружения"""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _get_ids(name: str) -> List[int]:
    """Парсинг списка ID через запятую"""
    ids_str = os.getenv(name, '')
    if not ids_str:
        return []
    return [int(id.strip()) for id in ids_str.split(',') if id.strip()]


@dataclass
class Settings:
    """Настройки приложения"""
    # Telegram
    BOT_TOKEN: str = os.getenv('BOT_TOKEN', '')
    ADMIN_IDS: List[int] = None
    CASHIER_IDS: List[int] = None

    # База данных
    DB_PATH: str = os.getenv('DB_PATH', 'data/billiard_pos.db')

    # Тарификация столов
    ENABLE_BLOCK_BILLING: bool = _get_bool('ENABLE_BLOCK_BILLING', False)
    BILLING_BLOCK_MINUTES: int = int(os.getenv('BILLING_BLOCK_MINUTES', '60'))
    GRACE_PERIOD_MINUTES: int = int(os.getenv('GRACE_PERIOD_MINUTES', '5'))
    FEE_ROUNDING_UNIT: int = int(os.getenv('FEE_ROUNDING_UNIT', '1000'))
    CURRENCY_SYMBOL: str = os.getenv('CURRENCY_SYMBOL', '₽')

    # Бонусная программа: сколько денег за один балл
    POINTS_PER_AMOUNT: int = int(os.getenv('POINTS_PER_AMOUNT', '1000'))

    # Фоновое сохранение заказов
    PERSIST_RETRY_ATTEMPTS: int = int(os.getenv('PERSIST_RETRY_ATTEMPTS', '3'))
    PERSIST_RETRY_DELAY_SECONDS: float = float(os.getenv('PERSIST_RETRY_DELAY_SECONDS', '1.0'))

    # Периодические задачи (минуты)
    FEE_REFRESH_MINUTES: int = 1
    RECONCILE_MINUTES: int = 5

    # Чек
    SHOP_NAME: str = os.getenv('SHOP_NAME', 'Бильярдный клуб')
    SHOP_ADDRESS: str = os.getenv('SHOP_ADDRESS', 'ул. Ленина, 1')
    SHOP_PHONE: str = os.getenv('SHOP_PHONE', '+7 900 000-00-00')
    RECEIPT_FOOTER: str = os.getenv('RECEIPT_FOOTER', 'Спасибо! Ждём вас снова!')
    RECEIPT_HEADER_LAYOUT: List[str] = None
    RECEIPT_PAPER_SIZE: str = os.getenv('RECEIPT_PAPER_SIZE', '80')   # 58 или 80 мм
    RECEIPT_ALIGNMENT: str = os.getenv('RECEIPT_ALIGNMENT', 'center')  # left, center, right

    # Оплата переводом (только ссылка на QR, без интеграции)
    QR_BANK_CODE: str = os.getenv('QR_BANK_CODE', 'MB')
    QR_ACCOUNT: str = os.getenv('QR_ACCOUNT', '0000000000')

    def __post_init__(self):
        """Инициализация после создания объекта"""
        if not self.BOT_TOKEN:
            raise ValueError("BOT_TOKEN не установлен")

        # Парсинг списков ID из переменных окружения
        if self.ADMIN_IDS is None:
            self.ADMIN_IDS = _get_ids('ADMIN_IDS')

        if self.CASHIER_IDS is None:
            self.CASHIER_IDS = _get_ids('CASHIER_IDS')

        if self.RECEIPT_HEADER_LAYOUT is None:
            layout_str = os.getenv('RECEIPT_HEADER_LAYOUT', 'shop_name,shop_address,shop_phone')
            self.RECEIPT_HEADER_LAYOUT = [key.strip() for key in layout_str.split(',') if key.strip()]

    def is_admin(self, user_id: int) -> bool:
        """Проверка, является ли пользователь администратором"""
        return user_id in self.ADMIN_IDS

    def is_cashier(self, user_id: int) -> bool:
        """Проверка доступа к кассе (пустой список — доступ у всех)"""
        if self.is_admin(user_id):
            return True
        return not self.CASHIER_IDS or user_id in self.CASHIER_IDS

    def billing_policy(self) -> BillingPolicy:
        """Политика тарификации из текущих настроек"""
        return BillingPolicy(
            enable_block_billing=self.ENABLE_BLOCK_BILLING,
            block_minutes=self.BILLING_BLOCK_MINUTES,
            grace_period_minutes=self.GRACE_PERIOD_MINUTES,
            rounding_unit=self.FEE_ROUNDING_UNIT,
        )


# Глобальный экземпляр настроек
settings = Settings()
