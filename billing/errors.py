"""
Исключения движка тарификации и сессий
"""
from typing import Optional


class BillingError(Exception):
    """Базовая ошибка модуля billing"""


class BillingConfigError(BillingError):
    """Ошибка конфигурации тарификации (нулевой блок, нет тарифа и т.п.)"""


class SessionError(BillingError):
    """Базовая ошибка жизненного цикла сессии стола"""


class TableNotFoundError(SessionError):
    """Стол не найден"""

    def __init__(self, table_id: int):
        super().__init__(f"Стол #{table_id} не найден")
        self.table_id = table_id


class TableOccupiedError(SessionError):
    """Стол уже занят другой сессией"""

    def __init__(self, table_id: int):
        super().__init__(f"Стол #{table_id} уже занят")
        self.table_id = table_id


class NoActiveSessionError(SessionError):
    """Операция требует открытого заказа на выбранном столе"""


class InvalidCouponError(SessionError):
    """Промокод не найден или не активен"""

    def __init__(self, code: str):
        super().__init__(f"Промокод {code} недействителен")
        self.code = code


class SessionActionError(SessionError):
    """Ошибка хранилища при выполнении действия пользователя"""

    def __init__(self, action: str, cause: Optional[Exception] = None):
        message = f"Не удалось выполнить действие '{action}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.action = action
        self.cause = cause
