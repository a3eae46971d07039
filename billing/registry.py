"""
Контроллеры сессий кассиров

У каждого кассира свой выбранный стол и своя рабочая копия заказа;
фоновое сохранение общее.
"""
from typing import Callable, Dict, List

from config import settings
from billing.lifecycle import SessionController
from billing.persistence import PersistenceExecutor
from database.repository import (
    TableRepository, OrderRepository, CustomerRepository, CouponRepository,
)


class SessionRegistry:
    """Хранилище контроллеров по user_id"""

    def __init__(self, factory: Callable[[], SessionController]):
        self._factory = factory
        self._controllers: Dict[int, SessionController] = {}

    def get(self, user_id: int) -> SessionController:
        controller = self._controllers.get(user_id)
        if controller is None:
            controller = self._factory()
            self._controllers[user_id] = controller
        return controller

    def active(self) -> List[SessionController]:
        """Контроллеры с открытой сессией"""
        return [c for c in self._controllers.values() if c.state.is_occupied]

    def all(self) -> List[SessionController]:
        return list(self._controllers.values())


executor = PersistenceExecutor(
    OrderRepository,
    attempts=settings.PERSIST_RETRY_ATTEMPTS,
    delay=settings.PERSIST_RETRY_DELAY_SECONDS,
)


def build_controller() -> SessionController:
    """Контроллер на репозиториях SQLite и текущих настройках"""
    return SessionController(
        tables=TableRepository,
        orders=OrderRepository,
        customers=CustomerRepository,
        coupons=CouponRepository,
        executor=executor,
        policy=settings.billing_policy(),
        points_per_amount=settings.POINTS_PER_AMOUNT,
    )


registry = SessionRegistry(build_controller)
