"""
Общие фикстуры тестов
"""
import os
from datetime import datetime

# Settings проверяет токен при импорте config
os.environ.setdefault('BOT_TOKEN', 'test-token')

import pytest

from config import settings
from billing.lifecycle import SessionController
from billing.persistence import PersistenceExecutor
from billing.policy import BillingPolicy
from database.database import init_db
from database.repository import (
    TableRepository, OrderRepository, CustomerRepository, CouponRepository,
)

START = datetime(2024, 5, 1, 18, 0)


class Clock:
    """Управляемые часы для контроллера"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Чистая БД с тестовыми столами и товарами"""
    monkeypatch.setattr(settings, 'DB_PATH', str(tmp_path / 'pos.db'))
    init_db()
    return settings.DB_PATH


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def policy():
    return BillingPolicy(enable_block_billing=False, grace_period_minutes=5)


@pytest.fixture
def executor(db):
    return PersistenceExecutor(OrderRepository, attempts=2, delay=0)


@pytest.fixture
def controller(db, executor, policy, clock):
    return SessionController(
        TableRepository,
        OrderRepository,
        CustomerRepository,
        CouponRepository,
        executor,
        policy,
        points_per_amount=1000,
        clock=clock,
    )
