"""
Планировщик периодических задач
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from billing.errors import BillingError
from billing.persistence import PersistenceExecutor
from billing.lifecycle import reconcile_tables
from billing.registry import SessionRegistry
from database.repository import TableRepository, OrderRepository

logger = logging.getLogger(__name__)


async def refresh_fees_job(registry: SessionRegistry):
    """Пересчёт стоимости аренды для открытых сессий"""
    for controller in registry.active():
        try:
            controller.refresh_fee()
        except BillingError as e:
            logger.error(f"Ошибка расчёта аренды для стола #{controller.state.table_id}: {e}")


async def retry_failed_writes_job(executor: PersistenceExecutor):
    """Повтор отложенных сохранений заказов"""
    try:
        retried = await executor.retry_failed()
        if retried > 0:
            logger.info(f"Повторно отправлено {retried} несохранённых заказов")
    except Exception as e:
        logger.error(f"Ошибка при повторе сохранений: {e}", exc_info=True)


async def reconcile_tables_job():
    """Освобождение столов, ссылающихся на закрытые или удалённые заказы"""
    try:
        healed = reconcile_tables(TableRepository, OrderRepository)
        if healed > 0:
            logger.info(f"Освобождено {healed} столов с устаревшими заказами")
    except Exception as e:
        logger.error(f"Ошибка при проверке столов: {e}", exc_info=True)


async def start_scheduler(registry: SessionRegistry, executor: PersistenceExecutor) -> AsyncIOScheduler:
    """Запуск планировщика задач"""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        refresh_fees_job,
        trigger=IntervalTrigger(minutes=settings.FEE_REFRESH_MINUTES),
        args=[registry],
        id='refresh_fees',
        name='Пересчёт аренды столов',
        replace_existing=True
    )

    scheduler.add_job(
        retry_failed_writes_job,
        trigger=IntervalTrigger(minutes=1),
        args=[executor],
        id='retry_failed_writes',
        name='Повтор несохранённых заказов',
        replace_existing=True
    )

    scheduler.add_job(
        reconcile_tables_job,
        trigger=IntervalTrigger(minutes=settings.RECONCILE_MINUTES),
        id='reconcile_tables',
        name='Проверка ссылок столов на заказы',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Планировщик задач запущен")

    return scheduler
