"""
Главный файл Telegram-бота кассы бильярдного клуба
"""
import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from config import settings
from billing.persistence import OrderWrite
from billing.registry import registry, executor
from database.database import init_db
from handlers import pos_handlers, admin_handlers
from middlewares.session_context import SessionContextMiddleware
from utils.scheduler import start_scheduler

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def make_failure_notifier(bot: Bot):
    """Уведомление админов о заказе, который не удалось сохранить"""

    async def notify(write: OrderWrite, error: Exception):
        text = (
            f"⚠️ Заказ #{write.order_id} не сохранён ({write.reason}): {error}\n"
            f"Повтор будет выполнен автоматически."
        )
        for admin_id in settings.ADMIN_IDS:
            try:
                await bot.send_message(admin_id, text)
            except Exception as e:
                logger.error(f"Не удалось уведомить админа {admin_id}: {e}")

    return notify


async def main():
    """Основная функция запуска бота"""
    logger.info("Запуск бота...")

    # Проверка настроек тарификации до начала работы
    settings.billing_policy()

    # Инициализация БД
    init_db()
    logger.info("База данных инициализирована")

    # Создание бота и диспетчера
    bot = Bot(token=settings.BOT_TOKEN)
    storage = MemoryStorage()
    dp = Dispatcher(storage=storage)

    executor.on_failure = make_failure_notifier(bot)

    # Контроллер сессии кассира для каждого события кассы
    pos_handlers.router.message.middleware(SessionContextMiddleware(registry))
    pos_handlers.router.callback_query.middleware(SessionContextMiddleware(registry))

    # Регистрация роутеров
    dp.include_router(pos_handlers.router)
    dp.include_router(admin_handlers.router)

    # Запуск планировщика периодических задач
    scheduler = await start_scheduler(registry, executor)

    try:
        logger.info("Бот успешно запущен")
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        scheduler.shutdown()
        await executor.drain()
        await bot.session.close()
        logger.info("Бот остановлен")


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Бот остановлен пользователем")
    except Exception as e:
        logger.error(f"Критическая ошибка: {e}", exc_info=True)
