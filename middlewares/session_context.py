"""
Middleware для подстановки контроллера сессии кассира
"""
import logging
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery

from config import settings
from billing.registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionContextMiddleware(BaseMiddleware):
    """Проверка доступа к кассе и передача controller в хендлер"""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        user = data.get("event_from_user")
        if user is None:
            return await handler(event, data)

        if not settings.is_cashier(user.id):
            logger.warning(f"Попытка доступа к кассе без прав: {user.id}")
            if isinstance(event, CallbackQuery):
                await event.answer("⚠️ У вас нет доступа к кассе", show_alert=True)
            elif isinstance(event, Message):
                await event.answer("⚠️ У вас нет доступа к кассе")
            return None

        data["controller"] = self.registry.get(user.id)
        return await handler(event, data)
