"""
Фоновое сохранение открытых заказов

Мутации сессии не ждут хранилище: запись ставится в очередь и
применяется отдельной задачей asyncio с повторами. Для каждого заказа
хранится только последний снимок (каждая запись содержит все изменяемые
поля), поэтому записи одного заказа применяются строго по порядку, а
устаревшие промежуточные снимки пропускаются.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class OrderWrite:
    """Запись полей открытого заказа"""
    order_id: int
    fields: Dict[str, Any] = field(default_factory=dict)
    reason: str = 'save'


FailureCallback = Callable[[OrderWrite, Exception], Awaitable[None]]


class PersistenceExecutor:
    """Применение OrderWrite к хранилищу заказов с повторами"""

    def __init__(
        self,
        orders,
        attempts: int = 3,
        delay: float = 1.0,
        on_failure: Optional[FailureCallback] = None,
    ):
        if attempts < 1:
            raise ValueError("Количество попыток должно быть не меньше 1")
        self.orders = orders
        self.attempts = attempts
        self.delay = delay
        self.on_failure = on_failure
        self.failed: Dict[int, OrderWrite] = {}
        self._pending: Dict[int, OrderWrite] = {}
        self._workers: Dict[int, asyncio.Task] = {}
        self._discarded: Set[int] = set()

    def submit(self, write: Optional[OrderWrite]) -> None:
        """Поставить запись в очередь, не дожидаясь результата"""
        if write is None:
            return
        self._pending[write.order_id] = write
        worker = self._workers.get(write.order_id)
        if worker is None or worker.done():
            loop = asyncio.get_running_loop()
            self._workers[write.order_id] = loop.create_task(self._run(write.order_id))

    def has_pending(self, order_id: int) -> bool:
        return order_id in self._pending or order_id in self._workers

    async def flush(self, order_id: int) -> None:
        """Дождаться применения всех записей заказа"""
        worker = self._workers.get(order_id)
        if worker is not None:
            await asyncio.shield(worker)

    async def drain(self) -> None:
        """Дождаться применения всех записей"""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()))

    async def discard(self, order_id: int) -> None:
        """
        Отбросить несохранённые записи заказа

        Запись, которая уже выполняется, дожидается завершения, чтобы
        не перезаписать последующее изменение заказа.
        """
        self._discarded.add(order_id)
        self._pending.pop(order_id, None)
        self.failed.pop(order_id, None)
        try:
            await self.flush(order_id)
        finally:
            self._discarded.discard(order_id)

    async def retry_failed(self) -> int:
        """Повторная постановка отложенных записей в очередь"""
        retried = 0
        for order_id, write in list(self.failed.items()):
            if order_id in self._pending:
                continue
            del self.failed[order_id]
            self.submit(write)
            retried += 1
        return retried

    async def _run(self, order_id: int) -> None:
        try:
            while order_id in self._pending:
                write = self._pending.pop(order_id)
                await self._apply(write)
        finally:
            if self._workers.get(order_id) is asyncio.current_task():
                del self._workers[order_id]

    async def _apply(self, write: OrderWrite) -> None:
        for attempt in range(1, self.attempts + 1):
            try:
                applied = self.orders.update_order(write.order_id, write.fields)
            except Exception as e:
                if attempt < self.attempts:
                    logger.warning(
                        f"Не удалось сохранить заказ #{write.order_id} ({write.reason}), "
                        f"попытка {attempt}/{self.attempts}: {e}"
                    )
                    await asyncio.sleep(self.delay * 2 ** (attempt - 1))
                    if write.order_id in self._discarded or write.order_id in self._pending:
                        # Пока ждали, заказ закрыли или пришёл более свежий снимок
                        return
                    continue

                if write.order_id in self._discarded:
                    logger.info(f"Запись заказа #{write.order_id} отброшена после закрытия заказа")
                    return

                self.failed[write.order_id] = write
                logger.error(
                    f"Заказ #{write.order_id} не сохранён после {self.attempts} попыток "
                    f"({write.reason}), запись отложена для повтора: {e}",
                    exc_info=True
                )
                if self.on_failure is not None:
                    try:
                        await self.on_failure(write, e)
                    except Exception as notify_error:
                        logger.error(f"Ошибка уведомления о сбое сохранения: {notify_error}")
                return

            self.failed.pop(write.order_id, None)
            if not applied:
                logger.warning(
                    f"Заказ #{write.order_id} уже закрыт или удалён, запись '{write.reason}' пропущена"
                )
            return
