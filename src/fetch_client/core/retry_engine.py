"""
Retry engine для повторных попыток запроса.

Включает:
- Классификацию ошибок по RetryPolicy
- Exponential backoff с верхней границей
- Кастомный предикат (sync или async)
"""

import asyncio
import inspect
import logging

from .config import RetryPolicy
from .exceptions import HTTPError, MiddlewareError, NetworkError, RequestAbortedError

logger = logging.getLogger(__name__)


class RetryEngine:
    """
    Механизм retry для одного вызова пайплайна.

    Examples:
        >>> engine = RetryEngine(RetryPolicy(max_retries=3))
        >>> if await engine.should_retry(error):
        >>>     await engine.async_wait()
        >>>     engine.increment()
    """

    def __init__(self, policy: RetryPolicy):
        """
        Args:
            policy: Итоговая политика retry
        """
        self.policy = policy
        self._attempt = 0

    async def should_retry(self, error: Exception) -> bool:
        """
        Решить нужен ли retry.

        Args:
            error: Исключение текущей попытки

        Returns:
            True если нужен retry
        """
        # Лимит повторов исчерпан
        if self._attempt >= self.policy.max_retries:
            return False

        # Отмена вызывающей стороной и ошибки middleware НЕ ретраим
        if isinstance(error, (RequestAbortedError, MiddlewareError)):
            return False

        # Кастомный предикат решает сам
        if self.policy.should_retry is not None:
            decision = self.policy.should_retry(error, self._attempt)
            if inspect.isawaitable(decision):
                decision = await decision
            logger.debug(f"Custom retry predicate returned {decision!r} for {type(error).__name__}")
            return bool(decision)

        if isinstance(error, HTTPError):
            return error.status in self.policy.retry_status_codes

        if isinstance(error, NetworkError):
            return self.policy.retry_network_errors

        return False

    def get_wait_time(self) -> float:
        """
        Вычислить время ожидания перед следующей попыткой.

        Returns:
            Секунды: min(retry_delay * backoff_factor ** attempt, max_retry_delay)
        """
        wait = self.policy.retry_delay * (
            self.policy.backoff_factor ** self._attempt
        )
        return min(wait, self.policy.max_retry_delay)

    async def async_wait(self) -> None:
        """
        Асинхронное ожидание перед retry.

        Examples:
            >>> await engine.async_wait()
        """
        wait_time = self.get_wait_time()
        logger.debug(f"Waiting {wait_time:.3f}s before retry {self._attempt + 1}")
        await asyncio.sleep(wait_time)

    def increment(self):
        """Увеличить счётчик попыток."""
        self._attempt += 1

    @property
    def attempt(self) -> int:
        """Текущая попытка (0 = первая)."""
        return self._attempt
