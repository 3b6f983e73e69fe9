"""
Иерархия исключений Fetch Client.

Закрытый набор ошибок пайплайна. Каждое исключение несёт контекст
(status/url/method/schema/cause), достаточный для программной обработки.

Какие ошибки ретраить, решает RetryEngine по RetryPolicy, а не сам класс.
"""

from typing import Any, List, Optional, Sequence

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BASE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class FetchClientError(Exception):
    """Базовое исключение Fetch Client."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause


def describe_error(context: str, error: BaseException) -> str:
    """Собрать сообщение вида 'context: error'."""
    return f"{context}: {error}"

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# URL / КОНФИГУРАЦИЯ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class PathParameterError(FetchClientError):
    """
    В pathParams нет значения для обязательного токена шаблона.

    Args:
        template: Шаблон URL
        missing: Имена отсутствующих токенов
        provided: Имена переданных параметров
    """

    def __init__(
        self,
        template: str,
        missing: Sequence[str],
        provided: Sequence[str],
    ):
        self.template = template
        self.missing: List[str] = list(missing)
        self.provided: List[str] = list(provided)

        names = ", ".join(self.missing)
        noun = "parameter" if len(self.missing) == 1 else "parameters"
        super().__init__(f"Missing required path {noun}: {names} (template: {template})")


class InvalidBaseUrlError(FetchClientError):
    """
    base_url не пустой, не относительный путь и не валидный абсолютный URL.

    Args:
        base_url: Некорректная строка
    """

    def __init__(self, base_url: str):
        self.base_url = base_url
        super().__init__(
            f'Invalid base_url: "{base_url}". Must be a valid absolute URL '
            f'or relative path starting with "/".'
        )

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HTTP / СЕТЬ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class HTTPError(FetchClientError):
    """
    Статус ответа не прошёл проверку validate_status.

    Args:
        status: HTTP статус
        status_text: Reason phrase
        data: Декодированное тело ответа
        method: HTTP метод
        url: URL запроса
        response: Сырой ответ транспорта
    """

    def __init__(
        self,
        status: int,
        status_text: str,
        data: Any,
        method: str,
        url: str,
        response: Any = None,
    ):
        self.status = status
        self.status_text = status_text
        self.data = data
        self.method = method
        self.url = url
        self.response = response

        msg = f"HTTP {status}"
        if status_text:
            msg += f" {status_text}"
        msg += f" ({method} {url})"
        super().__init__(msg)


class NetworkError(FetchClientError):
    """Транспорт упал не из-за отмены (DNS, reset, обрыв чтения тела)."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.url = url
        full_message = message
        if url:
            full_message += f" (url: {url})"
        super().__init__(full_message, cause)


class ConnectionError(NetworkError):
    """
    Ошибка подключения.

    Примеры:
    - Connection refused
    - Network unreachable
    """
    pass


class TimeoutError(FetchClientError):
    """
    Таймаут попытки: таймер сработал раньше, чем транспорт завершился.

    Args:
        timeout: Значение таймаута (сек)
        url: URL запроса
    """

    def __init__(
        self,
        timeout: Optional[float],
        url: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.timeout = timeout
        self.url = url

        msg = "Request timeout"
        if timeout is not None:
            msg += f" after {timeout}s"
        if url:
            msg += f" (url: {url})"
        super().__init__(msg, cause)


class RequestAbortedError(FetchClientError):
    """
    Запрос отменён токеном вызывающей стороны.

    Args:
        url: URL запроса
        reason: Причина, переданная в CancellationToken.cancel()
    """

    def __init__(self, url: Optional[str] = None, reason: Any = None):
        self.url = url
        self.reason = reason

        msg = "Request aborted"
        if reason is not None:
            msg += f": {reason}"
        if url:
            msg += f" (url: {url})"
        super().__init__(msg)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ДЕКОДИРОВАНИЕ / СХЕМЫ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class SerializationError(FetchClientError):
    """
    Не удалось декодировать тело ответа.

    Примеры:
    - Битый JSON
    - Невалидная кодировка
    - Ошибка в progress-колбэке при чтении потока
    """
    pass


class SchemaValidationError(FetchClientError):
    """
    Валидатор схемы вернул issues.

    Args:
        message: Сообщение (включает список issues)
        schema: Схема, против которой валидировали
        data: Данные, переданные в validate
        issues: Список проблем от валидатора
    """

    def __init__(
        self,
        message: str,
        schema: Any,
        data: Any,
        issues: Optional[Sequence[Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        self.schema = schema
        self.data = data
        self.issues: List[Any] = list(issues) if issues else []
        super().__init__(message, cause)


class AsyncSchemaValidationError(FetchClientError):
    """Валидатор вернул awaitable: асинхронная валидация не поддерживается."""

    def __init__(self, message: str, schema: Any):
        self.schema = schema
        super().__init__(message)


class InvalidSchemaError(FetchClientError):
    """Объект схемы не реализует протокол адаптера."""

    def __init__(self, message: str, schema: Any):
        self.schema = schema
        super().__init__(message)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MIDDLEWARE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class MiddlewareError(FetchClientError):
    """
    Middleware request- или response-фазы выбросил исключение.

    Никогда не ретраится.

    Args:
        message: Сообщение
        phase: 'request' или 'response'
        url: URL запроса на момент ошибки
        method: HTTP метод
        cause: Исходное исключение
    """

    def __init__(
        self,
        message: str,
        phase: str,
        url: Optional[str] = None,
        method: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.phase = phase
        self.url = url
        self.method = method
        super().__init__(message, cause)
