# core/proxy/errors.py
"""Исключения прокси-конвейера"""


class ProxyError(Exception):
    """Базовая ошибка прокси: несет HTTP статус и машинно-читаемую причину"""

    status = 500

    def __init__(self, reason: str, message: str = ""):
        self.reason = reason
        self.message = message or reason
        super().__init__(self.message)


class InvalidTargetError(ProxyError):
    """Некорректный или запрещенный target URL"""

    status = 400


class RequestBodyError(ProxyError):
    """Не удалось прочитать тело входящего запроса"""

    status = 400


class UpstreamError(ProxyError):
    """Транспортная ошибка при обращении к upstream"""

    status = 502


class UpstreamTimeoutError(UpstreamError):
    pass


class UpstreamConnectionError(UpstreamError):
    pass
