# core/proxy/fetch_options.py
"""Формирование и выполнение upstream запроса"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout

from core.proxy.browser_headers import get_browser_like_headers
from core.proxy.errors import UpstreamConnectionError, UpstreamTimeoutError
from core.proxy.request_parser import BODY_METHODS

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30000


@dataclass
class UpstreamOptions:
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    # Редиректы всегда перехватываются и переписываются прокси
    allow_redirects: bool = False
    timeout: float = DEFAULT_TIMEOUT_MS / 1000


def build_upstream_headers(target_url: str, request) -> Dict[str, str]:
    """
    Заголовки для upstream: браузерная идентичность + Content-Type для записи

    Args:
        target_url: Абсолютный target URL
        request: Входящий aiohttp запрос

    Returns:
        dict: Заголовки upstream запроса
    """
    headers = get_browser_like_headers(target_url)

    if request.method.upper() in BODY_METHODS:
        content_type = request.headers.get('Content-Type')
        if content_type:
            headers['Content-Type'] = content_type

    return headers


def build_fetch_options(target_url: str, request, body: Optional[bytes] = None,
                        timeout_ms: int = DEFAULT_TIMEOUT_MS) -> UpstreamOptions:
    """
    Полные параметры upstream запроса

    Args:
        target_url: Абсолютный target URL
        request: Входящий aiohttp запрос
        body: Тело запроса (если есть)
        timeout_ms: Дедлайн upstream запроса в миллисекундах

    Returns:
        UpstreamOptions: Метод, заголовки, тело, manual redirect, таймаут
    """
    options = UpstreamOptions(
        method=request.method.upper(),
        headers=build_upstream_headers(target_url, request),
        timeout=timeout_ms / 1000,
    )

    if body:
        options.body = body
        options.headers.setdefault('Content-Type', 'application/octet-stream')

    return options


async def fetch_upstream(session: ClientSession, target_url: str,
                         options: UpstreamOptions) -> ClientResponse:
    """
    Выполняет один upstream запрос (без повторов)

    По истечении таймаута запрос отменяется и соединение разрывается.

    Returns:
        ClientResponse: Ответ с непрочитанным телом; вызывающий обязан его закрыть

    Raises:
        UpstreamTimeoutError: Истек дедлайн
        UpstreamConnectionError: DNS/TCP/TLS ошибка
    """
    client_timeout = ClientTimeout(
        total=None,
        sock_connect=options.timeout,
        sock_read=options.timeout,
    )

    async def send() -> ClientResponse:
        return await session.request(
            method=options.method,
            url=target_url,
            headers=options.headers,
            data=options.body,
            allow_redirects=options.allow_redirects,
            timeout=client_timeout,
        )

    try:
        return await asyncio.wait_for(send(), timeout=options.timeout)
    except asyncio.TimeoutError:
        logger.warning(f"⏱️ Upstream timeout ({options.timeout:g}s): {target_url}")
        raise UpstreamTimeoutError(
            'upstream_timeout',
            f"upstream timed out after {options.timeout:g}s",
        )
    except (ClientError, OSError, ValueError) as e:
        logger.error(f"❌ Upstream fetch error: {target_url} - {e}")
        raise UpstreamConnectionError('upstream_unreachable', str(e) or type(e).__name__)
