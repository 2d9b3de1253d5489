# core/proxy/url_codec.py
"""Кодирование target URL в сегмент пути прокси и обратно"""

import re
import logging
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

logger = logging.getLogger(__name__)

DEFAULT_MOUNT_PATH = '/go'

# Тот же набор безопасных символов, что у encodeURIComponent
_COMPONENT_SAFE = "-_.!~*'()"
_MALFORMED_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')
_HTTP_PREFIX = re.compile(r'^https?://', re.IGNORECASE)


def encode_url(target_url: str, mount_path: str = DEFAULT_MOUNT_PATH) -> str:
    """
    Возвращает путь прокси для абсолютного URL: <mount>/<encoded>

    Args:
        target_url: Абсолютный URL
        mount_path: Префикс монтирования прокси

    Returns:
        str: Путь вида /go/https%3A%2F%2Fexample.com%2F, либо "<mount>/" при ошибке
    """
    try:
        return f"{mount_path}/{quote(target_url, safe=_COMPONENT_SAFE)}"
    except (TypeError, UnicodeEncodeError) as e:
        logger.debug(f"Не удалось закодировать URL {target_url!r}: {e}")
        return f"{mount_path}/"


def decode_url(encoded: str) -> Optional[str]:
    """
    Декодирует сегмент пути обратно в абсолютный URL

    Если схема отсутствует, подставляется https://.

    Args:
        encoded: Percent-encoded сегмент пути

    Returns:
        str или None: URL, либо None при некорректном percent-encoding
    """
    if not isinstance(encoded, str):
        return None

    if _MALFORMED_ESCAPE.search(encoded):
        return None

    try:
        raw = unquote(encoded, encoding='utf-8', errors='strict')
    except UnicodeDecodeError:
        return None

    if not _HTTP_PREFIX.match(raw):
        return f"https://{raw}"
    return raw


def _first_forwarded_value(value: Optional[str]) -> str:
    if not value:
        return ''
    return value.split(',')[0].strip()


def get_proxy_base(request) -> str:
    """
    Определяет scheme://host, по которому клиент обратился к прокси

    Учитывает X-Forwarded-Proto / X-Forwarded-Host (работа за TLS-терминатором).

    Args:
        request: aiohttp.web.Request

    Returns:
        str: Например, https://proxy.example.com
    """
    proto = _first_forwarded_value(request.headers.get('X-Forwarded-Proto'))
    if not proto:
        proto = request.scheme or 'http'

    host = _first_forwarded_value(request.headers.get('X-Forwarded-Host'))
    if not host:
        host = request.headers.get('Host') or 'localhost'

    return f"{proto}://{host}"


def is_proxied_url(url: str, proxy_base: str, mount_path: str = DEFAULT_MOUNT_PATH) -> bool:
    """Проверяет, что URL уже указывает на этот прокси"""
    return url.startswith(f"{proxy_base}{mount_path}/")


def rewrite_url_to_proxy(absolute_url: str, proxy_base: str,
                         mount_path: str = DEFAULT_MOUNT_PATH) -> str:
    """Полный проксированный URL; непарсящийся ввод возвращается как есть"""
    try:
        parts = urlsplit(absolute_url)
    except ValueError:
        return absolute_url
    if not parts.scheme:
        return absolute_url
    return proxy_base + encode_url(absolute_url, mount_path)
