# core/proxy/request_parser.py
"""Разбор и валидация входящего прокси-запроса"""

import re
import logging
from typing import NamedTuple
from urllib.parse import unquote, urlsplit

from aiohttp import web

from core.proxy.errors import InvalidTargetError, RequestBodyError
from core.proxy.url_codec import decode_url

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ('http', 'https')
BODY_METHODS = ('POST', 'PUT', 'PATCH')

# Явная схема (ftp:, file:, javascript:), но не host:port
_EXPLICIT_SCHEME = re.compile(r'^([a-zA-Z][a-zA-Z0-9+.-]*):(?!\d)')


class ParsedProxyPath(NamedTuple):
    target_url: str
    encoded_path: str


def parse_proxy_path(path: str) -> ParsedProxyPath:
    """
    Извлекает target URL из пути вида /<encoded-url>[/...]

    Args:
        path: Путь после префикса монтирования (еще percent-encoded)

    Returns:
        ParsedProxyPath: (target_url, encoded_path)

    Raises:
        InvalidTargetError: missing_target_url, invalid_encoding или invalid_scheme
    """
    segment = (path or '').lstrip('/').split('/')[0]
    if not segment:
        raise InvalidTargetError('missing_target_url', 'Missing target URL')

    target_url = decode_url(segment)
    if target_url is None:
        raise InvalidTargetError('invalid_encoding', 'Invalid target URL encoding')

    scheme_match = _EXPLICIT_SCHEME.match(unquote(segment))
    if scheme_match and scheme_match.group(1).lower() not in ALLOWED_SCHEMES:
        raise InvalidTargetError('invalid_scheme', 'Invalid target URL scheme')

    if not target_url.lower().startswith(('http://', 'https://')):
        raise InvalidTargetError('invalid_scheme', 'Invalid target URL scheme')

    return ParsedProxyPath(target_url=target_url, encoded_path=segment)


def validate_target_url(url: str) -> None:
    """
    Повторная проверка URL перед запросом к upstream

    Raises:
        InvalidTargetError: invalid_scheme для не-HTTP(S) схем, invalid_url для мусора
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        raise InvalidTargetError('invalid_url', 'Invalid URL')

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidTargetError('invalid_scheme', 'Scheme not allowed')

    if not hostname:
        raise InvalidTargetError('invalid_url', 'Invalid URL')


async def read_request_body(request: web.Request) -> bytes:
    """
    Читает тело запроса целиком для POST/PUT/PATCH

    Размер ограничен client_max_size приложения.

    Returns:
        bytes: Тело (пустое для остальных методов)

    Raises:
        RequestBodyError: body_too_large или body_unreadable
    """
    if request.method.upper() not in BODY_METHODS:
        return b''

    try:
        return await request.read()
    except web.HTTPRequestEntityTooLarge as e:
        logger.warning(f"⚠️ Request body too large: {e.text}")
        raise RequestBodyError('body_too_large', 'Request body too large')
    except Exception as e:
        logger.warning(f"⚠️ Error reading request body: {e}")
        raise RequestBodyError('body_unreadable', 'Error reading request body')
