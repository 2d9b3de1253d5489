# core/proxy/response_headers.py
"""Обработка заголовков ответа: hop-by-hop, CORS, блокировщики встраивания, Location"""

import logging
from typing import Dict, Optional
from urllib.parse import urljoin

from multidict import CIMultiDict

from core.proxy.url_codec import DEFAULT_MOUNT_PATH, encode_url

logger = logging.getLogger(__name__)

HOP_BY_HOP = frozenset({
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailers',
    'transfer-encoding',
    'upgrade',
})

# Мешают встраиванию или ломают декодирование после перезаписи тела
STRIP_HEADERS = frozenset({
    'x-frame-options',
    'content-security-policy',
    'x-content-type-options',
    'content-encoding',
    'content-length',
})


def filter_response_headers(headers) -> CIMultiDict:
    """Убирает hop-by-hop заголовки, сохраняя повторы (Set-Cookie)"""
    out = CIMultiDict()
    for key, value in headers.items():
        if key.lower() in HOP_BY_HOP or value is None:
            continue
        out.add(key, value)
    return out


def sanitize_upstream_headers(headers) -> CIMultiDict:
    """
    Фильтрует заголовки upstream ответа для отправки клиенту

    Args:
        headers: Multimap заголовков upstream (CIMultiDictProxy или dict)

    Returns:
        CIMultiDict: Заголовки без hop-by-hop и блокирующих встраивание
    """
    filtered = filter_response_headers(headers)
    out = CIMultiDict()
    for key, value in filtered.items():
        if key.lower() in STRIP_HEADERS:
            continue
        out.add(key, value)
    return out


def get_proxy_response_headers(request) -> Dict[str, str]:
    """CORS заголовки, которые прокси ставит на каждый ответ"""
    return {
        'Access-Control-Allow-Origin': request.headers.get('Origin') or '*',
        'Access-Control-Expose-Headers': '*',
    }


def rewrite_redirect_location(location: Optional[str], target_url: str, proxy_base: str,
                              mount_path: str = DEFAULT_MOUNT_PATH) -> Optional[str]:
    """
    Переписывает Location редиректа на путь прокси

    Args:
        location: Значение Location от upstream
        target_url: URL текущего запроса (для относительных Location)
        proxy_base: scheme://host прокси
        mount_path: Префикс монтирования

    Returns:
        str или None: Новый Location; None - оставить заголовок как есть
    """
    if not location or not isinstance(location, str):
        return None

    try:
        absolute = urljoin(target_url, location.strip())
    except ValueError as e:
        logger.debug(f"Некорректный Location {location!r}: {e}")
        return None

    if not absolute.lower().startswith(('http://', 'https://')):
        return None

    path = encode_url(absolute, mount_path)
    return proxy_base + path if path else None
