# core/access.py
"""
Контроль доступа к прокси по ключу, привязанному к устройству
"""

import logging
from typing import Optional, Tuple

from aiohttp import web

from core.device_id import get_device_id_candidates
from core.key_store import KeyStore

logger = logging.getLogger(__name__)


def resolve_device(request: web.Request, key_store: KeyStore) -> Tuple[Optional[str], Optional[dict]]:
    """
    Находит устройство запроса и его действующий ключ

    Кандидаты проверяются по порядку (заголовок, затем cookie); первый
    кандидат с привязанным ключом побеждает.

    Returns:
        tuple: (device_id или None, ключ или None)
    """
    candidates = get_device_id_candidates(request)

    for device_id in candidates:
        bound = key_store.get_bound_key_for_device(device_id)
        if bound:
            return device_id, bound

    return (candidates[0] if candidates else None), None


def access_denied(reason: str) -> web.Response:
    return web.json_response({'ok': False, 'reason': reason}, status=403)


def create_device_key_middleware(key_store: KeyStore, mount_path: str):
    """
    Middleware, пропускающий к прокси только устройства с действующим ключом

    Args:
        key_store: Хранилище ключей
        mount_path: Префикс, который защищается (остальные пути не проверяются)
    """
    prefix = mount_path.rstrip('/')

    @web.middleware
    async def device_key_middleware(request: web.Request, handler):
        path = request.path
        if path != prefix and not path.startswith(prefix + '/'):
            return await handler(request)

        device_id, bound = resolve_device(request, key_store)

        if not device_id:
            logger.debug(f"Access denied (device_id_required): {path}")
            return access_denied('device_id_required')

        if not bound:
            logger.debug(f"Access denied (key_required): device={device_id}")
            return access_denied('key_required')

        request['device_id'] = device_id
        request['bound_key'] = bound
        return await handler(request)

    return device_key_middleware
