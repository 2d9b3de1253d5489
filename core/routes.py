# core/routes.py
"""API маршруты: разблокировка ключа устройством и статус сервера"""

import logging
import time

from aiohttp import web

from core.access import resolve_device
from core.device_id import DEVICE_ID_COOKIE, get_device_id_candidates, validate_device_id

logger = logging.getLogger(__name__)

KEY_STORE = web.AppKey('key_store', object)
EGRESS_CACHE = web.AppKey('egress_cache', object)
PROXY = web.AppKey('proxy', object)
MOUNT_PATH = web.AppKey('mount_path', str)

DEVICE_COOKIE_MAX_AGE = 365 * 24 * 60 * 60

routes = web.RouteTableDef()


def _set_device_cookie(request: web.Request, response: web.StreamResponse, device_id: str):
    secure = request.secure or request.headers.get('X-Forwarded-Proto', '').startswith('https')
    response.set_cookie(
        DEVICE_ID_COOKIE,
        device_id,
        max_age=DEVICE_COOKIE_MAX_AGE,
        httponly=True,
        samesite='Lax',
        secure=secure,
        path='/',
    )


@routes.post('/api/keys/unlock')
async def unlock_key(request: web.Request) -> web.Response:
    """Привязывает ключ к устройству и ставит cookie deviceId"""
    try:
        data = await request.json()
    except ValueError:
        data = None

    if not isinstance(data, dict):
        data = {}

    secret = str(data.get('key') or '').strip()
    device_id = str(data.get('deviceId') or '').strip()

    if not secret or not device_id:
        return web.json_response({'ok': False, 'reason': 'key_and_device_id_required'}, status=400)

    if not validate_device_id(device_id):
        return web.json_response({'ok': False, 'reason': 'invalid_device_id'}, status=400)

    key_store = request.app[KEY_STORE]
    result = key_store.claim_key(secret, device_id, request.headers.get('User-Agent'))
    if not result['ok']:
        logger.info(f"🔒 Unlock rejected ({result['reason']}): device={device_id}")
        return web.json_response(result, status=403)

    response = web.json_response(result)
    _set_device_cookie(request, response, device_id)
    return response


@routes.get('/api/keys/check')
async def check_key(request: web.Request) -> web.Response:
    """Сообщает, разблокировано ли устройство"""
    device_id, bound = resolve_device(request, request.app[KEY_STORE])
    if not device_id:
        return web.json_response({'ok': False, 'unlocked': False})

    if not bound:
        response = web.json_response({'ok': True, 'unlocked': False})
        # cookie из непривязанного id ставим только если cookie еще нет
        if DEVICE_ID_COOKIE not in request.cookies:
            _set_device_cookie(request, response, device_id)
        return response

    response = web.json_response({
        'ok': True,
        'unlocked': True,
        'keyId': bound['id'],
        'name': bound['name'],
        'expiresAt': bound['expiresAt'],
    })
    _set_device_cookie(request, response, device_id)
    return response


@routes.get('/api/status')
async def status(request: web.Request) -> web.Response:
    app = request.app
    egress_cache = app.get(EGRESS_CACHE)
    proxy = app.get(PROXY)

    return web.json_response({
        'ok': True,
        'serverTime': int(time.time() * 1000),
        'mountPath': app[MOUNT_PATH],
        'client': {
            'ip': request.remote,
            'deviceIds': get_device_id_candidates(request),
        },
        'serverEgress': egress_cache.get_maybe_refresh() if egress_cache else None,
        'proxyStats': proxy.get_full_stats() if proxy else None,
    })
