# core/proxy/handler.py
"""
Core proxy handler: parse request -> fetch upstream -> process response
(headers, redirect, body rewrite or stream).
"""

import logging
from typing import NamedTuple

from aiohttp import ClientError, ClientSession, web

from core.proxy.content_types import get_rewriter
from core.proxy.errors import ProxyError, UpstreamError
from core.proxy.fetch_options import DEFAULT_TIMEOUT_MS, build_fetch_options, fetch_upstream
from core.proxy.request_parser import parse_proxy_path, read_request_body, validate_target_url
from core.proxy.response_headers import (
    get_proxy_response_headers,
    rewrite_redirect_location,
    sanitize_upstream_headers,
)
from core.proxy.rewriters.base import RewriteContext
from core.proxy.transport import pipe_stream_to_response, send_rewritten
from core.proxy.url_codec import DEFAULT_MOUNT_PATH, get_proxy_base

logger = logging.getLogger(__name__)


class ProxySettings(NamedTuple):
    mount_path: str = DEFAULT_MOUNT_PATH
    timeout_ms: int = DEFAULT_TIMEOUT_MS


def _error_response(error: ProxyError) -> web.Response:
    if isinstance(error, UpstreamError):
        text = f"Gateway error: {error.message}"
    else:
        text = error.message
    return web.Response(status=error.status, text=text, content_type='text/plain')


def _split_raw_path(request: web.Request, mount_path: str):
    """(путь после mount, сырой query string) без percent-декодирования"""
    raw_path, _, raw_query = request.raw_path.partition('?')
    if raw_path.startswith(mount_path):
        raw_path = raw_path[len(mount_path):]
    return raw_path, raw_query


def _with_query(target_url: str, raw_query: str) -> str:
    if not raw_query:
        return target_url
    separator = '&' if '?' in target_url else '?'
    return f"{target_url}{separator}{raw_query}"


async def handle_proxy_request(request: web.Request, session: ClientSession,
                               settings: ProxySettings = ProxySettings()) -> web.StreamResponse:
    """
    Обрабатывает запрос <mount>/<encoded-url>

    Клиентские ошибки -> 400, транспортные ошибки upstream -> 502,
    статусы upstream (включая не-2xx) передаются как есть. Повторов нет.

    Args:
        request: Входящий aiohttp запрос
        session: Общий ClientSession (пул соединений)
        settings: Префикс монтирования и таймаут

    Returns:
        web.StreamResponse: Ответ клиенту
    """
    path, raw_query = _split_raw_path(request, settings.mount_path)

    try:
        parsed = parse_proxy_path(path)
        target_url = _with_query(parsed.target_url, raw_query)
        validate_target_url(target_url)

        body = await read_request_body(request)
        options = build_fetch_options(target_url, request, body or None, settings.timeout_ms)

        logger.debug(f"🔐 Proxying {options.method} {target_url}")
        upstream = await fetch_upstream(session, target_url, options)
    except ProxyError as e:
        logger.debug(f"Proxy request rejected ({e.status} {e.reason}): {request.path}")
        return _error_response(e)

    proxy_base = get_proxy_base(request)
    completed = False
    response = None

    try:
        content_type = upstream.headers.get('Content-Type', '')
        headers = sanitize_upstream_headers(upstream.headers)

        if 300 <= upstream.status < 400:
            location = rewrite_redirect_location(
                upstream.headers.get('Location'), target_url, proxy_base, settings.mount_path
            )
            if location:
                headers['Location'] = location

        for key, value in get_proxy_response_headers(request).items():
            headers[key] = value

        response = web.StreamResponse(status=upstream.status, reason=upstream.reason, headers=headers)
        rewriter = get_rewriter(content_type)

        if rewriter is None:
            await pipe_stream_to_response(upstream, request, response)
        else:
            context = RewriteContext(
                base_url=target_url,
                proxy_base=proxy_base,
                mount_path=settings.mount_path,
            )
            await send_rewritten(upstream, request, response, rewriter, context)

        logger.debug(f"Upstream response: {upstream.status} {content_type or '-'} ({target_url})")
        completed = True
        return response

    except (ClientError, ConnectionError) as e:
        if response is not None and response.prepared:
            # Заголовки уже ушли клиенту - остается только оборвать соединение
            logger.warning(f"⚠️ Stream aborted: {target_url} - {e}")
            raise
        logger.error(f"❌ Upstream body error: {target_url} - {e}")
        return _error_response(UpstreamError('upstream_body_error', str(e) or type(e).__name__))

    finally:
        if completed:
            upstream.release()
        else:
            # Разрываем upstream соединение, а не возвращаем в пул
            upstream.close()
