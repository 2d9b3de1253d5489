# core/proxy/transport.py
"""Отдача тела ответа: потоковая передача или буферизация с перезаписью"""

import logging
from typing import Callable

from aiohttp import ClientResponse, web

from core.proxy.rewriters.base import RewriteContext

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


async def read_body(upstream: ClientResponse) -> bytes:
    """Читает тело upstream ответа целиком"""
    return await upstream.read()


def decode_utf8(data: bytes) -> str:
    """UTF-8 с заменой некорректных последовательностей (никогда не падает)"""
    return data.decode('utf-8', errors='replace')


async def pipe_stream_to_response(upstream: ClientResponse, request: web.Request,
                                  response: web.StreamResponse) -> web.StreamResponse:
    """
    Передает тело upstream клиенту по частям

    Каждая запись ожидает дренажа транспорта, поэтому данные не копятся в памяти.

    Args:
        upstream: Ответ upstream с непрочитанным телом
        request: Входящий запрос
        response: Неподготовленный StreamResponse со статусом и заголовками

    Returns:
        web.StreamResponse: Завершенный ответ
    """
    await response.prepare(request)

    total = 0
    async for chunk in upstream.content.iter_chunked(CHUNK_SIZE):
        await response.write(chunk)
        total += len(chunk)

    await response.write_eof()
    logger.debug(f"Streamed {total} bytes")
    return response


async def buffer_and_rewrite(upstream: ClientResponse, rewriter: Callable,
                             context: RewriteContext) -> bytes:
    """
    Буферизует, декодирует, переписывает и снова кодирует тело

    Returns:
        bytes: Переписанное тело в UTF-8
    """
    data = await read_body(upstream)
    text = decode_utf8(data)
    rewritten = rewriter(text, context)
    return rewritten.encode('utf-8')


async def send_rewritten(upstream: ClientResponse, request: web.Request,
                         response: web.StreamResponse, rewriter: Callable,
                         context: RewriteContext) -> web.StreamResponse:
    """Отдает переписанное тело с пересчитанным Content-Length"""
    body = await buffer_and_rewrite(upstream, rewriter, context)

    # Тело всегда в UTF-8, charset upstream больше не соответствует байтам
    response.charset = 'utf-8'
    response.content_length = len(body)
    await response.prepare(request)
    await response.write(body)
    await response.write_eof()
    return response
