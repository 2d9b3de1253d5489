# core/egress_cache.py
"""Кэш внешнего (egress) IP сервера с TTL и единственным обновлением в полете"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

logger = logging.getLogger(__name__)

IPIFY_URL = 'https://api.ipify.org?format=json'
SUCCESS_TTL_MS = 10 * 60 * 1000
FAILURE_TTL_MS = 60 * 1000
FETCH_TIMEOUT = 3.5


def _now_ms() -> int:
    return int(time.time() * 1000)


async def fetch_egress_ip() -> str:
    """
    Запрашивает внешний IP у ipify

    Raises:
        ValueError: Некорректный ответ сервиса
    """
    async with ClientSession(timeout=ClientTimeout(total=FETCH_TIMEOUT)) as session:
        async with session.get(IPIFY_URL, headers={'User-Agent': 'BREAD/1.0 (+ipify)'}) as response:
            if response.status != 200:
                raise ValueError(f"egress_ip_fetch_failed status={response.status}")
            data = await response.json(content_type=None)

    ip = data.get('ip') if isinstance(data, dict) else None
    if not isinstance(ip, str) or not ip.strip():
        raise ValueError("egress_ip_fetch_failed empty response")
    return ip.strip()


class EgressIpCache:
    """Владелец последнего известного egress IP"""

    def __init__(self, fetcher: Callable[[], Awaitable[str]] = fetch_egress_ip,
                 clock: Callable[[], int] = _now_ms):
        """
        Args:
            fetcher: Корутина, возвращающая текущий IP
            clock: Источник времени в миллисекундах
        """
        self.fetcher = fetcher
        self.clock = clock
        self.ip: Optional[str] = None
        self.checked_at = 0
        self.expires_at = 0
        self.error: Optional[str] = None
        self._in_flight: Optional[asyncio.Future] = None
        self.refresh_count = 0

    def snapshot(self) -> Dict[str, Any]:
        """Текущее состояние без обновления"""
        return {
            'ip': self.ip,
            'checkedAt': self.checked_at,
            'stale': self.expires_at <= self.clock(),
            'error': self.error,
        }

    def is_refreshing(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def _do_refresh(self) -> Dict[str, Any]:
        self.refresh_count += 1
        try:
            ip = await self.fetcher()
        except (ClientError, asyncio.TimeoutError, ValueError, OSError) as e:
            now = self.clock()
            self.checked_at = now
            self.expires_at = now + FAILURE_TTL_MS
            self.error = str(e) or type(e).__name__
            logger.warning(f"⚠️ Egress IP refresh failed: {self.error}")
            return self.snapshot()

        now = self.clock()
        self.ip = ip
        self.checked_at = now
        self.expires_at = now + SUCCESS_TTL_MS
        self.error = None
        logger.debug(f"Egress IP: {ip}")
        return self.snapshot()

    def _start_refresh(self) -> asyncio.Future:
        if not self.is_refreshing():
            self._in_flight = asyncio.ensure_future(self._do_refresh())
        return self._in_flight

    async def refresh(self) -> Dict[str, Any]:
        """Обновляет IP; параллельные вызовы ждут одно и то же обновление"""
        return await asyncio.shield(self._start_refresh())

    def get_maybe_refresh(self) -> Dict[str, Any]:
        """
        Возвращает снимок и, если он устарел, запускает фоновое обновление

        Returns:
            dict: Снимок на момент вызова (не ждет обновления)
        """
        snapshot = self.snapshot()
        if snapshot['stale']:
            self._start_refresh()
        return snapshot

    async def close(self):
        if self.is_refreshing():
            self._in_flight.cancel()
            try:
                await self._in_flight
            except asyncio.CancelledError:
                pass
        self._in_flight = None
