# proxy_server.py
import asyncio
import logging
from typing import Optional

from aiohttp import web, ClientSession, DummyCookieJar, TCPConnector, ClientTimeout

from core.access import create_device_key_middleware
from core.config_manager import ConfigManager, get_config
from core.egress_cache import EgressIpCache
from core.key_store import KeyStore
from core.proxy import ProxySettings, handle_proxy_request
from core.routes import EGRESS_CACHE, KEY_STORE, MOUNT_PATH, PROXY, routes
from utils.port_utils import check_port_availability, get_process_using_port

logger = logging.getLogger(__name__)

PROXY_METHODS = ('GET', 'POST', 'PUT', 'PATCH')


class BreadProxy:
    def __init__(self, settings: ProxySettings):
        """
        Args:
            settings: Префикс монтирования и таймаут upstream запросов
        """
        self.settings = settings

        # Connection pool для переиспользования соединений к upstream
        self.connector = None
        self.session = None

        # Статистика производительности
        self.stats = {
            'total_requests': 0,
            'total_responses': 0,
            'active_connections': 0,
            'errors': 0
        }

    async def initialize(self):
        """Инициализация connection pool для upstream"""
        if self.connector is None:
            self.connector = TCPConnector(
                limit=100,  # Максимум 100 одновременных соединений
                limit_per_host=20,  # Не больше 20 на один сайт
                ttl_dns_cache=300,  # DNS кэш на 5 минут
                keepalive_timeout=60,  # Keep-alive 60 секунд
                enable_cleanup_closed=True  # Автоочистка закрытых соединений
            )

        if self.session is None:
            self.session = ClientSession(
                connector=self.connector,
                # Cookies upstream не должны разделяться между клиентами
                cookie_jar=DummyCookieJar(),
                timeout=ClientTimeout(total=None),
            )

    async def cleanup(self):
        """Очистка ресурсов"""
        if self.session:
            await self.session.close()
            self.session = None
        if self.connector:
            await self.connector.close()
            self.connector = None

    async def handle_http(self, request: web.Request) -> web.StreamResponse:
        """Обработка запросов <mount>/<encoded-url>"""
        self.stats['total_requests'] += 1
        self.stats['active_connections'] += 1

        try:
            await self.initialize()
            response = await handle_proxy_request(request, self.session, self.settings)

            if response.status in (400, 502):
                self.stats['errors'] += 1
            self.stats['total_responses'] += 1
            return response

        except Exception as e:
            self.stats['errors'] += 1
            logger.error(f"❌ Proxy error: {request.method} {request.path} - {e}", exc_info=True)
            raise

        finally:
            self.stats['active_connections'] -= 1

    def get_full_stats(self):
        """Получить полную статистику прокси"""
        return {
            'requests': self.stats['total_requests'],
            'responses': self.stats['total_responses'],
            'active': self.stats['active_connections'],
            'errors': self.stats['errors']
        }


def create_app(config: Optional[ConfigManager] = None, key_store: Optional[KeyStore] = None,
               egress_cache: Optional[EgressIpCache] = None) -> web.Application:
    """
    Собирает aiohttp приложение прокси

    Args:
        config: Конфигурация (по умолчанию глобальная)
        key_store: Хранилище ключей (по умолчанию загружается из keys_file)
        egress_cache: Кэш egress IP для /api/status

    Returns:
        web.Application: Готовое приложение
    """
    config = config or get_config()
    mount_path = config.get_mount_path()
    settings = ProxySettings(
        mount_path=mount_path,
        timeout_ms=int(config.get('proxy.timeout_ms', 30000)),
    )

    if key_store is None:
        key_store = KeyStore(config.get_keys_file())
        key_store.load()

    egress_cache = egress_cache or EgressIpCache()
    proxy = BreadProxy(settings)

    middlewares = []
    if config.get('access.require_device_key', True):
        middlewares.append(create_device_key_middleware(key_store, mount_path))
    else:
        logger.warning("⚠️ Device key check disabled - proxy is open to anyone")

    app = web.Application(
        middlewares=middlewares,
        client_max_size=config.get_max_request_size(),
    )
    app[KEY_STORE] = key_store
    app[EGRESS_CACHE] = egress_cache
    app[PROXY] = proxy
    app[MOUNT_PATH] = mount_path

    for method in PROXY_METHODS:
        app.router.add_route(method, mount_path, proxy.handle_http)
        app.router.add_route(method, mount_path + '/{tail:.*}', proxy.handle_http)
    app.router.add_routes(routes)

    async def on_startup(app):
        await proxy.initialize()

    async def on_cleanup(app):
        await proxy.cleanup()
        await egress_cache.close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


class ProxyServer:
    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or get_config()
        self.host = self.config.get('server.host', '0.0.0.0')
        self.port = int(self.config.get('server.port', 3000))
        self.runner = None
        self.site = None
        self.is_running = False
        self.last_error_details = None

    def check_port(self) -> bool:
        """Проверка порта перед запуском"""
        port_available, port_message = check_port_availability(self.port, self.host)
        if port_available:
            return True

        logger.error(f"❌ {port_message}")
        owner = get_process_using_port(self.port, self.host)
        if owner:
            logger.info(
                f"📌 Процесс на порту {self.port}:\n"
                f"   PID: {owner.pid}\n"
                f"   Name: {owner.name}\n"
                f"   User: {owner.username or 'N/A'}"
            )
        self.last_error_details = port_message
        return False

    async def start(self):
        """Асинхронный запуск сервера"""
        app = create_app(self.config)

        self.runner = web.AppRunner(app, access_log=None)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, host=self.host, port=self.port)
        await self.site.start()
        self.is_running = True

        logger.info(f"✅ Bread Proxy listening on http://{self.host}:{self.port}")
        logger.info(f"   Proxy: {app[MOUNT_PATH]}/<encoded-url>  |  Status: /api/status")

    async def stop(self):
        """Асинхронная остановка сервера"""
        self.is_running = False
        if self.site:
            await self.site.stop()
            self.site = None
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        logger.info("✅ Proxy stopped and cleaned up successfully")

    async def serve_forever(self):
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    def run(self) -> int:
        """Блокирующий запуск до Ctrl+C"""
        if not self.check_port():
            return 1

        try:
            asyncio.run(self.serve_forever())
        except KeyboardInterrupt:
            logger.info("🛑 Stopping proxy...")
        return 0
