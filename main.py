# main.py
import sys
import argparse
import logging


def setup_logging(level: str = 'INFO'):
    """Настраивает логирование ДО всех операций с ротацией"""
    from core.config_manager import get_app_data_dir
    from logging.handlers import RotatingFileHandler

    app_data_dir = get_app_data_dir()
    logs_dir = app_data_dir / "logs"
    logs_dir.mkdir(exist_ok=True)

    log_file = logs_dir / "bread_proxy.log"

    # Ротирующий обработчик: макс 5MB, 5 резервных копий
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        handlers=[console_handler, file_handler]
    )


logger = logging.getLogger(__name__)


def setup_exception_handler():
    """Настраивает глобальный обработчик исключений"""

    def exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical("Необработанное исключение:",
                        exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = exception_handler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='bread-proxy',
        description='Streaming rewriting web proxy',
    )
    subparsers = parser.add_subparsers(dest='command')

    serve = subparsers.add_parser('serve', help='Запустить прокси сервер (по умолчанию)')
    serve.add_argument('--host', help='Адрес для прослушивания')
    serve.add_argument('--port', type=int, help='Порт')

    create_key = subparsers.add_parser('create-key', help='Создать ключ доступа')
    create_key.add_argument('--name', default=None, help='Имя ключа')
    create_key.add_argument('--expires', default='forever',
                            help='forever, 24h, 3d, 7d, 1m, 2m, 3m, 6m или <n>(s|m|h|d)')
    create_key.add_argument('--key', default=None, help='Явный секрет ключа')

    return parser


def cmd_create_key(config, args) -> int:
    from core.config_manager import expiration_to_duration_ms
    from core.key_store import KeyStore

    duration = expiration_to_duration_ms(args.expires)
    if duration is None and args.expires not in (None, '', 'forever'):
        logger.error(f"❌ Некорректный срок действия: {args.expires}")
        return 2

    key_store = KeyStore(config.get_keys_file())
    key_store.load()
    key = key_store.create_key(name=args.name, expires_in_ms=duration, secret=args.key)
    print(key['key'])
    return 0


def cmd_serve(config, args) -> int:
    from core.proxy_server import ProxyServer

    if args.host:
        config.set('server.host', args.host)
    if args.port:
        config.set('server.port', args.port)

    logger.info("🚀 Запуск Bread Proxy")
    return ProxyServer(config).run()


def main(argv=None) -> int:
    """Основная функция приложения"""
    from core.config_manager import get_config

    config = get_config()
    setup_logging(config.get('logging.level', 'INFO'))
    setup_exception_handler()

    args = build_parser().parse_args(argv)

    if args.command == 'create-key':
        return cmd_create_key(config, args)

    if args.command is None:
        args = build_parser().parse_args(['serve'])
    return cmd_serve(config, args)


if __name__ == "__main__":
    sys.exit(main())
