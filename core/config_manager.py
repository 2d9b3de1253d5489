import json
import os
import re
import sys
import logging
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

S = 1000
M = 60 * S
H = 60 * M
D = 24 * H

EXPIRATION_PRESETS = {
    '24h': 1 * D,
    '3d': 3 * D,
    '7d': 7 * D,
    '1m': 30 * D,
    '2m': 60 * D,
    '3m': 90 * D,
    '6m': 180 * D,
}

_DURATION_PATTERN = re.compile(r'^([\d.]+)\s*(s|m|h|d)$', re.IGNORECASE)
_SIZE_PATTERN = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?\s*$', re.IGNORECASE)
_SIZE_UNITS = {'b': 1, 'kb': 1024, 'mb': 1024 ** 2, 'gb': 1024 ** 3}

# Переменная окружения -> (ключ конфига, тип)
ENV_OVERRIDES = {
    'HOST': ('server.host', str),
    'PORT': ('server.port', int),
    'PROXY_PATH': ('proxy.mount_path', str),
    'PROXY_TIMEOUT_MS': ('proxy.timeout_ms', int),
    'MAX_REQUEST_SIZE': ('proxy.max_request_size', str),
    'KEYS_DATA_FILE': ('access.keys_file', str),
    'REQUIRE_DEVICE_KEY': ('access.require_device_key', bool),
    'LOG_LEVEL': ('logging.level', str),
}


def get_app_data_dir():
    """Возвращает путь для хранения данных приложения"""
    override = os.getenv('BREAD_DATA_DIR')
    if override:
        app_data_dir = Path(override)
    elif getattr(sys, 'frozen', False):
        if os.name == 'nt':  # Windows
            appdata_dir = Path(os.getenv('LOCALAPPDATA', Path.home() / 'AppData' / 'Local'))
            app_data_dir = appdata_dir / 'BreadProxy'
        else:  # Linux/Mac
            app_data_dir = Path.home() / '.config' / 'bread-proxy'
    else:
        # Dev режим
        app_data_dir = Path(__file__).parent.parent / 'app_data'

    app_data_dir.mkdir(parents=True, exist_ok=True)
    return app_data_dir


def parse_size(value) -> int:
    """
    Размер в байтах из строки вида "50mb"

    Raises:
        ValueError: Некорректная строка размера
    """
    if isinstance(value, int):
        return value
    match = _SIZE_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    unit = (match.group(2) or 'b').lower()
    return int(float(match.group(1)) * _SIZE_UNITS[unit])


def parse_custom_duration(value: Optional[str]) -> Optional[int]:
    """Длительность "1s", "2.5m", "1.5h", "2d" в миллисекундах, либо None"""
    if not value or not isinstance(value, str):
        return None
    match = _DURATION_PATTERN.match(value.strip())
    if not match:
        return None
    number = max(0.0, float(match.group(1)))
    multipliers = {'s': S, 'm': M, 'h': H, 'd': D}
    return round(number * multipliers[match.group(2).lower()])


def expiration_to_duration_ms(preset: Optional[str]) -> Optional[int]:
    """Пресет срока действия ключа -> миллисекунды (None = бессрочно)"""
    if not preset or preset == 'forever':
        return None
    if preset in EXPIRATION_PRESETS:
        return EXPIRATION_PRESETS[preset]
    return parse_custom_duration(preset)


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class ConfigManager:
    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        self.config_path = Path(config_path) if config_path else self._get_config_path()
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()

    def _get_config_path(self) -> Path:
        """Возвращает путь к файлу конфигурации"""
        explicit = os.getenv('BREAD_CONFIG')
        if explicit:
            return Path(explicit)
        return get_app_data_dir() / 'config.json'

    def _get_default_config(self) -> dict:
        """Возвращает конфигурацию по умолчанию"""
        return {
            'server': {
                'host': '0.0.0.0',
                'port': 3000,
            },

            'proxy': {
                'mount_path': '/go',
                'timeout_ms': 30000,
                'max_request_size': '50mb',
            },

            'access': {
                'require_device_key': True,
                'keys_file': None,  # None = <app data>/keys.json
            },

            'logging': {
                'level': 'INFO',
            },
        }

    def _load_config(self) -> Dict[str, Any]:
        """Загружает конфигурацию: дефолты + JSON файл + переменные окружения"""
        config = self._get_default_config()

        try:
            if self.config_path.exists():
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                    config = self._deep_merge(config, loaded_config)
        except (OSError, ValueError) as e:
            logger.error(f"Ошибка загрузки конфига {self.config_path}: {e}")

        self._apply_env_overrides(config)
        return config

    def _apply_env_overrides(self, config: Dict[str, Any]):
        for env_name, (key, cast) in ENV_OVERRIDES.items():
            raw = self.environ.get(env_name)
            if raw is None or raw == '':
                continue
            try:
                value = _to_bool(raw) if cast is bool else cast(raw)
            except ValueError:
                logger.warning(f"⚠️ Некорректное значение {env_name}={raw!r}, используется конфиг")
                continue
            self._set_in(config, key, value)

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Рекурсивное объединение словарей"""
        result = base.copy()

        for key, value in update.items():
            if (key in result and
                    isinstance(result[key], dict) and
                    isinstance(value, dict)):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @staticmethod
    def _set_in(config: Dict[str, Any], key: str, value: Any):
        keys = key.split('.')
        config_ref = config

        for k in keys[:-1]:
            if k not in config_ref or not isinstance(config_ref[k], dict):
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value

    def save(self) -> bool:
        """Сохраняет конфигурацию в файл"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=2, ensure_ascii=False)
            logger.info("Конфигурация сохранена")
            return True
        except OSError as e:
            logger.error(f"Ошибка сохранения конфига: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Получает значение по ключу (dot notation)"""
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any, save: bool = False) -> bool:
        """Устанавливает значение по ключу (dot notation)"""
        self._set_in(self.config, key, value)

        if save:
            return self.save()
        return True

    def get_server_config(self) -> Dict[str, Any]:
        """Возвращает настройки сервера"""
        return self.get('server', {})

    def get_proxy_config(self) -> Dict[str, Any]:
        """Возвращает настройки прокси"""
        return self.get('proxy', {})

    def get_mount_path(self) -> str:
        mount_path = '/' + str(self.get('proxy.mount_path', '/go')).strip('/')
        return mount_path

    def get_max_request_size(self) -> int:
        return parse_size(self.get('proxy.max_request_size', '50mb'))

    def get_keys_file(self) -> Path:
        keys_file = self.get('access.keys_file')
        if keys_file:
            return Path(keys_file)
        return get_app_data_dir() / 'keys.json'

    def reset_to_defaults(self) -> bool:
        """Сбрасывает настройки к значениям по умолчанию"""
        self.config = self._get_default_config()
        return self.save()


# Синглтон для глобального доступа
_config_instance = None


def get_config() -> ConfigManager:
    """Возвращает глобальный экземпляр ConfigManager"""
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigManager()
    return _config_instance
