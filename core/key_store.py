# core/key_store.py
"""Хранилище ключей доступа: память + JSON файл"""

import json
import logging
import secrets
import string
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

KEY_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789'
KEY_LENGTH = 16
TIMESTAMP_FIELDS = ('expiresAt', 'expiresInMs', 'boundAt', 'createdAt')


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_key_secret() -> str:
    """Случайный секрет ключа (16 символов без похожих букв/цифр)"""
    return ''.join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_LENGTH))


def _generate_id() -> str:
    suffix = ''.join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(7))
    return f"key_{now_ms():x}_{suffix}"


def _coerce_timestamp(value) -> Optional[int]:
    """Число, строка с числом или ISO дата -> epoch ms; остальное -> None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed.isdigit():
            return int(trimmed)
        try:
            return int(datetime.fromisoformat(trimmed.replace('Z', '+00:00')).timestamp() * 1000)
        except ValueError:
            return None
    return None


class KeyStore:
    """Ключи доступа, привязываемые к одному устройству"""

    def __init__(self, data_file: Optional[Path] = None, clock: Callable[[], int] = now_ms):
        """
        Args:
            data_file: JSON файл для сохранения (None - только память)
            clock: Источник текущего времени в миллисекундах
        """
        self.data_file = Path(data_file) if data_file else None
        self.clock = clock
        self.keys: Dict[str, Dict[str, Any]] = {}
        self.keys_by_secret: Dict[str, Dict[str, Any]] = {}

    def load(self) -> int:
        """
        Загружает ключи из файла

        Returns:
            int: Количество загруженных ключей
        """
        if not self.data_file or not self.data_file.exists():
            return 0

        try:
            with open(self.data_file, 'r', encoding='utf-8') as f:
                raw_keys = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"❌ Keys load error: {e}")
            return 0

        self.keys.clear()
        self.keys_by_secret.clear()

        for key in raw_keys:
            for field in TIMESTAMP_FIELDS:
                key[field] = _coerce_timestamp(key.get(field))

            key.setdefault('hidden', False)
            key.setdefault('boundDeviceId', None)
            key.setdefault('boundUserAgent', None)
            if key['createdAt'] is None:
                key['createdAt'] = key['boundAt'] if key['boundAt'] is not None else self.clock()

            # Длительность без абсолютного срока отсчитывается от создания
            if key['expiresAt'] is None and key['expiresInMs'] is not None:
                key['expiresAt'] = key['createdAt'] + max(0, key['expiresInMs'])

            self.keys[key['id']] = key
            self.keys_by_secret[key['key']] = key

        logger.info(f"🔑 Loaded {len(self.keys)} keys from {self.data_file}")
        return len(self.keys)

    def save(self) -> bool:
        """Сохраняет ключи в файл"""
        if not self.data_file:
            return True
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.data_file, 'w', encoding='utf-8') as f:
                json.dump(list(self.keys.values()), f, indent=2, ensure_ascii=False)
            return True
        except OSError as e:
            logger.error(f"❌ Keys save error: {e}")
            return False

    def create_key(self, name: Optional[str] = None, expires_in_ms: Optional[int] = None,
                   secret: Optional[str] = None) -> Dict[str, Any]:
        """
        Создает новый ключ

        Args:
            name: Отображаемое имя
            expires_in_ms: Срок действия от момента создания (None - бессрочно)
            secret: Явный секрет (иначе генерируется)

        Returns:
            dict: Созданный ключ
        """
        created_at = self.clock()
        duration = max(0, int(expires_in_ms)) if expires_in_ms is not None else None

        key = {
            'id': _generate_id(),
            'name': name or 'Unnamed',
            'key': secret.strip() if secret and secret.strip() else generate_key_secret(),
            'expiresAt': created_at + duration if duration is not None else None,
            'expiresInMs': duration,
            'boundDeviceId': None,
            'boundAt': None,
            'boundUserAgent': None,
            'hidden': False,
            'createdAt': created_at,
        }

        self.keys[key['id']] = key
        self.keys_by_secret[key['key']] = key
        self.save()
        logger.info(f"🔑 Key created: {key['id']} ({key['name']})")
        return key

    def get_key_by_id(self, key_id: str) -> Optional[Dict[str, Any]]:
        return self.keys.get(key_id)

    def get_key_by_secret(self, secret: str) -> Optional[Dict[str, Any]]:
        return self.keys_by_secret.get(secret)

    def is_expired(self, key: Dict[str, Any]) -> bool:
        return key.get('expiresAt') is not None and self.clock() >= key['expiresAt']

    def claim_key(self, secret: str, device_id: str, user_agent: Optional[str] = None) -> Dict[str, Any]:
        """
        Привязывает ключ к устройству (повторный claim тем же устройством - ok)

        Returns:
            dict: {'ok': True, 'keyId', 'name', 'expiresAt'} или {'ok': False, 'reason'}
        """
        key = self.keys_by_secret.get(secret)
        if not key:
            return {'ok': False, 'reason': 'invalid_key'}
        if self.is_expired(key):
            return {'ok': False, 'reason': 'expired'}
        if key['boundDeviceId'] is not None and key['boundDeviceId'] != device_id:
            return {'ok': False, 'reason': 'already_used'}

        if key['boundDeviceId'] is None:
            key['boundDeviceId'] = device_id
            key['boundAt'] = self.clock()
            key['boundUserAgent'] = user_agent
            self.save()
            logger.info(f"🔑 Key {key['id']} bound to device {device_id}")

        return {
            'ok': True,
            'keyId': key['id'],
            'name': key['name'],
            'expiresAt': key['expiresAt'],
        }

    def get_bound_key_for_device(self, device_id: str) -> Optional[Dict[str, Any]]:
        """Непросроченный ключ, привязанный к устройству, либо None"""
        for key in self.keys.values():
            if key['boundDeviceId'] != device_id:
                continue
            if self.is_expired(key):
                continue
            return key
        return None

    def revoke_key(self, key_id: str) -> bool:
        """Немедленно истекает ключ"""
        key = self.keys.get(key_id)
        if not key:
            return False
        key['expiresAt'] = self.clock()
        self.save()
        logger.info(f"🔑 Key revoked: {key_id}")
        return True

    def list_keys(self, include_hidden: bool = False, include_expired: bool = False) -> List[Dict[str, Any]]:
        return [
            dict(key) for key in self.keys.values()
            if (include_hidden or not key['hidden']) and (include_expired or not self.is_expired(key))
        ]

    def __len__(self) -> int:
        return len(self.keys)
