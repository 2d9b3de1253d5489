# core/proxy/rewriters/base.py
"""Общий контекст перезаписи URL"""

import re
import logging
from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import urljoin

from core.proxy.url_codec import DEFAULT_MOUNT_PATH, encode_url, is_proxied_url

logger = logging.getLogger(__name__)

# Фрагменты, javascript: и data: никогда не проксируются
_SKIP_PATTERN = re.compile(r'^\s*(?:#|javascript:|data:)', re.IGNORECASE)


@dataclass(frozen=True)
class RewriteContext:
    """
    Контекст одного ответа

    Attributes:
        base_url: URL, относительно которого разрешаются ссылки документа
        proxy_base: scheme://host, по которому клиент видит прокси
        mount_path: Префикс монтирования прокси (например, /go)
    """

    base_url: str
    proxy_base: str
    mount_path: str = DEFAULT_MOUNT_PATH

    def with_base(self, base_url: str) -> 'RewriteContext':
        return replace(self, base_url=base_url)

    def resolve(self, value) -> Optional[str]:
        """
        Разрешает ссылку в абсолютный http(s) URL, который нужно проксировать

        Returns:
            str или None: None - ссылку трогать не нужно
        """
        if not value or not isinstance(value, str):
            return None

        value = value.strip()
        if not value or _SKIP_PATTERN.match(value):
            return None

        try:
            absolute = urljoin(self.base_url, value)
        except ValueError:
            return None

        if not absolute.lower().startswith(('http://', 'https://')):
            return None

        # Уже указывает на прокси - повторно не кодируем
        if is_proxied_url(absolute, self.proxy_base, self.mount_path):
            return None

        return absolute

    def to_proxy(self, absolute_url: str) -> str:
        return self.proxy_base + encode_url(absolute_url, self.mount_path)

    def proxify(self, value):
        """Проксированная ссылка, либо исходное значение без изменений"""
        absolute = self.resolve(value)
        if absolute is None:
            return value
        return self.to_proxy(absolute)
