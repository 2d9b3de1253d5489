# core/proxy/__init__.py
"""
Proxy pipeline package.

Public entry points for the request/response pipeline; the server layer imports
from here.
"""

from core.proxy.content_types import get_rewriter, should_rewrite
from core.proxy.errors import (
    InvalidTargetError,
    ProxyError,
    RequestBodyError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamTimeoutError,
)
from core.proxy.handler import ProxySettings, handle_proxy_request
from core.proxy.rewriters.base import RewriteContext
from core.proxy.url_codec import decode_url, encode_url, get_proxy_base

__all__ = [
    'InvalidTargetError',
    'ProxyError',
    'ProxySettings',
    'RequestBodyError',
    'RewriteContext',
    'UpstreamConnectionError',
    'UpstreamError',
    'UpstreamTimeoutError',
    'decode_url',
    'encode_url',
    'get_proxy_base',
    'get_rewriter',
    'handle_proxy_request',
    'should_rewrite',
]
