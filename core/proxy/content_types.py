# core/proxy/content_types.py
"""Определение типа контента и выбор rewriter'а"""

from typing import Callable, Optional

from core.proxy.rewriters.css import rewrite_css
from core.proxy.rewriters.html import rewrite_html

HTML_TYPES = ('text/html', 'application/xhtml+xml')
CSS_TYPES = ('text/css',)


def mime_type(content_type: Optional[str]) -> str:
    """MIME тип без параметров, в нижнем регистре"""
    if not content_type:
        return ''
    return content_type.split(';')[0].strip().lower()


def is_html_content_type(content_type: Optional[str]) -> bool:
    return mime_type(content_type) in HTML_TYPES


def is_css_content_type(content_type: Optional[str]) -> bool:
    return mime_type(content_type) in CSS_TYPES


def get_rewriter(content_type: Optional[str]) -> Optional[Callable]:
    """
    Возвращает rewriter для типа контента

    JavaScript и все остальное идут без изменений (None).
    """
    if is_html_content_type(content_type):
        return rewrite_html
    if is_css_content_type(content_type):
        return rewrite_css
    return None


def should_rewrite(content_type: Optional[str]) -> bool:
    return get_rewriter(content_type) is not None
