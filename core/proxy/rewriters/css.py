# core/proxy/rewriters/css.py
"""Перезапись url() и @import в CSS"""

import re

from core.proxy.rewriters.base import RewriteContext

_CSS_URL_PATTERN = re.compile(r"""url\s*\(\s*['"]?([^'")\s]+)['"]?\s*\)""", re.IGNORECASE)
# Только строковая форма: @import url(...) обрабатывается проходом url()
_CSS_IMPORT_PATTERN = re.compile(r"""@import\s+(['"])([^'"]+)\1(\s*;)?""", re.IGNORECASE)


def _quoted_url(proxied: str) -> str:
    return "url('" + proxied.replace("'", "\\'") + "')"


def rewrite_css_urls(css: str, context: RewriteContext) -> str:
    """Переписывает все url(...) ссылки; используется и для style="..." в HTML"""
    if not css or not isinstance(css, str):
        return css

    def replace_url(match):
        absolute = context.resolve(match.group(1))
        if absolute is None:
            return match.group(0)
        return _quoted_url(context.to_proxy(absolute))

    return _CSS_URL_PATTERN.sub(replace_url, css)


def rewrite_css(css: str, context: RewriteContext) -> str:
    """
    Переписывает ссылки в таблице стилей

    Args:
        css: Текст CSS
        context: Контекст перезаписи

    Returns:
        str: CSS, где все ресурсы идут через прокси
    """
    if not css or not isinstance(css, str):
        return css

    out = rewrite_css_urls(css, context)

    def replace_import(match):
        absolute = context.resolve(match.group(2))
        if absolute is None:
            return match.group(0)
        terminator = ';' if match.group(3) else ''
        return f"@import {_quoted_url(context.to_proxy(absolute))}{terminator}"

    return _CSS_IMPORT_PATTERN.sub(replace_import, out)
