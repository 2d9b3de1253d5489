# core/proxy/rewriters/__init__.py
"""HTML/CSS rewriters. JavaScript is passed through untouched."""

from core.proxy.rewriters.base import RewriteContext
from core.proxy.rewriters.css import rewrite_css
from core.proxy.rewriters.html import rewrite_html

__all__ = ['RewriteContext', 'rewrite_css', 'rewrite_html']
