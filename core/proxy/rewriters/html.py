# core/proxy/rewriters/html.py
"""
Перезапись ссылок в HTML

BeautifulSoup (html.parser) находит теги и их позиции в исходном тексте,
а новые значения атрибутов вставляются обратно в исходный документ.
Все, что не переписывается, остается символ в символ.
"""

import re
import logging
from html import unescape
from html.entities import html5 as HTML5_ENTITIES
from typing import List, NamedTuple, Optional, Tuple

from bs4 import BeautifulSoup

from core.proxy.rewriters.base import RewriteContext
from core.proxy.rewriters.css import rewrite_css, rewrite_css_urls

logger = logging.getLogger(__name__)

TAG_ATTR_MAP = {
    'a': ('href',),
    'link': ('href',),
    'area': ('href',),
    'base': ('href',),
    'script': ('src',),
    'img': ('src', 'data-src', 'data-lazy-src'),
    'iframe': ('src',),
    'video': ('src', 'poster'),
    'audio': ('src',),
    'source': ('src',),
    'track': ('src',),
    'embed': ('src',),
    'form': ('action',),
    'object': ('data',),
}

# Общий проход для тегов вне карты (нестандартная разметка)
GENERIC_ATTRS = ('href', 'src', 'action')

# Содержимое этих тегов - текст, а не разметка
RAW_TEXT_TAGS = ('textarea', 'title')

_META_REFRESH_PATTERN = re.compile(
    r"""^(\s*\d+(?:\.\d+)?\s*[;,]\s*url\s*=\s*['"]?)([^'"\s]+)(.*)$""",
    re.IGNORECASE | re.DOTALL,
)

_TAG_NAME_PATTERN = re.compile(r'<([A-Za-z][^\s/>]*)')
_TAG_END_PATTERN = re.compile(r'\s*/?>')
_ATTR_PATTERN = re.compile(r'''\s*([^\s"'<>/=]+)(?:\s*=\s*("[^"]*"|'[^']*'|[^\s>]+))?''')
_CHARREF_PATTERN = re.compile(r'&(#[0-9]+;?|#[xX][0-9a-fA-F]+;?|[A-Za-z][A-Za-z0-9]*;?)')
_STYLE_CLOSE_PATTERN = re.compile(r'</style', re.IGNORECASE)

Edit = Tuple[int, int, str]


class SourceAttr(NamedTuple):
    name: str
    value: Optional[str]
    start: int
    end: int
    quote: str


class StartTag(NamedTuple):
    name: str
    attrs: Tuple[SourceAttr, ...]
    end: int

    def get(self, name: str) -> Optional[str]:
        for attr in self.attrs:
            if attr.name == name:
                return attr.value
        return None


def decode_attr_value(raw: str) -> str:
    """
    Раскрывает ссылки на символы в значении атрибута

    Имя без ';' раскрывается, только если это целое известное имя
    и за ним не идет '=' (иначе ?a=1&copy=2 превратился бы в ©=2).
    """
    if '&' not in raw:
        return raw

    def replace(match):
        ref = match.group(1)
        if ref.startswith('#') or ref.endswith(';'):
            return unescape(match.group(0))
        if ref in HTML5_ENTITIES and raw[match.end():match.end() + 1] != '=':
            return HTML5_ENTITIES[ref]
        return match.group(0)

    return _CHARREF_PATTERN.sub(replace, raw)


def _quote_attr(value: str, quote: str) -> str:
    quote = quote or '"'
    escaped = value.replace('&', '&amp;')
    escaped = escaped.replace(quote, '&quot;' if quote == '"' else '&#39;')
    return f"{quote}{escaped}{quote}"


def _parse_start_tag(source: str, offset: int) -> Optional[StartTag]:
    """Разбирает открывающий тег, начинающийся с source[offset]"""
    match = _TAG_NAME_PATTERN.match(source, offset)
    if not match:
        return None

    attrs: List[SourceAttr] = []
    pos = match.end()
    while pos < len(source):
        tag_end = _TAG_END_PATTERN.match(source, pos)
        if tag_end:
            return StartTag(match.group(1).lower(), tuple(attrs), tag_end.end())

        attr = _ATTR_PATTERN.match(source, pos)
        if attr is None:
            # Одиночный '/' или мусор между атрибутами
            pos += 1
            continue

        name = attr.group(1).lower()
        raw = attr.group(2)
        if raw is None:
            attrs.append(SourceAttr(name, None, attr.end(), attr.end(), ''))
        else:
            quoted = len(raw) >= 2 and raw[0] in '"\'' and raw[-1] == raw[0]
            quote = raw[0] if quoted else ''
            value = raw[1:-1] if quoted else raw
            attrs.append(SourceAttr(name, decode_attr_value(value), attr.start(2), attr.end(2), quote))
        pos = attr.end()

    return None


def _line_starts(source: str) -> List[int]:
    starts = [0]
    starts.extend(m.end() for m in re.finditer('\n', source))
    return starts


def _locate_start_tags(soup, source: str) -> List[StartTag]:
    """Открывающие теги документа в исходном тексте, кроме текста textarea/title"""
    line_starts = _line_starts(source)
    found = []

    for tag in soup.find_all(True):
        if tag.sourceline is None or tag.sourceline > len(line_starts):
            continue
        if any(parent.name in RAW_TEXT_TAGS for parent in tag.parents):
            continue

        start_tag = _parse_start_tag(source, line_starts[tag.sourceline - 1] + tag.sourcepos)
        if start_tag is None or start_tag.name != tag.name:
            logger.debug(f"Tag <{tag.name}> not found at line {tag.sourceline}, skipped")
            continue
        found.append(start_tag)

    return found


def _document_context(tags: List[StartTag], context: RewriteContext) -> RewriteContext:
    """Учитывает <base href>: относительные ссылки разрешаются от него"""
    for tag in tags:
        if tag.name != 'base':
            continue
        href = tag.get('href')
        if href is None:
            continue

        base_url = context.resolve(href)
        if base_url is None:
            return context
        return context.with_base(base_url)

    return context


def _rewrite_meta_refresh(tag: StartTag, context: RewriteContext, edits: List[Edit]):
    if (tag.get('http-equiv') or '').strip().lower() != 'refresh':
        return

    for attr in tag.attrs:
        if attr.name != 'content' or not attr.value:
            continue

        match = _META_REFRESH_PATTERN.match(attr.value)
        if not match:
            return

        url = match.group(2)
        # Только абсолютные URL
        if not url.lower().startswith('http'):
            return

        absolute = context.resolve(url)
        if absolute:
            content = match.group(1) + context.to_proxy(absolute) + match.group(3)
            edits.append((attr.start, attr.end, _quote_attr(content, attr.quote)))
        return


def _rewrite_attrs(tag: StartTag, names, context: RewriteContext, edits: List[Edit]):
    for attr in tag.attrs:
        if attr.value is None:
            continue

        if attr.name in names:
            new_value = context.proxify(attr.value)
        elif attr.name == 'style' and 'url' in attr.value.lower():
            new_value = rewrite_css_urls(attr.value, context)
        else:
            continue

        if new_value != attr.value:
            edits.append((attr.start, attr.end, _quote_attr(new_value, attr.quote)))


def _rewrite_style_block(source: str, tag: StartTag, context: RewriteContext, edits: List[Edit]):
    if source.endswith('/>', 0, tag.end):
        return

    close = _STYLE_CLOSE_PATTERN.search(source, tag.end)
    end = close.start() if close else len(source)

    css = source[tag.end:end]
    new_css = rewrite_css(css, context)
    if new_css != css:
        edits.append((tag.end, end, new_css))


def _apply_edits(source: str, edits: List[Edit]) -> str:
    parts = []
    last = 0
    for start, end, text in sorted(edits):
        if start < last:
            continue
        parts.append(source[last:start])
        parts.append(text)
        last = end
    parts.append(source[last:])
    return ''.join(parts)


def rewrite_html(html: str, context: RewriteContext) -> str:
    """
    Переписывает ссылки HTML документа на прокси

    Обрабатываются: meta refresh, карта тег -> атрибуты, <base href>,
    inline style="...", <style> блоки и href/src/action на прочих тегах.
    Ошибка разбора не пробрасывается - документ возвращается без изменений.

    Args:
        html: Текст документа
        context: Контекст перезаписи (base_url - URL документа)

    Returns:
        str: Документ с проксированными ссылками
    """
    if not html or not isinstance(html, str):
        return html

    try:
        soup = BeautifulSoup(html, 'html.parser', multi_valued_attributes=None)
    except Exception as e:
        logger.warning(f"⚠️ HTML parse failed, passing document through: {e}")
        return html

    tags = _locate_start_tags(soup, html)
    document_context = _document_context(tags, context)
    edits: List[Edit] = []

    for tag in tags:
        if tag.name == 'meta':
            _rewrite_meta_refresh(tag, document_context, edits)

        if tag.name == 'base':
            # base разрешается от URL документа, а не от самого себя
            _rewrite_attrs(tag, ('href',), context, edits)
            continue

        names = TAG_ATTR_MAP.get(tag.name, ())
        _rewrite_attrs(tag, names + tuple(a for a in GENERIC_ATTRS if a not in names), document_context, edits)

        if tag.name == 'style':
            _rewrite_style_block(html, tag, document_context, edits)

    return _apply_edits(html, edits)
