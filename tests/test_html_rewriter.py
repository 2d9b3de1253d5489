"""Tests for HTML link rewriting."""

from core.proxy.rewriters.base import RewriteContext
from core.proxy.rewriters.html import rewrite_html
from core.proxy.url_codec import encode_url

PROXY_BASE = 'http://proxy.test'


def proxied(url):
    return PROXY_BASE + encode_url(url)


def rewrite(html, base_url='https://example.com/'):
    return rewrite_html(html, RewriteContext(base_url=base_url, proxy_base=PROXY_BASE))


class TestTagAttributes:
    def test_anchor_href(self):
        out = rewrite('<html><body><a href="/about">x</a></body></html>')
        assert 'href="http://proxy.test/go/https%3A%2F%2Fexample.com%2Fabout"' in out

    def test_resources(self):
        out = rewrite(
            '<link rel="stylesheet" href="s.css">'
            '<script src="https://cdn.test/app.js"></script>'
            '<img src="i.png" data-src="lazy.png">'
            '<video src="v.mp4" poster="p.jpg"></video>'
            '<form action="/search"></form>'
            '<object data="o.swf"></object>',
            base_url='https://example.com/dir/page.html',
        )
        assert f'href="{proxied("https://example.com/dir/s.css")}"' in out
        assert f'src="{proxied("https://cdn.test/app.js")}"' in out
        assert f'src="{proxied("https://example.com/dir/i.png")}"' in out
        assert f'data-src="{proxied("https://example.com/dir/lazy.png")}"' in out
        assert f'poster="{proxied("https://example.com/dir/p.jpg")}"' in out
        assert f'action="{proxied("https://example.com/search")}"' in out
        assert f'data="{proxied("https://example.com/dir/o.swf")}"' in out

    def test_single_quoted_and_unquoted_values(self):
        out = rewrite("<a href='/a'>a</a><a href=/b>b</a>")
        assert f"href='{proxied('https://example.com/a')}'" in out
        assert f'href="{proxied("https://example.com/b")}"' in out

    def test_generic_attributes_on_unknown_tags(self):
        out = rewrite('<custom-player src="/stream.m3u8"></custom-player>')
        assert f'src="{proxied("https://example.com/stream.m3u8")}"' in out

    def test_quotes_and_brackets_inside_other_attributes(self):
        out = rewrite('<a title="1 > 0 &quot;yes&quot;" href="/x">x</a>')
        assert f'href="{proxied("https://example.com/x")}"' in out
        assert 'title="1 > 0 &quot;yes&quot;"' in out


class TestSkippedLinks:
    def test_fragment_javascript_and_data_untouched(self):
        html = (
            '<a href="#top">t</a>'
            '<a href="javascript:void(0)">j</a>'
            '<img src="data:image/gif;base64,R0lGOD">'
            '<a href="mailto:a@b.test">m</a>'
        )
        out = rewrite(html)
        assert 'href="#top"' in out
        assert 'href="javascript:void(0)"' in out
        assert 'src="data:image/gif;base64,R0lGOD"' in out
        assert 'href="mailto:a@b.test"' in out
        assert 'proxy.test' not in out

    def test_already_proxied_link_untouched(self):
        link = 'http://proxy.test/go/https%3A%2F%2Fexample.com%2Fabout'
        out = rewrite(f'<a href="{link}">x</a>')
        assert f'href="{link}"' in out
        assert out.count('/go/') == 1

    def test_rewriting_twice_is_stable(self):
        once = rewrite('<a href="/a">a</a><img src="b.png">')
        assert rewrite(once) == once


class TestMetaRefresh:
    def test_absolute_refresh_url(self):
        out = rewrite('<meta http-equiv="refresh" content="5; url=https://example.com/next">')
        assert f'content="5; url={proxied("https://example.com/next")}"' in out

    def test_relative_refresh_url_left_alone(self):
        html = '<meta http-equiv="refresh" content="0; url=/next">'
        assert 'content="0; url=/next"' in rewrite(html)

    def test_other_meta_untouched(self):
        out = rewrite('<meta name="description" content="https://example.com/">')
        assert 'content="https://example.com/"' in out


class TestBaseHref:
    def test_relative_links_resolve_against_base(self):
        out = rewrite(
            '<head><base href="https://cdn.test/assets/"></head>'
            '<body><img src="a.png"></body>'
        )
        assert f'src="{proxied("https://cdn.test/assets/a.png")}"' in out
        assert f'href="{proxied("https://cdn.test/assets/")}"' in out

    def test_relative_base(self):
        out = rewrite(
            '<base href="/static/"><a href="x.html">x</a>',
            base_url='https://example.com/page',
        )
        assert f'href="{proxied("https://example.com/static/x.html")}"' in out


class TestStyles:
    def test_inline_style(self):
        out = rewrite('<div style="background: url(/bg.png)"></div>')
        assert f"url('{proxied('https://example.com/bg.png')}')" in out

    def test_style_block(self):
        out = rewrite('<style>@import "x.css"; body { background: url("img/y.png") }</style>')
        assert f"@import url('{proxied('https://example.com/x.css')}');" in out
        assert f"url('{proxied('https://example.com/img/y.png')}')" in out


class TestPassThrough:
    def test_empty_document(self):
        assert rewrite('') == ''

    def test_text_is_preserved(self):
        out = rewrite('<p>Hello, <b>world</b></p>')
        assert out == '<p>Hello, <b>world</b></p>'

    def test_untouched_markup_is_byte_identical(self):
        html = '<!DOCTYPE html>\n<html><body><br><input disabled><hr/>\n<p class=note>x</p></body></html>'
        assert rewrite(html) == html

    def test_only_rewritten_value_changes(self):
        html = '<!DOCTYPE html>\n<BODY><br><A HREF="/x" data-id=7>x</A><input disabled></BODY>'
        expected = html.replace('"/x"', f'"{proxied("https://example.com/x")}"')
        assert rewrite(html) == expected

    def test_entities_in_text_kept(self):
        html = '<meta charset="iso-8859-1"><p>a&nbsp;b &copy; 2024</p>'
        assert rewrite(html) == html


class TestCharacterReferences:
    def test_legacy_entity_names_in_query_are_literal(self):
        out = rewrite('<a href="/search?q=1&copy=2&not=3">x</a>')
        expected = proxied('https://example.com/search?q=1&copy=2&not=3')
        assert out == f'<a href="{expected}">x</a>'

    def test_untouched_attribute_keeps_ampersand(self):
        html = '<div data-x="a&copy=b">t</div>'
        assert rewrite(html) == html

    def test_escaped_ampersand_decoded_before_rewrite(self):
        out = rewrite('<a href="/a?x=1&amp;y=2">x</a>')
        assert f'href="{proxied("https://example.com/a?x=1&y=2")}"' in out

    def test_terminated_and_numeric_references_decoded(self):
        out = rewrite('<a href="/caf&eacute;/&#49;">x</a>')
        assert f'href="{proxied("https://example.com/café/1")}"' in out


class TestRawTextElements:
    def test_markup_inside_textarea_is_text(self):
        html = '<textarea><a href="/x">x</a><img src="y.png"></textarea><a href="/z">z</a>'
        out = rewrite(html)
        assert out.startswith('<textarea><a href="/x">x</a><img src="y.png"></textarea>')
        assert f'href="{proxied("https://example.com/z")}"' in out

    def test_markup_inside_title_is_text(self):
        html = '<head><title>Use <a href="/x"> links</title></head>'
        assert rewrite(html) == html
