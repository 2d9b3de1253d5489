"""Tests for CSS url()/@import rewriting."""

from core.proxy.rewriters.base import RewriteContext
from core.proxy.rewriters.css import rewrite_css, rewrite_css_urls

PROXY_BASE = 'http://proxy.test'


def make_context(base_url='https://example.com/dir/'):
    return RewriteContext(base_url=base_url, proxy_base=PROXY_BASE)


class TestImports:
    def test_string_import(self):
        out = rewrite_css('@import "foo.css";', make_context())
        assert out == "@import url('http://proxy.test/go/https%3A%2F%2Fexample.com%2Fdir%2Ffoo.css');"

    def test_single_quoted_import_without_semicolon(self):
        out = rewrite_css("@import 'print.css'", make_context())
        assert out == "@import url('http://proxy.test/go/https%3A%2F%2Fexample.com%2Fdir%2Fprint.css')"

    def test_url_import_rewritten_once(self):
        out = rewrite_css('@import url("theme.css") screen;', make_context())
        assert out == "@import url('http://proxy.test/go/https%3A%2F%2Fexample.com%2Fdir%2Ftheme.css') screen;"
        assert out.count('proxy.test') == 1


class TestUrls:
    def test_relative_and_root_relative(self):
        css = 'a { background: url(img/a.png) } b { background: url("/b.png") }'
        out = rewrite_css(css, make_context())
        assert "url('http://proxy.test/go/https%3A%2F%2Fexample.com%2Fdir%2Fimg%2Fa.png')" in out
        assert "url('http://proxy.test/go/https%3A%2F%2Fexample.com%2Fb.png')" in out

    def test_whitespace_inside_parentheses(self):
        out = rewrite_css("div { background: url( 'x.png' ) }", make_context())
        assert "url('http://proxy.test/go/https%3A%2F%2Fexample.com%2Fdir%2Fx.png')" in out

    def test_other_origin_and_protocol_relative(self):
        out = rewrite_css('i { src: url(//cdn.test/f.woff) }', make_context())
        assert "url('http://proxy.test/go/https%3A%2F%2Fcdn.test%2Ff.woff')" in out

    def test_data_and_fragment_urls_untouched(self):
        css = 'a { background: url(data:image/png;base64,AAAA) } b { filter: url(#blur) }'
        assert rewrite_css(css, make_context()) == css

    def test_already_proxied_url_untouched(self):
        css = "a { background: url('http://proxy.test/go/https%3A%2F%2Fexample.com%2Fa.png') }"
        assert rewrite_css(css, make_context()) == css

    def test_rewrite_css_urls_skips_imports(self):
        css = '@import "a.css"; p { background: url(p.png) }'
        out = rewrite_css_urls(css, make_context())
        assert out.startswith('@import "a.css";')
        assert "url('http://proxy.test/go/https%3A%2F%2Fexample.com%2Fdir%2Fp.png')" in out

    def test_empty_input(self):
        assert rewrite_css('', make_context()) == ''
        assert rewrite_css(None, make_context()) is None
