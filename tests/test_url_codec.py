"""Tests for target URL <-> proxy path encoding."""

from aiohttp.test_utils import make_mocked_request

from core.proxy.url_codec import (
    decode_url,
    encode_url,
    get_proxy_base,
    is_proxied_url,
    rewrite_url_to_proxy,
)


class TestEncodeUrl:
    def test_encodes_as_single_path_segment(self):
        assert encode_url('https://example.com/') == '/go/https%3A%2F%2Fexample.com%2F'

    def test_query_and_fragment_characters_are_escaped(self):
        encoded = encode_url('https://example.com/a b?x=1&y=2#top')
        assert encoded == '/go/https%3A%2F%2Fexample.com%2Fa%20b%3Fx%3D1%26y%3D2%23top'

    def test_unreserved_punctuation_kept(self):
        assert encode_url("https://e.com/-_.!~*'()").endswith("-_.!~*'()")

    def test_custom_mount_path(self):
        assert encode_url('http://a.test/', '/p') == '/p/http%3A%2F%2Fa.test%2F'

    def test_non_ascii_is_utf8_encoded(self):
        assert encode_url('https://e.com/ё') == '/go/https%3A%2F%2Fe.com%2F%D1%91'


class TestDecodeUrl:
    def test_round_trip(self):
        url = 'https://example.com/path?q=a%20b&x=1#frag'
        assert decode_url(encode_url(url)[len('/go/'):]) == url

    def test_missing_scheme_defaults_to_https(self):
        assert decode_url('example.com%2Fpage') == 'https://example.com/page'

    def test_http_prefix_check_is_case_insensitive(self):
        assert decode_url('HTTP%3A%2F%2Fexample.com') == 'HTTP://example.com'

    def test_malformed_escape_returns_none(self):
        assert decode_url('https%3A%2F%2Fexample.com%2') is None
        assert decode_url('%zz') is None

    def test_invalid_utf8_returns_none(self):
        assert decode_url('%FF%FE') is None

    def test_non_string_returns_none(self):
        assert decode_url(None) is None


class TestProxyBase:
    def test_uses_host_header(self):
        request = make_mocked_request('GET', '/go/x', headers={'Host': 'proxy.local:3000'})
        assert get_proxy_base(request) == 'http://proxy.local:3000'

    def test_forwarded_headers_take_first_value(self):
        request = make_mocked_request('GET', '/go/x', headers={
            'Host': 'internal:3000',
            'X-Forwarded-Proto': 'https, http',
            'X-Forwarded-Host': 'proxy.example.com, internal',
        })
        assert get_proxy_base(request) == 'https://proxy.example.com'

    def test_falls_back_to_localhost(self):
        request = make_mocked_request('GET', '/go/x', headers={})
        assert get_proxy_base(request) == 'http://localhost'


class TestProxiedUrls:
    def test_is_proxied_url(self):
        assert is_proxied_url('http://proxy.test/go/https%3A%2F%2Fa.com', 'http://proxy.test')
        assert not is_proxied_url('https://a.com/go/x', 'http://proxy.test')

    def test_rewrite_url_to_proxy(self):
        assert rewrite_url_to_proxy('https://a.com/', 'http://proxy.test') == \
            'http://proxy.test/go/https%3A%2F%2Fa.com%2F'

    def test_rewrite_url_without_scheme_is_untouched(self):
        assert rewrite_url_to_proxy('/relative', 'http://proxy.test') == '/relative'
