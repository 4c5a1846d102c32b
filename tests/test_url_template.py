from unittest import mock

from url_template import (
    build_request,
    encode_key,
    eval_page_arithmetic,
    evaluate_expressions,
    parse_headers,
    split_url_options,
    substitute_placeholders,
)


def test_eval_page_arithmetic():
    assert eval_page_arithmetic("(page-1)*20", 3) == "40"
    assert eval_page_arithmetic("page/2", 3) == "1.5"
    assert eval_page_arithmetic("page/0", 3) is None
    assert eval_page_arithmetic("__import__('os')", 1) is None


def test_evaluate_expressions():
    assert evaluate_expressions("/s?q={{key}}&p={{page}}") == "/s?q={{key}}&p={{page}}"
    assert evaluate_expressions("/s?o={{(page-1)*10}}", 2) == "/s?o=10"
    assert evaluate_expressions("/s?q={{key;java.put('a',1)}}") == "/s?q={{key}}"
    assert evaluate_expressions("/s?t={{source.getKey()||'abc'}}") == "/s?t=abc"
    assert evaluate_expressions("/s?t={{cookie.get()}}") == "/s?t="


def test_substitute_placeholders():
    text = substitute_placeholders("/s?q={{key}}&k={key}&p={{page}}&x={{other}}", "%E4%B9%A6", 2)
    assert text == "/s?q=%E4%B9%A6&k=%E4%B9%A6&p=2&x="
    assert substitute_placeholders("/s/searchKey/searchPage", "abc", 3) == "/s/abc/3"
    assert substitute_placeholders("/s?searchKey=searchKey&p=searchPage", "abc", 3) == "/s?searchKey=abc&p=3"


def test_parameter_named_search_key_is_kept():
    request = build_request("/s?searchKey={{key}}&page={{page}}", "abc", 1, base_url="https://h.com")
    assert request.url == "https://h.com/s?searchKey=abc&page=1"


def test_split_url_options():
    url, options = split_url_options('/search,{"method":"POST","body":"q={{key}}"}')
    assert url == "/search"
    assert options == {"method": "POST", "body": "q={{key}}"}
    assert split_url_options("/s?a=1,{bad") == ("/s?a=1,{bad", {})


def test_encode_key_with_charset():
    assert encode_key("书", "gbk") == "%CA%E9"
    assert encode_key("书") == "%E4%B9%A6"
    assert encode_key("书", "no-such-charset") == "%E4%B9%A6"


def test_build_request_get_and_post():
    req = build_request("/s?q={{key}}&p={{page}}", "书", 2, base_url="https://h.com")
    assert req.url == "https://h.com/s?q=%E4%B9%A6&p=2"
    assert req.method == "GET" and req.body is None

    rule = '/search,{"method":"post","charset":"gbk","body":"kw={{key}}&page={{page}}","headers":{"X-A":1}}'
    req = build_request(rule, "书", 1, base_url="https://h.com")
    assert req.url == "https://h.com/search"
    assert req.method == "POST"
    assert req.body == "kw=书&page=1"
    assert req.headers == {"X-A": "1"}
    assert req.charset == "gbk"


def test_parse_headers_formats():
    assert parse_headers('{"Referer":"https://h.com","X-N":2}') == {"Referer": "https://h.com", "X-N": "2"}
    assert parse_headers("Referer: https://h.com\nX-A: b") == {"Referer": "https://h.com", "X-A": "b"}
    assert parse_headers("  ") == {}


def test_parse_headers_script_uses_host():
    host = mock.Mock()
    host.evaluate.return_value = '{"User-Agent":"ua"}'
    assert parse_headers('@js:JSON.stringify({"User-Agent":"ua"})', host, {"key": "k"}) == {"User-Agent": "ua"}
    host.evaluate.assert_called_once()
    assert parse_headers("@js:1", None) == {}
