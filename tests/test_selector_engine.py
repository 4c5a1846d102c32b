import pytest

from selector_engine import (
    make_soup,
    resolve,
    select,
    select_elements,
    split_accessor,
    split_index,
    translate_legacy,
    xpath_elements,
    xpath_values,
)

CHAPTERS = """
<html><body>
  <div id="list">
    <a class="chap" href="/c/1.html">第一章</a>
    <a class="chap" href="/c/2.html">第二章</a>
    <a class="chap" href="/c/3.html">第三章</a>
  </div>
  <div class="info"><h1>书名</h1> 正文<span>附注</span></div>
</body></html>
"""


@pytest.mark.parametrize(
    "rule, expected",
    [
        (".chap.0@text", "第一章"),
        (".chap.-1@text", "第三章"),
        (".chap.5@text", ""),
        (".chap.1@href", "/c/2.html"),
        ("class.chap.-1@href", "/c/3.html"),
    ],
)
def test_resolve_index_and_accessor(rule, expected):
    assert resolve(CHAPTERS, rule) == expected


def test_tag_accessor_returns_sub_selection_html():
    assert resolve(CHAPTERS, "id.list@a").count("<a") == 3


def test_resolve_without_accessor_returns_text():
    assert resolve(CHAPTERS, ".chap") == "第一章"
    assert resolve(CHAPTERS, ".missing") == ""


def test_own_text_and_html_accessors():
    assert resolve(CHAPTERS, ".info@ownText") == "正文"
    assert "<h1>书名</h1>" in resolve(CHAPTERS, ".info@html")


def test_resolve_uses_base_html_when_node_empty():
    assert resolve("", "h1@text", base_html=CHAPTERS) == "书名"


def test_translate_legacy():
    assert translate_legacy("class.item a") == ".item a"
    assert translate_legacy("id.list") == "#list"
    assert translate_legacy("tag.a") == "a"
    assert translate_legacy("div.class.x") == "div.class.x"


def test_split_accessor_ignores_brackets_and_quotes():
    assert split_accessor("a[title='x@y']@href") == ("a[title='x@y']", "href")
    assert split_accessor(".title") == (".title", None)


def test_split_index():
    assert split_index(".chap.-1") == (".chap", -1)
    assert split_index(".chap") == (".chap", None)
    assert split_index(".5") == (".5", None)


def test_select_includes_matching_context_element():
    soup = make_soup(CHAPTERS)
    link = soup.select_one("a.chap")
    assert select(link, ".chap") == [link]
    assert select(soup, "div[") == []


def test_select_elements_chain_and_reverse():
    elements = select_elements(CHAPTERS, "id.list@a")
    assert [e.get_text() for e in elements] == ["第一章", "第二章", "第三章"]
    reversed_elements = select_elements(CHAPTERS, "-.chap")
    assert reversed_elements[0].get_text() == "第三章"


def test_xpath_values_and_elements():
    assert xpath_values(CHAPTERS, "//a[@class='chap']/@href") == ["/c/1.html", "/c/2.html", "/c/3.html"]
    assert xpath_values(CHAPTERS, "@XPath://h1") == ["书名"]
    assert xpath_values(CHAPTERS, "//a[") == []
    html = xpath_elements(CHAPTERS, "//a")
    assert len(html) == 3 and html[0].startswith("<a")


def test_empty_selector_reads_context_itself():
    link = make_soup(CHAPTERS).select_one("a.chap")
    assert resolve(link, "@href") == "/c/1.html"
    assert resolve(link, "@text") == "第一章"
    assert resolve("<a href='/x'>甲</a>", "@html") == '<a href="/x">甲</a>'
