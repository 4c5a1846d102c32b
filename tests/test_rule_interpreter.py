import json

import pytest

from rule_interpreter import RuleInterpreter, reconstruct_paragraphs
from script_host import ScriptCache, ScriptHost
from source_errors import ParseError, RuleMissing, ScriptError
from source_models import Book, BookChapter

SEARCH_HTML = """
<html><body>
  <div class="book-item">
    <a class="title" href="/book/1.html">书一</a><span class="author">作者甲</span>
    <img src="//img.h.com/1.jpg">
  </div>
  <div class="book-item">
    <a class="title" href="book/2.html">书二</a><span class="author">作者乙</span>
  </div>
  <div class="book-item"><span class="author">没有书名</span></div>
</body></html>
"""

TOC_PAGE_1 = """
<html><body>
  <div id="list"><a href="/c/1.html">第一章</a><a href="/c/2.html">第二章</a></div>
  <a class="next" href="/toc_2.html">下一页</a>
</body></html>
"""

TOC_PAGE_2 = """
<html><body>
  <div id="list"><a href="/c/2.html">第二章</a><a href="/c/3.html">第三章</a></div>
</body></html>
"""


@pytest.fixture
def make_interpreter():
    hosts = []

    def _make(fetcher=None, **settings):
        host = ScriptHost(fetcher=fetcher)
        hosts.append(host)
        return RuleInterpreter(fetcher, script_host=host, settings=settings)

    yield _make
    for host in hosts:
        host.close()


def test_search_list_resolves_absolute_book_urls(make_interpreter, make_source):
    source = make_source(ruleSearch={
        "bookList": ".book-item",
        "name": ".title@text",
        "bookUrl": ".title@href",
        "author": ".author@text",
        "coverUrl": "img@src",
    })
    books = make_interpreter().parse_search(SEARCH_HTML, source, "https://h.com/search?q=x")
    assert [b.name for b in books] == ["书一", "书二"]
    assert [b.book_url for b in books] == ["https://h.com/book/1.html", "https://h.com/book/2.html"]
    assert books[0].author == "作者甲"
    assert books[0].cover_url == "https://img.h.com/1.jpg"
    assert books[1].cover_url == ""
    assert books[0].book_source_name == "测试书源"


def test_search_json_list_with_templates(make_interpreter, make_source):
    body = json.dumps({"list": [{"id": 7, "name": "书七", "info": {"author": "某人"}}]})
    source = make_source(ruleSearch={
        "bookList": "$.list[*]",
        "name": "name",
        "author": "$.info.author",
        "bookUrl": "/book/{{$.id}}.html",
        "kind": "{{id}}-{{'k' + 1}}",
    })
    books = make_interpreter().parse_search(body, source, "https://h.com/api/search")
    assert len(books) == 1
    assert books[0].name == "书七"
    assert books[0].author == "某人"
    assert books[0].book_url == "https://h.com/book/7.html"
    assert books[0].kind == "7-k1"


def test_missing_list_rule_raises(make_interpreter, make_source):
    interpreter = make_interpreter()
    with pytest.raises(RuleMissing):
        interpreter.parse_search(SEARCH_HTML, make_source(), "https://h.com")
    with pytest.raises(RuleMissing):
        interpreter.parse_chapter_list(TOC_PAGE_1, make_source(), Book(book_url="https://h.com/b/1"))
    with pytest.raises(RuleMissing):
        interpreter.parse_content("<p>x</p>", make_source(), BookChapter(url="https://h.com/c/1"))
    with pytest.raises(RuleMissing):
        interpreter.search("书", make_source())


def test_script_error_in_list_rule_propagates(make_interpreter, make_source):
    source = make_source(ruleSearch={"bookList": "<js>nosuch()</js>", "name": "name", "bookUrl": "url"})
    with pytest.raises(ScriptError):
        make_interpreter().parse_search("{}", source, "https://h.com")


def test_field_failure_leaves_field_empty(make_interpreter, make_source):
    source = make_source(ruleSearch={
        "bookList": ".book-item",
        "name": ".title@text",
        "bookUrl": ".title@href",
        "intro": "<js>nosuch()</js>",
    })
    books = make_interpreter().parse_search(SEARCH_HTML, source, "https://h.com")
    assert len(books) == 2
    assert books[0].intro == ""


def test_get_string_connectors_and_cleaning(make_interpreter, make_source):
    interpreter = make_interpreter()
    ctx = interpreter.new_context(make_source())
    root = interpreter._root(ctx, "<div><h1>书名</h1><p class='a'>甲</p><p class='b'>乙</p></div>")
    assert interpreter.get_string(ctx, root, ".missing@text||h1@text") == "书名"
    assert interpreter.get_string(ctx, root, ".a@text&&.b@text") == "甲\n乙"
    assert interpreter.get_string(ctx, root, "h1@text##书##新") == "新名"
    assert interpreter.get_string(ctx, root, "h1@text##(.)(.)##$2$1###") == "名书"


def test_book_info_init_put_and_get(make_interpreter, make_source):
    source = make_source(ruleBookInfo={
        "init": '@put:{bid:"$.data.id"}',
        "name": "$.data.name",
        "author": "@get:{bid}",
        "tocUrl": "$.data.toc",
        "intro": "$.data.intro<js>result.toUpperCase()</js>",
    })
    body = json.dumps({"data": {"id": 5, "name": "书五", "toc": "/toc/5", "intro": "abc"}})
    cache = ScriptCache()
    interpreter = make_interpreter()
    book = interpreter.parse_book_info(body, source, "https://h.com/book/5",
                                       ctx=interpreter.new_context(source, "https://h.com/book/5", cache))
    assert book.name == "书五"
    assert book.author == "5"
    assert book.toc_url == "https://h.com/toc/5"
    assert book.intro == "ABC"
    assert book.variable == {"bid": "5"}
    assert cache.get("bid") == "5"


def test_book_info_toc_url_defaults_to_book_url(make_interpreter, make_source):
    source = make_source(ruleBookInfo={"name": "h1@text"})
    book = make_interpreter().parse_book_info("<h1>书</h1>", source, "https://h.com/book/1")
    assert book.toc_url == "https://h.com/book/1"
    assert book.origin == "https://h.com"


def test_json_content_rule_and_missing_data_raises(make_interpreter, make_source):
    source = make_source(ruleContent={"content": "$.data.content"})
    chapter = BookChapter(url="https://h.com/c/1")
    interpreter = make_interpreter()
    assert interpreter.parse_content('{"data":{"content":"chapter text"}}', source, chapter) == "chapter text"
    with pytest.raises(ParseError):
        interpreter.parse_content('{"code":404,"msg":"not found"}', source, chapter)


def test_content_paragraphs_and_replace_regex(make_interpreter, make_source):
    html = '<div id="content"><p>第一段</p><p> </p><p>第二段 广告 内容结束</p></div>'
    source = make_source(ruleContent={"content": "#content@html", "replaceRegex": "##广告.*?结束"})
    text = make_interpreter().parse_content(html, source, BookChapter(url="https://h.com/c/1"))
    assert text == "第一段\n\n第二段"


def test_content_explicit_text_is_not_reconstructed(make_interpreter, make_source):
    html = '<div id="content"><p>一</p><p>二</p></div>'
    source = make_source(ruleContent={"content": "#content@text"})
    assert make_interpreter().parse_content(html, source, BookChapter(url="https://h.com/c/1")) == "一 二"


def test_reconstruct_paragraphs_br_variants():
    assert reconstruct_paragraphs("行一<br>行二<BR/><br />行三<script>x</script>") == "行一\n行二\n行三"
    assert reconstruct_paragraphs("纯文本") == "纯文本"


def test_search_request_with_post_options_and_headers(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({"https://h.com/search": SEARCH_HTML})
    source = make_source(
        header='{"Referer":"https://h.com"}',
        searchUrl='/search,{"method":"POST","body":"kw={{key}}&p={{page}}"}',
        ruleSearch={"bookList": ".book-item", "name": ".title@text", "bookUrl": ".title@href"},
    )
    books = make_interpreter(fetcher).search("书", source)
    assert len(books) == 2
    assert fetcher.calls == [("POST", "https://h.com/search", "kw=书&p=1", {"Referer": "https://h.com"})]
    # 相对链接以实际请求的页面为基础
    assert books[1].book_url == "https://h.com/book/2.html"


def test_search_url_script(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({"https://h.com/s?q=书&p=2": SEARCH_HTML})
    source = make_source(
        searchUrl="@js:'/s?q=' + key + '&p=' + page",
        ruleSearch={"bookList": ".book-item", "name": ".title@text", "bookUrl": ".title@href"},
    )
    assert len(make_interpreter(fetcher).search("书", source, page=2)) == 2


def test_explore_falls_back_to_search_rule(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({"https://h.com/hot": SEARCH_HTML})
    source = make_source(ruleSearch={"bookList": ".book-item", "name": ".title@text", "bookUrl": ".title@href"})
    assert len(make_interpreter(fetcher).explore("/hot", source)) == 2


def test_chapter_list_follows_next_pages_and_dedupes(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({
        "https://h.com/toc.html": TOC_PAGE_1,
        "https://h.com/toc_2.html": TOC_PAGE_2,
    })
    source = make_source(ruleToc={
        "chapterList": "#list@a",
        "chapterName": "@text",
        "chapterUrl": "@href",
        "nextTocUrl": ".next@href",
    })
    book = Book(book_url="https://h.com/book/1", toc_url="/toc.html", name="书")
    chapters = make_interpreter(fetcher).get_chapter_list(book, source)
    assert [c.title for c in chapters] == ["第一章", "第二章", "第三章"]
    assert [c.index for c in chapters] == [0, 1, 2]
    assert chapters[2].url == "https://h.com/c/3.html"
    assert chapters[0].book_url == "https://h.com/book/1"


def test_chapter_list_respects_page_limit(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({"https://h.com/toc.html": TOC_PAGE_1, "https://h.com/toc_2.html": TOC_PAGE_2})
    source = make_source(ruleToc={"chapterList": "#list a", "chapterName": "@text",
                                  "chapterUrl": "@href", "nextTocUrl": ".next@href"})
    book = Book(book_url="https://h.com/toc.html")
    chapters = make_interpreter(fetcher, max_toc_pages=1).get_chapter_list(book, source)
    assert len(chapters) == 2
    assert len(fetcher.calls) == 1


def test_bookid_put_during_toc_is_used_by_chapter_url_script(make_interpreter, make_source, fake_fetcher):
    toc_body = json.dumps({"data": {"bookId": 777, "list": [{"id": 11, "title": "第一章"}, {"id": 12, "title": "第二章"}]}})
    fetcher = fake_fetcher({
        "https://h.com/api/toc/1": toc_body,
        "https://h.com/chapter?bookid=777&cid=11": json.dumps({"data": {"content": "正文一"}}),
    })
    source = make_source(
        ruleToc={
            "chapterList": "<js>\nvar d = JSON.parse(result);\njava.put('bookid', String(d.data.bookId));\n"
                           "JSON.stringify(d.data.list)\n</js>",
            "chapterName": "$.title",
            "chapterUrl": "$.id<js>'/chapter?bookid=' + java.get('bookid') + '&cid=' + result</js>",
        },
        ruleContent={"content": "$.data.content"},
    )
    cache = ScriptCache()
    interpreter = make_interpreter(fetcher)
    book = Book(book_url="https://h.com/book/1", toc_url="https://h.com/api/toc/1")
    chapters = interpreter.get_chapter_list(book, source, cache=cache)

    assert cache.get("bookid") == "777"
    assert [c.url for c in chapters] == [
        "https://h.com/chapter?bookid=777&cid=11",
        "https://h.com/chapter?bookid=777&cid=12",
    ]
    assert interpreter.get_chapter_content(chapters[0], source, cache=cache) == "正文一"


def test_book_caches_do_not_share_values(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({
        "https://h.com/api/toc/1": json.dumps({"data": {"bookId": 777, "list": [{"id": 11, "title": "第一章"}]}}),
        "https://h.com/api/toc/2": json.dumps({"data": {"list": [{"id": 21, "title": "序章"}]}}),
    })
    source = make_source(ruleToc={
        "chapterList": "<js>\nvar d = JSON.parse(result);\nif (d.data.bookId) java.put('bookid', String(d.data.bookId));\n"
                       "JSON.stringify(d.data.list)\n</js>",
        "chapterName": "$.title",
        "chapterUrl": "$.id<js>'/chapter?bookid=' + java.get('bookid') + '&cid=' + result</js>",
    })
    interpreter = make_interpreter(fetcher)
    cache_a, cache_b = ScriptCache(), ScriptCache()

    book_a = Book(book_url="https://h.com/book/1", toc_url="https://h.com/api/toc/1")
    book_b = Book(book_url="https://h.com/book/2", toc_url="https://h.com/api/toc/2")
    chapters_a = interpreter.get_chapter_list(book_a, source, cache=cache_a)
    chapters_b = interpreter.get_chapter_list(book_b, source, cache=cache_b)

    assert chapters_a[0].url == "https://h.com/chapter?bookid=777&cid=11"
    assert chapters_b[0].url == "https://h.com/chapter?bookid=&cid=21"
    assert cache_b.get("bookid", "") == ""
    assert "bookid" not in interpreter.script_host.cache


def test_undefined_bookid_is_repaired_from_book_url(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({"https://h.com/chapter?bookid=555&cid=1": '{"data":{"content":"正文"}}'})
    source = make_source(ruleContent={"content": "$.data.content"})
    chapter = BookChapter(url="/chapter?bookid=undefined&cid=1", book_url="https://h.com/book?bookid=555")
    assert make_interpreter(fetcher).get_chapter_content(chapter, source, cache=ScriptCache()) == "正文"


def test_content_follows_next_page_until_next_chapter(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({
        "https://h.com/c/1.html": '<div id="c"><p>上半</p></div><a id="next" href="/c/1_2.html">下一页</a>',
        "https://h.com/c/1_2.html": '<div id="c"><p>下半</p></div><a id="next" href="/c/2.html">下一章</a>',
    })
    source = make_source(ruleContent={"content": "#c@html", "nextContentUrl": "#next@href"})
    chapter = BookChapter(url="https://h.com/c/1.html", title="第一章")
    text = make_interpreter(fetcher).get_chapter_content(chapter, source, next_chapter_url="/c/2.html")
    assert text == "上半\n下半"
    assert [call[1] for call in fetcher.calls] == ["https://h.com/c/1.html", "https://h.com/c/1_2.html"]


def test_content_url_duplicate_path_is_fixed(make_interpreter, make_source, fake_fetcher):
    fetcher = fake_fetcher({"https://h.com/x/1/y.html": "<p>内容</p>"})
    source = make_source(ruleContent={"content": "p@html"})
    chapter = BookChapter(url="https://h.com/x/1//x/1/y.html")
    assert make_interpreter(fetcher).get_chapter_content(chapter, source) == "内容"
