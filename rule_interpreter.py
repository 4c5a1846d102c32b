'''
 # rule_interpreter.py
 # 组件：负责按书源规则解析搜索/发现结果、书籍详情、目录和正文
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/15
'''
import re
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from engine_settings import DEFAULT_SETTINGS
from json_value import json_list, json_path, looks_like_json, parse_json, to_text
from rule_connector import (
    all_in_one,
    clean,
    detect_connector,
    is_all_in_one,
    is_only_one,
    merge_results,
    only_one,
    parse_replace_regex,
    regex_first,
    split_cleaning,
    split_only_one,
    split_rule as split_by_connector,
)
from rule_splitter import RuleMode, classify_chunk, contains_script, split_rule
from script_host import ScriptCache, ScriptHost
from selector_engine import (
    clean_text,
    element_text,
    make_soup,
    resolve,
    select_elements,
    xpath_elements,
    xpath_values,
)
from source_errors import BookSourceError, ParseError, RuleMissing
from source_models import (
    Book,
    BookChapter,
    BookInfoRule,
    BookSource,
    ContentRule,
    SearchBook,
    TocRule,
)
from url_resolver import fix_duplicate_path, query_param, resolve_url
from url_template import SearchRequest, build_request, parse_headers

# 预编译常用正则
_RE_TEMPLATE = re.compile(r'\{\{(.*?)\}\}', re.DOTALL)
_RE_PUT = re.compile(r'@put:(\{[^}]*\})', re.IGNORECASE)
_RE_GET = re.compile(r'@get:\{([^}]+)\}', re.IGNORECASE)
_RE_PUT_PAIR = re.compile(r'''["']?([\w$]+)["']?\s*:\s*(?:"((?:[^"\\]|\\.)*)"|'((?:[^'\\]|\\.)*)')''')
_RE_DOTTED_KEY = re.compile(r'^[\w$]+(?:\.[\w$]+)*$')
_RE_BR = re.compile(r'<br\s*/?>', re.IGNORECASE)
_RE_BOOKID_UNDEFINED = re.compile(r'bookid=undefined', re.IGNORECASE)

_TRUE_WORDS = ("true", "1", "yes")


@dataclass
class ParseContext:
    """一次解析调用的上下文：书源、基础URL、缓存与注入脚本的变量"""
    source: BookSource
    base_url: str
    cache: Optional[ScriptCache] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    put_values: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    root: Any = None
    raw_body: str = ""


def reconstruct_paragraphs(html: str) -> str:
    """
    正文段落重建：
      - 有 <p> 时取每个 <p> 的文本，用空行连接
      - 否则把 <br> 变体换成换行，再去掉其余标签
    """
    if not html or "<" not in html:
        return html or ""
    soup = make_soup(html)
    paragraphs = [element_text(p) for p in soup.find_all("p")]
    paragraphs = [p for p in paragraphs if p]
    if paragraphs:
        return "\n\n".join(paragraphs)
    soup = make_soup(_RE_BR.sub("\n", html))
    for bad in soup.select("script, style"):
        bad.decompose()
    lines = [clean_text(ln) for ln in soup.get_text().split("\n")]
    return "\n".join(ln for ln in lines if ln)


def _truthy(text: str) -> bool:
    return (text or "").strip().lower() in _TRUE_WORDS


def _parse_put_map(text: str) -> Dict[str, str]:
    """@put:{key:"rule", ...}，键可不加引号"""
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return {str(k): to_text(v) for k, v in data.items()}
    except ValueError:
        pass
    pairs = {}
    for m in _RE_PUT_PAIR.finditer(text):
        value = m.group(2) if m.group(2) is not None else (m.group(3) or "")
        pairs[m.group(1)] = value
    return pairs


class RuleInterpreter:
    """
    书源规则解释器

    参数:
        fetcher: 抓取接口，提供 get(url, headers) / post(url, body, headers)
        script_host: 脚本宿主；不传则新建一个（共用 fetcher）
        settings: 引擎设置（见 engine_settings.DEFAULT_SETTINGS）
    """

    # 片段模式 -> 处理方法；每个 RuleMode 成员都必须有对应项
    _SEGMENT_HANDLERS = {
        RuleMode.DEFAULT: "_segment_default",
        RuleMode.XPATH: "_segment_xpath",
        RuleMode.JSON: "_segment_json",
        RuleMode.REGEX: "_segment_regex",
        RuleMode.JS: "_segment_js",
    }
    assert set(_SEGMENT_HANDLERS) == set(RuleMode)

    def __init__(self, fetcher=None, script_host: Optional[ScriptHost] = None, settings: Optional[dict] = None):
        self.settings = dict(DEFAULT_SETTINGS)
        self.settings.update(settings or {})
        self.fetcher = fetcher
        self._owns_host = script_host is None
        self.script_host = script_host or ScriptHost(fetcher=fetcher)

    def close(self):
        if self._owns_host:
            self.script_host.close()

    # ------------------------------------------------------------------
    # 上下文与基础工具
    # ------------------------------------------------------------------
    def new_context(self, source: BookSource, base_url: str = "", cache: Optional[ScriptCache] = None,
                    variables: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> ParseContext:
        return ParseContext(
            source=source,
            base_url=base_url or source.book_source_url,
            cache=cache if cache is not None else self.script_host.cache,
            variables=dict(variables or {}),
            headers=dict(headers or {}),
        )

    def _root(self, ctx: ParseContext, body: str):
        """判定响应形态：去空白后以 { 或 [ 开头为 JSON，否则按 HTML 解析"""
        ctx.raw_body = body or ""
        if looks_like_json(ctx.raw_body):
            ctx.root = parse_json(ctx.raw_body.strip())
        else:
            ctx.root = make_soup(ctx.raw_body)
        return ctx.root

    def _as_text(self, ctx: ParseContext, value) -> str:
        if value is None:
            return ""
        if value is ctx.root and isinstance(value, BeautifulSoup):
            return ctx.raw_body
        if isinstance(value, Tag):
            return str(value)
        if isinstance(value, list):
            return "\n".join(self._as_text(ctx, v) for v in value if v is not None)
        return to_text(value)

    def _script(self, ctx: ParseContext, code: str, result) -> Any:
        variables = dict(ctx.variables)
        if result is ctx.root:
            result = ctx.raw_body
        elif isinstance(result, Tag):
            result = str(result)
        variables.update(result=result, baseUrl=ctx.base_url, source=ctx.source.as_variables())
        return self.script_host.evaluate(
            code, variables, js_lib=ctx.source.js_lib or "", cache=ctx.cache, headers=ctx.headers
        )

    def _lookup_var(self, ctx: ParseContext, key: str) -> str:
        if key in ctx.put_values:
            return ctx.put_values[key]
        cached = ctx.cache.get(key, "") if ctx.cache is not None else ""
        if cached:
            return cached
        return to_text(ctx.variables.get(key))

    # ------------------------------------------------------------------
    # 片段执行
    # ------------------------------------------------------------------
    def _segment_default(self, ctx, value, rule):
        if isinstance(value, dict):
            if rule in value:
                return value[rule]
            return json_path(value, rule)
        if isinstance(value, list):
            return json_path(value, rule)
        if isinstance(value, str) and looks_like_json(value):
            try:
                return json_path(parse_json(value.strip()), rule)
            except ParseError:
                pass
        if isinstance(value, str) or isinstance(value, Tag):
            return resolve(value, rule)
        return resolve(self._as_text(ctx, value), rule)

    def _segment_xpath(self, ctx, value, rule):
        node = value if isinstance(value, Tag) and value is not ctx.root else self._as_text(ctx, value)
        return "\n".join(xpath_values(node, rule))

    def _segment_json(self, ctx, value, rule):
        if isinstance(value, (dict, list)):
            return json_path(value, rule)
        return json_path(parse_json(self._as_text(ctx, value).strip()), rule)

    def _segment_regex(self, ctx, value, rule):
        return regex_first(self._as_text(ctx, value), rule)

    def _segment_js(self, ctx, value, rule):
        return self._script(ctx, rule, value)

    def run_chain(self, ctx: ParseContext, content, rule: str):
        """按顺序执行规则的每个片段，上一段的输出作为下一段的 result"""
        value = content
        for segment in split_rule(rule):
            # 取不到值时只有脚本片段还能继续处理（result 为 null）
            if value is None and segment.mode is not RuleMode.JS:
                continue
            handler = getattr(self, self._SEGMENT_HANDLERS[segment.mode])
            value = handler(ctx, value, segment.content)
        return value

    # ------------------------------------------------------------------
    # 字段与列表
    # ------------------------------------------------------------------
    def _apply_puts(self, ctx: ParseContext, content, rule: str) -> str:
        def _repl(m):
            for key, sub_rule in _parse_put_map(m.group(1)).items():
                value = self._field(ctx, content, sub_rule)
                ctx.put_values[key] = value
                if ctx.cache is not None:
                    ctx.cache.put(key, value)
            return ""
        return _RE_PUT.sub(_repl, rule).strip()

    def _render_templates(self, ctx: ParseContext, content, template: str) -> str:
        """替换 {{...}}：JSON 路径/显式模式规则、元素自身的键、否则按脚本求值"""
        def _repl(m):
            expr = m.group(1).strip()
            low = expr.lower()
            if expr.startswith("$") or low.startswith(("@json:", "@css:", "@@", "@xpath:", "//")):
                return self.get_string(ctx, content, expr)
            if isinstance(content, dict) and _RE_DOTTED_KEY.match(expr):
                value = content[expr] if expr in content else json_path(content, expr)
                if value is not None:
                    return to_text(value)
            return to_text(self._script(ctx, expr, content))
        return _RE_TEMPLATE.sub(_repl, template)

    def get_string(self, ctx: ParseContext, content, rule: str) -> str:
        """
        按字段规则取字符串值

        处理顺序：@put / @get -> OnlyOne -> 组合符 -> 净化链拆分 ->
        {{}} 模板 -> 片段链 -> 字符串化 -> 净化替换
        """
        rule = (rule or "").strip()
        if not rule:
            return ""
        if "@put:" in rule.lower():
            rule = self._apply_puts(ctx, content, rule)
            if not rule:
                return ""
        whole_get = _RE_GET.fullmatch(rule)
        if whole_get:
            return self._lookup_var(ctx, whole_get.group(1).strip())
        if "@get:" in rule.lower():
            rule = _RE_GET.sub(lambda m: self._lookup_var(ctx, m.group(1).strip()), rule)

        scripted = contains_script(rule)
        if not scripted and is_only_one(rule):
            base, only_rule = split_only_one(rule)
            text = self.get_string(ctx, content, base) if base else self._as_text(ctx, content)
            return (only_one(text, only_rule) or "").strip()

        if not scripted:
            connector = detect_connector(rule)
            if connector is not None:
                parts = [self.get_string(ctx, content, part) for part in split_by_connector(rule, connector)]
                return "\n".join(merge_results([[p] if p else [] for p in parts], connector))

        base, pairs = split_cleaning(rule)
        if "{{" in base and "}}" in base and not contains_script(base):
            text = self._render_templates(ctx, content, base)
        else:
            text = self._as_text(ctx, self.run_chain(ctx, content, base))
        if pairs:
            text = clean(text, pairs)
        return text.strip()

    def _field(self, ctx: ParseContext, content, rule: Optional[str]) -> str:
        """单个字段取值，失败记日志并返回空串"""
        if not rule or not rule.strip():
            return ""
        try:
            return self.get_string(ctx, content, rule)
        except Exception as e:
            logging.debug(f"字段规则解析失败 {rule!r}: {e}")
            return ""

    def _to_elements(self, value) -> list:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            if looks_like_json(value):
                try:
                    parsed = parse_json(value.strip())
                except ParseError:
                    return [value]
                return parsed if isinstance(parsed, list) else [parsed]
            return [value] if value.strip() else []
        return [value]

    def get_elements(self, ctx: ParseContext, content, rule: str) -> list:
        """
        列表规则取元素

        返回:
            bs4 节点、JSON 对象或 AllInOne 记录组成的列表
        """
        rule = (rule or "").strip()
        if not rule:
            return []
        if contains_script(rule):
            return self._to_elements(self.run_chain(ctx, content, rule))

        connector = detect_connector(rule)
        if connector is not None:
            lists = [self.get_elements(ctx, content, part) for part in split_by_connector(rule, connector)]
            return merge_results(lists, connector)

        reverse = False
        if rule.startswith("-"):
            reverse = True
            rule = rule[1:].strip()
        elif rule.startswith("+"):
            rule = rule[1:].strip()

        if is_all_in_one(rule):
            elements = all_in_one(self._as_text(ctx, content), rule)
        else:
            mode = classify_chunk(rule)
            if isinstance(content, (dict, list)):
                elements = json_list(content, rule)
            elif mode is RuleMode.JSON:
                elements = json_list(parse_json(self._as_text(ctx, content).strip()), rule)
            elif mode is RuleMode.XPATH:
                node = content if isinstance(content, Tag) else self._as_text(ctx, content)
                elements = xpath_elements(node, rule)
            else:
                elements = select_elements(content, rule)
        if reverse:
            elements = list(reversed(elements))
        return elements

    # ------------------------------------------------------------------
    # 解析驱动（只解析给定响应体）
    # ------------------------------------------------------------------
    def parse_search(self, body: str, source: BookSource, base_url: str = "", rule=None,
                     ctx: Optional[ParseContext] = None) -> List[SearchBook]:
        """
        解析搜索/发现结果页

        参数:
            body: 响应体
            source: 书源
            base_url: 响应的来源URL，用于补全相对链接
            rule: 使用的规则分组，缺省为 ruleSearch

        返回:
            SearchBook 列表（书名与详情链接都非空的记录）
        """
        rule = rule or source.rule_search
        list_rule = rule.rule("book_list") if rule else ""
        if not list_rule:
            raise RuleMissing("bookList", source.book_source_name)
        ctx = ctx or self.new_context(source, base_url)
        base_url = base_url or ctx.base_url
        root = self._root(ctx, body)

        books = []
        for element in self.get_elements(ctx, root, list_rule):
            name = clean_text(self._field(ctx, element, rule.name))
            book_url = self._field(ctx, element, rule.book_url)
            book_url = resolve_url(book_url, base_url) if book_url else ""
            if not name or not book_url:
                continue
            cover = self._field(ctx, element, rule.cover_url)
            books.append(SearchBook(
                name=name,
                author=clean_text(self._field(ctx, element, rule.author)),
                book_url=book_url,
                cover_url=resolve_url(cover, base_url) if cover else "",
                intro=self._field(ctx, element, rule.intro),
                kind=self._field(ctx, element, rule.kind),
                latest_chapter_title=self._field(ctx, element, rule.last_chapter),
                word_count=self._field(ctx, element, rule.word_count),
                book_source_url=source.book_source_url,
                book_source_name=source.book_source_name,
            ))
        logging.info(f"搜索结果解析完成: {len(books)} 条（{source.book_source_name}）")
        return books

    def parse_book_info(self, body: str, source: BookSource, book_url: str,
                        ctx: Optional[ParseContext] = None) -> Book:
        """解析书籍详情页；tocUrl 缺省为书籍链接"""
        rule = source.rule_book_info or BookInfoRule()
        ctx = ctx or self.new_context(source, book_url)
        root = self._root(ctx, body)

        content = root
        init = rule.rule("init")
        if init:
            if init.lower().startswith("@put:"):
                self._apply_puts(ctx, root, init)
            else:
                try:
                    value = self.run_chain(ctx, root, init)
                except BookSourceError as e:
                    logging.warning(f"详情页 init 规则失败: {e}")
                    value = None
                if isinstance(value, str) and looks_like_json(value):
                    parsed = self._to_elements(value)
                    value = parsed[0] if len(parsed) == 1 else parsed
                if value not in (None, "", [], {}):
                    content = value

        cover = self._field(ctx, content, rule.cover_url)
        toc_url = self._field(ctx, content, rule.toc_url)
        book = Book(
            book_url=book_url,
            toc_url=resolve_url(toc_url, book_url) if toc_url else book_url,
            origin=source.book_source_url,
            origin_name=source.book_source_name,
            name=clean_text(self._field(ctx, content, rule.name)),
            author=clean_text(self._field(ctx, content, rule.author)),
            kind=self._field(ctx, content, rule.kind),
            cover_url=resolve_url(cover, book_url) if cover else "",
            intro=self._field(ctx, content, rule.intro),
            latest_chapter_title=self._field(ctx, content, rule.last_chapter),
            word_count=self._field(ctx, content, rule.word_count),
            update_time=self._field(ctx, content, rule.update_time),
            variable=dict(ctx.put_values),
        )
        if not book.name:
            logging.warning(f"详情页没有解析到书名: {book_url}")
        return book

    def _remember_bookid(self, ctx: ParseContext, *urls: str):
        """链接里带 bookid 参数时写入脚本缓存，供后续正文链接使用"""
        for url in urls:
            bookid = query_param(url, "bookid")
            if bookid and ctx.cache is not None:
                ctx.cache.put("bookid", bookid)
                return bookid
        return ""

    def _fix_undefined_bookid(self, ctx: ParseContext, url: str) -> str:
        if not url or not _RE_BOOKID_UNDEFINED.search(url) or ctx.cache is None:
            return url
        bookid = ctx.cache.get("bookid", "")
        if not bookid:
            return url
        fixed = _RE_BOOKID_UNDEFINED.sub(f"bookid={bookid}", url)
        logging.info(f"修正章节链接 bookid: {url} -> {fixed}")
        return fixed

    def _next_urls(self, ctx: ParseContext, content, rule: Optional[str], base_url: str) -> List[str]:
        text = self._field(ctx, content, rule)
        urls = []
        for line in text.splitlines():
            line = line.strip()
            if line:
                urls.append(resolve_url(line, base_url))
        return urls

    def _parse_toc_page(self, body: str, source: BookSource, book: Book, toc_url: str,
                        ctx: ParseContext) -> Tuple[List[BookChapter], List[str]]:
        rule = source.rule_toc or TocRule()
        list_rule = rule.rule("chapter_list")
        if not list_rule:
            raise RuleMissing("chapterList", source.book_source_name)
        self._remember_bookid(ctx, book.book_url, toc_url)
        root = self._root(ctx, body)

        chapters = []
        for element in self.get_elements(ctx, root, list_rule):
            title = clean_text(self._field(ctx, element, rule.chapter_name))
            url = self._field(ctx, element, rule.chapter_url)
            if not title or not url:
                continue
            url = resolve_url(self._fix_undefined_bookid(ctx, url), toc_url)
            chapters.append(BookChapter(
                url=url,
                title=title,
                book_url=book.book_url,
                index=len(chapters),
                is_volume=_truthy(self._field(ctx, element, rule.is_volume)),
                is_vip=_truthy(self._field(ctx, element, rule.is_vip)),
                is_pay=_truthy(self._field(ctx, element, rule.is_pay)),
                update_time=self._field(ctx, element, rule.update_time),
            ))
        next_urls = self._next_urls(ctx, root, rule.next_toc_url, toc_url)
        return chapters, next_urls

    def parse_chapter_list(self, body: str, source: BookSource, book: Book,
                           ctx: Optional[ParseContext] = None, toc_url: str = "") -> List[BookChapter]:
        """解析目录页（单页），返回有标题与链接的章节"""
        toc_url = toc_url or book.toc_url or book.book_url
        ctx = ctx or self.new_context(source, toc_url, variables={"book": book.to_dict()})
        chapters, _next = self._parse_toc_page(body, source, book, toc_url, ctx)
        logging.info(f"目录解析完成: {len(chapters)} 章（{book.name or book.book_url}）")
        return chapters

    def _parse_content_page(self, body: str, source: BookSource, chapter: BookChapter,
                            ctx: ParseContext) -> Tuple[str, List[str]]:
        rule = source.rule_content or ContentRule()
        content_rule = rule.rule("content")
        if not content_rule:
            raise RuleMissing("content", source.book_source_name)
        self._remember_bookid(ctx, chapter.book_url, chapter.url)
        root = self._root(ctx, body)

        if isinstance(root, BeautifulSoup):
            text = self.get_string(ctx, root, content_rule)
            if "@text" not in content_rule.lower():
                text = reconstruct_paragraphs(text)
        else:
            text = self.get_string(ctx, root, content_rule)
            if not text and isinstance(root, dict):
                for key in ("data", "content"):
                    if isinstance(root.get(key), str) and root[key].strip():
                        text = root[key]
                        break
            if not text:
                raise ParseError(f"JSON 响应中没有取到正文: {content_rule}")

        pairs = parse_replace_regex(rule.replace_regex or "")
        if pairs:
            text = clean(text, pairs)
        next_urls = self._next_urls(ctx, root, rule.next_content_url, ctx.base_url)
        return text.strip(), next_urls

    def parse_content(self, body: str, source: BookSource, chapter: BookChapter,
                      ctx: Optional[ParseContext] = None) -> str:
        """
        解析正文页

        返回:
            正文字符串；未显式 @text 的规则会做段落重建，之后应用 replaceRegex
        """
        ctx = ctx or self.new_context(source, chapter.url, variables={"chapter": chapter.to_dict(), "title": chapter.title})
        text, _next = self._parse_content_page(body, source, chapter, ctx)
        return text

    # ------------------------------------------------------------------
    # 对外操作（请求 + 解析）
    # ------------------------------------------------------------------
    def _source_headers(self, source: BookSource, variables: Optional[dict] = None) -> Dict[str, str]:
        return parse_headers(source.header or "", self.script_host, variables or {}, js_lib=source.js_lib or "")

    def _fetch(self, ctx: ParseContext, request: SearchRequest) -> str:
        if self.fetcher is None:
            raise BookSourceError("没有配置抓取接口")
        headers = dict(ctx.headers)
        headers.update(request.headers)
        kwargs = {"charset": request.charset} if request.charset else {}
        if request.method == "POST":
            return self.fetcher.post(request.url, request.body, headers=headers, **kwargs)
        return self.fetcher.get(request.url, headers=headers, **kwargs)

    @staticmethod
    def _page_request(url: str) -> SearchRequest:
        """详情/目录/正文页请求；链接可带 `,{json}` 请求参数"""
        if ",{" in url:
            return build_request(url)
        return SearchRequest(url=url)

    def build_list_request(self, ctx: ParseContext, url_rule: str, keyword: str = "", page: int = 1) -> SearchRequest:
        """展开搜索/发现 URL；规则本身是脚本时先执行脚本得到 URL"""
        url_rule = (url_rule or "").strip()
        if contains_script(url_rule):
            url_rule = to_text(self.run_chain(ctx, "", url_rule))
        return build_request(url_rule, keyword, page, base_url=ctx.source.book_source_url)

    def search(self, keyword: str, source: BookSource, page: int = 1,
               cache: Optional[ScriptCache] = None) -> List[SearchBook]:
        """按关键词搜索一个书源"""
        if not (source.search_url or "").strip():
            raise RuleMissing("searchUrl", source.book_source_name)
        variables = {"key": keyword, "page": page}
        ctx = self.new_context(source, source.book_source_url, cache, variables,
                               self._source_headers(source, variables))
        request = self.build_list_request(ctx, source.search_url, keyword, page)
        logging.info(f"搜索 [{source.book_source_name}] {keyword} -> {request.url}")
        body = self._fetch(ctx, request)
        ctx.base_url = request.url
        return self.parse_search(body, source, request.url, ctx=ctx)

    def explore(self, url: str, source: BookSource, page: int = 1,
                cache: Optional[ScriptCache] = None) -> List[SearchBook]:
        """发现页：按 ruleExplore 解析，缺少时回退到 ruleSearch"""
        rule = source.rule_explore if source.rule_explore and source.rule_explore.rule("book_list") else source.rule_search
        variables = {"page": page}
        ctx = self.new_context(source, source.book_source_url, cache, variables,
                               self._source_headers(source, variables))
        request = self.build_list_request(ctx, url, "", page)
        body = self._fetch(ctx, request)
        ctx.base_url = request.url
        return self.parse_search(body, source, request.url, rule=rule, ctx=ctx)

    def get_book_info(self, url: str, source: BookSource, cache: Optional[ScriptCache] = None) -> Book:
        """抓取并解析书籍详情"""
        book_url = resolve_url(url, source.book_source_url)
        ctx = self.new_context(source, book_url, cache, {}, self._source_headers(source))
        self._remember_bookid(ctx, book_url)
        body = self._fetch(ctx, self._page_request(book_url))
        return self.parse_book_info(body, source, book_url, ctx=ctx)

    def get_chapter_list(self, book: Book, source: BookSource, cache: Optional[ScriptCache] = None) -> List[BookChapter]:
        """抓取目录；nextTocUrl 存在时继续抓取后续页（有页数上限）"""
        toc_url = resolve_url(book.toc_url or book.book_url, source.book_source_url)
        variables = {"book": book.to_dict()}
        ctx = self.new_context(source, toc_url, cache, variables, self._source_headers(source, variables))

        chapters: List[BookChapter] = []
        seen_urls = set()
        pending = [toc_url]
        visited = set()
        max_pages = int(self.settings.get("max_toc_pages", 20))
        while pending and len(visited) < max_pages:
            page_url = pending.pop(0)
            if page_url in visited:
                continue
            visited.add(page_url)
            ctx.base_url = page_url
            body = self._fetch(ctx, self._page_request(page_url))
            page_chapters, next_urls = self._parse_toc_page(body, source, book, page_url, ctx)
            for chapter in page_chapters:
                if chapter.url in seen_urls:
                    continue
                seen_urls.add(chapter.url)
                chapter.index = len(chapters)
                chapters.append(chapter)
            pending.extend(u for u in next_urls if u not in visited)
        logging.info(f"目录抓取完成: {len(chapters)} 章，{len(visited)} 页（{book.name or book.book_url}）")
        return chapters

    def get_chapter_content(self, chapter: BookChapter, source: BookSource, next_chapter_url: Optional[str] = None,
                            cache: Optional[ScriptCache] = None) -> str:
        """抓取正文；nextContentUrl 指向下一章或已抓过的页时停止"""
        variables = {"chapter": chapter.to_dict(), "title": chapter.title}
        ctx = self.new_context(source, chapter.url, cache, variables, self._source_headers(source, variables))
        self._remember_bookid(ctx, chapter.book_url, chapter.url)
        url = self._fix_undefined_bookid(ctx, resolve_url(chapter.url, source.book_source_url))
        url = fix_duplicate_path(url)
        stop_url = fix_duplicate_path(resolve_url(next_chapter_url, source.book_source_url)) if next_chapter_url else ""

        parts = []
        visited = set()
        max_pages = int(self.settings.get("max_content_pages", 10))
        while url and url not in visited and len(visited) < max_pages:
            visited.add(url)
            ctx.base_url = url
            body = self._fetch(ctx, self._page_request(url))
            text, next_urls = self._parse_content_page(body, source, chapter, ctx)
            if text:
                parts.append(text)
            url = ""
            for candidate in next_urls:
                candidate = fix_duplicate_path(candidate)
                if candidate and candidate != stop_url and candidate not in visited:
                    url = candidate
                    break
        return "\n".join(parts)


__all__ = ["ParseContext", "RuleInterpreter", "reconstruct_paragraphs"]
