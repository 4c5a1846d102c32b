'''
 # selector_engine.py
 # 组件：负责执行 CSS / XPath 规则片段并取出文本、属性或 HTML
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/13
'''
import re
import logging
from typing import List, Optional, Tuple, Union

import soupsieve
from bs4 import BeautifulSoup, NavigableString, Tag
from lxml import etree
import lxml.html

from rule_splitter import strip_mode_prefix

# 作为访问器时按“子选择器”处理的标签
SUB_SELECTOR_TAGS = frozenset(
    "p a div span li td tr h1 h2 h3 h4 h5 h6 img ul ol dl dt dd".split()
)

# 旧式写法 class.x / id.x / tag.x，只在复合选择器的开头识别
_RE_LEGACY_CLASS = re.compile(r'(?<![\w\-.#])class\.')
_RE_LEGACY_ID = re.compile(r'(?<![\w\-.#])id\.')
_RE_LEGACY_TAG = re.compile(r'(?<![\w\-.#])tag\.')
_RE_SIGNED_INT = re.compile(r'^[+-]?\d+$')

Node = Union[str, Tag, None]


def make_soup(html):
    """
    安全构造 BeautifulSoup：
    - 输入统一转为 UTF-8 字节（errors="replace"），避免 lxml 内部重编码报错
    - 优先 lxml，失败回退到内置 html.parser
    """
    try:
        if isinstance(html, bytes):
            data = html
        else:
            data = (html or "").encode("utf-8", "replace")
        return BeautifulSoup(data, "lxml", from_encoding="utf-8")
    except Exception:
        return BeautifulSoup(html or "", "html.parser")


def clean_text(s: str) -> str:
    if not s:
        return ""
    t = re.sub(r'[\r\t\xa0]+', ' ', s)
    return " ".join(t.split()).strip()


def translate_legacy(selector: str) -> str:
    """class.x -> .x，id.x -> #x，tag.x -> x"""
    if not selector:
        return selector
    s = _RE_LEGACY_CLASS.sub(".", selector)
    s = _RE_LEGACY_ID.sub("#", s)
    s = _RE_LEGACY_TAG.sub("", s)
    return s


def split_accessor(rule: str) -> Tuple[str, Optional[str]]:
    """
    在第一个顶层 @ 处拆分选择器与访问器（方括号、圆括号、引号内的 @ 不算）

    返回:
        (selector, accessor)；没有 @ 时 accessor 为 None
    """
    depth = 0
    quote = ""
    for i, ch in enumerate(rule):
        if quote:
            if ch == quote:
                quote = ""
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch in "[(":
            depth += 1
        elif ch in "])":
            depth = max(0, depth - 1)
        elif ch == "@" and depth == 0:
            return rule[:i].strip(), rule[i + 1:].strip()
    return rule.strip(), None


def split_index(selector: str) -> Tuple[str, Optional[int]]:
    """解析结尾的 .N 下标（有符号整数；位置 0 的点不算）"""
    dot = selector.rfind(".")
    if dot > 0:
        suffix = selector[dot + 1:]
        if _RE_SIGNED_INT.match(suffix):
            return selector[:dot], int(suffix)
    return selector, None


def _pick_index(items: list, index: Optional[int]):
    if not items:
        return None
    if index is None:
        return items[0]
    if -len(items) <= index < len(items):
        return items[index]
    return None


def _scope(node: Node):
    """字符串先解析成文档并取 body；bs4 节点直接使用"""
    if isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
        return node
    soup = node if isinstance(node, BeautifulSoup) else make_soup(node or "")
    return soup.body or soup


def select(scope, selector: str) -> List[Tag]:
    """
    执行 CSS 选择；与 Jsoup 一致，上下文元素本身匹配时也计入结果。
    无效选择器记录日志并返回空列表
    """
    if not selector:
        return [scope]
    try:
        found = scope.select(selector)
        if isinstance(scope, Tag) and scope.name not in ("[document]", "body", "html"):
            if soupsieve.match(selector, scope):
                found = [scope] + list(found)
        return list(found)
    except Exception as e:
        logging.debug(f"CSS 选择器无效 {selector!r}: {e}")
        return []


def element_text(el: Tag) -> str:
    return clean_text(el.get_text(" ", strip=True))


def _own_text(el: Tag) -> str:
    return clean_text(" ".join(s for s in el.children if isinstance(s, NavigableString)))


def _access(el: Tag, accessor: str) -> str:
    low = accessor.lower()
    if low == "text":
        return element_text(el)
    if low == "html":
        return el.decode_contents()
    if low == "owntext":
        return _own_text(el)
    if low == "textnodes":
        parts = [clean_text(s) for s in el.children if isinstance(s, NavigableString)]
        return "\n".join(p for p in parts if p)
    if low in SUB_SELECTOR_TAGS:
        return "".join(str(child) for child in el.select(low))
    value = el.get(accessor)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def resolve(node: Node, rule: str, base_html: Optional[str] = None) -> str:
    """
    执行一个 CSS 片段

    参数:
        node: 当前 HTML 片段（字符串或 bs4 节点）
        rule: 片段规则，如 `.title@href`、`class.chap.-1@text`、`div@p`
        base_html: node 为空时使用的整页 HTML

    返回:
        取到的字符串；下标越界或无匹配返回空串，不抛异常
    """
    if node is None or (isinstance(node, str) and not node.strip()):
        node = base_html or ""
    rule = strip_mode_prefix((rule or "").strip())
    scope = _scope(node)
    if not rule:
        return element_text(scope)

    selector, accessor = split_accessor(rule)
    selector, index = split_index(translate_legacy(selector))

    if accessor is None:
        el = _pick_index(select(scope, selector), index)
        return element_text(el) if el is not None else ""

    if not selector:
        target = scope
    else:
        target = _pick_index(select(scope, selector), index)
    if target is None:
        return ""
    return _access(target, accessor)


def _select_chain(scopes: List[Tag], rule: str) -> List[Tag]:
    selector, rest = split_accessor(rule)
    selector, index = split_index(translate_legacy(selector))
    found: List[Tag] = []
    for scope in scopes:
        matches = select(scope, selector) if selector else [scope]
        if index is not None:
            picked = _pick_index(matches, index)
            matches = [picked] if picked is not None else []
        found.extend(matches)
    if rest:
        return _select_chain(found, rest)
    return found


def select_elements(node: Node, rule: str) -> List[Tag]:
    """
    列表规则选择元素：支持 parent@child 逐级选择、.N 下标、
    以及开头的 - 表示倒序

    返回:
        bs4 节点列表
    """
    rule = strip_mode_prefix((rule or "").strip())
    reverse = False
    if rule.startswith("-"):
        reverse = True
        rule = rule[1:].strip()
    elif rule.startswith("+"):
        rule = rule[1:].strip()
    if not rule:
        return []
    elements = _select_chain([_scope(node)], rule)
    if reverse:
        elements.reverse()
    return elements


def _xpath_tree(node: Node):
    html = str(node) if isinstance(node, Tag) else (node or "")
    if not html.strip():
        return None
    try:
        return lxml.html.document_fromstring(html)
    except (etree.ParserError, ValueError) as e:
        logging.debug(f"XPath 解析 HTML 失败: {e}")
        return None


def _xpath(node: Node, expr: str) -> list:
    expr = strip_mode_prefix((expr or "").strip())
    tree = _xpath_tree(node)
    if tree is None or not expr:
        return []
    try:
        result = tree.xpath(expr)
    except (etree.XPathError, ValueError) as e:
        logging.debug(f"XPath 表达式无效 {expr!r}: {e}")
        return []
    if isinstance(result, list):
        return result
    return [result]


def xpath_values(node: Node, expr: str) -> List[str]:
    """XPath 取字符串值：元素取文本，属性/text() 取原值"""
    values = []
    for item in _xpath(node, expr):
        if isinstance(item, etree._Element):
            values.append(clean_text(item.text_content()))
        elif isinstance(item, bool):
            values.append("true" if item else "false")
        elif isinstance(item, float) and item.is_integer():
            values.append(str(int(item)))
        else:
            values.append(str(item))
    return values


def xpath_elements(node: Node, expr: str) -> List[str]:
    """XPath 列表规则：返回匹配元素的外层 HTML"""
    return [
        lxml.html.tostring(item, encoding="unicode")
        for item in _xpath(node, expr)
        if isinstance(item, etree._Element)
    ]


__all__ = [
    "SUB_SELECTOR_TAGS",
    "make_soup",
    "clean_text",
    "translate_legacy",
    "split_accessor",
    "split_index",
    "select",
    "element_text",
    "resolve",
    "select_elements",
    "xpath_values",
    "xpath_elements",
]
