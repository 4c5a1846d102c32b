'''
 # url_template.py
 # 组件：负责把搜索/发现 URL 模板展开为请求（表达式求值、占位符替换和请求头解析）
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/14
'''
import re
import ast
import json
import logging
import operator
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from json_value import to_text
from rule_splitter import contains_script, split_rule, RuleMode
from source_errors import ScriptError
from url_resolver import resolve_url

_RE_EXPR = re.compile(r'\{\{(.*?)\}\}', re.DOTALL)
_RE_IDENT = re.compile(r'^[A-Za-z_]\w*$')
_RE_ARITH = re.compile(r'^(?:\s|\d|\.|page|[+\-*/()])+$')
_RE_LEFTOVER = re.compile(r'\{\{\s*[A-Za-z_]\w*\s*\}\}')
# 旧格式裸写的 searchKey / searchPage，只认参数值或路径段位置
_RE_BARE_KEY = re.compile(r'(?<=[=/])searchKey(?=[&/#?.]|$)')
_RE_BARE_PAGE = re.compile(r'(?<=[=/])searchPage(?=[&/#?.]|$)')

KEY_NAMES = ("key", "searchKey")
PAGE_NAMES = ("page", "searchPage")

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}


@dataclass
class SearchRequest:
    url: str
    method: str = "GET"
    body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    charset: str = ""


def _eval_node(node, page):
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.Name) and node.id == "page":
        return page
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        return _BIN_OPS[type(node.op)](_eval_node(node.left, page), _eval_node(node.right, page))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand, page))
    raise ValueError(f"不支持的表达式: {ast.dump(node)}")


def eval_page_arithmetic(expr: str, page: int) -> Optional[str]:
    """只允许 数字、page、+ - * / ( ) 的算术表达式；其它一律返回 None"""
    if not expr or not _RE_ARITH.match(expr):
        return None
    try:
        value = _eval_node(ast.parse(expr.strip(), mode="eval").body, page)
    except (SyntaxError, ValueError, ZeroDivisionError) as e:
        logging.debug(f"URL 表达式无法计算 {expr!r}: {e}")
        return None
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def _resolve_expression(expr: str, page: int) -> Optional[str]:
    if _RE_IDENT.match(expr):
        return "{{" + expr + "}}"
    if ";" in expr:
        head = expr.split(";", 1)[0].strip()
        if _RE_IDENT.match(head):
            return "{{" + head + "}}"
    return eval_page_arithmetic(expr, page)


def evaluate_expressions(template: str, page: int = 1) -> str:
    """
    处理 URL 模板中的 {{表达式}}

    - 单个标识符（page、key）保留为占位符
    - `ident;副作用` 只取前面的标识符作占位符
    - 只含 page 的算术表达式直接求值
    - 其余表达式用 `expr||默认值` 的默认值，没有默认值则删除
    """
    def _repl(m):
        expr = m.group(1).strip()
        head, sep, default = expr.partition("||")
        value = _resolve_expression(head.strip(), page)
        if value is not None:
            return value
        if sep:
            return default.strip().strip("'\"")
        logging.debug(f"丢弃无法解析的 URL 表达式: {expr}")
        return ""

    return _RE_EXPR.sub(_repl, template or "")


def substitute_placeholders(template: str, key: str, page: int) -> str:
    """替换 {{key}}/{key}/searchKey 与 {{page}}/{page}/searchPage；残留的未知占位符删除"""
    text = template or ""
    for name in KEY_NAMES:
        text = text.replace("{{" + name + "}}", key).replace("{" + name + "}", key)
    for name in PAGE_NAMES:
        text = text.replace("{{" + name + "}}", str(page)).replace("{" + name + "}", str(page))
    text = _RE_BARE_KEY.sub(lambda _m: key, text)
    text = _RE_BARE_PAGE.sub(str(page), text)
    return _RE_LEFTOVER.sub("", text)


def split_url_options(url_rule: str) -> Tuple[str, Dict[str, Any]]:
    """拆分 `url,{"method":"POST",...}` 形式的请求参数"""
    text = (url_rule or "").strip()
    start = 0
    while True:
        idx = text.find(",{", start)
        if idx < 0:
            return text, {}
        try:
            options = json.loads(text[idx + 1:])
        except ValueError:
            start = idx + 1
            continue
        if isinstance(options, dict):
            return text[:idx].strip(), options
        start = idx + 1


def encode_key(keyword: str, charset: str = "") -> str:
    try:
        return quote(keyword or "", safe="", encoding=charset or "utf-8")
    except LookupError:
        return quote(keyword or "", safe="")


def build_request(url_rule: str, keyword: str = "", page: int = 1, base_url: str = "") -> SearchRequest:
    """
    把搜索/发现 URL 规则展开为一次请求

    参数:
        url_rule: 书源 searchUrl（可带 `,{json}` 请求参数）
        keyword: 搜索关键词（URL 中按 charset 编码，请求体中保持原样）
        page: 页码
        base_url: 相对地址的基础URL（通常是书源URL）

    返回:
        SearchRequest
    """
    url_part, options = split_url_options(url_rule)
    charset = str(options.get("charset") or "")
    url = substitute_placeholders(evaluate_expressions(url_part, page), encode_key(keyword, charset), page)
    if base_url:
        url = resolve_url(url, base_url)

    body = options.get("body")
    if body is not None and not isinstance(body, str):
        body = json.dumps(body, ensure_ascii=False)
    if body is not None:
        body = substitute_placeholders(evaluate_expressions(body, page), keyword or "", page)

    method = str(options.get("method") or "GET").upper()
    headers = options.get("headers") or {}
    if isinstance(headers, str):
        headers = parse_headers(headers)
    return SearchRequest(
        url=url,
        method="POST" if method == "POST" else "GET",
        body=body,
        headers={str(k): to_text(v) for k, v in headers.items()} if isinstance(headers, dict) else {},
        charset=charset,
    )


def parse_headers(text: str, script_host=None, variables: Optional[dict] = None, js_lib: str = "") -> Dict[str, str]:
    """
    解析书源 header 字段：JSON 对象、`@js:` 脚本（结果为 JSON 对象）、或 `键: 值` 多行文本
    """
    if not text or not text.strip():
        return {}
    t = text.strip()
    if contains_script(t):
        if script_host is None:
            logging.warning("请求头是脚本，但没有脚本宿主，忽略")
            return {}
        scripts = [seg.content for seg in split_rule(t) if seg.mode is RuleMode.JS]
        try:
            value = script_host.evaluate(scripts[0] if scripts else t, variables or {}, js_lib=js_lib)
        except ScriptError as e:
            logging.warning(f"请求头脚本执行失败: {e}")
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return parse_headers(value)
        if isinstance(value, dict):
            return {str(k): to_text(v) for k, v in value.items()}
        return {}
    try:
        data = json.loads(t)
        if isinstance(data, dict):
            return {str(k): to_text(v) for k, v in data.items()}
    except ValueError:
        pass
    headers = {}
    for line in t.splitlines():
        name, sep, value = line.partition(":")
        if sep and name.strip():
            headers[name.strip()] = value.strip()
    return headers


__all__ = [
    "SearchRequest",
    "eval_page_arithmetic",
    "evaluate_expressions",
    "substitute_placeholders",
    "split_url_options",
    "encode_key",
    "build_request",
    "parse_headers",
]
