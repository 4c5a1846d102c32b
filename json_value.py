'''
 # json_value.py
 # 组件：JSON 值的类型划分、字符串化规则与 JSON 路径取值
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/12
'''
import re
import json
from enum import Enum
from typing import Any, List, Optional

from source_errors import ParseError


class JsonKind(Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


def json_kind(value: Any) -> JsonKind:
    """把 json.loads 得到的 Python 值归入封闭的 JSON 类型"""
    if value is None:
        return JsonKind.NULL
    # bool 是 int 的子类，必须先判断
    if isinstance(value, bool):
        return JsonKind.BOOL
    if isinstance(value, (int, float)):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, (list, tuple)):
        return JsonKind.ARRAY
    if isinstance(value, dict):
        return JsonKind.OBJECT
    raise TypeError(f"不是 JSON 值: {type(value).__name__}")


def _number_text(value) -> str:
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def _compact(value) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


_TEXT_RULES = {
    JsonKind.NULL: lambda v: "",
    JsonKind.BOOL: lambda v: "true" if v else "false",
    JsonKind.NUMBER: _number_text,
    JsonKind.STRING: lambda v: v,
    JsonKind.ARRAY: lambda v: _compact(list(v)),
    JsonKind.OBJECT: _compact,
}

assert set(_TEXT_RULES) == set(JsonKind)


def to_text(value: Any) -> str:
    """
    JSON 值转字符串：
      null -> ""；bool -> true/false；整数值的数字不带小数；
      其它数字用 repr；数组/对象 -> 紧凑 JSON（保留中文）
    非 JSON 值（例如 bs4 节点）用 str()
    """
    try:
        kind = json_kind(value)
    except TypeError:
        return str(value)
    return _TEXT_RULES[kind](value)


def looks_like_json(text: str) -> bool:
    if not isinstance(text, str):
        return False
    t = text.strip()
    return t.startswith("{") or t.startswith("[")


def parse_json(text: str) -> Any:
    """解析 JSON，失败抛出 ParseError"""
    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        raise ParseError(f"JSON 解析失败: {e}") from e


# 路径记号：..key / .key / .* / [N] / [a:b] / ['key'] / [*]
_RE_PATH_TOKEN = re.compile(r"""
      \.\.(?P<deep>[^.\[\]]+)
    | \.(?P<key>[^.\[\]]+)
    | \[\s*(?P<index>-?\d+)\s*\]
    | \[\s*(?P<start>-?\d*)\s*:\s*(?P<stop>-?\d*)\s*\]
    | \[\s*['"](?P<qkey>[^'"]+)['"]\s*\]
    | \[\s*(?P<star>\*)\s*\]
""", re.VERBOSE)


def _tokenize(path: str) -> Optional[List[tuple]]:
    tokens = []
    pos = 0
    while pos < len(path):
        m = _RE_PATH_TOKEN.match(path, pos)
        if not m:
            return None
        if m.group("deep") is not None:
            tokens.append(("deep", m.group("deep").strip()))
        elif m.group("key") is not None:
            key = m.group("key").strip()
            tokens.append(("star", None) if key == "*" else ("key", key))
        elif m.group("index") is not None:
            tokens.append(("index", int(m.group("index"))))
        elif m.group("qkey") is not None:
            tokens.append(("key", m.group("qkey")))
        elif m.group("star") is not None:
            tokens.append(("star", None))
        else:
            start = int(m.group("start")) if m.group("start") else None
            stop = int(m.group("stop")) if m.group("stop") else None
            tokens.append(("slice", (start, stop)))
        pos = m.end()
    return tokens


def normalize_path(path: str) -> str:
    """去掉 @Json: 前缀与开头的 $，裸写的 a.b 补成 .a.b"""
    p = (path or "").strip()
    if p.lower().startswith("@json:"):
        p = p[6:].strip()
    if p.startswith("$"):
        p = p[1:]
    if p and p[0] not in ".[":
        p = "." + p
    return p


def _collect_deep(value, key, out):
    if isinstance(value, dict):
        for k, v in value.items():
            if k == key:
                out.append(v)
            _collect_deep(v, key, out)
    elif isinstance(value, list):
        for item in value:
            _collect_deep(item, key, out)


def json_path(data: Any, path: str) -> Any:
    """
    在解析后的 JSON 树中按路径取值

    参数:
        data: json.loads 的结果
        path: `$.a.b[0]`、`a.b`、`$.list[:10]`、`$..name`、`$.list[*].id` 等

    返回:
        单值路径返回该值；含通配/递归的路径返回列表；取不到返回 None
    """
    p = normalize_path(path)
    if not p:
        return data
    tokens = _tokenize(p)
    if tokens is None:
        return None

    state = [data]
    multi = False
    for kind, arg in tokens:
        nxt = []
        for value in state:
            if kind == "key":
                if isinstance(value, dict):
                    if arg in value:
                        nxt.append(value[arg])
                elif isinstance(value, list):
                    # 对数组取键：映射到每个元素
                    multi = True
                    nxt.extend(item[arg] for item in value if isinstance(item, dict) and arg in item)
            elif kind == "deep":
                multi = True
                _collect_deep(value, arg, nxt)
            elif kind == "star":
                multi = True
                if isinstance(value, list):
                    nxt.extend(value)
                elif isinstance(value, dict):
                    nxt.extend(value.values())
            elif kind == "index":
                if isinstance(value, list) and -len(value) <= arg < len(value):
                    nxt.append(value[arg])
            elif kind == "slice":
                if isinstance(value, list):
                    start, stop = arg
                    if multi:
                        nxt.extend(value[start:stop])
                    else:
                        nxt.append(value[start:stop])
        state = nxt
        if not state:
            return [] if multi else None
    if multi:
        return state
    return state[0] if state else None


def json_list(data: Any, path: str) -> List[Any]:
    """列表规则取值：结果统一为列表（单个对象包成一个元素）"""
    value = json_path(data, path)
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


__all__ = [
    "JsonKind",
    "json_kind",
    "to_text",
    "looks_like_json",
    "parse_json",
    "normalize_path",
    "json_path",
    "json_list",
]
