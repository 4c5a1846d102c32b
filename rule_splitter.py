'''
 # rule_splitter.py
 # 组件：把一条字段规则切分为有序的类型化片段（CSS/XPath/JSON/正则/JS）
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/12
'''
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple


class RuleMode(Enum):
    """片段模式（封闭枚举，解释器按成员做完整分派）"""
    DEFAULT = "default"  # CSS / 旧式 class.x 语法
    XPATH = "xpath"
    JSON = "json"
    REGEX = "regex"
    JS = "js"


@dataclass(frozen=True)
class RuleSegment:
    content: str
    mode: RuleMode


# <js>...</js> 或 @js:...（@js: 延伸到下一个 <js> / @js: 或规则末尾）
_SCRIPT_SPAN_SOURCE = r'<js>([\s\S]*?)</js>|@js:([\s\S]*?)(?=<js>|@js:|\Z)'
try:
    _RE_SCRIPT_SPAN = re.compile(_SCRIPT_SPAN_SOURCE, re.IGNORECASE)
except re.error:
    _RE_SCRIPT_SPAN = None

# 显式模式前缀（大小写不敏感）
_MODE_PREFIXES: Tuple[Tuple[str, RuleMode], ...] = (
    ("@css:", RuleMode.DEFAULT),
    ("@@", RuleMode.DEFAULT),
    ("@xpath:", RuleMode.XPATH),
    ("@json:", RuleMode.JSON),
)


def classify_chunk(chunk: str) -> RuleMode:
    """根据前缀判定非脚本片段的模式"""
    low = chunk.lower()
    if low.startswith("@css:") or low.startswith("@@"):
        return RuleMode.DEFAULT
    if chunk.startswith("/") or low.startswith("@xpath:"):
        return RuleMode.XPATH
    if chunk.startswith("$.") or chunk.startswith("$[") or low.startswith("@json:"):
        return RuleMode.JSON
    if chunk.startswith(":"):
        return RuleMode.REGEX
    return RuleMode.DEFAULT


def strip_mode_prefix(content: str) -> str:
    """去掉 @css: / @@ / @XPath: / @Json: 之类的显式前缀"""
    low = content.lower()
    for prefix, _mode in _MODE_PREFIXES:
        if low.startswith(prefix):
            return content[len(prefix):].strip()
    return content


def script_spans(rule: str) -> List[Tuple[int, int]]:
    """返回规则中所有脚本片段的 (起, 止) 位置"""
    if not rule or _RE_SCRIPT_SPAN is None:
        return []
    return [m.span() for m in _RE_SCRIPT_SPAN.finditer(rule)]


def contains_script(rule: str) -> bool:
    if not rule:
        return False
    low = rule.lower()
    return "<js>" in low or "@js:" in low


def split_rule(rule: str) -> List[RuleSegment]:
    """
    将字段规则拆分为片段列表，顺序与原规则一致

    参数:
        rule: 原始规则字符串

    返回:
        List[RuleSegment]，空片段被丢弃；脚本片段去掉了 <js> 标签
    """
    if not rule:
        return []
    if _RE_SCRIPT_SPAN is None:
        logging.warning("脚本分段正则不可用，整条规则按 CSS 处理")
        return [RuleSegment(rule, RuleMode.DEFAULT)]

    segments: List[RuleSegment] = []

    def _push_chunk(chunk: str):
        chunk = chunk.strip()
        if chunk:
            segments.append(RuleSegment(chunk, classify_chunk(chunk)))

    last = 0
    for m in _RE_SCRIPT_SPAN.finditer(rule):
        _push_chunk(rule[last:m.start()])
        body = m.group(1) if m.group(1) is not None else (m.group(2) or "")
        body = body.strip()
        if body:
            segments.append(RuleSegment(body, RuleMode.JS))
        last = m.end()
    _push_chunk(rule[last:])
    return segments


__all__ = [
    "RuleMode",
    "RuleSegment",
    "classify_chunk",
    "strip_mode_prefix",
    "script_spans",
    "contains_script",
    "split_rule",
]
