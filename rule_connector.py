'''
 # rule_connector.py
 # 组件：组合规则（&& / || / %%）、AllInOne / OnlyOne 正则规则与净化链
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/12
'''
import re
import logging
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

from rule_splitter import script_spans
from source_errors import InvalidPatternError


class Connector(Enum):
    AND = "&&"
    OR = "||"
    MOD = "%%"


# 固定优先级：只看子串是否出现，&& 永远先于 ||，|| 永远先于 %%
_CONNECTOR_PRIORITY = (Connector.AND, Connector.OR, Connector.MOD)

_RE_CLEAN_SEP = re.compile(r'##')


def detect_connector(rule: str) -> Optional[Connector]:
    """按 AND > OR > MOD 的固定优先级检测组合符，未出现返回 None"""
    if not rule:
        return None
    for connector in _CONNECTOR_PRIORITY:
        if connector.value in rule:
            return connector
    return None


def split_rule(rule: str, connector: Connector) -> List[str]:
    """按组合符切分规则，去除首尾空白并丢弃空片段"""
    return [part.strip() for part in rule.split(connector.value) if part.strip()]


def merge_results(lists: Sequence[list], connector: Connector) -> list:
    """
    合并多个子规则的结果

    参数:
        lists: 各子规则结果列表，顺序与子规则一致
        connector: 组合符

    返回:
        AND: 依次拼接；OR: 第一个非空列表；MOD: 轮流交错取值
    """
    if connector is Connector.AND:
        merged = []
        for items in lists:
            merged.extend(items)
        return merged
    if connector is Connector.OR:
        for items in lists:
            if items:
                return list(items)
        return []
    # MOD
    merged = []
    longest = max((len(items) for items in lists), default=0)
    for i in range(longest):
        for items in lists:
            if i < len(items):
                merged.append(items[i])
    return merged


@lru_cache(maxsize=512)
def compile_pattern(pattern: str):
    """编译正则（点号匹配换行），失败返回 None"""
    try:
        return re.compile(pattern, re.DOTALL)
    except re.error as e:
        logging.debug(f"正则编译失败 {pattern!r}: {e}")
        return None


def expand_template(template: str, match) -> str:
    """
    展开替换模板：$N 引用分组，反斜杠转义下一个字符，其余原样保留。
    未参与匹配的分组替换为空串。
    """
    out = []
    group_count = match.re.groups
    i = 0
    n = len(template)
    while i < n:
        ch = template[i]
        if ch == "\\" and i + 1 < n:
            out.append(template[i + 1])
            i += 2
            continue
        if ch == "$" and i + 1 < n and template[i + 1].isdigit():
            # 贪婪读取数字，但不超过实际分组数
            j = i + 1
            num = int(template[j])
            j += 1
            while j < n and template[j].isdigit() and int(template[i + 1:j + 1]) <= group_count:
                num = int(template[i + 1:j + 1])
                j += 1
            if num <= group_count:
                out.append(match.group(num) or "")
                i = j
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def _inside_spans(pos: int, spans: List[Tuple[int, int]]) -> bool:
    return any(start <= pos < end for start, end in spans)


def split_cleaning(rule: str) -> Tuple[str, List[Tuple[str, str]]]:
    """
    把 `base##pattern##replacement##pattern2...` 拆成基础规则和替换对。
    脚本片段内部的 ## 不参与切分；奇数个尾部 pattern 的替换内容为空串。
    """
    if not rule or "##" not in rule:
        return rule, []
    spans = script_spans(rule)
    cuts = [m.start() for m in _RE_CLEAN_SEP.finditer(rule) if not _inside_spans(m.start(), spans)]
    if not cuts:
        return rule, []
    parts = []
    last = 0
    for cut in cuts:
        parts.append(rule[last:cut])
        last = cut + 2
    parts.append(rule[last:])

    base = parts[0].strip()
    rest = parts[1:]
    pairs = []
    for i in range(0, len(rest), 2):
        pattern = rest[i]
        replacement = rest[i + 1] if i + 1 < len(rest) else ""
        if pattern:
            pairs.append((pattern, replacement))
    return base, pairs


def clean(text: str, pairs: Sequence[Tuple[str, str]]) -> str:
    """依次应用净化替换对；无法编译的正则直接跳过"""
    if not text or not pairs:
        return text or ""
    for pattern, replacement in pairs:
        regex = compile_pattern(pattern)
        if regex is None:
            logging.debug(f"跳过无效的净化正则: {pattern}")
            continue
        text = regex.sub(lambda m, r=replacement: expand_template(r, m), text)
    return text


def parse_replace_regex(replace_regex: str) -> List[Tuple[str, str]]:
    """
    解析正文 replaceRegex：每行一条 `##pattern##replacement` 净化链，
    没有 ## 的行视为整行正则（替换为空）
    """
    pairs: List[Tuple[str, str]] = []
    if not replace_regex:
        return pairs
    for line in replace_regex.splitlines():
        line = line.strip()
        if not line:
            continue
        if "##" in line:
            _base, line_pairs = split_cleaning(line)
            pairs.extend(line_pairs)
        else:
            pairs.append((line, ""))
    return pairs


def is_all_in_one(rule: str) -> bool:
    return bool(rule) and rule.startswith(":")


def all_in_one(content: str, rule: str) -> List[Dict[str, str]]:
    """
    AllInOne 规则：对整段内容执行正则，每个匹配生成一条记录

    返回:
        [{"$1": ..., "$2": ...}, ...]，只包含实际参与匹配的分组
    """
    pattern = rule[1:] if rule.startswith(":") else rule
    regex = compile_pattern(pattern)
    if regex is None:
        logging.warning(f"AllInOne 正则无效: {pattern}")
        return []
    records = []
    for m in regex.finditer(content or ""):
        record = {}
        for idx in range(1, regex.groups + 1):
            value = m.group(idx)
            if value is not None:
                record[f"${idx}"] = value
        if record:
            records.append(record)
    return records


def regex_first(content: str, rule: str) -> str:
    """字段链中的正则片段：取第一个匹配的第 1 组（无分组时取整个匹配）"""
    pattern = rule[1:] if rule.startswith(":") else rule
    regex = compile_pattern(pattern)
    if regex is None:
        return ""
    m = regex.search(content or "")
    if not m:
        return ""
    if regex.groups >= 1:
        return m.group(1) or ""
    return m.group(0)


def is_only_one(rule: str) -> bool:
    if not rule:
        return False
    stripped = rule.rstrip()
    return stripped.endswith("###") and "##" in stripped[:-3]


def split_only_one(rule: str) -> Tuple[str, str]:
    """
    `base##pattern##replacement###` 拆为 (base, `##pattern##replacement###`)；
    base 为空时表示直接作用于当前内容
    """
    stripped = rule.rstrip()
    idx = stripped.find("##")
    return stripped[:idx].strip(), stripped[idx:]


def only_one(content: str, rule: str) -> Optional[str]:
    """
    OnlyOne 规则：只取第一个匹配；若带替换模板（且不是 $0），
    只对这一个匹配到的文本做替换

    返回:
        匹配结果；没有匹配返回 None
    """
    body = rule.rstrip()
    if body.startswith("##"):
        body = body[2:]
    if body.endswith("###"):
        body = body[:-3]
    parts = body.split("##")
    pattern = parts[0]
    replacement = parts[1] if len(parts) > 1 else "$0"

    regex = compile_pattern(pattern)
    if regex is None:
        raise InvalidPatternError(pattern)
    m = regex.search(content or "")
    if not m:
        return None
    matched = m.group(0)
    if replacement != "$0":
        return regex.sub(lambda mm: expand_template(replacement, mm), matched)
    return matched


__all__ = [
    "Connector",
    "detect_connector",
    "split_rule",
    "merge_results",
    "compile_pattern",
    "expand_template",
    "split_cleaning",
    "clean",
    "parse_replace_regex",
    "is_all_in_one",
    "all_in_one",
    "regex_first",
    "is_only_one",
    "split_only_one",
    "only_one",
]
