'''
 # source_models.py
 # 组件：书源数据模型（规则分组）与输出对象 SearchBook / Book / BookChapter
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/13
'''
import re
import json
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

_RE_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake(name: str) -> str:
    """bookSourceUrl -> book_source_url"""
    return _RE_CAMEL_BOUNDARY.sub("_", name).lower()


def to_camel(name: str) -> str:
    """book_source_url -> bookSourceUrl"""
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def _rule_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def _as_int(value, default: int = 0) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


class RuleGroup:
    """规则分组基类：字段名 -> 规则字符串（全部可选）"""

    @classmethod
    def from_dict(cls, data):
        # 部分书源把规则分组存成 JSON 字符串；空数组视为没有规则
        if isinstance(data, str):
            try:
                data = json.loads(data) if data.strip() else None
            except ValueError:
                return None
        if not isinstance(data, dict):
            return None
        names = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = to_snake(key)
            if name in names:
                kwargs[name] = _rule_text(value)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, str]:
        return {to_camel(f.name): getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def rule(self, name: str) -> str:
        """取规则，缺失返回空串"""
        return (getattr(self, name, None) or "").strip()


@dataclass
class SearchRule(RuleGroup):
    book_list: Optional[str] = None
    name: Optional[str] = None
    author: Optional[str] = None
    kind: Optional[str] = None
    intro: Optional[str] = None
    cover_url: Optional[str] = None
    book_url: Optional[str] = None
    word_count: Optional[str] = None
    last_chapter: Optional[str] = None
    check_key_word: Optional[str] = None


@dataclass
class ExploreRule(RuleGroup):
    book_list: Optional[str] = None
    name: Optional[str] = None
    author: Optional[str] = None
    kind: Optional[str] = None
    intro: Optional[str] = None
    cover_url: Optional[str] = None
    book_url: Optional[str] = None
    word_count: Optional[str] = None
    last_chapter: Optional[str] = None


@dataclass
class BookInfoRule(RuleGroup):
    init: Optional[str] = None
    name: Optional[str] = None
    author: Optional[str] = None
    intro: Optional[str] = None
    kind: Optional[str] = None
    cover_url: Optional[str] = None
    toc_url: Optional[str] = None
    word_count: Optional[str] = None
    last_chapter: Optional[str] = None
    update_time: Optional[str] = None
    can_re_name: Optional[str] = None


@dataclass
class TocRule(RuleGroup):
    chapter_list: Optional[str] = None
    chapter_name: Optional[str] = None
    chapter_url: Optional[str] = None
    is_volume: Optional[str] = None
    update_time: Optional[str] = None
    is_vip: Optional[str] = None
    is_pay: Optional[str] = None
    next_toc_url: Optional[str] = None


@dataclass
class ContentRule(RuleGroup):
    content: Optional[str] = None
    title: Optional[str] = None
    next_content_url: Optional[str] = None
    web_js: Optional[str] = None
    source_regex: Optional[str] = None
    replace_regex: Optional[str] = None
    image_style: Optional[str] = None
    image_decode: Optional[str] = None
    pay_action: Optional[str] = None


@dataclass
class ReviewRule(RuleGroup):
    review_url: Optional[str] = None
    avatar_rule: Optional[str] = None
    content_rule: Optional[str] = None
    post_time_rule: Optional[str] = None
    review_quote_url: Optional[str] = None


_RULE_GROUPS = {
    "rule_search": SearchRule,
    "rule_explore": ExploreRule,
    "rule_book_info": BookInfoRule,
    "rule_toc": TocRule,
    "rule_content": ContentRule,
    "rule_review": ReviewRule,
}
_INT_FIELDS = ("book_source_type", "custom_order", "last_update_time", "respond_time", "weight")
_BOOL_FIELDS = ("enabled", "enabled_explore", "enabled_cookie_jar")


@dataclass
class BookSource:
    """
    书源：一个网站的声明式规则集。解析期间只读，可被多个并发解析共享
    """
    book_source_url: str = ""
    book_source_name: str = ""
    book_source_group: Optional[str] = None
    book_source_type: int = 0
    book_url_pattern: Optional[str] = None
    custom_order: int = 0
    enabled: bool = True
    enabled_explore: bool = True
    header: Optional[str] = None
    login_url: Optional[str] = None
    login_ui: Optional[str] = None
    login_check_js: Optional[str] = None
    cover_decode_js: Optional[str] = None
    concurrent_rate: Optional[str] = None
    enabled_cookie_jar: bool = False
    js_lib: Optional[str] = None
    book_source_comment: Optional[str] = None
    variable_comment: Optional[str] = None
    last_update_time: int = 0
    respond_time: int = 180000
    weight: int = 0
    explore_url: Optional[str] = None
    explore_screen: Optional[str] = None
    search_url: Optional[str] = None
    rule_search: Optional[SearchRule] = None
    rule_explore: Optional[ExploreRule] = None
    rule_book_info: Optional[BookInfoRule] = None
    rule_toc: Optional[TocRule] = None
    rule_content: Optional[ContentRule] = None
    rule_review: Optional[ReviewRule] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookSource":
        """从书源 JSON（驼峰键）构造；未知键忽略"""
        names = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in (data or {}).items():
            name = to_snake(key)
            if name not in names:
                continue
            if name in _RULE_GROUPS:
                kwargs[name] = _RULE_GROUPS[name].from_dict(value)
            elif name in _INT_FIELDS:
                kwargs[name] = _as_int(value, 180000 if name == "respond_time" else 0)
            elif name in _BOOL_FIELDS:
                kwargs[name] = _as_bool(value, name != "enabled_cookie_jar")
            else:
                kwargs[name] = _rule_text(value)
        source = cls(**kwargs)
        source.book_source_url = (source.book_source_url or "").strip()
        return source

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            out[to_camel(f.name)] = value.to_dict() if isinstance(value, RuleGroup) else value
        return out

    def as_variables(self) -> Dict[str, Any]:
        """注入脚本的 source 变量"""
        return {
            "bookSourceUrl": self.book_source_url,
            "bookSourceName": self.book_source_name,
            "bookSourceGroup": self.book_source_group or "",
            "key": self.book_source_url,
        }


class _Record:
    """输出对象的公共方法"""

    def to_dict(self) -> Dict[str, Any]:
        return {to_camel(f.name): getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        names = {f.name for f in fields(cls)}
        return cls(**{to_snake(k): v for k, v in (data or {}).items() if to_snake(k) in names})


@dataclass
class SearchBook(_Record):
    name: str = ""
    author: str = ""
    book_url: str = ""
    cover_url: str = ""
    intro: str = ""
    kind: str = ""
    latest_chapter_title: str = ""
    word_count: str = ""
    book_source_url: str = ""
    book_source_name: str = ""

    def to_book(self) -> "Book":
        return Book(
            book_url=self.book_url,
            toc_url=self.book_url,
            origin=self.book_source_url,
            origin_name=self.book_source_name,
            name=self.name,
            author=self.author,
            kind=self.kind,
            cover_url=self.cover_url,
            intro=self.intro,
            latest_chapter_title=self.latest_chapter_title,
            word_count=self.word_count,
        )


@dataclass
class Book(_Record):
    book_url: str = ""
    toc_url: str = ""
    origin: str = ""
    origin_name: str = ""
    name: str = ""
    author: str = ""
    kind: str = ""
    cover_url: str = ""
    intro: str = ""
    latest_chapter_title: str = ""
    word_count: str = ""
    update_time: str = ""
    variable: Dict[str, str] = field(default_factory=dict)


@dataclass
class BookChapter(_Record):
    url: str = ""
    title: str = ""
    book_url: str = ""
    index: int = 0
    is_volume: bool = False
    is_vip: bool = False
    is_pay: bool = False
    tag: str = ""
    update_time: str = ""


__all__ = [
    "to_snake",
    "to_camel",
    "RuleGroup",
    "SearchRule",
    "ExploreRule",
    "BookInfoRule",
    "TocRule",
    "ContentRule",
    "ReviewRule",
    "BookSource",
    "SearchBook",
    "Book",
    "BookChapter",
]
