'''
 # source_store.py
 # 组件：负责以 JSON 文件保存书源，并按书源 URL 加载
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/13
'''
import json
import logging
import threading
from pathlib import Path
from typing import List, Optional

from engine_settings import SOURCES_FILE, load_json, save_json
from source_errors import ParseError, SourceNotFound
from source_models import BookSource


def parse_book_sources(text: str) -> List[BookSource]:
    """
    解析书源 JSON 文本（单个对象或数组）

    返回:
        BookSource 列表；缺少 bookSourceUrl 的条目被跳过
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ParseError(f"书源 JSON 无效: {e}") from e
    items = data if isinstance(data, list) else [data]
    sources = []
    for item in items:
        if not isinstance(item, dict):
            continue
        source = BookSource.from_dict(item)
        if not source.book_source_url:
            logging.warning(f"跳过没有 bookSourceUrl 的书源: {source.book_source_name}")
            continue
        sources.append(source)
    return sources


class BookSourceStore:
    """基于单个 JSON 文件的书源仓库（数组，每项一个书源）"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else SOURCES_FILE
        self._lock = threading.Lock()

    def _read(self) -> list:
        data = load_json(self.path, [])
        return data if isinstance(data, list) else []

    def load_all(self) -> List[BookSource]:
        with self._lock:
            return [BookSource.from_dict(item) for item in self._read() if isinstance(item, dict)]

    def load_book_source(self, url: str) -> BookSource:
        """按 bookSourceUrl 加载书源，找不到抛出 SourceNotFound"""
        key = (url or "").strip()
        for source in self.load_all():
            if source.book_source_url == key:
                return source
        raise SourceNotFound(f"书源不存在: {url}")

    def save(self, source: BookSource):
        """保存书源：同 URL 覆盖，否则追加"""
        with self._lock:
            items = [item for item in self._read()
                     if isinstance(item, dict) and (item.get("bookSourceUrl") or "").strip() != source.book_source_url]
            items.append(source.to_dict())
            save_json(self.path, items)

    def remove(self, url: str) -> bool:
        with self._lock:
            items = self._read()
            kept = [item for item in items
                    if not isinstance(item, dict) or (item.get("bookSourceUrl") or "").strip() != url]
            if len(kept) == len(items):
                return False
            save_json(self.path, kept)
            return True

    def import_text(self, text: str) -> int:
        """导入书源 JSON 文本，返回导入数量"""
        sources = parse_book_sources(text)
        for source in sources:
            self.save(source)
        logging.info(f"导入书源 {len(sources)} 个 -> {self.path}")
        return len(sources)


__all__ = ["parse_book_sources", "BookSourceStore"]
