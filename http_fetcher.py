'''
 # http_fetcher.py
 # 组件：抓取接口（GET / POST），字节级解码，稳健支持 gbk/gb18030/utf-8
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/14
'''
import re
import logging
from typing import Dict, Optional

import requests

from engine_settings import DEFAULT_SETTINGS

_RE_HEADER_CHARSET = re.compile(r'charset\s*=\s*["\']?([A-Za-z0-9_\-]+)', re.IGNORECASE)
_RE_META_CHARSET = re.compile(br'<meta[^>]+charset=["\']?\s*([A-Za-z0-9_\-]+)\s*["\']?', re.IGNORECASE)
_RE_META_CONTENT_CHARSET = re.compile(br'<meta[^>]+content=["\'][^"]*charset\s*=\s*([A-Za-z0-9_\-]+)[^"\']*["\']', re.IGNORECASE)


def detect_charset_from_headers(content_type: str) -> str:
    if not content_type:
        return ""
    m = _RE_HEADER_CHARSET.search(content_type)
    return m.group(1).strip().lower() if m else ""


def detect_charset_from_meta(raw: bytes) -> str:
    # <meta charset="gbk"> 或 <meta http-equiv="Content-Type" content="text/html; charset=gbk">
    head = raw[:4096]
    m = _RE_META_CHARSET.search(head) or _RE_META_CONTENT_CHARSET.search(head)
    if m:
        return m.group(1).decode("ascii", "ignore").lower()
    return ""


def _normalize_text(txt: str) -> str:
    # 统一换行，去除 BOM
    if txt and txt[0] == "\ufeff":
        txt = txt[1:]
    return txt.replace("\r\n", "\n").replace("\r", "\n")


def decode_body(raw: bytes, content_type: str = "", charset: str = "") -> str:
    """
    响应字节解码

    参数:
        raw: 响应体字节
        content_type: 响应头 Content-Type
        charset: 书源显式指定的编码（优先）

    返回:
        解码后的文本；gbk/gb2312 统一按 gb18030 解码，最终宽松兜底
    """
    if not raw:
        return ""
    enc = (charset or detect_charset_from_headers(content_type) or detect_charset_from_meta(raw)).lower()
    candidates = []
    if enc:
        candidates.append("gb18030" if enc in ("gbk", "gb2312") else enc)
    candidates.extend(["utf-8", "gb18030"])

    for codec in candidates:
        try:
            return _normalize_text(raw.decode(codec, errors="strict"))
        except (UnicodeDecodeError, LookupError):
            continue
    return _normalize_text(raw.decode("gb18030", errors="replace"))


class HttpFetcher:
    """
    基于 requests.Session 的抓取接口：get(url, headers) / post(url, body, headers)

    非 2xx 抛出 requests.HTTPError，由调用方原样处理；
    重试次数由设置 retries 决定（默认 1 次，即不重试）
    """

    def __init__(self, settings: Optional[dict] = None, session: Optional[requests.Session] = None):
        self.settings = dict(DEFAULT_SETTINGS)
        self.settings.update(settings or {})
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": self.settings["user_agent"],
            "Accept": "*/*",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
        })

    def _request(self, method: str, url: str, headers: Optional[Dict[str, str]] = None,
                 data=None, charset: str = "") -> str:
        timeout = self.settings.get("timeout", 30)
        retries = max(1, int(self.settings.get("retries", 1)))
        for attempt in range(1, retries + 1):
            try:
                logging.info(f"{method} {url}")
                resp = self.session.request(method, url, headers=headers or None, data=data, timeout=timeout)
                resp.raise_for_status()
                return decode_body(resp.content or b"", resp.headers.get("Content-Type", ""), charset)
            except requests.RequestException as e:
                if attempt == retries:
                    logging.warning(f"请求失败 {url}: {e}")
                    raise
                logging.info(f"请求失败，第 {attempt} 次重试 {url}: {e}")

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, charset: str = "") -> str:
        return self._request("GET", url, headers=headers, charset=charset)

    def post(self, url: str, body=None, headers: Optional[Dict[str, str]] = None, charset: str = "") -> str:
        merged = {"Content-Type": "application/x-www-form-urlencoded"}
        merged.update(headers or {})
        data = body
        if isinstance(body, str):
            try:
                data = body.encode(charset or "utf-8", "replace")
            except LookupError:
                data = body.encode("utf-8", "replace")
        return self._request("POST", url, headers=merged, data=data, charset=charset)

    def close(self):
        self.session.close()


__all__ = [
    "HttpFetcher",
    "decode_body",
    "detect_charset_from_headers",
    "detect_charset_from_meta",
]
