'''
 # url_resolver.py
 # 组件：相对链接补全与章节链接重复路径修正
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/12
'''
import re
import logging
from urllib.parse import urljoin, urlsplit, urlunsplit, parse_qs

_RE_HAS_SCHEME = re.compile(r'^[A-Za-z][A-Za-z0-9+.\-]*://')


def resolve_url(url: str, base: str) -> str:
    """
    相对链接补全为绝对URL

    参数:
        url: 待补全的链接
        base: 书源或当前页面的基础URL

    返回:
        已带协议的链接原样返回；`/` 开头按 base 的 协议+主机+端口 重建；
        其余按标准相对引用解析。base 无法解析时原样返回 url
    """
    if not url:
        return ""
    url = url.strip()
    if _RE_HAS_SCHEME.match(url) or url.lower().startswith(("data:", "javascript:")):
        return url
    if not base:
        return url
    try:
        parts = urlsplit(base.strip())
        if not parts.scheme or not parts.netloc:
            return url
        if url.startswith("//"):
            return f"{parts.scheme}:{url}"
        if url.startswith("/"):
            # netloc 保留端口；去掉可能携带的用户信息
            host = parts.netloc.rsplit("@", 1)[-1]
            return f"{parts.scheme}://{host}{url}"
        return urljoin(base.strip(), url)
    except ValueError as e:
        logging.debug(f"基础URL无法解析 {base!r}: {e}")
        return url


def _merge_at_double_slash(path):
    """在每个 // 处拼接左右两段路径，右段开头与左段结尾重复的部分只保留一份"""
    pieces = path.split("//")
    merged = [s for s in pieces[0].split("/") if s]
    for piece in pieces[1:]:
        right = [s for s in piece.split("/") if s]
        for size in range(min(len(merged), len(right)), 0, -1):
            if merged[-size:] == right[:size]:
                right = right[size:]
                break
        merged.extend(right)
    return merged


def fix_duplicate_path(url: str) -> str:
    """
    修正拼接出错的章节链接，例如 /x/1//x/1/y.html -> /x/1/y.html。
    只有路径里出现 // 时才处理，其余链接原样返回
    """
    if not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    path = parts.path
    if "//" not in path:
        return url
    fixed = "/" + "/".join(_merge_at_double_slash(path))
    if path.endswith("/") and not fixed.endswith("/"):
        fixed += "/"
    result = urlunsplit((parts.scheme, parts.netloc, fixed, parts.query, parts.fragment))
    if result != url:
        logging.info(f"修正重复路径: {url} -> {result}")
    return result


def query_param(url: str, name: str) -> str:
    """取查询参数的第一个值，没有返回空串"""
    if not url:
        return ""
    try:
        values = parse_qs(urlsplit(url).query).get(name)
    except ValueError:
        return ""
    return values[0] if values else ""


__all__ = ["resolve_url", "fix_duplicate_path", "query_param"]
