"""
书源引擎命令行
导入书源、跨书源搜索、查看详情/目录/正文
"""
__version__ = "1.0.0"

import sys
import logging
import argparse
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Tuple

from engine_settings import SOURCES_FILE, load_settings
from http_fetcher import HttpFetcher
from rule_interpreter import RuleInterpreter
from runlog import setup_from_settings
from script_host import ScriptCache
from source_errors import BookSourceError
from source_models import BookChapter, BookSource, SearchBook
from source_store import BookSourceStore


def search_all(interpreter: RuleInterpreter, keyword: str, sources: List[BookSource],
               max_workers: int = 4) -> List[Tuple[BookSource, List[SearchBook], str]]:
    """
    在多个书源上并发搜索

    返回:
        [(书源, 结果列表, 错误信息), ...]，顺序与完成顺序一致
    """
    results = []
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="search") as pool:
        futures = {pool.submit(interpreter.search, keyword, source): source for source in sources}
        for future in as_completed(futures):
            source = futures[future]
            try:
                results.append((source, future.result(), ""))
            except Exception as e:
                logging.warning(f"书源搜索失败 [{source.book_source_name}]: {e}")
                results.append((source, [], str(e)))
    return results


def _cmd_import(args, store, interpreter):
    text = Path(args.file).read_text(encoding="utf-8")
    count = store.import_text(text)
    print(f"已导入 {count} 个书源 -> {store.path}")


def _cmd_list(args, store, interpreter):
    for source in store.load_all():
        flag = "" if source.enabled else "（已禁用）"
        print(f"{source.book_source_name}\t{source.book_source_url}{flag}")


def _cmd_search(args, store, interpreter):
    if args.source:
        sources = [store.load_book_source(args.source)]
    else:
        sources = [s for s in store.load_all() if s.enabled and s.search_url]
    for source, books, error in search_all(interpreter, args.keyword, sources, args.workers):
        if error:
            print(f"[{source.book_source_name}] 失败: {error}")
            continue
        for i, book in enumerate(books, 1):
            print(f"[{source.book_source_name}] {i}. {book.name} - {book.author} - {book.book_url}")


def _cmd_info(args, store, interpreter):
    source = store.load_book_source(args.source)
    book = interpreter.get_book_info(args.url, source)
    for key, value in book.to_dict().items():
        if value:
            print(f"{key}: {value}")


def _cmd_toc(args, store, interpreter):
    source = store.load_book_source(args.source)
    cache = ScriptCache()
    book = interpreter.get_book_info(args.url, source, cache=cache)
    for chapter in interpreter.get_chapter_list(book, source, cache=cache):
        print(f"{chapter.index + 1}. {chapter.title}\t{chapter.url}")


def _cmd_content(args, store, interpreter):
    source = store.load_book_source(args.source)
    chapter = BookChapter(url=args.url, title=args.title or "", book_url=args.book or "")
    print(interpreter.get_chapter_content(chapter, source))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="book-source", description="书源规则引擎")
    parser.add_argument("--sources", default=str(SOURCES_FILE), help="书源 JSON 文件")
    parser.add_argument("--settings", default=None, help="设置文件 settings.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="控制台输出日志")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="导入书源 JSON")
    p.add_argument("file")
    p.set_defaults(func=_cmd_import)

    p = sub.add_parser("list", help="列出书源")
    p.set_defaults(func=_cmd_list)

    p = sub.add_parser("search", help="搜索")
    p.add_argument("keyword")
    p.add_argument("--source", help="只搜索该书源URL")
    p.add_argument("--workers", type=int, default=4)
    p.set_defaults(func=_cmd_search)

    p = sub.add_parser("info", help="书籍详情")
    p.add_argument("source")
    p.add_argument("url")
    p.set_defaults(func=_cmd_info)

    p = sub.add_parser("toc", help="目录")
    p.add_argument("source")
    p.add_argument("url")
    p.set_defaults(func=_cmd_toc)

    p = sub.add_parser("content", help="正文")
    p.add_argument("source")
    p.add_argument("url")
    p.add_argument("--title", default="")
    p.add_argument("--book", default="", help="书籍链接（用于 bookid 等参数）")
    p.set_defaults(func=_cmd_content)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(Path(args.settings) if args.settings else None)
    setup_from_settings(settings, add_console=args.verbose or settings.get("console_log", False))

    store = BookSourceStore(Path(args.sources))
    fetcher = HttpFetcher(settings)
    interpreter = RuleInterpreter(fetcher, settings=settings)
    try:
        args.func(args, store, interpreter)
    except BookSourceError as e:
        logging.error(f"{args.command} 失败: {e}")
        print(f"失败: {e}", file=sys.stderr)
        return 1
    finally:
        interpreter.close()
        fetcher.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
