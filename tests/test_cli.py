import json
from unittest import mock

from book_source_cli import build_parser, main, search_all

SOURCE = {
    "bookSourceUrl": "https://h.com",
    "bookSourceName": "示例书源",
    "searchUrl": "/s?q={{key}}",
    "ruleSearch": {"bookList": ".item", "name": "a@text", "bookUrl": "a@href"},
}


def _base_args(tmp_path):
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({"log_file": str(tmp_path / "engine.log")}), encoding="utf-8")
    return ["--sources", str(tmp_path / "sources.json"), "--settings", str(settings)]


def test_import_then_list(tmp_path, capsys, restore_logging):
    import_file = tmp_path / "import.json"
    import_file.write_text(json.dumps([SOURCE]), encoding="utf-8")

    assert main(_base_args(tmp_path) + ["import", str(import_file)]) == 0
    assert main(_base_args(tmp_path) + ["list"]) == 0
    out = capsys.readouterr().out
    assert "已导入 1 个书源" in out
    assert "示例书源\thttps://h.com" in out


def test_unknown_source_returns_error_code(tmp_path, capsys, restore_logging):
    assert main(_base_args(tmp_path) + ["info", "https://nope.com", "https://nope.com/b/1"]) == 1
    assert "书源不存在" in capsys.readouterr().err


def test_search_all_collects_errors(make_source):
    ok = make_source(bookSourceName="好")
    bad = make_source(bookSourceUrl="https://bad.com", bookSourceName="坏")

    def fake_search(keyword, source):
        if source is bad:
            raise RuntimeError("超时")
        return ["结果"]

    interpreter = mock.Mock()
    interpreter.search.side_effect = fake_search
    results = {src.book_source_name: (books, error) for src, books, error in search_all(interpreter, "书", [ok, bad])}
    assert results["好"] == (["结果"], "")
    assert results["坏"] == ([], "超时")


def test_parser_search_options():
    args = build_parser().parse_args(["search", "书", "--workers", "2"])
    assert args.keyword == "书" and args.workers == 2
