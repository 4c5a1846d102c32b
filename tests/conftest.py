import os
import sys

import pytest

# Ensure the repository root is on sys.path so the flat modules import
# the same way whether pytest runs from the root or from tests/.
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from script_host import ScriptHost  # noqa: E402
from source_models import BookSource  # noqa: E402


class FakeFetcher:
    """按 URL 返回固定响应体，并记录每次请求"""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []

    def get(self, url, headers=None, **kwargs):
        self.calls.append(("GET", url, None, dict(headers or {})))
        if url not in self.pages:
            raise KeyError(url)
        return self.pages[url]

    def post(self, url, body=None, headers=None, **kwargs):
        self.calls.append(("POST", url, body, dict(headers or {})))
        if url not in self.pages:
            raise KeyError(url)
        return self.pages[url]


@pytest.fixture
def make_source():
    def _make(**overrides):
        data = {
            "bookSourceUrl": "https://h.com",
            "bookSourceName": "测试书源",
        }
        data.update(overrides)
        return BookSource.from_dict(data)

    return _make


@pytest.fixture
def fake_fetcher():
    def _make(pages=None):
        return FakeFetcher(pages)

    return _make


@pytest.fixture
def script_host():
    host = ScriptHost()
    yield host
    host.close()


@pytest.fixture
def restore_logging():
    import logging

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
