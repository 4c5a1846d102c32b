'''
 # script_host.py
 # 组件：负责在常驻 JS 上下文中执行书源脚本，并提供 java 命名空间和书籍级缓存
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/14
'''
import re
import base64
import hashlib
import logging
import binascii
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional
from urllib.parse import quote

import dukpy

from json_value import to_text
from source_errors import ScriptError

# 预编译常用正则
_RE_POW = re.compile(r'(\w+|\d+)\s*\*\*\s*(\w+|\d+)')
_RE_BLOCK_DECL = re.compile(r'\b(let|const)\s+')
_RE_IDENT = re.compile(r'^[A-Za-z_$][\w$]*$')
_RE_UNESCAPED_QUOTE = re.compile(r'(?<!\\)"')

# 每次调用都会重置的标准变量，避免上一次调用的值残留
STANDARD_VARIABLES = ("result", "baseUrl", "key", "page", "book", "chapter", "source", "title", "src")

# java 命名空间与全局辅助函数，创建上下文时执行一次
_JAVA_PRELUDE = r"""
var java = {
    ajax: function(url) {
        return call_python('java_ajax', String(url));
    },
    connect: function(url) {
        var body = call_python('java_ajax', String(url));
        if (body === undefined || body === null) { body = ''; }
        return {
            url: String(url),
            body: function() { return body; },
            toString: function() { return body; }
        };
    },
    ajaxAll: function(urls) {
        var out = [];
        for (var i = 0; i < urls.length; i++) {
            out.push(java.connect(urls[i]));
        }
        return out;
    },
    put: function(key, value) {
        call_python('java_put', String(key), (value === undefined || value === null) ? '' : String(value));
        return value;
    },
    get: function(key) {
        if (typeof dukpy === 'object' && dukpy !== null && dukpy[key] !== undefined && dukpy[key] !== null) {
            return String(dukpy[key]);
        }
        return call_python('java_get', String(key));
    },
    base64Encode: function(s) { return call_python('base64_encode', String(s)); },
    base64Decode: function(s) { return call_python('base64_decode', String(s)); },
    md5Encode: function(s) { return call_python('md5_encode', String(s)); },
    md5Encode16: function(s) { return call_python('md5_encode', String(s)).substring(8, 24); },
    encodeURI: function(s, charset) { return call_python('encode_uri', String(s), charset ? String(charset) : 'utf-8'); },
    log: function(msg) { call_python('java_log', String(msg)); return msg; }
};
function base64Encode(s) { return java.base64Encode(s); }
function base64Decode(s) { return java.base64Decode(s); }
function md5(s) { return java.md5Encode(s); }
"""


class ScriptCache:
    """
    书籍级脚本缓存（java.put / java.get 的第二层）

    生命周期：一本书的抓取流程（搜索 -> 详情 -> 目录 -> 正文）。
    同一本书的各步骤共用一个实例，即使它们运行在不同线程；
    换书时新建实例或调用 clear()。所有操作加锁。
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def put(self, key: str, value) -> None:
        with self._lock:
            self._data[str(key)] = "" if value is None else str(value)

    def get(self, key: str, default: str = "") -> str:
        with self._lock:
            return self._data.get(str(key), default)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._data)

    def __contains__(self, key) -> bool:
        with self._lock:
            return str(key) in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __bool__(self) -> bool:
        # 空缓存也是有效的缓存对象
        return True


def _quote_literal(text: str) -> str:
    text = text.replace("\r", "\\r").replace("\n", "\\n")
    return '"' + _RE_UNESCAPED_QUOTE.sub('\\"', text) + '"'


def convert_template_literals(code: str) -> str:
    """把 `a${b}c` 形式的模板字符串改写为 ES5 字符串拼接"""
    if "`" not in code:
        return code
    out = []
    i = 0
    n = len(code)
    while i < n:
        ch = code[i]
        if ch in "\"'":
            # 普通字符串原样跳过（不跨行）
            j = i + 1
            while j < n and code[j] != ch and code[j] != "\n":
                if code[j] == "\\":
                    j += 1
                j += 1
            out.append(code[i:j + 1])
            i = j + 1
            continue
        if ch == "`":
            j = i + 1
            parts = []
            buf = []
            while j < n and code[j] != "`":
                if code[j] == "\\" and j + 1 < n:
                    buf.append(code[j:j + 2])
                    j += 2
                    continue
                if code.startswith("${", j):
                    depth = 1
                    k = j + 2
                    while k < n and depth:
                        if code[k] == "{":
                            depth += 1
                        elif code[k] == "}":
                            depth -= 1
                        k += 1
                    parts.append(("lit", "".join(buf)))
                    buf = []
                    parts.append(("expr", code[j + 2:k - 1]))
                    j = k
                    continue
                buf.append(code[j])
                j += 1
            parts.append(("lit", "".join(buf)))
            pieces = ['""']
            for kind, text in parts:
                if kind == "expr":
                    pieces.append(f"({text})")
                elif text:
                    pieces.append(_quote_literal(text))
            out.append("(" + " + ".join(pieces) + ")")
            i = j + 1
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _needs_implicit_return(line: str) -> bool:
    if line.startswith("return"):
        return False
    if any(word in line for word in ("let ", "var ", "const ", "function ")):
        return False
    if line.startswith("//") or line.startswith("}"):
        return False
    return True


def preprocess_script(script: str) -> str:
    """
    脚本预处理（内置引擎为 ES5）：
      - a ** b -> Math.pow(a,b)
      - 模板字符串 -> 字符串拼接；let/const -> var
      - 以 . 开头的规则视为对 result 的链式调用
      - 最后一行是表达式时补上 return
    """
    code = (script or "").strip()
    code = _RE_POW.sub(r'Math.pow(\1,\2)', code)
    code = convert_template_literals(code)
    code = _RE_BLOCK_DECL.sub("var ", code)
    if code.startswith("."):
        code = "result" + code

    lines = code.split("\n")
    for idx in range(len(lines) - 1, -1, -1):
        last = lines[idx].strip()
        if not last:
            continue
        if _needs_implicit_return(last):
            indent = lines[idx][:len(lines[idx]) - len(lines[idx].lstrip())]
            lines[idx] = f"{indent}return {last}"
        break
    return "\n".join(lines)


def wrap_script(code: str) -> str:
    return "(function(){\n" + code + "\n})()"


def _js_safe(value: Any) -> Any:
    """注入变量必须能 JSON 序列化；其它对象转字符串"""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(k): _js_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_js_safe(v) for v in value]
    return str(value)


class ScriptHost:
    """
    书源脚本宿主

    - 持有一个常驻的 dukpy 上下文，只在专用工作线程上创建和使用；
      每次执行都是向该线程的阻塞交接，天然串行化对上下文的访问
    - java.ajax / java.connect 在工作线程里同步调用抓取接口，
      调用方线程（界面或事件循环）不会被脚本网络请求卡住
    - java.put / java.get 写读 ScriptCache；每次执行可指定本次使用的缓存
    """

    def __init__(self, fetcher=None, cache: Optional[ScriptCache] = None):
        self.fetcher = fetcher
        self.cache = cache if cache is not None else ScriptCache()
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="script-host")
        self._worker_ident = None
        self._interpreter = None
        self._loaded_libs = set()
        self._active_cache: Optional[ScriptCache] = None
        self._active_headers: Optional[Dict[str, str]] = None
        self._active_base_url = ""

    # -- 对外接口 --
    def evaluate(self, script: str, variables: Optional[Dict[str, Any]] = None, *,
                 js_lib: str = "", cache: Optional[ScriptCache] = None,
                 headers: Optional[Dict[str, str]] = None) -> Any:
        """
        执行一段脚本并返回原始结果（JSON 可表示的 Python 值）

        参数:
            script: 脚本正文（不含 <js> 标签）
            variables: 注入的变量，如 result / baseUrl / key / page
            js_lib: 书源的 jsLib，首次使用时在常驻上下文里执行
            cache: 本次执行使用的缓存，缺省为宿主自己的缓存
            headers: java.ajax 请求使用的请求头

        返回:
            脚本最后一个表达式的值；出错抛出 ScriptError
        """
        if threading.get_ident() == self._worker_ident:
            return self._run(script, variables, js_lib, cache, headers)
        future = self._worker.submit(self._run, script, variables, js_lib, cache, headers)
        return future.result()

    def evaluate_string(self, script: str, variables: Optional[Dict[str, Any]] = None, **kwargs) -> str:
        """执行脚本并转成字符串；数组结果取第一个元素"""
        value = self.evaluate(script, variables, **kwargs)
        if isinstance(value, list):
            value = value[0] if value else ""
        return to_text(value)

    def close(self):
        self._worker.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- 工作线程内部 --
    def _ensure_interpreter(self):
        if self._interpreter is None:
            interp = dukpy.JSInterpreter()
            interp.export_function("java_ajax", self._bridge_ajax)
            interp.export_function("java_put", self._bridge_put)
            interp.export_function("java_get", self._bridge_get)
            interp.export_function("java_log", self._bridge_log)
            interp.export_function("base64_encode", _base64_encode)
            interp.export_function("base64_decode", _base64_decode)
            interp.export_function("md5_encode", _md5_encode)
            interp.export_function("encode_uri", _encode_uri)
            interp.evaljs(_JAVA_PRELUDE)
            self._interpreter = interp
            logging.info("脚本上下文已创建")
        return self._interpreter

    def _load_lib(self, interp, js_lib: str):
        digest = hashlib.md5(js_lib.encode("utf-8")).hexdigest()
        if digest in self._loaded_libs:
            return
        try:
            interp.evaljs(js_lib)
        except dukpy.JSRuntimeError as e:
            raise ScriptError(f"jsLib 执行失败: {e}", js_lib) from e
        self._loaded_libs.add(digest)

    def _run(self, script, variables, js_lib, cache, headers):
        self._worker_ident = threading.get_ident()
        interp = self._ensure_interpreter()
        if js_lib and js_lib.strip():
            self._load_lib(interp, js_lib)

        bag = {k: _js_safe(v) for k, v in (variables or {}).items() if _RE_IDENT.match(str(k))}
        names = list(STANDARD_VARIABLES) + [k for k in bag if k not in STANDARD_VARIABLES]
        prelude = "".join(f'var {name} = dukpy["{name}"];\n' for name in names)
        code = prelude + wrap_script(preprocess_script(script))

        previous = (self._active_cache, self._active_headers, self._active_base_url)
        self._active_cache = cache if cache is not None else self.cache
        self._active_headers = headers
        self._active_base_url = str(bag.get("baseUrl") or "")
        try:
            return interp.evaljs(code, **bag)
        except dukpy.JSRuntimeError as e:
            logging.warning(f"脚本执行出错: {e}")
            raise ScriptError(str(e), script) from e
        finally:
            self._active_cache, self._active_headers, self._active_base_url = previous

    def _bridge_ajax(self, url):
        """java.ajax：在工作线程里同步抓取；失败记录日志并返回空串"""
        if self.fetcher is None:
            logging.warning("脚本请求网络，但没有配置抓取接口")
            return ""
        # 延迟导入：url_template 的请求头解析会回调脚本宿主
        from url_template import build_request
        try:
            request = build_request(str(url), base_url=self._active_base_url)
            headers = dict(self._active_headers or {})
            headers.update(request.headers)
            if request.method == "POST":
                return self.fetcher.post(request.url, request.body, headers=headers)
            return self.fetcher.get(request.url, headers=headers)
        except Exception as e:
            logging.warning(f"脚本网络请求失败 {url}: {e}")
            return ""

    def _current_cache(self) -> ScriptCache:
        return self._active_cache if self._active_cache is not None else self.cache

    def _bridge_put(self, key, value):
        self._current_cache().put(key, value)

    def _bridge_get(self, key):
        return self._current_cache().get(key, "")

    @staticmethod
    def _bridge_log(msg):
        logging.info(f"[js] {msg}")


def _base64_encode(s):
    return base64.b64encode(str(s).encode("utf-8")).decode("ascii")


def _base64_decode(s):
    data = str(s).strip()
    data += "=" * (-len(data) % 4)
    try:
        return base64.b64decode(data).decode("utf-8", "replace")
    except (binascii.Error, ValueError):
        return ""


def _md5_encode(s):
    return hashlib.md5(str(s).encode("utf-8")).hexdigest()


def _encode_uri(s, charset="utf-8"):
    try:
        return quote(str(s), safe="", encoding=charset or "utf-8")
    except LookupError:
        return quote(str(s), safe="")


__all__ = [
    "STANDARD_VARIABLES",
    "ScriptCache",
    "ScriptHost",
    "convert_template_literals",
    "preprocess_script",
    "wrap_script",
]
