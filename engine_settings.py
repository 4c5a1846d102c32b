'''
 # engine_settings.py
 # 组件：负责引擎默认设置、数据目录以及 settings.json 的读写
 # 版权所有：2025 Breeze-mi
 # 日期：2025/10/13
'''
import sys
import json
import logging
from pathlib import Path
from typing import Optional

if getattr(sys, 'frozen', False):
    # PyInstaller 打包运行
    SCRIPT_DIR = Path(sys.executable).parent
else:
    try:
        SCRIPT_DIR = Path(__file__).resolve().parent
    except NameError:
        SCRIPT_DIR = Path.cwd()

APP_DIR = SCRIPT_DIR / "data"  # 数据目录
SETTINGS_FILE = APP_DIR / "settings.json"
SOURCES_FILE = APP_DIR / "book_sources.json"
LOG_FILE = APP_DIR / "engine.log"

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

DEFAULT_SETTINGS = {
    "user_agent": USER_AGENT,
    "timeout": 30,            # 单次请求超时（秒）
    "retries": 1,             # 抓取接口的尝试次数，1 表示不重试
    "log_level": "INFO",
    "log_file": str(LOG_FILE),
    "console_log": False,
    "max_toc_pages": 20,      # nextTocUrl 最多跟随的页数
    "max_content_pages": 10,  # nextContentUrl 最多跟随的页数
}


def load_json(path: Path, default):
    """
    从指定路径加载JSON文件，如果失败则返回默认值

    参数:
        path: JSON文件路径
        default: 加载失败时返回的默认值

    返回:
        加载的JSON对象或默认值
    """
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logging.warning(f"读取 {path} 失败: {e}")
    return default


def save_json(path: Path, obj):
    """将对象保存为JSON文件（自动创建目录）"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")


def load_settings(path: Optional[Path] = None) -> dict:
    """读取设置文件并合并到默认值之上；文件里的未知键原样保留"""
    settings = DEFAULT_SETTINGS.copy()
    loaded = load_json(Path(path) if path else SETTINGS_FILE, {})
    if isinstance(loaded, dict):
        settings.update(loaded)
    return settings


def save_settings(settings: dict, path: Optional[Path] = None):
    save_json(Path(path) if path else SETTINGS_FILE, settings)


def log_level(settings: dict) -> int:
    """设置中的日志级别（名称或数字）转换为 logging 级别"""
    value = settings.get("log_level", "INFO")
    if isinstance(value, int):
        return value
    return logging.getLevelName(str(value).upper()) if str(value).upper() in (
        "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL") else logging.INFO


__all__ = [
    "APP_DIR",
    "SETTINGS_FILE",
    "SOURCES_FILE",
    "LOG_FILE",
    "USER_AGENT",
    "DEFAULT_SETTINGS",
    "load_json",
    "save_json",
    "load_settings",
    "save_settings",
    "log_level",
]
