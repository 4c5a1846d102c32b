import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from engine_settings import log_level


def setup_engine_logger(log_file: str, *, level: int = logging.INFO, max_bytes: int = 1_048_576, backup_count: int = 3, add_console: bool = False) -> logging.Logger:
    """
    Configure root logger for the book-source engine with a rotating file handler.
    - log_file: path to log file (parent directory is created)
    - level: logging level (default INFO)
    - max_bytes: rotate after this many bytes (~1MB)
    - backup_count: keep this many rotated files
    - add_console: also log to console if True
    Returns the engine logger.
    """
    logger = logging.getLogger()  # root

    # Always reconfigure handlers to avoid being blocked by prior/basicConfig
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    fh = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8", delay=False)
    fh.setLevel(level)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    if add_console:
        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(fmt)
        logger.addHandler(ch)

    # dukpy logs every console.log through its own logger; keep it quieter than ours
    logging.getLogger("dukpy").setLevel(max(level, logging.WARNING))

    return logging.getLogger("book_source")


def setup_from_settings(settings: dict, *, add_console: bool = None) -> logging.Logger:
    """Configure logging from an engine settings dict (log_file, log_level, console_log)."""
    console = settings.get("console_log", False) if add_console is None else add_console
    return setup_engine_logger(settings["log_file"], level=log_level(settings), add_console=console)
