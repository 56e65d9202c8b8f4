from __future__ import annotations
import sys, os, logging, asyncio
from pathlib import Path
from typing import Any, Dict, TypedDict, Optional
from loguru import logger

DEFAULT_LOG_FILE = "logs/geostream.log"

# stdlib loggers routed through loguru
BRIDGED_LOGGERS = (
    "asyncio",
    "aiohttp",
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web",
)


class LoggingOptions(TypedDict, total=False):
    # line layout
    show_source: bool     # file:function:line
    show_thread: bool     # store callbacks may arrive on writer threads
    # file sink
    to_file: bool
    file_path: str
    rotation: str
    keep_total: int
    compression: str


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        msg = record.getMessage()

        # 200s on /health and /stats are polled constantly
        if record.name == "aiohttp.access" and '" 200 ' in msg:
            logger.opt(depth=6).trace(msg)
            return

        try:
            level: Any = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, msg)


def _line_format(show_source: bool, show_thread: bool):
    """
    Build a loguru format callable.

    Records bound with `logger.bind(query=...)` get the query name as a tag,
    so the lines of concurrent live queries can be told apart.
    """
    head = "<d>{time:YYYY-MM-DD HH:mm:ss.SSS}</d> | <level>{level:1.1}</level> | "
    if show_source:
        head += "<d>{file:>14.14}:{function:>14.14}:{line:<4}</d> | "
    if show_thread:
        head += "<d>{thread.name:<10.10}</d> | "

    def fmt(record: Dict[str, Any]) -> str:
        tag = "<c>[{extra[query]}]</c> " if record["extra"].get("query") else ""
        return head + tag + "<level>{message}</level>\n{exception}"

    return fmt


def _add_file_sink(level: str, fmt, options: LoggingOptions) -> str:
    file_path = options.get("file_path", DEFAULT_LOG_FILE)
    Path(os.path.dirname(file_path) or ".").mkdir(parents=True, exist_ok=True)

    # keep_total counts the live file too
    keep_total = int(options.get("keep_total", 5))

    logger.add(
        file_path,
        level=level,
        format=fmt,
        colorize=False,
        backtrace=True,
        diagnose=False,
        rotation=options.get("rotation", "5 MB"),
        retention=max(0, keep_total - 1),
        compression=options.get("compression", "gz"),
        enqueue=True,
    )
    return file_path


def _bridge_stdlib(level: str) -> None:
    numeric = logging.getLevelName(level)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(numeric)
    for name in BRIDGED_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers = [InterceptHandler()]
        lg.propagate = False
        lg.setLevel(numeric)


def _install_excepthooks() -> None:
    def _excepthook(exc_type, exc, tb):
        if issubclass(exc_type, KeyboardInterrupt):
            return
        logger.opt(exception=(exc_type, exc, tb)).critical("Unhandled exception")

    sys.excepthook = _excepthook

    # asyncio hook needs the loop, so only when called from inside it
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return

    def _loop_exception_handler(loop, context):
        err = context.get("exception")
        msg = context.get("message", "")
        if err is not None:
            logger.opt(exception=err).error(f"Unhandled asyncio exception: {msg}")
        else:
            logger.error(f"Unhandled asyncio error: {msg or context}")

    loop.set_exception_handler(_loop_exception_handler)


def setup_logging(log_lvl: str = "INFO", options: Optional[LoggingOptions] = None) -> None:
    """
    Configure loguru for the service.

    - Colored console sink, with the live query name tagged on bound records.
    - Optional rotating file sink (count-based retention, compressed).
    - asyncio/aiohttp stdlib loggers routed into loguru.
    - Unhandled exceptions (sync and asyncio) logged instead of printed.
    """
    options = options or {}
    log_lvl = log_lvl.upper()
    fmt = _line_format(bool(options.get("show_source")), bool(options.get("show_thread")))

    # setup may run more than once (tests, reloads)
    logger.remove()
    logger.configure(extra={"query": None})
    logger.add(sys.stdout, level=log_lvl, format=fmt, colorize=True, backtrace=True, diagnose=False, enqueue=True)

    file_path = _add_file_sink(log_lvl, fmt, options) if options.get("to_file") else None

    _bridge_stdlib(log_lvl)
    _install_excepthooks()

    logger.debug(f"Loguru configured (lvl={log_lvl}, file={file_path or 'off'})")


__all__ = ["logger", "setup_logging", "InterceptHandler", "LoggingOptions"]
