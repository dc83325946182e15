from datetime import datetime
from pytz import timezone
import logging.config
import logging
import os
from logging import Logger


debug_mode = os.getenv("LOG_LEVEL", "info").lower() == "debug"
loglevel = logging.INFO if not debug_mode else logging.DEBUG

_ANSI_RESET = "\033[0m"
_COLOR_MAP: dict[str, str] = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "blue": "\033[34m",
}

_LEVEL_PREFIX: dict[int, str] = {
    logging.CRITICAL: "⛔ ",
    logging.ERROR: "⛔ ",
    logging.WARNING: "⚠️ ",
}


class PdfMinerFilter(logging.Filter):
    """Drop pdfminer font warnings, emitted for nearly every generated PDF."""

    _NOISY_MESSAGES = ("Could not get FontBBox", "Cannot set gray non-stroke color")

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith("pdfminer"):
            return True
        return not any(noise in str(record.msg) for noise in self._NOISY_MESSAGES)


class CustomFormatter(logging.Formatter):
    """Timestamps in the configured TIMEZONE and a marker in front of warnings and errors."""

    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # broken third party format strings, keep the raw message
            message = str(record.msg)
        record.msg = _LEVEL_PREFIX.get(record.levelno, "") + message
        record.args = ()
        return super().format(record)


class ColoredFormatter(CustomFormatter):
    """Console formatter; colors a line when the record carries a ``color`` attribute."""

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _COLOR_MAP.get(getattr(record, "color", None) or "", "")
        return f"{ansi}{line}{_ANSI_RESET}" if ansi and line else line


class ColorLogger:
    """Wraps a :class:`logging.Logger` and adds a ``color=`` keyword to the log methods.

    Usage::

        logger.info("PDF %s queued", pdf_id)
        logger.info("PDF %s processed", pdf_id, color="green")

    Only the console handler renders the color; the log file stays plain.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _log(self, level: int, msg, args, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "color": color}
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.DEBUG, msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.INFO, msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.WARNING, msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.ERROR, msg, args, color, kwargs)

    def critical(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.CRITICAL, msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, args, color, kwargs)

    def log(self, level: int, msg, *args, color: str | None = None, **kwargs):
        self._log(level, msg, args, color, kwargs)

    def __getattr__(self, name):
        # setLevel, handlers, isEnabledFor, ...
        return getattr(self._logger, name)


def _formatter(formatter_class: type[CustomFormatter], tz_name: str) -> dict:
    return {
        "()": formatter_class,
        "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        "datefmt": "%Y-%m-%d %H:%M:%S",
        "tz_name": tz_name,
    }


def setup_logging() -> ColorLogger:
    """Configure console and rotating file logging for the API process.

    Environment:
        ROOT_DIR:           Base directory; logs go to ROOT_DIR/logs/app.log.
        TIMEZONE:           Timestamp timezone (default Europe/Berlin).
        LOG_LEVEL:          "debug" enables debug output, including httpx requests.
        LOG_MAX_BYTES:      Size at which app.log is rotated (default 10 MB).
        LOG_BACKUP_COUNT:   Rotated files kept (default 5).
    """
    log_dir = os.path.join(os.getenv("ROOT_DIR", os.getcwd()), "logs")
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    os.makedirs(log_dir, exist_ok=True)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "pdfminer": {"()": PdfMinerFilter},
        },
        "formatters": {
            "standard": _formatter(CustomFormatter, tz_name),
            "colored": _formatter(ColoredFormatter, tz_name),
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "colored",
                "filters": ["pdfminer"],
                "level": loglevel,
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "standard",
                "filters": ["pdfminer"],
                "level": loglevel,
                "filename": os.path.join(log_dir, "app.log"),
                "maxBytes": int(os.getenv("LOG_MAX_BYTES", 10 * 1024 * 1024)),
                "backupCount": int(os.getenv("LOG_BACKUP_COUNT", 5)),
                "encoding": "utf-8",
            },
        },
        "root": {
            "handlers": ["console", "file"],
            "level": loglevel,
        },
    })

    logging.getLogger("httpx").setLevel(logging.DEBUG if debug_mode else logging.WARNING)
    # pdfplumber parses through pdfminer, which is very chatty below ERROR
    logging.getLogger("pdfminer").setLevel(logging.ERROR)

    return ColorLogger(logging.getLogger("pdf_chat"))
