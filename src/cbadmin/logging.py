from enum import Enum
from logging import (
    DEBUG,
    ERROR,
    INFO,
    WARN,
    FileHandler,
    Formatter,
    StreamHandler,
    getLogger,
)
from sys import stdout
from typing import Optional

from .version import VERSION


class LogLevel(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"
    DEBUG = "debug"


# Some initial setup, but the log handlers won't
# be added until the call to cbadmin_log_init
_cbadmin_log = getLogger("CBADMIN")
_cbadmin_log.setLevel(DEBUG)
console = StreamHandler(stdout)
console.setLevel(DEBUG)
console.setFormatter(Formatter("%(asctime)s [%(levelname)s]: %(message)s"))
_file: Optional[FileHandler] = None


def cbadmin_log_init(log_file: Optional[str]) -> None:
    global _file

    if console not in _cbadmin_log.handlers:
        _cbadmin_log.addHandler(console)

    if log_file is not None and _file is None:
        _file = FileHandler(filename=log_file, encoding="utf-8")
        _file.setFormatter(Formatter("%(created)f [%(levelname)s]: %(message)s"))
        _cbadmin_log.addHandler(_file)

    _cbadmin_log.info(f"-- cbadmin v{VERSION} started --")


def cbadmin_set_log_level(level: LogLevel):
    if level == LogLevel.ERROR:
        console.setLevel(ERROR)
    elif level == LogLevel.WARNING:
        console.setLevel(WARN)
    elif level == LogLevel.INFO:
        console.setLevel(INFO)
    elif level == LogLevel.VERBOSE or level == LogLevel.DEBUG:
        console.setLevel(DEBUG)


def cbadmin_warning(msg: str):
    _cbadmin_log.warning(msg)


def cbadmin_info(msg: str):
    _cbadmin_log.info(msg)


def cbadmin_trace(msg: str):
    _cbadmin_log.debug(msg)
