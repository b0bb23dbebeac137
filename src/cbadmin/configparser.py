from json import JSONDecodeError, dumps, load
from pathlib import Path
from typing import Final, List, Optional

from .api.error import ConfigError
from .jsonhelper import (
    _assert_string_entry,
    _get_int_or_default,
    _get_number_or_default,
    _get_str_or_default,
    _get_typed,
    _get_typed_nonnull,
)


class CouchbaseServerInfo:
    """The parsed Couchbase Server info from the config file"""

    __url_key: Final[str] = "url"
    __admin_user_key: Final[str] = "admin_user"
    __admin_password_key: Final[str] = "admin_password"

    @property
    def url(self) -> str:
        """Gets the admin URL of a node in the Couchbase Server cluster"""
        return self.__url

    @property
    def admin_user(self) -> str:
        """Gets the user to use when administrating a CBS cluster"""
        return self.__admin_user

    @property
    def admin_password(self) -> str:
        """Gets the password to use when administrating a CBS cluster"""
        return self.__admin_password

    def __init__(self, data: dict):
        self.__url: str = _assert_string_entry(data, self.__url_key)
        self.__admin_user: str = _get_str_or_default(
            data, self.__admin_user_key, "Administrator"
        )
        self.__admin_password: str = _get_str_or_default(
            data, self.__admin_password_key, "password"
        )


class RebalanceSettings:
    """How the wait for a node removal polls the cluster"""

    __min_poll_interval_key: Final[str] = "min_poll_interval"
    __error_poll_interval_key: Final[str] = "error_poll_interval"
    __stuck_threshold_key: Final[str] = "stuck_threshold"

    @property
    def min_poll_interval(self) -> float:
        """The shortest time, in seconds, between two status polls"""
        return self.__min_poll_interval

    @property
    def error_poll_interval(self) -> float:
        """The time, in seconds, to wait after a failed status poll"""
        return self.__error_poll_interval

    @property
    def stuck_threshold(self) -> int:
        """How many times an ejected node may still be seen after the rebalance went idle"""
        return self.__stuck_threshold

    def __init__(self, data: dict):
        self.__min_poll_interval = _get_number_or_default(
            data, self.__min_poll_interval_key, 2.0
        )
        self.__error_poll_interval = _get_number_or_default(
            data, self.__error_poll_interval_key, 0.5
        )
        self.__stuck_threshold = _get_int_or_default(
            data, self.__stuck_threshold_key, 10
        )


class ProbeSettings:
    """How the readiness and health waits poll a node"""

    __interval_key: Final[str] = "interval"
    __ping_timeout_key: Final[str] = "ping_timeout"

    @property
    def interval(self) -> float:
        return self.__interval

    @property
    def ping_timeout(self) -> float:
        return self.__ping_timeout

    def __init__(self, data: dict):
        self.__interval = _get_number_or_default(data, self.__interval_key, 1.0)
        self.__ping_timeout = _get_number_or_default(
            data, self.__ping_timeout_key, 3.0
        )


class ParsedConfig:
    """The parsed result of the JSON config file"""

    __cbs_key: Final[str] = "couchbase-servers"
    __log_file_key: Final[str] = "log-file"
    __rebalance_key: Final[str] = "rebalance"
    __probe_key: Final[str] = "probe"
    __request_timeout_key: Final[str] = "request-timeout"

    @property
    def couchbase_servers(self) -> List[dict]:
        """The list of couchbase servers that can be interacted with"""
        return self.__couchbase_servers

    @property
    def log_file(self) -> Optional[str]:
        """The optional file to write logs to, in addition to the console"""
        return self.__log_file

    @property
    def rebalance(self) -> RebalanceSettings:
        return self.__rebalance

    @property
    def probe(self) -> ProbeSettings:
        return self.__probe

    @property
    def request_timeout(self) -> float:
        """The timeout, in seconds, of each admin REST request"""
        return self.__request_timeout

    def __init__(self, json: dict):
        self.__couchbase_servers = _get_typed_nonnull(
            json, self.__cbs_key, list[dict], []
        )
        self.__log_file = _get_typed(json, self.__log_file_key, str)
        self.__rebalance = RebalanceSettings(
            _get_typed_nonnull(json, self.__rebalance_key, dict, {})
        )
        self.__probe = ProbeSettings(_get_typed_nonnull(json, self.__probe_key, dict, {}))
        self.__request_timeout = _get_number_or_default(
            json, self.__request_timeout_key, 30.0
        )

    def __str__(self) -> str:
        ret_val = (
            "Couchbase Servers: "
            + dumps([CouchbaseServerInfo(c).url for c in self.__couchbase_servers])
            + "\n"
            + "Log File: "
            + (self.__log_file if self.__log_file is not None else "")
            + "\n"
            + "Rebalance: "
            + f"min_poll_interval={self.__rebalance.min_poll_interval} "
            + f"error_poll_interval={self.__rebalance.error_poll_interval} "
            + f"stuck_threshold={self.__rebalance.stuck_threshold}"
            + "\n"
            + "Probe: "
            + f"interval={self.__probe.interval} ping_timeout={self.__probe.ping_timeout}"
            + "\n"
            + f"Request Timeout: {self.__request_timeout}"
        )

        return ret_val


def _parse_config(path: str) -> ParsedConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found at {path}")

    try:
        with open(p) as fin:
            json = load(fin)
    except JSONDecodeError as e:
        raise ConfigError(f"Configuration at {path} is not valid JSON: {e}") from e

    if not isinstance(json, dict):
        raise ConfigError("Configuration is not a JSON dictionary object")

    try:
        return ParsedConfig(dict(json))
    except ValueError as e:
        raise ConfigError(f"Malformed configuration at {path}: {e}") from e
