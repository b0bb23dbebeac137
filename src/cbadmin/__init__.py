from .api.couchbaseserver import CouchbaseServer
from .api.error import ConfigError
from .assertions import _assert_not_empty, _assert_not_null
from .configparser import CouchbaseServerInfo, ParsedConfig, _parse_config
from .logging import LogLevel, cbadmin_log_init, cbadmin_set_log_level


class CBAdmin:
    """
    This is the top level class that users will interact with.  It parses the passed
    configuration and creates a :class:`CouchbaseServer` handle for every cluster
    listed in it.
    """

    @property
    def config(self) -> ParsedConfig:
        """Gets the config as parsed from the provided JSON file path"""
        return self.__config

    @property
    def log_level(self) -> LogLevel:
        """Gets the log level provided"""
        return self.__log_level

    @property
    def couchbase_servers(self) -> list[CouchbaseServer]:
        """Gets the list of Couchbase Servers available"""
        return self.__couchbase_servers

    def __init__(self, config_path: str, log_level: LogLevel = LogLevel.INFO):
        _assert_not_null(config_path, "config_path")
        self.__config = _parse_config(config_path)
        self.__log_level = LogLevel(log_level)
        cbadmin_set_log_level(self.__log_level)
        cbadmin_log_init(self.__config.log_file)

        rebalance = self.__config.rebalance
        probe = self.__config.probe
        self.__couchbase_servers: list[CouchbaseServer] = []
        for cbs in _assert_not_empty(
            self.__config.couchbase_servers, "couchbase-servers"
        ):
            try:
                cbs_info = CouchbaseServerInfo(cbs)
            except ValueError as e:
                raise ConfigError(f"Malformed couchbase-servers entry: {e}") from e

            self.__couchbase_servers.append(
                CouchbaseServer(
                    cbs_info.url,
                    cbs_info.admin_user,
                    cbs_info.admin_password,
                    min_poll_interval=rebalance.min_poll_interval,
                    error_poll_interval=rebalance.error_poll_interval,
                    stuck_threshold=rebalance.stuck_threshold,
                    probe_interval=probe.interval,
                    ping_timeout=probe.ping_timeout,
                    request_timeout=self.__config.request_timeout,
                )
            )

    def close(self) -> None:
        """Closes all of the Couchbase Server handles"""
        for cbs in self.__couchbase_servers:
            cbs.close()

    def __str__(self) -> str:
        return (
            "Configuration:"
            + "\n"
            + str(self.__config)
            + "\n\n"
            + "Log Level: "
            + str(self.__log_level)
        )
