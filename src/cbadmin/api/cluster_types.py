from __future__ import annotations

from typing import Any, Final, List, Optional, cast

from cbadmin.jsonhelper import _get_string_list, _get_typed, _get_typed_nonnull


def strip_port(address: str) -> str:
    """
    Removes the port (if any) from a host address, so that "node1:8091" and "node1"
    compare equal.  OTP names ("ns_1@node1") carry no port and are returned as is.

    :param address: The address to strip
    """
    return address.split(":")[0]


def contains_host(addresses: List[str], address: str) -> bool:
    """
    Checks whether or not the address is in the list, ignoring ports on both sides

    :param addresses: The list of addresses to search
    :param address: The address to look for
    """
    stripped = strip_port(address)
    return any(strip_port(a) == stripped for a in addresses)


class NodeInfo:
    """
    A snapshot of one member of the cluster, as returned by GET /pools/default.
    A fresh poll replaces every instance, they are never updated in place.
    """

    __hostname_key: Final[str] = "hostname"
    __otp_node_key: Final[str] = "otpNode"
    __membership_key: Final[str] = "clusterMembership"
    __status_key: Final[str] = "status"
    __this_node_key: Final[str] = "thisNode"
    __services_key: Final[str] = "services"
    __version_key: Final[str] = "version"
    __uptime_key: Final[str] = "uptime"
    __os_key: Final[str] = "os"
    __couch_api_base_key: Final[str] = "couchApiBase"
    __compat_key: Final[str] = "clusterCompatibility"
    __memory_quota_key: Final[str] = "memoryQuota"
    __index_memory_quota_key: Final[str] = "indexMemoryQuota"
    __rebalance_status_key: Final[str] = "rebalanceStatus"

    @property
    def hostname(self) -> str:
        """Gets the hostname (usually including the admin port) of the node"""
        return self.__hostname

    @property
    def otp_node(self) -> str:
        """Gets the internal name of the node (e.g. ns_1@10.0.0.1), empty if it has none yet"""
        return self.__otp_node

    @property
    def cluster_membership(self) -> str:
        """Gets the membership state (active, inactiveAdded, inactiveFailed)"""
        return self.__cluster_membership

    @property
    def status(self) -> str:
        """Gets the operational status (healthy, warmup, unhealthy)"""
        return self.__status

    @property
    def this_node(self) -> bool:
        """Gets whether or not this entry is the node that served the request"""
        return self.__this_node

    @property
    def services(self) -> List[str]:
        """Gets the services running on the node (kv, index, n1ql, etc)"""
        return self.__services

    @property
    def version(self) -> str:
        return self.__version

    @property
    def uptime(self) -> str:
        return self.__uptime

    @property
    def os(self) -> str:
        return self.__os

    @property
    def couch_api_base(self) -> str:
        return self.__couch_api_base

    @property
    def cluster_compatibility(self) -> int:
        return self.__cluster_compatibility

    @property
    def memory_quota(self) -> int:
        return self.__memory_quota

    @property
    def index_memory_quota(self) -> int:
        return self.__index_memory_quota

    @property
    def rebalance_status(self) -> str:
        return self.__rebalance_status

    def __init__(self, json: dict):
        self.__raw = json
        self.__hostname = _get_typed_nonnull(json, self.__hostname_key, str, "")
        self.__otp_node = _get_typed_nonnull(json, self.__otp_node_key, str, "")
        self.__cluster_membership = _get_typed_nonnull(
            json, self.__membership_key, str, ""
        )
        self.__status = _get_typed_nonnull(json, self.__status_key, str, "")
        self.__this_node = _get_typed_nonnull(json, self.__this_node_key, bool, False)
        self.__services = _get_string_list(json, self.__services_key) or []
        self.__version = _get_typed_nonnull(json, self.__version_key, str, "")
        self.__uptime = _get_typed_nonnull(json, self.__uptime_key, str, "")
        self.__os = _get_typed_nonnull(json, self.__os_key, str, "")
        self.__couch_api_base = _get_typed_nonnull(
            json, self.__couch_api_base_key, str, ""
        )
        self.__cluster_compatibility = _get_typed_nonnull(
            json, self.__compat_key, int, 0
        )
        self.__memory_quota = _get_typed_nonnull(json, self.__memory_quota_key, int, 0)
        self.__index_memory_quota = _get_typed_nonnull(
            json, self.__index_memory_quota_key, int, 0
        )
        self.__rebalance_status = _get_typed_nonnull(
            json, self.__rebalance_status_key, str, ""
        )

    def to_json(self) -> Any:
        return self.__raw

    def __str__(self) -> str:
        return f"{self.__hostname} ({self.__otp_node or '<no otp>'}, {self.__status})"

    def __repr__(self) -> str:
        return f"NodeInfo({self})"


class ClusterIdentity:
    """The identity of the cluster, as returned by GET /pools"""

    __uuid_key: Final[str] = "uuid"
    __enterprise_key: Final[str] = "isEnterprise"
    __admin_creds_key: Final[str] = "isAdminCreds"

    @property
    def uuid(self) -> str:
        """Gets the UUID of the cluster (empty if the node is not initialized)"""
        return self.__uuid

    @property
    def is_enterprise(self) -> bool:
        return self.__is_enterprise

    @property
    def is_admin_creds(self) -> bool:
        """Gets whether or not the credentials in use are administrator credentials"""
        return self.__is_admin_creds

    def __init__(self, json: dict):
        # An uninitialized node reports "uuid": []
        uuid = json.get(self.__uuid_key)
        self.__uuid = uuid if isinstance(uuid, str) else ""
        self.__is_enterprise = _get_typed_nonnull(
            json, self.__enterprise_key, bool, False
        )
        self.__is_admin_creds = _get_typed_nonnull(
            json, self.__admin_creds_key, bool, False
        )


class RebalanceStatus:
    """
    A single observation of the rebalance task, taken from GET /pools/default/tasks
    """

    __type_key: Final[str] = "type"
    __status_key: Final[str] = "status"
    __refresh_key: Final[str] = "recommendedRefreshPeriod"
    __per_node_key: Final[str] = "perNode"

    @property
    def recommended_refresh_period(self) -> float:
        """Gets how long the server would like clients to wait before asking again, in seconds"""
        return self.__recommended_refresh_period

    @property
    def running(self) -> bool:
        """Gets whether or not a rebalance is in progress"""
        return self.__running

    @property
    def nodes(self) -> List[str]:
        """Gets the OTP names of the nodes taking part in the running rebalance"""
        return self.__nodes

    def __init__(self, recommended_refresh_period: float, nodes: List[str], running: bool):
        self.__recommended_refresh_period = recommended_refresh_period
        self.__nodes = nodes
        self.__running = running

    @classmethod
    def from_tasks(cls, tasks: list) -> RebalanceStatus:
        """
        Builds a status out of the task list of the cluster.  A missing rebalance
        task means that nothing is running.

        :param tasks: The decoded body of GET /pools/default/tasks
        """
        for task in tasks:
            if not isinstance(task, dict) or task.get(cls.__type_key) != "rebalance":
                continue

            refresh = task.get(cls.__refresh_key, 0)
            if isinstance(refresh, bool) or not isinstance(refresh, (int, float)):
                raise ValueError(
                    f"Expecting a number for key {cls.__refresh_key} but found {refresh} instead"
                )

            running = _get_typed(task, cls.__status_key, str) == "running"
            per_node = _get_typed_nonnull(task, cls.__per_node_key, dict, {})
            nodes = list(cast(dict, per_node).keys()) if running else []
            return RebalanceStatus(float(refresh), nodes, running)

        return RebalanceStatus(0.0, [], False)

    def __str__(self) -> str:
        return f"running={self.__running} nodes={self.__nodes} refresh={self.__recommended_refresh_period}s"


class BucketNodeStatus:
    """The health of a bucket on a single node"""

    @property
    def hostname(self) -> str:
        return self.__hostname

    @property
    def status(self) -> str:
        return self.__status

    def __init__(self, json: dict):
        self.__hostname = _get_typed_nonnull(json, "hostname", str, "")
        self.__status = _get_typed_nonnull(json, "status", str, "")


class BucketStatus:
    """The status of a bucket as returned by GET /pools/default/buckets/<name>"""

    @property
    def name(self) -> str:
        return self.__name

    @property
    def nodes(self) -> List[BucketNodeStatus]:
        return self.__nodes

    @property
    def ready(self) -> bool:
        """Gets whether or not the bucket exists and is healthy on every node"""
        return len(self.__nodes) > 0 and all(
            n.status == "healthy" for n in self.__nodes
        )

    def __init__(self, json: dict, name: Optional[str] = None):
        self.__name = _get_typed_nonnull(json, "name", str, name or "")
        self.__nodes = [
            BucketNodeStatus(n)
            for n in _get_typed_nonnull(json, "nodes", list, [])
            if isinstance(n, dict)
        ]
