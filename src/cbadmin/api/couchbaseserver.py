from threading import Event
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import requests
from opentelemetry.trace import get_tracer

from cbadmin.api.buckets import BucketManager
from cbadmin.api.clock import Clock, SystemClock
from cbadmin.api.cluster_types import ClusterIdentity, NodeInfo, RebalanceStatus
from cbadmin.api.error import ClusterIdentityMismatchError
from cbadmin.api.prober import HealthProber
from cbadmin.api.rebalance import RebalanceOrchestrator, RemovalState
from cbadmin.api.resolver import IdentityResolver
from cbadmin.api.topology import TopologyReader
from cbadmin.api.transport import RestTransport, check_status
from cbadmin.assertions import _assert_not_null
from cbadmin.logging import cbadmin_trace
from cbadmin.utils import Memoized
from cbadmin.version import VERSION


class CouchbaseServer:
    """
    A handle to the administrative REST interface of a Couchbase Server cluster,
    addressed through one of its nodes.

    The identity of the cluster and the description of the addressed node are
    read once and then cached for the life of the handle.  Reading them (e.g. via
    :meth:`connect`) before sharing a handle between threads is cheap, but not
    required, since the caches are populated under a lock.
    """

    @property
    def url(self) -> str:
        """Gets the admin URL of the node this handle talks to"""
        return self.__transport.base_url

    @property
    def hostname(self) -> str:
        """Gets the hostname of the node this handle talks to"""
        return urlparse(self.url).hostname or ""

    @property
    def port(self) -> int:
        """Gets the port of the admin URL, or 80 if it has none"""
        try:
            port = urlparse(self.url).port
        except ValueError:
            return 80

        return port if port is not None else 80

    @property
    def removal_state(self) -> RemovalState:
        """Gets the stage that the most recent node removal reached"""
        return self.__orchestrator.state

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        *,
        clock: Optional[Clock] = None,
        session: Optional[requests.Session] = None,
        transport: Optional[RestTransport] = None,
        min_poll_interval: float = 2.0,
        error_poll_interval: float = 0.5,
        stuck_threshold: int = 10,
        probe_interval: float = 1.0,
        ping_timeout: float = 3.0,
        request_timeout: float = 30.0,
    ):
        _assert_not_null(url, "url")
        self.__tracer = get_tracer(__name__, VERSION)
        self.__clock = clock if clock is not None else SystemClock()
        self.__transport = (
            transport
            if transport is not None
            else RestTransport(url, username, password, session, request_timeout)
        )
        self.__username = username
        self.__password = password
        self.__topology = TopologyReader(self.__transport)
        self.__resolver = IdentityResolver(self.__topology)
        self.__orchestrator = RebalanceOrchestrator(
            self.__transport,
            self.__topology,
            self.__resolver,
            self.__clock,
            min_poll_interval=min_poll_interval,
            error_poll_interval=error_poll_interval,
            stuck_threshold=stuck_threshold,
        )
        self.__prober = HealthProber(
            self.__transport,
            self.__topology,
            self.__clock,
            interval=probe_interval,
            ping_timeout=ping_timeout,
        )
        self.__buckets = BucketManager(self.__transport)
        self.__info: Memoized[NodeInfo] = Memoized(self._read_info)
        self.__cluster: Memoized[ClusterIdentity] = Memoized(self.__topology.cluster)

    def __enter__(self) -> "CouchbaseServer":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        self.__transport.close()

    def connect(self) -> None:
        """Checks that the node is reachable and the credentials are accepted"""
        self.info()

    def nodes(self) -> List[NodeInfo]:
        """Gets a fresh list of the members of the cluster"""
        return self.__topology.list_nodes()

    def known_otp_nodes(self) -> List[str]:
        """Gets the OTP names of all members of the cluster"""
        return self.__topology.known_otp_nodes()

    def info(self) -> NodeInfo:
        """Gets the (cached) description of the node that this handle talks to"""
        return self.__info.get()

    def _read_info(self) -> NodeInfo:
        return self.__topology.get_self(self.__topology.list_nodes())

    def cluster(self) -> ClusterIdentity:
        """Gets the (cached) identity of the cluster"""
        return self.__cluster.get()

    def cluster_id(self) -> str:
        """Gets the (cached) UUID of the cluster"""
        return self.cluster().uuid

    def verify_cluster_id(self, observed_uuid: str) -> None:
        """
        Checks a cluster UUID seen elsewhere against the one cached by this handle

        :param observed_uuid: The UUID to check
        :raises ClusterIdentityMismatchError: The UUIDs differ
        """
        cached = self.cluster_id()
        if observed_uuid != cached:
            raise ClusterIdentityMismatchError(cached, observed_uuid)

    def resolve_otp_nodes(self, addresses: List[str]) -> Tuple[List[str], List[str]]:
        """
        Gets the OTP names of the given nodes, and of every node in the cluster.
        See :meth:`IdentityResolver.resolve_otp_nodes`
        """
        return self.__resolver.resolve_otp_nodes(addresses)

    def rebalance(self, known_nodes: List[str], ejected_nodes: List[str]) -> None:
        """Starts a rebalance without waiting for it"""
        self.__orchestrator.rebalance(known_nodes, ejected_nodes)

    def rebalance_status(self) -> RebalanceStatus:
        return self.__orchestrator.rebalance_status()

    def remove_nodes(
        self,
        addresses: List[str],
        *,
        timeout: Optional[float] = None,
        cancel: Optional[Event] = None,
    ) -> None:
        """
        Rebalances the given nodes out of the cluster and waits until they have left

        :param addresses: The addresses of the nodes to remove, with or without ports
        :param timeout: An optional limit, in seconds, on the whole operation
        :param cancel: An optional event that stops waiting when set
        """
        deadline = self.__clock.now() + timeout if timeout is not None else None
        self.__orchestrator.remove_nodes(addresses, deadline=deadline, cancel=cancel)

    def ping(self, url: str) -> None:
        """Checks that the given URL answers with a 200"""
        self.__prober.ping(url)

    def wait_ready(self, url: str, timeout: float) -> bool:
        """Waits for the node at the given URL to accept requests"""
        return self.__prober.wait_ready(url, timeout)

    def wait_healthy(self, timeout: float) -> None:
        """Waits for the addressed node to be a healthy member of a cluster"""
        self.__prober.wait_healthy(timeout)

    def bucket_ready(self, name: str) -> bool:
        return self.__buckets.bucket_ready(name)

    def bucket_delete(self, name: str) -> None:
        self.__buckets.bucket_delete(name)

    def set_memory_quota(self, key: str, quota_mb: int) -> None:
        """
        Updates one of the memory quotas of the cluster

        :param key: The quota to update (e.g. memoryQuota, indexMemoryQuota)
        :param quota_mb: The new quota, in megabytes
        """
        with self.__tracer.start_as_current_span(
            "set_memory_quota", attributes={"cbadmin.quota.key": key}
        ):
            cbadmin_trace(f"update quota {key} to {quota_mb}")
            resp = self.__transport.do(
                "POST", "/pools/default", data={key: str(quota_mb)}
            )
            check_status(resp, [200])

    def add_node(self, hostname: str, services: Optional[List[str]] = None) -> None:
        """
        Adds a node to the cluster.  The node does not take any data until the
        next rebalance.

        :param hostname: The hostname of the node to add
        :param services: List of services to enable on the node (e.g. ["kv", "index", "n1ql"])
                         Defaults to ["kv", "index", "n1ql"] (data, index, query)
        """
        if services is None:
            services = ["kv", "index", "n1ql"]

        with self.__tracer.start_as_current_span(
            "add_node",
            attributes={
                "cbadmin.node.hostname": hostname,
                "cbadmin.node.services": ",".join(services),
            },
        ):
            resp = self.__transport.do(
                "POST",
                "/controller/addNode",
                data={
                    "hostname": hostname,
                    "user": self.__username,
                    "password": self.__password,
                    "services": ",".join(services),
                },
            )
            check_status(resp, [200])

    def __str__(self) -> str:
        return f"CouchbaseServer({self.url})"
