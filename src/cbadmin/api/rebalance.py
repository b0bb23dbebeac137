from enum import Enum
from threading import Event
from typing import List, Optional

from opentelemetry.trace import get_tracer

from cbadmin.api.clock import Clock
from cbadmin.api.cluster_types import RebalanceStatus, contains_host
from cbadmin.api.error import (
    CBAdminError,
    IncompleteMatchError,
    ProtocolError,
    RebalanceCancelledError,
    StuckRemovalError,
)
from cbadmin.api.resolver import IdentityResolver
from cbadmin.api.topology import TopologyReader
from cbadmin.api.transport import RestTransport, check_status, decode_json
from cbadmin.jsonhelper import dumps_with_ellipsis
from cbadmin.logging import cbadmin_info, cbadmin_trace, cbadmin_warning
from cbadmin.version import VERSION


class RemovalState(Enum):
    """The stages that a node removal goes through"""

    IDLE = "idle"
    RESOLVING = "resolving"
    TRIGGERING = "triggering"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"


class RebalanceOrchestrator:
    """
    Removes nodes from a cluster by rebalancing them out, and then waits for the
    cluster to report that they have actually left.

    The wait has no timeout of its own.  It ends when the nodes are gone, when the
    cluster keeps reporting an ejected node as a member after the rebalance went
    idle (see `stuck_threshold`), or when the caller's deadline or cancel event
    fires.
    """

    @property
    def state(self) -> RemovalState:
        """Gets the stage that the most recent removal reached"""
        return self.__state

    def __init__(
        self,
        transport: RestTransport,
        topology: TopologyReader,
        resolver: IdentityResolver,
        clock: Clock,
        *,
        min_poll_interval: float = 2.0,
        error_poll_interval: float = 0.5,
        stuck_threshold: int = 10,
    ):
        self.__transport = transport
        self.__topology = topology
        self.__resolver = resolver
        self.__clock = clock
        self.__min_poll_interval = min_poll_interval
        self.__error_poll_interval = error_poll_interval
        self.__stuck_threshold = stuck_threshold
        self.__state = RemovalState.IDLE
        self.__tracer = get_tracer(__name__, VERSION)

    def rebalance(self, known_nodes: List[str], ejected_nodes: List[str]) -> None:
        """
        Starts a rebalance.  This returns as soon as the cluster accepts the request.

        :param known_nodes: The OTP names of every node in the cluster
        :param ejected_nodes: The OTP names of the nodes to remove
        """
        with self.__tracer.start_as_current_span(
            "rebalance",
            attributes={
                "cbadmin.nodes.known": ",".join(known_nodes),
                "cbadmin.nodes.ejected": ",".join(ejected_nodes),
            },
        ):
            cbadmin_trace(f"rebalance nodes ejected={ejected_nodes} known={known_nodes}")
            resp = self.__transport.do(
                "POST",
                "/controller/rebalance",
                data={
                    "ejectedNodes": ",".join(ejected_nodes),
                    "knownNodes": ",".join(known_nodes),
                },
            )
            check_status(resp, [200])

    def rebalance_status(self) -> RebalanceStatus:
        """Takes one look at the progress of the rebalance task"""
        resp = self.__transport.do("GET", "/pools/default/tasks")
        check_status(resp, [200])
        body = decode_json(resp)
        if not isinstance(body, list):
            raise ProtocolError(
                resp.status_code,
                [200],
                dumps_with_ellipsis(resp.text, 200),
                "Expected a JSON array from /pools/default/tasks",
            )

        try:
            return RebalanceStatus.from_tasks(body)
        except ValueError as e:
            raise ProtocolError(
                resp.status_code,
                [200],
                dumps_with_ellipsis(resp.text, 200),
                f"Malformed rebalance task: {e}",
            ) from e

    def remove_nodes(
        self,
        addresses: List[str],
        *,
        deadline: Optional[float] = None,
        cancel: Optional[Event] = None,
    ) -> None:
        """
        Rebalances the given nodes out of the cluster and blocks until they are gone.
        Removing an empty list of nodes does nothing.

        :param addresses: The addresses of the nodes to remove, with or without ports
        :param deadline: An optional point in time (as reported by the clock of this
                         orchestrator) after which to stop waiting
        :param cancel: An optional event that stops the wait when set
        :raises IncompleteMatchError: Not every address is a member of the cluster
        :raises StuckRemovalError: The rebalance went idle but a node never left
        :raises RebalanceCancelledError: The deadline passed or cancel was set
        """
        if not addresses:
            cbadmin_info("No nodes requested for removal, nothing to do")
            return

        with self.__tracer.start_as_current_span(
            "remove_nodes", attributes={"cbadmin.nodes.remove": ",".join(addresses)}
        ) as span:
            try:
                self.__state = RemovalState.RESOLVING
                eject_nodes, all_nodes = self.__resolver.resolve_otp_nodes(addresses)
                if len(eject_nodes) != len(addresses):
                    raise IncompleteMatchError(list(addresses), eject_nodes)

                self.__state = RemovalState.TRIGGERING
                self.rebalance(all_nodes, eject_nodes)

                self.__state = RemovalState.POLLING
                self._wait_for_removal(eject_nodes, span, deadline, cancel)
            except Exception:
                self.__state = RemovalState.FAILED
                raise

            self.__state = RemovalState.DONE

    def _check_cancelled(
        self, deadline: Optional[float], cancel: Optional[Event]
    ) -> None:
        if cancel is not None and cancel.is_set():
            raise RebalanceCancelledError()

        if deadline is not None and self.__clock.now() >= deadline:
            raise RebalanceCancelledError(
                "Deadline passed before the rebalance finished"
            )

    def _wait_for_removal(
        self,
        eject_nodes: List[str],
        span,
        deadline: Optional[float],
        cancel: Optional[Event],
    ) -> None:
        sleep = 0.0
        node_in_cluster_count = 0
        while True:
            self._check_cancelled(deadline, cancel)
            if deadline is not None:
                sleep = min(sleep, deadline - self.__clock.now())

            self.__clock.sleep(sleep)
            self._check_cancelled(deadline, cancel)

            try:
                status = self.rebalance_status()
            except CBAdminError as e:
                sleep = self.__error_poll_interval
                cbadmin_warning(f"Error while checking rebalance status: {e}")
                span.add_event("rebalance_status_failed", attributes={"error": str(e)})
                continue

            sleep = max(status.recommended_refresh_period, self.__min_poll_interval)
            cbadmin_trace(f"rebalance status: {status}")
            span.add_event(
                "rebalance_status",
                attributes={
                    "cbadmin.rebalance.running": status.running,
                    "cbadmin.rebalance.nodes": ",".join(status.nodes),
                },
            )
            if status.running and any(
                contains_host(status.nodes, n) for n in eject_nodes
            ):
                node_in_cluster_count = 0
                continue

            try:
                nodes = self.__topology.list_nodes()
            except CBAdminError as e:
                cbadmin_warning(f"Error while getting nodes: {e}")
                span.add_event("list_nodes_failed", attributes={"error": str(e)})
                continue

            if any(contains_host(eject_nodes, n.otp_node) for n in nodes):
                node_in_cluster_count += 1
                if node_in_cluster_count > self.__stuck_threshold:
                    raise StuckRemovalError(list(eject_nodes), node_in_cluster_count)

                cbadmin_trace(
                    f"Rebalance is idle but ejected nodes are still members "
                    f"({node_in_cluster_count}/{self.__stuck_threshold})"
                )
                continue

            cbadmin_info("rebalance finished")
            return
