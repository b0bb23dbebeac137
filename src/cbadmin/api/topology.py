from typing import List

from opentelemetry.trace import get_tracer

from cbadmin.api.cluster_types import ClusterIdentity, NodeInfo
from cbadmin.api.error import ProtocolError, SelfNotFoundError, UninitializedError
from cbadmin.api.transport import RestTransport, check_status, decode_json
from cbadmin.jsonhelper import _get_typed_nonnull, dumps_with_ellipsis
from cbadmin.logging import cbadmin_trace
from cbadmin.version import VERSION


class TopologyReader:
    """
    Reads the membership and identity of a cluster.  Every call is exactly one
    request, errors are returned to the caller without any retry since callers
    each have their own idea of how to retry.
    """

    def __init__(self, transport: RestTransport):
        self.__transport = transport
        self.__tracer = get_tracer(__name__, VERSION)

    def list_nodes(self) -> List[NodeInfo]:
        """
        Gets the current members of the cluster, in the order the server lists them

        :raises UninitializedError: The node has not been set up as a cluster yet
        :raises ConnectionFailedError: The node could not be reached
        :raises ProtocolError: The node returned an unexpected status or payload
        """
        with self.__tracer.start_as_current_span("list_nodes"):
            cbadmin_trace("getting node information")
            resp = self.__transport.do("GET", "/pools/default")

            # uninitialized
            if resp.status_code == 404:
                raise UninitializedError()

            check_status(resp, [200])
            body = decode_json(resp)
            if not isinstance(body, dict):
                raise ProtocolError(
                    resp.status_code,
                    [200],
                    dumps_with_ellipsis(resp.text, 200),
                    "Expected a JSON object from /pools/default",
                )

            try:
                nodes = _get_typed_nonnull(body, "nodes", list, [])
                return [NodeInfo(n) for n in nodes if isinstance(n, dict)]
            except ValueError as e:
                raise ProtocolError(
                    resp.status_code,
                    [200],
                    dumps_with_ellipsis(resp.text, 200),
                    f"Malformed node list: {e}",
                ) from e

    def get_self(self, nodes: List[NodeInfo]) -> NodeInfo:
        """
        Picks out the node that answered the request from a node list

        :param nodes: A node list previously returned by :meth:`list_nodes`
        :raises SelfNotFoundError: No entry was flagged as this node
        """
        for node in nodes:
            if node.this_node:
                return node

        raise SelfNotFoundError()

    def known_otp_nodes(self) -> List[str]:
        """Gets the OTP names of all current members of the cluster"""
        return [n.otp_node for n in self.list_nodes()]

    def cluster(self) -> ClusterIdentity:
        """
        Reads the identity of the cluster.  Callers wanting it cached should go
        through :class:`cbadmin.api.couchbaseserver.CouchbaseServer`.

        :raises ConnectionFailedError: The node could not be reached
        :raises ProtocolError: The node returned an unexpected status or payload
        """
        with self.__tracer.start_as_current_span("read_cluster_identity"):
            resp = self.__transport.do("GET", "/pools")
            check_status(resp, [200])
            body = decode_json(resp)
            if not isinstance(body, dict):
                raise ProtocolError(
                    resp.status_code,
                    [200],
                    dumps_with_ellipsis(resp.text, 200),
                    "Expected a JSON object from /pools",
                )

            try:
                return ClusterIdentity(body)
            except ValueError as e:
                raise ProtocolError(
                    resp.status_code,
                    [200],
                    dumps_with_ellipsis(resp.text, 200),
                    f"Malformed cluster identity: {e}",
                ) from e
