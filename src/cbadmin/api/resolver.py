from typing import List, Tuple

from cbadmin.api.cluster_types import contains_host
from cbadmin.api.error import MissingIdentityError
from cbadmin.api.topology import TopologyReader
from cbadmin.logging import cbadmin_trace


class IdentityResolver:
    """
    Translates the addresses that operators know nodes by into the OTP names
    that the cluster needs in rebalance requests
    """

    def __init__(self, topology: TopologyReader):
        self.__topology = topology

    def resolve_otp_nodes(self, eject_addrs: List[str]) -> Tuple[List[str], List[str]]:
        """
        Reads the topology once and returns the OTP names of the nodes to eject,
        along with the OTP names of every known node.  Hosts are compared without
        their ports, so "node1:8091" matches a node reported as "node1".

        It is up to the caller to check that every address was matched.

        :param eject_addrs: The addresses of the nodes to eject
        :raises MissingIdentityError: A node in the cluster has no OTP name yet
        """
        eject_nodes: List[str] = []
        all_nodes: List[str] = []
        for node in self.__topology.list_nodes():
            if not node.otp_node:
                raise MissingIdentityError(node.hostname)

            all_nodes.append(node.otp_node)
            if contains_host(eject_addrs, node.hostname):
                eject_nodes.append(node.otp_node)

        cbadmin_trace(f"resolved eject={eject_nodes} known={all_nodes}")
        return eject_nodes, all_nodes
