from typing import Callable

from opentelemetry.trace import get_tracer

from cbadmin.api.clock import Clock
from cbadmin.api.error import (
    CBAdminError,
    HealthyTimeoutError,
    WaitTimeoutError,
)
from cbadmin.api.topology import TopologyReader
from cbadmin.api.transport import RestTransport, check_status
from cbadmin.logging import cbadmin_trace
from cbadmin.version import VERSION


class HealthProber:
    """
    Coarse liveness checks that poll at a fixed interval (one second by default)
    until they succeed or the caller's timeout runs out
    """

    def __init__(
        self,
        transport: RestTransport,
        topology: TopologyReader,
        clock: Clock,
        *,
        interval: float = 1.0,
        ping_timeout: float = 3.0,
    ):
        self.__transport = transport
        self.__topology = topology
        self.__clock = clock
        self.__interval = interval
        self.__ping_timeout = ping_timeout
        self.__tracer = get_tracer(__name__, VERSION)

    def ping(self, url: str) -> None:
        """
        Checks that the given URL answers with a 200, without sending credentials

        :param url: The URL to check
        :raises ConnectionFailedError: The URL could not be reached
        :raises ProtocolError: The URL answered with something other than 200
        """
        resp = self.__transport.get_url(url, timeout=self.__ping_timeout)
        check_status(resp, [200])

    def wait_ready(self, url: str, timeout: float) -> bool:
        """
        Waits for a node to accept requests

        :param url: The URL of the node (e.g. http://10.0.0.1:8091)
        :param timeout: How long to wait, in seconds
        :raises WaitTimeoutError: The node did not answer in time
        """
        with self.__tracer.start_as_current_span(
            "wait_ready", attributes={"cbadmin.url": url, "cbadmin.timeout": timeout}
        ):
            self._poll_until(lambda: self._ready(url), timeout, lambda: WaitTimeoutError(url))
            return True

    def wait_healthy(self, timeout: float) -> None:
        """
        Waits for the addressed node to be part of a cluster (at least two nodes
        visible) and to report itself as healthy

        :param timeout: How long to wait, in seconds
        :raises HealthyTimeoutError: The node was not healthy in time
        """
        url = self.__transport.base_url
        with self.__tracer.start_as_current_span(
            "wait_healthy", attributes={"cbadmin.url": url, "cbadmin.timeout": timeout}
        ):
            self._poll_until(self._healthy, timeout, lambda: HealthyTimeoutError(url))

    def _poll_until(
        self,
        probe: Callable[[], bool],
        timeout: float,
        on_timeout: Callable[[], CBAdminError],
    ) -> None:
        # Ticks are anchored to the start time.  Ticks that passed while a
        # slow probe was running are skipped, never made up for.
        start = self.__clock.now()
        deadline = start + timeout
        ticks = 0
        while True:
            now = self.__clock.now()
            ticks = max(ticks + 1, int((now - start) // self.__interval) + 1)
            next_tick = start + ticks * self.__interval
            if next_tick > deadline:
                if deadline > now:
                    self.__clock.sleep(deadline - now)

                raise on_timeout()

            self.__clock.sleep(next_tick - now)
            if probe():
                return

    def _ready(self, url: str) -> bool:
        try:
            self.ping(url)
            return True
        except CBAdminError as e:
            cbadmin_trace(f"{url} is not ready yet: {e}")
            return False

    def _healthy(self) -> bool:
        try:
            nodes = self.__topology.list_nodes()
            if len(nodes) < 2:
                cbadmin_trace("Node hasn't joined the cluster yet")
                return False

            info = self.__topology.get_self(nodes)
        except CBAdminError as e:
            cbadmin_trace(f"Unable to check health: {e}")
            return False

        if info.status != "healthy":
            cbadmin_trace(f"status of node is '{info.status}', expected 'healthy'")
            return False

        return True
