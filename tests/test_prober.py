import pytest
from cbadmin.api.error import (
    ConnectionFailedError,
    HealthyTimeoutError,
    ProtocolError,
    WaitTimeoutError,
)
from cbadmin.api.prober import HealthProber
from cbadmin.api.topology import TopologyReader
from conftest import make_response, node, pool

NODE_URL = "http://B:8091"


def prober(transport, clock) -> HealthProber:
    return HealthProber(transport, TopologyReader(transport), clock)


class TestWaitHealthy:
    def test_healthy_on_first_tick(self, transport, clock, three_nodes) -> None:
        transport.route("GET", "/pools/default", pool(*three_nodes))

        prober(transport, clock).wait_healthy(10.0)

        assert clock.now() == 1.0
        assert clock.sleeps == [1.0]

    def test_single_node_never_healthy(self, transport, clock) -> None:
        transport.route("GET", "/pools/default", pool(node("A:8091", "a", this_node=True)))

        with pytest.raises(HealthyTimeoutError) as e:
            prober(transport, clock).wait_healthy(5.0)

        assert e.value.url == "http://A:8091"
        assert clock.now() == 5.0
        assert len(transport.calls) == 5

    def test_warming_up_then_healthy(self, transport, clock) -> None:
        warming = pool(
            node("A:8091", "a", status="warmup", this_node=True), node("B:8091", "b")
        )
        transport.route(
            "GET",
            "/pools/default",
            warming,
            warming,
            pool(node("A:8091", "a", this_node=True), node("B:8091", "b")),
        )

        prober(transport, clock).wait_healthy(10.0)

        assert clock.now() == 3.0
        assert clock.sleeps == [1.0, 1.0, 1.0]

    def test_no_self_entry(self, transport, clock) -> None:
        transport.route(
            "GET", "/pools/default", pool(node("B:8091", "b"), node("C:8091", "c"))
        )

        with pytest.raises(HealthyTimeoutError):
            prober(transport, clock).wait_healthy(3.0)

        assert clock.now() == 3.0

    def test_errors_are_retried(self, transport, clock, three_nodes) -> None:
        transport.route(
            "GET",
            "/pools/default",
            ConnectionFailedError("http://A:8091/pools/default", "refused"),
            make_response(404, text="unknown pool"),
            pool(*three_nodes),
        )

        prober(transport, clock).wait_healthy(10.0)

        assert clock.now() == 3.0

    def test_slow_topology_reads(self, transport, clock) -> None:
        def slow_single_node():
            clock.current += 2.5
            return pool(node("A:8091", "a", this_node=True))

        transport.route("GET", "/pools/default", slow_single_node)

        with pytest.raises(HealthyTimeoutError):
            prober(transport, clock).wait_healthy(6.0)

        # Probes start at 1.0 and 4.0, the next tick (7.0) is past the deadline
        assert len(transport.calls) == 2
        assert clock.sleeps == [1.0, 0.5]
        assert clock.now() == 6.5

    def test_fractional_timeout(self, transport, clock) -> None:
        transport.route("GET", "/pools/default", pool())

        with pytest.raises(HealthyTimeoutError):
            prober(transport, clock).wait_healthy(2.5)

        assert clock.sleeps == [1.0, 1.0, 0.5]
        assert clock.now() == 2.5


class TestWaitReady:
    def test_ready_after_failures(self, transport, clock) -> None:
        transport.route(
            "GET",
            NODE_URL,
            ConnectionFailedError(NODE_URL, "refused"),
            make_response(503, text="starting"),
            make_response(200, text="<html></html>"),
        )

        assert prober(transport, clock).wait_ready(NODE_URL, 10.0)
        assert clock.now() == 3.0

    def test_timeout(self, transport, clock) -> None:
        transport.route("GET", NODE_URL, ConnectionFailedError(NODE_URL, "refused"))

        with pytest.raises(WaitTimeoutError) as e:
            prober(transport, clock).wait_ready(NODE_URL, 2.5)

        assert e.value.url == NODE_URL
        assert clock.sleeps == [1.0, 1.0, 0.5]

    def test_slow_failures_skip_missed_ticks(self, transport, clock) -> None:
        starts = []

        def slow_refusal():
            starts.append(clock.now())
            clock.current += 3.0
            return ConnectionFailedError(NODE_URL, "timed out")

        transport.route("GET", NODE_URL, slow_refusal)

        with pytest.raises(WaitTimeoutError):
            prober(transport, clock).wait_ready(NODE_URL, 10.0)

        assert starts == [1.0, 5.0, 9.0]
        assert all(s > 0 for s in clock.sleeps), "Probes should never run back to back"
        assert clock.now() == 12.0, "Should give up right after the last probe that started in time"

    def test_zero_timeout_never_probes(self, transport, clock) -> None:
        with pytest.raises(WaitTimeoutError):
            prober(transport, clock).wait_ready(NODE_URL, 0.0)

        assert transport.calls == []


class TestPing:
    def test_ok(self, transport, clock) -> None:
        transport.route("GET", NODE_URL, make_response(200))
        prober(transport, clock).ping(NODE_URL)
        assert transport.calls == [("GET", NODE_URL, None)]

    def test_bad_status(self, transport, clock) -> None:
        transport.route("GET", NODE_URL, make_response(500))
        with pytest.raises(ProtocolError):
            prober(transport, clock).ping(NODE_URL)
