from threading import Event
from unittest.mock import patch

import pytest
from cbadmin.api.cluster_types import RebalanceStatus
from cbadmin.api.error import (
    ConnectionFailedError,
    IncompleteMatchError,
    MissingIdentityError,
    ProtocolError,
    RebalanceCancelledError,
    StuckRemovalError,
    UninitializedError,
)
from cbadmin.api.rebalance import RebalanceOrchestrator, RemovalState
from cbadmin.api.resolver import IdentityResolver
from cbadmin.api.topology import TopologyReader
from conftest import (
    FakeClock,
    FakeTransport,
    make_response,
    node,
    pool,
    rebalance_idle,
    rebalance_running,
)


def orchestrator(transport: FakeTransport, clock: FakeClock) -> RebalanceOrchestrator:
    topology = TopologyReader(transport)
    return RebalanceOrchestrator(
        transport, topology, IdentityResolver(topology), clock
    )


class TestRemoveNodes:
    def test_remove_one_of_three(self, transport, clock, three_nodes) -> None:
        a, b, c = three_nodes
        transport.route("GET", "/pools/default", pool(a, b, c), pool(a, c))
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route(
            "GET", "/pools/default/tasks", rebalance_running("a", "b", "c"), rebalance_idle()
        )

        rebalancer = orchestrator(transport, clock)
        rebalancer.remove_nodes(["B"])

        triggers = transport.calls_to("POST", "/controller/rebalance")
        assert triggers == [{"ejectedNodes": "b", "knownNodes": "a,b,c"}]
        assert rebalancer.state == RemovalState.DONE
        assert clock.sleeps == [0.0, 2.0], "Should poll immediately, then after the floored interval"
        assert len(transport.calls_to("GET", "/pools/default")) == 2

    def test_unknown_node_is_rejected_before_rebalance(
        self, transport, clock, three_nodes
    ) -> None:
        transport.route("GET", "/pools/default", pool(*three_nodes))

        rebalancer = orchestrator(transport, clock)
        with pytest.raises(IncompleteMatchError) as e:
            rebalancer.remove_nodes(["Z"])

        assert e.value.addresses == ["Z"]
        assert e.value.matched == []
        assert transport.calls_to("POST", "/controller/rebalance") == []
        assert rebalancer.state == RemovalState.FAILED

    def test_partial_match_is_rejected(self, transport, clock, three_nodes) -> None:
        transport.route("GET", "/pools/default", pool(*three_nodes))

        with pytest.raises(IncompleteMatchError) as e:
            orchestrator(transport, clock).remove_nodes(["B", "Z"])

        assert e.value.matched == ["b"]
        assert transport.calls_to("POST", "/controller/rebalance") == []

    def test_node_without_otp_name_aborts(self, transport, clock, three_nodes) -> None:
        a, b, _ = three_nodes
        transport.route("GET", "/pools/default", pool(a, b, node("C:8091", None)))

        with pytest.raises(MissingIdentityError) as e:
            orchestrator(transport, clock).remove_nodes(["B"])

        assert e.value.hostname == "C:8091"
        assert transport.calls_to("POST", "/controller/rebalance") == []

    def test_rejected_rebalance(self, transport, clock, three_nodes) -> None:
        transport.route("GET", "/pools/default", pool(*three_nodes))
        transport.route(
            "POST",
            "/controller/rebalance",
            make_response(400, text='{"mismatch": 1}'),
        )

        rebalancer = orchestrator(transport, clock)
        with pytest.raises(ProtocolError) as e:
            rebalancer.remove_nodes(["B"])

        assert e.value.code == 400
        assert e.value.expected == [200]
        assert "mismatch" in e.value.body
        assert rebalancer.state == RemovalState.FAILED
        assert transport.calls_to("GET", "/pools/default/tasks") == []

    def test_empty_request_does_nothing(self, transport, clock) -> None:
        rebalancer = orchestrator(transport, clock)
        rebalancer.remove_nodes([])
        assert transport.calls == []
        assert rebalancer.state == RemovalState.IDLE

    def test_removing_again_is_incomplete_match(
        self, transport, clock, three_nodes
    ) -> None:
        a, _, c = three_nodes
        transport.route("GET", "/pools/default", pool(a, c))

        with pytest.raises(IncompleteMatchError):
            orchestrator(transport, clock).remove_nodes(["B"])


class TestPolling:
    def test_address_with_port_resolves_like_bare_host(
        self, transport, clock, three_nodes
    ) -> None:
        a, b, c = three_nodes
        transport.route("GET", "/pools/default", pool(a, b, c), pool(a, c))
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route("GET", "/pools/default/tasks", rebalance_idle())

        orchestrator(transport, clock).remove_nodes(["B:8091"])

        triggers = transport.calls_to("POST", "/controller/rebalance")
        assert triggers == [{"ejectedNodes": "b", "knownNodes": "a,b,c"}]

    def test_status_failures_are_retried(self, transport, clock, three_nodes) -> None:
        a, b, c = three_nodes
        transport.route("GET", "/pools/default", pool(a, b, c), pool(a, c))
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route(
            "GET",
            "/pools/default/tasks",
            ConnectionFailedError("http://A:8091/pools/default/tasks", "refused"),
            make_response(500, text="internal error"),
            make_response(200, text="not json"),
            rebalance_idle(),
        )

        rebalancer = orchestrator(transport, clock)
        rebalancer.remove_nodes(["B"])

        assert rebalancer.state == RemovalState.DONE
        assert clock.sleeps == [0.0, 0.5, 0.5, 0.5]

    def test_topology_failures_are_retried(self, transport, clock, three_nodes) -> None:
        a, b, c = three_nodes
        transport.route(
            "GET",
            "/pools/default",
            pool(a, b, c),
            UninitializedError(),
            make_response(503, text="busy"),
            pool(a, c),
        )
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route("GET", "/pools/default/tasks", rebalance_idle(refresh=5.0))

        orchestrator(transport, clock).remove_nodes(["B"])

        assert clock.sleeps == [0.0, 5.0, 5.0], "Server suggested interval above the floor is used as is"

    def test_stuck_after_more_than_ten_observations(
        self, transport, clock, three_nodes
    ) -> None:
        transport.route("GET", "/pools/default", pool(*three_nodes))
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route("GET", "/pools/default/tasks", rebalance_idle())

        rebalancer = orchestrator(transport, clock)
        with pytest.raises(StuckRemovalError) as e:
            rebalancer.remove_nodes(["B"])

        assert e.value.otp_nodes == ["b"]
        assert e.value.observations == 11
        # One read to resolve the nodes and then one per observation
        assert len(transport.calls_to("GET", "/pools/default")) == 12
        assert rebalancer.state == RemovalState.FAILED

    def test_ten_observations_are_tolerated(self, transport, clock, three_nodes) -> None:
        a, b, c = three_nodes
        replies = [pool(a, b, c)] + [pool(a, b, c)] * 10 + [pool(a, c)]
        transport.route("GET", "/pools/default", *replies)
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route("GET", "/pools/default/tasks", rebalance_idle())

        rebalancer = orchestrator(transport, clock)
        rebalancer.remove_nodes(["B"])

        assert rebalancer.state == RemovalState.DONE

    def test_active_rebalance_resets_the_count(
        self, transport, clock, three_nodes
    ) -> None:
        a, b, c = three_nodes
        still_there = pool(a, b, c)
        transport.route(
            "GET",
            "/pools/default",
            *([still_there] * 19 + [pool(a, c)]),
        )
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route(
            "GET",
            "/pools/default/tasks",
            *([rebalance_idle()] * 8 + [rebalance_running("b")] + [rebalance_idle()]),
        )

        # 8 observations, a reset, then 10 more before the node goes away
        rebalancer = orchestrator(transport, clock)
        rebalancer.remove_nodes(["B"])

        assert rebalancer.state == RemovalState.DONE

    def test_finished_rebalance_does_not_reset_the_count(
        self, transport, clock, three_nodes
    ) -> None:
        transport.route("GET", "/pools/default", pool(*three_nodes))
        transport.route("POST", "/controller/rebalance", make_response(200))

        rebalancer = orchestrator(transport, clock)
        finished = RebalanceStatus(0.25, ["b"], running=False)
        with patch.object(rebalancer, "rebalance_status", return_value=finished):
            with pytest.raises(StuckRemovalError) as e:
                rebalancer.remove_nodes(["B"])

        assert e.value.observations == 11

    def test_node_only_in_other_tasks_is_not_active(
        self, transport, clock, three_nodes
    ) -> None:
        a, b, c = three_nodes
        transport.route("GET", "/pools/default", pool(a, b, c), pool(a, c))
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route("GET", "/pools/default/tasks", make_response(200, []))

        orchestrator(transport, clock).remove_nodes(["B"])

        assert clock.sleeps == [0.0], "No rebalance task means nothing is running"


class TestCancellation:
    def test_deadline(self, transport, clock, three_nodes) -> None:
        transport.route("GET", "/pools/default", pool(*three_nodes))
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route("GET", "/pools/default/tasks", rebalance_running("b"))

        rebalancer = orchestrator(transport, clock)
        with pytest.raises(RebalanceCancelledError):
            rebalancer.remove_nodes(["B"], deadline=5.0)

        assert clock.now() == 5.0
        assert clock.sleeps == [0.0, 2.0, 2.0, 1.0]
        assert rebalancer.state == RemovalState.FAILED

    def test_deadline_cuts_the_error_backoff_short(
        self, transport, clock, three_nodes
    ) -> None:
        transport.route("GET", "/pools/default", pool(*three_nodes))
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route(
            "GET", "/pools/default/tasks", make_response(500, text="internal error")
        )

        with pytest.raises(RebalanceCancelledError):
            orchestrator(transport, clock).remove_nodes(["B"], deadline=1.2)

        assert clock.now() == pytest.approx(1.2)
        assert clock.sleeps[:3] == [0.0, 0.5, 0.5]
        assert clock.sleeps[-1] == pytest.approx(0.2)

    def test_cancel_event(self, transport, clock, three_nodes) -> None:
        cancel = Event()
        polls = []

        def status():
            polls.append(1)
            if len(polls) == 3:
                cancel.set()

            return rebalance_running("b")

        transport.route("GET", "/pools/default", pool(*three_nodes))
        transport.route("POST", "/controller/rebalance", make_response(200))
        transport.route("GET", "/pools/default/tasks", status)

        with pytest.raises(RebalanceCancelledError):
            orchestrator(transport, clock).remove_nodes(["B"], cancel=cancel)

        assert len(polls) == 3


class TestRebalanceStatus:
    def test_running(self, transport, clock) -> None:
        transport.route(
            "GET", "/pools/default/tasks", rebalance_running("a", "b", refresh=1.5)
        )
        status = orchestrator(transport, clock).rebalance_status()
        assert status.running
        assert status.nodes == ["a", "b"]
        assert status.recommended_refresh_period == 1.5

    def test_integer_refresh_period(self, transport, clock) -> None:
        transport.route(
            "GET",
            "/pools/default/tasks",
            make_response(
                200, [{"type": "rebalance", "status": "none", "recommendedRefreshPeriod": 3}]
            ),
        )
        status = orchestrator(transport, clock).rebalance_status()
        assert not status.running
        assert status.nodes == []
        assert status.recommended_refresh_period == 3.0

    def test_malformed(self, transport, clock) -> None:
        transport.route(
            "GET", "/pools/default/tasks", make_response(200, {"type": "rebalance"})
        )
        with pytest.raises(ProtocolError):
            orchestrator(transport, clock).rebalance_status()

    def test_bad_refresh_period(self, transport, clock) -> None:
        transport.route(
            "GET",
            "/pools/default/tasks",
            make_response(
                200, [{"type": "rebalance", "recommendedRefreshPeriod": "soon"}]
            ),
        )
        with pytest.raises(ProtocolError):
            orchestrator(transport, clock).rebalance_status()
