import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
import requests
from cbadmin.api.clock import Clock

# The fakes in this file stand in for the network and for time, so that the
# polling loops can be driven step by step without a cluster and without
# actually sleeping.

FakeReply = Union[requests.Response, Exception, Callable[[], Any]]


def make_response(
    status: int, body: Any = None, text: Optional[str] = None
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.encoding = "utf-8"
    resp.url = "http://fake"
    if body is not None:
        resp._content = json.dumps(body).encode("utf-8")
    else:
        resp._content = (text or "").encode("utf-8")

    return resp


def node(
    hostname: str,
    otp_node: Optional[str],
    status: str = "healthy",
    this_node: bool = False,
    membership: str = "active",
) -> dict:
    ret_val: Dict[str, Any] = {
        "hostname": hostname,
        "status": status,
        "clusterMembership": membership,
        "thisNode": this_node,
        "services": ["kv"],
    }
    if otp_node is not None:
        ret_val["otpNode"] = otp_node

    return ret_val


def pool(*nodes: dict) -> requests.Response:
    return make_response(200, {"nodes": list(nodes)})


def rebalance_running(*otp_nodes: str, refresh: float = 0.25) -> requests.Response:
    return make_response(
        200,
        [
            {"type": "loadingSampleBucket", "status": "running"},
            {
                "type": "rebalance",
                "status": "running",
                "recommendedRefreshPeriod": refresh,
                "perNode": {n: {"progress": 50.0} for n in otp_nodes},
            },
        ],
    )


def rebalance_idle(refresh: float = 0.25) -> requests.Response:
    return make_response(
        200,
        [
            {
                "type": "rebalance",
                "status": "notRunning",
                "recommendedRefreshPeriod": refresh,
            }
        ],
    )


class FakeClock(Clock):
    def __init__(self, start: float = 0.0):
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.current += seconds


class FakeTransport:
    """
    Answers requests from per route queues.  The last reply queued for a
    route is repeated for every further request.
    """

    def __init__(self, base_url: str = "http://A:8091"):
        self.base_url = base_url
        self.calls: List[Tuple[str, str, Optional[dict]]] = []
        self.closed = False
        self.__routes: Dict[Tuple[str, str], List[FakeReply]] = {}

    def route(self, method: str, path: str, *replies: FakeReply) -> None:
        self.__routes.setdefault((method, path), []).extend(replies)

    def calls_to(self, method: str, path: str) -> List[Optional[dict]]:
        return [data for m, p, data in self.calls if m == method and p == path]

    def __reply(self, method: str, path: str) -> requests.Response:
        queue = self.__routes.get((method, path))
        if not queue:
            raise AssertionError(f"Unexpected request {method} {path}")

        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply

        if not isinstance(reply, requests.Response):
            reply = reply()
            if isinstance(reply, Exception):
                raise reply

        return reply

    def do(
        self,
        method: str,
        path: str,
        *,
        data: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        self.calls.append((method, path, data))
        return self.__reply(method, path)

    def get_url(self, url: str, timeout: Optional[float] = None) -> requests.Response:
        self.calls.append(("GET", url, None))
        return self.__reply("GET", url)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def three_nodes() -> List[dict]:
    return [
        node("A:8091", "a", this_node=True),
        node("B:8091", "b"),
        node("C:8091", "c"),
    ]
