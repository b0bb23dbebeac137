from typing import List, Optional


class CBAdminError(Exception):
    """An error occurred while administrating a Couchbase Server cluster"""

    def __init__(self, *args):
        super().__init__(*args)


class ConfigError(CBAdminError):
    """The provided configuration could not be used"""

    def __init__(self, *args):
        super().__init__(*args)


class ConnectionFailedError(CBAdminError):
    """The REST request never reached the server (DNS, refused connection, timeout, etc)"""

    @property
    def url(self) -> str:
        """Gets the URL that could not be reached"""
        return self.__url

    def __init__(self, url: str, *args):
        self.__url = url
        super().__init__(*args)


class ProtocolError(CBAdminError):
    """The server answered, but with an unexpected status code or payload"""

    @property
    def code(self) -> Optional[int]:
        """Gets the status code that the server returned, if any"""
        return self.__code

    @property
    def expected(self) -> List[int]:
        """Gets the status codes that would have been acceptable"""
        return self.__expected

    @property
    def body(self) -> str:
        """Gets an excerpt of the body of the offending response"""
        return self.__body

    def __init__(
        self,
        code: Optional[int],
        expected: Optional[List[int]] = None,
        body: str = "",
        *args,
    ):
        self.__code = code
        self.__expected = expected if expected is not None else []
        self.__body = body
        if not args:
            expected_str = ", ".join(str(c) for c in self.__expected)
            args = (f"expected statusCode '{expected_str}', got {code}: {body}",)

        super().__init__(*args)


class AuthenticationError(ProtocolError):
    """The server rejected the provided credentials"""

    def __init__(self, body: str = ""):
        super().__init__(
            401, [], body, "Error authenticating. Check user/password"
        )


class UninitializedError(CBAdminError):
    """The node has not been initialized into a cluster yet"""

    def __init__(self, *args):
        super().__init__(*args or ("Node is uninitialized",))


class SelfNotFoundError(CBAdminError):
    """None of the nodes returned by the server is flagged as the node being addressed"""

    def __init__(self, *args):
        super().__init__(*args or ("No node info found",))


class MissingIdentityError(CBAdminError):
    """A node in the cluster does not have an OTP name yet"""

    @property
    def hostname(self) -> str:
        """Gets the hostname of the node without an OTP name"""
        return self.__hostname

    def __init__(self, hostname: str):
        self.__hostname = hostname
        super().__init__(f"Unable to get OTP name for node {hostname}")


class IncompleteMatchError(CBAdminError):
    """Some of the nodes requested for removal are not part of the cluster"""

    @property
    def addresses(self) -> List[str]:
        """Gets the addresses that were requested for removal"""
        return self.__addresses

    @property
    def matched(self) -> List[str]:
        """Gets the OTP nodes that were actually found"""
        return self.__matched

    def __init__(self, addresses: List[str], matched: List[str]):
        self.__addresses = addresses
        self.__matched = matched
        super().__init__(
            f"Some nodes specified to be removed are not part of the cluster "
            f"(requested {addresses}, matched {matched})"
        )


class StuckRemovalError(CBAdminError):
    """Rebalance finished, but an ejected node is still a member of the cluster"""

    @property
    def otp_nodes(self) -> List[str]:
        """Gets the OTP nodes that were supposed to leave the cluster"""
        return self.__otp_nodes

    @property
    def observations(self) -> int:
        """Gets the number of consecutive polls that still saw the node in the cluster"""
        return self.__observations

    def __init__(self, otp_nodes: List[str], observations: int):
        self.__otp_nodes = otp_nodes
        self.__observations = observations
        super().__init__(
            f"rebalance finished, but node is still in the cluster after "
            f"{observations} checks. Rebalance failed"
        )


class RebalanceCancelledError(CBAdminError):
    """The caller stopped waiting for the rebalance before it converged"""

    def __init__(self, *args):
        super().__init__(*args or ("Rebalance polling was cancelled",))


class ClusterIdentityMismatchError(CBAdminError):
    """A cluster UUID different from the one cached by the client was observed"""

    @property
    def cached(self) -> str:
        return self.__cached

    @property
    def observed(self) -> str:
        return self.__observed

    def __init__(self, cached: str, observed: str):
        self.__cached = cached
        self.__observed = observed
        super().__init__(
            f"Cluster UUID changed from '{cached}' to '{observed}' while the client was in use"
        )


class WaitTimeoutError(CBAdminError):
    """A node did not become ready within the given timeout"""

    @property
    def url(self) -> str:
        return self.__url

    def __init__(self, url: str):
        self.__url = url
        super().__init__(f"Timed out waiting for node {url} to become ready")


class HealthyTimeoutError(CBAdminError):
    """A node did not become a healthy cluster member within the given timeout"""

    @property
    def url(self) -> str:
        return self.__url

    def __init__(self, url: str):
        self.__url = url
        super().__init__(f"Timed out waiting for node {url} to become healthy")


class BucketDeleteError(CBAdminError):
    """The request to delete a bucket could not be sent"""

    @property
    def bucket(self) -> str:
        return self.__bucket

    def __init__(self, bucket: str, cause: Exception):
        self.__bucket = bucket
        super().__init__(f"Error deleting bucket {bucket}: {cause}")
