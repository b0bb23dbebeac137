from opentelemetry.trace import get_tracer

from cbadmin.api.cluster_types import BucketStatus
from cbadmin.api.error import BucketDeleteError, ConnectionFailedError, ProtocolError
from cbadmin.api.transport import RestTransport, check_status, decode_json
from cbadmin.jsonhelper import dumps_with_ellipsis
from cbadmin.logging import cbadmin_trace
from cbadmin.version import VERSION


class BucketManager:
    """Checks on and removes buckets in a cluster"""

    def __init__(self, transport: RestTransport):
        self.__transport = transport
        self.__tracer = get_tracer(__name__, VERSION)

    def bucket_status(self, name: str) -> BucketStatus | None:
        """
        Gets the per node status of a bucket, or None if the bucket does not exist
        (yet)

        :param name: The name of the bucket
        """
        resp = self.__transport.do("GET", f"/pools/default/buckets/{name}")
        if resp.status_code != 200:
            return None

        body = decode_json(resp)
        if not isinstance(body, dict):
            raise ProtocolError(
                resp.status_code,
                [200],
                dumps_with_ellipsis(resp.text, 200),
                f"Expected a JSON object for bucket {name}",
            )

        try:
            return BucketStatus(body, name)
        except ValueError as e:
            raise ProtocolError(
                resp.status_code,
                [200],
                dumps_with_ellipsis(resp.text, 200),
                f"Malformed bucket status: {e}",
            ) from e

    def bucket_ready(self, name: str) -> bool:
        """
        Checks whether or not the bucket has been created and is healthy on every
        node that hosts it

        :param name: The name of the bucket
        """
        with self.__tracer.start_as_current_span(
            "bucket_ready", attributes={"cbadmin.bucket.name": name}
        ):
            status = self.bucket_status(name)
            return status is not None and status.ready

    def bucket_delete(self, name: str) -> None:
        """
        Deletes a bucket

        :param name: The name of the bucket to delete
        :raises BucketDeleteError: The request could not be sent
        :raises ProtocolError: The cluster refused to delete the bucket
        """
        with self.__tracer.start_as_current_span(
            "bucket_delete", attributes={"cbadmin.bucket.name": name}
        ):
            cbadmin_trace(f"delete bucket {name}")
            try:
                resp = self.__transport.do("DELETE", f"/pools/default/buckets/{name}")
            except ConnectionFailedError as e:
                raise BucketDeleteError(name, e) from e

            check_status(resp, [200])
