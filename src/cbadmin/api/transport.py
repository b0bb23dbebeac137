from typing import Any, List, Optional
from urllib.parse import urljoin

import requests

from cbadmin.api.error import AuthenticationError, ConnectionFailedError, ProtocolError
from cbadmin.jsonhelper import dumps_with_ellipsis
from cbadmin.logging import cbadmin_trace


class RestTransport:
    """
    Sends REST requests to the administrative port of a Couchbase Server node,
    injecting basic credentials into every request.  It never retries: retry
    policy belongs to the callers.
    """

    @property
    def base_url(self) -> str:
        """Gets the URL that all paths are resolved against"""
        return self.__base_url

    @property
    def username(self) -> str:
        return self.__username

    @property
    def password(self) -> str:
        return self.__password

    @property
    def request_timeout(self) -> float:
        """Gets the timeout, in seconds, applied to requests that do not pass their own"""
        return self.__request_timeout

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        session: Optional[requests.Session] = None,
        request_timeout: float = 30.0,
    ):
        if "://" not in base_url:
            base_url = f"http://{base_url}"

        self.__base_url = base_url
        self.__username = username
        self.__password = password
        self.__session = session if session is not None else requests.Session()
        self.__session.auth = (username, password)
        self.__request_timeout = request_timeout

    def do(
        self,
        method: str,
        path: str,
        *,
        data: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        """
        Sends an authenticated request to the node.  A dict passed as `data` is
        sent form encoded.

        :param method: The HTTP method to use
        :param path: The path relative to the base URL (e.g. /pools/default)
        :param data: The optional form body
        :param headers: Optional extra headers
        :param timeout: Optional timeout, in seconds, overriding the request timeout
                        given to the constructor
        """
        if timeout is None:
            timeout = self.__request_timeout

        url = urljoin(self.__base_url, path)
        cbadmin_trace(f"method={method} url={url}")
        try:
            resp = self.__session.request(
                method, url, data=data, headers=headers, timeout=timeout
            )
        except requests.RequestException as e:
            raise ConnectionFailedError(
                url, f"Error while connecting with auth: {e}"
            ) from e

        if resp.status_code == 401:
            raise AuthenticationError(dumps_with_ellipsis(resp.text, 200))

        return resp

    def get_url(self, url: str, timeout: Optional[float] = None) -> requests.Response:
        """
        Sends an unauthenticated GET to an arbitrary URL, used for checking that
        a node is up before it has any credentials configured

        :param url: The full URL to request
        :param timeout: Optional timeout, in seconds, for the whole request
        """
        cbadmin_trace(f"method=GET url={url}")
        try:
            return requests.get(url, timeout=timeout)
        except requests.RequestException as e:
            raise ConnectionFailedError(url, f"Error while connecting: {e}") from e

    def close(self) -> None:
        self.__session.close()


def check_status(resp: requests.Response, valid_status_codes: List[int]) -> None:
    """
    Raises a :class:`ProtocolError` if the response status is not one of the
    provided codes

    :param resp: The response to check
    :param valid_status_codes: The acceptable status codes
    """
    if resp.status_code in valid_status_codes:
        return

    raise ProtocolError(
        resp.status_code, list(valid_status_codes), dumps_with_ellipsis(resp.text, 200)
    )


def decode_json(resp: requests.Response) -> Any:
    """
    Decodes the body of the response as JSON, raising a :class:`ProtocolError`
    if it is malformed

    :param resp: The response to decode
    """
    try:
        return resp.json()
    except ValueError as e:
        raise ProtocolError(
            resp.status_code,
            [],
            dumps_with_ellipsis(resp.text, 200),
            f"Malformed JSON received from {resp.url}: {e}",
        ) from e
