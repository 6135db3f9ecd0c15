"""Bitbucket REST API client.

Builds request URLs from a host and a relative path, sends them through the
HTTP transport chain, decodes JSON bodies and turns non-2xx responses into
HTTPError exceptions.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

import requests

from bbcli.http_client import (
    ACCEPT,
    CONTENT_TYPE,
    JSON_MEDIA_TYPE,
    HTTPClient,
    status_text,
)
from bbcli.instance import DEFAULT_INSTANCE, Instance
from bbcli.logger import get_logger

logger = get_logger(__name__)

Body = bytes | str | None


class HTTPError(Exception):
    """An error response from the Bitbucket API.

    Attributes:
        status_code: HTTP status code of the response
        message: Message extracted from the error envelope or the body
        request_url: URL of the request that failed
        body: Raw response body
    """

    def __init__(self, status_code: int, message: str, request_url: str, body: str = ""):
        super().__init__(status_code, message, request_url, body)
        self.status_code = status_code
        self.message = message
        self.request_url = request_url
        self.body = body

    def __str__(self) -> str:
        if self.message:
            return f"HTTP {self.status_code}: {self.message} ({self.request_url})"
        return f"HTTP {self.status_code} ({self.request_url})"


def handle_http_error(response: requests.Response) -> HTTPError:
    """Build an HTTPError from a non-2xx response.

    The message comes from a Bitbucket error envelope
    ({"error": {"message": ..., "detail": ...}}) when present, otherwise from
    the trimmed body, otherwise from the standard reason phrase.
    """
    body = response.text or ""
    message = ""

    try:
        envelope = json.loads(body)
    except ValueError:
        envelope = None

    error = envelope.get("error") if isinstance(envelope, dict) else None
    if isinstance(error, dict) and error.get("message"):
        message = str(error["message"])
        if error.get("detail"):
            message = f"{message}: {error['detail']}"
    else:
        message = body.strip() or status_text(response.status_code)

    request_url = response.request.url if response.request is not None else response.url
    return HTTPError(
        status_code=response.status_code,
        message=message,
        request_url=request_url or "",
        body=body,
    )


def _find_http_error(err: BaseException | None) -> HTTPError | None:
    """Walk the exception chain looking for an HTTPError."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, HTTPError):
            return err
        seen.add(id(err))
        err = err.__cause__ or err.__context__
    return None


def _has_status(err: BaseException | None, status_code: int) -> bool:
    http_err = _find_http_error(err)
    return http_err is not None and http_err.status_code == status_code


def is_not_found(err: BaseException | None) -> bool:
    """Check if an error is a 404 Not Found error."""
    return _has_status(err, 404)


def is_unauthorized(err: BaseException | None) -> bool:
    """Check if an error is a 401 Unauthorized error."""
    return _has_status(err, 401)


def is_forbidden(err: BaseException | None) -> bool:
    """Check if an error is a 403 Forbidden error."""
    return _has_status(err, 403)


def is_conflict(err: BaseException | None) -> bool:
    """Check if an error is a 409 Conflict error."""
    return _has_status(err, 409)


def next_page_url(content: bytes) -> str:
    """Return the "next" page URL from a paginated response body, or ""."""
    try:
        page = json.loads(content)
    except ValueError:
        return ""
    if isinstance(page, dict) and isinstance(page.get("next"), str):
        return page["next"]
    return ""


class Client:
    """A Bitbucket REST client.

    Every method accepts an optional ``timeout`` that overrides the HTTP
    client's default for that call.
    """

    def __init__(self, http: HTTPClient, instance: Instance = DEFAULT_INSTANCE):
        self.http = http
        self.instance = instance

    def rest_url(self, hostname: str, path: str) -> str:
        """Return the full REST URL for a path relative to the host's API root."""
        return self.instance.rest_prefix(hostname) + path.lstrip("/")

    def _send(
        self, method: str, url: str, body: Body, timeout: float | None
    ) -> requests.Response:
        headers = {ACCEPT: JSON_MEDIA_TYPE}
        if body is not None:
            headers[CONTENT_TYPE] = JSON_MEDIA_TYPE
        data = body.encode("utf-8") if isinstance(body, str) else body

        logger.debug(f"{method} {url}")
        response = self.http.request(method, url, data=data, headers=headers, timeout=timeout)
        if not 200 <= response.status_code < 300:
            raise handle_http_error(response)
        return response

    def rest(
        self,
        hostname: str,
        method: str,
        path: str,
        body: Body = None,
        decode: bool = True,
        timeout: float | None = None,
    ) -> Any:
        """Perform a REST request and return the decoded JSON body.

        Args:
            hostname: Bitbucket host (e.g. "bitbucket.org")
            method: HTTP method
            path: Path relative to the REST API root
            body: Raw JSON request body
            decode: Whether to decode the response body
            timeout: Per-call timeout in seconds

        Returns:
            The decoded JSON value, or None for 204 responses or decode=False.

        Raises:
            HTTPError: If the response status is not 2xx.
            requests.RequestException: On transport failures.
            ValueError: If the response body is not valid JSON.
        """
        return self.rest_with_url(method, self.rest_url(hostname, path), body, decode, timeout)

    def rest_with_url(
        self,
        method: str,
        url: str,
        body: Body = None,
        decode: bool = True,
        timeout: float | None = None,
    ) -> Any:
        """Like rest() but targets a full URL."""
        response = self._send(method, url, body, timeout)
        if response.status_code == 204 or not decode:
            return None
        return response.json()

    def rest_with_next(
        self,
        hostname: str,
        method: str,
        path: str,
        body: Body = None,
        decode: bool = True,
        timeout: float | None = None,
    ) -> tuple[Any, str]:
        """Perform a REST request and also return the next page URL.

        Returns:
            Tuple of (decoded body, next page URL). The URL is "" when the
            body has no usable "next" field.
        """
        url = self.rest_url(hostname, path)
        return self.rest_with_next_url(method, url, body, decode, timeout)

    def rest_with_next_url(
        self,
        method: str,
        url: str,
        body: Body = None,
        decode: bool = True,
        timeout: float | None = None,
    ) -> tuple[Any, str]:
        """Like rest_with_next() but targets a full URL."""
        response = self._send(method, url, body, timeout)
        if response.status_code == 204:
            return None, ""

        content = response.content
        data = json.loads(content) if decode else None
        return data, next_page_url(content)

    def iter_pages(
        self, hostname: str, path: str, timeout: float | None = None
    ) -> Iterator[Any]:
        """Yield each page of a paginated GET, following "next" links."""
        data, next_url = self.rest_with_next(hostname, "GET", path, timeout=timeout)
        yield data
        while next_url:
            data, next_url = self.rest_with_next_url("GET", next_url, timeout=timeout)
            yield data

    def get(self, hostname: str, path: str, timeout: float | None = None) -> Any:
        """Perform a GET request."""
        return self.rest(hostname, "GET", path, timeout=timeout)

    def post(
        self, hostname: str, path: str, payload: Any = None, timeout: float | None = None
    ) -> Any:
        """Perform a POST request with a JSON-encoded payload."""
        return self.rest(hostname, "POST", path, _json_body(payload), timeout=timeout)

    def put(
        self, hostname: str, path: str, payload: Any = None, timeout: float | None = None
    ) -> Any:
        """Perform a PUT request with a JSON-encoded payload."""
        return self.rest(hostname, "PUT", path, _json_body(payload), timeout=timeout)

    def patch(
        self, hostname: str, path: str, payload: Any = None, timeout: float | None = None
    ) -> Any:
        """Perform a PATCH request with a JSON-encoded payload."""
        return self.rest(hostname, "PATCH", path, _json_body(payload), timeout=timeout)

    def delete(self, hostname: str, path: str, timeout: float | None = None) -> None:
        """Perform a DELETE request."""
        self.rest(hostname, "DELETE", path, decode=False, timeout=timeout)


def _json_body(payload: Any) -> str | None:
    if payload is None:
        return None
    return json.dumps(payload)


def current_login_name(client: Client, hostname: str) -> str:
    """Return the username of the authenticated user (GET /user)."""
    user = client.get(hostname, "user")
    return user.get("username", "") if isinstance(user, dict) else ""
