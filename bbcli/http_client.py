"""HTTP transport chain for talking to the Bitbucket API.

Requests pass through a fixed stack of interceptors before reaching the
network. Innermost first:

    SessionTransport -> HeaderInterceptor -> LoggingInterceptor -> BasicAuthInterceptor

Every stage exposes ``round_trip(request) -> requests.Response``. Redirects
are followed by ``HTTPClient`` rather than by requests itself, so that each
hop passes through the whole chain with an explicit back-reference to the
request that preceded it.
"""

from __future__ import annotations

import base64
import sys
from dataclasses import dataclass
from http import HTTPStatus
from typing import Protocol, TextIO
from urllib.parse import urljoin, urlsplit

import requests

from bbcli.instance import DEFAULT_INSTANCE, Instance
from bbcli.logger import Colors, get_logger

logger = get_logger(__name__)

ACCEPT = "Accept"
AUTHORIZATION = "Authorization"
CONTENT_TYPE = "Content-Type"
USER_AGENT = "User-Agent"

JSON_MEDIA_TYPE = "application/json"

DEFAULT_TIMEOUT = 30
MAX_REDIRECTS = 10

REDACTED_VALUE = "[REDACTED]"


class TokenGetter(Protocol):
    def active_token(self, hostname: str) -> tuple[str, str]: ...


class TooManyRedirectsError(requests.TooManyRedirects):
    """Raised when a response chain exceeds the redirect limit."""

    pass


@dataclass
class OutgoingRequest:
    """A request on its way through the transport chain.

    Attributes:
        prepared: The request to send. Interceptors may modify its headers.
        previous: The request whose redirect response produced this one,
                  or None for the initial request.
        timeout: Timeout in seconds for this hop.
    """

    prepared: requests.PreparedRequest
    previous: OutgoingRequest | None = None
    timeout: float = DEFAULT_TIMEOUT

    @property
    def host(self) -> str:
        return request_host(self.prepared)


def request_host(prepared: requests.PreparedRequest) -> str:
    """Return the host a request is addressed to, honouring a Host header."""
    host = prepared.headers.get("Host")
    if host:
        return host.lower()
    return urlsplit(prepared.url or "").netloc.rpartition("@")[2].lower()


def status_text(status_code: int) -> str:
    """Return the standard reason phrase for a status code, or "" if unknown."""
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def redirect_changed_host(request: OutgoingRequest) -> bool:
    """Return True if request is a redirect hop to a different host."""
    if request.previous is None:
        return False
    return request.host != request.previous.host


class RoundTripper(Protocol):
    def round_trip(self, request: OutgoingRequest) -> requests.Response: ...


class SessionTransport:
    """Base transport that sends a single request over a requests.Session."""

    def __init__(self, session: requests.Session | None = None):
        self.session = session or requests.Session()

    def round_trip(self, request: OutgoingRequest) -> requests.Response:
        prepared = request.prepared
        settings = self.session.merge_environment_settings(prepared.url, {}, None, None, None)
        return self.session.send(
            prepared,
            allow_redirects=False,
            timeout=request.timeout,
            **settings,
        )


class HeaderInterceptor:
    """Sets default headers that the caller did not set."""

    def __init__(self, base: RoundTripper, headers: dict[str, str]):
        self.base = base
        self.headers = headers

    def round_trip(self, request: OutgoingRequest) -> requests.Response:
        for key, value in self.headers.items():
            if not request.prepared.headers.get(key):
                request.prepared.headers[key] = value
        return self.base.round_trip(request)


class LoggingInterceptor:
    """Writes a trace of each request and response to a stream.

    The Authorization header value is never written; verbose output shows
    [REDACTED] in its place.
    """

    def __init__(
        self,
        base: RoundTripper,
        out: TextIO,
        verbose: bool = False,
        colorize: bool = False,
    ):
        self.base = base
        self.out = out
        self.verbose = verbose
        self.colorize = colorize

    def _write(self, line: str, color: str = "") -> None:
        if self.colorize and color:
            line = f"{color}{line}{Colors.RESET}"
        self.out.write(line + "\n")

    def round_trip(self, request: OutgoingRequest) -> requests.Response:
        prepared = request.prepared
        self._write(f"* Request: {prepared.method} {prepared.url}", Colors.CYAN)
        if self.verbose:
            for key, value in prepared.headers.items():
                if key.lower() == AUTHORIZATION.lower():
                    value = REDACTED_VALUE
                self._write(f"> {key}: {value}")

        try:
            response = self.base.round_trip(request)
        except requests.RequestException as e:
            self._write(f"* Error: {e}", Colors.RED)
            raise

        reason = response.reason or status_text(response.status_code)
        status_line = f"* Response: {response.status_code} {reason}"
        self._write(status_line.rstrip(), Colors.CYAN)
        if self.verbose:
            for key, value in response.headers.items():
                self._write(f"< {key}: {value}")
        return response


class BasicAuthInterceptor:
    """Adds a Basic Authorization header for the request's host.

    Credentials are only attached to an initial request or to a redirect hop
    that stays on the same host. A header the caller already set is left
    untouched.
    """

    def __init__(
        self,
        base: RoundTripper,
        config: TokenGetter,
        instance: Instance = DEFAULT_INSTANCE,
    ):
        self.base = base
        self.config = config
        self.instance = instance

    def round_trip(self, request: OutgoingRequest) -> requests.Response:
        headers = request.prepared.headers
        if not headers.get(AUTHORIZATION):
            if redirect_changed_host(request):
                logger.debug(f"Not sending credentials on redirect to {request.host}")
            else:
                hostname = self.instance.normalize_hostname(request.host)
                token, _ = self.config.active_token(hostname)
                if token:
                    encoded = base64.b64encode(token.encode("utf-8")).decode("ascii")
                    headers[AUTHORIZATION] = f"Basic {encoded}"
        return self.base.round_trip(request)


class HTTPClient:
    """Dispatches requests through a transport chain and follows redirects.

    The caller's request is copied for every hop so headers added by
    interceptors never leak into the next hop.
    """

    def __init__(
        self,
        transport: RoundTripper,
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
    ):
        self.transport = transport
        self.timeout = timeout
        self.max_redirects = max_redirects

    def send(
        self, prepared: requests.PreparedRequest, timeout: float | None = None
    ) -> requests.Response:
        """Send a request, following redirects.

        Args:
            prepared: The request to send. It is not modified.
            timeout: Per-call timeout overriding the client default.

        Returns:
            The final non-redirect response. Earlier responses are in
            response.history.

        Raises:
            requests.RequestException: On transport failures.
            TooManyRedirectsError: If more than max_redirects redirects occur.
        """
        timeout = self.timeout if timeout is None else timeout
        current = prepared
        previous: OutgoingRequest | None = None
        history: list[requests.Response] = []

        while True:
            outgoing = OutgoingRequest(current.copy(), previous=previous, timeout=timeout)
            response = self.transport.round_trip(outgoing)
            if not response.is_redirect:
                response.history = history
                return response

            if len(history) >= self.max_redirects:
                response.close()
                raise TooManyRedirectsError(
                    f"Exceeded {self.max_redirects} redirects", response=response
                )

            history.append(response)
            response.close()
            current = _redirect_request(current, response)
            previous = outgoing

    def request(
        self,
        method: str,
        url: str,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> requests.Response:
        """Build and send a request."""
        prepared = requests.Request(method, url, data=data, headers=headers or {}).prepare()
        return self.send(prepared, timeout=timeout)


def _redirect_request(
    original: requests.PreparedRequest, response: requests.Response
) -> requests.PreparedRequest:
    """Build the next hop from a redirect response."""
    location = response.headers["Location"]
    base_url = response.url or original.url or ""
    next_request = original.copy()
    next_request.prepare_url(urljoin(base_url, location), None)

    method = (original.method or "GET").upper()
    status = response.status_code
    if (status == 303 and method != "HEAD") or (status in (301, 302) and method == "POST"):
        next_request.method = "GET"
        next_request.body = None
        for header in (CONTENT_TYPE, "Content-Length", "Transfer-Encoding"):
            next_request.headers.pop(header, None)

    if request_host(next_request) != request_host(original):
        next_request.headers.pop(AUTHORIZATION, None)
    return next_request


def new_http_client(
    config: TokenGetter | None = None,
    app_version: str = "DEV",
    log: TextIO | None = None,
    verbose: bool = False,
    debug: bool = False,
    colorize: bool = False,
    skip_default_headers: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    instance: Instance = DEFAULT_INSTANCE,
    base: RoundTripper | None = None,
) -> HTTPClient:
    """Build an HTTPClient with the standard interceptor chain.

    Args:
        config: Source of credentials. When None, no Authorization header is
                ever added.
        app_version: Version string for the User-Agent header
        log: Stream for request tracing. Defaults to stderr.
        verbose: Log request and response headers
        debug: Log request lines even when not verbose
        colorize: Use ANSI colors in the trace
        skip_default_headers: Do not add User-Agent/Accept defaults
        timeout: Default timeout in seconds
        instance: Bitbucket instance used to normalize hostnames
        base: Innermost transport. Defaults to a SessionTransport.

    Returns:
        A configured HTTPClient.
    """
    transport: RoundTripper = base or SessionTransport()

    if not skip_default_headers:
        transport = HeaderInterceptor(
            transport,
            {
                USER_AGENT: f"Bitbucket CLI {app_version}",
                ACCEPT: JSON_MEDIA_TYPE,
            },
        )

    if verbose or debug:
        transport = LoggingInterceptor(
            transport,
            log if log is not None else sys.stderr,
            verbose=verbose,
            colorize=colorize,
        )

    if config is not None:
        transport = BasicAuthInterceptor(transport, config, instance=instance)

    return HTTPClient(transport, timeout=timeout)
