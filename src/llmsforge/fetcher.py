"""HTTP fetcher for third-party documentation sites.

All network I/O goes through a single Fetcher instance shared across
requests. The Fetcher receives an httpx.AsyncClient via constructor
injection; the application lifespan owns the client lifecycle.

Redirects are followed by hand so that every hop can be checked against the
private-network blocklist before a request is made.
"""

from __future__ import annotations

import ipaddress
from urllib.parse import urljoin, urlparse

import httpx
import structlog

from llmsforge.config import FetcherSettings
from llmsforge.errors import ErrorCode, LlmsForgeError

log = structlog.get_logger()

PRIVATE_NETWORKS: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
]

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
XML_ACCEPT = "application/xml, text/xml, */*"


def build_http_client(settings: FetcherSettings | None = None) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    settings = settings or FetcherSettings()
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
        ),
    )


def is_private_host(url: str) -> bool:
    """Return True when the URL targets a literal private or loopback address.

    Hostnames are not resolved; only IP literals are checked.
    """
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return False  # unparseable; httpx rejects it when the request is built
    if hostname == "localhost":
        return True
    try:
        addr = ipaddress.ip_address(hostname)
    except ValueError:
        return False  # hostname is a domain name, not an IP
    return any(addr in net for net in PRIVATE_NETWORKS)


class Fetcher:
    """HTTP fetcher with per-hop redirect validation."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: FetcherSettings | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or FetcherSettings()

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Issue a request, following redirects manually.

        Returns the final non-redirect response whatever its status. Raises
        LlmsForgeError for blocked hosts, redirect loops and network errors.
        """
        current_url = url
        max_redirects = self._settings.max_redirects

        try:
            for hop in range(max_redirects + 1):
                if self._settings.block_private_ips and is_private_host(current_url):
                    log.warning("private_host_blocked", url=current_url)
                    raise LlmsForgeError(
                        code=ErrorCode.URL_NOT_ALLOWED,
                        message=f"URL targets a private network address: {current_url}",
                        suggestion="Only publicly reachable documentation sites can be fetched.",
                        recoverable=False,
                    )

                response = await self._client.request(method, current_url, headers=headers)

                if response.is_redirect and "location" in response.headers:
                    if hop == max_redirects:
                        break
                    current_url = urljoin(current_url, response.headers["location"])
                    continue

                return response

        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise LlmsForgeError(
                code=ErrorCode.PAGE_FETCH_FAILED,
                message=f"Network error fetching {url}: {exc}",
                suggestion="The site may be unreachable or too slow to respond.",
                recoverable=True,
            ) from exc

        raise LlmsForgeError(
            code=ErrorCode.PAGE_FETCH_FAILED,
            message=f"Too many redirects fetching {url}",
            suggestion="The URL has an unusually long redirect chain.",
            recoverable=False,
        )

    async def fetch(self, url: str, *, accept: str = HTML_ACCEPT) -> str:
        """GET a URL and return its body text.

        Raises LlmsForgeError on blocked hosts, network errors and non-2xx
        responses. The message always names the URL and, for HTTP failures,
        the status code.
        """
        response = await self._request("GET", url, headers={"Accept": accept})

        if not response.is_success:
            if response.status_code == 404:
                raise LlmsForgeError(
                    code=ErrorCode.PAGE_NOT_FOUND,
                    message=f"HTTP 404 fetching {url}",
                    suggestion="The requested page does not exist at this URL.",
                    recoverable=False,
                )
            raise LlmsForgeError(
                code=ErrorCode.PAGE_FETCH_FAILED,
                message=f"HTTP {response.status_code} fetching {url}",
                suggestion="The site may be temporarily unavailable.",
                recoverable=True,
            )

        log.debug(
            "fetch_complete",
            url=url,
            status_code=response.status_code,
            content_length=len(response.text),
        )
        return response.text

    async def probe(self, url: str) -> httpx.Response | None:
        """HEAD a URL, falling back to GET. Returns the 2xx response or None.

        GET is retried when HEAD fails at the network level or the server
        rejects the method (405/501). Never raises.
        """
        try:
            response = await self._request("HEAD", url)
            if response.status_code not in (405, 501):
                return response if response.is_success else None
        except LlmsForgeError as exc:
            if exc.code == ErrorCode.URL_NOT_ALLOWED:
                return None
            log.debug("probe_head_failed", url=url, error=exc.message)

        try:
            response = await self._request("GET", url)
        except LlmsForgeError as exc:
            log.debug("probe_get_failed", url=url, error=exc.message)
            return None
        return response if response.is_success else None

    async def exists(self, url: str) -> bool:
        """Return True when the URL answers with a 2xx status."""
        return await self.probe(url) is not None
