"""Direct HTTP requests for background (browser-closed) data collection.

``HttpFetcher.fetch`` never raises: transport failures, timeouts and invalid
URLs all come back as an ``HttpFetchResult`` with ``ok=False`` and an error
message, so connectors can branch on the result instead of wrapping every
call in a try block.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Union

import httpx

from ..errors import HttpFetchError
from ..models.run import CookieSet

logger = logging.getLogger(__name__)


@dataclass
class HttpFetchResult:
    """Outcome of an ``http_fetch`` call."""
    ok: bool
    status: int = 0
    headers: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    json: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class HttpFetcher:
    """Performs HTTP requests with cookies taken from a closed browser."""

    def __init__(
        self,
        default_timeout_ms: int = 30000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize fetcher.

        Args:
            default_timeout_ms: Timeout used when a call does not pass one
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.default_timeout_ms = default_timeout_ms
        self.transport = transport

    def _build_headers(
        self,
        url: str,
        headers: Optional[Dict[str, str]],
        cookies: Optional[CookieSet],
    ) -> Dict[str, str]:
        request_headers = dict(headers or {})
        if cookies is not None and len(cookies) > 0:
            cookie_header = cookies.header_for(url)
            if cookie_header:
                # Drop any caller-supplied variant so the session cookies win.
                for name in [h for h in request_headers if h.lower() == "cookie"]:
                    del request_headers[name]
                request_headers["cookie"] = cookie_header
        return request_headers

    async def _send(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Optional[Union[str, bytes]],
        timeout_ms: int,
    ) -> httpx.Response:
        timeout = timeout_ms / 1000.0
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                # httpx timeouts apply per phase; the whole exchange gets one deadline.
                return await asyncio.wait_for(self._exchange(client, url, method, headers, body), timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise HttpFetchError(f"Request timed out after {timeout_ms}ms") from e
        except httpx.HTTPError as e:
            raise HttpFetchError(str(e) or e.__class__.__name__) from e
        except Exception as e:
            # httpx raises plain ValueError/TypeError for some malformed input.
            raise HttpFetchError(str(e) or e.__class__.__name__) from e

    @staticmethod
    async def _exchange(
        client: httpx.AsyncClient,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Optional[Union[str, bytes]],
    ) -> httpx.Response:
        response = await client.request(method.upper(), url, headers=headers, content=body)
        await response.aread()
        return response

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Union[str, bytes, Dict[str, Any], list]] = None,
        timeout_ms: Optional[int] = None,
        cookies: Optional[CookieSet] = None,
    ) -> HttpFetchResult:
        """Perform a request without the browser.

        Args:
            url: Absolute URL
            method: HTTP method
            headers: Extra request headers
            body: Request body; dicts and lists are sent as JSON
            timeout_ms: Request timeout, defaults to the fetcher's default
            cookies: Cookies from the closed browser; those whose domain
                matches the URL host are sent in a ``cookie`` header

        Returns:
            Result object; never raises
        """
        timeout_ms = timeout_ms or self.default_timeout_ms
        url_repr = str(url)[:100]

        try:
            request_headers = self._build_headers(url, headers, cookies)
            if isinstance(body, (dict, list)):
                body = json.dumps(body)
                if not any(h.lower() == "content-type" for h in request_headers):
                    request_headers["content-type"] = "application/json"
            response = await self._send(url, method, request_headers, body, timeout_ms)
        except HttpFetchError as e:
            logger.debug(f"[http_fetch] {method} {url_repr} failed: {e}")
            return HttpFetchResult(ok=False, error=str(e))
        except Exception as e:
            logger.debug(f"[http_fetch] {method} {url_repr} failed: {e}")
            return HttpFetchResult(ok=False, error=str(e) or e.__class__.__name__)

        text = response.text
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None

        if not response.is_success:
            logger.warning(f"[http_fetch] {response.status_code} {response.reason_phrase} for {url_repr}")
            logger.debug(f"[http_fetch] Response body (first 200 chars): {text[:200]}")

        return HttpFetchResult(
            ok=response.is_success,
            status=response.status_code,
            headers=dict(response.headers),
            text=text,
            json=parsed,
            error=None,
        )
