"""Network capture registry for connector-defined response interests.

Connectors register interest in API responses (by URL substring and,
optionally, request-body substrings). Every response on the live page is
matched against the registrations and JSON bodies of matching responses are
stored per key. A later match always replaces an earlier one.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from playwright.async_api import Page, Response

from ..errors import CaptureParseError
from ..models.run import CaptureRegistration, CapturedResponse

logger = logging.getLogger(__name__)


CaptureCallback = Callable[[str, CapturedResponse], None]


class NetworkCaptureRegistry:
    """Per-run table of capture registrations and their latest responses."""

    def __init__(self):
        self.registrations: Dict[str, CaptureRegistration] = {}
        self.responses: Dict[str, CapturedResponse] = {}
        self._callbacks: List[CaptureCallback] = []
        self._pending: Set[asyncio.Task] = set()

    def add_callback(self, callback: CaptureCallback) -> None:
        """Add callback called with ``(key, captured)`` on every capture update."""
        self._callbacks.append(callback)

    def attach(self, page: Page) -> None:
        """Install the response listener on a (new) page.

        Registrations and stored responses are kept, so calling this after a
        browser relaunch resumes capturing where the old page left off.
        """
        page.on("response", self._on_response)
        logger.debug("Network capture listener attached")

    def register(self, key: str, url_pattern: str = "", body_pattern: str = "") -> CaptureRegistration:
        registration = CaptureRegistration(key=key, url_pattern=url_pattern, body_pattern=body_pattern)
        self.registrations[key] = registration
        logger.info(f"Registered network capture: {key}")
        return registration

    def get(self, key: str) -> Optional[CapturedResponse]:
        return self.responses.get(key)

    def has(self, key: str) -> bool:
        return key in self.responses

    def clear(self) -> None:
        """Drop all registrations and captured responses."""
        self.registrations.clear()
        self.responses.clear()
        logger.debug("Network captures cleared")

    def _on_response(self, response: Response) -> None:
        # Playwright calls listeners synchronously; body reads need the loop.
        task = asyncio.get_running_loop().create_task(self.process_response(response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _request_body(self, response: Response) -> Optional[str]:
        try:
            return response.request.post_data
        except Exception as e:
            # Binary post bodies cannot be decoded as text.
            logger.debug(f"Failed to read request body: {e}")
            return None

    async def _parse_json(self, response: Response):
        try:
            return await response.json()
        except Exception as e:
            raise CaptureParseError(f"Response from {response.url} is not JSON: {e}") from e

    async def process_response(self, response: Response) -> List[str]:
        """Match a response against all registrations and store JSON matches.

        Args:
            response: Playwright response

        Returns:
            Keys whose captured value was updated
        """
        if not self.registrations:
            return []

        url = response.url
        request_body = self._request_body(response)
        matching = [
            registration for registration in list(self.registrations.values())
            if registration.matches(url, request_body)
        ]
        if not matching:
            return []

        try:
            data = await self._parse_json(response)
        except CaptureParseError as e:
            logger.debug(str(e))
            return []

        if data is None:
            return []

        updated = []
        for registration in matching:
            # Registrations may have been cleared while the body was read.
            if self.registrations.get(registration.key) is not registration:
                continue
            captured = CapturedResponse(url=url, data=data)
            self.responses[registration.key] = captured
            updated.append(registration.key)
            logger.debug(f"Captured response for {registration.key}: {url}")

            for callback in self._callbacks:
                try:
                    callback(registration.key, captured)
                except Exception as e:
                    logger.error(f"Error in capture callback: {e}")

        return updated

    async def wait_for_pending(self) -> None:
        """Wait until all in-flight response processing has finished."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def __repr__(self) -> str:
        return (
            f"NetworkCaptureRegistry(registrations={len(self.registrations)}, "
            f"captured={len(self.responses)})"
        )
