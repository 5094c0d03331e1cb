# network.py
import logging
import uuid
from dataclasses import replace
from typing import Optional, Dict, List, Tuple

from playwright.async_api import Page, Route, Request, Response, Error as PlaywrightError

from .models import NetworkRequest, NetworkResponse
from .utils import now_ms, is_relevant_request, should_log_response, short_url

logger = logging.getLogger(__name__)


class NetworkMonitor:
    """Observe-only request interception; every request is always continued"""

    def __init__(self, page: Page):
        self.page = page
        self.recording = False
        self.started = False
        self.start_ms = now_ms()
        self._requests: List[NetworkRequest] = []
        self._ids: Dict[Request, str] = {}
        self._responses: Dict[str, NetworkResponse] = {}

    async def start(self, start_ms: Optional[int] = None):
        self.start_ms = start_ms if start_ms is not None else now_ms()
        await self.page.route("**/*", self.handle_route)
        self.page.on('response', self.handle_response)
        self.recording = True
        self.started = True
        logger.debug("Network monitoring started")

    async def stop(self):
        self.recording = False
        if not self.started:
            return
        self.started = False
        self.page.remove_listener('response', self.handle_response)
        try:
            await self.page.unroute("**/*", self.handle_route)
        except PlaywrightError as e:
            logger.debug(f"Unroute failed: {e}")
        logger.debug(f"Network monitoring stopped ({len(self._requests)} requests retained)")

    async def handle_route(self, route: Route):
        try:
            if self.recording:
                self.record(route.request)
        except Exception as e:
            logger.debug(f"Request capture failed: {e}")
        finally:
            await self._continue(route)

    async def _continue(self, route: Route):
        try:
            await route.continue_()
        except PlaywrightError as e:
            logger.debug(f"Could not continue {short_url(route.request.url)}: {e}")

    def record(self, request: Request) -> Optional[NetworkRequest]:
        if not is_relevant_request(request.url, request.method):
            return None
        try:
            body = request.post_data
        except (UnicodeDecodeError, PlaywrightError):
            body = None
        entry = NetworkRequest(
            id=str(uuid.uuid4()),
            timestamp=max(now_ms() - self.start_ms, 0),
            url=request.url,
            method=request.method,
            headers=dict(request.headers),
            body=body,
            resource_type=request.resource_type,
        )
        self._requests.append(entry)
        self._ids[request] = entry.id
        logger.debug(f"{entry.method} {short_url(entry.url)}")
        return entry

    def handle_response(self, response: Response):
        request = response.request
        request_id = self._ids.get(request)
        if request_id:
            self._responses[request_id] = NetworkResponse(status=response.status, headers=dict(response.headers))
        if should_log_response(response.url) and request.resource_type != 'image':
            logger.info(f"API response: {response.status} {short_url(response.url)}")

    def __len__(self) -> int:
        return len(self._requests)

    def requests(self) -> Tuple[NetworkRequest, ...]:
        """Retained requests with their responses attached"""
        return tuple(
            replace(entry, response=self._responses[entry.id]) if entry.id in self._responses else entry
            for entry in self._requests
        )

    def trim(self, threshold: int, keep: int) -> int:
        if len(self._requests) <= threshold:
            return 0
        removed = len(self._requests) - keep
        self._requests = self._requests[-keep:]
        live = {entry.id for entry in self._requests}
        self._ids = {request: request_id for request, request_id in self._ids.items() if request_id in live}
        self._responses = {request_id: response for request_id, response in self._responses.items() if request_id in live}
        return removed
