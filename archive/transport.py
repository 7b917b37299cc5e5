"""
Archive Transport - HTTP boundary used to pull raw segment bytes.
The pipeline only depends on the Transport protocol; AiohttpTransport is the default.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol
import aiohttp
import logging

from archive.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://datafeed.dukascopy.com/datafeed"


@dataclass(frozen=True)
class TransportRequest:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TransportResponse:
    status: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Anything that can perform one GET and report status + body."""

    async def send(self, request: TransportRequest) -> TransportResponse:
        ...


class AiohttpTransport:
    """Shared aiohttp session, safe for concurrent sends."""

    def __init__(self, user_agent: str = "dukafeed/0.1"):
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": self.user_agent})
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "AiohttpTransport":
        await self._get_session()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def send(self, request: TransportRequest) -> TransportResponse:
        session = await self._get_session()
        try:
            async with session.request(request.method, request.url, headers=request.headers) as resp:
                body = await resp.read()
                return TransportResponse(status=resp.status, body=body)
        except aiohttp.ClientError as e:
            logger.debug(f"[HTTP] {request.method} {request.url} failed: {e}")
            raise TransportError(f"{type(e).__name__}: {e}") from e
