"""
Test doubles: scripted in-memory transport, instant sleep, synthetic .bi5 builders.
"""

from __future__ import annotations
import asyncio
import lzma
import struct
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple, Union

from archive.errors import TransportError
from archive.transport import TransportRequest, TransportResponse

BASE_URL = "http://archive.test/datafeed"

# (offset_ms, ask, bid, ask_volume, bid_volume)
Record = Tuple[int, int, int, float, float]
Scripted = Union[TransportResponse, Exception]


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def pack_records(records: Sequence[Record]) -> bytes:
    return b"".join(struct.pack(">IIIff", *r) for r in records)


def build_bi5(records: Sequence[Record]) -> bytes:
    return lzma.compress(pack_records(records), format=lzma.FORMAT_ALONE)


def ok(body: bytes) -> TransportResponse:
    return TransportResponse(status=200, body=body)


def status(code: int) -> TransportResponse:
    return TransportResponse(status=code)


def reset() -> TransportError:
    return TransportError("ConnectionResetError: connection reset by peer")


class FakeTransport:
    """
    Scripted transport. Each URL maps to a list of responses consumed in order;
    the last one repeats. Unscripted URLs answer 404.
    """

    def __init__(
        self,
        script: Optional[Dict[str, List[Scripted]]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.script = {url: list(items) for url, items in (script or {}).items()}
        self.delays = delays or {}
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, request: TransportRequest) -> TransportResponse:
        self.calls.append(request.url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(request.url, 0))
            items = self.script.get(request.url)
            if not items:
                return TransportResponse(status=404)
            item = items.pop(0) if len(items) > 1 else items[0]
            if isinstance(item, Exception):
                raise item
            return item
        finally:
            self.in_flight -= 1

    def count(self, url: str) -> int:
        return self.calls.count(url)


class RecordingSleep:
    """Stands in for asyncio.sleep, records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)
