"""
Segment Addressing - Maps (instrument, hour) to the archive URL and decode params.
Pure: no I/O, same inputs always give the same outputs.
"""

from __future__ import annotations
from datetime import datetime
from typing import Tuple, Union

from archive.instruments import InstrumentRegistry
from archive.models import DecodeParams, Instrument, SegmentKey, floor_hour
from archive.transport import DEFAULT_BASE_URL


class SegmentAddressing:
    """Resolves hourly segments to locators on the archive."""

    def __init__(self, registry: InstrumentRegistry, base_url: str = DEFAULT_BASE_URL):
        self.registry = registry
        self.base_url = base_url.rstrip("/")

    def resolve(
        self,
        instrument: Union[Instrument, str],
        hour: datetime,
    ) -> Tuple[str, DecodeParams]:
        """
        Return (url, decode_params) for one hour of ticks.
        Raises UnknownInstrument if the symbol is not in the registry.
        """
        symbol = instrument if isinstance(instrument, str) else instrument.symbol
        # Always go through the registry so the table stays the source of truth
        known = self.registry.lookup(symbol)
        return self.url_for(known.symbol, hour), DecodeParams(price_scale=known.price_scale)

    def resolve_key(self, key: SegmentKey) -> Tuple[str, DecodeParams]:
        return self.resolve(key.instrument, key.hour)

    def url_for(self, symbol: str, hour: datetime) -> str:
        """
        Format: {base}/EURUSD/2020/02/12/01h_ticks.bi5
        The archive numbers months from 0.
        """
        h = floor_hour(hour)
        return (
            f"{self.base_url}/{symbol.upper()}/"
            f"{h.year:04d}/{h.month - 1:02d}/{h.day:02d}/"
            f"{h.hour:02d}h_ticks.bi5"
        )
