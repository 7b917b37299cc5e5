"""
Instrument Registry - Static symbol -> price scale / point value table.
The archive stores prices as integers; price_scale turns them back into decimals.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from archive.errors import UnknownInstrument
from archive.models import Instrument

logger = logging.getLogger(__name__)

# symbol -> (price_scale, point_value)
DEFAULT_INSTRUMENTS: Dict[str, Tuple[int, str]] = {
    # FX majors and crosses (5 digits)
    "EURUSD": (100_000, "0.0001"),
    "GBPUSD": (100_000, "0.0001"),
    "USDCHF": (100_000, "0.0001"),
    "AUDUSD": (100_000, "0.0001"),
    "USDCAD": (100_000, "0.0001"),
    "NZDUSD": (100_000, "0.0001"),
    "EURGBP": (100_000, "0.0001"),
    "EURCHF": (100_000, "0.0001"),
    "EURAUD": (100_000, "0.0001"),
    "GBPCHF": (100_000, "0.0001"),
    "AUDNZD": (100_000, "0.0001"),
    # JPY crosses (3 digits)
    "USDJPY": (1_000, "0.01"),
    "EURJPY": (1_000, "0.01"),
    "GBPJPY": (1_000, "0.01"),
    "AUDJPY": (1_000, "0.01"),
    "CHFJPY": (1_000, "0.01"),
    "CADJPY": (1_000, "0.01"),
    # Metals
    "XAUUSD": (1_000, "0.01"),
    "XAGUSD": (1_000, "0.001"),
    # Crypto
    "BTCUSD": (10, "1"),
    "ETHUSD": (10, "0.1"),
    # Index CFDs
    "USA500IDXUSD": (1_000, "0.1"),
    "USATECHIDXUSD": (1_000, "0.1"),
    "DEUIDXEUR": (1_000, "0.1"),
}


class InstrumentRegistry:
    """Read-only lookup of instrument metadata, keyed by upper-case symbol."""

    def __init__(self, instruments: Optional[Iterable[Instrument]] = None):
        self._instruments: Dict[str, Instrument] = {}
        if instruments is None:
            instruments = [
                Instrument(symbol=symbol, price_scale=scale, point_value=Decimal(point))
                for symbol, (scale, point) in DEFAULT_INSTRUMENTS.items()
            ]
        for instrument in instruments:
            self.register(instrument)

    @property
    def symbols(self) -> List[str]:
        return sorted(self._instruments)

    def register(self, instrument: Instrument):
        """Add or replace an instrument entry."""
        if instrument.price_scale <= 0:
            raise ValueError(f"price_scale must be positive for {instrument.symbol}")
        self._instruments[instrument.symbol.upper()] = instrument

    def lookup(self, symbol: str) -> Instrument:
        instrument = self._instruments.get(symbol.upper())
        if instrument is None:
            logger.error(f"[INSTRUMENT] Unknown symbol: {symbol}")
            raise UnknownInstrument(symbol)
        return instrument

    def __contains__(self, symbol: str) -> bool:
        return symbol.upper() in self._instruments
