"""
Segment Decoder - LZMA-compressed .bi5 bytes -> list of Ticks for one hour.

Record layout (20 bytes, big-endian):
    u32  ms offset from hour start
    u32  ask (integer, divide by price_scale)
    u32  bid (integer, divide by price_scale)
    f32  ask volume
    f32  bid volume
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List
import logging
import lzma
import struct

from archive.errors import DecompressionError, MalformedSegmentError
from archive.models import DecodeParams, RawSegment, Tick, floor_hour, to_epoch_ms

logger = logging.getLogger(__name__)

RECORD_STRUCT = struct.Struct(">IIIff")


class SegmentDecoder:
    """Stateless decoder for hourly tick segments."""

    def decode(self, data: bytes, params: DecodeParams, hour: datetime) -> List[Tick]:
        """
        Decompress and decode one segment. Ticks keep file order.
        Raises DecompressionError or MalformedSegmentError; never returns a partial decode.
        """
        if params.record_width != RECORD_STRUCT.size:
            raise ValueError(
                f"Unsupported record width {params.record_width}, expected {RECORD_STRUCT.size}"
            )

        buf = self.decompress(data, hour)

        if len(buf) % params.record_width != 0:
            raise MalformedSegmentError(
                f"Decompressed length {len(buf)} is not a multiple of {params.record_width}",
                hour=hour,
            )

        base_ms = to_epoch_ms(floor_hour(hour))
        scale = Decimal(params.price_scale)

        ticks = [
            Tick(
                timestamp=base_ms + offset,
                bid=Decimal(bid) / scale,
                ask=Decimal(ask) / scale,
                bid_volume=bid_volume,
                ask_volume=ask_volume,
            )
            for offset, ask, bid, ask_volume, bid_volume in RECORD_STRUCT.iter_unpack(buf)
        ]

        logger.debug(f"[DECODE] {hour:%Y-%m-%d %H}h: {len(ticks)} ticks from {len(data)} bytes")
        return ticks

    def decode_segment(self, segment: RawSegment, params: DecodeParams) -> List[Tick]:
        return self.decode(segment.data, params, segment.key.hour)

    @staticmethod
    def decompress(data: bytes, hour: datetime) -> bytes:
        """Exactly one complete LZMA stream; truncation or trailing bytes are errors."""
        decompressor = lzma.LZMADecompressor()
        try:
            buf = decompressor.decompress(data)
        except lzma.LZMAError as e:
            raise DecompressionError(f"LZMA decompression failed: {e}", hour=hour) from e

        if not decompressor.eof:
            raise DecompressionError("LZMA stream ended before end-of-stream marker", hour=hour)
        if decompressor.unused_data:
            raise DecompressionError(
                f"{len(decompressor.unused_data)} trailing bytes after LZMA stream", hour=hour
            )
        return buf
