"""
SQLite Tick Store.
Persists finished TickSeries (ticks + gap record) for later analysis.
All prices stored as TEXT to preserve Decimal precision.
"""

from __future__ import annotations
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from archive.models import Gap, GapReason, Instrument, Tick, TickSeries, TimeRange
import logging

logger = logging.getLogger(__name__)


class TickStore:
    """SQLite store with typed accessors for tick series."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Initialize database connection and create tables."""
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        logger.info(f"[STORE] Connected to {self.db_path}")

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "TickStore":
        self.connect()
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        assert self._conn is not None, "Store not connected"
        return self._conn

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS series (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                price_scale INTEGER NOT NULL,
                point_value TEXT NOT NULL,
                range_start TEXT NOT NULL,
                range_end TEXT NOT NULL,
                tick_count INTEGER NOT NULL DEFAULT 0,
                anomaly_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS ticks (
                series_id INTEGER NOT NULL REFERENCES series(id) ON DELETE CASCADE,
                seq INTEGER NOT NULL,
                timestamp INTEGER NOT NULL,
                bid TEXT NOT NULL,
                ask TEXT NOT NULL,
                bid_volume REAL NOT NULL,
                ask_volume REAL NOT NULL,
                PRIMARY KEY (series_id, seq)
            );

            CREATE TABLE IF NOT EXISTS gaps (
                series_id INTEGER NOT NULL REFERENCES series(id) ON DELETE CASCADE,
                hour TEXT NOT NULL,
                reason TEXT NOT NULL,
                error TEXT,
                PRIMARY KEY (series_id, hour)
            );

            CREATE INDEX IF NOT EXISTS idx_series_symbol ON series(symbol);
            CREATE INDEX IF NOT EXISTS idx_ticks_timestamp ON ticks(series_id, timestamp);
        """)
        self.conn.commit()

    # ==================== Series Operations ====================

    def save_series(self, series: TickSeries) -> int:
        """Insert a series with its ticks and gaps, return its ID."""
        cursor = self.conn.execute(
            """INSERT INTO series (symbol, price_scale, point_value, range_start,
               range_end, tick_count, anomaly_count)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                series.instrument.symbol,
                series.instrument.price_scale,
                str(series.instrument.point_value),
                series.time_range.start.isoformat(),
                series.time_range.end.isoformat(),
                len(series),
                len(series.anomalies),
            ),
        )
        series_id = cursor.lastrowid

        self.conn.executemany(
            """INSERT INTO ticks (series_id, seq, timestamp, bid, ask, bid_volume, ask_volume)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            [
                (series_id, seq, t.timestamp, str(t.bid), str(t.ask), t.bid_volume, t.ask_volume)
                for seq, t in enumerate(series.ticks)
            ],
        )
        self.conn.executemany(
            "INSERT INTO gaps (series_id, hour, reason, error) VALUES (?, ?, ?, ?)",
            [
                (series_id, gap.hour.isoformat(), gap.reason.value, gap.error)
                for gap in series.gaps.values()
            ],
        )
        self.conn.commit()

        logger.info(
            f"[STORE] Saved {series.instrument.symbol} series #{series_id}: "
            f"{len(series)} ticks, {len(series.gaps)} gaps"
        )
        return series_id

    def load_series(self, series_id: int) -> Optional[TickSeries]:
        """Rebuild a stored series. Ordering anomalies are not persisted, only counted."""
        row = self.conn.execute("SELECT * FROM series WHERE id = ?", (series_id,)).fetchone()
        if not row:
            return None

        tick_rows = self.conn.execute(
            "SELECT * FROM ticks WHERE series_id = ? ORDER BY seq", (series_id,)
        ).fetchall()
        gap_rows = self.conn.execute(
            "SELECT * FROM gaps WHERE series_id = ? ORDER BY hour", (series_id,)
        ).fetchall()

        series = TickSeries(
            instrument=Instrument(
                symbol=row["symbol"],
                price_scale=row["price_scale"],
                point_value=Decimal(row["point_value"]),
            ),
            time_range=TimeRange(
                start=datetime.fromisoformat(row["range_start"]),
                end=datetime.fromisoformat(row["range_end"]),
            ),
            ticks=[self._row_to_tick(r) for r in tick_rows],
        )
        for r in gap_rows:
            gap = self._row_to_gap(r)
            series.gaps[gap.hour] = gap
        return series

    def list_series(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        if symbol:
            rows = self.conn.execute(
                "SELECT * FROM series WHERE symbol = ? ORDER BY id", (symbol.upper(),)
            ).fetchall()
        else:
            rows = self.conn.execute("SELECT * FROM series ORDER BY id").fetchall()
        return [dict(r) for r in rows]

    def delete_series(self, series_id: int):
        self.conn.execute("DELETE FROM series WHERE id = ?", (series_id,))
        self.conn.commit()

    # ==================== Row Converters ====================

    def _row_to_tick(self, row) -> Tick:
        return Tick(
            timestamp=row["timestamp"],
            bid=Decimal(row["bid"]),
            ask=Decimal(row["ask"]),
            bid_volume=row["bid_volume"],
            ask_volume=row["ask_volume"],
        )

    def _row_to_gap(self, row) -> Gap:
        return Gap(
            hour=datetime.fromisoformat(row["hour"]),
            reason=GapReason(row["reason"]),
            error=row["error"],
        )
