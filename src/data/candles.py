"""
Candle Series - OHLCV foundation types.

Handles:
- Immutable OHLCV bars
- Time-ascending series per (symbol, interval)
- Normalisation of raw feed rows (dicts or [ts, o, h, l, c, v] rows)
- Conversion to/from pandas DataFrames

The core only ever reads a series. Appending happens during ingestion,
which lives outside this package.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class Candle:
    """Immutable OHLCV bar."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def __post_init__(self):
        if self.high < self.low:
            raise ValueError(
                f"Candle high {self.high} below low {self.low} at {self.timestamp}"
            )

    @property
    def body(self) -> float:
        """Absolute body size."""
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        """High-low range."""
        return self.high - self.low

    @property
    def body_high(self) -> float:
        return max(self.open, self.close)

    @property
    def body_low(self) -> float:
        return min(self.open, self.close)

    @property
    def upper_wick(self) -> float:
        return self.high - self.body_high

    @property
    def lower_wick(self) -> float:
        return self.body_low - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialisation."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def _parse_timestamp(value: Any) -> datetime:
    """Accept datetimes, pandas Timestamps, ISO strings and epoch seconds."""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float, np.integer, np.floating)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    if isinstance(value, str):
        return pd.Timestamp(value).to_pydatetime()
    raise ValueError(f"Unsupported timestamp: {value!r}")


def _row_to_candle(row: Any) -> Candle:
    """Normalise one raw feed row."""
    if isinstance(row, Candle):
        return row
    if isinstance(row, dict):
        def pick(key: str, default=None):
            if key in row:
                return row[key]
            return row.get(key.capitalize(), default)

        return Candle(
            timestamp=_parse_timestamp(pick("timestamp")),
            open=float(pick("open")),
            high=float(pick("high")),
            low=float(pick("low")),
            close=float(pick("close")),
            volume=float(pick("volume", 0) or 0),
        )
    if isinstance(row, (list, tuple)) and len(row) >= 6:
        return Candle(
            timestamp=_parse_timestamp(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5] or 0),
        )
    raise ValueError(f"Unexpected candle format: {row!r}")


@dataclass(frozen=True)
class CandleSeries:
    """
    Ordered, time-ascending sequence of candles for one symbol/interval.

    Timestamps must be strictly increasing; a series violating this is
    rejected at construction.
    """
    symbol: str
    interval: str
    candles: Tuple[Candle, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept any sequence but store a tuple so the series stays immutable
        if not isinstance(self.candles, tuple):
            object.__setattr__(self, "candles", tuple(self.candles))

        for prev, curr in zip(self.candles, self.candles[1:]):
            if curr.timestamp <= prev.timestamp:
                raise ValueError(
                    f"{self.symbol}/{self.interval}: timestamps not strictly increasing "
                    f"({prev.timestamp} -> {curr.timestamp})"
                )

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_records(
        cls,
        symbol: str,
        interval: str,
        rows: Iterable[Any],
    ) -> "CandleSeries":
        """Build a series from raw feed rows."""
        return cls(symbol=symbol, interval=interval, candles=tuple(_row_to_candle(r) for r in rows))

    @classmethod
    def from_dataframe(
        cls,
        symbol: str,
        interval: str,
        df: pd.DataFrame,
    ) -> "CandleSeries":
        """
        Build a series from a DataFrame.

        Accepts either a DatetimeIndex or a 'timestamp' column, and
        lower- or capitalised OHLCV column names.
        """
        frame = df.copy()
        frame.columns = [str(c).lower() for c in frame.columns]

        if "timestamp" not in frame.columns:
            frame = frame.reset_index()
            frame = frame.rename(columns={frame.columns[0]: "timestamp"})

        if "volume" not in frame.columns:
            frame["volume"] = 0.0

        frame = frame.sort_values("timestamp")
        rows = frame[["timestamp", "open", "high", "low", "close", "volume"]].itertuples(
            index=False, name=None
        )
        return cls.from_records(symbol, interval, rows)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to a DataFrame indexed by timestamp."""
        df = pd.DataFrame(
            {
                "open": self.opens,
                "high": self.highs,
                "low": self.lows,
                "close": self.closes,
                "volume": self.volumes,
            },
            index=pd.DatetimeIndex([c.timestamp for c in self.candles], name="timestamp"),
        )
        return df

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.candles)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self.candles)

    def __getitem__(self, index):
        return self.candles[index]

    @property
    def is_empty(self) -> bool:
        return len(self.candles) == 0

    @property
    def opens(self) -> np.ndarray:
        return np.array([c.open for c in self.candles], dtype=float)

    @property
    def highs(self) -> np.ndarray:
        return np.array([c.high for c in self.candles], dtype=float)

    @property
    def lows(self) -> np.ndarray:
        return np.array([c.low for c in self.candles], dtype=float)

    @property
    def closes(self) -> np.ndarray:
        return np.array([c.close for c in self.candles], dtype=float)

    @property
    def volumes(self) -> np.ndarray:
        return np.array([c.volume for c in self.candles], dtype=float)

    @property
    def latest_candle(self) -> Optional[Candle]:
        return self.candles[-1] if self.candles else None

    @property
    def latest_close(self) -> Optional[float]:
        return self.candles[-1].close if self.candles else None

    def tail(self, count: int) -> "CandleSeries":
        """Series of the last `count` candles."""
        return CandleSeries(self.symbol, self.interval, self.candles[-count:] if count > 0 else ())

    def swing_high(self, index: int, lookback: int = 2) -> bool:
        """True if candle `index` has a strictly higher high than `lookback` neighbours each side."""
        if index < lookback or index + lookback >= len(self.candles):
            return False
        current = self.candles[index].high
        left = max(c.high for c in self.candles[index - lookback:index])
        right = max(c.high for c in self.candles[index + 1:index + lookback + 1])
        return current > left and current > right

    def swing_low(self, index: int, lookback: int = 2) -> bool:
        """True if candle `index` has a strictly lower low than `lookback` neighbours each side."""
        if index < lookback or index + lookback >= len(self.candles):
            return False
        current = self.candles[index].low
        left = min(c.low for c in self.candles[index - lookback:index])
        right = min(c.low for c in self.candles[index + 1:index + lookback + 1])
        return current < left and current < right


def as_candle_list(candles: Optional[Sequence[Candle]]) -> List[Candle]:
    """Accept a CandleSeries, any candle sequence or None."""
    if candles is None:
        return []
    if isinstance(candles, CandleSeries):
        return list(candles.candles)
    return list(candles)
