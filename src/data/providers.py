"""
Candle Providers - read-only access to already-ingested candle history.

Fetching and storing candles belongs to the ingestion subsystem. The core
only needs something that hands back a CandleSeries for (symbol, timeframe):
- InMemoryCandleProvider: pre-resolved series (screening batches, tests)
- CsvCandleProvider: one CSV per symbol/timeframe, read with pandas
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Tuple
import logging

import pandas as pd

from config.settings import Timeframe
from src.data.candles import CandleSeries


logger = logging.getLogger(__name__)


class CandleProvider(ABC):
    """Abstract candle source."""

    @abstractmethod
    def load(self, symbol: str, timeframe: Timeframe) -> Optional[CandleSeries]:
        """Return the series for symbol/timeframe or None when unavailable."""
        pass


class InMemoryCandleProvider(CandleProvider):
    """Serves series that were resolved before the pipeline was invoked."""

    def __init__(self, series: Optional[Dict[Tuple[str, Timeframe], CandleSeries]] = None):
        self._series: Dict[Tuple[str, Timeframe], CandleSeries] = dict(series or {})

    def add(self, series: CandleSeries, timeframe: Timeframe) -> None:
        self._series[(series.symbol, timeframe)] = series

    def load(self, symbol: str, timeframe: Timeframe) -> Optional[CandleSeries]:
        return self._series.get((symbol, timeframe))


class CsvCandleProvider(CandleProvider):
    """
    Loads candles from CSV files laid out as <base_dir>/<symbol>_<timeframe>.csv.

    Files are parsed once per instance and kept in a memory cache.
    """

    def __init__(self, base_dir: str = "data/candles"):
        self.base_dir = Path(base_dir)
        self._memory_cache: Dict[str, CandleSeries] = {}

    def _get_path(self, symbol: str, timeframe: Timeframe) -> Path:
        return self.base_dir / f"{symbol}_{timeframe.name}.csv"

    def load(self, symbol: str, timeframe: Timeframe) -> Optional[CandleSeries]:
        cache_key = f"{symbol}_{timeframe.name}"
        if cache_key in self._memory_cache:
            logger.debug(f"Memory cache hit: {cache_key}")
            return self._memory_cache[cache_key]

        path = self._get_path(symbol, timeframe)
        if not path.exists():
            logger.debug(f"No candle file for {symbol} {timeframe.name}: {path}")
            return None

        series = load_csv_series(path, symbol, timeframe.value)
        self._memory_cache[cache_key] = series
        return series


def load_csv_series(path, symbol: str, interval: str) -> CandleSeries:
    """Read a CSV with timestamp/open/high/low/close[/volume] columns."""
    df = pd.read_csv(path)
    df.columns = [str(c).lower() for c in df.columns]
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    logger.debug(f"Loaded {len(df)} candles for {symbol} ({interval}) from {path}")
    return CandleSeries.from_dataframe(symbol, interval, df)
