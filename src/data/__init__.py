"""Data module - candles and candle providers."""

from src.data.candles import Candle, CandleSeries, as_candle_list
from src.data.providers import (
    CandleProvider,
    InMemoryCandleProvider,
    CsvCandleProvider,
    load_csv_series,
)

__all__ = [
    'Candle', 'CandleSeries', 'as_candle_list',
    'CandleProvider', 'InMemoryCandleProvider', 'CsvCandleProvider', 'load_csv_series',
]
