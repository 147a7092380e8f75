"""Analysis module - indicators and multi-timeframe analysis."""

from src.analysis.indicators import IndicatorSnapshot, compute_indicators
from src.analysis.multi_timeframe import (
    MultiTimeframeAnalyzer,
    MultiTimeframeResult,
    TimeframeAnalysis,
    TimeframeStructure,
    Alignment,
    SupportResistance,
    EntryRecommendation,
    EntryType,
    TrendDirection,
)

__all__ = [
    'IndicatorSnapshot', 'compute_indicators',
    'MultiTimeframeAnalyzer', 'MultiTimeframeResult', 'TimeframeAnalysis',
    'TimeframeStructure', 'Alignment', 'SupportResistance',
    'EntryRecommendation', 'EntryType', 'TrendDirection',
]
