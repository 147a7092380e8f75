"""
Multi-Timeframe Analyzer - trend/momentum alignment across 15m, 1h, daily, weekly.

Handles:
- Per-timeframe indicator snapshot, trend score and momentum score
- Pivot swing structure and regression trend strength
- Style-weighted combined score (swing vs long-term)
- Trend/momentum alignment by majority vote
- Support/resistance levels and ranked entry recommendations

Candles are supplied by a CandleProvider or a pre-resolved mapping; nothing
here fetches data.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple
import logging
import math

import numpy as np

from config.settings import MultiTimeframeSettings, Timeframe
from src.analysis.indicators import IndicatorSnapshot, compute_indicators
from src.data.candles import CandleSeries
from src.data.providers import CandleProvider


logger = logging.getLogger(__name__)


TIMEFRAME_ORDER = (Timeframe.M15, Timeframe.H1, Timeframe.D1, Timeframe.W1)

STRUCTURE_MIN_BARS = 20
SWING_KEEP = 5
TREND_STRENGTH_WINDOW = 20
MOMENTUM_CHANGE_BARS = 5
MOMENTUM_THRESHOLD_PCT = 2.0

SUPPORT_BOUNCE_MAX_DISTANCE_PCT = 3.0
BREAKOUT_MAX_DISTANCE_PCT = 2.0
PULLBACK_MAX_ABOVE_SUPPORT = 1.02
INTRADAY_CONFIRMATION_BONUS = 5
MOMENTUM_ALIGNED_BONUS = 10


class TrendDirection(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class EntryType(Enum):
    SUPPORT_BOUNCE = "support_bounce"
    BREAKOUT = "breakout"
    INTRADAY_PULLBACK = "intraday_pullback"


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class SwingPoint:
    index: int
    price: float


@dataclass(frozen=True)
class TimeframeStructure:
    """Pivot swings (last five each side) and trend strength."""
    swing_highs: Tuple[SwingPoint, ...] = ()
    swing_lows: Tuple[SwingPoint, ...] = ()
    higher_highs: bool = False
    higher_lows: bool = False
    trend_strength: float = 0.0

    def to_dict(self) -> dict:
        return {
            "swing_highs": [{"index": s.index, "price": s.price} for s in self.swing_highs],
            "swing_lows": [{"index": s.index, "price": s.price} for s in self.swing_lows],
            "higher_highs": self.higher_highs,
            "higher_lows": self.higher_lows,
            "trend_strength": self.trend_strength,
        }


@dataclass(frozen=True)
class TimeframeAnalysis:
    timeframe: Timeframe
    candles_count: int
    latest_close: Optional[float]
    indicators: IndicatorSnapshot
    trend_score: float
    momentum_score: float
    structure: TimeframeStructure
    trend_direction: TrendDirection
    momentum_direction: TrendDirection

    @property
    def combined_score(self) -> float:
        return self.trend_score * 0.6 + self.momentum_score * 0.4

    @property
    def is_bullish(self) -> bool:
        """Trend and momentum both bullish."""
        return (
            self.trend_direction == TrendDirection.BULLISH
            and self.momentum_direction == TrendDirection.BULLISH
        )

    def to_dict(self) -> dict:
        return {
            "timeframe": self.timeframe.value,
            "candles_count": self.candles_count,
            "latest_close": self.latest_close,
            "indicators": self.indicators.to_dict(),
            "trend_score": self.trend_score,
            "momentum_score": self.momentum_score,
            "structure": self.structure.to_dict(),
            "trend_direction": self.trend_direction.value,
            "momentum_direction": self.momentum_direction.value,
        }


@dataclass(frozen=True)
class Alignment:
    bullish_count: int = 0
    bearish_count: int = 0
    neutral_count: int = 0
    aligned: bool = False

    def to_dict(self) -> dict:
        return {
            "bullish_count": self.bullish_count,
            "bearish_count": self.bearish_count,
            "neutral_count": self.neutral_count,
            "aligned": self.aligned,
        }


@dataclass(frozen=True)
class SupportResistance:
    support_levels: Tuple[float, ...] = ()     # Highest first
    resistance_levels: Tuple[float, ...] = ()  # Lowest first
    intraday_support: Tuple[float, ...] = ()
    intraday_resistance: Tuple[float, ...] = ()

    def to_dict(self) -> dict:
        return {
            "support_levels": list(self.support_levels),
            "resistance_levels": list(self.resistance_levels),
            "intraday_support": list(self.intraday_support),
            "intraday_resistance": list(self.intraday_resistance),
        }


@dataclass(frozen=True)
class EntryRecommendation:
    entry_type: EntryType
    entry_zone: Tuple[float, float]
    stop_loss: float
    confidence: float
    confirmations: Dict[str, object] = field(default_factory=dict)

    @property
    def zone_low(self) -> float:
        return self.entry_zone[0]

    @property
    def zone_high(self) -> float:
        return self.entry_zone[1]

    def to_dict(self) -> dict:
        return {
            "type": self.entry_type.value,
            "entry_zone": list(self.entry_zone),
            "stop_loss": self.stop_loss,
            "confidence": self.confidence,
            "intraday_confirmation": dict(self.confirmations),
        }


@dataclass(frozen=True)
class MultiTimeframeResult:
    symbol: str
    instrument_id: Optional[str]
    timeframes: Dict[Timeframe, TimeframeAnalysis]
    multi_timeframe_score: float
    trend_alignment: Alignment
    momentum_alignment: Alignment
    support_resistance: SupportResistance
    entry_recommendations: Tuple[EntryRecommendation, ...] = ()

    @property
    def best_entry(self) -> Optional[EntryRecommendation]:
        return self.entry_recommendations[0] if self.entry_recommendations else None

    def get(self, timeframe: Timeframe) -> Optional[TimeframeAnalysis]:
        return self.timeframes.get(timeframe)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "instrument_id": self.instrument_id,
            "timeframes": {tf.value: a.to_dict() for tf, a in self.timeframes.items()},
            "multi_timeframe_score": self.multi_timeframe_score,
            "trend_alignment": self.trend_alignment.to_dict(),
            "momentum_alignment": self.momentum_alignment.to_dict(),
            "support_resistance": self.support_resistance.to_dict(),
            "entry_recommendations": [r.to_dict() for r in self.entry_recommendations],
        }


# =============================================================================
# SCORING HELPERS
# =============================================================================

def trend_score(indicators: IndicatorSnapshot) -> float:
    """EMA stack, Supertrend and ADX, normalised over applicable checks."""
    score = 0.0
    max_score = 0.0

    if indicators.ema20 is not None and indicators.ema50 is not None:
        if indicators.ema20 > indicators.ema50:
            score += 20
        max_score += 20

    if indicators.ema20 is not None and indicators.ema200 is not None:
        if indicators.ema20 > indicators.ema200:
            score += 20
        max_score += 20

    if indicators.supertrend is not None and indicators.supertrend.is_bullish:
        score += 30
    max_score += 30

    if indicators.adx is not None:
        if indicators.adx > 25:
            score += 30
        elif indicators.adx > 20:
            score += 15
        max_score += 30

    return round(score / max_score * 100, 2) if max_score > 0 else 0.0


def price_change_pct(closes: np.ndarray, bars: int = MOMENTUM_CHANGE_BARS) -> Optional[float]:
    """Percentage change from the close `bars` back (inclusive) to the latest."""
    if len(closes) < bars or closes[-bars] == 0:
        return None
    return round((closes[-1] - closes[-bars]) / closes[-bars] * 100, 2)


def momentum_score(indicators: IndicatorSnapshot, closes: np.ndarray) -> float:
    """RSI zone, MACD cross and capped 5-bar price change."""
    score = 0.0
    max_score = 0.0

    if indicators.rsi is not None:
        if 50 < indicators.rsi < 70:
            score += 30
        elif 40 < indicators.rsi < 60:
            score += 15
        max_score += 30

    if indicators.macd is not None:
        if indicators.macd.is_bullish:
            score += 30
        max_score += 30

    change = price_change_pct(closes)
    if change is not None and change > 0:
        score += min(40.0, change * 2)
    max_score += 40

    return round(score / max_score * 100, 2)


def momentum_direction(closes: np.ndarray) -> TrendDirection:
    change = price_change_pct(closes)
    if change is None:
        return TrendDirection.NEUTRAL
    if change > MOMENTUM_THRESHOLD_PCT:
        return TrendDirection.BULLISH
    if change < -MOMENTUM_THRESHOLD_PCT:
        return TrendDirection.BEARISH
    return TrendDirection.NEUTRAL


def trend_direction(indicators: IndicatorSnapshot) -> TrendDirection:
    if indicators.supertrend is None:
        return TrendDirection.NEUTRAL
    return TrendDirection.BULLISH if indicators.supertrend.is_bullish else TrendDirection.BEARISH


def pivot_swings(series: CandleSeries) -> Tuple[List[SwingPoint], List[SwingPoint]]:
    """Five-bar pivots: strictly extreme versus two neighbours on each side."""
    highs = [SwingPoint(i, series[i].high) for i in range(len(series)) if series.swing_high(i, 2)]
    lows = [SwingPoint(i, series[i].low) for i in range(len(series)) if series.swing_low(i, 2)]
    return highs[-SWING_KEEP:], lows[-SWING_KEEP:]


def regression_trend_strength(closes: np.ndarray, window: int = TREND_STRENGTH_WINDOW) -> float:
    """Least-squares slope over the last `window` closes as % of their mean."""
    n = min(len(closes), window)
    if n < 2:
        return 0.0

    y = closes[-n:]
    x = np.arange(n, dtype=float)
    x_mean = x.mean()
    y_mean = y.mean()

    denominator = np.sum((x - x_mean) ** 2)
    if denominator == 0 or y_mean == 0:
        return 0.0

    slope = np.sum((x - x_mean) * (y - y_mean)) / denominator
    return round(float(slope / y_mean * 100), 2)


def identify_structure(series: CandleSeries) -> TimeframeStructure:
    if len(series) < STRUCTURE_MIN_BARS:
        return TimeframeStructure()

    swing_highs, swing_lows = pivot_swings(series)
    return TimeframeStructure(
        swing_highs=tuple(swing_highs),
        swing_lows=tuple(swing_lows),
        higher_highs=len(swing_highs) >= 2 and swing_highs[-1].price > swing_highs[-2].price,
        higher_lows=len(swing_lows) >= 2 and swing_lows[-1].price > swing_lows[-2].price,
        trend_strength=regression_trend_strength(series.closes),
    )


def alignment(directions: List[TrendDirection], require_majority: bool) -> Alignment:
    """
    Majority vote across timeframe directions.

    With require_majority the bullish count must also reach half of the
    contributing timeframes (rounded up).
    """
    if not directions:
        return Alignment()

    bullish = directions.count(TrendDirection.BULLISH)
    bearish = directions.count(TrendDirection.BEARISH)
    neutral = directions.count(TrendDirection.NEUTRAL)

    aligned = bullish > bearish
    if require_majority:
        aligned = aligned and bullish >= math.ceil(len(directions) / 2)

    return Alignment(bullish, bearish, neutral, aligned)


def _clamp_confidence(value: float) -> float:
    return round(max(0.0, min(100.0, value)), 2)


# =============================================================================
# ANALYZER
# =============================================================================

class MultiTimeframeAnalyzer:
    """
    Scores one instrument across timeframes.

    Usage:
        analyzer = MultiTimeframeAnalyzer(settings.multi_timeframe, provider)
        result = analyzer.analyze("RELIANCE")
        best = result.best_entry
    """

    def __init__(
        self,
        config: Optional[MultiTimeframeSettings] = None,
        provider: Optional[CandleProvider] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or MultiTimeframeSettings()
        self.provider = provider
        self.logger = logger or logging.getLogger(__name__)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def analyze(
        self,
        symbol: str,
        instrument_id: Optional[str] = None,
        cached_candles: Optional[Mapping[Timeframe, CandleSeries]] = None,
    ) -> MultiTimeframeResult:
        timeframes: Dict[Timeframe, TimeframeAnalysis] = {}

        for tf in self._active_timeframes():
            series = self._load(symbol, tf, cached_candles)
            analysis = self.analyze_timeframe(tf, series)
            if analysis is not None:
                timeframes[tf] = analysis

        trend_alignment = alignment([a.trend_direction for a in timeframes.values()], True)
        momentum_alignment = alignment([a.momentum_direction for a in timeframes.values()], False)
        mtf_score = self.weighted_score(timeframes)
        levels = self.support_resistance(timeframes)

        result = MultiTimeframeResult(
            symbol=symbol,
            instrument_id=instrument_id,
            timeframes=timeframes,
            multi_timeframe_score=mtf_score,
            trend_alignment=trend_alignment,
            momentum_alignment=momentum_alignment,
            support_resistance=levels,
        )
        recommendations = self.entry_recommendations(result)

        self.logger.info(
            f"MTF {symbol}: score={mtf_score} timeframes={[tf.value for tf in timeframes]} "
            f"trend_aligned={trend_alignment.aligned} entries={len(recommendations)}"
        )

        return MultiTimeframeResult(
            symbol=result.symbol,
            instrument_id=result.instrument_id,
            timeframes=result.timeframes,
            multi_timeframe_score=result.multi_timeframe_score,
            trend_alignment=result.trend_alignment,
            momentum_alignment=result.momentum_alignment,
            support_resistance=result.support_resistance,
            entry_recommendations=tuple(recommendations),
        )

    def analyze_timeframe(
        self,
        timeframe: Timeframe,
        series: Optional[CandleSeries],
    ) -> Optional[TimeframeAnalysis]:
        """Analyse one series; None when missing or below the minimum bar count."""
        if series is None or series.is_empty:
            self.logger.debug(f"No candles for {timeframe.name}")
            return None

        min_bars = self.config.min_bars(timeframe)
        if len(series) < min_bars:
            self.logger.debug(f"Skipping {timeframe.name}: {len(series)} < {min_bars} bars")
            return None

        indicators = compute_indicators(
            series,
            supertrend_period=self.config.supertrend_period,
            supertrend_multiplier=self.config.supertrend_multiplier,
        )
        closes = series.closes

        return TimeframeAnalysis(
            timeframe=timeframe,
            candles_count=len(series),
            latest_close=series.latest_close,
            indicators=indicators,
            trend_score=trend_score(indicators),
            momentum_score=momentum_score(indicators, closes),
            structure=identify_structure(series),
            trend_direction=trend_direction(indicators),
            momentum_direction=momentum_direction(closes),
        )

    def weighted_score(self, timeframes: Mapping[Timeframe, TimeframeAnalysis]) -> float:
        """Style-weighted average of 0.6 x trend + 0.4 x momentum."""
        weights = self.config.weights()
        total_score = 0.0
        total_weight = 0.0

        for tf, analysis in timeframes.items():
            weight = weights.get(tf, 0.0)
            if weight == 0:
                continue
            total_score += analysis.combined_score * weight
            total_weight += weight

        return round(total_score / total_weight, 2) if total_weight > 0 else 0.0

    def support_resistance(self, timeframes: Mapping[Timeframe, TimeframeAnalysis]) -> SupportResistance:
        """Major levels from daily/weekly swings plus the last three hourly swings."""
        supports: List[float] = []
        resistances: List[float] = []

        for tf in (Timeframe.D1, Timeframe.W1):
            analysis = timeframes.get(tf)
            if analysis is None:
                continue
            supports += [s.price for s in analysis.structure.swing_lows]
            resistances += [s.price for s in analysis.structure.swing_highs]

        hourly = timeframes.get(Timeframe.H1)
        intraday_support: Tuple[float, ...] = ()
        intraday_resistance: Tuple[float, ...] = ()
        if hourly is not None:
            supports += [s.price for s in hourly.structure.swing_lows[-3:]]
            resistances += [s.price for s in hourly.structure.swing_highs[-3:]]
            intraday_support = tuple(s.price for s in hourly.structure.swing_lows[-2:])
            intraday_resistance = tuple(s.price for s in hourly.structure.swing_highs[-2:])

        return SupportResistance(
            support_levels=tuple(reversed(sorted(set(supports))[-5:])),
            resistance_levels=tuple(sorted(set(resistances))[:5]),
            intraday_support=intraday_support,
            intraday_resistance=intraday_resistance,
        )

    def entry_recommendations(self, result: MultiTimeframeResult) -> List[EntryRecommendation]:
        """Long entries near support, below resistance or on intraday pullbacks."""
        if not result.trend_alignment.aligned:
            return []

        daily = result.get(Timeframe.D1)
        if daily is None or daily.latest_close is None:
            return []

        price = daily.latest_close
        hourly = result.get(Timeframe.H1)
        m15 = result.get(Timeframe.M15)
        h1_bullish = bool(hourly and hourly.is_bullish)
        m15_bullish = bool(m15 and m15.is_bullish)
        intraday_bonus = INTRADAY_CONFIRMATION_BONUS * (int(h1_bullish) + int(m15_bullish))
        confirmations = {"h1_bullish": h1_bullish, "m15_bullish": m15_bullish}

        recommendations = []
        supports = result.support_resistance.support_levels
        resistances = result.support_resistance.resistance_levels

        if supports and price > supports[0]:
            support = supports[0]
            distance_pct = round((price - support) / support * 100, 2)
            if distance_pct < SUPPORT_BOUNCE_MAX_DISTANCE_PCT:
                zone_high = price
                if m15 is not None and m15.latest_close is not None:
                    zone_high = max(price, m15.latest_close)
                recommendations.append(EntryRecommendation(
                    entry_type=EntryType.SUPPORT_BOUNCE,
                    entry_zone=(support, zone_high),
                    stop_loss=support * 0.98,
                    confidence=_clamp_confidence(self._base_confidence(result) + intraday_bonus),
                    confirmations=dict(confirmations),
                ))

        if resistances and price <= resistances[0]:
            resistance = resistances[0]
            distance_pct = round((resistance - price) / price * 100, 2)
            if distance_pct < BREAKOUT_MAX_DISTANCE_PCT:
                zone_low = price
                if m15 is not None and m15.latest_close is not None and m15.latest_close > price:
                    zone_low = min(price, m15.latest_close)
                recommendations.append(EntryRecommendation(
                    entry_type=EntryType.BREAKOUT,
                    entry_zone=(zone_low, resistance * 1.01),
                    stop_loss=price * 0.97,
                    confidence=_clamp_confidence(self._base_confidence(result) + intraday_bonus),
                    confirmations=dict(confirmations),
                ))

        pullback = self._intraday_pullback(result, price, hourly, m15, daily)
        if pullback is not None:
            recommendations.append(pullback)

        recommendations.sort(key=lambda r: r.confidence, reverse=True)
        return recommendations

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _active_timeframes(self) -> List[Timeframe]:
        if self.config.include_intraday:
            return list(TIMEFRAME_ORDER)
        return [tf for tf in TIMEFRAME_ORDER if not tf.is_intraday]

    def _load(
        self,
        symbol: str,
        timeframe: Timeframe,
        cached_candles: Optional[Mapping[Timeframe, CandleSeries]],
    ) -> Optional[CandleSeries]:
        if cached_candles and timeframe in cached_candles:
            return cached_candles[timeframe]
        if self.provider is None:
            return None
        return self.provider.load(symbol, timeframe)

    def _base_confidence(self, result: MultiTimeframeResult) -> float:
        """MTF score, momentum bonus and bullish-timeframe ratio bonus."""
        confidence = result.multi_timeframe_score
        if result.momentum_alignment.aligned:
            confidence += MOMENTUM_ALIGNED_BONUS

        total = len(result.timeframes)
        if total > 0:
            alignment_pct = round(result.trend_alignment.bullish_count / total * 100, 2)
            confidence += round(alignment_pct / 10, 2)

        return _clamp_confidence(confidence)

    def _intraday_pullback(
        self,
        result: MultiTimeframeResult,
        price: float,
        hourly: Optional[TimeframeAnalysis],
        m15: Optional[TimeframeAnalysis],
        daily: TimeframeAnalysis,
    ) -> Optional[EntryRecommendation]:
        if hourly is None or m15 is None or daily.trend_direction != TrendDirection.BULLISH:
            return None

        h1_pullback = (
            hourly.trend_direction == TrendDirection.BULLISH
            and hourly.momentum_direction == TrendDirection.NEUTRAL
        )
        m15_pullback = (
            m15.trend_direction == TrendDirection.BULLISH
            and m15.momentum_direction == TrendDirection.NEUTRAL
        )
        if not (h1_pullback or m15_pullback):
            return None

        support = None
        if hourly.structure.swing_lows:
            support = hourly.structure.swing_lows[-1].price
        elif m15.structure.swing_lows:
            support = m15.structure.swing_lows[-1].price

        if support is None or not (support < price < support * PULLBACK_MAX_ABOVE_SUPPORT):
            return None

        return EntryRecommendation(
            entry_type=EntryType.INTRADAY_PULLBACK,
            entry_zone=(support, price),
            stop_loss=support * 0.99,
            confidence=self._base_confidence(result),
            confirmations={
                "h1_pullback": h1_pullback,
                "m15_pullback": m15_pullback,
                "timeframe": "1h" if h1_pullback else "15m",
            },
        )
