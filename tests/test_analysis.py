"""
Tests for indicators and the multi-timeframe analyzer.
"""

import pytest
import numpy as np
from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import MultiTimeframeSettings, Timeframe, TradingStyle
from src.analysis.indicators import (
    IndicatorSnapshot,
    MACD,
    Supertrend,
    calc_adx,
    calc_atr,
    calc_ema,
    calc_macd,
    calc_rsi,
    calc_supertrend,
)
from src.analysis.multi_timeframe import (
    Alignment,
    EntryType,
    MultiTimeframeAnalyzer,
    MultiTimeframeResult,
    SupportResistance,
    SwingPoint,
    TimeframeAnalysis,
    TimeframeStructure,
    TrendDirection,
    alignment,
    momentum_direction,
    momentum_score,
    regression_trend_strength,
    trend_score,
)
from src.data.candles import Candle, CandleSeries
from src.data.providers import InMemoryCandleProvider


BULL = TrendDirection.BULLISH
BEAR = TrendDirection.BEARISH
NEUTRAL = TrendDirection.NEUTRAL


def rising_series(n, interval="1D", start=100.0, step=1.0):
    base = datetime(2023, 1, 1, tzinfo=timezone.utc)
    candles = []
    for i in range(n):
        close = start + i * step
        candles.append(Candle(base + timedelta(days=i), close - 0.2, close + 0.5, close - 0.5, close, 1000.0))
    return CandleSeries("TEST", interval, candles)


def daily_analysis(latest_close=101.0, trend=BULL, timeframe=Timeframe.D1, structure=None):
    return TimeframeAnalysis(
        timeframe=timeframe,
        candles_count=100,
        latest_close=latest_close,
        indicators=IndicatorSnapshot(latest_close=latest_close),
        trend_score=100.0,
        momentum_score=25.0,
        structure=structure or TimeframeStructure(),
        trend_direction=trend,
        momentum_direction=NEUTRAL,
    )


def make_result(supports=(), resistances=(), aligned=True, score=70.0):
    return MultiTimeframeResult(
        symbol="TEST",
        instrument_id="1",
        timeframes={Timeframe.D1: daily_analysis()},
        multi_timeframe_score=score,
        trend_alignment=Alignment(bullish_count=1, aligned=aligned),
        momentum_alignment=Alignment(neutral_count=1),
        support_resistance=SupportResistance(
            support_levels=tuple(supports),
            resistance_levels=tuple(resistances),
        ),
    )


# ============================================================================
# INDICATORS
# ============================================================================

class TestIndicators:

    def test_ema_of_constant_series(self):
        assert calc_ema(np.full(30, 50.0), 20) == pytest.approx(50.0)

    def test_ema_too_short(self):
        assert calc_ema(np.ones(10), 20) is None

    def test_rsi_all_gains(self):
        assert calc_rsi(np.arange(1, 31, dtype=float)) == 100.0

    def test_rsi_too_short(self):
        assert calc_rsi(np.arange(10, dtype=float)) is None

    def test_atr_constant_range(self):
        highs = np.full(30, 101.0)
        lows = np.full(30, 99.0)
        closes = np.full(30, 100.0)
        assert calc_atr(highs, lows, closes) == pytest.approx(2.0)

    def test_adx_needs_two_periods(self):
        series = rising_series(28)
        assert calc_adx(series.highs, series.lows, series.closes) is None

    def test_adx_strong_trend(self):
        series = rising_series(100)
        assert calc_adx(series.highs, series.lows, series.closes) > 25

    def test_macd_too_short(self):
        assert calc_macd(np.arange(30, dtype=float)) is None

    def test_supertrend_rising(self):
        series = rising_series(100)
        st = calc_supertrend(series.highs, series.lows, series.closes)

        assert st.is_bullish
        assert st.value < series.latest_close

    def test_supertrend_minimum_bars(self):
        series = rising_series(40)
        assert calc_supertrend(series.highs, series.lows, series.closes) is None


# ============================================================================
# SCORING HELPERS
# ============================================================================

class TestScoring:

    def test_trend_score_all_bullish(self):
        snapshot = IndicatorSnapshot(
            ema20=110.0,
            ema50=105.0,
            ema200=100.0,
            adx=30.0,
            supertrend=Supertrend(100.0, "bullish"),
        )
        assert trend_score(snapshot) == 100.0

    def test_trend_score_without_indicators(self):
        assert trend_score(IndicatorSnapshot()) == 0.0

    def test_momentum_score_all_bullish(self):
        snapshot = IndicatorSnapshot(rsi=60.0, macd=MACD(1.0, 0.5, 0.5))
        closes = np.array([100.0, 100, 100, 100, 110])

        # 30 RSI + 30 MACD + min(40, 10% x 2)
        assert momentum_score(snapshot, closes) == 80.0

    def test_momentum_score_change_is_capped(self):
        snapshot = IndicatorSnapshot(rsi=45.0, macd=MACD(0.5, 1.0, -0.5))
        closes = np.array([100.0, 100, 100, 100, 125])

        # 15 for the lower RSI band, no MACD cross, change capped at 40
        assert momentum_score(snapshot, closes) == 55.0

    @pytest.mark.parametrize("rsi,expected", [
        (55.0, 42.86),
        (45.0, 21.43),
        (75.0, 0.0),
        (35.0, 0.0),
    ])
    def test_momentum_score_rsi_bands(self, rsi, expected):
        closes = np.array([100.0, 101])
        assert momentum_score(IndicatorSnapshot(rsi=rsi), closes) == expected

    def test_momentum_score_falling_price_adds_nothing(self):
        closes = np.array([110.0, 108, 106, 104, 100])
        assert momentum_score(IndicatorSnapshot(), closes) == 0.0

    def test_momentum_direction(self):
        assert momentum_direction(np.array([100.0, 100, 100, 100, 105])) == BULL
        assert momentum_direction(np.array([100.0, 100, 100, 100, 95])) == BEAR
        assert momentum_direction(np.array([100.0, 100, 100, 100, 101])) == NEUTRAL
        assert momentum_direction(np.array([100.0, 101])) == NEUTRAL

    def test_regression_strength_flat(self):
        assert regression_trend_strength(np.full(30, 100.0)) == 0.0

    def test_regression_strength_rising(self):
        assert regression_trend_strength(np.arange(100, 130, dtype=float)) > 0


class TestAlignment:

    def test_three_of_four_bullish(self):
        result = alignment([BULL, BULL, BULL, BEAR], require_majority=True)

        assert result.aligned
        assert (result.bullish_count, result.bearish_count) == (3, 1)

    def test_tie_is_not_aligned(self):
        assert not alignment([BULL, BEAR, NEUTRAL, NEUTRAL], require_majority=True).aligned

    def test_majority_requirement(self):
        directions = [BULL, NEUTRAL, NEUTRAL]

        assert alignment(directions, require_majority=False).aligned
        assert not alignment(directions, require_majority=True).aligned

    def test_empty(self):
        assert alignment([], require_majority=True) == Alignment()


# ============================================================================
# ANALYZER
# ============================================================================

class TestMultiTimeframeAnalyzer:

    def test_weights_by_style(self):
        swing = MultiTimeframeSettings().weights()
        long_term = MultiTimeframeSettings(trading_style=TradingStyle.LONG_TERM).weights()

        assert swing[Timeframe.D1] == 0.40
        assert long_term[Timeframe.W1] == 0.40
        assert long_term[Timeframe.M15] == 0.0

    def test_analyze_rising_market(self):
        analyzer = MultiTimeframeAnalyzer(MultiTimeframeSettings(include_intraday=False))
        candles = {
            Timeframe.D1: rising_series(250),
            Timeframe.W1: rising_series(60, interval="1W"),
        }

        result = analyzer.analyze("TEST", "1", candles)

        assert set(result.timeframes) == {Timeframe.D1, Timeframe.W1}
        assert result.trend_alignment.aligned
        assert result.multi_timeframe_score > 50
        assert result.get(Timeframe.D1).trend_direction == BULL

    def test_short_timeframe_is_skipped(self):
        provider = InMemoryCandleProvider()
        provider.add(rising_series(30), Timeframe.D1)
        provider.add(rising_series(60, interval="1W"), Timeframe.W1)
        analyzer = MultiTimeframeAnalyzer(MultiTimeframeSettings(include_intraday=False), provider)

        result = analyzer.analyze("TEST")

        assert list(result.timeframes) == [Timeframe.W1]
        assert result.best_entry is None

    def test_no_candles(self):
        result = MultiTimeframeAnalyzer().analyze("TEST")

        assert result.timeframes == {}
        assert result.multi_timeframe_score == 0.0
        assert result.entry_recommendations == ()

    def test_support_bounce(self):
        analyzer = MultiTimeframeAnalyzer()
        recs = analyzer.entry_recommendations(make_result(supports=(100.0,)))

        assert len(recs) == 1
        rec = recs[0]
        assert rec.entry_type == EntryType.SUPPORT_BOUNCE
        assert rec.entry_zone == (100.0, 101.0)
        assert rec.stop_loss == pytest.approx(98.0)
        # 70 score + 100% bullish timeframes / 10
        assert rec.confidence == 80.0

    def test_breakout_below_resistance(self):
        analyzer = MultiTimeframeAnalyzer()
        recs = analyzer.entry_recommendations(make_result(resistances=(102.0,)))

        assert len(recs) == 1
        assert recs[0].entry_type == EntryType.BREAKOUT
        assert recs[0].zone_high == pytest.approx(103.02)
        assert recs[0].stop_loss == pytest.approx(101.0 * 0.97)

    def test_far_levels_give_no_entries(self):
        analyzer = MultiTimeframeAnalyzer()
        assert analyzer.entry_recommendations(make_result(supports=(90.0,), resistances=(110.0,))) == []

    def test_unaligned_gives_no_entries(self):
        analyzer = MultiTimeframeAnalyzer()
        assert analyzer.entry_recommendations(make_result(supports=(100.0,), aligned=False)) == []

    def _pullback_result(self, hourly_low):
        hourly = daily_analysis(timeframe=Timeframe.H1, structure=TimeframeStructure(
            swing_lows=(SwingPoint(30, 97.0), SwingPoint(40, hourly_low)),
        ))
        m15 = daily_analysis(timeframe=Timeframe.M15, trend=BEAR)
        return MultiTimeframeResult(
            symbol="TEST",
            instrument_id="1",
            timeframes={Timeframe.D1: daily_analysis(), Timeframe.H1: hourly, Timeframe.M15: m15},
            multi_timeframe_score=70.0,
            trend_alignment=Alignment(bullish_count=2, bearish_count=1, aligned=True),
            momentum_alignment=Alignment(neutral_count=3),
            support_resistance=SupportResistance(),
        )

    def test_intraday_pullback_to_hourly_swing_low(self):
        recs = MultiTimeframeAnalyzer().entry_recommendations(self._pullback_result(100.0))

        assert len(recs) == 1
        rec = recs[0]
        assert rec.entry_type == EntryType.INTRADAY_PULLBACK
        assert rec.entry_zone == (100.0, 101.0)
        assert rec.stop_loss == pytest.approx(99.0)
        # 70 score + 66.67% bullish timeframes / 10
        assert rec.confidence == pytest.approx(76.67)
        assert rec.confirmations == {"h1_pullback": True, "m15_pullback": False, "timeframe": "1h"}

    def test_no_pullback_when_price_is_far_above_swing_low(self):
        assert MultiTimeframeAnalyzer().entry_recommendations(self._pullback_result(98.0)) == []

    def test_support_resistance_from_daily_and_weekly(self):
        analyzer = MultiTimeframeAnalyzer()
        daily = daily_analysis(structure=TimeframeStructure(
            swing_highs=(SwingPoint(15, 110.0), SwingPoint(25, 105.0)),
            swing_lows=(SwingPoint(10, 95.0), SwingPoint(20, 98.0)),
        ))
        weekly = daily_analysis(timeframe=Timeframe.W1, structure=TimeframeStructure(
            swing_highs=(SwingPoint(4, 120.0),),
            swing_lows=(SwingPoint(3, 90.0),),
        ))

        levels = analyzer.support_resistance({Timeframe.D1: daily, Timeframe.W1: weekly})

        assert levels.support_levels == (98.0, 95.0, 90.0)
        assert levels.resistance_levels == (105.0, 110.0, 120.0)
        assert levels.intraday_support == ()

    def test_support_resistance_empty(self):
        assert MultiTimeframeAnalyzer().support_resistance({}) == SupportResistance()
