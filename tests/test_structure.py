"""
Tests for candle series, structure detectors and the structure validator.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import StructureSettings, Timeframe
from src.data.candles import Candle, CandleSeries
from src.data.providers import CsvCandleProvider, InMemoryCandleProvider
from src.structure.detectors import (
    classify_structure,
    detect_bos,
    detect_choch,
    detect_fvg,
    detect_mitigation_blocks,
    detect_order_blocks,
)
from src.structure.models import (
    BreakOfStructure,
    ChangeOfCharacter,
    Direction,
    MitigationKind,
)
from src.structure.validator import validate_structure


BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def bar(i, o, h, l, c, v=1000.0):
    return Candle(BASE + timedelta(days=i), o, h, l, c, v)


def build(rows):
    return [bar(i, *row) for i, row in enumerate(rows)]


@pytest.fixture
def rising_candles():
    """100 steadily rising daily candles."""
    return [bar(i, 100 + i, 101.5 + i, 99 + i, 100.5 + i) for i in range(100)]


# ============================================================================
# CANDLES
# ============================================================================

class TestCandleSeries:

    def test_rejects_high_below_low(self):
        with pytest.raises(ValueError):
            bar(0, 100, 99, 101, 100)

    def test_rejects_non_increasing_timestamps(self):
        candles = [bar(1, 100, 101, 99, 100), bar(0, 100, 101, 99, 100)]
        with pytest.raises(ValueError):
            CandleSeries("TEST", "1D", candles)

    def test_from_dataframe(self):
        df = pd.DataFrame(
            {
                "Open": [100.0, 101.0, 102.0],
                "High": [101.0, 102.0, 103.0],
                "Low": [99.0, 100.0, 101.0],
                "Close": [100.5, 101.5, 102.5],
            },
            index=pd.date_range("2024-01-01", periods=3, freq="D", tz="UTC"),
        )
        series = CandleSeries.from_dataframe("TEST", "1D", df)

        assert len(series) == 3
        assert series.latest_close == 102.5
        assert series.volumes.tolist() == [0.0, 0.0, 0.0]

    def test_from_records_accepts_feed_rows(self):
        rows = [
            ["2024-01-01T00:00:00Z", 100, 101, 99, 100.5, 5000],
            ["2024-01-02T00:00:00Z", 100.5, 102, 100, 101.5, 6000],
        ]
        series = CandleSeries.from_records("TEST", "1D", rows)

        assert len(series) == 2
        assert series[1].volume == 6000.0

    def test_swing_high_is_strict(self):
        candles = build([
            (100, 101, 99, 100),
            (100, 102, 99, 100),
            (100, 105, 99, 100),
            (100, 102, 99, 100),
            (100, 105, 99, 100),
        ])
        series = CandleSeries("TEST", "1D", candles)

        assert not series.swing_high(2)  # Ties with index 4
        assert not series.swing_high(0)

    def test_to_dataframe(self, rising_candles):
        df = CandleSeries("TEST", "1D", rising_candles).to_dataframe()

        assert list(df.columns) == ["open", "high", "low", "close", "volume"]
        assert len(df) == 100


class TestProviders:

    def test_in_memory_provider(self, rising_candles):
        series = CandleSeries("TEST", "1D", rising_candles)
        provider = InMemoryCandleProvider()
        provider.add(series, Timeframe.D1)

        assert provider.load("TEST", Timeframe.D1) is series
        assert provider.load("TEST", Timeframe.W1) is None

    def test_csv_provider(self, tmp_path, rising_candles):
        df = CandleSeries("TEST", "1D", rising_candles).to_dataframe().reset_index()
        df.to_csv(tmp_path / "TEST_D1.csv", index=False)

        provider = CsvCandleProvider(str(tmp_path))
        series = provider.load("TEST", Timeframe.D1)

        assert len(series) == 100
        assert series.interval == "1D"
        assert provider.load("TEST", Timeframe.D1) is series  # Cached
        assert provider.load("TEST", Timeframe.W1) is None


# ============================================================================
# BREAK OF STRUCTURE / CHANGE OF CHARACTER
# ============================================================================

class TestBreakOfStructure:

    def test_bullish_break(self):
        rows = [(102, 105, 100, 103)] * 15
        rows[5] = (103, 110, 101, 104)
        rows[14] = (104, 112, 103, 111)

        bos = detect_bos(build(rows), lookback=3)

        assert bos == BreakOfStructure(Direction.BULLISH, 14, 110, True)

    def test_bearish_break(self):
        rows = [(102, 105, 100, 103)] * 15
        rows[5] = (101, 104, 90, 100)
        rows[14] = (100, 104, 88, 89)

        bos = detect_bos(build(rows), lookback=3)

        assert bos.direction == Direction.BEARISH
        assert bos.break_level == 90
        assert bos.confirmed

    def test_too_few_candles(self):
        rows = [(102, 105, 100, 103)] * 7
        assert detect_bos(build(rows), lookback=3) is None

    def test_no_break(self):
        rows = [(102, 105, 100, 103)] * 15
        rows[5] = (103, 110, 101, 104)
        assert detect_bos(build(rows), lookback=3) is None


class TestChangeOfCharacter:

    def test_classify_rising_and_falling(self, rising_candles):
        falling = build([(200 - i, 201 - i, 199 - i, 199.5 - i) for i in range(30)])

        assert classify_structure(rising_candles, 20) == Direction.BULLISH
        assert classify_structure(falling, 20) == Direction.BEARISH

    def test_flip_to_bullish(self):
        rows = [(105 - i, 110 - i, 100 - i, 104 - i) for i in range(9)]
        rows.append((103, 110, 100, 108))  # Higher high and higher low than bar 8

        choch = detect_choch(build(rows), lookback=2)

        assert choch is not None
        assert choch.direction == Direction.BULLISH
        assert choch.previous_structure == Direction.BEARISH
        assert choch.index == 9

    def test_no_flip(self, rising_candles):
        assert detect_choch(rising_candles, lookback=20) is None

    def test_needs_lookback_plus_five_candles(self):
        rows = [(105 - i, 110 - i, 100 - i, 104 - i) for i in range(9)]
        rows.append((103, 110, 100, 108))
        candles = build(rows)

        assert detect_choch(candles[-6:], lookback=2) is None
        assert detect_choch(candles[-7:], lookback=2).direction == Direction.BULLISH

    def test_tie_after_downtrend_is_not_a_flip(self):
        rows = [(105 - i, 110 - i, 100 - i, 104 - i) for i in range(9)]
        rows.append((96, 103, 91, 97))  # Outside bar: higher high, lower low
        candles = build(rows)

        assert classify_structure(candles, 2) is None
        assert detect_choch(candles, lookback=2) is None

    def test_tie_before_rally_is_not_a_flip(self):
        rows = [(105 - i, 110 - i, 100 - i, 104 - i) for i in range(8)]
        rows.append((97, 104, 92, 100))  # Outside bar against bar 7
        rows.append((100, 106, 95, 105))
        candles = build(rows)

        assert classify_structure(candles, 2) == Direction.BULLISH
        assert classify_structure(candles[:-1], 2) is None
        assert detect_choch(candles, lookback=2) is None


# ============================================================================
# FAIR VALUE GAPS
# ============================================================================

class TestFairValueGaps:

    def test_unfilled_bullish_gap(self):
        candles = build([
            (100, 101, 99, 100.5),
            (102, 106, 101.5, 105),
            (105, 107, 103, 106.5),
            (106.5, 108, 105, 107.5),
        ])

        gaps = detect_fvg(candles)

        assert len(gaps) == 1
        gap = gaps[0]
        assert gap.direction == Direction.BULLISH
        assert gap.index == 1
        assert (gap.gap_low, gap.gap_high) == (101, 103)
        assert not gap.filled

    def test_filled_bullish_gap(self):
        candles = build([
            (100, 101, 99, 100.5),
            (102, 106, 101.5, 105),
            (105, 107, 103, 106.5),
            (106, 106.5, 102, 104),
        ])

        gaps = detect_fvg(candles)

        assert len(gaps) == 1
        assert gaps[0].filled

    def test_bearish_gap(self):
        candles = build([
            (100, 101, 99, 99.5),
            (98, 98.5, 94, 95),
            (95, 97, 93, 94),
        ])

        gaps = detect_fvg(candles)

        assert len(gaps) == 1
        assert gaps[0].direction == Direction.BEARISH
        assert gaps[0].size == pytest.approx(2.0)

    def test_gap_bridged_by_middle_body_is_ignored(self):
        candles = build([
            (100, 101, 99, 100.5),
            (100.8, 106, 100.5, 105.5),
            (105, 107, 103, 106.5),
        ])
        assert detect_fvg(candles) == []


# ============================================================================
# ORDER BLOCKS / MITIGATION BLOCKS
# ============================================================================

class TestOrderBlocks:

    def test_bearish_candle_before_strong_rally(self):
        candles = build([
            (100, 101, 99.5, 100.5),
            (100.5, 101, 100, 100.8),
            (101, 101.2, 99.8, 100),
            (100, 104.2, 99.9, 104),
            (104, 104.5, 103.5, 104.2),
        ])

        blocks = detect_order_blocks(candles)

        assert len(blocks) == 1
        block = blocks[0]
        assert block.direction == Direction.BULLISH
        assert block.index == 2
        assert block.price_range == (99.8, 101.2)
        assert block.move_index == 3
        assert block.strength == pytest.approx(0.76)

    def test_same_direction_candle_ends_search(self):
        candles = build([
            (100, 101, 99.5, 100.5),
            (101, 101.2, 99.8, 100),     # Qualifying bearish candle
            (100, 100.6, 99.9, 100.5),   # Bullish, sits between it and the move
            (100, 104.2, 99.9, 104),
            (104, 104.5, 103.5, 104.2),
        ])
        assert detect_order_blocks(candles) == []

    def test_weak_opposing_candle_is_skipped(self):
        candles = build([
            (100, 101, 99.5, 100.5),
            (101, 101.2, 99.8, 100),
            (100.3, 101.2, 99.8, 100.1),  # Bearish, body ratio 0.14
            (100, 104.2, 99.9, 104),
            (104, 104.5, 103.5, 104.2),
        ])

        blocks = detect_order_blocks(candles)

        assert len(blocks) == 1
        assert blocks[0].index == 1
        assert blocks[0].move_index == 3
        assert blocks[0].strength == pytest.approx(0.76)

    def test_too_few_candles(self):
        assert detect_order_blocks(build([(100, 101, 99, 100)] * 4)) == []


class TestMitigationBlocks:

    def test_repeated_support_rejections(self):
        rows = [(102, 103, 101.9, 102.9)] * 12
        for i in (3, 7, 11):
            rows[i] = (102, 102.3, 100, 102.2)

        blocks = detect_mitigation_blocks(build(rows))

        assert len(blocks) == 1
        block = blocks[0]
        assert block.kind == MitigationKind.SUPPORT
        assert block.rejection_count == 3
        assert block.price_level == 100
        assert block.index == 11
        assert block.strength == pytest.approx(0.9)

    def test_single_rejection_is_not_a_zone(self):
        rows = [(102, 103, 101.9, 102.9)] * 12
        rows[5] = (102, 102.3, 100, 102.2)
        assert detect_mitigation_blocks(build(rows)) == []


# ============================================================================
# VALIDATOR
# ============================================================================

class TestStructureValidator:

    def _patches(self, bos, choch=None):
        return [
            patch("src.structure.detectors.detect_bos", return_value=bos),
            patch("src.structure.detectors.detect_choch", return_value=choch),
            patch("src.structure.detectors.detect_order_blocks", return_value=[]),
            patch("src.structure.detectors.detect_fvg", return_value=[]),
            patch("src.structure.detectors.detect_mitigation_blocks", return_value=[]),
        ]

    def _run(self, candles, config, bos, direction="long", choch=None):
        patches = self._patches(bos, choch)
        for p in patches:
            p.start()
        try:
            return validate_structure(candles, direction, config)
        finally:
            for p in patches:
                p.stop()

    def test_bos_alone_meets_low_threshold(self, rising_candles):
        bos = BreakOfStructure(Direction.BULLISH, 99, 150.0, True)
        verdict = self._run(rising_candles, StructureSettings(min_score=30), bos)

        assert verdict.valid
        assert verdict.score == 30.0
        assert "BOS detected: bullish" in verdict.reasons

    def test_bos_alone_fails_full_threshold(self, rising_candles):
        bos = BreakOfStructure(Direction.BULLISH, 99, 150.0, True)
        verdict = self._run(rising_candles, StructureSettings(min_score=100), bos)

        assert not verdict.valid
        assert verdict.score == 30.0

    def test_bos_and_choch_meet_low_threshold(self, rising_candles):
        bos = BreakOfStructure(Direction.BULLISH, 99, 150.0, True)
        choch = ChangeOfCharacter(Direction.BULLISH, 99, Direction.BEARISH, Direction.BULLISH)

        verdict = self._run(rising_candles, StructureSettings(min_score=30), bos, choch=choch)

        assert verdict.valid
        assert verdict.score == 50.0
        assert "CHOCH detected: bullish" in verdict.reasons

    def test_bos_and_choch_fail_full_threshold(self, rising_candles):
        bos = BreakOfStructure(Direction.BULLISH, 99, 150.0, True)
        choch = ChangeOfCharacter(Direction.BULLISH, 99, Direction.BEARISH, Direction.BULLISH)

        verdict = self._run(rising_candles, StructureSettings(min_score=100), bos, choch=choch)

        assert not verdict.valid
        assert verdict.score == 50.0

    def test_direction_mismatch(self, rising_candles):
        bos = BreakOfStructure(Direction.BEARISH, 99, 90.0, True)
        verdict = self._run(rising_candles, StructureSettings(), bos)

        assert verdict.score == 0.0
        assert "BOS mismatch: expected long, got bearish" in verdict.reasons

    def test_short_direction(self, rising_candles):
        bos = BreakOfStructure(Direction.BEARISH, 99, 90.0, True)
        verdict = self._run(rising_candles, StructureSettings(min_score=30), bos, direction="short")

        assert verdict.valid

    def test_disabled_checks_leave_the_max_score(self, rising_candles):
        config = StructureSettings(
            require_choch=False,
            require_order_blocks=False,
            require_fvgs=False,
            require_mitigation_blocks=False,
        )
        bos = BreakOfStructure(Direction.BULLISH, 99, 150.0, True)
        verdict = self._run(rising_candles, config, bos)

        assert verdict.score == 100.0
        assert verdict.valid

    def test_insufficient_candles(self, rising_candles):
        verdict = validate_structure(rising_candles[:10])

        assert not verdict.valid
        assert verdict.score == 0.0
        assert verdict.reason_list == ["Insufficient candles"]

    def test_real_detectors_produce_bounded_score(self, rising_candles):
        verdict = validate_structure(CandleSeries("TEST", "1D", rising_candles))

        assert 0.0 <= verdict.score <= 100.0
        assert set(verdict.to_dict()["structure"]) == {
            "bos", "choch", "order_blocks", "fvgs", "mitigation_blocks",
        }
