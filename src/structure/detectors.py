"""
Structure Detectors - pure pattern finders over a candle series.

Handles:
- Break of Structure (BOS): latest candle beyond the most recent swing extreme
- Change of Character (CHOCH): flip of the HH/HL vs LH/LL majority vote
- Fair Value Gaps (FVG): three-candle imbalances and whether price refilled them
- Order Blocks: last opposing candle before a strong move
- Mitigation Blocks: clusters of wick rejections at the same price level

Every detector takes a candle sequence (CandleSeries or list of Candle) and
returns None / [] when there is not enough data. Nothing here raises on short
input; an empty result means "inconclusive".
"""

import logging
from typing import List, Optional, Sequence, Tuple

from src.data.candles import Candle, as_candle_list
from src.structure.models import (
    BreakOfStructure,
    ChangeOfCharacter,
    Direction,
    FairValueGap,
    MitigationBlock,
    MitigationKind,
    OrderBlock,
)


logger = logging.getLogger(__name__)


# Order block thresholds
STRONG_MOVE_BODY_RATIO = 0.6
STRONG_MOVE_MIN_PCT = 1.5
ORDER_BLOCK_MIN_BODY_RATIO = 0.4
ORDER_BLOCK_MOVE_NORMALISER = 5.0

# Mitigation block thresholds
REJECTION_MIN_WICK_RATIO = 0.3
REJECTION_MAX_BODY_RATIO = 0.5
LEVEL_TOLERANCE = 0.01
MIN_REJECTIONS = 2
RECENT_WINDOW = 10


# =============================================================================
# BREAK OF STRUCTURE
# =============================================================================

def find_swing_points(
    candles: Sequence[Candle],
    lookback: int,
) -> Tuple[List[Tuple[int, float]], List[Tuple[int, float]]]:
    """
    Locate swing highs and lows.

    A candle is a swing high when no other candle within +/- lookback has a
    high greater than or equal to its own (swing lows mirror this).

    Returns:
        (swing_highs, swing_lows) as lists of (index, price)
    """
    n = len(candles)
    swing_highs = []
    swing_lows = []

    for i in range(lookback, n - lookback):
        window = range(i - lookback, i + lookback + 1)
        high = candles[i].high
        low = candles[i].low

        if all(candles[j].high < high for j in window if j != i):
            swing_highs.append((i, high))
        if all(candles[j].low > low for j in window if j != i):
            swing_lows.append((i, low))

    return swing_highs, swing_lows


def detect_bos(candles, lookback: int = 10) -> Optional[BreakOfStructure]:
    """
    Detect a break of structure on the latest candle.

    Bullish: latest high above the most recent prior swing high.
    Bearish: latest low below the most recent prior swing low.
    Bullish is checked first.
    """
    candles = as_candle_list(candles)
    if len(candles) < lookback + 5:
        return None

    last_index = len(candles) - 1
    latest = candles[-1]
    swing_highs, swing_lows = find_swing_points(candles, lookback)

    prior_highs = [s for s in swing_highs if s[0] < last_index]
    if prior_highs:
        _, level = prior_highs[-1]
        if latest.high > level:
            return BreakOfStructure(
                direction=Direction.BULLISH,
                index=last_index,
                break_level=level,
                confirmed=latest.close > level,
            )

    prior_lows = [s for s in swing_lows if s[0] < last_index]
    if prior_lows:
        _, level = prior_lows[-1]
        if latest.low < level:
            return BreakOfStructure(
                direction=Direction.BEARISH,
                index=last_index,
                break_level=level,
                confirmed=latest.close < level,
            )

    return None


# =============================================================================
# CHANGE OF CHARACTER
# =============================================================================

def classify_structure(candles: Sequence[Candle], lookback: int) -> Optional[Direction]:
    """
    Majority vote over pairwise comparisons of the last `lookback` candles.

    Higher highs and higher lows vote bullish, lower highs and lower lows
    vote bearish. A tie is indeterminate (None).
    """
    if len(candles) < lookback or lookback < 2:
        return None

    recent = candles[-lookback:]
    higher_highs = lower_highs = higher_lows = lower_lows = 0

    for prev, curr in zip(recent, recent[1:]):
        if curr.high > prev.high:
            higher_highs += 1
        elif curr.high < prev.high:
            lower_highs += 1

        if curr.low > prev.low:
            higher_lows += 1
        elif curr.low < prev.low:
            lower_lows += 1

    bullish_votes = higher_highs + higher_lows
    bearish_votes = lower_highs + lower_lows

    if bullish_votes > bearish_votes:
        return Direction.BULLISH
    if bearish_votes > bullish_votes:
        return Direction.BEARISH
    return None


def detect_choch(candles, lookback: int = 20) -> Optional[ChangeOfCharacter]:
    """Detect a structure flip between the previous bar and the latest bar."""
    candles = as_candle_list(candles)
    if len(candles) < lookback + 5:
        return None

    current = classify_structure(candles, lookback)
    previous = classify_structure(candles[:-1], lookback)

    if current is None or previous is None or current == previous:
        return None

    return ChangeOfCharacter(
        direction=current,
        index=len(candles) - 1,
        previous_structure=previous,
        new_structure=current,
    )


# =============================================================================
# FAIR VALUE GAPS
# =============================================================================

def _is_filled(candles: Sequence[Candle], start: int, gap_low: float, gap_high: float) -> bool:
    """True if any candle from `start` onwards trades back into the gap."""
    return any(c.low <= gap_high and c.high >= gap_low for c in candles[start:])


def _body_bridges(candle: Candle, gap_low: float, gap_high: float) -> bool:
    """True if the candle body fully covers the gap range."""
    return candle.body_low <= gap_low and candle.body_high >= gap_high


def detect_fvg(candles, lookback: int = 50) -> List[FairValueGap]:
    """
    Detect fair value gaps in the last `lookback` candles.

    Indices refer to the analysed window; the fill scan uses the same window.
    """
    candles = as_candle_list(candles)
    if len(candles) < 3:
        return []

    window = candles[-min(lookback, len(candles)):]
    gaps = []

    for i in range(len(window) - 2):
        c1, c2, c3 = window[i], window[i + 1], window[i + 2]

        if c3.low > c1.high:
            gap_low, gap_high = c1.high, c3.low
            if not _body_bridges(c2, gap_low, gap_high):
                gaps.append(FairValueGap(
                    direction=Direction.BULLISH,
                    index=i + 1,
                    gap_high=gap_high,
                    gap_low=gap_low,
                    filled=_is_filled(window, i + 3, gap_low, gap_high),
                ))
        elif c3.high < c1.low:
            gap_low, gap_high = c3.high, c1.low
            if not _body_bridges(c2, gap_low, gap_high):
                gaps.append(FairValueGap(
                    direction=Direction.BEARISH,
                    index=i + 1,
                    gap_high=gap_high,
                    gap_low=gap_low,
                    filled=_is_filled(window, i + 3, gap_low, gap_high),
                ))

    return gaps


# =============================================================================
# ORDER BLOCKS
# =============================================================================

def _body_ratio(candle: Candle) -> float:
    return candle.body / candle.range if candle.range > 0 else 0.0


def _find_strong_moves(candles: Sequence[Candle]) -> List[Tuple[int, Direction, float]]:
    """Candles with a dominant body and a large percentage move."""
    moves = []
    for idx, candle in enumerate(candles):
        if idx == 0 or candle.range <= 0 or candle.open <= 0:
            continue

        move_pct = candle.body / candle.open * 100
        if _body_ratio(candle) >= STRONG_MOVE_BODY_RATIO and move_pct >= STRONG_MOVE_MIN_PCT:
            direction = Direction.BULLISH if candle.is_bullish else Direction.BEARISH
            moves.append((idx, direction, move_pct))
    return moves


def _is_opposing(candle: Candle, move_direction: Direction) -> bool:
    if move_direction == Direction.BULLISH:
        return candle.is_bearish
    return candle.is_bullish


def _is_same_direction(candle: Candle, move_direction: Direction) -> bool:
    if move_direction == Direction.BULLISH:
        return candle.is_bullish
    return candle.is_bearish


def detect_order_blocks(candles, lookback: int = 20) -> List[OrderBlock]:
    """
    Detect order blocks in the last `lookback` candles.

    For each strong move, scan backward for the nearest opposing candle with
    a body of at least 40% of its range. A same-direction candle ends the
    search; dojis are skipped.
    """
    candles = as_candle_list(candles)
    if len(candles) < 5:
        return []

    window = candles[-min(lookback, len(candles)):]
    blocks = {}

    for move_idx, direction, move_pct in _find_strong_moves(window):
        for idx in range(move_idx - 1, -1, -1):
            candle = window[idx]

            if _is_opposing(candle, direction):
                if candle.range <= 0:
                    continue
                ratio = _body_ratio(candle)
                if ratio >= ORDER_BLOCK_MIN_BODY_RATIO:
                    strength = round(
                        0.5 * ratio + 0.5 * min(move_pct / ORDER_BLOCK_MOVE_NORMALISER, 1.0), 2
                    )
                    blocks.setdefault(idx, OrderBlock(
                        direction=direction,
                        index=idx,
                        high=candle.high,
                        low=candle.low,
                        strength=strength,
                        move_index=move_idx,
                    ))
                    break
            elif _is_same_direction(candle, direction):
                break

    return [blocks[idx] for idx in sorted(blocks)]


# =============================================================================
# MITIGATION BLOCKS
# =============================================================================

def _find_rejections(candles: Sequence[Candle]) -> List[Tuple[int, MitigationKind, float]]:
    """Long-wick, small-body candles. One candle may reject both sides."""
    rejections = []
    for idx, candle in enumerate(candles):
        if candle.range <= 0:
            continue
        if _body_ratio(candle) >= REJECTION_MAX_BODY_RATIO:
            continue

        if candle.lower_wick / candle.range >= REJECTION_MIN_WICK_RATIO:
            rejections.append((idx, MitigationKind.SUPPORT, candle.low))
        if candle.upper_wick / candle.range >= REJECTION_MIN_WICK_RATIO:
            rejections.append((idx, MitigationKind.RESISTANCE, candle.high))
    return rejections


def _group_by_level(
    rejections: List[Tuple[int, MitigationKind, float]],
) -> List[Tuple[float, List[Tuple[int, MitigationKind, float]]]]:
    """Join each rejection to the first level within 1% of its price."""
    groups: List[Tuple[float, List]] = []
    for rejection in rejections:
        price = rejection[2]
        for level, members in groups:
            if level > 0 and abs(price - level) / level <= LEVEL_TOLERANCE:
                members.append(rejection)
                break
        else:
            groups.append((price, [rejection]))
    return groups


def detect_mitigation_blocks(candles, lookback: int = 30) -> List[MitigationBlock]:
    """
    Detect mitigation zones in the last `lookback` candles.

    A zone needs at least two rejections. Recent rejections (within the last
    10 indices of the zone) add a bonus to strength. Sorted strongest first.
    """
    candles = as_candle_list(candles)
    if len(candles) < 10:
        return []

    window = candles[-min(lookback, len(candles)):]
    blocks = []

    for level, members in _group_by_level(_find_rejections(window)):
        count = len(members)
        if count < MIN_REJECTIONS:
            continue

        supports = sum(1 for m in members if m[1] == MitigationKind.SUPPORT)
        kind = MitigationKind.SUPPORT if supports >= count - supports else MitigationKind.RESISTANCE

        last_index = max(m[0] for m in members)
        recent = sum(1 for m in members if m[0] >= last_index - RECENT_WINDOW)
        strength = min(min(count / 5, 1.0) + 0.1 * recent, 1.0)

        blocks.append(MitigationBlock(
            kind=kind,
            index=last_index,
            price_level=level,
            strength=round(strength, 2),
            rejection_count=count,
        ))

    blocks.sort(key=lambda b: b.strength, reverse=True)
    return blocks
