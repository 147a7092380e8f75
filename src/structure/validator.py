"""
Structure Validator - weighted directional score over all detectors.

Scoring (enabled checks only contribute to the max):
    BOS                 30
    CHOCH               20
    Order blocks        25  (sum of strength x 10, capped)
    Fair value gaps     15  (direction-matching and unfilled)
    Mitigation blocks   10  (matching side, strength >= 0.5)

score = earned / max x 100, valid when score >= min_score.
"""

import logging
from typing import Optional

from config.settings import StructureSettings
from src.data.candles import as_candle_list
from src.structure import detectors
from src.structure.models import (
    Direction,
    MitigationKind,
    StructureFindings,
    StructureVerdict,
)


logger = logging.getLogger(__name__)


BOS_WEIGHT = 30
CHOCH_WEIGHT = 20
ORDER_BLOCK_WEIGHT = 25
FVG_WEIGHT = 15
MITIGATION_WEIGHT = 10
MIN_MITIGATION_STRENGTH = 0.5


def validate_structure(
    candles,
    direction: str = "long",
    config: Optional[StructureSettings] = None,
) -> StructureVerdict:
    """
    Score market structure for a long or short trade.

    Args:
        candles: CandleSeries or list of Candle
        direction: "long" or "short"
        config: StructureSettings (defaults used when None)

    Returns:
        StructureVerdict
    """
    config = config or StructureSettings()
    candles = as_candle_list(candles)

    if len(candles) < config.min_candles:
        logger.debug(f"Structure check skipped: {len(candles)} < {config.min_candles} candles")
        return StructureVerdict.insufficient()

    expected = Direction.for_bias(direction)
    lookback = config.lookback
    block_lookback = lookback * 2

    score = 0.0
    max_score = 0.0
    reasons = []

    bos = None
    if config.require_bos:
        max_score += BOS_WEIGHT
        bos = detectors.detect_bos(candles, lookback=lookback)
        if bos is None:
            reasons.append("No BOS detected")
        elif bos.direction == expected:
            score += BOS_WEIGHT
            reasons.append(f"BOS detected: {bos.direction.value}")
        else:
            reasons.append(f"BOS mismatch: expected {direction}, got {bos.direction.value}")

    choch = None
    if config.require_choch:
        max_score += CHOCH_WEIGHT
        choch = detectors.detect_choch(candles, lookback=lookback)
        if choch is not None:
            if choch.direction == expected:
                score += CHOCH_WEIGHT
                reasons.append(f"CHOCH detected: {choch.direction.value}")
            else:
                reasons.append(f"CHOCH mismatch: expected {direction}, got {choch.direction.value}")

    order_blocks = ()
    if config.require_order_blocks:
        max_score += ORDER_BLOCK_WEIGHT
        order_blocks = tuple(detectors.detect_order_blocks(candles, lookback=block_lookback))
        matching = [ob for ob in order_blocks if ob.direction == expected]
        if matching:
            score += min(sum(ob.strength * 10 for ob in matching), ORDER_BLOCK_WEIGHT)
            reasons.append(f"{len(matching)} {direction} order block(s) found")
        else:
            reasons.append(f"No {direction} order blocks found")

    fvgs = ()
    if config.require_fvgs:
        max_score += FVG_WEIGHT
        fvgs = tuple(detectors.detect_fvg(candles, lookback=block_lookback))
        open_gaps = [g for g in fvgs if g.direction == expected and not g.filled]
        if open_gaps:
            score += FVG_WEIGHT
            reasons.append(f"{len(open_gaps)} unfilled {direction} FVG(s) found")

    mitigation_blocks = ()
    if config.require_mitigation_blocks:
        max_score += MITIGATION_WEIGHT
        mitigation_blocks = tuple(detectors.detect_mitigation_blocks(candles, lookback=block_lookback))
        wanted = MitigationKind.SUPPORT if expected == Direction.BULLISH else MitigationKind.RESISTANCE
        strong = [
            mb for mb in mitigation_blocks
            if mb.kind == wanted and mb.strength >= MIN_MITIGATION_STRENGTH
        ]
        if strong:
            score += MITIGATION_WEIGHT
            reasons.append(f"{len(strong)} strong {wanted.value} mitigation block(s) found")

    normalised = round(score / max_score * 100, 2) if max_score > 0 else 0.0
    valid = normalised >= config.min_score

    logger.debug(
        f"Structure {direction}: score={normalised} valid={valid} "
        f"({len(reasons)} reasons)"
    )

    return StructureVerdict(
        valid=valid,
        score=normalised,
        reasons=tuple(reasons),
        findings=StructureFindings(
            bos=bos,
            choch=choch,
            order_blocks=order_blocks,
            fair_value_gaps=fvgs,
            mitigation_blocks=mitigation_blocks,
        ),
    )
