"""
Structure Findings - immutable records produced by the structure detectors.

Each detector emits its own finding type. The validator bundles them into a
StructureVerdict together with the score and the human-readable reasons.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Direction(Enum):
    """Direction of a structural signal."""
    BULLISH = "bullish"
    BEARISH = "bearish"

    @classmethod
    def for_bias(cls, bias: str) -> "Direction":
        """Map a trade bias ("long"/"short") to the matching signal direction."""
        return cls.BULLISH if bias == "long" else cls.BEARISH


class MitigationKind(Enum):
    """Side of a mitigation zone."""
    SUPPORT = "support"
    RESISTANCE = "resistance"


@dataclass(frozen=True)
class BreakOfStructure:
    """Latest candle broke the most recent swing extreme."""
    direction: Direction
    index: int
    break_level: float
    confirmed: bool  # Close (not just the wick) beyond the level

    def to_dict(self) -> dict:
        return {
            "type": self.direction.value,
            "index": self.index,
            "break_level": self.break_level,
            "confirmed": self.confirmed,
        }


@dataclass(frozen=True)
class ChangeOfCharacter:
    """Structure classification flipped between the previous and latest bar."""
    direction: Direction
    index: int
    previous_structure: Direction
    new_structure: Direction

    def to_dict(self) -> dict:
        return {
            "type": self.direction.value,
            "index": self.index,
            "previous_structure": self.previous_structure.value,
            "new_structure": self.new_structure.value,
        }


@dataclass(frozen=True)
class FairValueGap:
    """Three-candle imbalance."""
    direction: Direction
    index: int  # Middle candle of the triple
    gap_high: float
    gap_low: float
    filled: bool

    @property
    def size(self) -> float:
        return self.gap_high - self.gap_low

    def to_dict(self) -> dict:
        return {
            "type": self.direction.value,
            "index": self.index,
            "gap_high": self.gap_high,
            "gap_low": self.gap_low,
            "filled": self.filled,
        }


@dataclass(frozen=True)
class OrderBlock:
    """Last opposing candle before a strong directional move."""
    direction: Direction
    index: int
    high: float
    low: float
    strength: float
    move_index: int

    @property
    def price_range(self) -> Tuple[float, float]:
        return self.low, self.high

    def to_dict(self) -> dict:
        return {
            "type": self.direction.value,
            "index": self.index,
            "price_range": {"high": self.high, "low": self.low},
            "strength": self.strength,
            "move_index": self.move_index,
        }


@dataclass(frozen=True)
class MitigationBlock:
    """Price zone with repeated wick rejections."""
    kind: MitigationKind
    index: int
    price_level: float
    strength: float
    rejection_count: int

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "index": self.index,
            "price_level": self.price_level,
            "strength": self.strength,
            "rejection_count": self.rejection_count,
        }


@dataclass(frozen=True)
class StructureFindings:
    """Raw detector output attached to a verdict."""
    bos: Optional[BreakOfStructure] = None
    choch: Optional[ChangeOfCharacter] = None
    order_blocks: Tuple[OrderBlock, ...] = ()
    fair_value_gaps: Tuple[FairValueGap, ...] = ()
    mitigation_blocks: Tuple[MitigationBlock, ...] = ()

    def to_dict(self) -> dict:
        return {
            "bos": self.bos.to_dict() if self.bos else None,
            "choch": self.choch.to_dict() if self.choch else None,
            "order_blocks": [ob.to_dict() for ob in self.order_blocks],
            "fvgs": [g.to_dict() for g in self.fair_value_gaps],
            "mitigation_blocks": [mb.to_dict() for mb in self.mitigation_blocks],
        }


@dataclass(frozen=True)
class StructureVerdict:
    """
    Combined structure assessment for one direction.

    score is normalised to 0-100 over the checks that were enabled.
    """
    valid: bool
    score: float
    reasons: Tuple[str, ...] = ()
    findings: StructureFindings = field(default_factory=StructureFindings)

    @classmethod
    def insufficient(cls) -> "StructureVerdict":
        return cls(valid=False, score=0.0, reasons=("Insufficient candles",))

    def to_dict(self) -> Dict:
        return {
            "valid": self.valid,
            "score": self.score,
            "reasons": list(self.reasons),
            "structure": self.findings.to_dict(),
        }

    @property
    def reason_list(self) -> List[str]:
        return list(self.reasons)
