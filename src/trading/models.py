"""
Trading Records - canonical intent, facts and recommendation value objects.

Handles:
- TradeIntent: normalised entry/stop/targets for one trade idea
- TradeFacts: the market facts (indicators, flags) an idea was built on
- TradeRecommendation: intent + facts + sizing, the unit the decision engine judges
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Bias(Enum):
    LONG = "long"
    SHORT = "short"
    AVOID = "avoid"


class SizingHint(Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class SetupStatus(Enum):
    READY = "READY"
    WAIT_PULLBACK = "WAIT_PULLBACK"
    NOT_READY = "NOT_READY"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# TRADE INTENT
# =============================================================================

@dataclass(frozen=True)
class TradeIntent:
    """
    Normalised trade idea.

    Invariants (enforced on construction):
    - entry and stop are positive and differ
    - target probabilities lie in [0, 1]
    - expected RR is non-negative
    """
    bias: Bias
    proposed_entry: float
    proposed_sl: float
    proposed_targets: Tuple[Tuple[float, float], ...] = ()
    expected_rr: float = 0.0
    sizing_hint: SizingHint = SizingHint.MEDIUM
    strategy_key: str = "swing_trading"

    def __post_init__(self):
        if self.proposed_entry <= 0 or self.proposed_sl <= 0:
            raise ValueError(
                f"Entry and stop must be positive (entry={self.proposed_entry}, stop={self.proposed_sl})"
            )
        if self.proposed_entry == self.proposed_sl:
            raise ValueError(f"Stop equals entry ({self.proposed_entry})")
        if self.expected_rr < 0:
            raise ValueError(f"Expected RR must be >= 0, got {self.expected_rr}")

        targets = tuple((float(p), float(prob)) for p, prob in self.proposed_targets)
        for price, probability in targets:
            if not 0.0 <= probability <= 1.0:
                raise ValueError(f"Target probability out of range: {probability}")
        object.__setattr__(self, "proposed_targets", targets)

    @property
    def risk_per_share(self) -> float:
        return abs(self.proposed_entry - self.proposed_sl)

    @property
    def reward_per_share(self) -> Optional[float]:
        """Distance to the first target."""
        if not self.proposed_targets:
            return None
        return abs(self.proposed_targets[0][0] - self.proposed_entry)

    @property
    def is_long(self) -> bool:
        return self.bias == Bias.LONG

    @property
    def is_short(self) -> bool:
        return self.bias == Bias.SHORT

    @property
    def is_avoid(self) -> bool:
        return self.bias == Bias.AVOID

    def to_dict(self) -> dict:
        return {
            "bias": self.bias.value,
            "proposed_entry": self.proposed_entry,
            "proposed_sl": self.proposed_sl,
            "proposed_targets": [list(t) for t in self.proposed_targets],
            "expected_rr": self.expected_rr,
            "sizing_hint": self.sizing_hint.value,
            "strategy_key": self.strategy_key,
        }


# =============================================================================
# TRADE FACTS
# =============================================================================

BULLISH_FLAGS = ("bullish", "ema_bullish", "supertrend_bullish")
BEARISH_FLAGS = ("bearish", "ema_bearish", "supertrend_bearish")


@dataclass(frozen=True)
class TradeFacts:
    """Market facts a trade idea was derived from."""
    symbol: str
    instrument_id: Optional[str] = None
    timeframe: str = "swing"
    indicators_snapshot: Dict[str, Any] = field(default_factory=dict)
    trend_flags: Tuple[str, ...] = ()
    momentum_flags: Tuple[str, ...] = ()
    screener_score: Optional[float] = None
    setup_status: SetupStatus = SetupStatus.NOT_READY
    detected_at: datetime = field(default_factory=_utcnow)

    @property
    def bullish(self) -> bool:
        return any(flag in BULLISH_FLAGS for flag in self.trend_flags)

    @property
    def bearish(self) -> bool:
        return any(flag in BEARISH_FLAGS for flag in self.trend_flags)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "instrument_id": self.instrument_id,
            "timeframe": self.timeframe,
            "indicators_snapshot": self.indicators_snapshot,
            "trend_flags": list(self.trend_flags),
            "momentum_flags": list(self.momentum_flags),
            "screener_score": self.screener_score,
            "setup_status": self.setup_status.value,
            "detected_at": self.detected_at.isoformat(),
        }


# =============================================================================
# TRADE RECOMMENDATION
# =============================================================================

@dataclass(frozen=True)
class TradeRecommendation:
    """
    Sized trade idea handed to the decision engine.

    Fields may be missing (None) on malformed input; the decision engine's
    validator stage reports them instead of this constructor raising.
    """
    facts: Optional[TradeFacts]
    intent: Optional[TradeIntent]
    quantity: Optional[int] = None
    risk_amount: Optional[float] = None
    confidence_score: Optional[float] = None
    invalidation_conditions: Tuple[str, ...] = ()
    entry_conditions: Tuple[str, ...] = ()
    reasoning: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if self.confidence_score is None and self.facts is not None:
            object.__setattr__(self, "confidence_score", self.facts.screener_score)

    # Derived from intent
    @property
    def entry_price(self) -> Optional[float]:
        return self.intent.proposed_entry if self.intent else None

    @property
    def stop_loss(self) -> Optional[float]:
        return self.intent.proposed_sl if self.intent else None

    @property
    def target_prices(self) -> List[float]:
        return [t[0] for t in self.intent.proposed_targets] if self.intent else []

    @property
    def risk_reward(self) -> Optional[float]:
        return self.intent.expected_rr if self.intent else None

    @property
    def risk_per_share(self) -> Optional[float]:
        return self.intent.risk_per_share if self.intent else None

    @property
    def bias(self) -> Optional[Bias]:
        return self.intent.bias if self.intent else None

    # Derived from facts
    @property
    def symbol(self) -> Optional[str]:
        return self.facts.symbol if self.facts else None

    @property
    def instrument_id(self) -> Optional[str]:
        return self.facts.instrument_id if self.facts else None

    @property
    def timeframe(self) -> Optional[str]:
        return self.facts.timeframe if self.facts else None

    @property
    def capital_required(self) -> Optional[float]:
        if self.entry_price is None or self.quantity is None:
            return None
        return self.entry_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "instrument_id": self.instrument_id,
            "timeframe": self.timeframe,
            "bias": self.bias.value if self.bias else None,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "target_prices": self.target_prices,
            "risk_reward": self.risk_reward,
            "quantity": self.quantity,
            "risk_amount": self.risk_amount,
            "risk_per_share": self.risk_per_share,
            "confidence_score": self.confidence_score,
            "invalidation_conditions": list(self.invalidation_conditions),
            "entry_conditions": list(self.entry_conditions),
            "reasoning": list(self.reasoning),
            "facts": self.facts.to_dict() if self.facts else None,
            "created_at": self.created_at.isoformat(),
        }
