"""
Trade-Intent Adapters - normalise upstream plan shapes into TradeIntent.

Two plan shapes exist:
- TradePlan: swing plans with explicit entry / stop / take-profit
- AccumulationPlan: long-term plans with a buy zone and an invalidation level

Adapters return None when a plan lacks the fields an intent needs. The system
is long-only, so both adapters produce long intents.
"""

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional, Tuple
import logging

from src.trading.models import Bias, SizingHint, TradeIntent


logger = logging.getLogger(__name__)


REFERENCE_CAPITAL = 100_000.0
TAKE_PROFIT_PROBABILITY = 0.7
ACCUMULATION_TARGET_MULTIPLE = 1.5
ACCUMULATION_TARGET_PROBABILITY = 0.6
ACCUMULATION_STOP_FRACTION = 0.8
ACCUMULATION_DEFAULT_RR = 1.5


def _from_mapping(cls, values: Mapping[str, Any]):
    """Build a plan dataclass from a dict, ignoring unknown keys."""
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in values.items() if k in known})


@dataclass(frozen=True)
class TradePlan:
    """Swing trade plan."""
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    risk_reward: Optional[float] = None
    quantity: Optional[int] = None
    risk_amount: Optional[float] = None
    max_capital_pct: Optional[float] = None
    setup_type: Optional[str] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "TradePlan":
        return _from_mapping(cls, values)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class AccumulationPlan:
    """Long-term accumulation plan. buy_zone is either "low - high" or a single price."""
    buy_zone: Optional[str] = None
    entry_price: Optional[float] = None
    invalid_level: Optional[float] = None
    expected_rr: Optional[float] = None
    allocation_pct: Optional[float] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "AccumulationPlan":
        return _from_mapping(cls, values)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _hint_from_pct(pct: float, large: float, medium: float) -> SizingHint:
    if pct >= large:
        return SizingHint.LARGE
    if pct >= medium:
        return SizingHint.MEDIUM
    return SizingHint.SMALL


# =============================================================================
# TRADE PLAN -> INTENT
# =============================================================================

def _trade_plan_targets(plan: TradePlan) -> Tuple[Tuple[float, float], ...]:
    if plan.take_profit and plan.take_profit > 0:
        return ((float(plan.take_profit), TAKE_PROFIT_PROBABILITY),)
    return ()


def _trade_plan_rr(plan: TradePlan, entry: float, stop: float, targets) -> float:
    if plan.risk_reward is not None:
        return float(plan.risk_reward)

    risk = abs(entry - stop)
    if risk == 0 or not targets:
        return 0.0

    reward = abs(targets[0][0] - entry)
    return round(reward / risk, 2) if reward > 0 else 0.0


def _trade_plan_hint(plan: TradePlan, reference_capital: float) -> SizingHint:
    if plan.max_capital_pct is not None:
        return _hint_from_pct(float(plan.max_capital_pct), 10.0, 5.0)
    if plan.risk_amount is not None:
        risk_pct = float(plan.risk_amount) / reference_capital * 100
        return _hint_from_pct(risk_pct, 1.0, 0.5)
    return SizingHint.MEDIUM


def trade_plan_to_intent(
    plan: Optional[TradePlan],
    strategy_key: Optional[str] = None,
    reference_capital: float = REFERENCE_CAPITAL,
) -> Optional[TradeIntent]:
    """Convert a swing TradePlan; None unless entry and stop are positive."""
    if plan is None:
        return None
    if not plan.entry_price or plan.entry_price <= 0:
        return None
    if not plan.stop_loss or plan.stop_loss <= 0:
        return None

    entry = float(plan.entry_price)
    stop = float(plan.stop_loss)
    if entry == stop:
        logger.debug(f"Trade plan rejected: stop equals entry ({entry})")
        return None

    targets = _trade_plan_targets(plan)
    expected_rr = _trade_plan_rr(plan, entry, stop, targets)
    if expected_rr < 0:
        logger.debug(f"Trade plan rejected: negative risk_reward ({expected_rr})")
        return None

    return TradeIntent(
        bias=Bias.LONG,
        proposed_entry=entry,
        proposed_sl=stop,
        proposed_targets=targets,
        expected_rr=expected_rr,
        sizing_hint=_trade_plan_hint(plan, reference_capital),
        strategy_key=strategy_key or "swing_trading",
    )


# =============================================================================
# ACCUMULATION PLAN -> INTENT
# =============================================================================

def parse_buy_zone(zone: str) -> float:
    """Midpoint of "low - high", or the single price. Raises ValueError on anything else."""
    text = str(zone).strip()
    if " - " in text:
        low, high = (part.strip() for part in text.split(" - ", 1))
        return (float(low) + float(high)) / 2.0
    return float(text)


def accumulation_plan_to_intent(
    plan: Optional[AccumulationPlan],
    strategy_key: Optional[str] = None,
) -> Optional[TradeIntent]:
    """Convert a long-term AccumulationPlan; None without a buy zone or entry."""
    if plan is None:
        return None
    if not plan.buy_zone and not plan.entry_price:
        return None

    try:
        entry = parse_buy_zone(plan.buy_zone) if plan.buy_zone else float(plan.entry_price)
    except ValueError:
        logger.debug(f"Accumulation plan rejected: unparseable buy zone {plan.buy_zone!r}")
        return None
    if entry <= 0:
        return None

    if plan.invalid_level and plan.invalid_level > 0:
        stop = float(plan.invalid_level)
    else:
        stop = entry * ACCUMULATION_STOP_FRACTION

    if stop == entry:
        logger.debug(f"Accumulation plan rejected: invalid level equals entry ({entry})")
        return None

    expected_rr = float(plan.expected_rr) if plan.expected_rr is not None else ACCUMULATION_DEFAULT_RR
    if expected_rr < 0:
        logger.debug(f"Accumulation plan rejected: negative expected_rr ({expected_rr})")
        return None

    hint = SizingHint.MEDIUM
    if plan.allocation_pct is not None:
        hint = _hint_from_pct(float(plan.allocation_pct), 10.0, 5.0)

    return TradeIntent(
        bias=Bias.LONG,
        proposed_entry=entry,
        proposed_sl=stop,
        proposed_targets=((entry * ACCUMULATION_TARGET_MULTIPLE, ACCUMULATION_TARGET_PROBABILITY),),
        expected_rr=expected_rr,
        sizing_hint=hint,
        strategy_key=strategy_key or "longterm_trading",
    )


def plan_to_intent(plan, reference_capital: float = REFERENCE_CAPITAL) -> Optional[TradeIntent]:
    """Dispatch on the plan type."""
    if isinstance(plan, TradePlan):
        return trade_plan_to_intent(plan, reference_capital=reference_capital)
    if isinstance(plan, AccumulationPlan):
        return accumulation_plan_to_intent(plan)
    return None
