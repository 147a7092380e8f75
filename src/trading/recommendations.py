"""
Recommendation Builder

Wires analysis output into a sized TradeRecommendation:
- facts_from_analysis: trend/momentum flags and setup status from a MultiTimeframeResult
- build_trade_plan: entry recommendation -> TradePlan (R-multiple or structure target)
- build_recommendation: facts + plan + sizing -> TradeRecommendation with reasoning
"""

from typing import List, Optional, Sequence, Union
import logging

from config.settings import PlanSettings, Timeframe
from src.analysis.multi_timeframe import EntryRecommendation, MultiTimeframeResult
from src.risk.position_sizer import SizingResult
from src.trading.adapters import AccumulationPlan, TradePlan, plan_to_intent
from src.trading.models import SetupStatus, TradeFacts, TradeIntent, TradeRecommendation


logger = logging.getLogger(__name__)


SNAPSHOT_KEYS = {
    Timeframe.M15: "m15",
    Timeframe.H1: "hourly",
    Timeframe.D1: "daily",
    Timeframe.W1: "weekly",
}


# =============================================================================
# FACTS
# =============================================================================

def facts_from_analysis(
    result: MultiTimeframeResult,
    timeframe: str = "swing",
    setup_status: Optional[SetupStatus] = None,
) -> TradeFacts:
    """
    Derive trade facts from the daily timeframe and the cross-timeframe alignment.

    Setup status defaults to READY when an entry was recommended,
    WAIT_PULLBACK when the trend is aligned without an entry, else NOT_READY.
    """
    trend_flags: List[str] = []
    momentum_flags: List[str] = []

    if result.trend_alignment.aligned:
        trend_flags.append("bullish")
    elif result.trend_alignment.bearish_count > result.trend_alignment.bullish_count:
        trend_flags.append("bearish")

    daily = result.get(Timeframe.D1)
    if daily is not None:
        ind = daily.indicators
        if ind.ema20 is not None and ind.ema50 is not None:
            trend_flags.append("ema_bullish" if ind.ema20 > ind.ema50 else "ema_bearish")
        if ind.supertrend is not None:
            trend_flags.append(f"supertrend_{ind.supertrend.direction}")

        if ind.rsi is not None:
            if 50 < ind.rsi < 70:
                momentum_flags.append("rsi_bullish")
            elif ind.rsi < 40:
                momentum_flags.append("rsi_bearish")
        if ind.macd is not None:
            momentum_flags.append("macd_bullish" if ind.macd.is_bullish else "macd_bearish")
        if ind.adx is not None and ind.adx > 25:
            momentum_flags.append("adx_strong")

    if setup_status is None:
        if result.entry_recommendations:
            setup_status = SetupStatus.READY
        elif result.trend_alignment.aligned:
            setup_status = SetupStatus.WAIT_PULLBACK
        else:
            setup_status = SetupStatus.NOT_READY

    snapshot = {
        SNAPSHOT_KEYS[tf]: analysis.indicators.to_dict()
        for tf, analysis in result.timeframes.items()
    }

    return TradeFacts(
        symbol=result.symbol,
        instrument_id=result.instrument_id,
        timeframe=timeframe,
        indicators_snapshot=snapshot,
        trend_flags=tuple(trend_flags),
        momentum_flags=tuple(momentum_flags),
        screener_score=result.multi_timeframe_score,
        setup_status=setup_status,
    )


# =============================================================================
# TRADE PLAN
# =============================================================================

def _structure_target(result: MultiTimeframeResult, entry: float) -> Optional[float]:
    """Nearest resistance level above entry."""
    above = [level for level in result.support_resistance.resistance_levels if level > entry]
    return min(above) if above else None


def build_trade_plan(
    entry: EntryRecommendation,
    result: MultiTimeframeResult,
    settings: Optional[PlanSettings] = None,
) -> Optional[TradePlan]:
    """
    Turn a ranked entry recommendation into a swing TradePlan.

    Entry is the top of the entry zone. The target is entry + risk x reward
    multiple, replaced by the nearest resistance above entry when that level
    lies within the tolerance of the R-multiple target.
    """
    settings = settings or PlanSettings()
    entry_price = entry.zone_high
    stop_loss = entry.stop_loss

    risk = abs(entry_price - stop_loss)
    if entry_price <= 0 or stop_loss <= 0 or risk == 0:
        logger.debug(f"No plan for {entry.entry_type.value}: entry={entry_price} stop={stop_loss}")
        return None

    target = entry_price + risk * settings.reward_multiple
    structure_target = _structure_target(result, entry_price)
    if structure_target is not None and structure_target <= target * settings.structure_target_tolerance:
        target = structure_target

    return TradePlan(
        entry_price=round(entry_price, 2),
        stop_loss=round(stop_loss, 2),
        take_profit=round(target, 2),
        risk_reward=round(abs(target - entry_price) / risk, 2),
        setup_type=entry.entry_type.value,
    )


# =============================================================================
# RECOMMENDATION
# =============================================================================

def build_reasoning(facts: TradeFacts, intent: TradeIntent) -> List[str]:
    """Human-readable statements supporting a recommendation."""
    reasoning = []

    if "bullish" in facts.trend_flags:
        reasoning.append("Bullish trend confirmed (EMA + Supertrend)")
    if "bearish" in facts.trend_flags:
        reasoning.append("Bearish trend detected")

    if "rsi_bullish" in facts.momentum_flags:
        reasoning.append("RSI in bullish zone (50-70)")
    if "macd_bullish" in facts.momentum_flags:
        reasoning.append("MACD bullish crossover")
    if "adx_strong" in facts.momentum_flags:
        reasoning.append("Strong trend (ADX > 25)")

    if facts.setup_status == SetupStatus.READY:
        reasoning.append("Setup ready for entry")
    elif facts.setup_status == SetupStatus.WAIT_PULLBACK:
        reasoning.append("Waiting for pullback")

    if intent.expected_rr >= 3.0:
        reasoning.append(f"Excellent risk-reward ({intent.expected_rr:.2f}R)")
    elif intent.expected_rr >= 2.0:
        reasoning.append(f"Good risk-reward ({intent.expected_rr:.2f}R)")

    return reasoning


def build_recommendation(
    facts: TradeFacts,
    plan: Union[TradePlan, AccumulationPlan],
    sizing: Optional[SizingResult] = None,
    invalidation_conditions: Sequence[str] = (),
    entry_conditions: Sequence[str] = (),
    reference_capital: float = 100_000.0,
) -> Optional[TradeRecommendation]:
    """
    Combine facts, a plan and an optional sizing result.

    Quantity and risk come from a successful sizing result, else from the
    plan itself (0 when the plan carries none). Returns None when the plan
    does not yield an intent.
    """
    intent = plan_to_intent(plan, reference_capital=reference_capital)
    if intent is None:
        logger.debug(f"{facts.symbol}: plan produced no intent")
        return None

    if sizing is not None and sizing.success:
        quantity = sizing.quantity
        risk_amount = sizing.risk_amount
    else:
        quantity = getattr(plan, "quantity", None) or 0
        risk_amount = float(getattr(plan, "risk_amount", None) or 0.0)

    return TradeRecommendation(
        facts=facts,
        intent=intent,
        quantity=quantity,
        risk_amount=risk_amount,
        confidence_score=facts.screener_score,
        invalidation_conditions=tuple(invalidation_conditions),
        entry_conditions=tuple(entry_conditions),
        reasoning=tuple(build_reasoning(facts, intent)),
    )
