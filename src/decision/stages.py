"""
Decision Stages

Each stage judges one aspect of a TradeRecommendation and returns a
StageResult. Rejections are expected business outcomes, not errors:

1. Validator             - required fields, stop side, RR, confidence, bias, targets
2. RiskRules             - per-trade and daily risk %, circuit breaker, ATR % cap
3. SetupQuality          - trend validity, momentum divergence, invalidation
4. PortfolioConstraints  - positions per symbol, capital in the relevant bucket

Every check whose input data is missing passes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Mapping, Optional, Tuple
import logging

from config.settings import DecisionEngineSettings
from src.trading.models import Bias, SetupStatus, TradeRecommendation
from src.trading.portfolio import PortfolioSnapshot, SystemContext


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageResult:
    approved: bool
    reason: str
    errors: Tuple[str, ...] = ()

    @classmethod
    def from_errors(cls, errors: List[str], fail_prefix: str, pass_reason: str) -> "StageResult":
        if errors:
            return cls(approved=False, reason=f"{fail_prefix}: {errors[0]}", errors=tuple(errors))
        return cls(approved=True, reason=pass_reason)


@dataclass(frozen=True)
class DecisionContext:
    """Read-only inputs shared by all stages for one evaluation."""
    settings: DecisionEngineSettings = field(default_factory=DecisionEngineSettings)
    portfolio: Optional[PortfolioSnapshot] = None
    system_context: Optional[SystemContext] = None
    today: Optional[date] = None


class DecisionStage(ABC):
    """One link in the approval chain."""

    name: str = "stage"

    @abstractmethod
    def evaluate(self, recommendation: TradeRecommendation, context: DecisionContext) -> StageResult:
        pass


# =============================================================================
# VALIDATOR
# =============================================================================

class Validator(DecisionStage):
    name = "validator"

    def evaluate(self, recommendation: TradeRecommendation, context: DecisionContext) -> StageResult:
        settings = context.settings
        errors = []

        entry = recommendation.entry_price
        stop = recommendation.stop_loss
        bias = recommendation.bias

        if not entry or entry <= 0:
            errors.append("Missing entry_price")
        if not stop or stop <= 0:
            errors.append("Missing stop_loss")
        if not recommendation.quantity or recommendation.quantity <= 0:
            errors.append("Missing quantity")
        if not recommendation.symbol:
            errors.append("Missing symbol")
        if not recommendation.instrument_id:
            errors.append("Missing instrument_id")

        if entry and stop and entry > 0 and stop > 0:
            if bias == Bias.LONG and stop >= entry:
                errors.append("Stop loss must be below entry price for long trades")
            if bias == Bias.SHORT and stop <= entry:
                errors.append("Stop loss must be above entry price for short trades")

        rr = recommendation.risk_reward or 0.0
        if rr < settings.min_risk_reward:
            errors.append(f"Risk-reward ratio too low: {rr:.2f} < {settings.min_risk_reward}")

        confidence = recommendation.confidence_score or 0.0
        if confidence < settings.min_confidence:
            errors.append(f"Confidence score too low: {confidence:.1f} < {settings.min_confidence}")

        if bias not in (Bias.LONG, Bias.SHORT):
            label = bias.value if bias else None
            errors.append(f"Invalid bias: {label} (must be long or short)")

        if bias == Bias.AVOID:
            errors.append("Trade marked as avoid")

        if not recommendation.target_prices:
            errors.append("No target prices specified")

        return StageResult.from_errors(errors, "Validation failed", "Valid structure")


# =============================================================================
# RISK RULES
# =============================================================================

def _daily_indicators(snapshot: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """Nested "daily" section when present, else the flat snapshot."""
    if not isinstance(snapshot, Mapping):
        return None
    daily = snapshot.get("daily", snapshot)
    return daily if isinstance(daily, Mapping) else None


class RiskRules(DecisionStage):
    name = "risk_rules"

    def evaluate(self, recommendation: TradeRecommendation, context: DecisionContext) -> StageResult:
        errors = []
        errors += self._per_trade_risk(recommendation, context)
        errors += self._daily_risk(recommendation, context)
        errors += self._circuit_breaker(context)
        errors += self._volatility_cap(recommendation, context)
        return StageResult.from_errors(errors, "Risk rules violated", "Risk rules passed")

    def _per_trade_risk(self, recommendation, context) -> List[str]:
        if context.portfolio is None:
            return []
        equity = context.portfolio.total_equity()
        if not equity:
            return []

        limit = context.settings.max_daily_risk_pct
        risk_pct = (recommendation.risk_amount or 0.0) / equity * 100
        if risk_pct > limit:
            return [f"Per-trade risk {round(risk_pct, 2)}% exceeds daily limit {limit}%"]
        return []

    def _daily_risk(self, recommendation, context) -> List[str]:
        if context.portfolio is None:
            return []
        equity = context.portfolio.total_equity()
        if not equity:
            return []

        limit = context.settings.max_daily_risk_pct
        today_risk = context.portfolio.today_risk(context.today)
        daily_pct = (today_risk + (recommendation.risk_amount or 0.0)) / equity * 100
        if daily_pct > limit:
            return [f"Daily risk limit exceeded: {round(daily_pct, 2)}% > {limit}%"]
        return []

    def _circuit_breaker(self, context) -> List[str]:
        if context.system_context is None:
            return []

        settings = context.settings
        errors = []
        drawdown = context.system_context.drawdown_pct()
        if drawdown >= settings.max_drawdown_pct:
            errors.append(f"Significant drawdown detected: {drawdown:.2f}%")

        losses = context.system_context.consecutive_losses()
        if losses >= settings.max_consecutive_losses:
            errors.append(f"Too many consecutive losses: {losses}")
        return errors

    def _volatility_cap(self, recommendation, context) -> List[str]:
        if recommendation.facts is None:
            return []

        indicators = _daily_indicators(recommendation.facts.indicators_snapshot)
        if indicators is None:
            return []

        atr = indicators.get("atr")
        latest_close = indicators.get("latest_close") or recommendation.entry_price
        if atr is None or not latest_close or latest_close <= 0:
            return []

        limit = context.settings.max_volatility_pct
        atr_pct = float(atr) / latest_close * 100
        if atr_pct > limit:
            return [f"Volatility too high: ATR {round(atr_pct, 2)}% > {limit}%"]
        return []


# =============================================================================
# SETUP QUALITY
# =============================================================================

class SetupQuality(DecisionStage):
    """Default weak-setup filter; replaceable by any DecisionStage."""

    name = "setup_quality"

    def evaluate(self, recommendation: TradeRecommendation, context: DecisionContext) -> StageResult:
        errors = []
        facts = recommendation.facts

        if facts is not None:
            errors += self._trend_validity(recommendation)
            errors += self._momentum_alignment(recommendation)
            if recommendation.invalidation_conditions and facts.setup_status == SetupStatus.NOT_READY:
                errors.append("Setup status is NOT_READY")

        return StageResult.from_errors(errors, "Setup quality check failed", "Setup quality acceptable")

    def _trend_validity(self, recommendation) -> List[str]:
        facts = recommendation.facts
        if recommendation.bias == Bias.LONG:
            if not facts.bullish:
                return ["Long trade requires bullish trend"]
            if not facts.trend_flags:
                return ["No trend confirmation flags present"]
        if recommendation.bias == Bias.SHORT and not facts.bearish:
            return ["Short trade requires bearish trend"]
        return []

    def _momentum_alignment(self, recommendation) -> List[str]:
        flags = recommendation.facts.momentum_flags
        bullish = "rsi_bullish" in flags or "macd_bullish" in flags
        bearish = "rsi_bearish" in flags or "macd_bearish" in flags

        if recommendation.bias == Bias.LONG and bearish and not bullish:
            return ["Momentum diverging - bearish signals for long trade"]
        if recommendation.bias == Bias.SHORT and bullish and not bearish:
            return ["Momentum diverging - bullish signals for short trade"]
        return []


# =============================================================================
# PORTFOLIO CONSTRAINTS
# =============================================================================

class PortfolioConstraints(DecisionStage):
    name = "portfolio_constraints"

    def evaluate(self, recommendation: TradeRecommendation, context: DecisionContext) -> StageResult:
        portfolio = context.portfolio
        if portfolio is None:
            return StageResult(approved=True, reason="No portfolio constraints")

        errors = []
        max_positions = context.settings.max_positions_per_symbol
        open_count = len(portfolio.open_positions(recommendation.instrument_id))
        if open_count >= max_positions:
            errors.append(f"Max positions per symbol exceeded: {open_count}/{max_positions}")

        required = recommendation.capital_required or 0.0
        available = portfolio.available_capital(recommendation.timeframe)
        if required > available:
            errors.append(f"Insufficient capital: {required:.2f} required, {available:.2f} available")

        return StageResult.from_errors(
            errors, "Portfolio constraints violated", "Portfolio constraints satisfied"
        )


def default_stages() -> List[DecisionStage]:
    return [Validator(), RiskRules(), SetupQuality(), PortfolioConstraints()]

