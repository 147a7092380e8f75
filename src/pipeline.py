"""
Signal Decision Pipeline

End-to-end evaluation of one trade candidate:

    daily structure verdict
    -> multi-timeframe analysis
    -> best entry recommendation
    -> trade plan -> intent
    -> position sizing
    -> recommendation
    -> decision engine

All inputs (candles, portfolio, system context) are resolved before a run;
nothing here fetches or persists. Candidates in a batch are independent and
are evaluated in parallel. No capital is reserved between concurrent
approvals, so two approvals can draw on the same capital.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import math

from config.settings import Settings, Timeframe
from src.analysis.multi_timeframe import MultiTimeframeAnalyzer, MultiTimeframeResult
from src.data.candles import CandleSeries
from src.data.providers import CandleProvider
from src.decision.engine import Decision, DecisionEngine
from src.monitoring.logging_module import DecisionAuditLogger
from src.risk.position_sizer import SizingResult, size_position
from src.structure.models import StructureVerdict
from src.structure.validator import validate_structure
from src.trading.adapters import TradePlan
from src.trading.models import TradeRecommendation
from src.trading.portfolio import PortfolioSnapshot, SystemContext
from src.trading.recommendations import (
    build_recommendation,
    build_trade_plan,
    facts_from_analysis,
)


logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Raised for contract errors outside a decision stage (e.g. no candle source)."""
    pass


@dataclass(frozen=True)
class Candidate:
    """One instrument to evaluate."""
    symbol: str
    instrument_id: Optional[str] = None
    direction: str = "long"
    timeframe: str = "swing"
    candles: Dict[Timeframe, CandleSeries] = field(default_factory=dict)
    invalidation_conditions: Tuple[str, ...] = ()
    entry_conditions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PipelineOutcome:
    """
    Result of one pipeline run.

    stage names the step that ended the run: "structure", "entry", "plan",
    "sizing" and "intent" when a step produced nothing, else the decision
    engine stage. approved is True only when the decision engine approved.
    """
    symbol: str
    approved: bool
    stage: Optional[str]
    reason: Optional[str]
    verdict: Optional[StructureVerdict] = None
    analysis: Optional[MultiTimeframeResult] = None
    plan: Optional[TradePlan] = None
    sizing: Optional[SizingResult] = None
    recommendation: Optional[TradeRecommendation] = None
    decision: Optional[Decision] = None
    failed_closed: bool = False

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "approved": self.approved,
            "stage": self.stage,
            "reason": self.reason,
            "failed_closed": self.failed_closed,
            "structure": self.verdict.to_dict() if self.verdict else None,
            "multi_timeframe_score": self.analysis.multi_timeframe_score if self.analysis else None,
            "entry_recommendations": (
                [r.to_dict() for r in self.analysis.entry_recommendations] if self.analysis else []
            ),
            "plan": self.plan.to_dict() if self.plan else None,
            "sizing": self.sizing.to_dict() if self.sizing else None,
            "decision": self.decision.to_dict() if self.decision else None,
        }


class SignalPipeline:
    """
    Runs candidates through structure, analysis, sizing and approval.

    Usage:
        pipeline = SignalPipeline(settings, provider=CsvCandleProvider("data"))
        outcome = pipeline.evaluate(Candidate("RELIANCE", "2885"), portfolio=snapshot)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider: Optional[CandleProvider] = None,
        engine: Optional[DecisionEngine] = None,
        audit: Optional[DecisionAuditLogger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings or Settings()
        self.provider = provider
        self.engine = engine or DecisionEngine(self.settings.decision_engine)
        self.audit = audit
        self.logger = logger or logging.getLogger(__name__)
        self.analyzer = MultiTimeframeAnalyzer(self.settings.multi_timeframe, provider)

    # -------------------------------------------------------------------------
    # Single candidate
    # -------------------------------------------------------------------------

    def evaluate(
        self,
        candidate: Candidate,
        portfolio: Optional[PortfolioSnapshot] = None,
        system_context: Optional[SystemContext] = None,
    ) -> PipelineOutcome:
        symbol = candidate.symbol
        daily = self._daily_series(candidate)

        verdict = validate_structure(daily, candidate.direction, self.settings.structure)
        if not verdict.valid:
            reason = f"Structure invalid (score {verdict.score}): {'; '.join(verdict.reasons)}"
            self.logger.info(f"{symbol}: {reason}")
            return PipelineOutcome(symbol, False, "structure", reason, verdict=verdict)

        analysis = self.analyzer.analyze(symbol, candidate.instrument_id, candidate.candles)
        entry = analysis.best_entry
        if entry is None:
            return self._stopped(symbol, "entry", "No entry recommendation", verdict, analysis)

        plan = build_trade_plan(entry, analysis, self.settings.plan)
        if plan is None:
            return self._stopped(symbol, "plan", "Entry recommendation produced no trade plan", verdict, analysis)

        available = portfolio.available_capital(candidate.timeframe) if portfolio else math.inf
        equity = portfolio.total_equity() if portfolio else 0.0
        sizing = size_position(self.settings.risk, plan.entry_price, plan.stop_loss, available, equity)
        if not sizing.success:
            return self._stopped(symbol, "sizing", sizing.error, verdict, analysis, plan, sizing)

        facts = facts_from_analysis(analysis, timeframe=candidate.timeframe)
        recommendation = build_recommendation(
            facts,
            plan,
            sizing,
            invalidation_conditions=candidate.invalidation_conditions,
            entry_conditions=candidate.entry_conditions,
            reference_capital=self.settings.plan.reference_capital,
        )
        if recommendation is None:
            return self._stopped(symbol, "intent", "Trade plan produced no intent", verdict, analysis, plan, sizing)

        decision = self.engine.evaluate(recommendation, portfolio, system_context)
        if self.audit is not None:
            self.audit.log_decision(decision)

        return PipelineOutcome(
            symbol=symbol,
            approved=decision.approved,
            stage=decision.stage,
            reason=decision.reason,
            verdict=verdict,
            analysis=analysis,
            plan=plan,
            sizing=sizing,
            recommendation=recommendation,
            decision=decision,
            failed_closed=decision.failed_closed,
        )

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def evaluate_batch(
        self,
        candidates: Sequence[Candidate],
        portfolio: Optional[PortfolioSnapshot] = None,
        system_context: Optional[SystemContext] = None,
        max_workers: int = 4,
    ) -> List[PipelineOutcome]:
        """
        Evaluate independent candidates in parallel.

        Outcomes are returned in input order. A candidate that raises is
        reported as a failed-closed rejection.
        """
        if not candidates:
            return []

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(self.evaluate, candidate, portfolio, system_context)
                for candidate in candidates
            ]
            outcomes = []
            for candidate, future in zip(candidates, futures):
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    self.logger.exception(f"Pipeline failed for {candidate.symbol}; rejecting")
                    outcomes.append(PipelineOutcome(
                        symbol=candidate.symbol,
                        approved=False,
                        stage="pipeline",
                        reason=f"Pipeline failed: {e}",
                        failed_closed=True,
                    ))

        approved = sum(1 for o in outcomes if o.approved)
        self.logger.info(f"Batch complete: {approved}/{len(outcomes)} approved")
        return outcomes

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _daily_series(self, candidate: Candidate) -> Optional[CandleSeries]:
        if Timeframe.D1 in candidate.candles:
            return candidate.candles[Timeframe.D1]
        if self.provider is None:
            raise PipelineError(f"No daily candles for {candidate.symbol} and no candle provider")
        return self.provider.load(candidate.symbol, Timeframe.D1)

    def _stopped(
        self,
        symbol: str,
        stage: str,
        reason: str,
        verdict: Optional[StructureVerdict] = None,
        analysis: Optional[MultiTimeframeResult] = None,
        plan: Optional[TradePlan] = None,
        sizing: Optional[SizingResult] = None,
    ) -> PipelineOutcome:
        self.logger.info(f"{symbol}: stopped at {stage}: {reason}")
        return PipelineOutcome(
            symbol=symbol,
            approved=False,
            stage=stage,
            reason=reason,
            verdict=verdict,
            analysis=analysis,
            plan=plan,
            sizing=sizing,
        )
