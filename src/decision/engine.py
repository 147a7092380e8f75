"""
Decision Engine - four-stage, short-circuiting approval chain.

    Validator -> RiskRules -> SetupQuality -> PortfolioConstraints -> Approved

Any stage rejection ends the chain with a rejected Decision carrying the
stage, its reason and errors. A stage that raises is treated as a rejection
(fail closed) and never approves. When the engine is disabled by feature
flag every recommendation passes through with stage "disabled".
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence, Tuple
import logging

from config.settings import DecisionEngineSettings
from src.decision.stages import DecisionContext, DecisionStage, default_stages
from src.trading.models import TradeRecommendation
from src.trading.portfolio import PortfolioSnapshot, SystemContext


DISABLED_STAGE = "disabled"
DISABLED_REASON = "Decision Engine disabled (feature flag)"
APPROVED_REASON = "All decision stages passed"


@dataclass(frozen=True)
class Decision:
    """
    Immutable decision record.

    decision_path holds the stage reasons in order; on rejection it holds
    only the rejecting stage's reason.
    """
    approved: bool
    recommendation: Optional[TradeRecommendation]
    stage: Optional[str] = None
    reason: Optional[str] = None
    errors: Tuple[str, ...] = ()
    decision_path: Tuple[str, ...] = ()
    failed_closed: bool = False
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_rejected(self) -> bool:
        return not self.approved

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        rec = self.recommendation
        return {
            "approved": self.approved,
            "stage": self.stage,
            "reason": self.reason,
            "errors": list(self.errors),
            "decision_path": list(self.decision_path),
            "failed_closed": self.failed_closed,
            "checked_at": self.checked_at.isoformat(),
            "symbol": rec.symbol if rec else None,
            "instrument_id": rec.instrument_id if rec else None,
            "recommendation": rec.to_dict() if rec else None,
        }


class DecisionEngine:
    """
    Runs a recommendation through the approval stages.

    The engine holds no mutable state; one instance can serve concurrent
    evaluations. Portfolio and system context are read, never modified.
    """

    def __init__(
        self,
        settings: Optional[DecisionEngineSettings] = None,
        stages: Optional[Sequence[DecisionStage]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings or DecisionEngineSettings()
        self.stages: List[DecisionStage] = list(stages) if stages is not None else default_stages()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def enabled(self) -> bool:
        return self.settings.is_enabled

    def evaluate(
        self,
        recommendation: TradeRecommendation,
        portfolio: Optional[PortfolioSnapshot] = None,
        system_context: Optional[SystemContext] = None,
        today: Optional[date] = None,
    ) -> Decision:
        """
        Evaluate one recommendation.

        Args:
            recommendation: Sized recommendation
            portfolio: Portfolio snapshot as of invocation (optional)
            system_context: Drawdown / loss-streak snapshot (optional)
            today: Day used for cumulative risk (defaults to UTC today)

        Returns:
            Decision
        """
        if not self.enabled:
            return Decision(
                approved=True,
                recommendation=recommendation,
                stage=DISABLED_STAGE,
                reason=DISABLED_REASON,
                decision_path=("Decision Engine disabled",),
            )

        context = DecisionContext(
            settings=self.settings,
            portfolio=portfolio,
            system_context=system_context,
            today=today,
        )
        symbol = recommendation.symbol if recommendation else None
        path = []

        for stage in self.stages:
            try:
                result = stage.evaluate(recommendation, context)
            except Exception as e:
                self.logger.exception(f"Stage {stage.name} failed for {symbol}; rejecting")
                return Decision(
                    approved=False,
                    recommendation=recommendation,
                    stage=stage.name,
                    reason=f"Stage {stage.name} failed: {e}",
                    errors=(str(e),),
                    decision_path=(f"Stage {stage.name} failed: {e}",),
                    failed_closed=True,
                )

            if not result.approved:
                self.logger.info(f"REJECTED {symbol} at {stage.name}: {result.reason}")
                return Decision(
                    approved=False,
                    recommendation=recommendation,
                    stage=stage.name,
                    reason=result.reason,
                    errors=result.errors,
                    decision_path=(result.reason,),
                )

            path.append(result.reason)

        self.logger.info(f"APPROVED {symbol}: {' | '.join(path)}")
        return Decision(
            approved=True,
            recommendation=recommendation,
            reason=APPROVED_REASON,
            decision_path=tuple(path),
        )
