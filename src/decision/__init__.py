"""Decision engine and its approval stages."""

from src.decision.stages import (
    StageResult,
    DecisionContext,
    DecisionStage,
    Validator,
    RiskRules,
    SetupQuality,
    PortfolioConstraints,
    default_stages,
)
from src.decision.engine import Decision, DecisionEngine

__all__ = [
    'StageResult',
    'DecisionContext',
    'DecisionStage',
    'Validator',
    'RiskRules',
    'SetupQuality',
    'PortfolioConstraints',
    'default_stages',
    'Decision',
    'DecisionEngine',
]
