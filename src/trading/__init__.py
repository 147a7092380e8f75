"""Trade intents, recommendations and portfolio capabilities."""

from src.trading.models import (
    Bias,
    SizingHint,
    SetupStatus,
    TradeIntent,
    TradeFacts,
    TradeRecommendation,
)
from src.trading.adapters import (
    TradePlan,
    AccumulationPlan,
    trade_plan_to_intent,
    accumulation_plan_to_intent,
    plan_to_intent,
)
from src.trading.portfolio import (
    OpenPosition,
    PortfolioSnapshot,
    SystemContext,
    InMemoryPortfolio,
    SystemContextSnapshot,
)

__all__ = [
    'Bias',
    'SizingHint',
    'SetupStatus',
    'TradeIntent',
    'TradeFacts',
    'TradeRecommendation',
    'TradePlan',
    'AccumulationPlan',
    'trade_plan_to_intent',
    'accumulation_plan_to_intent',
    'plan_to_intent',
    'OpenPosition',
    'PortfolioSnapshot',
    'SystemContext',
    'InMemoryPortfolio',
    'SystemContextSnapshot',
]
