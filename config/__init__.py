"""Configuration module."""

from config.settings import (
    Settings,
    Timeframe,
    TradingStyle,
    StructureSettings,
    MultiTimeframeSettings,
    DecisionEngineSettings,
    PortfolioRiskConfig,
    PlanSettings,
    PathSettings,
)

__all__ = [
    'Settings',
    'Timeframe',
    'TradingStyle',
    'StructureSettings',
    'MultiTimeframeSettings',
    'DecisionEngineSettings',
    'PortfolioRiskConfig',
    'PlanSettings',
    'PathSettings',
]
