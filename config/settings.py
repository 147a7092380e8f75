"""
Settings and Configuration for the Signal Decision Pipeline.

Centralized configuration management using dataclasses and YAML support.
"""

from dataclasses import dataclass, field, fields
from typing import List, Tuple, Dict, Any, Mapping, Optional
from enum import Enum
from pathlib import Path
import os
import yaml


class TradingStyle(Enum):
    """Weighting profile for multi-timeframe scoring."""
    SWING = "swing"
    LONG_TERM = "long_term"


class Timeframe(Enum):
    """Supported timeframes (values are the feed interval codes)."""
    M15 = "15"
    H1 = "60"
    D1 = "1D"
    W1 = "1W"

    @property
    def is_intraday(self) -> bool:
        return self in (Timeframe.M15, Timeframe.H1)

    def to_minutes(self) -> int:
        """Convert timeframe to minutes."""
        mapping = {
            'M15': 15, 'H1': 60, 'D1': 1440, 'W1': 10080,
        }
        return mapping[self.name]


@dataclass
class StructureSettings:
    """Structure validator parameters."""

    lookback: int = 20                    # Swing lookback; block detectors use 2x
    min_score: float = 50.0               # Verdict is valid at or above this score
    min_candles: int = 50                 # Fewer candles -> "Insufficient candles"

    # Individual checks (disabled checks drop out of the max score)
    require_bos: bool = True
    require_choch: bool = True
    require_order_blocks: bool = True
    require_fvgs: bool = True
    require_mitigation_blocks: bool = True


@dataclass
class MultiTimeframeSettings:
    """Multi-timeframe analyzer parameters."""

    trading_style: TradingStyle = TradingStyle.SWING
    include_intraday: bool = True

    # Minimum bars per timeframe before it is analysed
    min_bars_m15: int = 50
    min_bars_h1: int = 30
    min_bars_d1: int = 50
    min_bars_w1: int = 20

    # Supertrend
    supertrend_period: int = 10
    supertrend_multiplier: float = 3.0

    def min_bars(self, timeframe: Timeframe) -> int:
        return {
            Timeframe.M15: self.min_bars_m15,
            Timeframe.H1: self.min_bars_h1,
            Timeframe.D1: self.min_bars_d1,
            Timeframe.W1: self.min_bars_w1,
        }[timeframe]

    def weights(self) -> Dict[Timeframe, float]:
        """Per-timeframe weights for the combined score."""
        if self.trading_style == TradingStyle.LONG_TERM:
            return {
                Timeframe.W1: 0.40,
                Timeframe.D1: 0.35,
                Timeframe.H1: 0.25,
                Timeframe.M15: 0.0,
            }
        return {
            Timeframe.W1: 0.20,
            Timeframe.D1: 0.40,
            Timeframe.H1: 0.25,
            Timeframe.M15: 0.15,
        }


def _coerce(value: Any, target_type: type) -> Any:
    """Coerce flat config values ("true", "2.5", 3) to the declared type."""
    if target_type is bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if target_type in (int, float):
        return target_type(value)
    if issubclass(target_type, Enum):
        return target_type(value)
    return value


def _from_section(cls, values: Optional[Mapping[str, Any]]):
    """Build a settings dataclass from a YAML section, ignoring unknown keys and nulls."""
    values = values or {}
    kwargs = {}
    for f in fields(cls):
        if f.name in values and values[f.name] is not None:
            kwargs[f.name] = _coerce(values[f.name], type(f.default))
    return cls(**kwargs)


@dataclass
class DecisionEngineSettings:
    """Decision engine thresholds."""

    enabled: bool = False                 # Feature flag; disabled -> pass-through
    min_risk_reward: float = 2.0
    min_confidence: float = 60.0
    max_volatility_pct: float = 8.0       # ATR as % of latest close
    max_positions_per_symbol: int = 1
    max_daily_risk_pct: float = 2.0       # Per-trade and cumulative daily cap

    # Circuit breaker
    max_drawdown_pct: float = 15.0
    max_consecutive_losses: int = 3

    ENABLED_ENV_VAR = "TRADING_DECISION_ENGINE_ENABLED"

    @property
    def is_enabled(self) -> bool:
        """Config flag or environment override."""
        return self.enabled or os.getenv(self.ENABLED_ENV_VAR, "").lower() == "true"

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> 'DecisionEngineSettings':
        """Build from a flat key/value set, ignoring unknown keys."""
        return _from_section(cls, values)

    def to_mapping(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class PortfolioRiskConfig:
    """Per-portfolio risk budget used by the position sizer."""

    risk_per_trade_amount: float = 1000.0
    max_position_exposure_amount: float = 15000.0


@dataclass
class PlanSettings:
    """Trade plan derivation from entry recommendations."""

    reward_multiple: float = 2.5          # Target = entry + risk * multiple
    structure_target_tolerance: float = 1.2
    reference_capital: float = 100_000.0  # Used by the sizing-hint heuristic


@dataclass
class PathSettings:
    """File paths configuration."""

    logs_dir: str = "logs"
    audit_log: str = "logs/decisions.csv"

    def create_directories(self):
        """Create all required directories."""
        Path(self.logs_dir).mkdir(parents=True, exist_ok=True)
        Path(self.audit_log).parent.mkdir(parents=True, exist_ok=True)


@dataclass
class Settings:
    """Main settings container."""

    structure: StructureSettings = field(default_factory=StructureSettings)
    multi_timeframe: MultiTimeframeSettings = field(default_factory=MultiTimeframeSettings)
    decision_engine: DecisionEngineSettings = field(default_factory=DecisionEngineSettings)
    risk: PortfolioRiskConfig = field(default_factory=PortfolioRiskConfig)
    plan: PlanSettings = field(default_factory=PlanSettings)
    paths: PathSettings = field(default_factory=PathSettings)

    @classmethod
    def from_yaml(cls, path: str) -> 'Settings':
        """Load settings from YAML file."""
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
        return cls.from_dict(config)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'Settings':
        return cls(
            structure=_from_section(StructureSettings, config.get('structure')),
            multi_timeframe=_from_section(MultiTimeframeSettings, config.get('multi_timeframe')),
            decision_engine=DecisionEngineSettings.from_mapping(config.get('decision_engine')),
            risk=_from_section(PortfolioRiskConfig, config.get('risk')),
            plan=_from_section(PlanSettings, config.get('plan')),
            paths=_from_section(PathSettings, config.get('paths')),
        )

    def to_dict(self) -> Dict[str, Any]:
        mtf = {f.name: getattr(self.multi_timeframe, f.name) for f in fields(self.multi_timeframe)}
        mtf['trading_style'] = self.multi_timeframe.trading_style.value
        return {
            'structure': {f.name: getattr(self.structure, f.name) for f in fields(self.structure)},
            'multi_timeframe': mtf,
            'decision_engine': self.decision_engine.to_mapping(),
            'risk': {
                'risk_per_trade_amount': self.risk.risk_per_trade_amount,
                'max_position_exposure_amount': self.risk.max_position_exposure_amount,
            },
            'plan': {f.name: getattr(self.plan, f.name) for f in fields(self.plan)},
            'paths': {
                'logs_dir': self.paths.logs_dir,
                'audit_log': self.paths.audit_log,
            },
        }

    def to_yaml(self, path: str):
        """Save settings to YAML file."""
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    def validate(self) -> Tuple[bool, List[str]]:
        """Validate settings configuration."""
        errors = []

        if not 0 <= self.structure.min_score <= 100:
            errors.append("structure.min_score must be between 0 and 100")

        if self.structure.lookback < 1:
            errors.append("structure.lookback must be at least 1")

        de = self.decision_engine
        if de.min_risk_reward < 0:
            errors.append("decision_engine.min_risk_reward must be >= 0")

        if de.max_daily_risk_pct <= 0:
            errors.append("decision_engine.max_daily_risk_pct must be positive")

        if de.max_positions_per_symbol < 1:
            errors.append("decision_engine.max_positions_per_symbol must be at least 1")

        if self.risk.risk_per_trade_amount <= 0:
            errors.append("risk.risk_per_trade_amount must be positive")

        if self.risk.max_position_exposure_amount <= 0:
            errors.append("risk.max_position_exposure_amount must be positive")

        return len(errors) == 0, errors

    def get_summary(self) -> str:
        """Get settings summary string."""
        de = self.decision_engine
        return f"""
Signal Pipeline Settings Summary
================================
Trading style: {self.multi_timeframe.trading_style.value}
Intraday timeframes: {'on' if self.multi_timeframe.include_intraday else 'off'}

Structure:
  Lookback: {self.structure.lookback} bars
  Min score: {self.structure.min_score}

Decision Engine ({'enabled' if de.is_enabled else 'disabled'}):
  Min RR: {de.min_risk_reward}
  Min confidence: {de.min_confidence}
  Max volatility: {de.max_volatility_pct}%
  Max daily risk: {de.max_daily_risk_pct}%
  Max positions/symbol: {de.max_positions_per_symbol}

Risk Budget:
  Risk per trade: {self.risk.risk_per_trade_amount:,.2f}
  Max exposure: {self.risk.max_position_exposure_amount:,.2f}
"""
