"""
Portfolio Capabilities - read-only views the pipeline needs from portfolio state.

The owner of live portfolio state implements PortfolioSnapshot and
SystemContext once. The pipeline only reads them; it never reserves capital,
so concurrent approvals against one snapshot can oversubscribe it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class OpenPosition:
    instrument_id: str
    quantity: int
    entry_price: float
    risk_amount: float = 0.0
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PortfolioSnapshot(ABC):
    """Read accessors for portfolio state as of invocation time."""

    @abstractmethod
    def total_equity(self) -> float:
        pass

    @abstractmethod
    def available_capital(self, timeframe: Optional[str] = None) -> float:
        """Capital for the bucket matching timeframe ("swing" -> swing bucket)."""
        pass

    @abstractmethod
    def open_positions(
        self,
        instrument_id: Optional[str] = None,
        opened_since: Optional[datetime] = None,
    ) -> List[OpenPosition]:
        pass

    def today_risk(self, today: Optional[date] = None) -> float:
        """Sum of risk_amount for positions opened today."""
        today = today or datetime.now(timezone.utc).date()
        return sum(
            p.risk_amount for p in self.open_positions()
            if p.opened_at.date() == today
        )


class SystemContext(ABC):
    """Account-level health used by the circuit breaker."""

    @abstractmethod
    def drawdown_pct(self) -> float:
        pass

    @abstractmethod
    def consecutive_losses(self) -> int:
        pass


class InMemoryPortfolio(PortfolioSnapshot):
    """
    Plain snapshot of portfolio numbers.

    swing_capital is the dedicated swing bucket; when None the general
    available capital is used for every timeframe.
    """

    def __init__(
        self,
        total_equity: float,
        available_capital: float,
        swing_capital: Optional[float] = None,
        positions: Optional[List[OpenPosition]] = None,
    ):
        self._total_equity = total_equity
        self._available_capital = available_capital
        self._swing_capital = swing_capital
        self._positions: Tuple[OpenPosition, ...] = tuple(positions or ())

    def total_equity(self) -> float:
        return self._total_equity

    def available_capital(self, timeframe: Optional[str] = None) -> float:
        if timeframe == "swing" and self._swing_capital is not None:
            return self._swing_capital
        return self._available_capital

    def open_positions(
        self,
        instrument_id: Optional[str] = None,
        opened_since: Optional[datetime] = None,
    ) -> List[OpenPosition]:
        positions = list(self._positions)
        if instrument_id is not None:
            positions = [p for p in positions if p.instrument_id == instrument_id]
        if opened_since is not None:
            positions = [p for p in positions if p.opened_at >= opened_since]
        return positions


@dataclass(frozen=True)
class SystemContextSnapshot(SystemContext):
    drawdown: float = 0.0
    losses_in_row: int = 0

    def drawdown_pct(self) -> float:
        return self.drawdown

    def consecutive_losses(self) -> int:
        return self.losses_in_row
