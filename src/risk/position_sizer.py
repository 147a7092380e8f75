"""
Position Sizer

Converts an entry/stop pair and a portfolio risk budget into a share quantity:
- Fixed risk amount per trade divided by per-share risk
- Capped by maximum position exposure
- Capped again by the capital actually available in the bucket
"""

from dataclasses import dataclass
from typing import Optional
import logging
import math

from config.settings import PortfolioRiskConfig


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizingResult:
    """
    Sizing outcome.

    On success risk_amount == risk_per_share * quantity exactly.
    """
    success: bool
    quantity: int = 0
    capital_required: float = 0.0
    risk_amount: float = 0.0
    risk_percentage: float = 0.0
    risk_per_share: float = 0.0
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "SizingResult":
        return cls(success=False, error=message)

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "quantity": self.quantity,
            "capital_required": self.capital_required,
            "risk_amount": self.risk_amount,
            "risk_percentage": self.risk_percentage,
            "risk_per_share": self.risk_per_share,
        }


def size_position(
    risk_config: PortfolioRiskConfig,
    entry_price: Optional[float],
    stop_loss: Optional[float],
    available_capital: float,
    total_equity: float = 0.0,
) -> SizingResult:
    """
    Calculate position size.

    Args:
        risk_config: risk_per_trade_amount / max_position_exposure_amount
        entry_price: Planned entry
        stop_loss: Planned stop
        available_capital: Capital in the bucket the trade draws from
        total_equity: Portfolio equity for the risk percentage (0 -> 0%)

    Returns:
        SizingResult
    """
    if not entry_price or not stop_loss or entry_price <= 0 or stop_loss <= 0:
        return SizingResult.failure("Invalid entry price or stop loss")

    risk_per_share = abs(entry_price - stop_loss)
    if risk_per_share == 0:
        return SizingResult.failure("Stop loss must be different from entry price")

    raw_quantity = math.floor(risk_config.risk_per_trade_amount / risk_per_share)
    if raw_quantity <= 0:
        return SizingResult.failure("Calculated quantity is zero")

    max_by_exposure = math.floor(risk_config.max_position_exposure_amount / entry_price)
    quantity = min(raw_quantity, max_by_exposure)
    if quantity <= 0:
        return SizingResult.failure("Final quantity is zero after exposure cap")

    capital_required = quantity * entry_price
    if capital_required > available_capital:
        quantity = math.floor(available_capital / entry_price)
        if quantity <= 0:
            return SizingResult.failure("Insufficient swing capital")
        capital_required = quantity * entry_price

    risk_amount = quantity * risk_per_share
    risk_percentage = round(risk_amount / total_equity * 100, 2) if total_equity > 0 else 0.0

    logger.debug(
        f"Sized {quantity} @ {entry_price:.2f} (risk/share={risk_per_share:.2f}, "
        f"raw={raw_quantity}, exposure_cap={max_by_exposure}, capital={capital_required:.2f})"
    )

    return SizingResult(
        success=True,
        quantity=quantity,
        capital_required=capital_required,
        risk_amount=risk_amount,
        risk_percentage=risk_percentage,
        risk_per_share=risk_per_share,
    )


class PositionSizer:
    """Binds a portfolio risk config to size_position."""

    def __init__(self, risk_config: Optional[PortfolioRiskConfig] = None):
        self.risk_config = risk_config or PortfolioRiskConfig()

    def size(
        self,
        entry_price: float,
        stop_loss: float,
        available_capital: float,
        total_equity: float = 0.0,
    ) -> SizingResult:
        return size_position(
            self.risk_config,
            entry_price,
            stop_loss,
            available_capital,
            total_equity,
        )
