"""
Tests for the position sizer.
"""

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import PortfolioRiskConfig
from src.risk.position_sizer import PositionSizer, size_position


@pytest.fixture
def risk_config():
    return PortfolioRiskConfig(risk_per_trade_amount=1000, max_position_exposure_amount=15000)


class TestPositionSizer:

    def test_exposure_cap(self, risk_config):
        """1000 risk / 5 per share = 200 shares, capped to 150 by 15000 exposure."""
        result = size_position(risk_config, 100.0, 95.0, available_capital=50000)

        assert result.success
        assert result.quantity == 150
        assert result.capital_required == 15000.0
        assert result.risk_amount == 750.0
        assert result.risk_per_share == 5.0

    def test_available_capital_cap(self, risk_config):
        result = size_position(risk_config, 100.0, 95.0, available_capital=10000)

        assert result.quantity == 100
        assert result.capital_required == 10000.0
        assert result.risk_amount == 500.0

    def test_risk_amount_matches_quantity(self, risk_config):
        result = size_position(risk_config, 123.45, 117.8, available_capital=1e9)
        assert result.risk_amount == pytest.approx(result.risk_per_share * result.quantity)

    def test_risk_percentage(self, risk_config):
        result = size_position(risk_config, 100.0, 95.0, 50000, total_equity=100000)
        assert result.risk_percentage == 0.75

    def test_zero_equity_gives_zero_percentage(self, risk_config):
        assert size_position(risk_config, 100.0, 95.0, 50000).risk_percentage == 0.0

    def test_short_side_stop(self, risk_config):
        result = size_position(risk_config, 100.0, 105.0, 50000)
        assert result.quantity == 150

    @pytest.mark.parametrize("entry,stop,config,available,error", [
        (0.0, 95.0, None, 50000, "Invalid entry price or stop loss"),
        (100.0, None, None, 50000, "Invalid entry price or stop loss"),
        (100.0, 100.0, None, 50000, "Stop loss must be different from entry price"),
        (100.0, 80.0, PortfolioRiskConfig(10, 15000), 50000, "Calculated quantity is zero"),
        (100.0, 95.0, PortfolioRiskConfig(1000, 50), 50000, "Final quantity is zero after exposure cap"),
        (100.0, 95.0, None, 50, "Insufficient swing capital"),
    ])
    def test_failures(self, risk_config, entry, stop, config, available, error):
        result = size_position(config or risk_config, entry, stop, available)

        assert not result.success
        assert result.error == error
        assert result.quantity == 0
        assert result.to_dict() == {"success": False, "error": error}

    def test_sizer_binds_config(self, risk_config):
        sizer = PositionSizer(risk_config)
        assert sizer.size(100.0, 95.0, 10000).quantity == 100
