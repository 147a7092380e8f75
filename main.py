"""
Swing Signal Pipeline - Main Entry Point

Structure detection, multi-timeframe scoring, position sizing and decision
gating for swing and long-term equity trades.

Usage:
    python main.py structure --csv daily.csv --direction long
    python main.py analyze --symbol RELIANCE --daily d.csv --weekly w.csv
    python main.py size --entry 100 --stop 95 --risk 1000 --exposure 15000 --available 50000
    python main.py evaluate --symbol RELIANCE --daily d.csv --weekly w.csv --equity 500000 --available 200000
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from config.settings import PortfolioRiskConfig, Settings, Timeframe, TradingStyle
from src.analysis.multi_timeframe import MultiTimeframeAnalyzer
from src.data.candles import CandleSeries
from src.data.providers import load_csv_series
from src.monitoring.logging_module import DecisionAuditLogger, setup_logging
from src.pipeline import Candidate, SignalPipeline
from src.risk.position_sizer import size_position
from src.structure.validator import validate_structure
from src.trading.portfolio import InMemoryPortfolio, SystemContextSnapshot


logger = logging.getLogger(__name__)


def load_settings(path: Optional[str]) -> Settings:
    """Load and validate settings; defaults when no path is given."""
    settings = Settings.from_yaml(path) if path else Settings()
    ok, errors = settings.validate()
    if not ok:
        for error in errors:
            logger.error(f"Config error: {error}")
        raise SystemExit(2)
    return settings


def load_timeframes(symbol: str, args) -> Dict[Timeframe, CandleSeries]:
    """Read the CSV files given on the command line, keyed by timeframe."""
    files = {
        Timeframe.D1: getattr(args, 'daily', None),
        Timeframe.W1: getattr(args, 'weekly', None),
        Timeframe.H1: getattr(args, 'hourly', None),
        Timeframe.M15: getattr(args, 'm15', None),
    }
    return {
        tf: load_csv_series(path, symbol, tf.value)
        for tf, path in files.items()
        if path
    }


def print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_structure(args, settings: Settings) -> None:
    series = load_csv_series(args.csv, args.symbol, Timeframe.D1.value)
    verdict = validate_structure(series, args.direction, settings.structure)
    print_json(verdict.to_dict())


def cmd_analyze(args, settings: Settings) -> None:
    if args.style:
        settings.multi_timeframe.trading_style = TradingStyle(args.style)
    if args.no_intraday:
        settings.multi_timeframe.include_intraday = False

    analyzer = MultiTimeframeAnalyzer(settings.multi_timeframe)
    result = analyzer.analyze(args.symbol, args.instrument_id, load_timeframes(args.symbol, args))
    print_json(result.to_dict())


def cmd_size(args, settings: Settings) -> None:
    risk = PortfolioRiskConfig(
        risk_per_trade_amount=args.risk if args.risk is not None else settings.risk.risk_per_trade_amount,
        max_position_exposure_amount=(
            args.exposure if args.exposure is not None else settings.risk.max_position_exposure_amount
        ),
    )
    result = size_position(risk, args.entry, args.stop, args.available, args.equity)
    print_json(result.to_dict())


def cmd_evaluate(args, settings: Settings) -> None:
    if args.enable_engine:
        settings.decision_engine.enabled = True

    portfolio = None
    if args.equity is not None:
        portfolio = InMemoryPortfolio(
            total_equity=args.equity,
            available_capital=args.available if args.available is not None else args.equity,
            swing_capital=args.swing_capital,
        )

    system_context = None
    if args.drawdown is not None or args.losses is not None:
        system_context = SystemContextSnapshot(
            drawdown=args.drawdown or 0.0,
            losses_in_row=args.losses or 0,
        )

    settings.paths.create_directories()
    pipeline = SignalPipeline(settings, audit=DecisionAuditLogger(settings.paths.audit_log))
    candidate = Candidate(
        symbol=args.symbol,
        instrument_id=args.instrument_id or args.symbol,
        timeframe=args.timeframe,
        candles=load_timeframes(args.symbol, args),
    )
    outcome = pipeline.evaluate(candidate, portfolio, system_context)
    print_json(outcome.to_dict())


def add_candle_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--symbol', type=str, required=True, help='Trading symbol')
    parser.add_argument('--instrument-id', dest='instrument_id', type=str, default=None)
    parser.add_argument('--daily', type=str, required=True, help='Daily candles CSV')
    parser.add_argument('--weekly', type=str, default=None, help='Weekly candles CSV')
    parser.add_argument('--hourly', type=str, default=None, help='1-hour candles CSV')
    parser.add_argument('--m15', type=str, default=None, help='15-minute candles CSV')


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Swing Signal Pipeline - structure, multi-timeframe scoring and decision gating'
    )

    # Options shared by every command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--config', type=str, default=None, help='Settings YAML')
    common.add_argument('--verbose', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Structure command
    st_parser = subparsers.add_parser('structure', parents=[common], help='Validate market structure')
    st_parser.add_argument('--csv', type=str, required=True, help='Daily candles CSV')
    st_parser.add_argument('--symbol', type=str, default='UNKNOWN', help='Trading symbol')
    st_parser.add_argument('--direction', choices=['long', 'short'], default='long')

    # Analyze command
    an_parser = subparsers.add_parser('analyze', parents=[common], help='Multi-timeframe analysis')
    add_candle_args(an_parser)
    an_parser.add_argument('--style', choices=[s.value for s in TradingStyle], default=None)
    an_parser.add_argument('--no-intraday', dest='no_intraday', action='store_true')

    # Size command
    sz_parser = subparsers.add_parser('size', parents=[common], help='Position sizing')
    sz_parser.add_argument('--entry', type=float, required=True)
    sz_parser.add_argument('--stop', type=float, required=True)
    sz_parser.add_argument('--risk', type=float, default=None, help='Risk per trade amount')
    sz_parser.add_argument('--exposure', type=float, default=None, help='Max position exposure amount')
    sz_parser.add_argument('--available', type=float, required=True, help='Available capital')
    sz_parser.add_argument('--equity', type=float, default=0.0, help='Total equity')

    # Evaluate command
    ev_parser = subparsers.add_parser('evaluate', parents=[common], help='Run the full decision pipeline')
    add_candle_args(ev_parser)
    ev_parser.add_argument('--timeframe', type=str, default='swing', help='Capital bucket (swing/longterm)')
    ev_parser.add_argument('--equity', type=float, default=None, help='Total equity')
    ev_parser.add_argument('--available', type=float, default=None, help='Available capital')
    ev_parser.add_argument('--swing-capital', dest='swing_capital', type=float, default=None)
    ev_parser.add_argument('--drawdown', type=float, default=None, help='Current drawdown %')
    ev_parser.add_argument('--losses', type=int, default=None, help='Consecutive losses')
    ev_parser.add_argument('--enable-engine', dest='enable_engine', action='store_true',
                           help='Force the decision engine on')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    settings = load_settings(args.config)
    setup_logging(settings.paths, verbose=args.verbose)

    commands = {
        'structure': cmd_structure,
        'analyze': cmd_analyze,
        'size': cmd_size,
        'evaluate': cmd_evaluate,
    }

    try:
        commands[args.command](args, settings)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        logger.error(f"Error: {e}")
        raise

    return 0


if __name__ == '__main__':
    Path('logs').mkdir(exist_ok=True)
    sys.exit(main())
