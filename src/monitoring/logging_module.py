"""
Logging & Monitoring Module

Audit trail for the decision pipeline:
- System log (console + file)
- Decision log (CSV, one row per decision)
- Daily summary of approvals and rejections
"""

import csv
import json
import logging
import threading
from collections import Counter
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from config.settings import PathSettings


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(paths: PathSettings, verbose: bool = True) -> logging.Logger:
    """
    Configure root logging for the pipeline.

    Returns the configured root logger.
    """
    logs_dir = Path(paths.logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    # File handler
    file_handler = logging.FileHandler(logs_dir / "pipeline.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, datefmt=DATE_FORMAT))

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger


class DecisionAuditLogger:
    """
    CSV logger for decision engine outcomes.

    Safe to share across worker threads; rows are appended under a lock.
    """

    HEADERS = [
        "timestamp",
        "symbol",
        "instrument_id",
        "approved",
        "stage",
        "reason",
        "errors",
        "decision_path",
        "failed_closed",
        "entry_price",
        "stop_loss",
        "quantity",
        "risk_amount",
    ]

    def __init__(self, log_path):
        self.log_path = Path(log_path)
        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._ensure_headers()

    def _ensure_headers(self) -> None:
        """Ensure CSV has headers."""
        if not self.log_path.exists():
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, 'w', newline='') as f:
                writer = csv.writer(f)
                writer.writerow(self.HEADERS)

    def log_decision(self, decision) -> None:
        """Log a Decision."""
        rec = decision.recommendation
        row = {
            "timestamp": decision.checked_at.isoformat(),
            "symbol": rec.symbol if rec else "",
            "instrument_id": rec.instrument_id if rec else "",
            "approved": decision.approved,
            "stage": decision.stage or "",
            "reason": decision.reason or "",
            "errors": json.dumps(list(decision.errors)),
            "decision_path": json.dumps(list(decision.decision_path)),
            "failed_closed": decision.failed_closed,
            "entry_price": rec.entry_price if rec and rec.entry_price is not None else "",
            "stop_loss": rec.stop_loss if rec and rec.stop_loss is not None else "",
            "quantity": rec.quantity if rec and rec.quantity is not None else "",
            "risk_amount": rec.risk_amount if rec and rec.risk_amount is not None else "",
        }
        with self._lock:
            self._write_row(row)
            outcome = "approved" if decision.approved else (decision.stage or "rejected")
            self._counts[(decision.checked_at.date(), outcome)] += 1

    def _write_row(self, row: Dict) -> None:
        """Write a row to CSV."""
        with open(self.log_path, 'a', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=self.HEADERS)
            writer.writerow(row)

    def summary(self, day: Optional[date] = None) -> Dict:
        """Counts of decisions logged by this instance on `day` (UTC, default today), by outcome."""
        day = day or datetime.now(timezone.utc).date()
        counts: Counter = Counter()
        with self._lock:
            for (logged_on, outcome), n in self._counts.items():
                if logged_on == day:
                    counts[outcome] += n
        return {
            "date": day.isoformat(),
            "total": sum(counts.values()),
            "by_outcome": dict(counts),
        }
