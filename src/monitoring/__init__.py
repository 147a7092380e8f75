"""Logging and decision audit trail."""

from src.monitoring.logging_module import setup_logging, DecisionAuditLogger

__all__ = ['setup_logging', 'DecisionAuditLogger']
