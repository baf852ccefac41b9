"""
Utility modules for WhatsApp Bridge

Contains configuration management, logging setup, error handling and health monitoring.
"""

from .config import Config
from .logging_setup import setup_logging
from .error_handler import ErrorHandler, ErrorInfo, ErrorSeverity, ErrorCategory, BridgeError
from .performance_monitor import HealthMonitor, HealthReport, ProcessMetrics

__all__ = [
    "Config",
    "setup_logging",
    "ErrorHandler",
    "ErrorInfo",
    "ErrorSeverity",
    "ErrorCategory",
    "BridgeError",
    "HealthMonitor",
    "HealthReport",
    "ProcessMetrics"
]
