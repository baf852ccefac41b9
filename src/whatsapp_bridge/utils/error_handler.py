"""
Error Handling System for WhatsApp Bridge

Defines the bridge error taxonomy and records errors that are absorbed
internally (transport disconnects, failed reconnects, storage faults).
"""

import re
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .logging_setup import get_logger

logger = get_logger('error_handler')


class ErrorSeverity(Enum):
    """Error severity levels"""
    LOW = "low"           # Caller mistake, nothing to recover
    MEDIUM = "medium"     # Operation failed, session unaffected
    HIGH = "high"         # Session or credentials affected
    CRITICAL = "critical" # Bridge cannot continue


class ErrorCategory(Enum):
    """Categories of errors"""
    USER_INPUT = "user_input"   # Malformed destination or body
    STATE = "state"             # Operation not allowed in current session state
    TRANSPORT = "transport"     # Bridge process or WhatsApp connection issues
    STORAGE = "storage"         # Credential store read/write/delete failures
    CONFIGURATION = "config"    # Configuration problems
    INTERNAL = "internal"       # Internal application errors


class BridgeError(Exception):
    """Base class for errors surfaced by the WhatsApp bridge"""

    category = ErrorCategory.INTERNAL
    severity = ErrorSeverity.MEDIUM

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(BridgeError):
    """Destination or message body failed validation"""
    category = ErrorCategory.USER_INPUT
    severity = ErrorSeverity.LOW


class AlreadyRunningError(BridgeError):
    """Start requested while a session is already active"""
    category = ErrorCategory.STATE
    severity = ErrorSeverity.LOW


class NotRunningError(BridgeError):
    """Stop requested while no session is active"""
    category = ErrorCategory.STATE
    severity = ErrorSeverity.LOW


class NotInitializedError(BridgeError):
    """Operation needs a live transport handle that does not exist"""
    category = ErrorCategory.STATE
    severity = ErrorSeverity.LOW


class NotConnectedError(BridgeError):
    """Message send attempted outside the connected state"""
    category = ErrorCategory.STATE
    severity = ErrorSeverity.LOW


class TransportError(BridgeError):
    """Bridge process could not be started or talked to"""
    category = ErrorCategory.TRANSPORT
    severity = ErrorSeverity.HIGH


class SendFailedError(TransportError):
    """The transport rejected or failed to deliver a message"""
    severity = ErrorSeverity.MEDIUM


class PairingFailedError(TransportError):
    """The transport could not produce a pairing code"""
    severity = ErrorSeverity.MEDIUM


class StorageError(BridgeError):
    """Credential store read, write or delete failure"""
    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.HIGH


@dataclass
class ErrorInfo:
    """Information about an error"""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    context: Dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    session_id: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for logging"""
        return {
            'error_type': type(self.error).__name__,
            'category': self.category.value,
            'severity': self.severity.value,
            'message': self.message,
            'context': self.context,
            'timestamp': self.timestamp,
            'session_id': self.session_id,
            'traceback': ''.join(traceback.format_exception(
                type(self.error), self.error, self.error.__traceback__
            )) if self.error.__traceback__ else None
        }


class ErrorDetector:
    """Detects and classifies errors that are not already bridge errors"""

    PATTERNS = {
        ErrorCategory.TRANSPORT: [
            r'connection.*(closed|lost|reset|refused)',
            r'broken pipe',
            r'stream errored',
            r'timed? ?out',
        ],
        ErrorCategory.STORAGE: [
            r'no space left',
            r'read-only file system',
            r'serverselectiontimeout',
            r'mongo',
        ],
        ErrorCategory.CONFIGURATION: [
            r'config.*not found',
            r'invalid.*config',
            r'missing.*token',
        ],
    }

    @classmethod
    def classify_error(cls, error: Exception, context: Dict = None) -> ErrorInfo:
        """Classify an error and determine its properties"""
        if isinstance(error, BridgeError):
            return ErrorInfo(
                error=error,
                category=error.category,
                severity=error.severity,
                message=error.message,
                context=context or {}
            )

        error_message = str(error).lower()

        category = ErrorCategory.INTERNAL
        severity = ErrorSeverity.MEDIUM

        if isinstance(error, (ConnectionError, TimeoutError, BrokenPipeError)):
            category = ErrorCategory.TRANSPORT
        elif isinstance(error, (PermissionError, IsADirectoryError)):
            category = ErrorCategory.STORAGE
            severity = ErrorSeverity.HIGH
        elif isinstance(error, (FileNotFoundError, KeyError)):
            category = ErrorCategory.CONFIGURATION
            severity = ErrorSeverity.HIGH
        elif isinstance(error, MemoryError):
            severity = ErrorSeverity.CRITICAL

        if category == ErrorCategory.INTERNAL:
            for cat, patterns in cls.PATTERNS.items():
                if any(re.search(p, error_message, re.IGNORECASE) for p in patterns):
                    category = cat
                    break

        return ErrorInfo(
            error=error,
            category=category,
            severity=severity,
            message=str(error) or type(error).__name__,
            context=context or {}
        )


class ErrorHandler:
    """Records and logs errors absorbed by the bridge"""

    def __init__(self, history_size: int = 200):
        self.detector = ErrorDetector()
        self.history_size = history_size
        self.error_history: List[ErrorInfo] = []
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict:
        return {
            'total_errors': 0,
            'errors_by_category': {cat.value: 0 for cat in ErrorCategory},
            'errors_by_severity': {sev.value: 0 for sev in ErrorSeverity},
        }

    def handle_error(self, error: Exception, context: Dict = None,
                     session_id: str = None) -> ErrorInfo:
        """Classify, record and log an error"""
        error_info = self.detector.classify_error(error, context)
        error_info.session_id = session_id

        self.stats['total_errors'] += 1
        self.stats['errors_by_category'][error_info.category.value] += 1
        self.stats['errors_by_severity'][error_info.severity.value] += 1

        self.error_history.append(error_info)
        if len(self.error_history) > self.history_size:
            self.error_history = self.error_history[-self.history_size:]

        label = f"{error_info.category.value} error: {error_info.message}"
        if error_info.severity == ErrorSeverity.CRITICAL:
            logger.critical(f"Critical {label}")
        elif error_info.severity == ErrorSeverity.HIGH:
            logger.error(f"High severity {label}")
        elif error_info.severity == ErrorSeverity.MEDIUM:
            logger.warning(f"Medium severity {label}")
        else:
            logger.info(f"Low severity {label}")

        return error_info

    def get_recent_errors(self, count: int = 10) -> List[ErrorInfo]:
        """Get recent errors"""
        return self.error_history[-count:] if self.error_history else []

    def get_error_stats(self) -> Dict:
        """Get error statistics"""
        return {
            'total_errors': self.stats['total_errors'],
            'errors_by_category': dict(self.stats['errors_by_category']),
            'errors_by_severity': dict(self.stats['errors_by_severity']),
        }
