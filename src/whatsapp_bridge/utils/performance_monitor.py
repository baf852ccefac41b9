"""
Health Monitoring for WhatsApp Bridge

Reports resource usage of the bridge service and its WhatsApp sidecar
process alongside the session status.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import psutil

from .error_handler import ErrorInfo
from .logging_setup import get_logger

logger = get_logger('performance')


@dataclass
class ProcessMetrics:
    """Resource usage of a single process"""
    pid: int
    cpu_percent: float
    memory_mb: float
    memory_percent: float
    uptime_seconds: float

    def to_dict(self) -> Dict:
        return {
            'pid': self.pid,
            'cpu_percent': self.cpu_percent,
            'memory_mb': round(self.memory_mb, 1),
            'memory_percent': round(self.memory_percent, 2),
            'uptime_seconds': round(self.uptime_seconds, 1),
        }


@dataclass
class HealthReport:
    """Health snapshot answered by the Health query"""
    status: str
    whatsapp: str
    service: Optional[ProcessMetrics]
    bridge: Optional[ProcessMetrics]
    errors: Dict = field(default_factory=dict)
    recent_errors: List[ErrorInfo] = field(default_factory=list)
    last_activity: Optional[datetime] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict:
        return {
            'status': self.status,
            'whatsapp': self.whatsapp,
            'service': self.service.to_dict() if self.service else None,
            'bridge': self.bridge.to_dict() if self.bridge else None,
            'errors': self.errors,
            'recent_errors': [
                {'category': e.category.value, 'message': e.message, 'timestamp': e.timestamp}
                for e in self.recent_errors
            ],
            'last_activity': self.last_activity.isoformat() if self.last_activity else None,
            'timestamp': self.timestamp,
        }


def collect_process_metrics(process: psutil.Process) -> Optional[ProcessMetrics]:
    """Snapshot a process, or None if it is gone or not visible

    cpu_percent is measured since the previous call on the same Process
    object, so callers keep the object between snapshots.
    """
    try:
        with process.oneshot():
            memory_info = process.memory_info()
            return ProcessMetrics(
                pid=process.pid,
                cpu_percent=process.cpu_percent(interval=None),
                memory_mb=memory_info.rss / 1024 / 1024,
                memory_percent=process.memory_percent(),
                uptime_seconds=time.time() - process.create_time()
            )
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as e:
        logger.debug(f"Cannot read metrics for pid {process.pid}: {e}")
        return None


class HealthMonitor:
    """Builds health reports from the session manager's current state"""

    def __init__(self, session_manager, recent_error_count: int = 5):
        self.session_manager = session_manager
        self.recent_error_count = recent_error_count
        self.process = psutil.Process()
        self._bridge_process: Optional[psutil.Process] = None

        # Prime the CPU counter so the first report has a baseline
        self.process.cpu_percent(interval=None)

    def _bridge(self, pid: int) -> Optional[psutil.Process]:
        """Process object for the sidecar, replaced when the pid changes"""
        if self._bridge_process is None or self._bridge_process.pid != pid:
            try:
                self._bridge_process = psutil.Process(pid)
            except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
                logger.debug(f"Cannot attach to bridge pid {pid}: {e}")
                self._bridge_process = None
        return self._bridge_process

    def check(self) -> HealthReport:
        pid = self.session_manager.handle_pid
        bridge = None
        if pid:
            process = self._bridge(pid)
            bridge = collect_process_metrics(process) if process else None
        else:
            self._bridge_process = None

        status = "healthy"
        if pid and bridge is None:
            status = "degraded"
            logger.warning(f"WhatsApp bridge process {pid} is not running")

        error_handler = self.session_manager.error_handler
        return HealthReport(
            status=status,
            whatsapp=self.session_manager.status.value,
            service=collect_process_metrics(self.process),
            bridge=bridge,
            errors=error_handler.get_error_stats(),
            recent_errors=error_handler.get_recent_errors(self.recent_error_count),
            last_activity=self.session_manager.session.last_activity
        )
