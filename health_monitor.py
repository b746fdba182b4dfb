"""
Health Monitoring and Fatal Error Logging
Provides the /health status and the append-only log sink used before exiting
"""

import time
import logging
import threading
import traceback
import psutil
from typing import Dict, Any, Optional
from datetime import datetime

logger = logging.getLogger(__name__)

class HealthMonitor:
    """Process health and provisioning error tracking"""

    def __init__(self):
        self.start_time = time.time()
        self.health_status = {
            'overall': 'healthy',
            'memory_usage': 0,
            'uptime_seconds': 0,
            'error_count_1h': 0,
            'provisioning_runs': 0,
            'last_error': None
        }
        self.error_log = []
        self._lock = threading.Lock()

    def update_error_count(self, error_message: str):
        """Track errors for health monitoring"""
        with self._lock:
            current_time = time.time()

            self.error_log.append({
                'timestamp': current_time,
                'message': str(error_message)[:200]  # Truncate long messages
            })

            one_hour_ago = current_time - 3600
            self.error_log = [err for err in self.error_log if err['timestamp'] > one_hour_ago]

            self.health_status['error_count_1h'] = len(self.error_log)
            self.health_status['last_error'] = {
                'message': str(error_message)[:100],
                'timestamp': datetime.fromtimestamp(current_time).isoformat()
            }

            if len(self.error_log) > 50:
                self.health_status['overall'] = 'critical'
            elif len(self.error_log) > 20:
                self.health_status['overall'] = 'degraded'
            elif len(self.error_log) > 5:
                self.health_status['overall'] = 'warning'
            else:
                self.health_status['overall'] = 'healthy'

    def record_run(self):
        with self._lock:
            self.health_status['provisioning_runs'] += 1

    def check_system_resources(self):
        """Check process memory and uptime"""
        try:
            memory_info = psutil.virtual_memory()
            self.health_status['memory_usage'] = memory_info.percent

            process = psutil.Process()
            process_memory = process.memory_info().rss / 1024 / 1024  # MB
            self.health_status['process_memory_mb'] = round(process_memory, 1)
        except (psutil.Error, OSError) as e:
            logger.warning(f"System resource check failed: {e}")

        self.health_status['uptime_seconds'] = int(time.time() - self.start_time)

    def get_health_status(self) -> Dict[str, Any]:
        self.check_system_resources()
        self.health_status['last_check'] = datetime.now().isoformat()
        return dict(self.health_status)


_health_monitor = None

def get_health_monitor() -> HealthMonitor:
    """Get or create global health monitor instance"""
    global _health_monitor
    if _health_monitor is None:
        _health_monitor = HealthMonitor()
        logger.info("✅ Health monitor initialized")
    return _health_monitor

def log_error(error_message: str):
    """Convenience function to log errors to health monitor"""
    get_health_monitor().update_error_count(error_message)


def format_fatal_error(error: Optional[BaseException]) -> str:
    """Timestamped block written to the fatal log: traceback, message or repr"""
    msg = f"\n[{datetime.now().strftime('%a %b %d %Y %H:%M:%S')}]\n"
    if error is not None:
        if error.__traceback__ is not None:
            msg += ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        elif str(error):
            msg += str(error)
        else:
            msg += repr(error)
        msg += '\n'
    return msg


def append_fatal_error(error: Optional[BaseException], log_path: str) -> bool:
    """
    Append a fatal error to the log sink

    Returns:
        True when written, False when the log file could not be opened
    """
    try:
        with open(log_path, 'a', encoding='utf-8') as f:
            f.write(format_fatal_error(error))
        return True
    except OSError as e:
        logger.error(f"❌ Could not write fatal error to {log_path}: {e}")
        return False
