"""
Simple metrics collection for JSON-RPC traffic and sponsorship outcomes.
Lightweight alternative to Prometheus.
"""

from typing import Any, Dict
from datetime import datetime, timedelta
from collections import defaultdict, deque
import threading

from src.core.logger.logger import get_logger

logger = get_logger(__name__)


class SimpleMetrics:
    """Simple in-memory metrics collector for paymaster operations."""

    def __init__(self, retention_hours: int = 24):
        self._lock = threading.Lock()
        self._retention_hours = retention_hours

        # Time-series data (timestamp, value) pairs
        self._call_success = deque()
        self._call_failures = deque()

        self._counters = {
            'total_calls': 0,
            'total_success': 0,
            'total_failures': 0,
            'sponsorships': 0,
            'allowance_grants': 0,
            'gas_sponsored': 0
        }

        self._method_counters = defaultdict(lambda: {
            'calls': 0,
            'success': 0,
            'failures': 0
        })
        self._error_codes = defaultdict(int)

    def _cleanup_old_data(self):
        """Remove data older than retention period."""
        cutoff_time = datetime.utcnow() - timedelta(hours=self._retention_hours)

        for data_deque in (self._call_success, self._call_failures):
            while data_deque and data_deque[0][0] < cutoff_time:
                data_deque.popleft()

    def record_call(self, method: str, response: Dict[str, Any]):
        """Record a dispatched JSON-RPC call from its response envelope."""
        error = response.get("error")
        with self._lock:
            now = datetime.utcnow()
            counters = self._method_counters[method]
            self._counters['total_calls'] += 1
            counters['calls'] += 1

            if error is None:
                self._call_success.append((now, 1))
                self._counters['total_success'] += 1
                counters['success'] += 1
            else:
                self._call_failures.append((now, 1))
                self._counters['total_failures'] += 1
                counters['failures'] += 1
                self._error_codes[error.get("code")] += 1

            self._cleanup_old_data()

    def record_sponsorship(self, gas: int):
        with self._lock:
            self._counters['sponsorships'] += 1
            self._counters['gas_sponsored'] += gas

    def record_grant(self):
        with self._lock:
            self._counters['allowance_grants'] += 1

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get current metrics summary."""
        with self._lock:
            self._cleanup_old_data()

            one_hour_ago = datetime.utcnow() - timedelta(hours=1)
            recent_success = sum(1 for ts, _ in self._call_success if ts > one_hour_ago)
            recent_failures = sum(1 for ts, _ in self._call_failures if ts > one_hour_ago)

            total_recent = recent_success + recent_failures
            success_rate = (recent_success / total_recent * 100) if total_recent > 0 else 0

            return {
                'timestamp': datetime.utcnow().isoformat() + 'Z',
                'overall': {
                    **self._counters,
                    'gas_sponsored': str(self._counters['gas_sponsored'])
                },
                'last_hour': {
                    'success': recent_success,
                    'failures': recent_failures,
                    'success_rate_percent': round(success_rate, 2)
                },
                'by_method': {name: dict(counters) for name, counters in self._method_counters.items()},
                'by_error_code': {str(code): count for code, count in self._error_codes.items()},
                'retention_hours': self._retention_hours
            }


# Global metrics instance
metrics = SimpleMetrics()


def get_metrics() -> SimpleMetrics:
    """Get the global metrics instance."""
    return metrics
