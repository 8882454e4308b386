"""Logging and timing for the refresh cycle and note lookups.

Index builds, refresh cycles, ID resolution and note rendering are each
timed under a stable operation name ("build_link_index", "refresh_all",
"resolve_note_id", "render_note", ...). The counters are kept in memory
and logged as a summary when the process exits.
"""
import functools
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# Every module logger in the package sits below this one
ROOT_LOGGER_NAME = "groundwave_zk"

DEFAULT_LOG_DIR = Path.home() / ".groundwave" / "logs"
LOG_FILENAME = "groundwave-zk.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar('F', bound=Callable[..., Any])

_logging_configured = False


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the package's log records to ``groundwave-zk.log``.

    The refresher runs unattended for days, so the file rotates at
    ``max_bytes`` and keeps ``backup_count`` old files. A console handler
    is added once when ``console`` is set.

    Returns:
        The directory holding the log file (created if needed).
    """
    global _logging_configured

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / LOG_FILENAME
    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    package_logger.addHandler(file_handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in package_logger.handlers
    )
    if console and not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    _logging_configured = True
    package_logger.info(f"Writing logs to {log_file} (rotating at {max_bytes} bytes, keeping {backup_count})")
    return log_path


def is_logging_configured() -> bool:
    return _logging_configured


@dataclass
class OperationStats:
    """Running counters for one operation name."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float('inf')
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        seen = self.count > 0
        return {
            'count': self.count,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'success_rate': self.success_count / self.count if seen else 0,
            'avg_duration_ms': round(self.total_duration_ms / self.count, 2) if seen else 0,
            'min_duration_ms': round(self.min_duration_ms, 2) if seen else 0,
            'max_duration_ms': round(self.max_duration_ms, 2),
            'last_error': self.last_error,
            'last_error_time': self.last_error_time.isoformat() if self.last_error_time else None,
        }


class MetricsCollector:
    """Per-operation counters shared by the refresh thread and request threads.

    A failed refresh shows up here as an error on ``refresh_all`` with the
    ``BuildError`` message kept as ``last_error``.
    """

    def __init__(self) -> None:
        self._stats: Dict[str, OperationStats] = defaultdict(OperationStats)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        with self._lock:
            stats = self._stats[operation]
            stats.count += 1
            stats.total_duration_ms += duration_ms
            stats.min_duration_ms = min(stats.min_duration_ms, duration_ms)
            stats.max_duration_ms = max(stats.max_duration_ms, duration_ms)
            if success:
                stats.success_count += 1
            else:
                stats.error_count += 1
                stats.last_error = error
                stats.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Counters for every operation seen so far, keyed by name."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across operations, logged by the CLI at exit."""
        with self._lock:
            total = sum(s.count for s in self._stats.values())
            succeeded = sum(s.success_count for s in self._stats.values())
            return {
                'uptime_seconds': (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                'total_operations': total,
                'total_success': succeeded,
                'total_errors': sum(s.error_count for s in self._stats.values()),
                'overall_success_rate': succeeded / total if total > 0 else 1.0,
                'operations_tracked': list(self._stats.keys()),
            }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._start_time = datetime.now(timezone.utc)


metrics = MetricsCollector()


def _pairs(values: Dict[str, Any]) -> str:
    return ', '.join(f'{k}={v}' for k, v in values.items())


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block and record it under ``operation``.

    The yielded dict carries a short correlation ID; anything the block
    adds to it is logged with the END line. Exceptions are recorded and
    re-raised.

    Example:
        with timed_operation("build_journal_index") as op:
            snapshot = builder.build()
            op["entries"] = len(snapshot.entries)
    """
    correlation_id = uuid.uuid4().hex[:8]
    outcome: Dict[str, Any] = {'correlation_id': correlation_id}
    logger.debug(f"[{correlation_id}] START {operation} ({_pairs(context)})")

    started = time.perf_counter()
    error_msg = None
    try:
        yield outcome
    except Exception as e:
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, duration_ms, error_msg is None, error_msg)

        status = 'OK' if error_msg is None else f'ERROR: {error_msg}'
        extra = {k: v for k, v in outcome.items() if k != 'correlation_id'}
        logger.debug(
            f"[{correlation_id}] END {operation} ({duration_ms:.2f}ms) [{status}] {_pairs(extra)}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Wrap a service method in :func:`timed_operation`.

    The note ID (keyword ``note_id`` or the first positional string after
    ``self``) goes into the START line, and list or dict results log their
    size.

    Example:
        @traced("resolve_note_id")
        def resolve(self, note_id, cancel=None, rescan=False):
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = {}
            if 'note_id' in kwargs:
                context['note_id'] = kwargs['note_id']
            elif len(args) > 1 and isinstance(args[1], str):
                context['arg'] = args[1][:50]

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, dict)):
                    op['result_count'] = len(result)
                elif result is not None:
                    op['has_result'] = True
                return result

        return wrapper  # type: ignore
    return decorator
