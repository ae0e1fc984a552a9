"""
Logging for depscope.

Structured, component-tagged logging on top of the standard ``logging``
module. Nothing is written until ``logger.configure()`` is called; after
that, logs are organized in date-stamped folders with one file per level:
  logs/YYYY-MM-DD/debug.log
  logs/YYYY-MM-DD/info.log
  logs/YYYY-MM-DD/warning.log
  logs/YYYY-MM-DD/error.log
"""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class DepscopeLogger:
    """Centralized logger for analysis runs, cache activity and failures."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self.logger = logging.getLogger("depscope")
            # Silent until configure(); keeps logging's last-resort stderr handler out of the way
            self.logger.addHandler(logging.NullHandler())
            self.json_mode = False
            self.session_start = time.time()
            self.log_dir = None
            self._initialized = True

    def _get_default_log_dir(self) -> Path:
        """Get the default log directory path with today's date."""
        today = datetime.now().strftime("%Y-%m-%d")
        return Path("logs") / today

    def configure(
        self,
        level: str = "INFO",
        log_dir: Optional[str] = None,
        json_mode: bool = False,
        enable_logging: bool = True,
    ):
        """
        Configure logging output.

        Args:
            level: DEBUG, INFO, WARNING, ERROR (minimum level to log)
            log_dir: Optional directory for logs (default: logs/YYYY-MM-DD/)
            json_mode: Use JSON format for structured parsing
            enable_logging: Enable file logging (default: True)
        """
        if not enable_logging:
            return

        self.json_mode = json_mode
        self.logger.handlers.clear()
        self.logger.setLevel(logging.DEBUG)

        if log_dir:
            self.log_dir = Path(log_dir)
        else:
            self.log_dir = self._get_default_log_dir()

        self.log_dir.mkdir(parents=True, exist_ok=True)

        if json_mode:
            formatter = JsonFormatter()
        else:
            formatter = logging.Formatter(
                '%(asctime)s [%(component)-8s] %(message)s',
                datefmt='%H:%M:%S'
            )

        min_level = getattr(logging, level.upper(), logging.INFO)

        log_levels = [
            (logging.DEBUG, 'debug.log'),
            (logging.INFO, 'info.log'),
            (logging.WARNING, 'warning.log'),
            (logging.ERROR, 'error.log'),
        ]

        for log_level, filename in log_levels:
            if log_level >= min_level:
                handler = logging.FileHandler(self.log_dir / filename, mode='a', encoding='utf-8')
                handler.setLevel(log_level)
                handler.setFormatter(formatter)

                # Each file receives its own level only
                handler.addFilter(lambda record, level=log_level: record.levelno == level)

                self.logger.addHandler(handler)

    def get_log_directory(self) -> Optional[Path]:
        """Get the current log directory path."""
        return self.log_dir

    def _log(self, level: str, component: str, msg: str, **data):
        """Core logging with structured data."""
        extra = {'component': component, **data}
        getattr(self.logger, level)(msg, extra=extra)

    # === ANALYSIS FLOW ===

    def analysis_start(self, project_path: str, parallel: bool, max_workers: int):
        mode = f"parallel x{max_workers}" if parallel else "sequential"
        self._log('info', 'ANALYZE', f"Starting analysis of {project_path} ({mode})",
                  project_path=project_path, parallel=parallel, max_workers=max_workers)

    def files_discovered(self, count: int):
        self._log('info', 'ANALYZE', f"Discovered {count} files", files=count)

    def file_failed(self, path: str, error: str):
        self._log('warning', 'ANALYZE', f"Failed to analyze {path}: {error}",
                  file=path, error=error)

    def analysis_complete(self, analyzed: int, total: int, duration_ms: float, partial: bool):
        status = "PARTIAL" if partial else "COMPLETE"
        self._log('info', 'ANALYZE',
                  f"Analysis [{status}]: {analyzed}/{total} files in {duration_ms:.0f}ms",
                  analyzed=analyzed, total=total, duration_ms=duration_ms, partial=partial)

    # === DEPENDENCY REDUCTION ===

    def graph_built(self, nodes: int, edges: int, externals: int):
        self._log('info', 'GRAPH', f"Graph: {nodes} nodes, {edges} edges, {externals} external packages",
                  nodes=nodes, edges=edges, externals=externals)

    def cycles_found(self, count: int):
        if count:
            self._log('warning', 'GRAPH', f"Found {count} circular dependencies", cycles=count)
        else:
            self._log('debug', 'GRAPH', "No circular dependencies")

    def unresolved_import(self, path: str, specifier: str):
        self._log('debug', 'RESOLVE', f"Unresolved import '{specifier}' in {path}",
                  file=path, specifier=specifier)

    # === CACHE ===

    def cache_event(self, event: str, key: str):
        self._log('debug', 'CACHE', f"{event}: {key}", cache_event=event, key=key)

    def store_error(self, operation: str, key: str, exception: Exception):
        self._log('warning', 'CACHE', f"Backing store {operation} failed for {key}: {exception}",
                  operation=operation, key=key, error=str(exception))

    # === GENERIC ===

    def debug(self, component: str, message: str):
        self._log('debug', component.upper(), message)

    def info(self, component: str, message: str):
        self._log('info', component.upper(), message)

    def warning(self, component: str, message: str):
        self._log('warning', component.upper(), f"WARNING: {message}")

    def error(self, component: str, message: str, exception: Optional[Exception] = None):
        import traceback

        error_details = message
        if exception:
            tb_str = ''.join(traceback.format_exception(type(exception), exception, exception.__traceback__))
            error_details = f"{message}\n{tb_str}"

        self._log('error', component.upper(), f"ERROR: {error_details}",
                  error=str(exception) if exception else message)


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for machine parsing."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            'time': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'component': getattr(record, 'component', 'SYSTEM'),
            'message': record.getMessage(),
        }
        for k, v in record.__dict__.items():
            if k not in {'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
                         'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
                         'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
                         'thread', 'threadName', 'processName', 'process', 'message',
                         'component', 'asctime', 'taskName'}:
                data[k] = v
        return json.dumps(data, default=str)


# Global instance
logger = DepscopeLogger()
