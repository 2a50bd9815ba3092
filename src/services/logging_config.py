"""
Logging Configuration for the IHT engine.

Provides structured logging with:
- JSON formatting for production
- Human-readable formatting for development
- Calculation-specific logging for audit trails
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

# Context variables for calculation tracking
calculation_id_var: ContextVar[Optional[str]] = ContextVar('calculation_id', default=None)
person_id_var: ContextVar[Optional[str]] = ContextVar('person_id', default=None)


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs logs as JSON objects for easy parsing by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        calculation_id = calculation_id_var.get()
        if calculation_id:
            log_data["calculation_id"] = calculation_id

        person_id = person_id_var.get()
        if person_id:
            log_data["person_id"] = person_id

        # Add extra fields from the record
        if hasattr(record, 'extra_data'):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ReadableFormatter(logging.Formatter):
    """
    Human-readable log formatter for development.
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human readability."""
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
        level = f"{color}{record.levelname:8s}{reset}"

        message = f"{timestamp} {level} [{record.name}] {record.getMessage()}"

        if hasattr(record, 'extra_data') and record.extra_data:
            extras = ' | '.join(f"{k}={v}" for k, v in record.extra_data.items())
            message += f" | {extras}"

        return message


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that includes context in all log messages.
    """

    def process(self, msg: str, kwargs: Dict) -> tuple:
        """Add context to log message."""
        extra = kwargs.get('extra', {})

        calculation_id = calculation_id_var.get()
        if calculation_id:
            extra['calculation_id'] = calculation_id

        person_id = person_id_var.get()
        if person_id:
            extra['person_id'] = person_id

        if 'extra_data' not in extra:
            extra['extra_data'] = {}
        extra['extra_data'].update({k: v for k, v in self.extra.items() if v is not None})

        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Union[str, Path]] = None
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON formatted logs
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    root_logger.handlers.clear()

    formatter = JsonFormatter() if json_output else ReadableFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(JsonFormatter())  # Always JSON for files
        root_logger.addHandler(file_handler)


def get_logger(name: str, **extra) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (typically __name__)
        **extra: Additional context to include in all logs
    """
    base_logger = logging.getLogger(name)
    return ContextLogger(base_logger, extra)


class CalculationLogger:
    """
    Audit logger for one IHT calculation.

    Records the inputs, the allowances applied, the projection horizon,
    any degraded data and the final liability with its duration.
    """

    def __init__(self, person_id: Optional[str] = None):
        self.logger = get_logger("calculation", person_id=person_id)
        self.person_id = person_id
        self._start_time: Optional[float] = None
        self._step_times: Dict[str, int] = {}

    def start_calculation(self, tax_year: str, scenario: str, parameters_version: str) -> None:
        """Log calculation start."""
        self._start_time = time.time()
        self.logger.info(
            "Starting IHT calculation",
            extra={'extra_data': {
                'tax_year': tax_year,
                'scenario': scenario,
                'parameters_version': parameters_version,
            }}
        )

    def log_step(self, step_name: str, **data) -> float:
        """Log a calculation step and return its start time."""
        step_start = time.time()
        self.logger.debug(
            f"Calculation step: {step_name}",
            extra={'extra_data': {'step': step_name, **data}}
        )
        return step_start

    def complete_step(self, step_name: str, step_start: float, **result) -> None:
        """Log step completion with timing."""
        duration_ms = int((time.time() - step_start) * 1000)
        self._step_times[step_name] = duration_ms
        self.logger.debug(
            f"Completed step: {step_name}",
            extra={'extra_data': {'step': step_name, 'duration_ms': duration_ms, **result}}
        )

    def log_allowances(self, total_nrb: Any, rnrb: Any, rnrb_status: str, rate: Any) -> None:
        self.logger.info(
            "Allowances applied",
            extra={'extra_data': {
                'total_nrb': total_nrb,
                'rnrb': rnrb,
                'rnrb_status': rnrb_status,
                'rate': rate,
            }}
        )

    def log_projection(self, years_until_death: int, projected_estate: Any, projected_liability: Any) -> None:
        self.logger.info(
            "Projection computed",
            extra={'extra_data': {
                'years_until_death': years_until_death,
                'projected_estate': projected_estate,
                'projected_liability': projected_liability,
            }}
        )

    def log_data_quality(self, flags) -> None:
        """Degraded inputs are logged as warnings."""
        if flags:
            self.logger.warning(
                "Calculation used fallback data",
                extra={'extra_data': {'data_quality': [getattr(f, 'value', f) for f in flags]}}
            )

    def log_result(self, current_liability: Any, projected_liability: Any, from_cache: bool = False) -> None:
        """Log final calculation result."""
        duration_ms = int((time.time() - self._start_time) * 1000) if self._start_time else 0
        self.logger.info(
            "Calculation complete",
            extra={'extra_data': {
                'current_liability': current_liability,
                'projected_liability': projected_liability,
                'from_cache': from_cache,
                'duration_ms': duration_ms,
                'step_times': self._step_times,
            }}
        )

    def log_error(self, message: str, **data) -> None:
        """Log calculation error."""
        self.logger.error(message, extra={'extra_data': data})


def log_performance(name: Optional[str] = None) -> Callable:
    """
    Decorator to log function performance.

    Args:
        name: Optional name override for the log entry
    """
    def decorator(func: Callable) -> Callable:
        func_name = name or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger("performance")
            start = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration_ms = int((time.time() - start) * 1000)
                logger.error(
                    f"{func_name} failed",
                    extra={'extra_data': {'duration_ms': duration_ms, 'error': str(e)}}
                )
                raise
            duration_ms = int((time.time() - start) * 1000)
            logger.debug(
                f"{func_name} completed",
                extra={'extra_data': {'duration_ms': duration_ms}}
            )
            return result

        return wrapper

    return decorator
