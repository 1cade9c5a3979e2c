"""
Logging configuration for Flowcraft.
Console output plus rotating log files, with a dedicated file for Meta Graph flow traffic.
"""
import logging
import logging.handlers
import sys
from pathlib import Path


# Create logs directory
LOGS_DIR = Path(__file__).parent.parent.parent / "logs"

# Log files
ERROR_LOG_FILE = LOGS_DIR / "error.log"
DEBUG_LOG_FILE = LOGS_DIR / "debug.log"
FLOW_API_LOG_FILE = LOGS_DIR / "flow_api.log"

FLOW_API_LOGGER = "flow_api"

SENSITIVE_KEYS = ("token", "password", "secret", "api_key", "authorization")


class ColoredFormatter(logging.Formatter):
    """Colored console formatter for better readability"""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        log_color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{log_color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def _rotating_handler(path: Path, level: int, fmt: str, max_mb: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging(app_name: str = "flowcraft", level: str = "INFO", log_to_files: bool = True):
    """
    Setup logging with console and file handlers.

    Creates three log files:
    - error.log: Only ERROR and CRITICAL messages
    - debug.log: All DEBUG and above messages
    - flow_api.log: Requests and responses exchanged with the Meta Graph flows API
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # ═══════════════════════════════════════════════════════════
    # Console Handler - with colors
    # ═══════════════════════════════════════════════════════════
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(ColoredFormatter('%(levelname)s | %(name)s | %(message)s'))
    root_logger.addHandler(console_handler)

    if log_to_files:
        LOGS_DIR.mkdir(exist_ok=True)

        root_logger.addHandler(_rotating_handler(
            ERROR_LOG_FILE,
            logging.ERROR,
            '%(asctime)s | %(levelname)s | %(name)s | %(filename)s:%(lineno)d | %(message)s',
            max_mb=10,
        ))
        root_logger.addHandler(_rotating_handler(
            DEBUG_LOG_FILE,
            logging.DEBUG,
            '%(asctime)s | %(levelname)-8s | %(name)-30s | %(filename)s:%(lineno)d | %(message)s',
            max_mb=20,
        ))

        # Only attach to the Graph API logger
        flow_api_logger = logging.getLogger(FLOW_API_LOGGER)
        flow_api_logger.addHandler(_rotating_handler(
            FLOW_API_LOG_FILE,
            logging.DEBUG,
            '%(asctime)s | %(levelname)-8s | %(message)s',
            max_mb=20,
        ))
        flow_api_logger.setLevel(logging.DEBUG)
        flow_api_logger.propagate = True  # Also send to root handlers

    logger = logging.getLogger(__name__)
    logger.info(f"{'='*60}")
    logger.info(f"Logging initialized for {app_name}")
    if log_to_files:
        logger.info(f"Log directory: {LOGS_DIR}")
    logger.info(f"{'='*60}")

    return root_logger


def get_flow_api_logger():
    """Get logger specifically for Meta Graph flow API traffic"""
    return logging.getLogger(FLOW_API_LOGGER)


# ═══════════════════════════════════════════════════════════
# Helper functions for detailed logging
# ═══════════════════════════════════════════════════════════

def _mask(key: str, value):
    if key.lower() in SENSITIVE_KEYS:
        return '***HIDDEN***'
    return value


def log_api_request(logger, method: str, endpoint: str, data: dict = None, headers: dict = None):
    """Log outgoing API request details"""
    logger.debug(f"{'─'*60}")
    logger.debug(f"API REQUEST: {method} {endpoint}")
    if headers:
        logger.debug(f"Headers: { {k: _mask(k, v) for k, v in headers.items()} }")
    if data:
        logger.debug(f"Request Data: {data}")


def log_api_response(logger, status_code: int, response_data=None, error: Exception = None):
    """Log API response details"""
    logger.debug(f"API RESPONSE: Status {status_code}")
    if error:
        logger.error(f"Error: {error} ({type(error).__name__})")
    else:
        logger.debug(f"Response Data: {response_data}")
    logger.debug(f"{'─'*60}")
