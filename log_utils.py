import logging
from logging.handlers import RotatingFileHandler
import os
from typing import List, Optional

# Resolved once at import; tests patch the module attribute directly.
LOG_FILE = os.getenv("ENGINE_LOG_FILE", os.path.join("data", "logs", "engine.log"))
LOG_LEVEL = os.getenv("ENGINE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _handlers() -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT)
    directory = os.path.dirname(LOG_FILE)
    if directory:
        os.makedirs(directory, exist_ok=True)
    # Rotating file handler keeps last 5 logs of ~1MB each
    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5)
    console_handler = logging.StreamHandler()
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
    return [file_handler, console_handler]


def setup_logger(level: Optional[str] = None) -> logging.Logger:
    """Configure the root logger with console and rotating file output.

    Engine modules log through ``logging.getLogger(__name__)`` and propagate
    to the root, so the command line entry point calls this once.  Repeated
    calls only adjust the level.
    """
    root = logging.getLogger()
    resolved = (level or LOG_LEVEL).upper()
    root.setLevel(getattr(logging, resolved, logging.INFO))
    if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        for handler in _handlers():
            root.addHandler(handler)
    # python-binance and urllib3 are chatty at INFO.
    for noisy in ("urllib3", "binance"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return root


def read_logs(tail: int = 100, symbol: Optional[str] = None) -> str:
    """Return the last ``tail`` lines from the log file.

    ``symbol`` keeps only lines mentioning that symbol.  A missing log file
    yields an empty string; a non-positive ``tail`` returns every line.
    """
    if not os.path.exists(LOG_FILE):
        return ""
    with open(LOG_FILE, "r") as f:
        lines = f.readlines()
    if symbol:
        lines = [line for line in lines if symbol.upper() in line]
    if tail <= 0:
        return "".join(lines)
    return "".join(lines[-tail:])
