import logging
import sys
from pathlib import Path

LOGGER_NAME = "k6_runner"
RUN_LOG_NAME = "run.log"

_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_console_handler = None


def get_logger(name: str = "") -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)


def setup_console(level: int = logging.INFO) -> logging.Logger:
    """Console output is bare messages, the status markers carry the meaning"""
    global _console_handler
    logger = get_logger()
    logger.setLevel(level)
    logger.propagate = False
    # rebind to the current stdout on every call
    if _console_handler is not None:
        logger.removeHandler(_console_handler)
    _console_handler = logging.StreamHandler(sys.stdout)
    _console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(_console_handler)
    return logger


def attach_run_log(results_dir: Path) -> logging.FileHandler:
    """Mirror everything logged during the run into <results_dir>/run.log"""
    handler = logging.FileHandler(Path(results_dir) / RUN_LOG_NAME, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    get_logger().addHandler(handler)
    return handler


def detach_run_log(handler: logging.FileHandler) -> None:
    get_logger().removeHandler(handler)
    handler.close()
