import logging
import os
from logging.handlers import RotatingFileHandler

import bittensor as bt

EVENTS_LEVEL_NUM = 38
DEFAULT_LOG_BACKUP_COUNT = 10
EVENTS_LOGGER_NAME = "validator_runner.event"
VALIDATOR_OUTPUT_LOGGER_NAME = "validator_runner.validator_output"

# Spinner frames and periodic status lines emitted by solana-test-validator on its terminal.
_VALIDATOR_NOISE_PREFIXES = (
    "⠁", "⠂", "⠄", "⡀", "⢀", "⠠", "⠐", "⠈",
    "Processed Slot:",
    "Finalized Slot:",
)


class _ValidatorNoiseFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        stripped = message.strip()
        if not stripped:
            return False
        return not stripped.startswith(_VALIDATOR_NOISE_PREFIXES)


_validator_noise_filter = _ValidatorNoiseFilter()


def validator_output_logger() -> logging.Logger:
    """Logger that receives forwarded validator stdout/stderr lines."""
    logger = logging.getLogger(VALIDATOR_OUTPUT_LOGGER_NAME)
    if _validator_noise_filter not in logger.filters:
        logger.addFilter(_validator_noise_filter)
    return logger


def configure_logging(level: str = "INFO") -> None:
    level = (level or "INFO").upper()
    if level == "TRACE":
        bt.logging.set_trace(True)
    elif level == "DEBUG":
        bt.logging.set_debug(True)
    elif level in ("WARNING", "WARN", "ERROR"):
        bt.logging.set_warning()
    else:
        bt.logging.set_info()


def setup_events_logger(full_path, events_retention_size):
    logging.addLevelName(EVENTS_LEVEL_NUM, "EVENT")

    logger = logging.getLogger(EVENTS_LOGGER_NAME)
    logger.setLevel(EVENTS_LEVEL_NUM)

    def event(self, message, *args, **kws):
        if self.isEnabledFor(EVENTS_LEVEL_NUM):
            self._log(EVENTS_LEVEL_NUM, message, args, **kws)

    logging.Logger.event = event

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    os.makedirs(full_path, exist_ok=True)
    file_handler = RotatingFileHandler(
        os.path.join(full_path, "runner_events.log"),
        maxBytes=events_retention_size,
        backupCount=DEFAULT_LOG_BACKUP_COUNT,
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(EVENTS_LEVEL_NUM)
    logger.addHandler(file_handler)

    return logger


def log_event(message: str) -> None:
    """Write to the events log when one has been set up; no-op otherwise."""
    logger = logging.getLogger(EVENTS_LOGGER_NAME)
    if logger.handlers and logger.isEnabledFor(EVENTS_LEVEL_NUM):
        logger.log(EVENTS_LEVEL_NUM, message)
