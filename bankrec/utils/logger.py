"""Logging configuration and utilities for the statement import system."""

import logging
import os
from typing import List, Optional

from bankrec.config.settings import LOG_LEVEL, LOG_FORMAT, LOGS_DIR
from bankrec.utils.exceptions import StatementError


def _handlers_for(log_path: str) -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler(), logging.FileHandler(log_path)]
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: str = LOG_LEVEL,
    logs_dir: str = LOGS_DIR
) -> logging.Logger:
    """Configure a logger that writes to the console and to ``logs_dir``.

    Calling it again for the same name replaces the earlier handlers.

    Args:
        name: Logger name.
        log_file: Log file name; ``<name>.log`` when omitted.
        level: Level name; unknown names fall back to INFO.
        logs_dir: Directory that receives the log file.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    os.makedirs(logs_dir, exist_ok=True)
    for handler in _handlers_for(os.path.join(logs_dir, log_file or f"{name}.log")):
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class ImportLogger:
    """Audit trail of one statement import, written to ``import.<task_id>.log``."""

    def __init__(self, task_id: str, logs_dir: str = LOGS_DIR) -> None:
        self.task_id = task_id
        self.logger = setup_logger(f"import.{task_id}", logs_dir=logs_dir)

    def log_start(self, source: str, bank_account_id: str) -> None:
        self.logger.info(f"Import {self.task_id}: reading {source} for account {bank_account_id}")

    def log_imported(self, upload_id: int, transaction_count: int, period: str) -> None:
        """Record the upload that now holds the statement.

        Args:
            upload_id: Identifier of the persisted statement upload.
            transaction_count: Number of statement lines written.
            period: Statement period label.
        """
        self.logger.info(
            f"Import {self.task_id}: upload {upload_id} holds {transaction_count} "
            f"unmatched lines for {period}"
        )

    def log_failure(self, error: StatementError, retry_in: Optional[int] = None) -> None:
        """Record a typed failure with its diagnostics.

        Args:
            error: The failure; its kind and diagnostics are logged, not a traceback.
            retry_in: Seconds until the next attempt, when the import will be retried.
        """
        outcome = f"retrying in {retry_in}s" if retry_in is not None else "giving up"
        level = logging.WARNING if retry_in is not None else logging.ERROR
        self.logger.log(
            level,
            f"Import {self.task_id}: {error.kind} ({outcome}): {error.message} {error.diagnostics}",
        )

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
