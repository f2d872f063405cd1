"""Celery application and background tasks for statement import and matching."""

from typing import Any, Dict, Optional

from celery import Celery

from bankrec.api.processing_api import StatementProcessingAPI
from bankrec.config.settings import (
    CELERY_ACCEPT_CONTENT,
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    CELERY_RESULT_SERIALIZER,
    CELERY_TASK_SERIALIZER,
    CELERY_TIMEZONE,
    MAX_RETRIES,
    Settings,
)
from bankrec.reconciliation.engine import ReconciliationEngine
from bankrec.storage.repository import StatementRepository
from bankrec.utils.exceptions import PersistenceFailure, StatementError
from bankrec.utils.logger import ImportLogger, setup_logger

celery_app = Celery(
    "bankrec",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    task_serializer=CELERY_TASK_SERIALIZER,
    result_serializer=CELERY_RESULT_SERIALIZER,
    accept_content=CELERY_ACCEPT_CONTENT,
    timezone=CELERY_TIMEZONE,
)

celery_app.conf.update(
    task_routes={
        "import_statement": {"queue": "statement_import"},
        "auto_match": {"queue": "reconciliation"},
    },
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,
)

logger = setup_logger("celery_tasks")


@celery_app.task(bind=True, name="import_statement", max_retries=MAX_RETRIES)
def import_statement_task(
    self,
    file_path: str,
    bank_account_id: str,
    currency: Optional[str] = None,
    media_type: Optional[str] = None,
    uploaded_by: Optional[str] = None
) -> Dict[str, Any]:
    """Parse a statement file and persist it.

    Parsing failures are terminal and reported in the result. Only
    persistence failures are retried.

    Args:
        self: Celery task instance.
        file_path: Path to the statement document.
        bank_account_id: Account the statement belongs to.
        currency: Account currency; ``DEFAULT_CURRENCY`` when omitted.
        media_type: Declared media type; guessed from the extension when omitted.
        uploaded_by: User who requested the import.

    Returns:
        Dictionary with import results.
    """
    task_id = self.request.id or "local"
    import_logger = ImportLogger(task_id)
    settings = Settings.from_env()

    try:
        import_logger.log_start(file_path, bank_account_id)
        api = StatementProcessingAPI(settings)
        imported = api.import_file(file_path, bank_account_id, currency, media_type, uploaded_by)
        summary = imported["summary"]
        import_logger.log_imported(imported["upload_id"], summary.transaction_count, summary.period)

        return {
            "success": True,
            "upload_id": imported["upload_id"],
            "transaction_count": summary.transaction_count,
            "period": summary.period,
            "task_id": task_id,
        }

    except PersistenceFailure as e:
        if self.request.retries < settings.max_retries:
            countdown = settings.get_retry_delay(self.request.retries + 1)
            import_logger.log_failure(e, retry_in=countdown)
            raise self.retry(countdown=countdown, exc=e)
        import_logger.log_failure(e)
        return _failure(e, task_id, self.request.retries)

    except StatementError as e:
        import_logger.log_failure(e)
        return _failure(e, task_id, self.request.retries)

    finally:
        import_logger.close()


@celery_app.task(bind=True, name="auto_match")
def auto_match_task(self, bank_account_id: str) -> Dict[str, Any]:
    """Propose ledger matches for an account's unmatched lines."""
    settings = Settings.from_env()
    engine = ReconciliationEngine(StatementRepository(settings.database_url), settings=settings)
    try:
        applied = engine.auto_match(bank_account_id)
    except StatementError as e:
        logger.error(f"Auto-match failed for account {bank_account_id}: {e.message}")
        return _failure(e, self.request.id, self.request.retries)

    return {
        "success": True,
        "suggested": len(applied),
        "stats": engine.reconciliation_stats(bank_account_id),
        "task_id": self.request.id,
    }


def _failure(error: StatementError, task_id: Optional[str], retries: int) -> Dict[str, Any]:
    return {
        "success": False,
        "error_kind": error.kind,
        "error": error.message,
        "diagnostics": error.diagnostics,
        "task_id": task_id,
        "retries": retries,
    }


def get_task_status(task_id: str) -> Dict[str, Any]:
    """Get status of a Celery task.

    Args:
        task_id: ID of the task to check.

    Returns:
        Dictionary with task status information.
    """
    result = celery_app.AsyncResult(task_id)
    return {
        "task_id": task_id,
        "status": result.status,
        "result": result.result if result.ready() else None,
        "ready": result.ready(),
        "successful": result.successful(),
        "failed": result.failed(),
    }
