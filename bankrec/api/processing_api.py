"""Programmatic interface for importing statements and tracking import requests."""

import asyncio
import os
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from bankrec.config.settings import Settings
from bankrec.statement_processor.pipeline import parse_statement
from bankrec.statement_processor.summarizer import StatementSummary
from bankrec.storage.repository import StatementRepository
from bankrec.utils.exceptions import StatementError
from bankrec.utils.logger import get_logger
from bankrec.utils.validators import media_type_from_path, validate_file_path


class ProcessingStatus(Enum):
    """Processing status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProcessingRequest:
    """Import request data structure."""
    file_path: str
    bank_account_id: str
    currency: Optional[str] = None
    media_type: Optional[str] = None
    uploaded_by: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class ProcessingResult:
    """Import result data structure."""
    request_id: str
    status: ProcessingStatus
    upload_id: Optional[int] = None
    transaction_count: int = 0
    period: Optional[str] = None
    opening_balance: Optional[str] = None
    closing_balance: Optional[str] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    processing_time: Optional[float] = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class StatementProcessingAPI:
    """Parses statement files and persists them, keeping a record of each request."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        repository: Optional[StatementRepository] = None
    ) -> None:
        """Initialize the processing API.

        Args:
            settings: Optional settings; environment defaults otherwise.
            repository: Statement persistence; built from ``settings.database_url``
                when omitted.
        """
        self.settings = settings or Settings()
        self.repository = repository or StatementRepository(self.settings.database_url)
        self.logger = get_logger(self.__class__.__name__)

        self.results: Dict[str, ProcessingResult] = {}

    def parse_file(
        self,
        file_path: str,
        currency: Optional[str] = None,
        media_type: Optional[str] = None
    ) -> StatementSummary:
        """Read and parse a statement file without persisting it.

        Raises:
            StatementError: If the file is unreadable or cannot be parsed.
        """
        validate_file_path(file_path)
        media_type = media_type or media_type_from_path(file_path)
        with open(file_path, "rb") as f:
            document = f.read()
        return parse_statement(
            document,
            media_type,
            currency or self.settings.default_currency,
            self.settings,
        )

    def import_file(
        self,
        file_path: str,
        bank_account_id: str,
        currency: Optional[str] = None,
        media_type: Optional[str] = None,
        uploaded_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """Parse a statement file and persist it atomically.

        Returns:
            Dictionary with the upload id and the parsed summary.

        Raises:
            StatementError: Parsing failures, or PersistenceFailure when the
                import could not be committed.
        """
        summary = self.parse_file(file_path, currency, media_type)
        upload_id = self.repository.import_statement(
            summary,
            bank_account_id,
            source_filename=os.path.basename(file_path),
            uploaded_by=uploaded_by,
        )
        return {"upload_id": upload_id, "summary": summary}

    def process_request(self, request: ProcessingRequest) -> ProcessingResult:
        """Run an import request, reporting failures in the result instead of raising."""
        start_time = time.time()
        result = ProcessingResult(request_id=request.id, status=ProcessingStatus.PROCESSING)
        self.results[request.id] = result
        self.logger.info(f"Starting import request {request.id} for {request.file_path}")

        try:
            imported = self.import_file(
                request.file_path,
                request.bank_account_id,
                request.currency,
                request.media_type,
                request.uploaded_by,
            )
            summary = imported["summary"]
            result.status = ProcessingStatus.COMPLETED
            result.upload_id = imported["upload_id"]
            result.transaction_count = summary.transaction_count
            result.period = summary.period
            result.opening_balance = str(summary.opening_balance)
            result.closing_balance = str(summary.closing_balance)
            self.logger.info(f"Import request {request.id} completed: upload {result.upload_id}")

        except StatementError as e:
            self.logger.error(f"Import request {request.id} failed ({e.kind}): {e.message}")
            result.status = ProcessingStatus.FAILED
            result.error_kind = e.kind
            result.error_message = e.message
            result.diagnostics = e.diagnostics

        result.processing_time = time.time() - start_time
        result.completed_at = datetime.now()
        return result

    async def submit_request(self, request: ProcessingRequest) -> ProcessingResult:
        """Run an import request in the default executor."""
        self.results[request.id] = ProcessingResult(
            request_id=request.id, status=ProcessingStatus.PENDING
        )
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.process_request, request)

    def get_processing_status(self, request_id: str) -> Optional[ProcessingResult]:
        """Get processing status for a request."""
        return self.results.get(request_id)

    def list_processing_requests(
        self,
        status: Optional[ProcessingStatus] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[ProcessingResult]:
        """List processing requests, newest first."""
        results = list(self.results.values())
        if status:
            results = [r for r in results if r.status == status]
        results.sort(key=lambda x: x.created_at, reverse=True)
        return results[offset:offset + limit]

    def get_processing_statistics(self) -> Dict[str, Any]:
        """Get processing statistics."""
        all_results = list(self.results.values())

        status_counts = {}
        for status in ProcessingStatus:
            status_counts[status.value] = sum(1 for r in all_results if r.status == status)

        error_kinds: Dict[str, int] = {}
        for r in all_results:
            if r.error_kind:
                error_kinds[r.error_kind] = error_kinds.get(r.error_kind, 0) + 1

        return {
            "total_requests": len(all_results),
            "status_distribution": status_counts,
            "error_kinds": error_kinds,
            "transactions_imported": sum(r.transaction_count for r in all_results),
            "success_rate": (
                status_counts[ProcessingStatus.COMPLETED.value] / max(len(all_results), 1) * 100
            ),
        }
