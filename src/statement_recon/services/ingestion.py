"""
Ingestion pipeline: parse a statement file, drop duplicates, store the rest.
"""

from pathlib import Path
from threading import Event
from typing import Callable, Optional
import logging

from sqlalchemy.orm import sessionmaker

from ..config import ReconConfig
from ..models.reconciliation import DuplicatePolicy, DuplicateReport, IngestionResult
from ..models.statement import ParseResult, SourceFormat
from ..parsers.ocr_adapter import OcrEngine
from ..parsers.statement_parser import StatementParser
from ..storage.database import session_scope
from ..storage.locks import AccountLockRegistry, account_locks
from ..storage.object_store import LocalObjectStorage, ObjectStorage, storage_path
from ..storage.repository import StatementRepository
from ..utils.exceptions import InputFormatError, ParseCancelled
from .dedup import DeduplicationFilter
from .reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

DuplicateDecider = Callable[[DuplicateReport], DuplicatePolicy]


class IngestionService:
    """
    Imports statement files into an account.

    Parsing happens first and outside any transaction. Duplicate detection
    and the insert then run as one transaction under the account lock, so
    a failed or cancelled parse commits nothing and two concurrent imports
    of the same file cannot both insert it.
    """

    def __init__(
        self,
        config: ReconConfig,
        session_factory: sessionmaker,
        storage: Optional[ObjectStorage] = None,
        ocr_engine: Optional[OcrEngine] = None,
        locks: AccountLockRegistry = account_locks,
    ):
        """
        Initialize the service.

        Args:
            config: Application configuration
            session_factory: Factory for database sessions
            storage: Object store for the uploaded file; built from config when omitted
            ocr_engine: Recognition engine for scanned statements
            locks: Per-account lock registry
        """
        self.config = config
        self.session_factory = session_factory
        self.parser = StatementParser(config)
        self.ocr_engine = ocr_engine
        self.locks = locks
        self.reconciliation = ReconciliationService(config, session_factory, locks)

        if storage is None and config.ingestion.storage_root:
            storage = LocalObjectStorage(
                Path(config.ingestion.storage_root), config.ingestion.public_base_url
            )
        self.storage = storage

    def parse_file(
        self,
        content: bytes,
        filename: str,
        currency: Optional[str] = None,
        year: Optional[int] = None,
        source_format: Optional[SourceFormat] = None,
        cancel_event: Optional[Event] = None,
    ) -> ParseResult:
        """Parse a file without touching the database."""
        source_format = source_format or SourceFormat.from_filename(filename)
        return self.parser.parse(
            content,
            source_format,
            currency=currency,
            year=year,
            cancel_event=cancel_event,
            ocr_engine=self.ocr_engine,
            filename=filename,
        )

    def ingest(
        self,
        account_id: str,
        content: bytes,
        filename: str,
        year: Optional[int] = None,
        source_format: Optional[SourceFormat] = None,
        duplicate_policy: Optional[DuplicatePolicy] = None,
        decide_duplicates: Optional[DuplicateDecider] = None,
        cancel_event: Optional[Event] = None,
    ) -> IngestionResult:
        """
        Import one statement file into an account.

        Args:
            account_id: Bank account the statement belongs to
            content: Raw file bytes
            filename: Original file name (used for format detection and storage)
            year: Statement year for sources whose dates omit it
            source_format: Override format detection
            duplicate_policy: Policy when duplicates are found; config default if omitted
            decide_duplicates: Operator callback consulted when duplicates are found
            cancel_event: Set to abort before anything is stored

        Returns:
            Ingestion result; inserted_count may be zero

        Raises:
            NotFoundError: If the account does not exist
            InputFormatError: On any file-level problem, including cancellation
        """
        with session_scope(self.session_factory) as session:
            account = StatementRepository(session).get_account(account_id)

        result = self.parse_file(
            content,
            filename,
            currency=account.currency,
            year=year,
            source_format=source_format,
            cancel_event=cancel_event,
        )
        if not result.lines:
            raise InputFormatError(
                f"No transactions found in {filename} "
                f"({result.stats.rows_seen} data rows, {result.stats.skipped_rows} skipped)"
            )
        self._check_cancelled(cancel_event, filename)

        file_url = None
        if self.storage is not None:
            file_url = self.storage.upload(storage_path(account_id, filename, content), content)

        with self.locks.hold(account_id):
            with session_scope(self.session_factory) as session:
                repo = StatementRepository(session)
                repo.get_account(account_id, for_update=True)

                report = DeduplicationFilter(repo).check(account_id, result.lines)
                policy = self._policy(report, duplicate_policy, decide_duplicates)
                to_insert = report.resolve(policy)
                self._check_cancelled(cancel_event, filename)

                ingestion = IngestionResult(
                    parse_result=result,
                    duplicate_report=report,
                    duplicate_policy=policy,
                    file_url=file_url,
                )
                if to_insert:
                    upload = repo.create_upload(
                        account_id, filename, result, len(to_insert), file_url
                    )
                    ingestion.upload_id = upload.id
                    ingestion.inserted_count = repo.insert_lines(account_id, upload.id, to_insert)
                    logger.info(
                        f"Inserted {ingestion.inserted_count} lines from {filename} "
                        f"into {account_id} (upload {upload.id})"
                    )
                else:
                    logger.info(f"{filename}: zero new rows for {account_id}")

            if ingestion.inserted_count and self.config.matching.run_after_ingest:
                ingestion.match_result = self.reconciliation.auto_match(account_id)

        return ingestion

    def _policy(
        self,
        report: DuplicateReport,
        explicit: Optional[DuplicatePolicy],
        decide: Optional[DuplicateDecider],
    ) -> DuplicatePolicy:
        if explicit is not None:
            return explicit
        if report.has_duplicates and decide is not None:
            return decide(report)
        return DuplicatePolicy(self.config.ingestion.duplicate_policy)

    @staticmethod
    def _check_cancelled(cancel_event: Optional[Event], filename: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ParseCancelled(f"Import of {filename} was cancelled; nothing was stored")
