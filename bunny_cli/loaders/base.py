"""Batch import executor shared by every loader."""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..client import TransportError
from ..models.record import BatchStatus, ImportBatchResult, RecordResult

logger = logging.getLogger(__name__)


SubmitFn = Callable[[Any], Optional[Dict[str, Any]]]
ProgressFn = Callable[[int, int], None]
ResultFn = Callable[[Any, RecordResult], None]


def describe_error(error: Any) -> str:
    """
    Turn any failure into a one-line message.

    Precedence: HTTP 500 body, plain string, object message, JSON dump.
    None yields "Unknown error".
    """
    if isinstance(error, TransportError):
        if error.status_code == 500:
            return f"Internal Server Error: {_server_error_detail(error.raw)}"
        error = error.raw

    if error is None:
        return "Unknown error"

    if isinstance(error, dict) and error.get("status") == 500:
        return f"Internal Server Error: {_server_error_detail(error)}"

    if isinstance(error, str):
        return error

    if isinstance(error, BaseException):
        message = getattr(error, "message", None) or str(error)
        return message or type(error).__name__

    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])

    text = json.dumps(error, default=str)
    return text if text not in ("{}", "null") else str(error)


def _server_error_detail(body: Any) -> str:
    """The `exception` of a 500 body; HTML and other text bodies are not echoed."""
    if isinstance(body, dict) and body.get("exception"):
        return str(body["exception"])
    return "unknown server error"


class BaseLoader:
    """
    Base class for loaders.

    Loaders submit transformed records to the target one at a time. The
    batch executor never stops on a failed record.
    """

    def __init__(self, dry_run: bool = False):
        """
        Initialize the loader.

        Args:
            dry_run: If True, report records as loaded without submitting them
        """
        self.dry_run = dry_run

    def load_batch(
        self,
        records: Iterable[Any],
        submit_one: SubmitFn,
        identify: Optional[Callable[[Any], str]] = None,
        total: Optional[int] = None,
        progress_callback: Optional[ProgressFn] = None,
        on_result: Optional[ResultFn] = None,
        validate_one: Optional[Callable[[Any], Any]] = None
    ) -> ImportBatchResult:
        """
        Submit every record in order and summarize the outcome.

        Args:
            records: Records to submit (any iterable, consumed once)
            submit_one: Submits one record and returns the created entity;
                raises on failure
            identify: Human-readable label for a record
            total: Record count for progress reporting (defaults to len(records))
            progress_callback: Called with (done, total) after every record
            on_result: Called with (record, result) after every record
            validate_one: Checks a record without submitting it; raises on
                failure. Runs in dry-run mode in place of submit_one

        Returns:
            ImportBatchResult with one entry per record
        """
        if total is None and hasattr(records, "__len__"):
            total = len(records)

        started_at = datetime.utcnow()
        results: List[RecordResult] = []
        success_count = 0
        error_count = 0

        for index, record in enumerate(records, start=1):
            identifier = self._identify(record, identify, index)

            try:
                if self.dry_run:
                    if validate_one:
                        validate_one(record)
                    entity = None
                else:
                    entity = submit_one(record)
                result = RecordResult(identifier=identifier, success=True, entity=entity)
                success_count += 1
            except Exception as e:
                message = describe_error(e)
                result = RecordResult(identifier=identifier, success=False, error=message)
                error_count += 1
                logger.error(f"Failed to import {identifier}: {message}")

            results.append(result)

            if on_result:
                on_result(record, result)
            if progress_callback:
                progress_callback(success_count + error_count, total or index)

        processed = success_count + error_count
        return ImportBatchResult(
            status=BatchStatus.classify(error_count, processed),
            success_count=success_count,
            error_count=error_count,
            total_count=processed,
            results=tuple(results),
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

    @staticmethod
    def _identify(record: Any, identify: Optional[Callable[[Any], str]], index: int) -> str:
        if identify is None:
            return f"Record {index}"
        try:
            return identify(record) or f"Record {index}"
        except (AttributeError, KeyError, TypeError):
            return f"Record {index}"
