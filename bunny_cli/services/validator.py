"""Value coercion and required-field validation for import records."""

import re
import logging
from typing import Any, List, Optional
from datetime import date, datetime, timezone

from dateutil.parser import isoparse

from ..models.record import MappedRecord, TransformOutcome

logger = logging.getLogger(__name__)


DATE_FORMAT = "%Y-%m-%d"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def is_blank(value: Any) -> bool:
    """None or a string that is empty after trimming."""
    return value is None or (isinstance(value, str) and value.strip() == "")


def parse_bool(value: Any) -> Optional[bool]:
    """True iff the trimmed lower-cased value is "true" or "1"; blank is None."""
    if is_blank(value):
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1")


def parse_int(value: Any) -> Optional[int]:
    """
    Parse the leading integer of a value, ignoring thousands separators.

    "1,200" -> 1200, "30 days" -> 30, "abc" -> None.
    """
    if is_blank(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value).replace(",", ""))
    return int(match.group(1)) if match else None


def parse_amount(value: Any) -> Optional[float]:
    """Parse the leading decimal number of a value, ignoring thousands separators."""
    if is_blank(value):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _LEADING_FLOAT.match(str(value).replace(",", ""))
    return float(match.group(1)) if match else None


def parse_lenient_date(value: Any) -> Optional[date]:
    """
    Parse an ISO date, retrying once with a midnight time appended.

    Returns None when neither form parses.
    """
    if is_blank(value):
        return None
    text = str(value).strip()
    for candidate in (text, f"{text}T00:00:00"):
        try:
            return isoparse(candidate).date()
        except (ValueError, OverflowError):
            continue
    logger.debug(f"Unparseable date: {text}")
    return None


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def epoch_to_iso(timestamp: Optional[int]) -> Optional[str]:
    """Unix seconds to an ISO-8601 UTC timestamp with milliseconds."""
    if not timestamp:
        return None
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class RecordValidator:
    """
    Second-pass validation of mapped records.

    Produces the records that may be submitted and a parallel skipped list;
    skipped records never block the rest of the batch.
    """

    ACCOUNT_REFERENCE_MISSING = "Missing required field - must have either accountId or accountCode"
    FIRST_NAME_MISSING = "Missing required field - firstName cannot be blank"

    @staticmethod
    def contact_label(record: MappedRecord) -> str:
        attributes = record.attributes
        full_name = f"{attributes.get('firstName') or ''} {attributes.get('lastName') or ''}".strip()
        return attributes.get("email") or full_name or f"Row {record.row_number}"

    def validate_contacts(self, records: List[MappedRecord]) -> TransformOutcome:
        """
        Check contact requirements.

        A contact needs a firstName and one of accountId or accountCode. When
        both account references are present, accountCode is discarded.
        """
        outcome = TransformOutcome()

        for record in records:
            attributes = record.attributes

            if not attributes.get("accountId") and not attributes.get("accountCode"):
                outcome.skip(self.contact_label(record), self.ACCOUNT_REFERENCE_MISSING, record.row_number)
                continue

            if is_blank(attributes.get("firstName")):
                outcome.skip(self.contact_label(record), self.FIRST_NAME_MISSING, record.row_number)
                continue

            if attributes.get("accountId") and attributes.get("accountCode"):
                attributes.pop("accountCode")

            outcome.records.append(record)

        if outcome.skipped:
            logger.warning(f"Skipped {len(outcome.skipped)} contacts with missing required fields")
        return outcome
