"""Whitelist mapping of source columns onto platform attributes."""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .validator import is_blank, parse_bool, parse_int
from ..models.record import MappedRecord, SourceRecord

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"


class MatchMode(str, Enum):
    """How a source column name is compared with the whitelist."""
    CASE_INSENSITIVE = "case_insensitive"  # trimmed, any case
    EXACT = "exact"  # trimmed, exact case


ACCOUNT_ATTRIBUTES: Dict[str, FieldType] = {
    "code": FieldType.STRING,
    "accountTypeId": FieldType.STRING,
    "industryId": FieldType.STRING,
    "employees": FieldType.INTEGER,
    "annualRevenue": FieldType.INTEGER,
    "name": FieldType.STRING,
    "billingStreet": FieldType.STRING,
    "billingCity": FieldType.STRING,
    "billingState": FieldType.STRING,
    "billingZip": FieldType.STRING,
    "billingCountry": FieldType.STRING,
    "billingContactId": FieldType.STRING,
    "shippingStreet": FieldType.STRING,
    "shippingCity": FieldType.STRING,
    "shippingState": FieldType.STRING,
    "shippingZip": FieldType.STRING,
    "shippingCountry": FieldType.STRING,
    "description": FieldType.STRING,
    "phone": FieldType.STRING,
    "fax": FieldType.STRING,
    "website": FieldType.STRING,
    "currencyId": FieldType.STRING,
    "taxNumber": FieldType.STRING,
    "groupId": FieldType.STRING,
    "netPaymentDays": FieldType.INTEGER,
    "draftInvoices": FieldType.BOOLEAN,
    "newQuoteBuilder": FieldType.BOOLEAN,
    "duns": FieldType.STRING,
    "timezone": FieldType.STRING,
    "ownerUserId": FieldType.STRING,
    "ipAddress": FieldType.STRING,
    "entityUseCode": FieldType.STRING,
    "linkedinUrl": FieldType.STRING,
    "invoiceTemplateId": FieldType.STRING,
    "entityId": FieldType.STRING,
    "emailsEnabled": FieldType.BOOLEAN,
    "disableDunning": FieldType.BOOLEAN,
    "consolidatedBilling": FieldType.BOOLEAN,
}

CONTACT_ATTRIBUTES: Dict[str, FieldType] = {
    "code": FieldType.STRING,
    "firstName": FieldType.STRING,
    "lastName": FieldType.STRING,
    "email": FieldType.STRING,
    "salutation": FieldType.STRING,
    "title": FieldType.STRING,
    "phone": FieldType.STRING,
    "mobile": FieldType.STRING,
    "mailingStreet": FieldType.STRING,
    "mailingCity": FieldType.STRING,
    "mailingZip": FieldType.STRING,
    "mailingState": FieldType.STRING,
    "mailingCountry": FieldType.STRING,
    "portalAccess": FieldType.BOOLEAN,
    "description": FieldType.STRING,
    "accountId": FieldType.STRING,
    "accountCode": FieldType.STRING,
    "campaignCode": FieldType.STRING,
    "linkedinUrl": FieldType.STRING,
}


class AttributeMapper:
    """
    Maps source rows onto a fixed attribute whitelist.

    Unknown columns are dropped. Blank values are omitted whatever their
    declared type, and rows that map to nothing are dropped.
    """

    def __init__(
        self,
        attributes: Dict[str, FieldType],
        match_mode: MatchMode,
        trim_values: bool = False
    ):
        """
        Initialize the mapper.

        Args:
            attributes: Whitelisted attribute name -> field type
            match_mode: Column name matching rule
            trim_values: Trim string values before storing them
        """
        self.attributes = attributes
        self.match_mode = match_mode
        self.trim_values = trim_values
        self._lookup = self._build_lookup()
        self._coercers: Dict[FieldType, Callable[[Any], Any]] = {
            FieldType.STRING: self._coerce_string,
            FieldType.BOOLEAN: parse_bool,
            FieldType.INTEGER: parse_int,
        }

    @classmethod
    def for_accounts(cls) -> "AttributeMapper":
        return cls(ACCOUNT_ATTRIBUTES, MatchMode.CASE_INSENSITIVE, trim_values=True)

    @classmethod
    def for_contacts(cls) -> "AttributeMapper":
        return cls(CONTACT_ATTRIBUTES, MatchMode.EXACT)

    def _build_lookup(self) -> Dict[str, str]:
        if self.match_mode == MatchMode.CASE_INSENSITIVE:
            return {name.lower(): name for name in self.attributes}
        return {name: name for name in self.attributes}

    def resolve(self, column: str) -> Optional[str]:
        """Whitelisted attribute name for a source column, or None."""
        key = column.strip()
        if self.match_mode == MatchMode.CASE_INSENSITIVE:
            key = key.lower()
        return self._lookup.get(key)

    def _coerce_string(self, value: Any) -> Any:
        if isinstance(value, str) and self.trim_values:
            return value.strip()
        return value

    def map_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Map one row; the result only holds whitelisted, non-blank attributes."""
        mapped: Dict[str, Any] = {}
        for column, value in row.items():
            name = self.resolve(column)
            if name is None or is_blank(value):
                continue
            coerced = self._coercers[self.attributes[name]](value)
            if coerced is not None:
                mapped[name] = coerced
        return mapped

    def map(self, records: Iterable[SourceRecord]) -> List[MappedRecord]:
        """Map every record, dropping the ones with no attributes left."""
        mapped = []
        for record in records:
            attributes = self.map_row(record.data)
            if not attributes:
                logger.debug(f"Row {record.row_number} has no mappable attributes")
                continue
            mapped.append(MappedRecord(row_number=record.row_number, attributes=attributes))
        return mapped
