"""Builds subscriptionCreate attributes from one subscription CSV row."""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional
from datetime import date

from .indexed_groups import GroupFields, charge_codes, iter_groups, iter_tiers
from .validator import format_date, is_blank, parse_amount, parse_bool, parse_int, parse_lenient_date
from ..models.migration import AccountCache
from ..models.record import SourceRecord
from ..models.schema import PricingModel
from ..models.subscription import (
    BillingContact,
    InlineAccount,
    PriceTier,
    SubscriptionAttributes,
    SubscriptionCharge,
    SubscriptionDiscount,
)

logger = logging.getLogger(__name__)


TIERED_MODELS = (PricingModel.TIERED.value, PricingModel.VOLUME.value)


class InvalidRow(Exception):
    """Raised inside the builder when a row must be rejected as a whole."""


def subscription_identifier(record: SourceRecord) -> str:
    return record.get("Account Name") or record.get("Account ID") or f"Row {record.row_number}"


class SubscriptionRowBuilder:
    """
    Turns subscription CSV rows into SubscriptionAttributes.

    Rows are rejected as a whole (build returns None) for unparseable or
    inverted dates and for negative charge amounts or tier prices. Rows whose
    `Account ID` was already imported in this run reference that account
    instead of creating it again.
    """

    def __init__(self, account_cache: AccountCache, today: Optional[date] = None):
        self.account_cache = account_cache
        self.today = today or date.today()
        self.last_rejection: Optional[str] = None

    def build(self, record: SourceRecord) -> Optional[SubscriptionAttributes]:
        """Build the attributes for one row, or None when the row is invalid."""
        self.last_rejection = None
        try:
            return self._build(record)
        except InvalidRow as e:
            self.last_rejection = str(e)
            logger.warning(
                f"Not importing subscription for {subscription_identifier(record)} "
                f"with price list {record.get('Price List Code')}: {e}"
            )
            return None

    def _build(self, record: SourceRecord) -> SubscriptionAttributes:
        row = record.data

        price_list_code = row.get("Price List Code")
        if is_blank(price_list_code):
            raise InvalidRow("Missing Price List Code")

        start = self._required_date(row.get("Start Date"), "Start Date")
        end = self._optional_date(row.get("End Date"), "End Date")
        if end is not None and end < start:
            raise InvalidRow("End date is before start date")

        attributes = SubscriptionAttributes(
            price_list_code=price_list_code,
            start_date=format_date(start),
            end_date=format_date(end) if end else None,
            evergreen=bool(parse_bool(row.get("Evergreen"))),
            tenant_code=row.get("Tenant Code"),
            tenant_name=row.get("Tenant Name"),
            source_identifier=subscription_identifier(record),
        )

        if not is_blank(row.get("Trial Start Date")) and start > self.today:
            trial_start = self._required_date(row.get("Trial Start Date"), "Trial Start Date")
            attributes.trial = True
            attributes.trial_start_date = format_date(trial_start)

        account_id = self.account_cache.get(row.get("Account ID"))
        if account_id:
            attributes.account_id = account_id
        else:
            attributes.account = self._inline_account(row)

        attributes.discounts = self._discounts(row)
        attributes.charges = self._charges(row)
        return attributes

    def _required_date(self, value: Any, label: str) -> date:
        if is_blank(value):
            raise InvalidRow(f"Missing {label}")
        parsed = parse_lenient_date(value)
        if parsed is None:
            raise InvalidRow(f"Invalid {label}: {value}")
        return parsed

    def _optional_date(self, value: Any, label: str) -> Optional[date]:
        if is_blank(value):
            return None
        return self._required_date(value, label)

    def _inline_account(self, row: Dict[str, Any]) -> InlineAccount:
        email = row.get("Billing Contact Email")
        return InlineAccount(
            code=row.get("Account Code"),
            name=row.get("Account Name"),
            tax_number=row.get("Tax Number"),
            billing_street=row.get("Address Line 1"),
            billing_city=row.get("City"),
            billing_state=row.get("State"),
            billing_zip=row.get("Postal Code"),
            billing_country=row.get("Country"),
            billing_contact=BillingContact(
                first_name=row.get("Billing Contact First Name"),
                last_name=row.get("Billing Contact Last Name"),
                email=email.strip() if isinstance(email, str) else email,
            ),
            emails_enabled=bool(parse_bool(row.get("Emails Enabled"))),
            net_payment_days=parse_int(row.get("Net Payment Days")),
        )

    def _discounts(self, row: Dict[str, Any]) -> List[SubscriptionDiscount]:
        discounts = []
        for index, fields in iter_groups(row, "Discount"):
            amount = parse_amount(fields.get("Amount"))
            if amount is None:
                raise InvalidRow(f"Invalid amount for discount {index}: {fields.get('Amount')}")

            start = self._optional_date(fields.get("Start Date"), f"Discount {index} Start Date")
            end = self._optional_date(fields.get("End Date"), f"Discount {index} End Date")
            discounts.append(SubscriptionDiscount(
                code=fields.get("Code"),
                name=fields.get("Name"),
                price=abs(amount),
                quantity=parse_int(fields.get("Quantity")),
                start_date=format_date(start) if start else None,
                end_date=format_date(end) if end else None,
            ))
        return discounts

    def _charges(self, row: Dict[str, Any]) -> List[SubscriptionCharge]:
        occurrences = Counter(charge_codes(row))
        charges = []

        for index, fields in iter_groups(row, "Charge"):
            charge = self._charge(index, fields, occurrences)
            if charge.is_excluded:
                logger.debug(f"Excluding charge {charge.code}")
                continue
            charges.append(charge)
        return charges

    def _charge(self, index: int, fields: GroupFields, occurrences: Counter) -> SubscriptionCharge:
        code = fields.get("Code")
        amount = parse_amount(fields.get("Amount"))
        if amount is not None and amount < 0:
            raise InvalidRow(f"Negative charge detected: {code} {amount}")

        charge = SubscriptionCharge(code=code)
        if charge.is_excluded:
            return charge

        if occurrences[code] > 1:
            start = self._required_date(fields.get("Effective Start Date"), f"Charge {index} Effective Start Date")
            end = self._required_date(fields.get("Effective End Date"), f"Charge {index} Effective End Date")
            charge.start_date = format_date(start)
            charge.end_date = format_date(end)

        if (fields.get("Type") or "").strip().lower() != "usage":
            quantity = parse_int(fields.get("Quantity"))
            charge.quantity = quantity if quantity and quantity > 0 else 1

        price_model = (fields.get("Price Model") or "").strip().lower()
        if price_model in TIERED_MODELS:
            charge.price_tiers = self._tiers(code, fields)
        else:
            if amount is None:
                raise InvalidRow(f"Invalid amount for charge {code}: {fields.get('Amount')}")
            charge.price = amount

        return charge

    def _tiers(self, code: str, fields: GroupFields) -> List[PriceTier]:
        tiers = []
        for _, tier, starts in iter_tiers(fields):
            price = parse_amount(tier.get("Price"))
            if price is None:
                raise InvalidRow(f"Invalid tier price for charge {code}: {tier.get('Price')}")
            if price < 0:
                raise InvalidRow(f"Negative price tier charge detected: {code} {price}")
            tiers.append(PriceTier(starts=starts, price=price))
        return tiers
