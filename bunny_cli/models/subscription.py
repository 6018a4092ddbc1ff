"""Subscription attributes sent to the subscriptionCreate mutation."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None."""
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class PriceTier:
    """A tier supplied with its start only; the platform derives the end."""
    starts: int
    price: float

    def to_dict(self) -> Dict[str, Any]:
        return {"starts": self.starts, "price": self.price}


@dataclass
class SubscriptionCharge:
    """A price list charge override on a subscription."""
    code: str
    quantity: Optional[int] = None
    price: Optional[float] = None
    price_tiers: List[PriceTier] = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @property
    def is_excluded(self) -> bool:
        """Sentinel codes meaning the source had no matching charge."""
        return self.code.startswith("NOT_FOUND") or self.code == "DISCOUNT_REQUIRED"

    def to_dict(self) -> Dict[str, Any]:
        data = _compact({
            "code": self.code,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "quantity": self.quantity,
            "price": self.price,
        })
        if self.price_tiers:
            data["priceTiers"] = [t.to_dict() for t in self.price_tiers]
        return data


@dataclass
class SubscriptionDiscount:
    """A fixed-amount discount on a subscription."""
    code: str
    price: float
    name: Optional[str] = None
    quantity: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "code": self.code,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "startDate": self.start_date,
            "endDate": self.end_date,
        })


@dataclass
class BillingContact:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
        })


@dataclass
class InlineAccount:
    """An account created together with its first subscription."""
    code: Optional[str] = None
    name: Optional[str] = None
    tax_number: Optional[str] = None
    billing_street: Optional[str] = None
    billing_city: Optional[str] = None
    billing_state: Optional[str] = None
    billing_zip: Optional[str] = None
    billing_country: Optional[str] = None
    shipping_street: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_zip: Optional[str] = None
    shipping_country: Optional[str] = None
    billing_contact: Optional[BillingContact] = None
    emails_enabled: Optional[bool] = None
    net_payment_days: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = _compact({
            "code": self.code,
            "name": self.name,
            "taxNumber": self.tax_number,
            "billingStreet": self.billing_street,
            "billingCity": self.billing_city,
            "billingState": self.billing_state,
            "billingZip": self.billing_zip,
            "billingCountry": self.billing_country,
            "shippingStreet": self.shipping_street,
            "shippingCity": self.shipping_city,
            "shippingState": self.shipping_state,
            "shippingZip": self.shipping_zip,
            "shippingCountry": self.shipping_country,
            "emailsEnabled": self.emails_enabled,
            "netPaymentDays": self.net_payment_days,
        })
        if self.billing_contact:
            data["billingContact"] = self.billing_contact.to_dict()
        return data


@dataclass
class SubscriptionAttributes:
    """
    Attributes for one subscriptionCreate call.

    Exactly one of account_id (an account created earlier in the run) and
    account (created inline) is set.
    """
    price_list_code: str
    start_date: str
    end_date: Optional[str] = None
    evergreen: bool = False
    trial: bool = False
    trial_start_date: Optional[str] = None
    tenant_code: Optional[str] = None
    tenant_name: Optional[str] = None
    account_id: Optional[str] = None
    account: Optional[InlineAccount] = None
    charges: List[SubscriptionCharge] = field(default_factory=list)
    discounts: List[SubscriptionDiscount] = field(default_factory=list)
    source_identifier: Optional[str] = None  # not sent

    @property
    def identifier(self) -> str:
        """Human-readable label for diagnostics."""
        if self.account and self.account.name:
            return self.account.name
        return self.account_id or self.source_identifier or self.price_list_code

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "priceListCode": self.price_list_code,
            "trial": self.trial,
            "evergreen": self.evergreen,
            "startDate": self.start_date,
        }
        if self.end_date:
            data["endDate"] = self.end_date
        if self.trial_start_date:
            data["trialStartDate"] = self.trial_start_date
        if self.tenant_code or self.tenant_name:
            data["tenant"] = _compact({"code": self.tenant_code, "name": self.tenant_name})
        if self.account_id:
            data["accountId"] = self.account_id
        elif self.account:
            data["account"] = self.account.to_dict()
        data["priceListCharges"] = [c.to_dict() for c in self.charges]
        data["discounts"] = [d.to_dict() for d in self.discounts]
        return data
