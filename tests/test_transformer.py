"""Tests for the instance-to-instance and Stripe transformers."""

import pytest

from bunny_cli.exceptions import MissingResourceError
from bunny_cli.models.schema import INFINITE_TIER_END, BillingPeriod
from bunny_cli.services.stripe_transformer import (
    StripeProductTransformer,
    StripeSubscriptionTransformer,
    UnsupportedPrice,
    billing_period_for,
    cents_to_decimal,
    generate_code,
)
from bunny_cli.services.transformer import InstanceProductTransformer, build_tiers


def source_product(**overrides):
    product = {
        "name": "Widgets",
        "platformId": None,
        "features": [{"id": "f1", "name": "Seats", "code": "seats", "isUnit": True}],
        "plans": [{
            "code": "PRO",
            "name": "Pro",
            "isAvailableNow": True,
            "priceLists": [{
                "code": "PRO_M",
                "name": "Pro monthly",
                "periodMonths": 1,
                "charges": [
                    {
                        "code": "PRO_SEATS",
                        "chargeType": "RECURRING",
                        "pricingModel": "TIERED",
                        "price": 99,
                        "feature": {"code": "seats"},
                        "priceListChargeTiers": [{"starts": None, "price": 10}, {"starts": 11, "price": 8}],
                    },
                    {"code": "PRO_BASE", "chargeType": "ONE_TIME", "pricingModel": "FLAT", "price": 25},
                ],
            }],
        }],
    }
    product.update(overrides)
    return product


class TestBuildTiers:
    def test_contiguous_ends(self):
        tiers = build_tiers([{"starts": 1, "price": 5}, {"starts": 11, "price": 4}, {"starts": 51, "price": 3}])
        assert [(t.starts, t.ends) for t in tiers] == [(1, 10), (11, 50), (51, INFINITE_TIER_END)]

    def test_first_tier_defaults_to_one(self):
        tiers = build_tiers([{"price": 5}])
        assert (tiers[0].starts, tiers[0].ends) == (1, INFINITE_TIER_END)

    def test_empty(self):
        assert build_tiers([]) == []


@pytest.mark.parametrize("months,expected", [
    (1, BillingPeriod.MONTHLY),
    (3, BillingPeriod.QUARTERLY),
    (6, BillingPeriod.SEMI_ANNUAL),
    (12, BillingPeriod.ANNUAL),
    (2, None),
    (None, None),
    ("1", None),
])
def test_billing_period_from_months(months, expected):
    assert BillingPeriod.from_months(months) == expected


class TestInstanceProductTransformer:
    def test_uses_first_destination_platform(self):
        transformer = InstanceProductTransformer([{"id": "plat-1", "name": "Main"}, {"id": "plat-2"}])

        document = transformer.transform(source_product()).to_import_dict()
        product = document["products"][0]

        assert product["platformId"] == "plat-1"
        assert "platform_id" not in product
        assert product["features"][0]["kind"] == "quantity"

    def test_charges(self):
        document = InstanceProductTransformer([{"id": "plat-1"}]).transform(source_product()).to_import_dict()
        price_list = document["products"][0]["plans"][0]["price_lists"][0]
        tiered, flat = price_list["price_list_charges"]

        assert tiered["billing_period"] == "monthly"
        assert tiered["charge_type"] == "recurring"
        assert tiered["pricing_model"] == "tiered"
        assert tiered["feature_code"] == "seats"
        assert "price" not in tiered
        assert tiered["price_list_charge_tiers"] == [
            {"starts": 1, "ends": 10, "price": 10},
            {"starts": 11, "ends": INFINITE_TIER_END, "price": 8},
        ]
        assert flat["price"] == 25
        assert flat["charge_type"] == "one_time"

    def test_source_platform_is_kept(self):
        document = InstanceProductTransformer([]).transform(source_product(platformId="src-plat"))
        assert document.products[0].platform_id == "src-plat"

    def test_no_platforms(self):
        with pytest.raises(MissingResourceError):
            InstanceProductTransformer([]).transform(source_product())


def stripe_price(**overrides):
    price = {
        "id": "price_1",
        "active": True,
        "type": "recurring",
        "currency": "usd",
        "nickname": "Monthly",
        "billing_scheme": "per_unit",
        "unit_amount": 1000,
        "recurring": {"interval": "month", "interval_count": 1, "usage_type": "licensed"},
    }
    price.update(overrides)
    return price


def catalog(*prices, meters=None):
    return {
        "products": [{"id": "prod_1", "name": "Pro", "active": True, "prices": list(prices)}],
        "meters": meters or [],
        "features": [{"name": "SSO", "lookup_key": "sso"}],
    }


def only_charge(document):
    return document["products"][0]["plans"][0]["price_lists"][0]["price_list_charges"][0]


class TestStripeProductTransformer:
    def test_graduated_tiers(self):
        price = stripe_price(
            billing_scheme="tiered",
            tiers_mode="graduated",
            unit_amount=None,
            tiers=[{"up_to": 10, "unit_amount": 500}, {"up_to": None, "unit_amount": 300}],
        )

        document = StripeProductTransformer(catalog(price), "plat-1").transform().to_import_dict()
        charge = only_charge(document)

        assert charge["pricing_model"] == "tiered"
        assert charge["price_list_charge_tiers"] == [
            {"starts": 1, "ends": 10, "price": "5.00"},
            {"starts": 11, "ends": INFINITE_TIER_END, "price": "3.00"},
        ]
        assert charge["price_decimals"] == 2
        assert "price" not in charge

    def test_per_unit_becomes_single_volume_tier(self):
        document = StripeProductTransformer(catalog(stripe_price()), "plat-1").transform().to_import_dict()
        product = document["products"][0]
        price_list = product["plans"][0]["price_lists"][0]
        charge = only_charge(document)

        assert product["name"] == "Imported from Stripe"
        assert price_list["code"] == "price_1"
        assert price_list["name"] == "Pro Monthly"
        assert price_list["currency_id"] == "USD"
        assert charge["code"] == "price_1_charge"
        assert charge["pricing_model"] == "volume"
        assert charge["charge_type"] == "recurring"
        assert charge["billing_period"] == "monthly"
        assert charge["feature_code"] == "unit"
        assert charge["price_list_charge_tiers"] == [{"starts": 1, "ends": INFINITE_TIER_END, "price": "10.00"}]
        assert charge["price"] == "10.00"
        assert charge["price_decimals"] == 2

    def test_flat_price_keeps_zero_decimals(self):
        price = stripe_price(billing_scheme="flat", recurring={"interval": "month", "usage_type": "licensed"})

        charge = only_charge(StripeProductTransformer(catalog(price), "plat-1").transform().to_import_dict())

        assert charge["pricing_model"] == "flat"
        assert charge["price"] == "10.00"
        assert charge["price_decimals"] == 0
        assert charge["price_list_charge_tiers"] == []

    def test_features_include_meters_and_unit(self):
        meters = [{"id": "mtr_1", "display_name": "API calls", "event_name": "api_calls"}]
        document = StripeProductTransformer(catalog(meters=meters), "plat-1").transform()
        codes = [(f.code, f.is_unit) for f in document.products[0].features]
        assert codes == [("sso", False), ("api_calls", True), ("unit", True)]

    def test_metered_price_uses_meter_feature(self):
        meters = [{"id": "mtr_1", "display_name": "API calls", "event_name": "api_calls"}]
        price = stripe_price(
            billing_scheme="flat",
            recurring={"interval": "month", "usage_type": "metered", "meter": "mtr_1"},
        )

        charge = only_charge(StripeProductTransformer(catalog(price, meters=meters), "p").transform().to_import_dict())

        assert charge["charge_type"] == "usage"
        assert charge["feature_code"] == "api_calls"
        assert charge["usage_calculation_type"] == "sum"
        assert charge["price"] == "10.00"

    @pytest.mark.parametrize("overrides,reason", [
        ({"type": "one_time", "recurring": None}, "One time charges not supported for volume plans"),
        (
            {"recurring": {"interval": "month", "usage_type": "metered", "meter": "missing"}},
            "Metered price has no matching meter",
        ),
        ({"recurring": {"interval": "week", "interval_count": 1}}, "Unsupported billing period (1 week)"),
        ({"transform_quantity": {"round": "up", "divide_by": 10}}, "Round up not supported for recurring charges"),
    ])
    def test_unsupported_prices_are_skipped(self, overrides, reason):
        transformer = StripeProductTransformer(catalog(stripe_price(**overrides)), "plat-1")

        document = transformer.transform()

        assert document.products[0].plans[0].price_lists == []
        assert [(s.identifier, s.reason) for s in transformer.skipped] == [("price_1", reason)]

    def test_inactive_products_and_prices_are_ignored(self):
        data = catalog(stripe_price(active=False))
        data["products"].append({"id": "prod_2", "name": "Old", "active": False, "prices": [stripe_price()]})

        transformer = StripeProductTransformer(data, "plat-1")
        document = transformer.transform()

        assert [p.code for p in document.products[0].plans] == ["prod_1"]
        assert transformer.skipped == []


def test_billing_period_for():
    assert billing_period_for(None) is None
    assert billing_period_for({"interval": "year"}) == BillingPeriod.ANNUAL
    assert billing_period_for({"interval": "month", "interval_count": 6}) == BillingPeriod.SEMI_ANNUAL
    with pytest.raises(UnsupportedPrice):
        billing_period_for({"interval": "year", "interval_count": 2})


def test_generate_code():
    assert generate_code("price_1AbC charge") == "price_1AbC_charge"
    assert generate_code("Pro -- Annual!") == "Pro_Annual_"


@pytest.mark.parametrize("amount,amount_decimal,expected", [
    (1000, None, "10.00"),
    (1999, None, "19.99"),
    (None, "12.345", "0.12"),
    (5, "5.5", "0.06"),
    (0, None, None),
    (None, None, None),
])
def test_cents_to_decimal(amount, amount_decimal, expected):
    assert cents_to_decimal(amount, amount_decimal) == expected


NOW = 1_717_200_000


def stripe_subscription(**overrides):
    subscription = {
        "id": "sub_1",
        "customer": "cus_1",
        "cancel_at": None,
        "items": [{
            "price": {"id": "price_1"},
            "quantity": 3,
            "current_period_start": 1_704_067_200,
            "current_period_end": 1_706_745_600,
        }],
    }
    subscription.update(overrides)
    return subscription


CUSTOMER = {
    "id": "cus_1",
    "name": "Jane Q Doe",
    "email": "jane@acme.com",
    "address": {"line1": "1 Main St", "city": "Springfield", "country": "US"},
    "shipping": {"address": {"line1": "2 Dock Rd", "city": "Shelbyville"}},
    "tax_ids": {"data": [{"value": "EU123"}]},
}


class TestStripeSubscriptionTransformer:
    def transform(self, *subscriptions, customers=(CUSTOMER,)):
        data = {"subscriptions": list(subscriptions), "customers": list(customers)}
        return StripeSubscriptionTransformer(data, now=NOW).transform()

    def test_item_becomes_record(self):
        outcome = self.transform(stripe_subscription())

        attributes = outcome.records[0]
        payload = attributes.to_dict()

        assert payload["priceListCode"] == "price_1"
        assert payload["startDate"] == "2024-01-01T00:00:00.000Z"
        assert payload["endDate"] == "2024-02-01T00:00:00.000Z"
        assert payload["evergreen"] is True
        assert payload["trial"] is False
        assert payload["tenant"] == {"code": "cus_1", "name": "Jane Q Doe"}
        assert payload["priceListCharges"][0]["code"] == "price_1_charge"
        assert payload["priceListCharges"][0]["quantity"] == 3

    def test_cancel_at_ends_the_subscription(self):
        outcome = self.transform(stripe_subscription(cancel_at=1_735_689_600))
        payload = outcome.records[0].to_dict()
        assert payload["endDate"] == "2025-01-01T00:00:00.000Z"
        assert payload["evergreen"] is False

    def test_cancellation_schedule_is_accepted(self):
        subscription = stripe_subscription(
            cancel_at=1_735_689_600,
            schedule={"phases": [{"end_date": 1_735_689_600}]},
        )
        outcome = self.transform(subscription)
        assert outcome.skipped == []
        assert outcome.records[0].end_date == "2025-01-01T00:00:00.000Z"

    @pytest.mark.parametrize("overrides,reason", [
        ({"trial_start": NOW - 10, "trial_end": NOW + 10}, "it has an active trial"),
        ({"discounts": [{"coupon": {"percent_off": 20}}]}, "it has a percentage discount"),
        ({"schedule": {"phases": [{}, {}]}}, "it has a schedule with multiple phases"),
        (
            {"schedule": {"phases": [{"end_date": 1}]}, "cancel_at": 2},
            "it has a schedule with a single phase that isn't a cancellation",
        ),
        ({"customer": "cus_missing"}, "customer not found"),
    ])
    def test_skipped_subscriptions(self, overrides, reason):
        outcome = self.transform(stripe_subscription(**overrides))

        assert outcome.records == []
        assert [(s.identifier, s.reason) for s in outcome.skipped] == [("sub_1", reason)]

    def test_ended_trial_is_not_skipped(self):
        outcome = self.transform(stripe_subscription(trial_start=NOW - 100, trial_end=NOW - 10))
        assert len(outcome.records) == 1

    def test_item_without_dates_is_skipped(self):
        subscription = stripe_subscription(items=[{"price": {"id": "price_1"}}])
        outcome = self.transform(subscription)
        assert outcome.skipped[0].reason.startswith("of invalid dates")

    def test_transform_account(self):
        account = StripeSubscriptionTransformer.transform_account(CUSTOMER).to_dict()

        assert account["code"] == "cus_1"
        assert account["taxNumber"] == "EU123"
        assert account["billingStreet"] == "1 Main St"
        assert account["shippingCity"] == "Shelbyville"
        assert account["billingContact"] == {"firstName": "Jane", "lastName": "Q Doe", "email": "jane@acme.com"}
