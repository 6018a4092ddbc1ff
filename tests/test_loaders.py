"""Tests for the batch executor and the platform loader."""

from unittest.mock import MagicMock, patch

import pytest

from bunny_cli.client import GraphQLErrors, Ok, TransportError, TransportFailure
from bunny_cli.exceptions import RecordError
from bunny_cli.loaders.base import BaseLoader, describe_error
from bunny_cli.loaders.platform_loader import PlatformLoader, account_identifier, contact_identifier
from bunny_cli.models.record import BatchStatus
from bunny_cli.models.subscription import SubscriptionAttributes


class TestDescribeError:
    def test_none_is_unknown(self):
        assert describe_error(None) == "Unknown error"

    def test_transport_error_without_body_is_unknown(self):
        assert describe_error(TransportError(None)) == "Unknown error"

    def test_server_error_uses_exception(self):
        error = {"status": 500, "exception": "NoMethodError"}
        assert describe_error(error) == "Internal Server Error: NoMethodError"

    def test_server_error_status_with_html_body(self):
        error = TransportError("<html>500 Internal Server Error</html>", 500)
        assert describe_error(error) == "Internal Server Error: unknown server error"

    def test_server_error_status_with_json_body(self):
        error = TransportError({"status": 500, "exception": "NoMethodError"}, 500)
        assert describe_error(error) == "Internal Server Error: NoMethodError"

    def test_string_is_verbatim(self):
        assert describe_error("invalid_client") == "invalid_client"
        assert describe_error(TransportError("invalid_client")) == "invalid_client"

    def test_exception_message(self):
        assert describe_error(RecordError("Import errors: Code taken")) == "Import errors: Code taken"

    def test_object_message(self):
        assert describe_error({"message": "Not found", "status": 404}) == "Not found"

    def test_object_dumped_as_json(self):
        assert describe_error({"status": 422, "detail": "bad"}) == '{"status": 422, "detail": "bad"}'


class TestLoadBatch:
    def test_failure_in_the_middle_does_not_stop_the_batch(self):
        submitted = []

        def submit(record):
            submitted.append(record)
            if record == 3:
                raise TransportError(None)
            return {"id": f"id-{record}"}

        progress = MagicMock()
        result = BaseLoader().load_batch(
            [1, 2, 3, 4, 5], submit, identify=lambda r: f"Record {r}", progress_callback=progress
        )

        assert submitted == [1, 2, 3, 4, 5]
        assert result.status == BatchStatus.PARTIAL
        assert result.success_count == 4
        assert result.error_count == 1
        assert result.total_count == 5
        assert result.results[2].error == "Unknown error"
        assert result.results[2].identifier == "Record 3"
        assert progress.call_count == 5
        progress.assert_called_with(5, 5)

    @pytest.mark.parametrize("failing,expected", [
        (set(), BatchStatus.SUCCESS),
        ({1, 2, 3}, BatchStatus.FAILED),
        ({2}, BatchStatus.PARTIAL),
    ])
    def test_status_classification(self, failing, expected):
        def submit(record):
            if record in failing:
                raise RecordError("no")
            return {}

        result = BaseLoader().load_batch([1, 2, 3], submit)

        assert result.status == expected
        assert result.success_count + result.error_count == 3

    def test_error_lines_are_capped(self):
        def submit(record):
            raise RecordError(f"bad {record}")

        result = BaseLoader().load_batch(list(range(12)), submit, identify=lambda r: f"R{r}")
        lines = result.error_lines(10)

        assert len(lines) == 11
        assert lines[0] == "R0: bad 0"
        assert lines[-1] == "... and 2 more errors"

    def test_results_are_reported_as_they_happen(self):
        seen = []
        BaseLoader().load_batch(
            ["a", "b"],
            lambda r: {"id": r},
            on_result=lambda record, result: seen.append((record, result.success)),
        )
        assert seen == [("a", True), ("b", True)]

    def test_dry_run_submits_nothing(self):
        submit = MagicMock()
        result = BaseLoader(dry_run=True).load_batch([1, 2], submit)

        submit.assert_not_called()
        assert result.success_count == 2

    def test_dry_run_still_validates(self):
        submit = MagicMock()

        def validate(record):
            if record < 0:
                raise RecordError("Invalid amount")

        result = BaseLoader(dry_run=True).load_batch([1, -1], submit, validate_one=validate)

        submit.assert_not_called()
        assert result.success_count == 1
        assert result.failures[0].error == "Invalid amount"

    def test_identifier_falls_back_to_position(self):
        result = BaseLoader().load_batch([{}], lambda r: r, identify=lambda r: r["name"])
        assert result.results[0].identifier == "Record 1"


@pytest.fixture
def run_query():
    with patch("bunny_cli.loaders.platform_loader.run_query") as mock_run_query:
        yield mock_run_query


class TestPlatformLoader:
    def test_create_account_returns_entity(self, client, run_query):
        run_query.return_value = Ok({"accountCreate": {"account": {"id": "acc-1"}, "errors": None}})

        account = PlatformLoader(client).create_account({"name": "Acme"})

        assert account == {"id": "acc-1"}
        _, document, variables = run_query.call_args[0]
        assert "accountCreate" in document
        assert variables == {"attributes": {"name": "Acme"}}

    def test_payload_errors(self, client, run_query):
        run_query.return_value = Ok({"contactCreate": {"contact": None, "errors": ["Email taken", "Bad code"]}})

        with pytest.raises(RecordError, match="Import errors: Email taken, Bad code"):
            PlatformLoader(client).create_contact({"firstName": "Jo"})

    def test_graphql_errors(self, client, run_query):
        run_query.return_value = GraphQLErrors([{"message": "Unknown field"}])

        with pytest.raises(RecordError, match="GraphQL errors: Unknown field"):
            PlatformLoader(client).create_account({"name": "Acme"})

    def test_missing_payload(self, client, run_query):
        run_query.return_value = Ok({})

        with pytest.raises(RecordError, match="no accountCreate data"):
            PlatformLoader(client).create_account({"name": "Acme"})

    def test_transport_failure_is_raised(self, client, run_query):
        run_query.return_value = TransportFailure(raw=None)

        with pytest.raises(TransportError):
            PlatformLoader(client).create_account({"name": "Acme"})

    def test_create_subscription_sends_attributes(self, client, run_query):
        run_query.return_value = Ok({
            "subscriptionCreate": {"subscription": {"id": "sub-1", "account": {"id": "acc-1"}}, "errors": []}
        })
        attributes = SubscriptionAttributes(price_list_code="PL", start_date="2024-01-01", account_id="acc-1")

        subscription = PlatformLoader(client).create_subscription(attributes)

        assert subscription["account"]["id"] == "acc-1"
        sent = run_query.call_args[0][2]["attributes"]
        assert sent["priceListCode"] == "PL"
        assert sent["accountId"] == "acc-1"

    def test_failed_product_import_response(self, client, run_query):
        run_query.return_value = Ok({
            "productImport": {"response": {"status": "failed", "message": "Plan code taken"}, "errors": None}
        })

        with pytest.raises(RecordError, match="Plan code taken"):
            PlatformLoader(client).import_products({"products": [{"name": "Pro"}]})

    def test_mrr_import(self, client, run_query):
        run_query.return_value = Ok({"legacyRecurringRevenueImport": {"errors": []}})
        assert PlatformLoader(client).import_mrr("a,b\n1,2\n") == {"imported": True}

    def test_upload_rejects_unknown_slot(self, client):
        with pytest.raises(ValueError):
            PlatformLoader(client).upload_branding_image("ent-1", "favicon", b"", "image/png")

    def test_upload_branding_image(self, client, response):
        with patch("bunny_cli.loaders.platform_loader.requests.put") as put:
            put.return_value = response(json_data={})
            PlatformLoader(client).upload_branding_image("ent-1", "top_nav_image", b"png", "image/png")

        url = put.call_args[0][0]
        kwargs = put.call_args[1]
        assert url == "https://acme.bunny.com/api/images/branding"
        assert kwargs["params"] == {"name": "top_nav_image"}
        assert kwargs["data"] == {"entity_id": "ent-1"}
        assert kwargs["headers"]["Authorization"] == "bearer token"


def test_identifiers():
    assert account_identifier({"name": "Acme", "code": "A"}) == "Acme"
    assert account_identifier({"code": "A"}) == "A"
    assert account_identifier({}) == "Unknown"
    assert contact_identifier({"firstName": "Jo", "lastName": "Doe"}) == "Jo Doe"
    assert contact_identifier({"email": "jo@acme.com"}) == "jo@acme.com"
    assert contact_identifier({}) == "Unknown"
