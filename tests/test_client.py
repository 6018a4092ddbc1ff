"""Tests for the platform GraphQL client."""

from unittest.mock import MagicMock

import pytest

from bunny_cli.client import (
    GraphQLErrors,
    Ok,
    PlatformClient,
    TransportError,
    TransportFailure,
    format_base_url,
    run_query,
)


@pytest.mark.parametrize("value,expected", [
    ("acme.bunny.com", "https://acme.bunny.com"),
    ("https://acme.bunny.com/", "https://acme.bunny.com"),
    ("http://acme.bunny.com", "https://acme.bunny.com"),
    ("  acme.bunny.com  ", "https://acme.bunny.com"),
])
def test_format_base_url(value, expected):
    assert format_base_url(value) == expected


def make_client(session):
    return PlatformClient("https://acme.bunny.com", "id", "secret", session=session)


class TestAuthenticate:
    def test_stores_access_token(self, response):
        session = MagicMock()
        session.post.return_value = response(json_data={"access_token": "tok"})
        client = make_client(session)

        assert client.authenticate() == "tok"
        assert client.access_token == "tok"

        url = session.post.call_args[0][0]
        payload = session.post.call_args[1]["data"]
        assert url == "https://acme.bunny.com/oauth/token"
        assert payload["grant_type"] == "client_credentials"
        assert "product:write" in payload["scope"]

    def test_error_description_becomes_raw_string(self, response):
        session = MagicMock()
        session.post.return_value = response(
            401, json_data={"error": "invalid_client", "error_description": "Client authentication failed"}
        )

        with pytest.raises(TransportError) as exc_info:
            make_client(session).authenticate()

        assert exc_info.value.raw == "Client authentication failed"
        assert exc_info.value.status_code == 401

    def test_empty_body_becomes_none(self, response):
        session = MagicMock()
        session.post.return_value = response(502)

        with pytest.raises(TransportError) as exc_info:
            make_client(session).authenticate()

        assert exc_info.value.raw is None


class TestQuery:
    def test_returns_decoded_body(self, response):
        session = MagicMock()
        session.post.side_effect = [
            response(json_data={"access_token": "tok"}),
            response(json_data={"data": {"products": {"totalCount": 3}}}),
        ]
        client = make_client(session)

        body = client.query("query { products { totalCount } }", {"first": 1})

        assert body == {"data": {"products": {"totalCount": 3}}}
        headers = session.post.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer tok"

    def test_reauthenticates_once_on_401(self, response):
        session = MagicMock()
        session.post.side_effect = [
            response(json_data={"access_token": "old"}),
            response(401, json_data={"message": "expired"}),
            response(json_data={"access_token": "new"}),
            response(json_data={"data": {}}),
        ]
        client = make_client(session)

        assert client.query("query { x }") == {"data": {}}
        assert client.access_token == "new"
        assert session.post.call_count == 4

    def test_http_error_keeps_body(self, response):
        session = MagicMock()
        session.post.side_effect = [
            response(json_data={"access_token": "tok"}),
            response(500, json_data={"status": 500, "exception": "boom"}),
        ]

        with pytest.raises(TransportError) as exc_info:
            make_client(session).query("query { x }")

        assert exc_info.value.raw == {"status": 500, "exception": "boom"}
        assert exc_info.value.status_code == 500


class TestRunQuery:
    def test_ok(self, client):
        client.query.return_value = {"data": {"products": []}}
        result = run_query(client, "query")
        assert isinstance(result, Ok)
        assert result.data == {"products": []}

    def test_graphql_errors(self, client):
        client.query.return_value = {"data": None, "errors": [{"message": "Field missing"}, "raw"]}
        result = run_query(client, "query")
        assert isinstance(result, GraphQLErrors)
        assert result.messages == ["Field missing", "raw"]

    def test_transport_failure(self, client):
        client.query.side_effect = TransportError(None)
        result = run_query(client, "query")
        assert isinstance(result, TransportFailure)
        assert result.raw is None
