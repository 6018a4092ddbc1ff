"""Shared fixtures."""

import csv
from unittest.mock import MagicMock

import pytest

from bunny_cli.client import PlatformClient
from bunny_cli.models.migration import Profile


@pytest.fixture
def profile():
    return Profile(
        name="test",
        base_url="https://acme.bunny.com",
        client_id="client-id",
        client_secret="client-secret",
    )


@pytest.fixture
def client():
    """A client whose HTTP session is a mock."""
    mock_client = MagicMock(spec=PlatformClient)
    mock_client.base_url = "https://acme.bunny.com"
    mock_client.access_token = "token"
    return mock_client


@pytest.fixture
def write_csv(tmp_path):
    """Write a CSV file from a header and rows; returns its path."""
    def _write(name, header, rows):
        path = tmp_path / name
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(rows)
        return str(path)
    return _write


def make_response(status_code=200, json_data=None, text=None):
    """A requests.Response stand-in."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = "OK" if response.ok else "Error"
    if json_data is not None:
        response.content = b"{}"
        response.json.return_value = json_data
        response.text = ""
    elif text is not None:
        response.content = text.encode()
        response.json.side_effect = ValueError("not json")
        response.text = text
    else:
        response.content = b""
        response.json.side_effect = ValueError("empty")
        response.text = ""
    return response


@pytest.fixture
def response():
    return make_response
