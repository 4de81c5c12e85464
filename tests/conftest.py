import json

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from incident_intake.auth import AccessToken
from incident_intake.config import Settings
from incident_intake.errors import UpstreamError


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def pem(rsa_key):
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii").strip()


@pytest.fixture
def settings(pem):
    return Settings(
        service_account_email="bot@project.iam.gserviceaccount.com",
        service_account_key=pem,
        spreadsheet="https://docs.google.com/spreadsheets/d/sheet-123/edit#gid=0",
    )


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSheet:
    """Stands in for SpreadsheetClient; records appends in order."""

    def __init__(self, stores=(), columns=None, fail_on=None):
        self.stores = [list(r) for r in stores]
        self.columns = columns or {}
        self.fail_on = fail_on
        self.appends = []
        self.reads = []
        self.token = None
        self.spreadsheet = None

    def __call__(self, token, spreadsheet, **kwargs):
        self.token = token
        self.spreadsheet = spreadsheet
        return self

    def read_rows(self, range_expr):
        self.reads.append(range_expr)
        return self.stores

    def read_column(self, range_expr):
        self.reads.append(range_expr)
        return list(self.columns.get(range_expr, []))

    def append_row(self, range_expr, row):
        if self.fail_on and range_expr.startswith(self.fail_on):
            raise UpstreamError(f"Sheets append {range_expr} error: boom")
        self.appends.append((range_expr, list(row)))


@pytest.fixture
def fake_token():
    return AccessToken(value="ya29.test", minted_at=1_700_000_000, expires_at=1_700_003_600)


@pytest.fixture
def token_calls(fake_token):
    calls = []

    def source(credential, **kwargs):
        calls.append(credential)
        return fake_token

    source.calls = calls
    return source
