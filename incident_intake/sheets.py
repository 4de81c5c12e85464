from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import requests
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from gspread.exceptions import APIError
from gspread.http_client import HTTPClient

from .auth import AccessToken
from .errors import AuthError, UpstreamError

log = logging.getLogger(__name__)

USER_ENTERED = "USER_ENTERED"

_SHEET_URL_ID = re.compile(r"/d/([a-zA-Z0-9_-]+)")


def resolve_sheet_id(value: str) -> str:
    """Accept either a bare spreadsheet id or its sharing URL."""
    s = (value or "").strip()
    m = _SHEET_URL_ID.search(s)
    return m.group(1) if m else s


def _token_credentials(token: AccessToken) -> Credentials:
    # google-auth compares against naive UTC
    expiry = datetime.fromtimestamp(token.expires_at, tz=timezone.utc).replace(tzinfo=None)
    return Credentials(token=token.value, expiry=expiry)


class SpreadsheetClient:
    """Values-API access to one spreadsheet with an already minted token."""

    def __init__(self, token: AccessToken, spreadsheet: str,
                 session: Optional[requests.Session] = None, timeout: Optional[float] = 30):
        self.spreadsheet_id = resolve_sheet_id(spreadsheet)
        self.http = HTTPClient(_token_credentials(token), session=session)
        self.http.set_timeout(timeout)

    def _call(self, label: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except APIError as e:
            body = e.response.text if getattr(e, "response", None) is not None else str(e)
            log.warning("%s failed: %s", label, body)
            raise UpstreamError(f"{label} error: {body}") from e
        except requests.RequestException as e:
            log.warning("%s failed: %s", label, e)
            raise UpstreamError(f"{label} error: {e}") from e
        except RefreshError as e:
            # the bearer token cannot be refreshed here; only re-minting helps
            log.warning("%s rejected credentials: %s", label, e)
            raise AuthError(f"{label} error: {e}") from e

    def read_rows(self, range_expr: str) -> List[List[str]]:
        data = self._call(f"Sheets read {range_expr}", self.http.values_get,
                          self.spreadsheet_id, range_expr)
        rows = (data or {}).get("values") or []
        return [["" if cell is None else str(cell) for cell in row] for row in rows]

    def read_column(self, range_expr: str) -> List[str]:
        out = []
        for row in self.read_rows(range_expr):
            if row and row[0].strip():
                out.append(row[0])
        return out

    def append_row(self, range_expr: str, row: Sequence[Any]) -> None:
        self._call(
            f"Sheets append {range_expr}",
            self.http.values_append,
            self.spreadsheet_id,
            range_expr,
            params={"valueInputOption": USER_ENTERED},
            body={"values": [list(row)]},
        )
        log.debug("appended %d cells to %s", len(row), range_expr)
