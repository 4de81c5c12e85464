"""
Submission pipeline for one incident report.

validate -> token -> store lookup -> build row -> master append ->
category append -> notify. Any failure before notify aborts the rest; nothing
is retried. The master append always happens first and is not rolled back if
the category append fails afterwards.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Tuple

from .auth import AccessToken, ServiceCredential, mint_access_token
from .catalog import read_stores
from .config import Settings
from .models import (
    CATEGORY_SCHEMAS, MASTER_SCHEMA, Category, IncidentReport, PersistedRow,
    StoreRecord, normalize_name, parse_report, render,
)
from .sheets import SpreadsheetClient

log = logging.getLogger(__name__)

WARN_STORE_NOT_FOUND = "No se encontró la tienda por nombre."
WARN_STORE_AMBIGUOUS = "Hay múltiples filas con el mismo Nombre_local."

TokenSource = Callable[..., AccessToken]


def service_credential(settings: Settings) -> ServiceCredential:
    return ServiceCredential(
        issuer_email=settings.service_account_email,
        private_key=settings.service_account_key,
    )


def resolve_store(records: Iterable[StoreRecord], store_name: str) -> Tuple[str, str]:
    """Return (store_id, warning). With duplicates the last matching row wins."""
    target = normalize_name(store_name)
    store_id = ""
    matches = 0
    for record in records:
        if normalize_name(record.name) == target:
            store_id = record.id
            matches += 1

    if matches == 0:
        return "", WARN_STORE_NOT_FOUND
    if matches > 1:
        log.warning("store name %r matches %d reference rows; using id %s",
                    store_name, matches, store_id)
        return store_id, WARN_STORE_AMBIGUOUS
    return store_id, ""


def iso_timestamp(now: datetime) -> str:
    now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class SubmissionResult:
    response_id: str
    store_id: str
    warning: str = ""

    def as_payload(self) -> dict:
        return {"ok": True, "Response_ID": self.response_id,
                "Tienda_ID": self.store_id, "warn": self.warning}


class SubmissionOrchestrator:
    def __init__(self, settings: Settings, *,
                 token_source: TokenSource = mint_access_token,
                 client_factory: Callable[..., SpreadsheetClient] = SpreadsheetClient,
                 notifier=None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
                 new_id: Callable[[], str] = lambda: str(uuid.uuid4())):
        self.settings = settings
        self.token_source = token_source
        self.client_factory = client_factory
        self.notifier = notifier
        self.clock = clock
        self.new_id = new_id

    def open_client(self) -> SpreadsheetClient:
        token = self.token_source(service_credential(self.settings),
                                  timeout=self.settings.http_timeout)
        return self.client_factory(token, self.settings.spreadsheet,
                                   timeout=self.settings.http_timeout)

    def submit(self, payload: Any, submitter_ip: str = "") -> SubmissionResult:
        return self.submit_report(parse_report(payload), submitter_ip=submitter_ip)

    def submit_report(self, report: IncidentReport, submitter_ip: str = "") -> SubmissionResult:
        client = self.open_client()
        sheets = self.settings.sheets

        store_id, warning = resolve_store(read_stores(client, sheets), report.store_name)

        row = PersistedRow(
            response_id=self.new_id(),
            timestamp=iso_timestamp(self.clock()),
            store_id=store_id,
            report=report,
            submitter_ip=submitter_ip or "",
        )

        client.append_row(f"{sheets.responses}!A:U", render(MASTER_SCHEMA, row))
        self._append_category(client, row)

        log.info("stored response %s (%s, store=%s)", row.response_id,
                 report.event_type, store_id or "?")
        self._notify(row)
        return SubmissionResult(response_id=row.response_id, store_id=store_id,
                                warning=warning)

    def category_range(self, category: Category) -> Optional[str]:
        sheets = self.settings.sheets
        return {
            Category.PEST: f"{sheets.pest}!A:K",
            Category.AROMA: f"{sheets.aroma}!A:K",
            Category.CHEMICAL: f"{sheets.chemical}!A:K",
        }.get(category)

    def _append_category(self, client: SpreadsheetClient, row: PersistedRow) -> None:
        category = row.report.category
        if category is Category.UNCATEGORIZED:
            self._skip_category_append(row)
            return
        client.append_row(self.category_range(category),
                          render(CATEGORY_SCHEMAS[category], row))

    def _skip_category_append(self, row: PersistedRow) -> None:
        # The master sheet alone holds events of unknown type.
        log.info("no category sheet for Tipo_Evento=%r (response %s)",
                 row.report.event_type, row.response_id)

    def _notify(self, row: PersistedRow) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(row)
        except Exception:
            log.exception("notification hand-off failed for %s", row.response_id)
