"""
Telegram relay for accepted submissions.

Delivery is best effort: one sendMessage per configured chat, fired on a
background pool and never awaited by the request. Nothing here can change
the response of a submission.
"""

from __future__ import annotations

import html
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, List, Mapping, Optional, Sequence

import requests

from .models import Category, PersistedRow, is_checked

log = logging.getLogger(__name__)

API_URL = "https://api.telegram.org/bot{token}/sendMessage"

_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="telegram")
_shared_session: Optional[requests.Session] = None
_session_lock = threading.Lock()


def shared_session() -> requests.Session:
    """One process-wide session, created on first delivery."""
    global _shared_session
    with _session_lock:
        if _shared_session is None:
            _shared_session = requests.Session()
        return _shared_session


def _e(value) -> str:
    return html.escape(str(value or ""), quote=False)


def _first_cause(causes: Sequence[tuple]) -> str:
    for flag, label in causes:
        if is_checked(flag):
            return label
    return "—"


def build_message(row: PersistedRow) -> str:
    r = row.report
    base = (
        f"🏪 Tienda: {_e(r.store_name)}\n"
        f"📅 Fecha: {_e(r.event_date)}\n"
        f"🧑 Reporta: {_e(r.first_name)} {_e(r.last_name)}"
    )

    if r.category is Category.PEST:
        p = r.pest
        return (
            f"🚨 Registro de Evento - PLAGA\n\n{base}\n\n"
            f"🌿 Tipo de Plaga: {_e(p.pest_type)}\n"
            f"📍 Sector: {_e(p.discovery_sector)}\n"
            f"📝 Comentario: {_e(p.comment)}\n"
            f"📌 Tipo de Evento: {_e(p.event_subtype)}"
        )

    if r.category is Category.AROMA:
        a = r.aroma
        cause = _first_cause((
            (a.incorrect_dosing, "Dosificación incorrecta"),
            (a.faulty_equipment, "Equipo con fallas"),
            (a.equipment_theft, "Hurto de equipo"),
        ))
        return (
            f"🚨 Registro de Evento - AROMA\n\n{base}\n\n"
            f"⚠️ Causa: {cause}\n📝 Comentario: {_e(a.comment)}"
        )

    if r.category is Category.CHEMICAL:
        c = r.chemical
        cause = _first_cause((
            (c.dilutor_failure, "Falla en dilutor"),
            (c.other_incident, "Otra incidencia"),
            (c.order_problem, "Problema en pedido"),
        ))
        return (
            f"🚨 Registro de Evento - QUÍMICO\n\n{base}\n\n"
            f"⚠️ Causa: {cause}\n📝 Comentario: {_e(c.comment)}"
        )

    return f"🚨 Registro de Evento - {_e(r.event_type).upper()}\n\n{base}"


class TelegramNotifier:
    def __init__(self, bot_token: str, chat_ids: Sequence[str],
                 session: Optional[requests.Session] = None, timeout: float = 30,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.bot_token = bot_token or ""
        self.chat_ids = tuple(c for c in chat_ids if c)
        self._session = session
        self.timeout = timeout
        self.executor = executor or _pool

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_ids)

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = shared_session()
        return self._session

    @property
    def url(self) -> str:
        return API_URL.format(token=self.bot_token)

    def _send(self, chat_id: str, payload: Mapping) -> requests.Response:
        resp = self.session.post(self.url, json={"chat_id": chat_id, **payload},
                                 timeout=self.timeout)
        resp.raise_for_status()
        return resp

    def _send_logged(self, chat_id: str, payload: Mapping) -> None:
        try:
            self._send(chat_id, payload)
        except requests.RequestException as e:
            log.warning("telegram delivery to %s failed: %s", chat_id, e)

    def notify(self, row: PersistedRow) -> List[Future]:
        """Queue one message per chat; returns the futures without waiting."""
        if not self.enabled:
            log.debug("telegram not configured, skipping notification")
            return []
        payload = {"text": build_message(row), "parse_mode": "HTML"}
        return [self.executor.submit(self._send_logged, chat_id, payload)
                for chat_id in self.chat_ids]

    def send_test(self, text: str = "✅ Prueba de Telegram: todo OK.") -> Dict[str, str]:
        futures = {chat_id: self.executor.submit(self._send, chat_id, {"text": text})
                   for chat_id in self.chat_ids}
        wait(futures.values())
        results = {}
        for chat_id, fut in futures.items():
            exc = fut.exception()
            if exc is not None:
                log.warning("telegram test to %s failed: %s", chat_id, exc)
            results[chat_id] = "rejected" if exc is not None else "fulfilled"
        return results
