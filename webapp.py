import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from incident_intake.auth import TokenCache, mint_access_token
from incident_intake.catalog import load_catalog
from incident_intake.config import load_settings, telegram_config
from incident_intake.errors import IncidentIntakeError
from incident_intake.logging_setup import configure_logging
from incident_intake.models import parse_report
from incident_intake.notify import TelegramNotifier
from incident_intake.sheets import SpreadsheetClient
from incident_intake.submission import SubmissionOrchestrator, service_credential

configure_logging()
log = logging.getLogger("webapp")

# ─── App setup ───────────────────────────────────────────────────────────
app = Flask(__name__)
CORS(app, methods=["GET", "POST", "OPTIONS"], allow_headers=["Content-Type"])

token_cache = TokenCache()


# ─── Wiring ──────────────────────────────────────────────────────────────
# settings are read per request
def token_source(settings):
    return token_cache.get if settings.token_cache_enabled else mint_access_token


def open_sheet(settings):
    token = token_source(settings)(service_credential(settings), timeout=settings.http_timeout)
    return SpreadsheetClient(token, settings.spreadsheet, timeout=settings.http_timeout)


def telegram(settings):
    return TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_ids,
                            timeout=settings.http_timeout)


def build_orchestrator(settings):
    return SubmissionOrchestrator(
        settings,
        token_source=token_source(settings),
        client_factory=SpreadsheetClient,
        notifier=telegram(settings),
    )


def submitter_ip():
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or ""


def preflight():
    return "", 204


# ─── Error boundary ──────────────────────────────────────────────────────
@app.errorhandler(IncidentIntakeError)
def handle_intake_error(e):
    if e.status_code >= 500:
        log.error("%s on %s: %s", type(e).__name__, request.path, e.message)
    return jsonify({"ok": False, "error": e.message}), e.status_code


@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({"ok": False, "error": "Método no permitido"}), 405


@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    log.exception("unhandled error on %s", request.path)
    return jsonify({"ok": False, "error": "Error interno"}), 500


# ─── GET /api/init ───────────────────────────────────────────────────────
@app.route("/api/init", methods=["GET", "OPTIONS"])
def init():
    if request.method == "OPTIONS":
        return preflight()
    settings = load_settings()
    return jsonify(load_catalog(open_sheet(settings), settings.sheets)), 200


# ─── POST /api/submit ────────────────────────────────────────────────────
@app.route("/api/submit", methods=["POST", "OPTIONS"])
def submit():
    if request.method == "OPTIONS":
        return preflight()
    # reject incomplete forms before touching configuration or the network
    report = parse_report(request.get_json(silent=True))
    settings = load_settings()
    result = build_orchestrator(settings).submit_report(report, submitter_ip=submitter_ip())
    return jsonify(result.as_payload()), 200


# ─── GET /api/test-telegram ──────────────────────────────────────────────
@app.route("/api/test-telegram", methods=["GET", "OPTIONS"])
def test_telegram():
    if request.method == "OPTIONS":
        return preflight()
    bot_token, chat_ids = telegram_config()
    notifier = TelegramNotifier(bot_token, chat_ids)
    if not notifier.enabled:
        return jsonify({"ok": False,
                        "error": "Falta TELEGRAM_BOT_TOKEN o TELEGRAM_CHAT_IDS"}), 400
    results = notifier.send_test()
    return jsonify({"ok": True, "results": list(results.values())}), 200


# ─── Health check ─────────────────────────────────────────────────────────
@app.route("/healthz")
def healthz():
    return "OK", 200


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
