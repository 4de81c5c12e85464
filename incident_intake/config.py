import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigError

load_dotenv()

REQUIRED = ("GOOGLE_SERVICE_ACCOUNT_EMAIL", "GOOGLE_SERVICE_ACCOUNT_KEY", "GOOGLE_SHEETS_ID")


def env_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_csv_list(value: Optional[str]) -> Tuple[str, ...]:
    return tuple(s.strip() for s in str(value or "").split(",") if s.strip())


@dataclass(frozen=True)
class SheetNames:
    responses: str = "Respuestas"
    stores: str = "Tiendas"
    catalogs: str = "Catalogos"
    pest: str = "Respuestas_Plaga"
    aroma: str = "Respuestas_Aroma"
    chemical: str = "Respuestas_Quimico"


@dataclass(frozen=True)
class Settings:
    service_account_email: str
    service_account_key: str
    spreadsheet: str
    sheets: SheetNames = SheetNames()
    telegram_bot_token: str = ""
    telegram_chat_ids: Tuple[str, ...] = ()
    http_timeout: float = 30
    token_cache_enabled: bool = False


def telegram_config(environ: Optional[Mapping[str, str]] = None) -> Tuple[str, Tuple[str, ...]]:
    """(bot token, chat ids); usable without the Google variables."""
    e = os.environ if environ is None else environ
    return (e.get("TELEGRAM_BOT_TOKEN") or "").strip(), parse_csv_list(e.get("TELEGRAM_CHAT_IDS"))


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    e = os.environ if environ is None else environ

    for name in REQUIRED:
        if not (e.get(name) or "").strip():
            raise ConfigError(f"Falta variable de entorno: {name}")

    defaults = SheetNames()
    sheets = SheetNames(
        responses=e.get("SHEET_RESP") or defaults.responses,
        stores=e.get("SHEET_TND") or defaults.stores,
        catalogs=e.get("SHEET_CAT") or defaults.catalogs,
        pest=e.get("SHEET_PLAGA") or defaults.pest,
        aroma=e.get("SHEET_AROMA") or defaults.aroma,
        chemical=e.get("SHEET_QUIMICO") or defaults.chemical,
    )

    try:
        timeout = float(e.get("HTTP_TIMEOUT_SECONDS") or 30)
    except ValueError:
        raise ConfigError("HTTP_TIMEOUT_SECONDS debe ser numérico") from None

    bot_token, chat_ids = telegram_config(e)
    return Settings(
        service_account_email=e["GOOGLE_SERVICE_ACCOUNT_EMAIL"].strip(),
        service_account_key=e["GOOGLE_SERVICE_ACCOUNT_KEY"],
        spreadsheet=e["GOOGLE_SHEETS_ID"],
        sheets=sheets,
        telegram_bot_token=bot_token,
        telegram_chat_ids=chat_ids,
        http_timeout=timeout,
        token_cache_enabled=env_bool(e.get("TOKEN_CACHE_ENABLED")),
    )
