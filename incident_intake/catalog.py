from __future__ import annotations

from typing import Any, Dict, List

from .config import SheetNames
from .models import StoreRecord
from .sheets import SpreadsheetClient

# payload key -> column of the catalog sheet
CATALOG_COLUMNS = (
    ("tipoEvento", "A2:A"),
    ("tipoEventoPlaga", "C2:C"),
    ("tipoPlaga", "E2:E"),
    ("sectores", "G2:G"),
    ("catAroma", "I2:I"),
    ("catQuimico", "K2:K"),
)


def stores_range(sheets: SheetNames) -> str:
    return f"{sheets.stores}!A2:B"


def read_stores(client: SpreadsheetClient, sheets: SheetNames) -> List[StoreRecord]:
    """Store reference rows in sheet order. Rows keep blanks; callers filter."""
    records = []
    for row in client.read_rows(stores_range(sheets)):
        store_id = row[0] if len(row) > 0 else ""
        name = row[1] if len(row) > 1 else ""
        records.append(StoreRecord(id=store_id, name=name))
    return records


def load_catalog(client: SpreadsheetClient, sheets: SheetNames) -> Dict[str, Any]:
    tiendas = [{"id": s.id, "nombre": s.name}
               for s in read_stores(client, sheets) if s.id and s.name]
    out: Dict[str, Any] = {"ok": True, "tiendas": tiendas}
    for key, cols in CATALOG_COLUMNS:
        out[key] = client.read_column(f"{sheets.catalogs}!{cols}")
    return out
