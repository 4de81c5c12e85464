from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Tuple, Union

from .errors import ValidationError

REQUIRED_FIELDS = ("Tienda_Nombre", "Fecha_Evento", "Nombre", "Apellido", "Tipo_Evento")

Cell = Union[str, bool]


def normalize_name(value: Any) -> str:
    """Case-, accent- and whitespace-insensitive comparison key."""
    s = unicodedata.normalize("NFD", str(value or "").lower())
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", s).strip()


class Category(Enum):
    PEST = "Plaga"
    AROMA = "Aroma"
    CHEMICAL = "Químico"
    UNCATEGORIZED = ""

    @classmethod
    def from_label(cls, label: str) -> "Category":
        return _CATEGORY_LABELS.get((label or "").strip(), cls.UNCATEGORIZED)


# exact form labels; any other spelling stays uncategorized
_CATEGORY_LABELS = {
    "Plaga": Category.PEST,
    "Aroma": Category.AROMA,
    "Químico": Category.CHEMICAL,
    "Quimico": Category.CHEMICAL,
}


def _text(value: Any) -> str:
    if value is None or value is False:
        return ""
    return str(value)


def _flag(value: Any) -> Cell:
    # JSON true stays boolean so USER_ENTERED stores a checkbox value
    if value is True:
        return True
    return _text(value) if value else ""


_FALSY_WORDS = {"", "0", "false", "no", "off"}


def is_checked(value: Cell) -> bool:
    if isinstance(value, bool):
        return value
    return normalize_name(value) not in _FALSY_WORDS


@dataclass(frozen=True)
class PestDetails:
    event_subtype: str = ""
    pest_type: str = ""
    discovery_sector: str = ""
    comment: str = ""


@dataclass(frozen=True)
class AromaDetails:
    incorrect_dosing: Cell = ""
    faulty_equipment: Cell = ""
    equipment_theft: Cell = ""
    comment: str = ""


@dataclass(frozen=True)
class ChemicalDetails:
    dilutor_failure: Cell = ""
    other_incident: Cell = ""
    order_problem: Cell = ""
    comment: str = ""


Details = Union[PestDetails, AromaDetails, ChemicalDetails, None]


@dataclass(frozen=True)
class IncidentReport:
    store_name: str
    event_date: str
    first_name: str
    last_name: str
    event_type: str
    category: Category
    details: Details = None

    @property
    def pest(self) -> PestDetails:
        return self.details if isinstance(self.details, PestDetails) else _NO_PEST

    @property
    def aroma(self) -> AromaDetails:
        return self.details if isinstance(self.details, AromaDetails) else _NO_AROMA

    @property
    def chemical(self) -> ChemicalDetails:
        return self.details if isinstance(self.details, ChemicalDetails) else _NO_CHEMICAL


_NO_PEST = PestDetails()
_NO_AROMA = AromaDetails()
_NO_CHEMICAL = ChemicalDetails()


def parse_report(payload: Any) -> IncidentReport:
    """Validate a form body and build the matching report variant."""
    if not isinstance(payload, Mapping):
        raise ValidationError("Cuerpo de la solicitud inválido")

    for name in REQUIRED_FIELDS:
        if not _text(payload.get(name)).strip():
            raise ValidationError(f"Falta {name}", field=name)

    get = payload.get
    category = Category.from_label(_text(get("Tipo_Evento")))

    details: Details = None
    if category is Category.PEST:
        details = PestDetails(
            event_subtype=_text(get("Tipo_Evento_Plaga")),
            pest_type=_text(get("Tipo_Plaga")),
            discovery_sector=_text(get("Sector_Hallazgo")),
            comment=_text(get("Comentario_Plaga")),
        )
    elif category is Category.AROMA:
        details = AromaDetails(
            incorrect_dosing=_flag(get("Dosif_inco_Aroma")),
            faulty_equipment=_flag(get("Equip_malo_Aroma")),
            equipment_theft=_flag(get("Hurto_Equip_Aroma")),
            comment=_text(get("Comentario_Aroma")),
        )
    elif category is Category.CHEMICAL:
        details = ChemicalDetails(
            dilutor_failure=_flag(get("Falla_Dil_Quimico")),
            other_incident=_flag(get("Otra_Inci_Quimico")),
            order_problem=_flag(get("Problema_Ped_Quimico")),
            # older form builds post the singular key
            comment=_text(get("Comentario_Quimicos") or get("Comentario_Quimico")),
        )

    return IncidentReport(
        store_name=_text(get("Tienda_Nombre")),
        event_date=_text(get("Fecha_Evento")),
        first_name=_text(get("Nombre")),
        last_name=_text(get("Apellido")),
        event_type=_text(get("Tipo_Evento")),
        category=category,
        details=details,
    )


@dataclass(frozen=True)
class StoreRecord:
    id: str
    name: str


@dataclass(frozen=True)
class PersistedRow:
    response_id: str
    timestamp: str
    store_id: str
    report: IncidentReport
    submitter_ip: str = ""

    def as_dict(self) -> Dict[str, Cell]:
        return {name: get(self) for name, get in MASTER_SCHEMA}


# ─── Column schemas ──────────────────────────────────────────────────────
# Ordered (column, accessor) pairs; the order is the sheet's column order.

Accessor = Callable[[PersistedRow], Cell]
Schema = Tuple[Tuple[str, Accessor], ...]

_HEADER: Schema = (
    ("Response_ID", lambda r: r.response_id),
    ("Timestamp", lambda r: r.timestamp),
    ("Tienda_ID", lambda r: r.store_id),
    ("Tienda_Nombre", lambda r: r.report.store_name),
    ("Fecha_Evento", lambda r: r.report.event_date),
    ("Nombre", lambda r: r.report.first_name),
    ("Apellido", lambda r: r.report.last_name),
)

_PEST_FIELDS: Schema = (
    ("Tipo_Evento_Plaga", lambda r: r.report.pest.event_subtype),
    ("Tipo_Plaga", lambda r: r.report.pest.pest_type),
    ("Sector_Hallazgo", lambda r: r.report.pest.discovery_sector),
    ("Comentario_Plaga", lambda r: r.report.pest.comment),
)

_AROMA_FIELDS: Schema = (
    ("Dosif_inco_Aroma", lambda r: r.report.aroma.incorrect_dosing),
    ("Equip_malo_Aroma", lambda r: r.report.aroma.faulty_equipment),
    ("Hurto_Equip_Aroma", lambda r: r.report.aroma.equipment_theft),
    ("Comentario_Aroma", lambda r: r.report.aroma.comment),
)

_CHEMICAL_FIELDS: Schema = (
    ("Falla_Dil_Quimico", lambda r: r.report.chemical.dilutor_failure),
    ("Otra_Inci_Quimico", lambda r: r.report.chemical.other_incident),
    ("Problema_Ped_Quimico", lambda r: r.report.chemical.order_problem),
    ("Comentario_Quimicos", lambda r: r.report.chemical.comment),
)

MASTER_SCHEMA: Schema = (
    _HEADER
    + (("Tipo_Evento", lambda r: r.report.event_type),)
    + _PEST_FIELDS
    + _AROMA_FIELDS
    + _CHEMICAL_FIELDS
    + (("Submitter_IP", lambda r: r.submitter_ip),)
)

PEST_SCHEMA: Schema = _HEADER + _PEST_FIELDS
AROMA_SCHEMA: Schema = _HEADER + _AROMA_FIELDS
CHEMICAL_SCHEMA: Schema = _HEADER + _CHEMICAL_FIELDS

CATEGORY_SCHEMAS: Dict[Category, Schema] = {
    Category.PEST: PEST_SCHEMA,
    Category.AROMA: AROMA_SCHEMA,
    Category.CHEMICAL: CHEMICAL_SCHEMA,
}


def columns(schema: Schema) -> Tuple[str, ...]:
    return tuple(name for name, _ in schema)


def render(schema: Schema, row: PersistedRow) -> list:
    return [get(row) for _, get in schema]
