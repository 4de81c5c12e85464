import pytest

from incident_intake.errors import ValidationError
from incident_intake.models import (
    AROMA_SCHEMA, CHEMICAL_SCHEMA, MASTER_SCHEMA, PEST_SCHEMA, Category,
    PersistedRow, columns, is_checked, normalize_name, parse_report, render,
)

BASE = {"Tienda_Nombre": "Store A", "Fecha_Evento": "2024-01-01",
        "Nombre": "Ana", "Apellido": "Diaz", "Tipo_Evento": "Plaga"}


def test_master_schema_column_order():
    assert columns(MASTER_SCHEMA) == (
        "Response_ID", "Timestamp", "Tienda_ID", "Tienda_Nombre", "Fecha_Evento",
        "Nombre", "Apellido", "Tipo_Evento",
        "Tipo_Evento_Plaga", "Tipo_Plaga", "Sector_Hallazgo", "Comentario_Plaga",
        "Dosif_inco_Aroma", "Equip_malo_Aroma", "Hurto_Equip_Aroma", "Comentario_Aroma",
        "Falla_Dil_Quimico", "Otra_Inci_Quimico", "Problema_Ped_Quimico", "Comentario_Quimicos",
        "Submitter_IP",
    )


def test_category_schemas_share_header():
    header = ("Response_ID", "Timestamp", "Tienda_ID", "Tienda_Nombre",
              "Fecha_Evento", "Nombre", "Apellido")
    for schema in (PEST_SCHEMA, AROMA_SCHEMA, CHEMICAL_SCHEMA):
        assert len(schema) == 11
        assert columns(schema)[:7] == header
    assert columns(CHEMICAL_SCHEMA)[7:] == (
        "Falla_Dil_Quimico", "Otra_Inci_Quimico", "Problema_Ped_Quimico", "Comentario_Quimicos")


@pytest.mark.parametrize("missing", ["Tienda_Nombre", "Fecha_Evento", "Nombre", "Apellido", "Tipo_Evento"])
def test_required_fields(missing):
    body = dict(BASE, **{missing: "   "})
    with pytest.raises(ValidationError) as exc:
        parse_report(body)
    assert exc.value.message == f"Falta {missing}"
    assert exc.value.field == missing
    assert exc.value.status_code == 400


def test_first_missing_field_is_reported():
    with pytest.raises(ValidationError, match="Falta Fecha_Evento"):
        parse_report({"Tienda_Nombre": "X"})


def test_non_object_body():
    with pytest.raises(ValidationError):
        parse_report(["not", "a", "dict"])
    with pytest.raises(ValidationError):
        parse_report(None)


@pytest.mark.parametrize("label, category", [
    ("Plaga", Category.PEST),
    ("Aroma", Category.AROMA),
    ("Químico", Category.CHEMICAL),
    ("Quimico", Category.CHEMICAL),
    (" Quimico ", Category.CHEMICAL),
    ("Otro", Category.UNCATEGORIZED),
    ("PLAGA", Category.UNCATEGORIZED),
    ("plaga", Category.UNCATEGORIZED),
    ("AROMA", Category.UNCATEGORIZED),
    ("químico", Category.UNCATEGORIZED),
])
def test_category_labels(label, category):
    assert parse_report(dict(BASE, Tipo_Evento=label)).category is category


def test_pest_fields_only_on_pest_report():
    report = parse_report(dict(BASE, Tipo_Plaga="Roedor", Dosif_inco_Aroma=True))
    assert report.pest.pest_type == "Roedor"
    assert report.aroma.incorrect_dosing == ""


def test_flags_keep_true_and_blank_false():
    report = parse_report(dict(BASE, Tipo_Evento="Aroma", Dosif_inco_Aroma=True,
                               Equip_malo_Aroma=False, Hurto_Equip_Aroma=None))
    assert report.aroma.incorrect_dosing is True
    assert report.aroma.faulty_equipment == ""
    assert report.aroma.equipment_theft == ""


def test_chemical_comment_accepts_legacy_key():
    report = parse_report(dict(BASE, Tipo_Evento="Químico", Comentario_Quimico="sin stock"))
    assert report.chemical.comment == "sin stock"


def test_render_defaults_unrelated_fields_to_empty():
    report = parse_report(dict(BASE, Tipo_Evento="Aroma", Comentario_Aroma="huele raro"))
    row = PersistedRow("id-1", "2024-01-01T00:00:00.000Z", "T001", report, "10.0.0.1")
    cells = dict(zip(columns(MASTER_SCHEMA), render(MASTER_SCHEMA, row)))

    assert cells["Comentario_Aroma"] == "huele raro"
    assert cells["Tipo_Plaga"] == ""
    assert cells["Comentario_Quimicos"] == ""
    assert cells["Submitter_IP"] == "10.0.0.1"
    assert row.as_dict() == cells


@pytest.mark.parametrize("raw, expected", [
    ("  Tienda   Ñuñoa ", "tienda nunoa"),
    ("CAFÉ\tCentral", "cafe central"),
    (None, ""),
])
def test_normalize_name(raw, expected):
    assert normalize_name(raw) == expected


@pytest.mark.parametrize("value, expected", [
    (True, True), (False, False), ("", False), ("false", False),
    ("No", False), ("Sí", True), ("1", True),
])
def test_is_checked(value, expected):
    assert is_checked(value) is expected
