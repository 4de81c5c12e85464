"""
Service-account key normalization.

GOOGLE_SERVICE_ACCOUNT_KEY is pasted into hosting dashboards by hand, so it
shows up in a few broken shapes:
- the whole service-account JSON document instead of just ``private_key``
- a PEM whose newlines were flattened to literal ``\\n`` sequences
- a PEM still wrapped in the quotes it had inside the JSON file

normalize_pem() repairs those and refuses anything that still lacks the PEM
markers, so a bad variable fails loudly instead of producing a useless key.
"""

from __future__ import annotations

import base64
import binascii
import json
import re

from .errors import CredentialFormatError

BEGIN_MARKER = "BEGIN PRIVATE KEY"
END_MARKER = "END PRIVATE KEY"

_MARKER_LINE = re.compile(r"-----(BEGIN|END) PRIVATE KEY-----")
_WHITESPACE = re.compile(r"\s+")


def normalize_pem(raw: str) -> str:
    if not raw or not raw.strip():
        raise CredentialFormatError("GOOGLE_SERVICE_ACCOUNT_KEY vacío")

    pem = raw.strip()

    # Full service-account JSON pasted in
    if pem.startswith("{"):
        try:
            doc = json.loads(pem)
        except ValueError:
            doc = None
        if isinstance(doc, dict) and doc.get("private_key"):
            pem = str(doc["private_key"]).strip()

    if "\\n" in pem:
        pem = pem.replace("\\n", "\n").strip()

    if len(pem) >= 2 and pem[0] == pem[-1] and pem[0] in ("'", '"'):
        pem = pem[1:-1].strip()

    for marker in (BEGIN_MARKER, END_MARKER):
        if marker not in pem:
            raise CredentialFormatError(
                f"GOOGLE_SERVICE_ACCOUNT_KEY no parece un PEM válido (falta {marker}). "
                "Revisa la variable de entorno."
            )
    return pem


def pem_to_der(pem: str) -> bytes:
    """Strip the PEM armor and decode the PKCS#8 body."""
    body = _WHITESPACE.sub("", _MARKER_LINE.sub("", pem))
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialFormatError(
            "Base64 inválido en la clave. Revisa saltos de línea o copia/pegado del private_key."
        ) from e
