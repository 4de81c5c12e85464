"""
Google service-account tokens via the OAuth2 JWT-bearer flow.

The assertion is built and signed here (RS256 over the PKCS#8 key from
GOOGLE_SERVICE_ACCOUNT_KEY) and exchanged at the token endpoint for a
one-hour bearer token.
"""

from __future__ import annotations

import base64
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

import requests
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .errors import AuthError, CredentialFormatError
from .pem import normalize_pem, pem_to_der

log = logging.getLogger(__name__)

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
TOKEN_URL = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME = 3600


@dataclass(frozen=True)
class ServiceCredential:
    issuer_email: str
    private_key: str
    scope: str = SHEETS_SCOPE
    audience: str = TOKEN_URL


@dataclass(frozen=True)
class AccessToken:
    value: str
    minted_at: int
    expires_at: int

    def remaining(self, now: Optional[float] = None) -> float:
        return self.expires_at - (time.time() if now is None else now)


def base64url(data: Union[str, bytes]) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _json_segment(obj: dict) -> str:
    return base64url(json.dumps(obj, separators=(",", ":")))


def load_signing_key(raw_key: str) -> rsa.RSAPrivateKey:
    der = pem_to_der(normalize_pem(raw_key))
    try:
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CredentialFormatError(
            "GOOGLE_SERVICE_ACCOUNT_KEY no contiene una clave PKCS#8 válida."
        ) from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CredentialFormatError("GOOGLE_SERVICE_ACCOUNT_KEY no es una clave RSA.")
    return key


def build_assertion(credential: ServiceCredential, now: int) -> str:
    """Return the signed JWT for ``credential`` issued at ``now``."""
    if not credential.issuer_email:
        raise CredentialFormatError("GOOGLE_SERVICE_ACCOUNT_EMAIL vacío")

    header = _json_segment({"alg": "RS256", "typ": "JWT"})
    claims = _json_segment({
        "iss": credential.issuer_email,
        "scope": credential.scope,
        "aud": credential.audience,
        "exp": now + TOKEN_LIFETIME,
        "iat": now,
    })
    unsigned = f"{header}.{claims}"

    key = load_signing_key(credential.private_key)
    signature = key.sign(unsigned.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())
    return f"{unsigned}.{base64url(signature)}"


def _error_detail(resp: requests.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text
    if isinstance(payload, dict) and payload.get("error"):
        detail = str(payload["error"])
        if payload.get("error_description"):
            detail += f": {payload['error_description']}"
        return detail
    return json.dumps(payload)


def mint_access_token(credential: ServiceCredential, *, now: Optional[int] = None,
                      session: Optional[requests.Session] = None,
                      timeout: float = 30) -> AccessToken:
    now = int(time.time()) if now is None else now
    assertion = build_assertion(credential, now)

    http = session or requests
    try:
        resp = http.post(
            credential.audience,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise AuthError(f"No se pudo contactar el endpoint de token: {e}") from e

    if not resp.ok:
        detail = _error_detail(resp)
        log.warning("token exchange rejected (HTTP %s): %s", resp.status_code, detail)
        raise AuthError(detail)

    try:
        value = resp.json()["access_token"]
    except (ValueError, KeyError, TypeError) as e:
        raise AuthError(f"Respuesta de token inesperada: {resp.text}") from e

    log.debug("minted access token for %s", credential.issuer_email)
    return AccessToken(value=value, minted_at=now, expires_at=now + TOKEN_LIFETIME)


class TokenCache:
    """Process-wide token reuse; re-mints when under ``margin`` seconds remain."""

    def __init__(self, margin: float = 300, minter=mint_access_token):
        self.margin = margin
        self._minter = minter
        self._tokens: Dict[Tuple[str, str, str], AccessToken] = {}
        self._mint_locks: Dict[Tuple[str, str, str], threading.Lock] = {}
        self._lock = threading.Lock()

    def _fresh(self, key) -> Optional[AccessToken]:
        with self._lock:
            token = self._tokens.get(key)
        if token is not None and token.remaining() > self.margin:
            return token
        return None

    def get(self, credential: ServiceCredential, **kwargs) -> AccessToken:
        key = (credential.issuer_email, credential.scope, credential.audience)
        token = self._fresh(key)
        if token is not None:
            return token

        with self._lock:
            mint_lock = self._mint_locks.setdefault(key, threading.Lock())

        # only callers of the same credential wait on an in-flight exchange
        with mint_lock:
            token = self._fresh(key)
            if token is not None:
                return token
            token = self._minter(credential, **kwargs)
            with self._lock:
                self._tokens[key] = token
            return token

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()
