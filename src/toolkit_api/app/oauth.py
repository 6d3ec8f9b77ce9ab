"""OAuth 2.0 client-credentials flow with private_key_jwt client authentication.

Governance endpoints (entitlements, risk rules, access requests) reject SSWS
API tokens, so governance scripts exchange a self-signed client assertion for
a short-lived bearer token. Keys arrive either as a JWK (JSON) document or as
PKCS#8/PKCS#1 PEM text, frequently mangled by copy/paste.
"""

from __future__ import annotations

import json
import logging
import re
import textwrap
import time
import uuid
from typing import Any, Literal
from urllib import error, parse, request

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pydantic import BaseModel, ValidationError

from .okta_api import normalize_org_url
from .settings import get_settings

logger = logging.getLogger(__name__)

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
SIGNING_ALGORITHM = "RS256"
ASSERTION_LIFETIME_S = 300
PEM_LINE_WIDTH = 64

KeyFormat = Literal["JWK", "PEM"]

_PEM_MARKER = re.compile(r"-----(?:BEGIN|END) [A-Z0-9 ]+-----")
_PEM_BLOCK = re.compile(
    r"(?P<header>-----BEGIN (?P<label>[A-Z0-9 ]+)-----)(?P<body>.*?)(?P<footer>-----END (?P=label)-----)",
    re.DOTALL,
)


class KeyMaterialError(ValueError):
    """Private key text could not be imported along the detected parse path."""

    def __init__(self, key_format: KeyFormat, reason: str) -> None:
        self.key_format = key_format
        self.reason = reason
        if key_format == "JWK":
            hint = "Make sure the JSON is a valid private JWK."
        else:
            hint = "For JWK format, paste the JSON directly."
        super().__init__(f"Failed to parse private key as {key_format}: {reason}. {hint}")


class TokenExchangeError(RuntimeError):
    """Token endpoint answered with a non-2xx status or an unusable body."""

    def __init__(self, status: int, detail: str) -> None:
        self.status = status
        self.detail = detail
        super().__init__(f"OAuth token exchange failed ({status}): {detail}")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None


def token_endpoint(org_url: str) -> str:
    return f"{normalize_org_url(org_url)}/oauth2/v1/token"


def normalize_key_material(private_key: str) -> str:
    """Strip carriage returns, and PEM armour wrapped around a JSON key."""
    key_data = private_key.strip().replace("\r", "")
    if "-----BEGIN" in key_data:
        unwrapped = _PEM_MARKER.sub("", key_data).strip()
        if _looks_like_jwk(unwrapped):
            return unwrapped
    return key_data


def load_private_key(private_key: str) -> rsa.RSAPrivateKey:
    """Import JWK or PEM key text as an RSA private key."""
    key_data = normalize_key_material(private_key)
    if not key_data:
        raise KeyMaterialError("PEM", "key material is empty")
    if _looks_like_jwk(key_data):
        return _load_jwk(key_data)
    return _load_pem(key_data)


def generate_client_assertion(
    client_id: str,
    org_url: str,
    private_key: str,
    key_id: str,
    *,
    issued_at: int | None = None,
) -> str:
    signing_key = load_private_key(private_key)
    now = int(time.time()) if issued_at is None else issued_at
    claims = {
        "iss": client_id,
        "sub": client_id,
        "aud": token_endpoint(org_url),
        "iat": now,
        "exp": now + ASSERTION_LIFETIME_S,
        # Fresh per call; the token endpoint rejects replayed assertions.
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(
        claims,
        signing_key,
        algorithm=SIGNING_ALGORITHM,
        headers={"kid": key_id},
    )


def exchange_client_assertion(
    org_url: str,
    client_assertion: str,
    scopes: list[str],
    *,
    timeout_s: float | None = None,
) -> TokenResponse:
    form = parse.urlencode(
        {
            "grant_type": "client_credentials",
            "scope": " ".join(scopes),
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": client_assertion,
        }
    ).encode("utf-8")
    req = request.Request(
        url=token_endpoint(org_url),
        method="POST",
        data=form,
        headers={
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        },
    )
    timeout = timeout_s if timeout_s is not None else get_settings().token_timeout_s

    try:
        with request.urlopen(req, timeout=timeout) as response:
            body = response.read().decode("utf-8")
    except error.HTTPError as exc:
        raw_error = exc.read().decode("utf-8", errors="replace")
        raise TokenExchangeError(exc.code, _oauth_error_detail(raw_error, exc.reason)) from exc
    except error.URLError as exc:
        raise TokenExchangeError(502, f"token endpoint unreachable: {exc.reason}") from exc

    try:
        return TokenResponse.model_validate(json.loads(body))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise TokenExchangeError(200, "token endpoint returned no access_token") from exc


def get_access_token(
    org_url: str,
    client_id: str,
    private_key: str,
    key_id: str,
    scopes: list[str],
) -> str:
    """Issue a bearer token for one governance call chain. Never cached."""
    assertion = generate_client_assertion(client_id, org_url, private_key, key_id)
    token = exchange_client_assertion(org_url, assertion, scopes)
    logger.info(
        "oauth_token event=issued client_id=%s scopes=%s expires_in=%s",
        client_id,
        " ".join(scopes),
        token.expires_in,
    )
    return token.access_token


def _looks_like_jwk(key_data: str) -> bool:
    return key_data.startswith("{") or '"kty"' in key_data


def _load_jwk(key_data: str) -> rsa.RSAPrivateKey:
    try:
        jwk = json.loads(key_data)
    except json.JSONDecodeError as exc:
        raise KeyMaterialError("JWK", f"invalid JSON ({exc.msg})") from exc
    if not isinstance(jwk, dict):
        raise KeyMaterialError("JWK", "expected a JSON object")
    if not jwk.get("kty"):
        raise KeyMaterialError("JWK", 'JWK missing required "kty" field')

    try:
        key: Any = jwt.PyJWK(jwk, algorithm=SIGNING_ALGORITHM).key
    except (jwt.PyJWKError, jwt.InvalidKeyError, ValueError, KeyError) as exc:
        raise KeyMaterialError("JWK", str(exc) or exc.__class__.__name__) from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyMaterialError("JWK", "key has no RSA private parameters (public key pasted?)")
    return key


def _load_pem(key_data: str) -> rsa.RSAPrivateKey:
    pem = _reformat_pem(key_data)
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyMaterialError("PEM", str(exc) or exc.__class__.__name__) from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyMaterialError("PEM", f"{SIGNING_ALGORITHM} requires an RSA private key")
    return key


def _reformat_pem(key_data: str) -> str:
    if "-----BEGIN" not in key_data:
        # Bare base64 body pasted without the envelope.
        return _pem_envelope("PRIVATE KEY", key_data)
    match = _PEM_BLOCK.search(key_data)
    if match is None:
        return key_data
    return _pem_envelope(match.group("label"), match.group("body"))


def _pem_envelope(label: str, body: str) -> str:
    compact = "".join(body.split())
    chunked = "\n".join(textwrap.wrap(compact, PEM_LINE_WIDTH))
    return f"-----BEGIN {label}-----\n{chunked}\n-----END {label}-----\n"


def _oauth_error_detail(raw_body: str, fallback: str) -> str:
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        code = parsed.get("error") if isinstance(parsed.get("error"), str) else ""
        description = parsed.get("error_description")
        if isinstance(description, str) and description:
            return f"{code}: {description}" if code else description
        if code:
            return code
    return raw_body.strip() or str(fallback)
