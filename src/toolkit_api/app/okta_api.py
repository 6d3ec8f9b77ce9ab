"""Thin JSON client for the Okta management and governance APIs.

Non-2xx answers become ``OktaApiError``, whose message carries the upstream
summary next to the HTTP status and request line.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib import error, parse, request

from .models import ToolkitConfig
from .settings import get_settings

logger = logging.getLogger(__name__)

ALREADY_EXISTS_ERROR_CODE = "E0000007"

MANAGEMENT_FORBIDDEN_HINT = (
    " Check that the API token belongs to an administrator whose role allows this operation"
    " (Super Administrator, or a custom role that includes it)."
)
GOVERNANCE_FORBIDDEN_HINT = (
    " Check that your API Services app has: 1) Okta API Scopes granted"
    " (okta.governance.entitlements.manage, okta.governance.riskRule.manage, okta.apps.read),"
    " and 2) An admin role assigned (Super Administrator or custom role with OIG permissions)."
)


def normalize_org_url(org_url: str) -> str:
    return org_url.strip().rstrip("/")


def error_summary(body: Any) -> str:
    """Best-effort human summary of an Okta/OAuth error body."""
    if isinstance(body, dict):
        for key in ("errorSummary", "message", "error_description", "error", "raw"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(body, str):
        return body.strip()
    return ""


def error_causes(body: Any) -> list[str]:
    if not isinstance(body, dict):
        return []
    causes = body.get("errorCauses")
    if not isinstance(causes, list):
        return []
    summaries: list[str] = []
    for cause in causes:
        if isinstance(cause, dict):
            summary = cause.get("errorSummary")
            if isinstance(summary, str) and summary:
                summaries.append(summary)
    return summaries


class OktaApiError(RuntimeError):
    """Non-2xx answer (or unreachable upstream) for one API call."""

    def __init__(
        self,
        *,
        status: int,
        method: str,
        path: str,
        body: Any = None,
        hint: str = "",
    ) -> None:
        self.status = status
        self.method = method
        self.path = path
        self.body = body
        self.summary = error_summary(body) or "no body"
        message = f"Okta API error on {method} {path} ({status}): {self.summary}"
        causes = error_causes(body)
        if causes and "; ".join(causes) != self.summary:
            message += f" - {'; '.join(causes)}"
        if status == 403 and hint:
            message += hint
        super().__init__(message)

    @property
    def error_code(self) -> str | None:
        if isinstance(self.body, dict):
            code = self.body.get("errorCode")
            return code if isinstance(code, str) else None
        return None

    @property
    def causes(self) -> list[str]:
        return error_causes(self.body)

    @property
    def already_exists(self) -> bool:
        if self.error_code == ALREADY_EXISTS_ERROR_CODE:
            return True
        texts = [self.summary, *self.causes]
        return any("already exists" in text.lower() for text in texts)


@dataclass(frozen=True)
class OktaResponse:
    status: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class OktaClient:
    """JSON REST client bound to one org and one credential."""

    def __init__(
        self,
        org_url: str,
        *,
        authorization: str,
        timeout_s: float | None = None,
        forbidden_hint: str = MANAGEMENT_FORBIDDEN_HINT,
    ) -> None:
        self.base_url = normalize_org_url(org_url)
        self._authorization = authorization
        self.timeout_s = timeout_s if timeout_s is not None else get_settings().http_timeout_s
        self.forbidden_hint = forbidden_hint

    @classmethod
    def for_config(cls, config: ToolkitConfig, *, timeout_s: float | None = None) -> OktaClient:
        """Management API client using the SSWS API token."""
        return cls(
            config.org_url,
            authorization=f"SSWS {config.api_token}",
            timeout_s=timeout_s,
        )

    @classmethod
    def for_access_token(
        cls,
        org_url: str,
        access_token: str,
        *,
        timeout_s: float | None = None,
    ) -> OktaClient:
        """Governance API client using a short-lived OAuth bearer token."""
        return cls(
            org_url,
            authorization=f"Bearer {access_token}",
            timeout_s=timeout_s,
            forbidden_hint=GOVERNANCE_FORBIDDEN_HINT,
        )

    def url_for(self, path: str, params: dict[str, Any] | None = None) -> str:
        url = f"{self.base_url}{path}"
        if params:
            encoded = parse.urlencode(
                {key: value for key, value in params.items() if value is not None},
                doseq=True,
            )
            if encoded:
                return f"{url}?{encoded}"
        return url

    def send(
        self,
        method: str,
        path: str,
        *,
        payload: Any = None,
        params: dict[str, Any] | None = None,
    ) -> OktaResponse:
        """Perform one call and return status + decoded body without raising on HTTP status."""
        raw_payload: bytes | None = None
        headers = {"Accept": "application/json", "Authorization": self._authorization}
        if payload is not None:
            raw_payload = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = request.Request(
            url=self.url_for(path, params),
            method=method,
            data=raw_payload,
            headers=headers,
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
                status = response.status
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            status = exc.code
        except error.URLError as exc:
            raise OktaApiError(
                status=502,
                method=method,
                path=path,
                body={"errorSummary": f"upstream request failed: {exc.reason}"},
            ) from exc

        logger.debug("okta_request method=%s path=%s status=%s", method, path, status)
        return OktaResponse(status=status, body=_decode_body(body))

    def request(
        self,
        method: str,
        path: str,
        *,
        payload: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = self.send(method, path, payload=payload, params=params)
        if not response.ok:
            raise self.error_for(method, path, response)
        return response.body

    def error_for(self, method: str, path: str, response: OktaResponse) -> OktaApiError:
        return OktaApiError(
            status=response.status,
            method=method,
            path=path,
            body=response.body,
            hint=self.forbidden_hint,
        )

    def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(
        self,
        path: str,
        payload: Any = None,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return self.request("POST", path, payload=payload, params=params)

    def put(self, path: str, payload: Any = None) -> Any:
        return self.request("PUT", path, payload=payload)


def _decode_body(body: str) -> Any:
    if not body:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return {"raw": body}
