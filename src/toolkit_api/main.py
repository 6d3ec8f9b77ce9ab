"""FastAPI application wiring for the toolkit service.

Routes:
- GET /health, /healthz, /live: liveness probes.
- GET /scripts: registered scripts with their input form metadata.
- POST /scripts/run: runs one script and streams its progress as server-sent events.
- POST /test-connection, /okta/apps, /okta/auth-servers: credential check and
  lookups used to fill script input forms.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from .app.executor import PreflightError, ScriptExecutor
from .app.models import CredentialsRequest, RunRequest, ScriptSummary
from .app.okta_api import OktaApiError, OktaClient, error_summary
from .app.registry import SCRIPT_REGISTRY, list_scripts
from .app.settings import Settings, get_settings
from .app.streaming import event_stream_response

logger = logging.getLogger(__name__)

APPS_PAGE_LIMIT = 200


def create_app(settings_override: Settings | None = None) -> FastAPI:
    """Application factory.

    Tests pass ``settings_override`` to shrink queue sizes and poll intervals
    without touching the environment.
    """
    settings = settings_override or get_settings()
    logging.getLogger("toolkit_api").setLevel(settings.log_level.upper())

    executor = ScriptExecutor(
        registry=SCRIPT_REGISTRY,
        queue_size=settings.stream_queue_size,
        poll_interval_s=settings.stream_poll_interval_s,
    )

    app = FastAPI(title=settings.app_name, version="0.1.0")
    app.state.settings = settings
    app.state.executor = executor

    @app.get("/health")
    @app.get("/healthz")
    @app.get("/live")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/scripts", response_model=list[ScriptSummary], response_model_by_alias=True)
    def scripts() -> list[ScriptSummary]:
        return list_scripts(app.state.executor.registry)

    @app.post("/scripts/run", response_model=None)
    async def run_script(request: Request) -> StreamingResponse | JSONResponse:
        # Parsed by hand so every rejection has the same {"error": ...} shape.
        raw_body = await request.body()
        try:
            payload = json.loads(raw_body or b"{}")
        except json.JSONDecodeError:
            return _error_response("Invalid JSON body", status_code=400)
        if not isinstance(payload, dict):
            return _error_response("Invalid JSON body", status_code=400)

        try:
            run_request = RunRequest.model_validate(payload)
            events = app.state.executor.stream(run_request)
        except ValidationError as exc:
            return _error_response(f"Invalid run request: {exc.errors()[0]['msg']}", status_code=400)
        except PreflightError as exc:
            logger.info(
                "script_run event=rejected workflow_id=%s reason=%s",
                run_request.workflow_id or "-",
                exc.detail,
            )
            return _error_response(exc.detail, status_code=400)
        return event_stream_response(events)

    @app.post("/test-connection")
    def test_connection(payload: CredentialsRequest) -> Any:
        org_url = payload.org_url.strip()
        api_token = payload.api_token.strip()
        if not org_url or not api_token:
            return _error_response("Org URL and API Token are required.", status_code=400)
        if not org_url.startswith("https://"):
            return _error_response("Org URL must start with https://.", status_code=400)

        client = OktaClient(org_url, authorization=f"SSWS {api_token}")
        try:
            response = client.send("GET", "/api/v1/users/me")
        except OktaApiError as exc:
            return _error_response(exc.summary, status_code=502, status=exc.status)
        if not response.ok:
            message = error_summary(response.body) or "Failed to reach Okta /api/v1/users/me"
            return _error_response(message, status_code=502, status=response.status)

        profile = (response.body or {}).get("profile") or {}
        email = profile.get("email") or profile.get("login") or profile.get("primaryEmail")
        return {"ok": True, "email": email}

    @app.post("/okta/apps")
    def list_apps(payload: CredentialsRequest) -> Any:
        response = _proxy_get(payload, "/api/v1/apps", params={"limit": APPS_PAGE_LIMIT})
        if isinstance(response, JSONResponse):
            return response
        if not response.ok:
            return _error_response(
                error_summary(response.body) or "Failed to list apps.",
                status_code=response.status,
            )
        return {"apps": response.body or []}

    @app.post("/okta/auth-servers")
    def list_auth_servers(payload: CredentialsRequest) -> Any:
        response = _proxy_get(payload, "/api/v1/authorizationServers")
        if isinstance(response, JSONResponse):
            return response
        if not response.ok:
            return _error_response(
                error_summary(response.body) or "Failed to list authorization servers.",
                status_code=response.status,
            )
        servers = response.body or []
        return {
            "authServers": [
                {"id": server.get("id"), "name": server.get("name"), "audiences": server.get("audiences")}
                for server in servers
            ]
        }

    return app


def _proxy_get(payload: CredentialsRequest, path: str, params: dict[str, Any] | None = None):
    if not payload.org_url.strip() or not payload.api_token.strip():
        return _error_response("Missing orgUrl or apiToken in request body.", status_code=400)
    client = OktaClient(payload.org_url, authorization=f"SSWS {payload.api_token.strip()}")
    try:
        return client.send("GET", path, params=params)
    except OktaApiError as exc:
        return _error_response(exc.summary, status_code=exc.status)


def _error_response(message: str, *, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


# Module-level app for `uvicorn toolkit_api.main:app`.
app = create_app()
