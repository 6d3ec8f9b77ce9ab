"""Helpers shared by the script handlers."""

from __future__ import annotations

import re
from typing import Any

from ..models import Emit, LogLevel, ScriptInputs, StepResult
from ..okta_api import OktaApiError, OktaClient

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def input_text(inputs: ScriptInputs, name: str, default: str = "") -> str:
    value = inputs.get(name)
    if isinstance(value, list):
        value = value[0] if value else ""
    if value is None:
        return default
    return str(value).strip() or default


def input_list(inputs: ScriptInputs, name: str) -> list[str]:
    """Multi-select inputs arrive as lists; a comma-separated string is also accepted."""
    value = inputs.get(name)
    if value is None:
        return []
    items = value if isinstance(value, list) else str(value).split(",")
    return [str(item).strip() for item in items if str(item).strip()]


def failure(prefix: str, exc: Exception, data: Any = None) -> StepResult:
    return StepResult(success=False, message=f"{prefix}: {exc}", data=data)


def external_value(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


def search_expression(attribute: str, value: str) -> str:
    escaped = value.replace('"', '\\"')
    return f'{attribute} eq "{escaped}"'


def find_group(client: OktaClient, name: str) -> dict[str, Any] | None:
    groups = client.get(
        "/api/v1/groups",
        params={"search": search_expression("profile.name", name)},
    ) or []
    for group in groups:
        if group.get("profile", {}).get("name") == name:
            return group
    return None


def find_or_create_group(
    client: OktaClient,
    name: str,
    description: str,
) -> tuple[dict[str, Any], str]:
    """Return the group and ``"exists"`` or ``"created"``."""
    group = find_group(client, name)
    if group is not None:
        return group, "exists"
    try:
        created = client.post("/api/v1/groups", {"profile": {"name": name, "description": description}})
    except OktaApiError as exc:
        # Lost a race with another run creating the same group.
        if exc.already_exists:
            group = find_group(client, name)
            if group is not None:
                return group, "exists"
        raise
    return created, "created"


def find_user(client: OktaClient, attribute: str, value: str) -> dict[str, Any] | None:
    users = client.get("/api/v1/users", params={"search": search_expression(attribute, value)}) or []
    return users[0] if users else None


def scoped_emit(emit: Emit, step: str) -> Emit:
    """Emit wrapper that labels events with ``step`` unless the handler already did."""

    def _emit(level: LogLevel, message: str, *, step: str | None = step) -> None:
        emit(level, message, step=step)

    return _emit


def batch_summary(results: list[dict[str, Any]], errors: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "results": results,
        "errors": errors,
        "successCount": len(results),
        "errorCount": len(errors),
    }
